"""Request/response schemas for user endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, field_validator

USERNAME_PATTERN = r"^[A-Za-z0-9_]+$"


class CreateUserRequest(BaseModel):
    """Registration request. Usernames use the same alphabet as @mentions."""

    username: str = Field(..., min_length=3, max_length=32, pattern=USERNAME_PATTERN)
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Normalize email to lowercase."""
        return v.lower().strip()


class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    created_at: datetime | None = None


class PublicUserResponse(BaseModel):
    id: int
    username: str
    created_at: datetime | None = None
