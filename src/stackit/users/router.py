"""User router: registration, current user and public lookup."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from stackit.auth.dependencies import get_current_user
from stackit.auth.password import PasswordStrengthError
from stackit.database import get_session
from stackit.db.models import User
from stackit.users.schemas import CreateUserRequest, PublicUserResponse, UserResponse
from stackit.users.service import create_user, get_user_by_username

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


def _user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        username=user.username,
        email=user.email,
        created_at=user.created_at,
    )


@router.post("", response_model=UserResponse, status_code=201)
async def register_user(
    body: CreateUserRequest,
    db: AsyncSession = Depends(get_session),
) -> UserResponse:
    """Create a user account."""
    try:
        user = await create_user(db, body.username, body.email, body.password)
    except PasswordStrengthError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    await db.commit()
    return _user_response(user)


@router.get("/me", response_model=UserResponse)
async def get_me(user: User = Depends(get_current_user)) -> UserResponse:
    """Return the authenticated user."""
    return _user_response(user)


@router.get("/{username}", response_model=PublicUserResponse)
async def get_public_user(
    username: str,
    db: AsyncSession = Depends(get_session),
) -> PublicUserResponse:
    """Public profile lookup by username."""
    user = await get_user_by_username(db, username)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return PublicUserResponse(id=user.id, username=user.username, created_at=user.created_at)
