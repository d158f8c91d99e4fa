"""User lookups and registration."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from stackit.auth.password import hash_password, validate_password_strength
from stackit.config import get_settings
from stackit.db.models import User
from stackit.errors import ConflictError

logger = logging.getLogger(__name__)


async def get_user_by_id(db: AsyncSession, user_id: int) -> User | None:
    """Fetch a user by ID."""
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_username(db: AsyncSession, username: str) -> User | None:
    """Fetch a user by exact (case-sensitive) username."""
    result = await db.execute(select(User).where(User.username == username))
    return result.scalar_one_or_none()


async def get_users_by_usernames(db: AsyncSession, usernames: Iterable[str]) -> dict[str, User]:
    """Resolve many usernames in one query. Unknown names are simply absent from the result."""
    names = list(dict.fromkeys(usernames))
    if not names:
        return {}
    result = await db.execute(select(User).where(User.username.in_(names)))
    return {user.username: user for user in result.scalars().all()}


async def ensure_available(db: AsyncSession, username: str, email: str) -> None:
    """Raise ConflictError if the username or the (case-insensitive) email is taken."""
    existing = await db.execute(
        select(User.username, User.email).where(
            (User.username == username) | (func.lower(User.email) == email.lower())
        )
    )
    for taken_username, taken_email in existing:
        if taken_username == username:
            msg = f"Username '{username}' is already taken"
            raise ConflictError(msg)
        if taken_email.lower() == email.lower():
            msg = "Email is already registered"
            raise ConflictError(msg)


async def create_user(db: AsyncSession, username: str, email: str, password: str) -> User:
    """Register a new user.

    Raises ConflictError when the username or email is taken and
    PasswordStrengthError when the password is too weak.
    """
    settings = get_settings()
    validate_password_strength(password, settings.password_min_length, settings.password_max_length)
    await ensure_available(db, username, email)

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        created_at=datetime.now(timezone.utc),
    )
    db.add(user)
    try:
        await db.flush()
    except IntegrityError as e:
        # A concurrent registration won between the check and the insert
        await db.rollback()
        msg = "Username or email is already registered"
        raise ConflictError(msg) from e
    logger.info("Registered user %s (id=%d)", username, user.id)
    return user
