"""
User Repository

Database operations for user accounts.
"""

import logging
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from timint.modules.users.models import User, UserRole

logger = logging.getLogger(__name__)


def split_name(full_name: str) -> tuple[str, str]:
    """Split a display name into first and last name."""
    parts = full_name.strip().split(" ", 1)
    return parts[0], parts[1] if len(parts) > 1 else ""


class UserRepository:
    """Repository for user database operations."""

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        email: str,
        password_hash: str,
        first_name: str,
        last_name: str,
        role: UserRole,
        is_active: bool = True,
        is_verified: bool = False,
    ) -> User:
        """
        Create and commit a new user record.

        Args:
            db: Database session
            email: User's email address (unique, stored lowercase)
            password_hash: Hashed password
            first_name: User's first name
            last_name: User's last name
            role: User's role
            is_active: Whether user can log in
            is_verified: Whether the account has been verified

        Returns:
            Created User instance
        """
        user = User(
            email=email.lower(),
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
            role=role,
            is_active=is_active,
            is_verified=is_verified,
        )

        db.add(user)
        await db.commit()
        await db.refresh(user)

        logger.info(f"Created user: {user.id} ({user.role.value})")
        return user

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: str | UUID) -> User | None:
        """Get a user by ID."""
        result = await db.execute(select(User).where(User.id == str(user_id)))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        """Get a user by email address (case-insensitive)."""
        result = await db.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()

    @staticmethod
    async def email_exists(db: AsyncSession, email: str) -> bool:
        """Check if an email address is already registered."""
        user = await UserRepository.get_by_email(db, email)
        return user is not None

    @staticmethod
    async def delete(db: AsyncSession, user_id: str | UUID) -> bool:
        """
        Delete a user.

        Returns:
            True if a row was deleted
        """
        result = await db.execute(delete(User).where(User.id == str(user_id)))
        await db.commit()
        deleted = result.rowcount > 0
        if deleted:
            logger.info(f"Deleted user: {user_id}")
        return deleted

    @staticmethod
    async def mark_verified(db: AsyncSession, user_id: str | UUID) -> None:
        """Flag the account as verified after KYC approval."""
        user = await UserRepository.get_by_id(db, user_id)
        if user:
            user.is_verified = True
            await db.commit()
