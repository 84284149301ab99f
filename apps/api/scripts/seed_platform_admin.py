"""
Seed Platform Admin User

Creates the initial platform admin who reviews identity documents.
Credentials come from the environment; nothing is hard-coded.

Usage:
    cd apps/api
    ADMIN_EMAIL=admin@example.com ADMIN_PASSWORD=... python scripts/seed_platform_admin.py

Optional: ADMIN_FIRST_NAME, ADMIN_LAST_NAME
"""

import asyncio
import os

from timint.core.database import async_session_maker, close_db
from timint.core.security import hash_password
from timint.modules.users.models import UserRole
from timint.modules.users.repository import UserRepository


async def seed_platform_admin() -> None:
    """Create the platform admin user if it doesn't exist."""
    email = os.environ.get("ADMIN_EMAIL")
    password = os.environ.get("ADMIN_PASSWORD")
    if not email or not password:
        raise SystemExit("ADMIN_EMAIL and ADMIN_PASSWORD must be set")

    first_name = os.environ.get("ADMIN_FIRST_NAME", "Platform")
    last_name = os.environ.get("ADMIN_LAST_NAME", "Admin")

    async with async_session_maker() as db:
        existing_user = await UserRepository.get_by_email(db, email)

        if existing_user:
            print(f"Platform admin already exists: {existing_user.email}")
            print(f"  ID: {existing_user.id}")
            print(f"  Role: {existing_user.role.value}")
            return

        admin_user = await UserRepository.create(
            db,
            email=email,
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            role=UserRole.PLATFORM_ADMIN,
            is_active=True,
            is_verified=True,  # Pre-verified
        )

        print("Platform admin created successfully!")
        print(f"  Email: {admin_user.email}")
        print(f"  Name: {admin_user.full_name}")
        print(f"  ID: {admin_user.id}")
        print(f"  Role: {admin_user.role.value}")

    await close_db()


if __name__ == "__main__":
    asyncio.run(seed_platform_admin())
