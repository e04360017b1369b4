#!/usr/bin/env python3
"""
Script to create (or reset) an admin user with a password login.

Usage: python scripts/create_admin.py admin@example.mx 'S3cret!' [First] [Last]
"""

import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.auth import get_password_hash
from backoffice.database import async_session_maker
from backoffice.models.base import Lifecycle
from backoffice.models.user import User


async def create_or_reset_admin(db: AsyncSession, email: str, password: str, first_name: str, last_name: str) -> User:
    """Create the admin if missing, otherwise reset its password and role."""
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()

    if user:
        user.password_hash = get_password_hash(password)
        user.role = "admin"
        user.lifecycle = Lifecycle.ACTIVE
        print(f"✓ User '{email}' already exists (ID: {user.id}), password and role reset")
        return user

    user = User(
        email=email,
        first_name=first_name,
        last_name=last_name,
        role="admin",
        password_hash=get_password_hash(password),
    )
    db.add(user)
    await db.flush()

    print(f"✓ Created admin '{email}' (ID: {user.id})")
    return user


async def main():
    if len(sys.argv) < 3:
        print(__doc__)
        sys.exit(1)

    email = sys.argv[1].strip().lower()
    password = sys.argv[2]
    first_name = sys.argv[3] if len(sys.argv) > 3 else "Admin"
    last_name = sys.argv[4] if len(sys.argv) > 4 else ""

    async with async_session_maker() as db:
        try:
            user = await create_or_reset_admin(db, email, password, first_name, last_name)
            await db.commit()
        except Exception as e:
            await db.rollback()
            print(f"❌ Error: {e}")
            raise

    print()
    print("Summary:")
    print(f"  User: {user.name}")
    print(f"  Email: {user.email}")
    print(f"  Role: {user.role}")


if __name__ == "__main__":
    asyncio.run(main())
