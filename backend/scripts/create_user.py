#!/usr/bin/env python3
"""Create a dashboard user and print a bearer token for local testing."""

import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select
from database import async_session
from models.user import User
from services.auth_service import AuthService


async def create_user(email: str, name: str | None = None):
    async with async_session() as db:
        result = await db.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()

        if user:
            print(f"User {email} already exists.")
        else:
            user = User(email=email, name=name, is_active=True)
            db.add(user)
            await db.commit()
            await db.refresh(user)
            print("User created successfully!")

        print(f"  Email: {email}")
        print(f"  ID: {user.id}")
        print(f"  Token (60 min): {AuthService.create_access_token(user.id, email)}")


if __name__ == "__main__":
    if len(sys.argv) not in (2, 3):
        print("Usage: python3 create_user.py <email> [name]")
        print("Example: python3 create_user.py creator@example.com 'Jo Creator'")
        sys.exit(1)

    asyncio.run(create_user(sys.argv[1], sys.argv[2] if len(sys.argv) == 3 else None))
