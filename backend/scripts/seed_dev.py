"""
Seed script for local dev: create tables, one admin owner, and turn reverse shares on.
Run from backend/: python scripts/seed_dev.py
Override the admin with SEED_ADMIN_EMAIL / SEED_ADMIN_PASSWORD.
"""
import asyncio
import os

from sqlalchemy import select

# Add parent to path so app is importable
import sys
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.core.security import hash_password
from app.db.models import User
from app.db.session import async_session_factory, engine, init_db
from app.services.feature_flags import ALLOW_REVERSE_SHARES, FeatureFlags

ADMIN_EMAIL = os.environ.get("SEED_ADMIN_EMAIL", "admin@example.com")
ADMIN_PASSWORD = os.environ.get("SEED_ADMIN_PASSWORD", "admin123")


async def seed():
    await init_db()

    async with async_session_factory() as db:
        r = await db.execute(select(User).where(User.email == ADMIN_EMAIL))
        if r.scalar_one_or_none():
            print("Admin already present. Skip user.")
        else:
            db.add(
                User(
                    name="Admin",
                    email=ADMIN_EMAIL,
                    password_hash=hash_password(ADMIN_PASSWORD),
                    role="admin",
                )
            )
            print(f"Created admin {ADMIN_EMAIL}")
        await FeatureFlags(db).set(ALLOW_REVERSE_SHARES, "true")
        await db.commit()
    print("Reverse shares enabled.")
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed())
