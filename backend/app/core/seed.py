"""Seed a school with an admin account and its class/section list.

Student imports resolve each row's class and section against school_classes,
so a fresh tenant needs these before its first upload.
"""
import asyncio
import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import hash_password
from app.db.session import AsyncSessionLocal
from app.models.student import SchoolClass
from app.models.user import User

logger = logging.getLogger(__name__)

DEFAULT_TENANT_ID = uuid.UUID("00000000-0000-4000-8000-000000000001")
DEFAULT_ADMIN = ("admin@school.local", "School Admin", "changeme123")

# Classes 1-12, sections A-C
DEFAULT_CLASSES = [(str(n), s) for n in range(1, 13) for s in ("A", "B", "C")]


async def seed_admin(db: AsyncSession, tenant_id: uuid.UUID) -> None:
    email, name, password = DEFAULT_ADMIN
    existing = await db.execute(select(User).where(User.email == email))
    if existing.scalars().first() is not None:
        logger.info("Admin %s already exists, skipping", email)
        return
    db.add(User(
        tenant_id=tenant_id,
        email=email,
        name=name,
        password_hash=hash_password(password),
        role="ADMIN",
        is_active=True,
    ))
    logger.info("Seeded admin: %s", email)


async def seed_classes(db: AsyncSession, tenant_id: uuid.UUID) -> int:
    """Insert missing (class, section) pairs. Returns how many were added."""
    result = await db.execute(
        select(SchoolClass.name, SchoolClass.section).where(SchoolClass.tenant_id == tenant_id)
    )
    present = {(name, section) for name, section in result.all()}

    added = 0
    for name, section in DEFAULT_CLASSES:
        if (name, section) in present:
            continue
        db.add(SchoolClass(tenant_id=tenant_id, name=name, section=section, is_active=True))
        added += 1
    logger.info("Seeded %d classes (%d already present)", added, len(present))
    return added


async def run_seed(tenant_id: uuid.UUID = DEFAULT_TENANT_ID) -> None:
    async with AsyncSessionLocal() as db:
        await seed_admin(db, tenant_id)
        await seed_classes(db, tenant_id)
        await db.commit()
    logger.info("Seeding complete.")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(run_seed())
