"""
db/seed.py

Creates the tables and the first super_admin account.

    SEED_ADMIN_EMAIL=admin@example.edu SEED_ADMIN_PASSWORD=... python -m pbl_toolkit.db.seed

Self-registration only ever produces pending instructors and only a
super_admin can promote someone to super_admin, so a fresh deployment needs
this one out-of-band account. Running it again is a no-op when the account
already exists.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pbl_toolkit.core.config import Settings, get_settings
from pbl_toolkit.core.exceptions import ConfigurationError
from pbl_toolkit.core.roles import AccountStatus, Role
from pbl_toolkit.core.security import get_password_hash
from pbl_toolkit.db.database import AsyncSessionLocal, init_db
from pbl_toolkit.db.models import Faculty
from pbl_toolkit.services.registration import DEFAULT_INSTITUTION

logger = logging.getLogger(__name__)


async def seed_super_admin(db: AsyncSession, settings: Settings) -> Optional[Faculty]:
    """Returns the created account, or None when it already existed."""
    if not settings.seed_admin_email or not settings.seed_admin_password:
        raise ConfigurationError("SEED_ADMIN_EMAIL and SEED_ADMIN_PASSWORD must be set")

    email = settings.seed_admin_email.lower().strip()
    result = await db.execute(select(Faculty).where(Faculty.email == email))
    if result.scalar_one_or_none() is not None:
        logger.info(f"Seed account {email} already exists; nothing to do.")
        return None

    faculty = Faculty(
        name=settings.seed_admin_name,
        email=email,
        password_hash=get_password_hash(settings.seed_admin_password),
        role=Role.SUPER_ADMIN.value,
        status=AccountStatus.APPROVED.value,
        is_active=True,
        title="Administrator",
        department="Administration",
        institution=DEFAULT_INSTITUTION,
        approved_at=datetime.now(timezone.utc),
    )
    db.add(faculty)
    await db.flush()

    logger.info(f"Seeded super admin {email} (id={faculty.id})")
    return faculty


async def main() -> None:
    settings = get_settings()
    await init_db()
    async with AsyncSessionLocal() as db:
        await seed_super_admin(db, settings)
        await db.commit()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    asyncio.run(main())
