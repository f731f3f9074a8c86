"""
services/api_keys.py

OpenAI key storage for faculty members and the system-wide default key.

Plaintext keys exist only between the request body and `encrypt_secret`,
and between `decrypt_secret` and the outbound call that needs them. They
are never returned by the API and never logged.

One shape rule (`sk-` prefix, minimum length) covers both stored keys and
keys submitted for a connectivity test.
"""

import logging
from typing import Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pbl_toolkit.core.config import get_settings
from pbl_toolkit.core.crypto import decrypt_secret, encrypt_secret, is_encrypted_format
from pbl_toolkit.core.exceptions import ValidationFailed
from pbl_toolkit.db.models import Faculty, SystemSetting

logger = logging.getLogger(__name__)

SYSTEM_OPENAI_KEY = "openai_api_key"


def validate_api_key_shape(value: str) -> str:
    settings = get_settings()
    value = (value or "").strip()
    problems = []
    if len(value) < settings.api_key_min_length:
        problems.append(f"API key must be at least {settings.api_key_min_length} characters")
    if not value.startswith(settings.api_key_prefix):
        problems.append(f"API key must start with '{settings.api_key_prefix}'")
    if problems:
        raise ValidationFailed(
            "Invalid API key",
            errors=[{"field": "apiKey", "message": problem} for problem in problems],
        )
    return value


# ─── Personal Keys ────────────────────────────────────────────────────────────

def has_personal_key(faculty: Faculty) -> bool:
    return is_encrypted_format(faculty.openai_api_key or "")


async def store_personal_key(db: AsyncSession, faculty: Faculty, api_key: str) -> None:
    faculty.openai_api_key = encrypt_secret(validate_api_key_shape(api_key))
    await db.flush()
    logger.info(f"OpenAI API key stored for faculty {faculty.id}")


async def clear_personal_key(db: AsyncSession, faculty: Faculty) -> None:
    faculty.openai_api_key = None
    await db.flush()
    logger.info(f"OpenAI API key removed for faculty {faculty.id}")


# ─── System Default Key ───────────────────────────────────────────────────────

async def get_system_key_setting(db: AsyncSession) -> Optional[SystemSetting]:
    result = await db.execute(
        select(SystemSetting).where(SystemSetting.setting_key == SYSTEM_OPENAI_KEY)
    )
    return result.scalar_one_or_none()


def has_system_key(setting: Optional[SystemSetting]) -> bool:
    return bool(setting and setting.is_encrypted and is_encrypted_format(setting.setting_value or ""))


async def set_system_key(db: AsyncSession, api_key: str, actor: Faculty) -> SystemSetting:
    stored = encrypt_secret(validate_api_key_shape(api_key))
    setting = await get_system_key_setting(db)
    if setting is None:
        setting = SystemSetting(
            setting_key=SYSTEM_OPENAI_KEY,
            category="openai",
            description="Default OpenAI API key used when a faculty member has none",
        )
        db.add(setting)
    setting.setting_value = stored
    setting.is_encrypted = True
    setting.updated_by = actor.id
    await db.flush()

    logger.info(f"System OpenAI API key updated by admin {actor.id}")
    return setting


async def clear_system_key(db: AsyncSession, actor: Faculty) -> None:
    setting = await get_system_key_setting(db)
    if setting is None:
        return
    setting.setting_value = None
    setting.updated_by = actor.id
    await db.flush()
    logger.info(f"System OpenAI API key cleared by admin {actor.id}")


# ─── Resolution ───────────────────────────────────────────────────────────────

async def resolve_openai_key(db: AsyncSession, faculty: Faculty) -> Tuple[str, Optional[str]]:
    """
    Returns (plaintext, source) where source is "personal", "system" or None.

    A stored value that fails to decrypt counts as absent, so a corrupted
    personal key falls through to the system default.
    """
    if faculty.openai_api_key:
        plaintext = decrypt_secret(faculty.openai_api_key)
        if plaintext:
            return plaintext, "personal"

    setting = await get_system_key_setting(db)
    if setting is not None and setting.setting_value and setting.is_encrypted:
        plaintext = decrypt_secret(setting.setting_value)
        if plaintext:
            return plaintext, "system"

    return "", None
