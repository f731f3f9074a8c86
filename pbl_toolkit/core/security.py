"""
core/security.py

Password and token primitives for PBL Toolkit authentication.

1. bcrypt for password hashing. Every hash carries its own random salt, so
   two faculty members with the same password get different hashes.

2. Signed tokens (HS256 JWT) for the stateless session strategy. The claim
   set mirrors what the frontend needs without a lookup:
   facultyId, email, role, plus the standard sub/iat/exp.

3. Opaque session ids for the server-side strategy: 32 random bytes,
   URL-safe, meaningless outside the sessions table.
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError
from passlib.context import CryptContext

from pbl_toolkit.core.config import get_settings

logger = logging.getLogger(__name__)

# ─── Password Hashing ─────────────────────────────────────────────────────────

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=get_settings().bcrypt_rounds,
)


def get_password_hash(password: str) -> str:
    """
    Hashes a plaintext password using bcrypt with a random salt.

    Returns:
        A bcrypt hash string (algorithm, cost factor and salt included).
    """
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """
    Compares a plaintext password against a stored bcrypt hash.

    Accounts created before passwords were required have no hash; those,
    and hashes passlib cannot parse, verify as False instead of raising.
    """
    if not hashed_password:
        pwd_context.dummy_verify()
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        logger.warning("Stored password hash could not be parsed.")
        return False


def burn_hash_time() -> None:
    """Spend one verify's worth of time so unknown emails aren't faster to reject."""
    pwd_context.dummy_verify()


# ─── Opaque Session Ids ───────────────────────────────────────────────────────

def generate_session_id() -> str:
    return secrets.token_urlsafe(32)


# ─── Signed Tokens ────────────────────────────────────────────────────────────

def create_signed_token(
    claims: Dict[str, Any],
    secret: str,
    ttl: timedelta,
    algorithm: str = "HS256",
) -> str:
    """
    Signs a claim set with an explicit expiry.

    `claims` must contain `facultyId`; `sub` is filled from it when absent
    because PyJWT only validates string subjects.
    """
    if "facultyId" not in claims:
        raise ValueError("Signed token claims must include facultyId")

    now = datetime.now(timezone.utc)
    payload = dict(claims)
    payload.setdefault("sub", str(claims["facultyId"]))
    payload.update({
        "iat": now,
        "exp": now + ttl,
    })

    token = jwt.encode(payload, secret, algorithm=algorithm)
    logger.debug(f"Signed token issued for faculty {claims['facultyId']} | expires: {payload['exp'].isoformat()}")
    return token


def decode_signed_token(
    token: str,
    secret: str,
    algorithm: str = "HS256",
) -> Optional[Dict[str, Any]]:
    """
    Verifies signature and expiry and returns the claims.

    Returns None on any failure so callers can answer 401 without leaking
    why the token was rejected.
    """
    try:
        return jwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            options={"require": ["exp", "iat", "sub"]},
        )
    except ExpiredSignatureError:
        logger.info("Signed token rejected: expired.")
        return None
    except InvalidTokenError as e:
        logger.warning(f"Signed token rejected: {e}")
        return None
