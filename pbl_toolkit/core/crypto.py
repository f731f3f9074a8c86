"""
core/crypto.py

At-rest encryption for third-party credentials (faculty OpenAI keys and the
system-wide default key).

Stored form: `v1:<nonce_b64>:<ciphertext_b64>:<tag_b64>`, so the value fits
in a plain text column and can be told apart from legacy plaintext.

AES-256-GCM with a fresh 12-byte nonce per call: encrypting the same key
twice never yields the same stored string, and any change to the nonce,
ciphertext or tag makes decryption fail.

Decryption fails closed. A malformed value, a wrong key or a tag mismatch
all return "" and callers treat that exactly like "no key configured".
"""

import base64
import binascii
import hashlib
import logging
import os
from functools import lru_cache

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from pbl_toolkit.core.config import get_settings

logger = logging.getLogger(__name__)

FORMAT_VERSION = "v1"
NONCE_SIZE = 12
TAG_SIZE = 16

_DEV_SECRET = "dev-key-32-chars-not-for-production-please-set-crypto-secret-env"


def _b64encode(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def _b64decode(part: str) -> bytes:
    return base64.b64decode(part.encode("ascii"), validate=True)


class SecretCipher:
    """
    AES-256-GCM wrapper bound to one key.

    The 32-byte key is the SHA-256 digest of the configured secret, so any
    secret length works and the key is derived once per instance.
    """

    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError("SecretCipher requires a non-empty secret")
        self._aesgcm = AESGCM(hashlib.sha256(secret.encode("utf-8")).digest())

    def encrypt(self, plaintext: str) -> str:
        if not plaintext:
            return ""

        nonce = os.urandom(NONCE_SIZE)
        # cryptography appends the 16-byte tag to the ciphertext
        sealed = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]

        return ":".join([
            FORMAT_VERSION,
            _b64encode(nonce),
            _b64encode(ciphertext),
            _b64encode(tag),
        ])

    def decrypt(self, stored: str) -> str:
        if not stored:
            return ""

        parts = stored.split(":")
        if len(parts) != 4 or parts[0] != FORMAT_VERSION:
            logger.error("Refusing to decrypt secret: unrecognised stored format.")
            return ""

        try:
            nonce = _b64decode(parts[1])
            ciphertext = _b64decode(parts[2])
            tag = _b64decode(parts[3])
            if len(nonce) != NONCE_SIZE or len(tag) != TAG_SIZE:
                raise ValueError("nonce or tag has the wrong size")
            plaintext = self._aesgcm.decrypt(nonce, ciphertext + tag, None)
            return plaintext.decode("utf-8")
        except (InvalidTag, ValueError, binascii.Error, UnicodeDecodeError):
            logger.error("Failed to decrypt secret; treating it as not configured.")
            return ""

    @staticmethod
    def is_encrypted_format(value: str) -> bool:
        """
        Structural probe only. Does not verify the GCM tag, so a True result
        says nothing about whether `decrypt` will succeed.
        """
        if not value:
            return False
        parts = value.split(":")
        if len(parts) != 4 or parts[0] != FORMAT_VERSION:
            return False
        try:
            for part in parts[1:]:
                if not _b64decode(part):
                    return False
        except (ValueError, binascii.Error):
            return False
        return True


@lru_cache()
def get_cipher() -> SecretCipher:
    """Process-wide cipher keyed from CRYPTO_SECRET."""
    secret = get_settings().crypto_secret
    if not secret:
        logger.warning(
            "CRYPTO_SECRET is not set; using the development encryption key. "
            "Set CRYPTO_SECRET before storing real credentials."
        )
        secret = _DEV_SECRET
    return SecretCipher(secret)


def encrypt_secret(plaintext: str) -> str:
    return get_cipher().encrypt(plaintext)


def decrypt_secret(stored: str) -> str:
    return get_cipher().decrypt(stored)


def is_encrypted_format(value: str) -> bool:
    return SecretCipher.is_encrypted_format(value)
