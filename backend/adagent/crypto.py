"""
At-rest encryption for Meta access tokens.

Uses Fernet from the `cryptography` package, keyed by ENCRYPTION_KEY.
Without a key (development only) tokens are stored as-is.
"""

import logging
from functools import lru_cache
from cryptography.fernet import Fernet, InvalidToken
from adagent.config import get_settings

logger = logging.getLogger(__name__)


@lru_cache
def _cipher_for(key: str) -> Fernet:
    try:
        return Fernet(key.encode())
    except (ValueError, TypeError) as exc:
        raise RuntimeError(f"Invalid ENCRYPTION_KEY: {exc}") from exc


def _get_cipher() -> Fernet | None:
    settings = get_settings()
    if settings.encryption_key:
        return _cipher_for(settings.encryption_key)
    if settings.is_production:
        raise RuntimeError("ENCRYPTION_KEY must be set in production.")
    logger.debug("ENCRYPTION_KEY not set — storing Meta tokens unencrypted (development).")
    return None


def encrypt_token(token: str | None) -> str | None:
    if token is None:
        return None
    cipher = _get_cipher()
    if cipher is None:
        return token
    return cipher.encrypt(token.encode()).decode()


def decrypt_token(stored: str | None) -> str | None:
    """Decrypt a stored token. Rows written before a key was configured come back unchanged."""
    if stored is None:
        return None
    cipher = _get_cipher()
    if cipher is None:
        return stored
    try:
        return cipher.decrypt(stored.encode()).decode()
    except InvalidToken:
        logger.warning("Stored Meta token is not Fernet ciphertext — using it as-is.")
        return stored
