"""Cifrado local (Fernet) de los valores guardados en SQLite."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)

SECRET_KEY_ENV = "DOSEMATE_SECRET_KEY"


def load_or_create_key(key_path: Path) -> bytes:
    """Return the Fernet key for local storage.

    The ``DOSEMATE_SECRET_KEY`` environment variable wins; otherwise the key is
    read from ``key_path``, generated and written there on first use.

    Args:
        key_path: File holding the url-safe base64 key.

    Returns:
        The key bytes.
    """
    env_key = os.environ.get(SECRET_KEY_ENV)
    if env_key:
        return env_key.encode("utf-8")
    if key_path.exists():
        return key_path.read_bytes().strip()

    key = Fernet.generate_key()
    key_path.parent.mkdir(parents=True, exist_ok=True)
    key_path.write_bytes(key)
    try:
        key_path.chmod(0o600)
    except OSError:
        logger.warning("Could not restrict permissions on %s", key_path)
    logger.info("Generated new storage key at %s", key_path)
    return key


class ValueCipher:
    """Encrypt/decrypt text values with a Fernet key."""

    def __init__(self, key: bytes) -> None:
        """Create a cipher.

        Args:
            key: Fernet key (32 url-safe base64-encoded bytes).

        Raises:
            ValueError: If the key is malformed.
        """
        self._fernet = Fernet(key)

    def encrypt(self, text: str) -> str:
        return self._fernet.encrypt(text.encode("utf-8")).decode("utf-8")

    def decrypt(self, token: str) -> str:
        """Decrypt a token; values stored before encryption are returned as-is."""
        try:
            return self._fernet.decrypt(token.encode("utf-8")).decode("utf-8")
        except InvalidToken:
            logger.warning("Stored value is not a valid token; reading it as plain text")
            return token
