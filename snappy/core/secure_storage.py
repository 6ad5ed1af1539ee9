"""Obfuscated token storage with expiration and sliding sessions.

Tokens are XOR-ed with a rotating, machine-derived key and base64 encoded.
This is obfuscation, not encryption.
"""

import base64
import binascii
import json
import locale
import logging
import os
import platform
import time
from pathlib import Path
from typing import Protocol

from snappy.core.config import constants


logger = logging.getLogger(__name__)


DEFAULT_TOKEN_TTL_SECONDS = 24 * 60 * 60
DEFAULT_SESSION_EXTENSION_SECONDS = 60 * 60


class KeyValueStorage(Protocol):
    """Minimal string key/value persistence backend."""

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemoryStorage:
    """Process-local storage backend."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class FileStorage:
    """Reads/writes items to a local JSON file."""

    def __init__(self, path: Path):
        self.path = path

    def _read_all(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        return json.loads(self.path.read_text())

    def _write_all(self, items: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(items, indent=2))

    def get_item(self, key: str) -> str | None:
        return self._read_all().get(key)

    def set_item(self, key: str, value: str) -> None:
        items = self._read_all()
        items[key] = value
        self._write_all(items)

    def remove_item(self, key: str) -> None:
        items = self._read_all()
        if items.pop(key, None) is not None:
            self._write_all(items)


def _to_base36(number: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if number == 0:
        return "0"
    encoded = ""
    while number:
        number, remainder = divmod(number, 36)
        encoded = digits[remainder] + encoded
    return encoded


def generate_key() -> str:
    """Derive a pseudo-random key from a machine fingerprint."""
    fingerprint = "|".join(
        [
            platform.node(),
            platform.platform(),
            locale.getlocale()[0] or "",
            str(time.timezone),
            str(os.cpu_count() or 0),
        ]
    )

    # 32-bit rolling hash
    hash_value = 0
    for char in fingerprint:
        hash_value = ((hash_value << 5) - hash_value + ord(char)) & 0xFFFFFFFF
    if hash_value >= 2**31:
        hash_value -= 2**32
    return _to_base36(abs(hash_value))


class SecureStorage:
    """Stores access and refresh tokens obfuscated, with an expiry timestamp."""

    def __init__(self, backend: KeyValueStorage | None = None, key: str | None = None) -> None:
        self.backend = backend if backend is not None else MemoryStorage()
        self.encryption_key = key or generate_key()

    def encrypt(self, text: str) -> str:
        """XOR the text with the rotating key and base64 encode it."""
        if not text:
            return ""
        key = self.encryption_key.encode("utf-8")
        data = text.encode("utf-8")
        xored = bytes(byte ^ key[i % len(key)] for i, byte in enumerate(data))
        return base64.b64encode(xored).decode("ascii")

    def decrypt(self, encrypted: str) -> str:
        """Reverse encrypt(). Returns an empty string when the payload is corrupt."""
        if not encrypted:
            return ""
        try:
            decoded = base64.b64decode(encrypted, validate=True)
            key = self.encryption_key.encode("utf-8")
            return bytes(byte ^ key[i % len(key)] for i, byte in enumerate(decoded)).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            logger.error("Token decryption failed", extra={"error": str(e)})
            return ""

    def set_token(self, token: str | None, expires_in: float = DEFAULT_TOKEN_TTL_SECONDS) -> None:
        """Store the access token with an expiry `expires_in` seconds from now."""
        if not token:
            self.remove_token()
            return

        expiry_ms = int((time.time() + expires_in) * 1000)
        self.backend.set_item(constants.STORAGE_TOKEN_KEY, self.encrypt(token))
        self.backend.set_item(constants.STORAGE_EXPIRY_KEY, str(expiry_ms))

    def get_token(self) -> str | None:
        """Return the access token, or None once it has expired.

        An expired access token is purged but the refresh token is kept so the
        gateway can still renew the session.
        """
        expiry = self.get_token_expiry()
        if expiry is not None and time.time() * 1000 > expiry:
            logger.info("Stored token expired, removing")
            self.backend.remove_item(constants.STORAGE_TOKEN_KEY)
            self.backend.remove_item(constants.STORAGE_EXPIRY_KEY)
            return None

        encrypted = self.backend.get_item(constants.STORAGE_TOKEN_KEY)
        if not encrypted:
            return None
        return self.decrypt(encrypted) or None

    def set_refresh_token(self, token: str | None) -> None:
        if not token:
            self.backend.remove_item(constants.STORAGE_REFRESH_KEY)
            return
        self.backend.set_item(constants.STORAGE_REFRESH_KEY, self.encrypt(token))

    def get_refresh_token(self) -> str | None:
        encrypted = self.backend.get_item(constants.STORAGE_REFRESH_KEY)
        if not encrypted:
            return None
        return self.decrypt(encrypted) or None

    def remove_token(self) -> None:
        """Remove access token, refresh token and expiry."""
        self.backend.remove_item(constants.STORAGE_TOKEN_KEY)
        self.backend.remove_item(constants.STORAGE_REFRESH_KEY)
        self.backend.remove_item(constants.STORAGE_EXPIRY_KEY)

    def has_valid_token(self) -> bool:
        expiry = self.get_token_expiry()
        if expiry is None:
            return False
        return time.time() * 1000 <= expiry

    def get_token_expiry(self) -> int | None:
        """Expiry as epoch milliseconds, or None when no token is stored."""
        expiry = self.backend.get_item(constants.STORAGE_EXPIRY_KEY)
        if not expiry:
            return None
        try:
            return int(expiry)
        except ValueError:
            logger.warning("Ignoring malformed token expiry", extra={"expiry": expiry})
            return None

    def extend_session(self, additional: float = DEFAULT_SESSION_EXTENSION_SECONDS) -> None:
        """Move the expiry to `additional` seconds from now if a session exists."""
        if self.get_token_expiry() is None:
            return
        new_expiry_ms = int((time.time() + additional) * 1000)
        self.backend.set_item(constants.STORAGE_EXPIRY_KEY, str(new_expiry_ms))
