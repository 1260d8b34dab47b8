"""Fernet encryption for the on-disk session file."""
import json
import logging
import os
from pathlib import Path

from cryptography.fernet import Fernet

logger = logging.getLogger(__name__)

DEFAULT_KEY_PATH = Path.home() / ".config" / "storefront-checkout" / "session.key"


class SessionCrypto:
    """Encrypts a JSON-able dict with a key kept next to the session file."""

    def __init__(self, key_path: Path | None = None):
        self._key_path = key_path or DEFAULT_KEY_PATH
        self._fernet: Fernet | None = None

    def _load_or_create_key(self) -> Fernet:
        if self._fernet:
            return self._fernet
        if self._key_path.exists():
            key = self._key_path.read_bytes()
        else:
            self._key_path.parent.mkdir(parents=True, exist_ok=True)
            key = Fernet.generate_key()
            self._key_path.write_bytes(key)
            os.chmod(self._key_path, 0o600)
            logger.info("Created session key at %s", self._key_path)
        self._fernet = Fernet(key)
        return self._fernet

    def encrypt(self, data: dict) -> bytes:
        return self._load_or_create_key().encrypt(json.dumps(data).encode("utf-8"))

    def decrypt(self, token: bytes) -> dict:
        """Raises cryptography.fernet.InvalidToken on tampered data."""
        return json.loads(self._load_or_create_key().decrypt(token).decode("utf-8"))
