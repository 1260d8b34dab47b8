"""Session store — the checkout's cross-navigation relay.

Holds the handful of values that must outlive the controller that wrote them,
most importantly the pending order ID written right before the page leaves
for a hosted payment page. With a path the values are persisted encrypted, so
a fresh process (or a fresh controller) can read them back.
"""
import logging
from pathlib import Path

from cryptography.fernet import InvalidToken

from .crypto import SessionCrypto

logger = logging.getLogger(__name__)

PENDING_ORDER_KEY = "pendingOrderId"


class SessionStore:
    """String key/value store, in-memory or backed by an encrypted file."""

    def __init__(self, path: Path | None = None, crypto: SessionCrypto | None = None):
        self._path = path
        self._crypto = crypto or (SessionCrypto(key_path=path.with_suffix(".key")) if path else None)
        self._values: dict[str, str] | None = None

    @property
    def persistent(self) -> bool:
        return self._path is not None

    def _load(self) -> dict[str, str]:
        if self._values is not None:
            return self._values
        self._values = {}
        if self._path and self._path.exists():
            try:
                self._values = self._crypto.decrypt(self._path.read_bytes())
            except (InvalidToken, ValueError) as e:
                logger.warning("Discarding unreadable session file %s: %s", self._path, e)
        return self._values

    def _flush(self) -> None:
        if not self._path:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_bytes(self._crypto.encrypt(self._values or {}))

    def get(self, key: str) -> str | None:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        self._load()[key] = value
        self._flush()
        logger.debug("Session %s set", key)

    def remove(self, key: str) -> None:
        if self._load().pop(key, None) is not None:
            self._flush()

    def clear(self) -> None:
        self._values = {}
        self._flush()
