"""Durable session storage for values that must survive a page reset."""
from .crypto import SessionCrypto
from .store import PENDING_ORDER_KEY, SessionStore

__all__ = ["PENDING_ORDER_KEY", "SessionCrypto", "SessionStore"]
