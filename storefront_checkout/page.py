"""Where the checkout page is and what it has told the user."""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from urllib.parse import urlencode

logger = logging.getLogger(__name__)

CHECKOUT_ROUTE = "/checkout"
CART_ROUTE = "/cart"
LOGIN_ROUTE = "/login"
HOME_ROUTE = "/"
SUCCESS_ROUTE = "/checkout/success"
CANCEL_ROUTE = "/checkout/cancel"


@dataclass
class Toast:
    """Non-blocking user notice."""
    kind: str  # success, error, info
    message: str
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class PageContext:
    """Navigation, toasts, and mount/auth flags for a single checkout page."""

    def __init__(self, authenticated: bool = False):
        self.authenticated = authenticated
        self.mounted = False
        self.location = CHECKOUT_ROUTE
        self.external_url: str | None = None
        self.history: list[str] = []
        self._toasts: list[Toast] = []

    @property
    def left_app(self) -> bool:
        """True after a full-page redirect to an external host."""
        return self.external_url is not None

    def navigate(self, route: str, params: dict[str, str] | None = None) -> str:
        """In-app navigation. Returns the resulting location."""
        target = f"{route}?{urlencode(params)}" if params else route
        self.history.append(self.location)
        self.location = target
        if route != CHECKOUT_ROUTE:
            # Leaving the checkout route unmounts the checkout page
            self.mounted = False
        logger.info("Navigate -> %s", target)
        return target

    def redirect(self, url: str) -> None:
        """Full-page redirect away from the app. Nothing on this page runs afterwards."""
        self.history.append(self.location)
        self.external_url = url
        self.location = url
        self.mounted = False
        logger.info("Redirect -> %s", url)

    def toast(self, kind: str, message: str) -> Toast:
        notice = Toast(kind=kind, message=message)
        self._toasts.append(notice)
        log = logger.warning if kind == "error" else logger.info
        log("Toast [%s]: %s", kind, message)
        return notice

    def drain_toasts(self) -> list[Toast]:
        toasts, self._toasts = self._toasts, []
        return toasts

    @property
    def toasts(self) -> list[Toast]:
        return list(self._toasts)
