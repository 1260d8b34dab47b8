"""Checkout settings, read once from the environment."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlencode

DEFAULT_SESSION_PATH = Path.home() / ".config" / "storefront-checkout" / "session.enc"
DEFAULT_DEBUG_DIR = Path.home() / ".config" / "storefront-checkout" / "debug"

PAYPAL_SDK_BASE_URL = "https://www.paypal.com/sdk/js"


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    try:
        return float(raw) if raw.strip() else default
    except ValueError:
        return default


@dataclass(frozen=True)
class CheckoutSettings:
    """Everything the checkout flow needs to talk to the storefront backend."""
    api_url: str = "http://localhost:5000/api"
    api_token: str = ""
    site_url: str = "http://localhost:4321"
    http_timeout: float = 15.0
    paypal_client_id: str = ""
    paypal_currency: str = "USD"
    paypal_environment: str = "sandbox"
    sdk_timeout: float = 10.0
    sdk_poll_interval: float = 0.25
    empty_cart_grace: float = 1.0
    session_path: Path | None = field(default=None)
    debug_dir: Path = DEFAULT_DEBUG_DIR

    @classmethod
    def from_env(cls) -> "CheckoutSettings":
        session_raw = os.environ.get("CHECKOUT_SESSION_PATH", "").strip()
        return cls(
            api_url=os.environ.get("STOREFRONT_API_URL", "http://localhost:5000/api").rstrip("/"),
            api_token=os.environ.get("STOREFRONT_API_TOKEN", "").strip(),
            site_url=os.environ.get("STOREFRONT_SITE_URL", "http://localhost:4321").rstrip("/"),
            http_timeout=_float_env("STOREFRONT_HTTP_TIMEOUT", 15.0),
            paypal_client_id=os.environ.get("PAYPAL_CLIENT_ID", "").strip(),
            paypal_currency=os.environ.get("PAYPAL_CURRENCY", "USD").strip() or "USD",
            paypal_environment=os.environ.get("PAYPAL_ENVIRONMENT", "sandbox").strip() or "sandbox",
            sdk_timeout=_float_env("CHECKOUT_SDK_TIMEOUT", 10.0),
            empty_cart_grace=_float_env("CHECKOUT_EMPTY_CART_GRACE", 1.0),
            session_path=Path(session_raw).expanduser() if session_raw else DEFAULT_SESSION_PATH,
            debug_dir=Path(os.environ.get("CHECKOUT_DEBUG_DIR", str(DEFAULT_DEBUG_DIR))).expanduser(),
        )

    @property
    def authenticated(self) -> bool:
        return bool(self.api_token)

    @property
    def paypal_configured(self) -> bool:
        return bool(self.paypal_client_id)

    def sdk_url(self, client_id: str | None = None) -> str:
        """Script URL for the buttons SDK. Empty when no client ID is known."""
        client_id = client_id or self.paypal_client_id
        if not client_id:
            return ""
        query = urlencode({"client-id": client_id, "currency": self.paypal_currency})
        return f"{PAYPAL_SDK_BASE_URL}?{query}"
