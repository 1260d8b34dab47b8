"""Shared test fixtures."""
import asyncio
from decimal import Decimal

import pytest

from storefront_checkout.actions.checkout import CheckoutController
from storefront_checkout.api.base import StorefrontAPI
from storefront_checkout.cart import CartContext
from storefront_checkout.config import CheckoutSettings
from storefront_checkout.models import (
    CartItem,
    CartSnapshot,
    CheckoutSession,
    PaymentConfig,
    ProviderOrder,
    ShippingAddress,
)
from storefront_checkout.page import PageContext
from storefront_checkout.session import SessionStore
from storefront_checkout.widget import SdkLoader, SdkRegistry, ToolDrivenButtons


class FakeStorefrontAPI(StorefrontAPI):
    """In-memory backend. Records every call; ``failures`` maps a method name to the error it raises."""

    def __init__(self, cart: CartSnapshot | None = None, config: PaymentConfig | None = None):
        self.cart = cart if cart is not None else CartSnapshot()
        self.config = config or PaymentConfig()
        self.calls: list[tuple] = []
        self.failures: dict[str, Exception] = {}
        self.checkout_url = "https://checkout.stripe.com/c/pay/cs_test_a1b2c3d4e5"
        self.approval_url = "https://www.sandbox.paypal.com/checkoutnow?token=PAYPAL-1"
        # When set, create_order blocks until ``release`` is set
        self.gate_orders = False
        self.order_started = asyncio.Event()
        self.release = asyncio.Event()
        self._order_count = 0

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        if name in self.failures:
            raise self.failures[name]

    def call_names(self) -> list[str]:
        return [c[0] for c in self.calls]

    async def create_order(self, shipping_address: ShippingAddress) -> str:
        self._record("create_order", shipping_address.to_api())
        if self.gate_orders:
            self.order_started.set()
            await self.release.wait()
        self._order_count += 1
        return f"order-{self._order_count}"

    async def get_order(self, order_id: str) -> dict:
        self._record("get_order", order_id)
        return {"_id": order_id, "status": "paid", "totalAmount": 65.0}

    async def create_checkout_session(self, order_id: str) -> CheckoutSession:
        self._record("create_checkout_session", order_id)
        return CheckoutSession(url=self.checkout_url, session_id="cs_test_a1b2c3d4e5")

    async def create_paypal_order(self, order_id: str) -> ProviderOrder:
        self._record("create_paypal_order", order_id)
        return ProviderOrder(order_id="PAYPAL-1", approval_url=self.approval_url)

    async def capture_paypal_order(self, provider_order_id: str, order_id: str) -> dict:
        self._record("capture_paypal_order", provider_order_id, order_id)
        return {"status": "COMPLETED"}

    async def get_cart(self) -> CartSnapshot:
        self._record("get_cart")
        return self.cart

    async def clear_cart(self) -> None:
        self._record("clear_cart")
        self.cart = CartSnapshot()

    async def get_payment_config(self) -> PaymentConfig:
        self._record("get_payment_config")
        return self.config


async def tool_driven_sdk() -> ToolDrivenButtons:
    """Script loader that finishes immediately."""
    return ToolDrivenButtons(client_id="test-client")


@pytest.fixture
def settings(tmp_path):
    return CheckoutSettings(
        api_url="http://storefront.test/api",
        api_token="test-token",
        paypal_client_id="test-client",
        sdk_timeout=0.2,
        sdk_poll_interval=0.01,
        empty_cart_grace=0.05,
        session_path=tmp_path / "session.enc",
        debug_dir=tmp_path / "debug",
    )


@pytest.fixture
def sample_address():
    return ShippingAddress(
        first_name="Jane",
        last_name="Doe",
        street="123 Main Street",
        city="San Francisco",
        state="CA",
        zip_code="94102",
        phone="415-555-0100",
    )


@pytest.fixture
def sample_cart():
    return CartSnapshot(
        items=[
            CartItem(product_id="p1", name="Linen Shirt", quantity=2, unit_price=Decimal("25.00"), size="M"),
        ],
        total_amount=Decimal("50.00"),
    )


@pytest.fixture
def fake_api(sample_cart):
    return FakeStorefrontAPI(cart=sample_cart)


@pytest.fixture
def session(tmp_path):
    return SessionStore(path=tmp_path / "session.enc")


@pytest.fixture
def make_controller(settings, session):
    """Build a checkout controller around a fake backend."""
    def build(api, script=tool_driven_sdk, authenticated=True, registry=None):
        return CheckoutController(
            settings=settings,
            api=api,
            session=session,
            cart=CartContext(api),
            page=PageContext(authenticated=authenticated),
            sdk_loader=SdkLoader(
                registry or SdkRegistry(),
                script,
                timeout=settings.sdk_timeout,
                poll_interval=settings.sdk_poll_interval,
            ),
        )
    return build
