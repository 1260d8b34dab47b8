"""Abstract storefront backend — what the checkout flow needs from the REST API."""
from abc import ABC, abstractmethod
from typing import Any

from ..models import CartSnapshot, CheckoutSession, PaymentConfig, ProviderOrder, ShippingAddress


class StorefrontAPI(ABC):
    """Checkout-facing slice of the storefront REST backend."""

    @abstractmethod
    async def create_order(self, shipping_address: ShippingAddress) -> str:
        """Create an order from the server-side cart. Returns the order ID."""
        ...

    @abstractmethod
    async def get_order(self, order_id: str) -> dict[str, Any]:
        ...

    @abstractmethod
    async def create_checkout_session(self, order_id: str) -> CheckoutSession:
        """Create a hosted card checkout session for an existing order."""
        ...

    @abstractmethod
    async def create_paypal_order(self, order_id: str) -> ProviderOrder:
        """Mint a provider order reference for an existing order."""
        ...

    @abstractmethod
    async def capture_paypal_order(self, provider_order_id: str, order_id: str) -> dict[str, Any]:
        ...

    @abstractmethod
    async def get_cart(self) -> CartSnapshot:
        ...

    @abstractmethod
    async def clear_cart(self) -> None:
        ...

    @abstractmethod
    async def get_payment_config(self) -> PaymentConfig:
        ...

    async def close(self) -> None:
        """Release transport resources."""
