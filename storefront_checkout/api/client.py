"""httpx client for the storefront REST backend."""
import logging
from typing import Any

import httpx

from ..config import CheckoutSettings
from ..errors import NetworkError, SchemaError, SessionCreationError, ValidationError
from ..models import CartSnapshot, CheckoutSession, PaymentConfig, ProviderOrder, ShippingAddress
from .base import StorefrontAPI

logger = logging.getLogger(__name__)

# Endpoint paths, relative to the API base URL
ORDERS_PATH = "/orders"
CHECKOUT_SESSION_PATH = "/payments/checkout-session"
PAYPAL_ORDER_PATH = "/payments/paypal-order"
PAYPAL_CAPTURE_PATH = "/payments/paypal/capture-order"
PAYMENT_CONFIG_PATH = "/payments/config"
CART_PATH = "/cart"
CART_CLEAR_PATH = "/cart/clear"


def _layers(payload: Any) -> list[dict]:
    """The payload plus each nested ``data`` wrapper, outermost first."""
    layers = []
    current = payload
    while isinstance(current, dict):
        layers.append(current)
        current = current.get("data")
    return layers


def pluck(payload: Any, *keys: str) -> Any:
    """First non-empty value for any of ``keys`` at the top level or under ``data``."""
    for layer in _layers(payload):
        for key in keys:
            value = layer.get(key)
            if value:
                return value
    return None


def innermost(payload: Any) -> dict:
    """Deepest ``data`` wrapper that is still a dict."""
    layers = _layers(payload)
    return layers[-1] if layers else {}


def _server_message(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        return pluck(body, "message", "error", "detail")
    return None


class HttpStorefrontClient(StorefrontAPI):
    """Talks to the storefront backend with a bearer token."""

    def __init__(
        self,
        settings: CheckoutSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        headers = {"Accept": "application/json"}
        if settings.api_token:
            headers["Authorization"] = f"Bearer {settings.api_token}"
        self._client = httpx.AsyncClient(
            base_url=settings.api_url,
            headers=headers,
            timeout=settings.http_timeout,
            transport=transport,
        )

    async def _request(
        self,
        method: str,
        path: str,
        json: dict | None = None,
        rejects_are_validation: bool = False,
    ) -> Any:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.HTTPError as e:
            logger.error("%s %s failed: %s", method, path, e)
            raise NetworkError() from e

        if response.is_error:
            message = _server_message(response)
            logger.warning("%s %s -> %d (%s)", method, path, response.status_code, message)
            if rejects_are_validation and response.status_code in (400, 422):
                raise ValidationError(message)
            raise NetworkError(message, status_code=response.status_code)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            logger.error("%s %s returned non-JSON body", method, path)
            raise SchemaError() from e

    async def create_order(self, shipping_address: ShippingAddress) -> str:
        payload = await self._request(
            "POST",
            ORDERS_PATH,
            json={"shippingAddress": shipping_address.to_api()},
            rejects_are_validation=True,
        )
        order_id = pluck(payload, "_id", "id")
        if not order_id:
            logger.error("Order response without an ID (keys: %s)", sorted(innermost(payload)))
            raise SchemaError("The order was not created. Please try again.")
        logger.info("Created order %s", order_id)
        return str(order_id)

    async def get_order(self, order_id: str) -> dict[str, Any]:
        payload = await self._request("GET", f"{ORDERS_PATH}/{order_id}")
        return innermost(payload)

    async def create_checkout_session(self, order_id: str) -> CheckoutSession:
        payload = await self._request("POST", CHECKOUT_SESSION_PATH, json={"orderId": order_id})
        url = pluck(payload, "url")
        if not url:
            logger.error("Checkout session without URL for order %s (keys: %s)", order_id, sorted(innermost(payload)))
            raise SessionCreationError()
        return CheckoutSession(url=url, session_id=pluck(payload, "session_id", "sessionId", "id"))

    async def create_paypal_order(self, order_id: str) -> ProviderOrder:
        payload = await self._request("POST", PAYPAL_ORDER_PATH, json={"orderId": order_id})
        provider_id = pluck(payload, "orderId", "paypal_order_id", "paypalOrderId")
        if not provider_id:
            logger.error("Provider order response without ID for order %s (keys: %s)", order_id, sorted(innermost(payload)))
            raise SchemaError("Could not start the PayPal payment. Please try again.")
        return ProviderOrder(order_id=str(provider_id), approval_url=pluck(payload, "approval_url", "approvalUrl"))

    async def capture_paypal_order(self, provider_order_id: str, order_id: str) -> dict[str, Any]:
        payload = await self._request(
            "POST",
            PAYPAL_CAPTURE_PATH,
            json={"paypalOrderId": provider_order_id, "orderId": order_id},
        )
        return innermost(payload)

    async def get_cart(self) -> CartSnapshot:
        payload = await self._request("GET", CART_PATH)
        return CartSnapshot.from_api(innermost(payload))

    async def clear_cart(self) -> None:
        await self._request("DELETE", CART_CLEAR_PATH)
        logger.info("Cart cleared")

    async def get_payment_config(self) -> PaymentConfig:
        payload = await self._request("GET", PAYMENT_CONFIG_PATH)
        return PaymentConfig.from_api(innermost(payload))

    async def close(self) -> None:
        await self._client.aclose()
