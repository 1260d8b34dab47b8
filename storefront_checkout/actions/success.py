"""Success and cancel pages — where the payment providers send the user back."""
import logging
from typing import Any

from ..api.base import StorefrontAPI
from ..cart import CartContext
from ..errors import CheckoutError
from ..models import PaymentSelection
from ..page import CANCEL_ROUTE, CART_ROUTE, HOME_ROUTE, PageContext
from ..session import PENDING_ORDER_KEY, SessionStore

logger = logging.getLogger(__name__)


class CheckoutSuccess:
    """Resolves a return from either payment path into a confirmed order."""

    def __init__(self, api: StorefrontAPI, session: SessionStore, cart: CartContext, page: PageContext):
        self._api = api
        self._session = session
        self._cart = cart
        self._page = page

    async def resolve(self, params: dict[str, str]) -> dict[str, Any]:
        """
        Handle the success page query.

        The order ID comes from the query, or from the session when the
        provider's return URL dropped it. Buttons payments are captured
        before the order is read back.
        """
        order_id = params.get("order_id") or params.get("orderId") or self._session.get(PENDING_ORDER_KEY)
        if not order_id:
            logger.warning("Success page reached without an order ID")
            self._page.navigate(HOME_ROUTE)
            return {"status": "no_order", "location": self._page.location}

        method = params.get("payment_method", PaymentSelection.CARD.provider_tag)
        provider_order_id = params.get("paypal_order_id") or params.get("token")
        captured = None
        if method == PaymentSelection.BUTTONS.provider_tag and provider_order_id:
            try:
                captured = await self._api.capture_paypal_order(provider_order_id, order_id)
            except CheckoutError as e:
                logger.error("Capture of %s for order %s failed: %s", provider_order_id, order_id, e)
                self._page.toast("error", "We could not confirm your PayPal payment. Please contact support.")
                return {"status": "capture_failed", "order_id": order_id, "error": e.user_message}
            logger.info("Captured provider order %s for order %s", provider_order_id, order_id)

        try:
            order = await self._api.get_order(order_id)
        except CheckoutError as e:
            logger.error("Loading order %s failed: %s", order_id, e)
            order = {}

        if not self._cart.is_empty or not self._cart.hydrated:
            try:
                await self._cart.clear()
            except CheckoutError as e:
                logger.error("Clearing cart on success page failed: %s", e)
        self._session.remove(PENDING_ORDER_KEY)

        return {
            "status": "confirmed",
            "order_id": order_id,
            "payment_method": method,
            "order_status": order.get("status") or order.get("paymentStatus"),
            "total": order.get("totalAmount") or order.get("total"),
            "captured": bool(captured),
        }

    async def cancel(self) -> dict[str, Any]:
        """The user backed out on the provider's page. The cart and pending order are kept."""
        self._page.navigate(CANCEL_ROUTE)
        self._page.toast("info", "Payment was cancelled. Your cart has been saved.")
        return {
            "status": "cancelled",
            "pending_order_id": self._session.get(PENDING_ORDER_KEY),
            "return_to": CART_ROUTE,
        }
