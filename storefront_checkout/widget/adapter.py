"""
Buttons widget adapter — bridges the third-party buttons widget into the
order lifecycle.

    SDK_NOT_LOADED -> SDK_LOADED -> INITIALIZING -> READY
    READY -> PROCESSING -> SUCCEEDED | FAILED | CANCELLED

The widget drives the transitions out of READY through the callbacks it
invokes; the adapter never calls them itself. FAILED and CANCELLED accept a
new click or a re-render, SUCCEEDED is final.
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from ..api.base import StorefrontAPI
from ..cart import CartContext
from ..errors import CheckoutError, ProviderCancelled, ProviderError, SchemaError, ValidationError
from ..models import ApproveData, PaymentSelection, ProviderOrder, ShippingAddress
from ..page import SUCCESS_ROUTE, PageContext
from ..session import PENDING_ORDER_KEY, SessionStore
from .base import ButtonCallbacks, ButtonContainer, ButtonsSDK
from .loader import SdkLoader

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "Payment was interrupted. Please try again."


class WidgetState(str, Enum):
    SDK_NOT_LOADED = "sdk_not_loaded"
    SDK_LOADED = "sdk_loaded"
    INITIALIZING = "initializing"
    READY = "ready"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


_RETRYABLE = {WidgetState.INITIALIZING, WidgetState.PROCESSING, WidgetState.SDK_LOADED}

_TRANSITIONS: dict[WidgetState, set[WidgetState]] = {
    WidgetState.SDK_NOT_LOADED: {WidgetState.SDK_LOADED},
    WidgetState.SDK_LOADED: {WidgetState.INITIALIZING},
    WidgetState.INITIALIZING: {WidgetState.READY, WidgetState.SDK_LOADED},
    WidgetState.READY: {WidgetState.INITIALIZING, WidgetState.PROCESSING, WidgetState.SDK_LOADED, WidgetState.FAILED},
    WidgetState.PROCESSING: {WidgetState.SUCCEEDED, WidgetState.FAILED, WidgetState.CANCELLED},
    WidgetState.FAILED: _RETRYABLE,
    WidgetState.CANCELLED: _RETRYABLE,
    WidgetState.SUCCEEDED: set(),
}


class InvalidTransition(RuntimeError):
    pass


@dataclass(frozen=True)
class WidgetConditions:
    """Everything besides the SDK itself that must hold before buttons render."""
    on_payment_step: bool
    buttons_selected: bool
    mounted: bool
    authenticated: bool
    cart_has_items: bool

    @property
    def all_hold(self) -> bool:
        return (
            self.on_payment_step
            and self.buttons_selected
            and self.mounted
            and self.authenticated
            and self.cart_has_items
        )


class PaymentWidgetAdapter:
    """Owns the buttons widget lifecycle for one checkout page."""

    def __init__(
        self,
        loader: SdkLoader,
        container: ButtonContainer,
        api: StorefrontAPI,
        session: SessionStore,
        cart: CartContext,
        page: PageContext,
        address_source: Callable[[], ShippingAddress],
    ):
        self._loader = loader
        self._container = container
        self._api = api
        self._session = session
        self._cart = cart
        self._page = page
        self._address_source = address_source
        self._sdk: ButtonsSDK | None = None
        self._cart_cleared = False
        self.state = WidgetState.SDK_NOT_LOADED
        self.reload_available = False
        self.provider_order: ProviderOrder | None = None
        self.last_error: str | None = None

    @property
    def processing(self) -> bool:
        return self.state is WidgetState.PROCESSING

    @property
    def container(self) -> ButtonContainer:
        return self._container

    def _transition(self, new_state: WidgetState) -> None:
        if new_state is self.state:
            return
        if new_state not in _TRANSITIONS[self.state]:
            raise InvalidTransition(f"{self.state.value} -> {new_state.value}")
        logger.debug("Widget %s -> %s", self.state.value, new_state.value)
        self.state = new_state

    # -- lifecycle ---------------------------------------------------------

    async def load_sdk(self) -> bool:
        """Try to load the SDK. On timeout, stay unloaded and offer a reload."""
        if self.state is not WidgetState.SDK_NOT_LOADED:
            return True
        sdk = await self._loader.load()
        if sdk is None:
            self.reload_available = True
            return False
        self._sdk = sdk
        self.reload_available = False
        self._transition(WidgetState.SDK_LOADED)
        return True

    async def evaluate(self, conditions: WidgetConditions) -> None:
        """Re-check whether buttons should be on the page. Safe to call repeatedly."""
        if self.state in (WidgetState.SDK_NOT_LOADED, WidgetState.INITIALIZING,
                          WidgetState.PROCESSING, WidgetState.SUCCEEDED):
            return

        if not conditions.all_hold:
            if self.state is not WidgetState.SDK_LOADED:
                self._container.clear()
                self._transition(WidgetState.SDK_LOADED)
            return

        await self._render()

    async def _render(self) -> None:
        self._container.clear()
        self._transition(WidgetState.INITIALIZING)
        callbacks = ButtonCallbacks(
            create_order=self._create_order,
            on_approve=self._on_approve,
            on_error=self._on_error,
            on_cancel=self._on_cancel,
            on_init=self._on_init,
        )
        try:
            await self._sdk.render_buttons(self._container, callbacks)
        except Exception as e:
            logger.error("Rendering buttons failed: %s", e)
            self._container.clear()
            self._transition(WidgetState.SDK_LOADED)
            self._page.toast("error", "Could not display the PayPal buttons. Please reload.")

    def unmount(self) -> None:
        self._container.clear()
        if self.state in (WidgetState.READY, WidgetState.FAILED, WidgetState.CANCELLED):
            self._transition(WidgetState.SDK_LOADED)

    # -- widget callbacks --------------------------------------------------

    async def _on_init(self) -> None:
        if self.state is WidgetState.INITIALIZING:
            self._transition(WidgetState.READY)
            logger.info("Buttons ready")

    async def _create_order(self) -> str:
        self._transition(WidgetState.PROCESSING)
        self.provider_order = None
        self.last_error = None

        address = self._address_source()
        missing = address.missing_fields()
        if missing:
            raise ValidationError(missing=missing)

        try:
            order_id = await self._api.create_order(address)
            self._session.set(PENDING_ORDER_KEY, order_id)
            self.provider_order = await self._api.create_paypal_order(order_id)
        except asyncio.CancelledError:
            # The widget never hears about a cancelled call; leave PROCESSING here
            logger.warning("Order creation interrupted")
            self._transition(WidgetState.FAILED)
            self.last_error = INTERRUPTED_MESSAGE
            self._page.toast("error", INTERRUPTED_MESSAGE)
            raise
        logger.info("Provider order %s minted for order %s", self.provider_order.order_id, order_id)
        return self.provider_order.order_id

    async def _on_approve(self, data: ApproveData) -> None:
        if self.state is WidgetState.SUCCEEDED:
            logger.warning("Approve fired again for provider order %s", data.order_id)
        elif self.state is not WidgetState.PROCESSING:
            raise ProviderError("Payment approval arrived before the order was created.")

        order_id = self._session.get(PENDING_ORDER_KEY)
        if not order_id:
            logger.error("Approve for %s but no pending order in session", data.order_id)
            raise SchemaError("Your order could not be found. Please contact support.")

        self._transition(WidgetState.SUCCEEDED)

        if not self._cart_cleared:
            self._cart_cleared = True
            try:
                await self._cart.clear()
            except CheckoutError as e:
                logger.error("Clearing cart after approval failed: %s", e)

        self._page.toast("success", "Payment approved. Thank you for your order!")
        self._page.navigate(SUCCESS_ROUTE, {
            "paypal_order_id": data.order_id,
            "order_id": order_id,
            "payment_method": PaymentSelection.BUTTONS.provider_tag,
        })

    async def _on_error(self, error: Exception) -> None:
        if self.state in (WidgetState.PROCESSING, WidgetState.READY):
            self._transition(WidgetState.FAILED)
        if isinstance(error, CheckoutError):
            message = error.user_message
        else:
            message = ProviderError.default_message
        logger.error("Buttons payment failed: %s", error)
        self.last_error = message
        self._page.toast("error", message)

    async def _on_cancel(self) -> None:
        if self.state is WidgetState.PROCESSING:
            self._transition(WidgetState.CANCELLED)
        logger.info("Buttons payment cancelled by user")
        self.last_error = ProviderCancelled.default_message
        self._page.toast("info", ProviderCancelled.default_message)
