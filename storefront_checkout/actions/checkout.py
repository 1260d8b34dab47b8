"""Checkout step controller and the card payment path."""
import asyncio
import logging
from enum import Enum
from typing import Optional

from ..api.base import StorefrontAPI
from ..cart import CartContext
from ..config import CheckoutSettings
from ..errors import CheckoutError, SchemaError, ValidationError
from ..models import (
    CartSnapshot,
    CheckoutStep,
    PaymentConfig,
    PaymentSelection,
    ShippingAddress,
    Totals,
    compute_totals,
)
from ..page import CART_ROUTE, CHECKOUT_ROUTE, LOGIN_ROUTE, PageContext
from ..session import PENDING_ORDER_KEY, SessionStore
from ..widget import ButtonContainer, PaymentWidgetAdapter, SdkLoader, WidgetConditions, WidgetState

logger = logging.getLogger(__name__)


class SubmissionPhase(str, Enum):
    """Where the card path is. Only IDLE accepts a new submission."""
    IDLE = "idle"
    CREATING_ORDER = "creating_order"
    CREATING_SESSION = "creating_session"
    REDIRECTED = "redirected"


class CheckoutController:
    """One checkout page: shipping form, payment panel, and the guards around them."""

    def __init__(
        self,
        settings: CheckoutSettings,
        api: StorefrontAPI,
        session: SessionStore,
        cart: CartContext,
        page: PageContext,
        sdk_loader: SdkLoader,
        container: ButtonContainer | None = None,
    ):
        self._settings = settings
        self._api = api
        self._session = session
        self._cart = cart
        self._page = page
        self._address = ShippingAddress()
        self._sdk_task: Optional[asyncio.Task] = None
        self.current_step = CheckoutStep.SHIPPING
        self.selected_method = PaymentSelection.CARD
        self.submission = SubmissionPhase.IDLE
        self.payment_config = PaymentConfig(paypal_client_id=settings.paypal_client_id)
        self.widget = PaymentWidgetAdapter(
            loader=sdk_loader,
            container=container or ButtonContainer(),
            api=api,
            session=session,
            cart=cart,
            page=page,
            address_source=lambda: self._address,
        )
        cart.subscribe(self._on_cart_changed)

    # -- derived state -----------------------------------------------------

    @property
    def address(self) -> ShippingAddress:
        return self._address

    @property
    def cart(self) -> CartContext:
        return self._cart

    @property
    def page(self) -> PageContext:
        return self._page

    @property
    def totals(self) -> Totals:
        return compute_totals(self._cart.snapshot.total_amount)

    @property
    def order_in_flight(self) -> bool:
        return self.submission is SubmissionPhase.CREATING_ORDER

    @property
    def payment_processing(self) -> bool:
        return self.widget.processing or self.submission is SubmissionPhase.CREATING_SESSION

    @property
    def active(self) -> bool:
        """The checkout page is mounted, signed in, and still the current route."""
        return (
            self._page.mounted
            and self._page.authenticated
            and self._page.location == CHECKOUT_ROUTE
        )

    def _conditions(self) -> WidgetConditions:
        return WidgetConditions(
            on_payment_step=self.current_step is CheckoutStep.PAYMENT,
            buttons_selected=self.selected_method is PaymentSelection.BUTTONS,
            mounted=self._page.mounted,
            authenticated=self._page.authenticated,
            cart_has_items=not self._cart.is_empty,
        )

    async def _sync_widget(self) -> None:
        await self.widget.evaluate(self._conditions())

    async def _on_cart_changed(self, snapshot: CartSnapshot) -> None:
        await self._sync_widget()

    # -- page lifecycle ----------------------------------------------------

    async def mount(self) -> None:
        """Hydrate the cart, read the payment config, and start loading the buttons SDK."""
        self._page.mounted = True
        if not self._cart.hydrated:
            await self._cart.hydrate()
        await self.load_payment_config()
        if PaymentSelection.BUTTONS in self.payment_config.available_methods:
            self._sdk_task = asyncio.create_task(self._load_widget())
        await self._sync_widget()

    async def _load_widget(self) -> None:
        if await self.widget.load_sdk():
            await self._sync_widget()
        else:
            self._page.toast("error", "PayPal could not be loaded. Use reload to try again.")

    async def wait_for_sdk(self) -> None:
        if self._sdk_task is not None:
            await self._sdk_task

    async def reload_sdk(self) -> bool:
        """Manual reload after the SDK timed out."""
        if self.widget.state is not WidgetState.SDK_NOT_LOADED:
            return True
        if self._sdk_task is not None and not self._sdk_task.done():
            await self._sdk_task
            return self.widget.state is not WidgetState.SDK_NOT_LOADED
        self._sdk_task = asyncio.create_task(self._load_widget())
        await self._sdk_task
        return self.widget.state is not WidgetState.SDK_NOT_LOADED

    async def unmount(self) -> None:
        self._page.mounted = False
        if self._sdk_task is not None and not self._sdk_task.done():
            self._sdk_task.cancel()
            try:
                await self._sdk_task
            except asyncio.CancelledError:
                pass
        self.widget.unmount()

    async def load_payment_config(self) -> PaymentConfig:
        try:
            config = await self._api.get_payment_config()
        except CheckoutError as e:
            logger.warning("Payment config unavailable (%s); offering every method", e)
            config = PaymentConfig()
        if not config.paypal_client_id:
            config = config.model_copy(update={"paypal_client_id": self._settings.paypal_client_id})

        methods = config.available_methods
        if not methods:
            self._page.toast("error", "No payment methods are configured for this store.")
        elif len(methods) == 1 or self.selected_method not in methods:
            self.selected_method = methods[0]
        self.payment_config = config
        return config

    # -- guards ------------------------------------------------------------

    def _should_leave_for_empty_cart(self) -> bool:
        return (
            self._cart.is_empty
            and not self.payment_processing
            and not self.order_in_flight
            and not self._page.left_app
            and self.widget.state is not WidgetState.SUCCEEDED
            and self._page.location == CHECKOUT_ROUTE
        )

    async def enforce_guards(self) -> str | None:
        """Send the user away when checkout can't proceed. Returns the new location, if any."""
        if not self._page.authenticated:
            location = self._page.navigate(LOGIN_ROUTE)
            await self._sync_widget()
            return location
        if not self._should_leave_for_empty_cart():
            return None

        # The cart may still be loading; give it the grace period to arrive,
        # then decide on what is true at that moment.
        if not await self._cart.wait_hydrated(self._settings.empty_cart_grace):
            logger.info("Cart not hydrated after %.2fs grace", self._settings.empty_cart_grace)
        if not self._should_leave_for_empty_cart():
            return None
        self._page.toast("info", "Your cart is empty.")
        location = self._page.navigate(CART_ROUTE)
        await self._sync_widget()
        return location

    # -- shipping step -----------------------------------------------------

    def update_address(self, **fields: str) -> ShippingAddress:
        if self.current_step is not CheckoutStep.SHIPPING:
            raise CheckoutError("Go back to the shipping step to change the address.")
        unknown = set(fields) - set(ShippingAddress.model_fields)
        if unknown:
            raise ValueError(f"Unknown address fields: {', '.join(sorted(unknown))}")
        self._address = self._address.model_copy(update={k: str(v) for k, v in fields.items()})
        return self._address

    async def continue_to_payment(self) -> bool:
        if not self.active:
            logger.info("Continue ignored; checkout page is not active")
            return False
        missing = self._address.missing_fields()
        if missing:
            error = ValidationError(missing=missing)
            self._page.toast("error", error.user_message)
            return False
        self.current_step = CheckoutStep.PAYMENT
        await self._sync_widget()
        return True

    async def back_to_shipping(self) -> bool:
        if self.payment_processing or self.order_in_flight:
            self._page.toast("error", "A payment is in progress.")
            return False
        self.current_step = CheckoutStep.SHIPPING
        await self._sync_widget()
        return True

    # -- payment step ------------------------------------------------------

    async def select_payment_method(self, method: PaymentSelection) -> bool:
        if not self.active:
            logger.info("Method selection ignored; checkout page is not active")
            return False
        if method not in self.payment_config.available_methods:
            self._page.toast("error", f"{method.provider_tag.title()} is not available right now.")
            return False
        self.selected_method = method
        await self._sync_widget()
        return True

    async def submit_payment(self) -> str | None:
        """
        Payment form submit. Card path only: create the order, persist its ID,
        create the hosted session, redirect. Returns the redirect URL.

        With buttons selected this does nothing; the widget owns that path.
        """
        if self.selected_method is PaymentSelection.BUTTONS:
            logger.info("Payment form submitted with buttons selected; ignoring")
            return None
        if not self.active:
            logger.info("Payment submit ignored; checkout page is not active")
            return None
        if self.current_step is not CheckoutStep.PAYMENT:
            self._page.toast("error", "Complete the shipping step first.")
            return None
        if self.submission is not SubmissionPhase.IDLE:
            logger.info("Payment submit ignored while %s", self.submission.value)
            return None

        missing = self._address.missing_fields()
        if missing:
            self._page.toast("error", ValidationError(missing=missing).user_message)
            return None

        await self._cart.hydrate()
        if self._cart.is_empty:
            self._page.toast("error", "Your cart is empty. Add products before checking out.")
            return None

        try:
            self.submission = SubmissionPhase.CREATING_ORDER
            order_id = await self._api.create_order(self._address)
            self._session.set(PENDING_ORDER_KEY, order_id)

            self.submission = SubmissionPhase.CREATING_SESSION
            checkout = await self._api.create_checkout_session(order_id)

            self.submission = SubmissionPhase.REDIRECTED
            self._page.redirect(checkout.url)
            return checkout.url
        except SchemaError as e:
            logger.error("Unexpected backend response during card checkout: %s", e)
            self._page.toast("error", e.user_message)
        except CheckoutError as e:
            logger.warning("Card checkout failed: %s", e)
            self._page.toast("error", e.user_message)
        finally:
            if self.submission is not SubmissionPhase.REDIRECTED:
                self.submission = SubmissionPhase.IDLE
        return None

    # -- reporting ---------------------------------------------------------

    def redacted_address(self) -> dict:
        """Address summary safe for tool output."""
        a = self._address
        name = f"{a.first_name} {a.last_name[:1]}." if a.last_name else a.first_name
        return {
            "name": name.strip(),
            "city": a.city,
            "state": a.state,
            "zip": a.zip_code[:3] + "**" if a.zip_code else "",
            "country": a.country,
            "missing": a.missing_fields(),
        }

    def status(self) -> dict:
        snapshot = self._cart.snapshot
        return {
            "step": self.current_step.name.lower(),
            "payment_method": self.selected_method.value,
            "available_methods": [m.value for m in self.payment_config.available_methods],
            "widget_state": self.widget.state.value,
            "sdk_reload_available": self.widget.reload_available,
            "submission": self.submission.value,
            "payment_processing": self.payment_processing,
            "location": self._page.location,
            "shipping": self.redacted_address(),
            "cart": {
                "items": [
                    {
                        "name": item.name or item.product_id,
                        "quantity": item.quantity,
                        "size": item.size,
                        "line_total": f"{item.line_total:.2f}",
                    }
                    for item in snapshot.items
                ],
                "item_count": snapshot.item_count,
            },
            "totals": self.totals.to_dict(),
        }
