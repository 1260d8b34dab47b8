"""
Tool-driven buttons — the buttons SDK as seen through MCP tool calls.

There is no DOM to click in a stdio server, so the rendered "buttons" are a
handle whose click / approve / cancel methods are invoked by tool handlers.
The handle keeps the real widget's contract: it calls the application's
callbacks, and any exception from create_order or on_approve is routed to
on_error instead of escaping.
"""
import logging
from typing import Callable

import httpx

from ..config import CheckoutSettings
from ..errors import ProviderError
from ..models import ApproveData
from .base import ButtonCallbacks, ButtonContainer, ButtonsSDK

logger = logging.getLogger(__name__)


class RenderedButtons:
    """One rendering of the buttons inside a container."""

    def __init__(self, callbacks: ButtonCallbacks):
        self._callbacks = callbacks
        self.provider_order_id: str | None = None

    async def click(self) -> str | None:
        """User clicked the button. Returns the provider order reference, or None on failure."""
        try:
            reference = await self._callbacks.create_order()
        except Exception as e:
            logger.info("create_order callback failed: %s", e)
            await self._callbacks.on_error(e)
            return None
        if not reference:
            await self._callbacks.on_error(ProviderError("No order reference returned to the widget."))
            return None
        self.provider_order_id = reference
        return reference

    async def approve(self, payer_id: str | None = None) -> bool:
        """User authorized the payment on the provider's side."""
        if not self.provider_order_id:
            await self._callbacks.on_error(ProviderError("There is no PayPal order to approve yet."))
            return False
        try:
            await self._callbacks.on_approve(ApproveData(order_id=self.provider_order_id, payer_id=payer_id))
        except Exception as e:
            logger.info("on_approve callback failed: %s", e)
            await self._callbacks.on_error(e)
            return False
        return True

    async def cancel(self) -> None:
        """User closed the provider's overlay."""
        await self._callbacks.on_cancel()


class ToolDrivenButtons(ButtonsSDK):
    """Buttons SDK whose user interactions arrive as tool calls."""

    name = "paypal"

    def __init__(self, client_id: str, currency: str = "USD"):
        self.client_id = client_id
        self.currency = currency

    async def render_buttons(self, container: ButtonContainer, callbacks: ButtonCallbacks) -> None:
        rendered = RenderedButtons(callbacks)
        container.mount(rendered)
        logger.info("Buttons rendered into %s", container.selector)
        await callbacks.on_init()


class HostedSdkScript:
    """Script loader: confirms the provider's SDK URL answers, then hands out the SDK."""

    def __init__(
        self,
        settings: CheckoutSettings,
        client_id_source: Callable[[], str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._settings = settings
        # The backend's payment config may supply the client ID after startup
        self._client_id_source = client_id_source or (lambda: settings.paypal_client_id)
        self._transport = transport

    async def __call__(self) -> ButtonsSDK:
        client_id = self._client_id_source() or self._settings.paypal_client_id
        url = self._settings.sdk_url(client_id)
        if not url:
            raise ProviderError("PayPal client ID is not configured.")
        async with httpx.AsyncClient(timeout=self._settings.sdk_timeout, transport=self._transport) as client:
            response = await client.get(url)
            response.raise_for_status()
        logger.info("Loaded buttons SDK from %s", url)
        return ToolDrivenButtons(client_id=client_id, currency=self._settings.paypal_currency)
