"""Tests for the SDK loader, the tool-driven buttons, and the widget adapter state machine."""
import asyncio
from dataclasses import replace

import httpx
import pytest

from conftest import FakeStorefrontAPI, tool_driven_sdk
from storefront_checkout.cart import CartContext
from storefront_checkout.errors import NetworkError, ProviderError
from storefront_checkout.models import ShippingAddress
from storefront_checkout.page import SUCCESS_ROUTE, PageContext
from storefront_checkout.session import PENDING_ORDER_KEY, SessionStore
from storefront_checkout.widget import (
    ButtonContainer,
    HostedSdkScript,
    InvalidTransition,
    PaymentWidgetAdapter,
    SdkLoader,
    SdkRegistry,
    ToolDrivenButtons,
    WidgetConditions,
    WidgetState,
)

ALL_HOLD = WidgetConditions(
    on_payment_step=True,
    buttons_selected=True,
    mounted=True,
    authenticated=True,
    cart_has_items=True,
)


async def _never_loads():
    await asyncio.sleep(60)


async def _broken_script():
    raise ProviderError("script blocked")


class TestSdkLoader:
    @pytest.mark.asyncio
    async def test_script_completes(self):
        registry = SdkRegistry()
        sdk = await SdkLoader(registry, tool_driven_sdk, timeout=1).load()
        assert isinstance(sdk, ToolDrivenButtons)
        assert registry.lookup("paypal") is sdk

    @pytest.mark.asyncio
    async def test_already_registered(self):
        registry = SdkRegistry()
        existing = ToolDrivenButtons("early")
        registry.register("paypal", existing)
        assert await SdkLoader(registry, _never_loads, timeout=0.05).load() is existing

    @pytest.mark.asyncio
    async def test_probe_finds_sdk_registered_elsewhere(self):
        registry = SdkRegistry()
        late = ToolDrivenButtons("late")

        async def register_later():
            await asyncio.sleep(0.03)
            registry.register("paypal", late)

        task = asyncio.create_task(register_later())
        sdk = await SdkLoader(registry, _never_loads, timeout=1, poll_interval=0.01).load()
        await task
        assert sdk is late

    @pytest.mark.asyncio
    async def test_script_error_keeps_probing(self):
        registry = SdkRegistry()
        late = ToolDrivenButtons("late")

        async def register_later():
            await asyncio.sleep(0.03)
            registry.register("paypal", late)

        task = asyncio.create_task(register_later())
        sdk = await SdkLoader(registry, _broken_script, timeout=1, poll_interval=0.01).load()
        await task
        assert sdk is late

    @pytest.mark.asyncio
    async def test_timeout_returns_none(self):
        loader = SdkLoader(SdkRegistry(), _never_loads, timeout=0.05, poll_interval=0.01)
        assert await loader.load() is None


class TestHostedSdkScript:
    @pytest.mark.asyncio
    async def test_fetches_sdk_url(self, settings):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, text="/* sdk */")

        script = HostedSdkScript(settings, transport=httpx.MockTransport(handler))
        sdk = await script()
        assert isinstance(sdk, ToolDrivenButtons)
        assert sdk.client_id == "test-client"
        assert seen[0].url.host == "www.paypal.com"
        assert seen[0].url.params["client-id"] == "test-client"
        assert seen[0].url.params["currency"] == "USD"

    @pytest.mark.asyncio
    async def test_client_id_source_wins(self, settings):
        def handler(request):
            return httpx.Response(200, text="")

        script = HostedSdkScript(
            settings,
            client_id_source=lambda: "from-backend",
            transport=httpx.MockTransport(handler),
        )
        sdk = await script()
        assert sdk.client_id == "from-backend"

    @pytest.mark.asyncio
    async def test_no_client_id(self, settings):
        script = HostedSdkScript(replace(settings, paypal_client_id=""))
        with pytest.raises(ProviderError):
            await script()

    @pytest.mark.asyncio
    async def test_http_error_propagates(self, settings):
        script = HostedSdkScript(
            settings,
            transport=httpx.MockTransport(lambda request: httpx.Response(503)),
        )
        with pytest.raises(httpx.HTTPStatusError):
            await script()


def _adapter(api, session, page=None, address=None, script=tool_driven_sdk, timeout=0.2):
    page = page or PageContext(authenticated=True)
    cart = CartContext(api)
    return PaymentWidgetAdapter(
        loader=SdkLoader(SdkRegistry(), script, timeout=timeout, poll_interval=0.01),
        container=ButtonContainer(),
        api=api,
        session=session,
        cart=cart,
        page=page,
        address_source=lambda: address,
    )


async def _ready_adapter(api, session, address, page=None):
    adapter = _adapter(api, session, page=page, address=address)
    assert await adapter.load_sdk()
    await adapter.evaluate(ALL_HOLD)
    assert adapter.state is WidgetState.READY
    return adapter


class TestWidgetLifecycle:
    @pytest.mark.asyncio
    async def test_sdk_timeout_offers_reload(self, sample_cart, sample_address):
        adapter = _adapter(FakeStorefrontAPI(sample_cart), SessionStore(), address=sample_address,
                           script=_never_loads, timeout=0.05)
        assert not await adapter.load_sdk()
        assert adapter.state is WidgetState.SDK_NOT_LOADED
        assert adapter.reload_available

        # Nothing renders without an SDK
        await adapter.evaluate(ALL_HOLD)
        assert adapter.state is WidgetState.SDK_NOT_LOADED

    @pytest.mark.asyncio
    async def test_renders_when_all_conditions_hold(self, sample_cart, sample_address):
        adapter = await _ready_adapter(FakeStorefrontAPI(sample_cart), SessionStore(), sample_address)
        assert len(adapter.container.children) == 1

    @pytest.mark.asyncio
    async def test_rerender_replaces_previous_buttons(self, sample_cart, sample_address):
        adapter = await _ready_adapter(FakeStorefrontAPI(sample_cart), SessionStore(), sample_address)
        first = adapter.container.current
        await adapter.evaluate(ALL_HOLD)
        assert adapter.state is WidgetState.READY
        assert adapter.container.children == [adapter.container.current]
        assert adapter.container.current is not first

    @pytest.mark.asyncio
    async def test_conditions_lost_clears_buttons(self, sample_cart, sample_address):
        adapter = await _ready_adapter(FakeStorefrontAPI(sample_cart), SessionStore(), sample_address)
        await adapter.evaluate(WidgetConditions(True, False, True, True, True))
        assert adapter.state is WidgetState.SDK_LOADED
        assert adapter.container.children == []

    @pytest.mark.asyncio
    async def test_render_failure_falls_back(self, sample_cart, sample_address):
        class BrokenSDK(ToolDrivenButtons):
            async def render_buttons(self, container, callbacks):
                raise RuntimeError("zoid destroyed")

        async def broken_sdk():
            return BrokenSDK("x")

        page = PageContext(authenticated=True)
        adapter = _adapter(FakeStorefrontAPI(sample_cart), SessionStore(), page=page,
                           address=sample_address, script=broken_sdk)
        await adapter.load_sdk()
        await adapter.evaluate(ALL_HOLD)
        assert adapter.state is WidgetState.SDK_LOADED
        assert page.toasts[-1].kind == "error"

    def test_invalid_transition(self, sample_address):
        adapter = _adapter(FakeStorefrontAPI(), SessionStore(), address=sample_address)
        with pytest.raises(InvalidTransition):
            adapter._transition(WidgetState.PROCESSING)


class TestWidgetPayment:
    @pytest.mark.asyncio
    async def test_click_creates_order_then_provider_order(self, sample_cart, sample_address):
        api = FakeStorefrontAPI(sample_cart)
        session = SessionStore()
        adapter = await _ready_adapter(api, session, sample_address)

        reference = await adapter.container.current.click()

        assert reference == "PAYPAL-1"
        assert adapter.state is WidgetState.PROCESSING
        assert api.call_names() == ["create_order", "create_paypal_order"]
        assert api.calls[1] == ("create_paypal_order", "order-1")
        assert session.get(PENDING_ORDER_KEY) == "order-1"

    @pytest.mark.asyncio
    async def test_approve_twice_clears_cart_once(self, sample_cart, sample_address):
        api = FakeStorefrontAPI(sample_cart)
        page = PageContext(authenticated=True)
        adapter = await _ready_adapter(api, SessionStore(), sample_address, page=page)
        buttons = adapter.container.current
        await buttons.click()

        assert await buttons.approve("PAYER-1")
        assert await buttons.approve("PAYER-1")

        assert adapter.state is WidgetState.SUCCEEDED
        assert api.call_names().count("clear_cart") == 1
        assert page.location.startswith(SUCCESS_ROUTE + "?")
        assert "paypal_order_id=PAYPAL-1" in page.location
        assert "order_id=order-1" in page.location
        assert "payment_method=paypal" in page.location

    @pytest.mark.asyncio
    async def test_cart_clear_failure_still_succeeds(self, sample_cart, sample_address):
        api = FakeStorefrontAPI(sample_cart)
        api.failures["clear_cart"] = NetworkError()
        page = PageContext(authenticated=True)
        adapter = await _ready_adapter(api, SessionStore(), sample_address, page=page)
        buttons = adapter.container.current
        await buttons.click()

        assert await buttons.approve()
        assert adapter.state is WidgetState.SUCCEEDED
        assert page.location.startswith(SUCCESS_ROUTE)

    @pytest.mark.asyncio
    async def test_approve_without_pending_order(self, sample_cart, sample_address):
        api = FakeStorefrontAPI(sample_cart)
        session = SessionStore()
        page = PageContext(authenticated=True)
        adapter = await _ready_adapter(api, session, sample_address, page=page)
        buttons = adapter.container.current
        await buttons.click()
        session.remove(PENDING_ORDER_KEY)

        assert not await buttons.approve()
        assert adapter.state is WidgetState.FAILED
        assert "clear_cart" not in api.call_names()
        assert page.toasts[-1].message == "Your order could not be found. Please contact support."

    @pytest.mark.asyncio
    async def test_approve_before_click(self, sample_cart, sample_address):
        page = PageContext(authenticated=True)
        adapter = await _ready_adapter(FakeStorefrontAPI(sample_cart), SessionStore(), sample_address, page=page)
        assert not await adapter.container.current.approve()
        assert adapter.state is WidgetState.FAILED
        assert page.toasts[-1].kind == "error"

    @pytest.mark.asyncio
    async def test_provider_order_failure_routes_to_on_error(self, sample_cart, sample_address):
        api = FakeStorefrontAPI(sample_cart)
        api.failures["create_paypal_order"] = NetworkError()
        page = PageContext(authenticated=True)
        adapter = await _ready_adapter(api, SessionStore(), sample_address, page=page)

        assert await adapter.container.current.click() is None
        assert adapter.state is WidgetState.FAILED
        assert not adapter.processing
        assert page.toasts[-1].message == NetworkError.default_message

    @pytest.mark.asyncio
    async def test_incomplete_address_aborts_before_any_call(self, sample_cart):
        api = FakeStorefrontAPI(sample_cart)
        page = PageContext(authenticated=True)
        adapter = await _ready_adapter(api, SessionStore(), ShippingAddress(first_name="Jane"), page=page)

        assert await adapter.container.current.click() is None
        assert api.calls == []
        assert adapter.state is WidgetState.FAILED
        assert page.toasts[-1].message == "Please complete all required shipping fields."

    @pytest.mark.asyncio
    async def test_cancel(self, sample_cart, sample_address):
        page = PageContext(authenticated=True)
        adapter = await _ready_adapter(FakeStorefrontAPI(sample_cart), SessionStore(), sample_address, page=page)
        buttons = adapter.container.current
        await buttons.click()
        await buttons.cancel()

        assert adapter.state is WidgetState.CANCELLED
        assert page.toasts[-1].kind == "info"
        assert page.toasts[-1].message == "Payment cancelled by user."

    @pytest.mark.asyncio
    async def test_retry_after_failure(self, sample_cart, sample_address):
        api = FakeStorefrontAPI(sample_cart)
        api.failures["create_paypal_order"] = NetworkError()
        adapter = await _ready_adapter(api, SessionStore(), sample_address)
        buttons = adapter.container.current
        assert await buttons.click() is None

        del api.failures["create_paypal_order"]
        assert await buttons.click() == "PAYPAL-1"
        assert adapter.state is WidgetState.PROCESSING

    @pytest.mark.asyncio
    async def test_interrupted_click_fails_and_can_retry(self, sample_cart, sample_address):
        api = FakeStorefrontAPI(sample_cart)
        api.gate_orders = True
        page = PageContext(authenticated=True)
        adapter = await _ready_adapter(api, SessionStore(), sample_address, page=page)
        buttons = adapter.container.current

        click = asyncio.create_task(buttons.click())
        await api.order_started.wait()
        click.cancel()
        with pytest.raises(asyncio.CancelledError):
            await click

        assert adapter.state is WidgetState.FAILED
        assert not adapter.processing
        assert page.toasts[-1].kind == "error"

        api.release.set()
        assert await buttons.click() == "PAYPAL-1"
