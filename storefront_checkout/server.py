"""
Storefront Checkout MCP Server.

Exposes the storefront checkout page over stdio for Claude Code, Codex CLI, and Gemini CLI.
Walks the shipping and payment steps, pays by hosted card checkout or PayPal buttons,
and gates every order creation behind a human-in-the-loop confirmation code.
"""
import asyncio
import json
import logging
import secrets
import time
from datetime import datetime

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import Tool, TextContent

from .actions.checkout import CheckoutController
from .actions.success import CheckoutSuccess
from .api import HttpStorefrontClient, StorefrontAPI
from .cart import CartContext
from .config import CheckoutSettings
from .errors import CheckoutError
from .models import CheckoutStep, PaymentSelection
from .output_sanitizer import sanitize_output
from .page import PageContext
from .session import SessionStore
from .widget import HostedSdkScript, SdkLoader, SdkRegistry, WidgetState

logger = logging.getLogger(__name__)


def _debug_log(tool_name: str, args: dict, result: str) -> None:
    """Append a tool call entry to the debug log file."""
    try:
        debug_dir = _get_settings().debug_dir
        debug_dir.mkdir(parents=True, exist_ok=True)
        log_file = debug_dir / f"session_{datetime.now().strftime('%Y-%m-%d')}.log"
        timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]

        entry = (
            f"\n{'='*80}\n"
            f"[{timestamp}] TOOL: {tool_name}\n"
            f"ARGS: {sanitize_output(json.dumps(args, indent=2))}\n"
            f"RESPONSE:\n{result}\n"
        )

        with open(log_file, "a") as f:
            f.write(entry)
    except Exception as e:
        logger.debug("Debug log write failed: %s", e)

server = Server("storefront-checkout")

# Lazy-initialized singletons
_settings: CheckoutSettings | None = None
_api: StorefrontAPI | None = None
_session: SessionStore | None = None
_sdk_registry: SdkRegistry | None = None
_controller: CheckoutController | None = None

# Confirmation gate state (in-memory, single-process)
_pending_confirmations: dict[str, dict] = {}

# Confirmation code TTL
_CONFIRMATION_TTL = 300  # 5 minutes


def _get_settings() -> CheckoutSettings:
    global _settings
    if _settings is None:
        _settings = CheckoutSettings.from_env()
    return _settings


def _get_api() -> StorefrontAPI:
    global _api
    if _api is None:
        _api = HttpStorefrontClient(_get_settings())
    return _api


def _get_session() -> SessionStore:
    global _session
    if _session is None:
        _session = SessionStore(path=_get_settings().session_path)
    return _session


def _get_sdk_registry() -> SdkRegistry:
    global _sdk_registry
    if _sdk_registry is None:
        _sdk_registry = SdkRegistry()
    return _sdk_registry


def _build_controller() -> CheckoutController:
    """Wire a fresh checkout page. The SDK registry outlives it, like a loaded script would."""
    settings = _get_settings()
    api = _get_api()
    controller: CheckoutController | None = None

    def client_id() -> str:
        # The backend's payment config wins over the environment once loaded
        if controller is not None and controller.payment_config.paypal_client_id:
            return controller.payment_config.paypal_client_id
        return settings.paypal_client_id

    loader = SdkLoader(
        _get_sdk_registry(),
        HostedSdkScript(settings, client_id_source=client_id),
        timeout=settings.sdk_timeout,
        poll_interval=settings.sdk_poll_interval,
    )
    controller = CheckoutController(
        settings=settings,
        api=api,
        session=_get_session(),
        cart=CartContext(api),
        page=PageContext(authenticated=settings.authenticated),
        sdk_loader=loader,
    )
    return controller


async def _get_controller() -> CheckoutController:
    global _controller
    if _controller is None:
        _controller = _build_controller()
        await _controller.mount()
        await _controller.enforce_guards()
    return _controller


def _generate_confirmation_code() -> str:
    """Generate a 6-character alphanumeric confirmation code."""
    return secrets.token_hex(3).upper()


def _cleanup_expired_confirmations() -> None:
    """Remove expired confirmation codes."""
    now = time.time()
    expired = [k for k, v in _pending_confirmations.items() if now - v["created_at"] > _CONFIRMATION_TTL]
    for k in expired:
        del _pending_confirmations[k]


def _with_notices(controller: CheckoutController, result: dict) -> dict:
    """Attach toasts raised during the call, plus where the page ended up."""
    notices = [t.to_dict() for t in controller.page.drain_toasts()]
    if notices:
        result["notices"] = notices
    result.setdefault("location", controller.page.location)
    return result


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------

@server.list_tools()
async def list_tools() -> list[Tool]:
    return [
        Tool(
            name="start_checkout",
            description=(
                "Open a fresh checkout page: loads the cart and payment options and starts loading "
                "the PayPal buttons. Use after a finished or abandoned checkout."
            ),
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="checkout_status",
            description="Current checkout step, cart lines, totals (tax and shipping), payment method, and widget state.",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="set_shipping_address",
            description="Fill in or update shipping address fields. Only allowed on the shipping step.",
            inputSchema={
                "type": "object",
                "properties": {
                    "first_name": {"type": "string"},
                    "last_name": {"type": "string"},
                    "street": {"type": "string"},
                    "city": {"type": "string"},
                    "state": {"type": "string"},
                    "zip_code": {"type": "string"},
                    "country": {"type": "string", "default": "USA"},
                    "phone": {"type": "string"},
                },
            },
        ),
        Tool(
            name="continue_to_payment",
            description="Validate the shipping address and move to the payment step.",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="back_to_shipping",
            description="Return to the shipping step to edit the address.",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="select_payment_method",
            description="Choose how to pay: 'card' (hosted card checkout) or 'buttons' (PayPal).",
            inputSchema={
                "type": "object",
                "properties": {
                    "method": {
                        "type": "string",
                        "enum": [m.value for m in PaymentSelection],
                        "description": "Payment method to use",
                    },
                },
                "required": ["method"],
            },
        ),
        Tool(
            name="preview_checkout",
            description=(
                "Show the order summary with redacted shipping details and generate a confirmation "
                "code. The user must approve the code before confirm_purchase."
            ),
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="confirm_purchase",
            description=(
                "Place the order with a confirmation code from preview_checkout. With 'card' this "
                "returns the hosted checkout URL; with 'buttons' it clicks the PayPal button and "
                "returns the approval URL."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "confirmation_code": {
                        "type": "string",
                        "description": "6-character code from preview_checkout",
                    },
                },
                "required": ["confirmation_code"],
            },
        ),
        Tool(
            name="paypal_button",
            description=(
                "Report what the user did in the PayPal window: 'approve' after they authorized "
                "the payment, 'cancel' if they closed it."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "action": {
                        "type": "string",
                        "enum": ["approve", "cancel"],
                    },
                    "payer_id": {
                        "type": "string",
                        "description": "PayerID from the PayPal return URL, if known",
                    },
                },
                "required": ["action"],
            },
        ),
        Tool(
            name="reload_payment_sdk",
            description="Retry loading the PayPal SDK after it timed out.",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="complete_checkout",
            description=(
                "Resolve the return from a payment provider. Pass the query parameters of the "
                "success URL, or cancelled=true for the cancel URL."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "order_id": {"type": "string"},
                    "paypal_order_id": {"type": "string"},
                    "payment_method": {
                        "type": "string",
                        "enum": ["stripe", "paypal"],
                    },
                    "cancelled": {"type": "boolean", "default": False},
                },
            },
        ),
    ]


# ---------------------------------------------------------------------------
# Tool dispatch
# ---------------------------------------------------------------------------

@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    try:
        if name == "start_checkout":
            result = await _handle_start_checkout(arguments)
        elif name == "checkout_status":
            result = await _handle_checkout_status(arguments)
        elif name == "set_shipping_address":
            result = await _handle_set_shipping_address(arguments)
        elif name == "continue_to_payment":
            result = await _handle_continue_to_payment(arguments)
        elif name == "back_to_shipping":
            result = await _handle_back_to_shipping(arguments)
        elif name == "select_payment_method":
            result = await _handle_select_payment_method(arguments)
        elif name == "preview_checkout":
            result = await _handle_preview_checkout(arguments)
        elif name == "confirm_purchase":
            result = await _handle_confirm_purchase(arguments)
        elif name == "paypal_button":
            result = await _handle_paypal_button(arguments)
        elif name == "reload_payment_sdk":
            result = await _handle_reload_payment_sdk(arguments)
        elif name == "complete_checkout":
            result = await _handle_complete_checkout(arguments)
        else:
            return [TextContent(type="text", text=f"Unknown tool: {name}")]

        if isinstance(result, str):
            text = result
        else:
            text = json.dumps(result, indent=2, default=str)
        sanitized = sanitize_output(text)

        _debug_log(name, arguments, sanitized)
        return [TextContent(type="text", text=sanitized)]

    except Exception as e:
        logger.exception("Tool %s failed", name)
        error_text = f"Error: {str(e)}"
        _debug_log(name, arguments, error_text)
        return [TextContent(type="text", text=error_text)]


# ---------------------------------------------------------------------------
# Tool implementations
# ---------------------------------------------------------------------------

async def _handle_start_checkout(args: dict) -> dict:
    """Replace the current checkout page with a freshly mounted one."""
    global _controller
    if _controller is not None:
        await _controller.unmount()
        _controller = None
    _pending_confirmations.clear()
    controller = await _get_controller()
    return _with_notices(controller, {"status": "started", **controller.status()})


async def _handle_checkout_status(args: dict) -> dict:
    controller = await _get_controller()
    await controller.enforce_guards()
    return _with_notices(controller, {"status": "ok", **controller.status()})


async def _handle_set_shipping_address(args: dict) -> dict:
    controller = await _get_controller()
    fields = {k: v for k, v in args.items() if v is not None}
    if not fields:
        return {"status": "error", "message": "Provide at least one address field."}
    try:
        controller.update_address(**fields)
    except (CheckoutError, ValueError) as e:
        return _with_notices(controller, {"status": "error", "message": str(e)})
    return _with_notices(controller, {"status": "updated", "shipping": controller.redacted_address()})


async def _handle_continue_to_payment(args: dict) -> dict:
    controller = await _get_controller()
    if not controller.active:
        return _with_notices(controller, {
            "status": "error",
            "message": "Checkout is no longer open. Run start_checkout again.",
        })
    if not await controller.continue_to_payment():
        return _with_notices(controller, {
            "status": "incomplete",
            "missing": controller.address.missing_fields(),
        })
    return _with_notices(controller, {
        "status": "payment",
        "payment_method": controller.selected_method.value,
        "available_methods": [m.value for m in controller.payment_config.available_methods],
        "totals": controller.totals.to_dict(),
    })


async def _handle_back_to_shipping(args: dict) -> dict:
    controller = await _get_controller()
    moved = await controller.back_to_shipping()
    return _with_notices(controller, {
        "status": "shipping" if moved else "blocked",
        "shipping": controller.redacted_address(),
    })


async def _handle_select_payment_method(args: dict) -> dict:
    controller = await _get_controller()
    try:
        method = PaymentSelection(args["method"])
    except ValueError:
        return {"status": "error", "message": f"Unknown payment method: {args['method']}"}
    selected = await controller.select_payment_method(method)
    return _with_notices(controller, {
        "status": "selected" if selected else "unavailable",
        "payment_method": controller.selected_method.value,
        "widget_state": controller.widget.state.value,
    })


async def _handle_preview_checkout(args: dict) -> dict:
    """Preview the order with redacted shipping details and generate a confirmation code."""
    controller = await _get_controller()
    if controller.current_step is not CheckoutStep.PAYMENT:
        return {"status": "error", "message": "Complete the shipping step with continue_to_payment first."}
    if controller.cart.is_empty:
        return _with_notices(controller, {"status": "error", "message": "Your cart is empty."})

    _cleanup_expired_confirmations()

    code = _generate_confirmation_code()
    _pending_confirmations[code] = {
        "created_at": time.time(),
        "method": controller.selected_method,
    }

    return _with_notices(controller, {
        "status": "preview",
        "confirmation_code": code,
        "message": (
            f"Review your order details below. To place the order, "
            f"provide the confirmation code: {code}"
        ),
        "shipping_to": controller.redacted_address(),
        "paying_with": controller.selected_method.provider_tag,
        "totals": controller.totals.to_dict(),
        "item_count": controller.cart.snapshot.item_count,
    })


async def _handle_confirm_purchase(args: dict) -> dict:
    """Place the order if the confirmation code is valid."""
    code = args["confirmation_code"].strip().upper()

    _cleanup_expired_confirmations()

    if code not in _pending_confirmations:
        return {
            "status": "rejected",
            "message": "Invalid or expired confirmation code. Run preview_checkout again.",
        }

    confirmation = _pending_confirmations.pop(code)
    controller = await _get_controller()
    if not controller.active:
        return _with_notices(controller, {
            "status": "rejected",
            "message": "Checkout is no longer open. Run start_checkout again.",
        })
    if confirmation["method"] is not controller.selected_method:
        return {
            "status": "rejected",
            "message": "The payment method changed since the preview. Run preview_checkout again.",
        }

    if controller.selected_method is PaymentSelection.CARD:
        url = await controller.submit_payment()
        if url is None:
            return _with_notices(controller, {"status": "failed"})
        return _with_notices(controller, {
            "status": "redirect",
            "checkout_url": url,
            "message": "Open the checkout URL to pay by card, then call complete_checkout with the success URL parameters.",
        })

    buttons = controller.widget.container.current
    if buttons is None or controller.widget.state not in (
        WidgetState.READY, WidgetState.FAILED, WidgetState.CANCELLED,
    ):
        return _with_notices(controller, {
            "status": "unavailable",
            "widget_state": controller.widget.state.value,
            "message": "PayPal buttons are not ready. Try reload_payment_sdk, or pay by card.",
        })

    provider_order_id = await buttons.click()
    if provider_order_id is None:
        return _with_notices(controller, {
            "status": "failed",
            "widget_state": controller.widget.state.value,
        })
    provider_order = controller.widget.provider_order
    return _with_notices(controller, {
        "status": "awaiting_approval",
        "paypal_order_id": provider_order_id,
        "approval_url": provider_order.approval_url if provider_order else None,
        "message": "Have the user approve the payment in PayPal, then call paypal_button with action='approve'.",
    })


async def _handle_paypal_button(args: dict) -> dict:
    controller = await _get_controller()
    buttons = controller.widget.container.current
    if buttons is None:
        return _with_notices(controller, {
            "status": "error",
            "message": "No PayPal buttons on the page.",
            "widget_state": controller.widget.state.value,
        })

    action = args["action"]
    if action == "approve":
        approved = await buttons.approve(args.get("payer_id"))
        return _with_notices(controller, {
            "status": "approved" if approved else "failed",
            "widget_state": controller.widget.state.value,
        })
    if action == "cancel":
        await buttons.cancel()
        return _with_notices(controller, {
            "status": "cancelled",
            "widget_state": controller.widget.state.value,
        })
    return {"status": "error", "message": f"Unknown action: {action}"}


async def _handle_reload_payment_sdk(args: dict) -> dict:
    controller = await _get_controller()
    loaded = await controller.reload_sdk()
    return _with_notices(controller, {
        "status": "loaded" if loaded else "timeout",
        "widget_state": controller.widget.state.value,
        "sdk_reload_available": controller.widget.reload_available,
    })


async def _handle_complete_checkout(args: dict) -> dict:
    """Resolve the success or cancel page after a provider round-trip."""
    controller = await _get_controller()
    success = CheckoutSuccess(_get_api(), _get_session(), controller.cart, controller.page)
    if args.get("cancelled"):
        return _with_notices(controller, await success.cancel())

    params = {k: str(v) for k, v in args.items() if k != "cancelled" and v}
    return _with_notices(controller, await success.resolve(params))


# ---------------------------------------------------------------------------
# Server entry point
# ---------------------------------------------------------------------------

async def main():
    """Run the MCP server over stdio."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    logger.info("Storefront Checkout MCP server starting...")

    try:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())
    finally:
        if _controller:
            await _controller.unmount()
        if _api:
            await _api.close()


def run():
    """Sync entry point for console_scripts."""
    asyncio.run(main())
