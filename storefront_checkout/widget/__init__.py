"""Third-party buttons widget: SDK contract, loader, and lifecycle adapter."""
from .adapter import InvalidTransition, PaymentWidgetAdapter, WidgetConditions, WidgetState
from .base import ButtonCallbacks, ButtonContainer, ButtonsSDK
from .loader import SdkLoader, SdkRegistry
from .tool_buttons import HostedSdkScript, RenderedButtons, ToolDrivenButtons

__all__ = [
    "ButtonCallbacks",
    "ButtonContainer",
    "ButtonsSDK",
    "HostedSdkScript",
    "InvalidTransition",
    "PaymentWidgetAdapter",
    "RenderedButtons",
    "SdkLoader",
    "SdkRegistry",
    "ToolDrivenButtons",
    "WidgetConditions",
    "WidgetState",
]
