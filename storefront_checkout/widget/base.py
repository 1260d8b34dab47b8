"""Buttons SDK interface."""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from ..models import ApproveData


@dataclass
class ButtonCallbacks:
    """The callbacks the widget invokes. The application never calls these itself."""
    create_order: Callable[[], Awaitable[str]]
    on_approve: Callable[[ApproveData], Awaitable[None]]
    on_error: Callable[[Exception], Awaitable[None]]
    on_cancel: Callable[[], Awaitable[None]]
    on_init: Callable[[], Awaitable[None]]


@dataclass
class ButtonContainer:
    """Mount point the widget renders into."""
    selector: str = "#paypal-button-container"
    children: list[Any] = field(default_factory=list)

    def mount(self, child: Any) -> None:
        self.children.append(child)

    def clear(self) -> None:
        self.children.clear()

    @property
    def current(self) -> Any | None:
        return self.children[-1] if self.children else None


class ButtonsSDK(ABC):
    """A loaded buttons SDK."""

    name: str = "unknown"

    @abstractmethod
    async def render_buttons(self, container: ButtonContainer, callbacks: ButtonCallbacks) -> None:
        """Render buttons into ``container``; call ``callbacks.on_init`` once they are live."""
        ...
