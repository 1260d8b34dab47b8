"""Shared cart state, hydrated from the backend and cleared after payment."""
import asyncio
import logging
from typing import Awaitable, Callable

from .api.base import StorefrontAPI
from .models import CartSnapshot

logger = logging.getLogger(__name__)

CartListener = Callable[[CartSnapshot], Awaitable[None]]


class CartContext:
    """Holds the current cart snapshot and signals when it has been hydrated."""

    def __init__(self, api: StorefrontAPI):
        self._api = api
        self._snapshot = CartSnapshot()
        self._hydrated = asyncio.Event()
        self._listeners: list[CartListener] = []

    @property
    def snapshot(self) -> CartSnapshot:
        return self._snapshot

    @property
    def is_empty(self) -> bool:
        return self._snapshot.is_empty

    @property
    def hydrated(self) -> bool:
        return self._hydrated.is_set()

    def subscribe(self, listener: CartListener) -> None:
        self._listeners.append(listener)

    async def _publish(self) -> None:
        for listener in list(self._listeners):
            await listener(self._snapshot)

    async def replace(self, snapshot: CartSnapshot) -> None:
        """Swap in a new snapshot and mark the cart hydrated."""
        self._snapshot = snapshot
        self._hydrated.set()
        await self._publish()

    async def hydrate(self) -> CartSnapshot:
        """Load the cart from the backend.

        An unreachable backend leaves a first load empty and a refresh unchanged.
        """
        try:
            snapshot = await self._api.get_cart()
        except Exception as e:
            logger.error("Could not load cart: %s", e)
            snapshot = self._snapshot if self.hydrated else CartSnapshot()
        logger.info("Cart hydrated: %d items, total %s", len(snapshot.items), snapshot.total_amount)
        await self.replace(snapshot)
        return snapshot

    async def wait_hydrated(self, timeout: float) -> bool:
        """Wait up to ``timeout`` seconds for hydration. Returns whether it happened."""
        if self._hydrated.is_set():
            return True
        try:
            await asyncio.wait_for(self._hydrated.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def clear(self) -> None:
        await self._api.clear_cart()
        await self.replace(CartSnapshot())
