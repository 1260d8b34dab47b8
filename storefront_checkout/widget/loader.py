"""
SDK loader — gets a third-party buttons SDK onto the page.

The script may finish before anyone listens for it, so readiness is detected
two ways: the script task completing, or a periodic probe of the registry
finding the SDK already registered. After the timeout the loader gives up
and returns None; the caller offers a manual reload.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .base import ButtonsSDK

logger = logging.getLogger(__name__)

ScriptLoader = Callable[[], Awaitable[ButtonsSDK]]


class SdkRegistry:
    """Named SDK handles, shared by everything on the page."""

    def __init__(self):
        self._entries: dict[str, ButtonsSDK] = {}

    def register(self, name: str, sdk: ButtonsSDK) -> None:
        self._entries[name] = sdk
        logger.info("SDK registered: %s", name)

    def lookup(self, name: str) -> Optional[ButtonsSDK]:
        return self._entries.get(name)

    def unregister(self, name: str) -> None:
        self._entries.pop(name, None)


class SdkLoader:
    """Loads one SDK by name with a hard timeout."""

    def __init__(
        self,
        registry: SdkRegistry,
        script: ScriptLoader | None,
        name: str = "paypal",
        timeout: float = 10.0,
        poll_interval: float = 0.25,
    ):
        self._registry = registry
        self._script = script
        self._name = name
        self._timeout = timeout
        self._poll_interval = poll_interval

    async def _inject(self) -> ButtonsSDK:
        sdk = await self._script()
        self._registry.register(self._name, sdk)
        return sdk

    async def _watch(self) -> ButtonsSDK:
        while True:
            sdk = self._registry.lookup(self._name)
            if sdk is not None:
                return sdk
            await asyncio.sleep(self._poll_interval)

    async def load(self) -> Optional[ButtonsSDK]:
        """Return the SDK, or None if it is not available within the timeout."""
        existing = self._registry.lookup(self._name)
        if existing is not None:
            return existing

        pending: set[asyncio.Future] = {asyncio.ensure_future(self._watch())}
        if self._script is not None:
            pending.add(asyncio.ensure_future(self._inject()))
        else:
            logger.warning("No script configured for SDK %s; waiting for registration only", self._name)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timeout
        try:
            while pending:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                done, pending = await asyncio.wait(
                    pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
                )
                for task in done:
                    error = task.exception()
                    if error is not None:
                        logger.error("Failed to load %s SDK: %s", self._name, error)
                        continue
                    return task.result()
        finally:
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        logger.warning("%s SDK not loaded after %.1fs", self._name, self._timeout)
        return None
