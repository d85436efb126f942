"""
TEMPESTWATCH Event Channels

A small observer registry used by every ingestion component in place of
ad-hoc callback lists. Delivery is ordered and complete: listeners run in
registration order and all of them have run before emit() returns, so a
caller can assert post-conditions right after injecting a message.
"""

import asyncio
import inspect
from typing import Any, Callable, List

from tempestwatch.logging_config import get_logger

__all__ = ["EventChannel"]

logger = get_logger(__name__)


class EventChannel:
    """
    Named publication channel with a listener registry.

    Usage:
        weather_updated = EventChannel("weather_updated")
        weather_updated.subscribe(on_weather)
        await weather_updated.emit(snapshot)
    """

    def __init__(self, name: str):
        self.name = name
        self._callbacks: List[Callable] = []

    def __len__(self) -> int:
        return len(self._callbacks)

    def __repr__(self) -> str:
        return f"EventChannel({self.name!r}, listeners={len(self._callbacks)})"

    def subscribe(self, callback: Callable) -> None:
        """Register a listener (plain function or coroutine function)."""
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unsubscribe(self, callback: Callable) -> None:
        """Remove a listener; unknown listeners are ignored."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def clear(self) -> None:
        self._callbacks.clear()

    async def emit(self, *args: Any) -> None:
        """
        Deliver ``args`` to every listener in registration order.

        A failing listener is logged and skipped; the rest still run.
        """
        for callback in list(self._callbacks):
            try:
                result = callback(*args)
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Listener error on {self.name}: {e}")
