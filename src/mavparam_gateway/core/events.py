"""Multi-subscriber notification channels."""

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)


class EventChannel:
    """Fan-out of one event to any number of subscribers.

    Subscribers may be plain callables or coroutine functions. Coroutines
    are scheduled on the running loop rather than awaited, so ``emit`` never
    suspends and can be called while the emitter holds no lock. A failing
    subscriber is logged and does not affect the others.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._callbacks: list[Callable[..., Any]] = []
        self._pending: set[asyncio.Task] = set()

    def subscribe(self, callback: Callable[..., Any]) -> Callable[[], None]:
        """Register a callback.

        Returns:
            A function that removes the subscription.
        """
        self._callbacks.append(callback)
        return lambda: self.unsubscribe(callback)

    def unsubscribe(self, callback: Callable[..., Any]) -> None:
        """Remove a callback (no-op if it is not registered)."""
        try:
            self._callbacks.remove(callback)
        except ValueError:
            pass

    @property
    def subscriber_count(self) -> int:
        return len(self._callbacks)

    def emit(self, *args: Any) -> None:
        """Notify every subscriber with ``args``."""
        for callback in list(self._callbacks):
            try:
                result = callback(*args)
            except Exception as e:
                logger.error("Error in %s callback %r: %s", self.name, callback, e)
                continue

            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._pending.add(task)
                task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Error in %s callback: %s", self.name, exc)

    async def drain(self) -> None:
        """Wait for scheduled coroutine subscribers to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
