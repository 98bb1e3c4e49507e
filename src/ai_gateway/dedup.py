"""
ai-gateway: In-flight request deduplication.

Concurrent callers asking for the same fingerprint share a single pending
computation, so identical requests cost one provider call.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Deduplicator:
    """Collapses concurrent identical computations.

    The shared computation runs as its own task and is shielded from each
    waiter, so a cancelled waiter never cancels the work for the others.
    """

    def __init__(self) -> None:
        self._in_flight: dict[str, asyncio.Future] = {}
        self.collapsed = 0

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def is_pending(self, key: str) -> bool:
        return key in self._in_flight

    async def dedupe(self, key: str, compute: Callable[[], Awaitable[T]]) -> T:
        """Return the pending result for ``key``, starting ``compute`` if none."""
        pending = self._in_flight.get(key)
        if pending is not None:
            self.collapsed += 1
            logger.debug(f"Joined in-flight request {key[:12]}")
            return await asyncio.shield(pending)

        task = asyncio.ensure_future(compute())
        self._in_flight[key] = task
        task.add_done_callback(lambda _: self._release(key, task))
        return await asyncio.shield(task)

    def _release(self, key: str, task: asyncio.Future) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        # Mark the exception retrieved when every waiter was cancelled.
        if not task.cancelled():
            task.exception()
