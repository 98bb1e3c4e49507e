"""
ai-gateway: Bounded priority admission queue with a single processing slot.

Requests are ordered by priority (CRITICAL first) with FIFO ordering within
the same priority level. A processor task wakes every ``tick_interval``
seconds, expires items that waited longer than their timeout, and starts at
most one item when nothing else is in flight. Only one queued item runs at a
time, which bounds load on the providers regardless of caller bursts.
"""

from __future__ import annotations

import asyncio
import contextlib
import heapq
import itertools
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from ai_gateway.errors import QueueClosedError, QueueFullError, QueueTimeoutError
from ai_gateway.models import Priority

logger = logging.getLogger(__name__)


@dataclass
class QueueConfig:
    """Admission queue settings.

    Attributes:
        max_size: Maximum pending items; further submissions are rejected.
        timeout: Seconds an item may wait and run before its caller is failed.
        tick_interval: Seconds between processor ticks.
    """

    max_size: int = 50
    timeout: float = 60.0
    tick_interval: float = 0.1


@dataclass(order=True)
class QueueItem:
    """A pending request and the future its caller awaits."""

    priority: int
    sequence: int
    id: str = field(compare=False)
    payload: Any = field(compare=False)
    timeout: float = field(compare=False)
    future: asyncio.Future = field(compare=False, repr=False)
    enqueued_at: float = field(default_factory=time.monotonic, compare=False)

    def expired(self, now: float) -> bool:
        return now - self.enqueued_at >= self.timeout


class AdmissionQueue:
    """Priority admission queue feeding a single-slot executor.

    Example::

        queue = AdmissionQueue(executor=gateway.execute_request, config=QueueConfig())
        queue.start()
        result = await queue.submit(request, priority=Priority.HIGH)
    """

    def __init__(
        self,
        executor: Callable[[Any], Awaitable[Any]],
        config: QueueConfig | None = None,
    ) -> None:
        self.config = config or QueueConfig()
        self._executor = executor
        self._heap: list[QueueItem] = []
        self._sequence = itertools.count()
        self._current: QueueItem | None = None
        self._current_task: asyncio.Task | None = None
        self._processor: asyncio.Task | None = None
        self._total_submitted = 0
        self._total_rejected = 0
        self._total_timed_out = 0
        self._total_processed = 0

    # ──────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._processor is not None and not self._processor.done()

    def start(self) -> None:
        """Start the processor task on the running event loop."""
        if self.running:
            return
        self._processor = asyncio.get_running_loop().create_task(self._run())
        logger.debug(f"Admission queue started (tick={self.config.tick_interval}s)")

    async def stop(self) -> None:
        """Stop processing and fail every pending caller."""
        if self._processor is not None:
            self._processor.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._processor
            self._processor = None

        while self._heap:
            item = heapq.heappop(self._heap)
            self._settle(item, error=QueueClosedError("Request queue stopped"))
        if self._current_task is not None:
            self._current_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._current_task

    # ──────────────────────────────────────────────────────────────────────
    # Submission
    # ──────────────────────────────────────────────────────────────────────

    def enqueue(
        self,
        payload: Any,
        priority: Priority | int = Priority.NORMAL,
        timeout: float | None = None,
    ) -> QueueItem:
        """Add an item without waiting for it. Raises QueueFullError when full."""
        if len(self._heap) >= self.config.max_size:
            self._total_rejected += 1
            logger.debug(f"Queue full ({len(self._heap)}/{self.config.max_size}), rejected request")
            raise QueueFullError(self.config.max_size)

        item = QueueItem(
            priority=int(priority),
            sequence=next(self._sequence),
            id=uuid.uuid4().hex[:12],
            payload=payload,
            timeout=timeout if timeout is not None else self.config.timeout,
            future=asyncio.get_running_loop().create_future(),
        )
        heapq.heappush(self._heap, item)
        self._total_submitted += 1
        self.start()
        return item

    async def submit(
        self,
        payload: Any,
        priority: Priority | int = Priority.NORMAL,
        timeout: float | None = None,
    ) -> Any:
        """Enqueue ``payload`` and wait for the executor's result."""
        item = self.enqueue(payload, priority, timeout)
        return await item.future

    def cancel(self, item_id: str) -> bool:
        """Remove a pending item; its caller sees CancelledError."""
        for index, item in enumerate(self._heap):
            if item.id == item_id:
                self._heap.pop(index)
                heapq.heapify(self._heap)
                if not item.future.done():
                    item.future.cancel()
                return True
        return False

    # ──────────────────────────────────────────────────────────────────────
    # Introspection
    # ──────────────────────────────────────────────────────────────────────

    @property
    def depth(self) -> int:
        """Number of items waiting (excluding the one in flight)."""
        return len(self._heap)

    @property
    def busy(self) -> bool:
        return self._current is not None

    @property
    def is_active(self) -> bool:
        """True while an item is waiting or in flight."""
        return bool(self._heap) or self.busy

    def get_stats(self) -> dict[str, Any]:
        return {
            "depth": self.depth,
            "max_size": self.config.max_size,
            "in_flight": 1 if self.busy else 0,
            "total_submitted": self._total_submitted,
            "total_rejected": self._total_rejected,
            "total_timed_out": self._total_timed_out,
            "total_processed": self._total_processed,
        }

    # ──────────────────────────────────────────────────────────────────────
    # Processing
    # ──────────────────────────────────────────────────────────────────────

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.config.tick_interval)
            self.tick()

    def tick(self) -> None:
        """One processor step: expire stale items, then start the next one."""
        now = time.monotonic()
        self._expire(now)

        if self._current is not None or not self._heap:
            return

        item = heapq.heappop(self._heap)
        self._current = item
        self._current_task = asyncio.get_running_loop().create_task(self._process(item))

    async def _process(self, item: QueueItem) -> None:
        try:
            result = await self._executor(item.payload)
        except asyncio.CancelledError:
            self._settle(item, error=QueueClosedError("Request queue stopped"))
            raise
        except Exception as e:
            self._settle(item, error=e)
        else:
            self._settle(item, result=result)
        finally:
            self._total_processed += 1
            self._current = None
            self._current_task = None

    def _expire(self, now: float) -> None:
        expired = [item for item in self._heap if item.expired(now)]
        if expired:
            self._heap = [item for item in self._heap if not item.expired(now)]
            heapq.heapify(self._heap)
            for item in expired:
                self._fail_timeout(item)

        # The in-flight call keeps running; only its caller is released.
        current = self._current
        if current is not None and not current.future.done() and current.expired(now):
            self._fail_timeout(current)

    def _fail_timeout(self, item: QueueItem) -> None:
        self._total_timed_out += 1
        logger.warning(f"Queued request {item.id} timed out after {item.timeout:.1f}s")
        self._settle(item, error=QueueTimeoutError(item.id, item.timeout))

    @staticmethod
    def _settle(item: QueueItem, result: Any = None, error: BaseException | None = None) -> None:
        if item.future.done():
            return
        if error is not None:
            item.future.set_exception(error)
        else:
            item.future.set_result(result)
