"""
ai-gateway: Bounded exponential backoff around a single provider attempt.

Delay before retry ``n`` (1-based) is ``min(base_delay * 2**(n-1), max_delay)``.
Authorization and credit errors are not retried.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ai_gateway.errors import is_retryable

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Retry/backoff settings.

    Attributes:
        max_attempts: Attempts per provider, including the first one.
        base_delay: Delay in seconds before the first retry.
        max_delay: Ceiling for any single delay.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0


async def with_retry(
    attempt_fn: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``attempt_fn`` with retries; the last error propagates on exhaustion.

    Args:
        attempt_fn: Zero-argument coroutine factory performing one attempt.
        config: Retry settings.
        sleep: Sleep coroutine, replaceable in tests.
    """
    config = config or RetryConfig()
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(max(1, config.max_attempts)),
        wait=wait_exponential(multiplier=config.base_delay, min=0, max=config.max_delay),
        retry=retry_if_exception(is_retryable),
        before_sleep=before_sleep_log(logger, logging.DEBUG),
        sleep=sleep,
        reraise=True,
    ):
        with attempt:
            return await attempt_fn()
    raise AssertionError("retry loop exited without a result")
