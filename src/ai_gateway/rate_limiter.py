"""
ai-gateway: Fixed-window rate limiting at three independent scopes.

- global: every request through the gateway
- caller: one window per caller identifier
- provider: one window per provider (requests and, optionally, tokens)

Checks never count a request; ``record_send`` does, once per successful
attempt. A window whose duration elapsed resets on its next access.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class RateLimitConfig:
    """Window duration and per-scope request ceilings.

    Attributes:
        window_seconds: Duration of every window.
        global_max: Requests per window across all callers.
        caller_max: Requests per window per caller.
        provider_max: Requests per window per provider. A provider descriptor's
            own requests-per-minute limit wins when it is lower.
    """

    window_seconds: float = 60.0
    global_max: int = 60
    caller_max: int = 20
    provider_max: int = 50


@dataclass
class RateLimitDecision:
    """Outcome of a window check."""

    allowed: bool
    scope: str
    wait_seconds: float = 0.0
    reason: str = ""


@dataclass
class RateWindow:
    """A request counter plus the timestamp its window started."""

    start: float = field(default_factory=time.time)
    count: int = 0
    tokens: int = 0

    def roll(self, duration: float, now: float) -> None:
        if now - self.start >= duration:
            self.start = now
            self.count = 0
            self.tokens = 0

    def remaining_time(self, duration: float, now: float) -> float:
        return max(0.0, duration - (now - self.start))


class RateLimiter:
    """Thread-safe three-scope fixed-window limiter.

    Example::

        limiter = RateLimiter(RateLimitConfig(global_max=100))
        decision = limiter.check_caller("user-1")
        if not decision.allowed:
            raise RateLimitedError(decision.scope, decision.wait_seconds)
        ...
        limiter.record_send("user-1", "openai", tokens=350)
    """

    def __init__(self, config: RateLimitConfig | None = None) -> None:
        self.config = config or RateLimitConfig()
        self._global = RateWindow()
        self._callers: dict[str, RateWindow] = {}
        self._providers: dict[str, RateWindow] = {}
        self._provider_limits: dict[str, tuple[int, int]] = {}
        self._lock = threading.Lock()

    def set_provider_limits(
        self, provider: str, requests_per_window: int, tokens_per_window: int = 0
    ) -> None:
        """Register provider-side ceilings (0 = fall back to the config)."""
        with self._lock:
            self._provider_limits[provider] = (requests_per_window, tokens_per_window)

    def check_global(self) -> RateLimitDecision:
        with self._lock:
            return self._check(self._global, self.config.global_max, "global")

    def check_caller(self, caller_id: str) -> RateLimitDecision:
        with self._lock:
            window = self._callers.get(caller_id) or RateWindow()
            return self._check(window, self.config.caller_max, "caller")

    def check_provider(self, provider: str) -> RateLimitDecision:
        with self._lock:
            window = self._providers.get(provider) or RateWindow()
            max_requests, max_tokens = self._limits_for(provider)
            decision = self._check(window, max_requests, "provider")
            if decision.allowed and max_tokens and window.tokens >= max_tokens:
                now = time.time()
                return RateLimitDecision(
                    allowed=False,
                    scope="provider",
                    wait_seconds=window.remaining_time(self.config.window_seconds, now),
                    reason=f"Provider '{provider}' token limit reached",
                )
            return decision

    def record_send(self, caller_id: str, provider: str, tokens: int = 0) -> None:
        """Count one sent request in the global, caller and provider windows."""
        now = time.time()
        duration = self.config.window_seconds
        with self._lock:
            windows = (
                self._global,
                self._callers.setdefault(caller_id, RateWindow(start=now)),
                self._providers.setdefault(provider, RateWindow(start=now)),
            )
            for window in windows:
                window.roll(duration, now)
                window.count += 1
                window.tokens += tokens

    def prune(self) -> int:
        """Drop caller windows idle for more than two window durations."""
        cutoff = time.time() - 2 * self.config.window_seconds
        with self._lock:
            stale = [k for k, w in self._callers.items() if w.start < cutoff]
            for caller_id in stale:
                del self._callers[caller_id]
        if stale:
            logger.debug(f"Pruned {len(stale)} idle caller window(s)")
        return len(stale)

    def reset(self) -> None:
        with self._lock:
            self._global = RateWindow()
            self._callers.clear()
            self._providers.clear()

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "window_seconds": self.config.window_seconds,
                "global": {"count": self._global.count, "max": self.config.global_max},
                "callers": {k: w.count for k, w in self._callers.items()},
                "providers": {
                    k: {"count": w.count, "tokens": w.tokens}
                    for k, w in self._providers.items()
                },
            }

    def _limits_for(self, provider: str) -> tuple[int, int]:
        requests, tokens = self._provider_limits.get(provider, (0, 0))
        max_requests = self.config.provider_max
        if requests:
            max_requests = min(max_requests, requests)
        return max_requests, tokens

    def _check(self, window: RateWindow, maximum: int, scope: str) -> RateLimitDecision:
        """Roll the window if expired, then compare (caller holds the lock)."""
        now = time.time()
        duration = self.config.window_seconds
        window.roll(duration, now)
        if window.count < maximum:
            return RateLimitDecision(allowed=True, scope=scope)

        wait = window.remaining_time(duration, now)
        logger.debug(f"{scope} rate limit hit ({window.count}/{maximum}), wait {wait:.1f}s")
        return RateLimitDecision(
            allowed=False,
            scope=scope,
            wait_seconds=wait,
            reason=f"{scope.capitalize()} rate limit exceeded ({maximum} per {duration:g}s)",
        )
