"""
ai-gateway: Per-provider circuit breakers.

Stops sending requests to a provider that keeps failing. After a reset
timeout the circuit lets a few trial requests through to test recovery.

State machine:
    CLOSED ──(failures >= threshold)──> OPEN
    OPEN ──(reset_timeout elapsed, checked lazily)──> HALF_OPEN
    HALF_OPEN ──(half_open_successes consecutive successes)──> CLOSED
    any state ──(failure pushes count to threshold)──> OPEN

A success outside HALF_OPEN only decrements the failure count.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Tripped, requests are rejected without calling the provider
    HALF_OPEN = "half_open"  # Recovery test


@dataclass
class CircuitBreakerConfig:
    """Configuration shared by all provider circuits.

    Attributes:
        failure_threshold: Failure count that opens the circuit.
        reset_timeout: Seconds after the last failure before HALF_OPEN.
        half_open_successes: Consecutive HALF_OPEN successes that close the circuit.
    """

    failure_threshold: int = 5
    reset_timeout: float = 60.0
    half_open_successes: int = 3


class CircuitBreaker:
    """Circuit for a single provider.

    Thread-safe: all state transitions are protected by a reentrant lock.

    Example::

        cb = CircuitBreaker("openai", CircuitBreakerConfig(failure_threshold=3))
        if not cb.is_open():
            ...
            cb.record_result(success)
    """

    def __init__(
        self,
        name: str,
        config: CircuitBreakerConfig | None = None,
        on_open: Callable[[str], None] | None = None,
    ) -> None:
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._on_open = on_open
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time: float | None = None
        self._last_state_change: float = time.time()
        self._total_trips = 0
        self._recent_errors: list[str] = []
        self._lock = threading.RLock()

    @property
    def state(self) -> CircuitState:
        """Current state, applying the lazy OPEN → HALF_OPEN transition."""
        with self._lock:
            if self._state == CircuitState.OPEN and self._should_half_open():
                self._transition_to(CircuitState.HALF_OPEN)
                self._success_count = 0
            return self._state

    def is_open(self) -> bool:
        """True when requests must be rejected without calling the provider."""
        return self.state == CircuitState.OPEN

    def record_result(self, success: bool, error: str | None = None) -> None:
        """Record the outcome of one completed attempt."""
        if success:
            self.record_success()
        else:
            self.record_failure(error)

    def record_success(self) -> None:
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._success_count += 1
                if self._success_count >= self.config.half_open_successes:
                    self._transition_to(CircuitState.CLOSED)
                    self._failure_count = 0
                    self._success_count = 0
                    self._recent_errors.clear()
            else:
                # Does not close an OPEN circuit; only the reset timeout does.
                self._failure_count = max(0, self._failure_count - 1)

    def record_failure(self, error: str | None = None) -> None:
        """Record a failed attempt.

        Args:
            error: Optional error description for diagnostics.
        """
        opened = False
        with self._lock:
            self._failure_count += 1
            if self._state == CircuitState.HALF_OPEN:
                self._success_count = 0

            if error:
                self._recent_errors.append(error)
                if len(self._recent_errors) > 10:
                    self._recent_errors = self._recent_errors[-10:]

            if self._failure_count >= self.config.failure_threshold:
                self._last_failure_time = time.time()
                if self._state != CircuitState.OPEN:
                    self._transition_to(CircuitState.OPEN)
                    self._total_trips += 1
                    opened = True
            elif self._state == CircuitState.CLOSED:
                self._last_failure_time = time.time()

        if opened and self._on_open is not None:
            self._on_open(self.name)

    def reset(self) -> None:
        """Manually reset the circuit to CLOSED."""
        with self._lock:
            self._transition_to(CircuitState.CLOSED)
            self._failure_count = 0
            self._success_count = 0
            self._recent_errors.clear()

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "name": self.name,
                "state": self._state.value,
                "failure_count": self._failure_count,
                "success_count": self._success_count,
                "total_trips": self._total_trips,
                "last_failure": self._last_failure_time,
                "last_state_change": self._last_state_change,
                "recent_errors": list(self._recent_errors),
            }

    def _should_half_open(self) -> bool:
        if self._last_failure_time is None:
            return False
        return time.time() - self._last_failure_time >= self.config.reset_timeout

    def _transition_to(self, new_state: CircuitState) -> None:
        """Internal state transition (caller must hold lock)."""
        old_state = self._state
        self._state = new_state
        self._last_state_change = time.time()
        if old_state != new_state:
            logger.info(
                f"Circuit breaker '{self.name}': {old_state.value} → {new_state.value}"
            )


class CircuitBreakerRegistry:
    """Lazily created circuit breakers, one per provider."""

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        on_open: Callable[[str], None] | None = None,
    ) -> None:
        self.config = config or CircuitBreakerConfig()
        self._on_open = on_open
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def get(self, provider: str) -> CircuitBreaker:
        with self._lock:
            breaker = self._breakers.get(provider)
            if breaker is None:
                breaker = CircuitBreaker(provider, self.config, on_open=self._on_open)
                self._breakers[provider] = breaker
            return breaker

    def is_open(self, provider: str) -> bool:
        return self.get(provider).is_open()

    def record_result(self, provider: str, success: bool, error: str | None = None) -> None:
        self.get(provider).record_result(success, error)

    def states(self) -> dict[str, str]:
        with self._lock:
            breakers = list(self._breakers.values())
        return {b.name: b.state.value for b in breakers}

    def reset(self, provider: str | None = None) -> None:
        with self._lock:
            breakers = (
                list(self._breakers.values())
                if provider is None
                else [self._breakers[provider]] if provider in self._breakers else []
            )
        for breaker in breakers:
            breaker.reset()

    def get_stats(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            breakers = list(self._breakers.values())
        return {b.name: b.get_stats() for b in breakers}
