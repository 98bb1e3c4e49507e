"""
ai-gateway: Process-wide request metrics.

Thread-safe counters for request outcomes, cache efficiency, latency and
per-provider usage. Snapshots are plain dictionaries so they can be
persisted and restored across restarts.
"""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass, field
from typing import Any, Mapping


@dataclass
class GatewayMetrics:
    """Aggregate gateway metrics.

    Attributes:
        total_requests: Requests that reached the orchestrator.
        successes: Requests answered by a provider.
        failures: Requests where every provider failed.
        cache_hits: Requests served from the response cache.
        cache_misses: Cache lookups that found nothing.
        deduplicated: Requests that joined an identical in-flight request.
        avg_latency_ms: Rolling average provider latency of successful calls.
        latency_samples: Number of samples behind ``avg_latency_ms``.
        requests_by_provider: Successful completions per provider.
        failures_by_provider: Failed provider attempts per provider.
        tokens_by_provider: Total tokens per provider.
        estimated_cost: Estimated spend in provider currency units.
    """

    total_requests: int = 0
    successes: int = 0
    failures: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    deduplicated: int = 0
    avg_latency_ms: float = 0.0
    latency_samples: int = 0
    requests_by_provider: dict[str, int] = field(default_factory=dict)
    failures_by_provider: dict[str, int] = field(default_factory=dict)
    tokens_by_provider: dict[str, int] = field(default_factory=dict)
    estimated_cost: float = 0.0


class MetricsTracker:
    """Thread-safe metrics aggregate for the gateway."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._metrics = GatewayMetrics()

    def record_request(self) -> None:
        with self._lock:
            self._metrics.total_requests += 1

    def record_success(
        self, provider: str, latency_ms: float, tokens: int = 0, cost: float = 0.0
    ) -> None:
        with self._lock:
            m = self._metrics
            m.successes += 1
            m.requests_by_provider[provider] = m.requests_by_provider.get(provider, 0) + 1
            m.tokens_by_provider[provider] = m.tokens_by_provider.get(provider, 0) + tokens
            m.estimated_cost += cost

            m.latency_samples += 1
            m.avg_latency_ms += (latency_ms - m.avg_latency_ms) / m.latency_samples

    def record_provider_failure(self, provider: str) -> None:
        with self._lock:
            m = self._metrics
            m.failures_by_provider[provider] = m.failures_by_provider.get(provider, 0) + 1

    def record_failure(self) -> None:
        with self._lock:
            self._metrics.failures += 1

    def record_cache_hit(self) -> None:
        with self._lock:
            self._metrics.cache_hits += 1

    def record_cache_miss(self) -> None:
        with self._lock:
            self._metrics.cache_misses += 1

    def record_deduplicated(self) -> None:
        with self._lock:
            self._metrics.deduplicated += 1

    def snapshot(self) -> dict[str, Any]:
        """Current metrics as a dictionary, with derived rates."""
        with self._lock:
            data = asdict(self._metrics)
        completed = data["successes"] + data["failures"]
        lookups = data["cache_hits"] + data["cache_misses"]
        data["success_rate"] = data["successes"] / max(completed, 1)
        data["cache_hit_rate"] = data["cache_hits"] / max(lookups, 1)
        data["avg_latency_ms"] = round(data["avg_latency_ms"], 1)
        return data

    def restore(self, data: Mapping[str, Any]) -> None:
        """Load a persisted snapshot; derived and unknown keys are ignored."""
        known = GatewayMetrics.__dataclass_fields__
        values = {k: v for k, v in data.items() if k in known}
        with self._lock:
            self._metrics = GatewayMetrics(**values)

    def reset(self) -> None:
        with self._lock:
            self._metrics = GatewayMetrics()
