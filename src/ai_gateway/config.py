"""
ai-gateway: Gateway configuration.

Each component owns its settings dataclass; ``GatewayConfig`` composes them.

Example::

    config = GatewayConfig.from_dict({
        "rate_limit": {"caller_max": 10},
        "circuit_breaker": {"failure_threshold": 3, "reset_timeout": 30},
        "cache": {"ttl_seconds": 600},
    })
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Mapping

from ai_gateway.cache import CacheConfig
from ai_gateway.circuit_breaker import CircuitBreakerConfig
from ai_gateway.credentials import CredentialScoring
from ai_gateway.queue import QueueConfig
from ai_gateway.rate_limiter import RateLimitConfig
from ai_gateway.retry import RetryConfig

_SECTIONS: dict[str, type] = {
    "rate_limit": RateLimitConfig,
    "queue": QueueConfig,
    "circuit_breaker": CircuitBreakerConfig,
    "retry": RetryConfig,
    "cache": CacheConfig,
    "credentials": CredentialScoring,
}


@dataclass
class GatewayConfig:
    """Complete gateway configuration.

    Attributes:
        persist_interval: Seconds between state flushes to the store (0 = never).
        cleanup_interval: Seconds between prunes of idle caller windows and
            expired cache entries (0 = never).
        always_queue: Route every call through the single-slot admission queue
            instead of executing directly while the queue is idle.
        credit_cost: Credits charged per successful (uncached) completion.
    """

    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    circuit_breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    credentials: CredentialScoring = field(default_factory=CredentialScoring)
    persist_interval: float = 60.0
    cleanup_interval: float = 60.0
    always_queue: bool = False
    credit_cost: float = 1.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> GatewayConfig:
        """Build a config from a nested mapping.

        Raises:
            ValueError: On unknown sections or keys.
        """
        kwargs: dict[str, Any] = {}
        scalars = {"persist_interval", "cleanup_interval", "always_queue", "credit_cost"}
        for key, value in data.items():
            if key in _SECTIONS:
                kwargs[key] = _build_section(key, _SECTIONS[key], value)
            elif key in scalars:
                kwargs[key] = value
            else:
                raise ValueError(f"Unknown config key '{key}'")
        return cls(**kwargs)


def _build_section(name: str, section_cls: type, values: Mapping[str, Any]) -> Any:
    allowed = {f.name for f in fields(section_cls)}
    unknown = set(values) - allowed
    if unknown:
        raise ValueError(f"Unknown {name} option(s): {', '.join(sorted(unknown))}")
    return section_cls(**values)
