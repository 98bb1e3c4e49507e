"""
ai-gateway: Fingerprint-keyed response cache.

Caches completed results keyed by a request fingerprint: a SHA-256 hash of
the ordered role/content pairs plus the model and temperature.

Features:
- TTL-based expiration (checked on lookup)
- Oldest-quarter eviction when the cache is full
- Per-entry and global hit/miss statistics
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Mapping

from ai_gateway.models import CompletionResult, Message

logger = logging.getLogger(__name__)


def fingerprint(
    messages: Iterable[Message | Mapping[str, Any]],
    model: str | None = None,
    temperature: float | None = None,
) -> str:
    """Deterministic, order-sensitive hash identifying a logical request."""
    canonical = json.dumps(
        {
            "messages": [
                [m.role, m.content] for m in (Message.coerce(raw) for raw in messages)
            ],
            "model": model or "",
            "temperature": temperature,
        },
        ensure_ascii=False,
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass
class CacheConfig:
    """Response cache settings.

    Attributes:
        enabled: Turn caching off entirely when False.
        ttl_seconds: Entry lifetime.
        max_entries: Capacity before the oldest quarter is evicted.
    """

    enabled: bool = True
    ttl_seconds: float = 300.0
    max_entries: int = 100


@dataclass
class CacheEntry:
    result: CompletionResult
    created_at: float = field(default_factory=time.time)
    hits: int = 0


@dataclass
class CacheStats:
    """Cache performance statistics."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0

    @property
    def hit_rate(self) -> float:
        """Hit rate as a fraction (0.0 to 1.0)."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total


class ResponseCache:
    """In-memory response cache.

    Example::

        cache = ResponseCache(CacheConfig(ttl_seconds=300, max_entries=100))
        fp = fingerprint(messages, model="gpt-4o-mini", temperature=0.7)

        hit = cache.lookup(fp)
        if hit is None:
            result = await call_provider(...)
            cache.insert(fp, result)
    """

    def __init__(self, config: CacheConfig | None = None) -> None:
        self.config = config or CacheConfig()
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self.stats = CacheStats()

    def lookup(self, key: str) -> CompletionResult | None:
        """Return a copy of the cached result flagged ``cached=True``, or None."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.stats.misses += 1
                return None

            if time.time() - entry.created_at >= self.config.ttl_seconds:
                del self._entries[key]
                self.stats.misses += 1
                return None

            entry.hits += 1
            self.stats.hits += 1
            return replace(entry.result, cached=True)

    def insert(self, key: str, result: CompletionResult) -> None:
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.config.max_entries:
                self._evict_oldest_quarter()
            self._entries[key] = CacheEntry(result=replace(result, cached=False))

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def prune(self) -> int:
        """Remove expired entries without counting misses."""
        cutoff = time.time() - self.config.ttl_seconds
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.created_at <= cutoff]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug(f"Cache pruned {len(expired)} expired entries")
        return len(expired)

    def clear(self) -> None:
        """Drop all entries and reset hit/miss counters."""
        with self._lock:
            self._entries.clear()
            self.stats = CacheStats()

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "size": len(self._entries),
                "hits": self.stats.hits,
                "misses": self.stats.misses,
                "hit_rate": round(self.stats.hit_rate, 3),
                "evictions": self.stats.evictions,
            }

    def _evict_oldest_quarter(self) -> None:
        """Evict the oldest 25% of entries by insertion time (caller holds lock)."""
        count = max(1, len(self._entries) // 4)
        oldest = sorted(self._entries.items(), key=lambda item: item[1].created_at)[:count]
        for key, _ in oldest:
            del self._entries[key]
        self.stats.evictions += count
        logger.debug(f"Cache evicted {count} oldest entries")
