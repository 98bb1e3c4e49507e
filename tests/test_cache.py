"""Tests for request fingerprinting, the response cache and in-flight dedup."""

import asyncio
import time

import pytest

from ai_gateway.cache import CacheConfig, ResponseCache, fingerprint
from ai_gateway.dedup import Deduplicator
from ai_gateway.models import CompletionResult, Message, TokenUsage


def make_result(text: str = "hello") -> CompletionResult:
    return CompletionResult(
        text=text,
        usage=TokenUsage(prompt_tokens=3, completion_tokens=4),
        provider="openai",
        model="gpt-4o-mini",
        latency_ms=120.0,
    )


class TestFingerprint:
    def test_deterministic(self) -> None:
        messages = [{"role": "user", "content": "hi"}]
        assert fingerprint(messages, "m", 0.7) == fingerprint(messages, "m", 0.7)

    def test_dicts_and_messages_agree(self) -> None:
        as_dicts = [{"role": "system", "content": "be brief"}, {"role": "user", "content": "hi"}]
        as_messages = [Message("system", "be brief"), Message("user", "hi")]
        assert fingerprint(as_dicts) == fingerprint(as_messages)

    def test_order_sensitive(self) -> None:
        a = [Message("user", "one"), Message("user", "two")]
        b = [Message("user", "two"), Message("user", "one")]
        assert fingerprint(a) != fingerprint(b)

    def test_model_and_temperature_matter(self) -> None:
        messages = [Message("user", "hi")]
        base = fingerprint(messages, "m1", 0.7)
        assert fingerprint(messages, "m2", 0.7) != base
        assert fingerprint(messages, "m1", 0.2) != base

    def test_role_matters(self) -> None:
        assert fingerprint([Message("user", "x")]) != fingerprint([Message("system", "x")])


class TestResponseCache:
    def test_miss_then_hit(self) -> None:
        cache = ResponseCache()
        assert cache.lookup("k") is None

        cache.insert("k", make_result())
        hit = cache.lookup("k")

        assert hit is not None
        assert hit.text == "hello"
        assert hit.cached is True
        assert cache.get_stats()["hits"] == 1
        assert cache.get_stats()["misses"] == 1

    def test_stored_entry_not_flagged_cached(self) -> None:
        cache = ResponseCache()
        original = make_result()
        cache.insert("k", original)
        cache.lookup("k")
        assert original.cached is False

    def test_ttl_expiry(self) -> None:
        cache = ResponseCache(CacheConfig(ttl_seconds=0.05))
        cache.insert("k", make_result())
        time.sleep(0.08)

        assert cache.lookup("k") is None
        assert "k" not in cache
        assert cache.get_stats()["misses"] == 1

    def test_prune_removes_only_expired(self) -> None:
        cache = ResponseCache(CacheConfig(ttl_seconds=0.05))
        cache.insert("old", make_result())
        time.sleep(0.08)
        cache.insert("fresh", make_result())

        assert cache.prune() == 1
        assert "old" not in cache
        assert "fresh" in cache
        assert cache.get_stats()["misses"] == 0

    def test_evicts_oldest_quarter_when_full(self) -> None:
        cache = ResponseCache(CacheConfig(max_entries=8))
        for i in range(8):
            cache.insert(f"k{i}", make_result(f"r{i}"))
            time.sleep(0.001)

        cache.insert("new", make_result("new"))

        assert len(cache) == 7
        assert "k0" not in cache
        assert "k1" not in cache
        assert "k2" in cache
        assert "new" in cache
        assert cache.get_stats()["evictions"] == 2

    def test_overwrite_does_not_evict(self) -> None:
        cache = ResponseCache(CacheConfig(max_entries=2))
        cache.insert("a", make_result())
        cache.insert("b", make_result())
        cache.insert("a", make_result("updated"))

        assert len(cache) == 2
        assert cache.lookup("a").text == "updated"

    def test_clear_resets_stats(self) -> None:
        cache = ResponseCache()
        cache.insert("k", make_result())
        cache.lookup("k")
        cache.clear()

        assert len(cache) == 0
        assert cache.get_stats() == {
            "size": 0,
            "hits": 0,
            "misses": 0,
            "hit_rate": 0.0,
            "evictions": 0,
        }


class TestDeduplicator:
    @pytest.mark.asyncio
    async def test_concurrent_identical_calls_share_one_computation(self) -> None:
        dedup = Deduplicator()
        calls = 0

        async def compute() -> str:
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.05)
            return "shared"

        results = await asyncio.gather(*(dedup.dedupe("k", compute) for _ in range(5)))

        assert results == ["shared"] * 5
        assert calls == 1
        assert dedup.collapsed == 4
        assert dedup.in_flight == 0

    @pytest.mark.asyncio
    async def test_distinct_keys_run_separately(self) -> None:
        dedup = Deduplicator()
        calls: list[str] = []

        async def compute_for(key: str):
            async def compute() -> str:
                calls.append(key)
                await asyncio.sleep(0.01)
                return key

            return await dedup.dedupe(key, compute)

        assert await asyncio.gather(compute_for("a"), compute_for("b")) == ["a", "b"]
        assert sorted(calls) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_error_shared_and_entry_released(self) -> None:
        dedup = Deduplicator()

        async def compute() -> str:
            await asyncio.sleep(0.02)
            raise RuntimeError("upstream down")

        results = await asyncio.gather(
            dedup.dedupe("k", compute), dedup.dedupe("k", compute), return_exceptions=True
        )

        assert all(isinstance(r, RuntimeError) for r in results)
        assert dedup.is_pending("k") is False

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_cancel_others(self) -> None:
        dedup = Deduplicator()

        async def compute() -> str:
            await asyncio.sleep(0.05)
            return "done"

        first = asyncio.ensure_future(dedup.dedupe("k", compute))
        await asyncio.sleep(0)
        second = asyncio.ensure_future(dedup.dedupe("k", compute))
        await asyncio.sleep(0)

        first.cancel()
        assert await second == "done"
