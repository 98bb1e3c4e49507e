"""Tests for the default credit, storage and event collaborators."""

import json

import pytest

from ai_gateway.collaborators import (
    CreditAuthority,
    CreditLedger,
    EventBus,
    JsonFileStore,
    KeyValueStore,
    MemoryStore,
    UnlimitedCredits,
)


class TestCredits:
    @pytest.mark.asyncio
    async def test_ledger_balance(self) -> None:
        ledger = CreditLedger(balance=2)
        assert isinstance(ledger, CreditAuthority)
        assert ledger.can_use() is True

        await ledger.consume(1, "ai_completion:openai")
        await ledger.consume(5, "ai_completion:groq")

        assert ledger.balance == 0
        assert ledger.can_use() is False
        assert ledger.history[0] == (1, "ai_completion:openai")

    @pytest.mark.asyncio
    async def test_unlimited(self) -> None:
        credits = UnlimitedCredits()
        await credits.consume(1.0, "x")
        assert credits.can_use() is True
        assert credits.consumed == 1.0


class TestMemoryStore:
    @pytest.mark.asyncio
    async def test_get_only_known_keys(self) -> None:
        store = MemoryStore({"a": 1})
        assert isinstance(store, KeyValueStore)
        await store.set({"b": 2})
        assert await store.get(["a", "b", "c"]) == {"a": 1, "b": 2}


class TestJsonFileStore:
    @pytest.mark.asyncio
    async def test_missing_file_is_empty(self, tmp_path) -> None:
        store = JsonFileStore(tmp_path / "state.json")
        assert await store.get(["anything"]) == {}

    @pytest.mark.asyncio
    async def test_set_merges_and_persists(self, tmp_path) -> None:
        path = tmp_path / "nested" / "state.json"
        store = JsonFileStore(path)
        await store.set({"a": {"x": 1}})
        await store.set({"b": [1, 2]})

        assert json.loads(path.read_text()) == {"a": {"x": 1}, "b": [1, 2]}
        assert not path.with_suffix(".json.tmp").exists()

        reopened = JsonFileStore(path)
        assert await reopened.get(["a", "b"]) == {"a": {"x": 1}, "b": [1, 2]}

    @pytest.mark.asyncio
    async def test_corrupt_file_starts_fresh(self, tmp_path) -> None:
        path = tmp_path / "state.json"
        path.write_text("{not json")
        store = JsonFileStore(path)

        assert await store.get(["a"]) == {}
        await store.set({"a": 1})
        assert json.loads(path.read_text()) == {"a": 1}


class TestEventBus:
    def test_fan_out_and_unsubscribe(self) -> None:
        bus = EventBus()
        first: list[tuple[str, dict]] = []
        second: list[tuple[str, dict]] = []
        bus.subscribe(lambda event, payload: first.append((event, payload)))
        unsubscribe = bus.subscribe(lambda event, payload: second.append((event, payload)))

        bus.notify("initialized", {"providers": ["openai"]})
        unsubscribe()
        bus.notify("circuit_open", {"provider": "openai"})

        assert first == [
            ("initialized", {"providers": ["openai"]}),
            ("circuit_open", {"provider": "openai"}),
        ]
        assert second == [("initialized", {"providers": ["openai"]})]

    def test_listener_error_is_contained(self) -> None:
        bus = EventBus()
        received: list[str] = []

        def broken(event, payload):
            raise RuntimeError("listener bug")

        bus.subscribe(broken)
        bus.subscribe(lambda event, payload: received.append(event))

        bus.notify("credits_depleted")
        assert received == ["credits_depleted"]
