"""
ai-gateway: Interfaces for the collaborators the gateway consumes.

- CreditAuthority: consulted before a completion and charged after it
- KeyValueStore: loads and saves credentials and metrics
- EventNotifier: fire-and-forget notifications for UI modules

Each protocol ships with a small default implementation.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Protocol, runtime_checkable

import aiofiles

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────────────────────
# Credits
# ──────────────────────────────────────────────────────────────────────────


@runtime_checkable
class CreditAuthority(Protocol):
    def can_use(self) -> bool:
        ...

    async def consume(self, amount: float, reason: str) -> None:
        ...


class UnlimitedCredits:
    """Credit authority that never refuses."""

    def __init__(self) -> None:
        self.consumed = 0.0

    def can_use(self) -> bool:
        return True

    async def consume(self, amount: float, reason: str) -> None:
        self.consumed += amount


class CreditLedger:
    """Simple balance-based credit authority."""

    def __init__(self, balance: float) -> None:
        self.balance = balance
        self.history: list[tuple[float, str]] = []

    def can_use(self) -> bool:
        return self.balance > 0

    async def consume(self, amount: float, reason: str) -> None:
        self.balance = max(0.0, self.balance - amount)
        self.history.append((amount, reason))


# ──────────────────────────────────────────────────────────────────────────
# Persistence
# ──────────────────────────────────────────────────────────────────────────


@runtime_checkable
class KeyValueStore(Protocol):
    async def get(self, keys: Iterable[str]) -> dict[str, Any]:
        ...

    async def set(self, items: Mapping[str, Any]) -> None:
        ...


class MemoryStore:
    """Process-local store, mainly for tests."""

    def __init__(self, data: Mapping[str, Any] | None = None) -> None:
        self.data: dict[str, Any] = dict(data or {})

    async def get(self, keys: Iterable[str]) -> dict[str, Any]:
        return {k: self.data[k] for k in keys if k in self.data}

    async def set(self, items: Mapping[str, Any]) -> None:
        self.data.update(items)


class JsonFileStore:
    """Key-value store persisted as a single JSON document.

    Writes go to a temporary file that replaces the target, so a crash
    mid-write leaves the previous document intact.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = asyncio.Lock()

    async def _read(self) -> dict[str, Any]:
        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                content = await f.read()
        except FileNotFoundError:
            return {}
        if not content.strip():
            return {}
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            logger.warning(f"Corrupted state file {self.path}: {e}. Starting fresh.")
            return {}
        return data if isinstance(data, dict) else {}

    async def get(self, keys: Iterable[str]) -> dict[str, Any]:
        async with self._lock:
            data = await self._read()
        return {k: data[k] for k in keys if k in data}

    async def set(self, items: Mapping[str, Any]) -> None:
        async with self._lock:
            data = await self._read()
            data.update(items)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(data, indent=2))
            os.replace(tmp_path, self.path)


# ──────────────────────────────────────────────────────────────────────────
# Events
# ──────────────────────────────────────────────────────────────────────────


@runtime_checkable
class EventNotifier(Protocol):
    def notify(self, event: str, payload: Mapping[str, Any] | None = None) -> None:
        ...


class EventBus:
    """Synchronous fan-out to subscribed listeners.

    Listener errors are logged and never reach the gateway.
    """

    def __init__(self) -> None:
        self._listeners: list[Callable[[str, Mapping[str, Any]], Any]] = []

    def subscribe(self, listener: Callable[[str, Mapping[str, Any]], Any]) -> Callable[[], None]:
        """Register a listener; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify(self, event: str, payload: Mapping[str, Any] | None = None) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, dict(payload or {}))
            except Exception as e:
                logger.warning(f"Event listener failed for '{event}': {e}")
