"""Shared test fixtures, a scriptable transport, and gateway builders."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from ai_gateway import AIGateway, GatewayConfig, ProviderDescriptor
from ai_gateway.errors import ProviderError
from ai_gateway.providers import OpenAIAdapter
from ai_gateway.transport import HttpRequest, HttpResponse

ALPHA = ProviderDescriptor(
    id="alpha",
    name="Alpha AI",
    priority=1,
    endpoint="https://alpha.test/v1/chat/completions",
    models=("alpha-small", "alpha-large"),
    default_model="alpha-small",
    requests_per_minute=1000,
    costs={"alpha-small": {"input": 0.001, "output": 0.002}},
)

BETA = ProviderDescriptor(
    id="beta",
    name="Beta AI",
    priority=2,
    endpoint="https://beta.test/v1/chat/completions",
    models=("beta-1",),
    default_model="beta-1",
    requests_per_minute=1000,
)


def openai_body(text: str, prompt_tokens: int = 5, completion_tokens: int = 7) -> dict[str, Any]:
    return {
        "choices": [{"message": {"role": "assistant", "content": text}}],
        "usage": {
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "total_tokens": prompt_tokens + completion_tokens,
        },
    }


class MockTransport:
    """Scriptable transport.

    Succeeds with ``"reply from <provider>"`` by default. ``fail()`` makes a
    provider return an HTTP error (or raise a connection error when
    ``status`` is None) for the next ``times`` calls, or forever.
    """

    def __init__(self, delay_seconds: float = 0.0) -> None:
        self.delay_seconds = delay_seconds
        self.calls: list[tuple[str, HttpRequest]] = []
        self._failures: dict[str, dict[str, Any]] = {}
        self.closed = False

    def fail(
        self,
        provider: str,
        status: int | None = 500,
        body: Any = None,
        times: int | None = None,
    ) -> None:
        self._failures[provider] = {
            "status": status,
            "body": body if body is not None else {"error": {"message": "upstream error"}},
            "remaining": times,
        }

    def recover(self, provider: str) -> None:
        self._failures.pop(provider, None)

    def calls_to(self, provider: str) -> int:
        return sum(1 for p, _ in self.calls if p == provider)

    async def send(self, request: HttpRequest, provider: str) -> HttpResponse:
        self.calls.append((provider, request))
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)

        failure = self._failures.get(provider)
        if failure is not None and failure["remaining"] != 0:
            if failure["remaining"] is not None:
                failure["remaining"] -= 1
            if failure["status"] is None:
                raise ProviderError(provider, "Connection error: refused")
            return HttpResponse(status=failure["status"], body=failure["body"])

        return HttpResponse(status=200, body=openai_body(f"reply from {provider}"))

    async def close(self) -> None:
        self.closed = True


def make_config(**overrides: Any) -> GatewayConfig:
    """Fast config for tests: no backoff delay, short queue tick."""
    data: dict[str, Any] = {
        "retry": {"max_attempts": 1, "base_delay": 0.0, "max_delay": 0.0},
        "queue": {"tick_interval": 0.01},
        "persist_interval": 0,
    }
    for key, value in overrides.items():
        if isinstance(value, dict):
            data.setdefault(key, {}).update(value)
        else:
            data[key] = value
    return GatewayConfig.from_dict(data)


def make_gateway(
    transport: MockTransport | None = None,
    config: GatewayConfig | None = None,
    **kwargs: Any,
) -> AIGateway:
    """Gateway with providers alpha (priority 1) and beta (priority 2), one key each."""
    gateway = (
        AIGateway(
            config=config or make_config(),
            providers=[],
            transport=transport or MockTransport(),
            **kwargs,
        )
        .add_provider(ALPHA, OpenAIAdapter())
        .add_provider(BETA, OpenAIAdapter())
    )
    gateway.add_credential("alpha", "alpha-key-000001")
    gateway.add_credential("beta", "beta-key-0000001")
    return gateway


@pytest.fixture
def transport() -> MockTransport:
    return MockTransport()


@pytest.fixture
def gateway(transport: MockTransport) -> AIGateway:
    return make_gateway(transport)
