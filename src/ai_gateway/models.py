"""
ai-gateway: Data models for requests, results, providers and credentials.

All public types used throughout the library are defined here.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Mapping


class Priority(IntEnum):
    """Admission priority. Lower value = served first.

    Only matters when a request waits in the admission queue; direct
    calls are executed immediately regardless of priority.
    """

    CRITICAL = 0
    HIGH = 1
    NORMAL = 2
    LOW = 3


@dataclass(frozen=True)
class Message:
    """One chat turn sent to a provider."""

    role: str
    content: str

    @classmethod
    def coerce(cls, value: Message | Mapping[str, Any]) -> Message:
        """Accept either a Message or a ``{"role", "content"}`` mapping."""
        if isinstance(value, Message):
            return value
        try:
            return cls(role=str(value["role"]), content=str(value["content"]))
        except KeyError as err:
            raise ValueError(f"Message is missing field {err}") from err

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class CompletionRequest:
    """A request routed through the gateway.

    Attributes:
        messages: Ordered conversation sent to the provider.
        model: Requested model. Providers that do not serve it use their default.
        temperature: Sampling temperature.
        max_tokens: Maximum output tokens.
        preferred_provider: Provider tried first when eligible.
        skip_cache: Bypass the response cache lookup for this call.
        caller_id: Identifier used for the per-caller rate limit.
        priority: Ordering inside the admission queue.
    """

    messages: list[Message]
    model: str | None = None
    temperature: float = 0.7
    max_tokens: int = 1024
    preferred_provider: str | None = None
    skip_cache: bool = False
    caller_id: str = "default"
    priority: Priority = Priority.NORMAL


@dataclass
class TokenUsage:
    """Token accounting reported by the provider."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __post_init__(self) -> None:
        if not self.total_tokens:
            self.total_tokens = self.prompt_tokens + self.completion_tokens


@dataclass
class CompletionResult:
    """Result of a completed request.

    Attributes:
        text: Generated text.
        usage: Token usage for the call that produced the text.
        provider: Identifier of the provider that answered.
        model: Model that produced the text.
        latency_ms: End-to-end latency of the provider call in milliseconds.
        cached: True when served from the response cache.
    """

    text: str
    usage: TokenUsage
    provider: str
    model: str
    latency_ms: float
    cached: bool = False


@dataclass(frozen=True)
class ProviderDescriptor:
    """Static description of a provider backend.

    Attributes:
        id: Unique provider identifier (e.g., "openai").
        name: Human readable name.
        priority: Fallback rank. Lower is tried first.
        endpoint: URL template; ``{model}`` is substituted when present.
        models: Model identifiers this provider serves.
        default_model: Model used when the request names none it serves.
        requests_per_minute: Provider-side request limit.
        tokens_per_minute: Provider-side token limit (0 = unlimited).
        costs: Per-1k-token cost per model, ``{"input": x, "output": y}``.
    """

    id: str
    name: str
    priority: int
    endpoint: str
    models: tuple[str, ...]
    default_model: str
    requests_per_minute: int = 60
    tokens_per_minute: int = 0
    costs: Mapping[str, Mapping[str, float]] = field(default_factory=dict)

    def resolve_model(self, requested: str | None) -> str:
        if requested and requested in self.models:
            return requested
        return self.default_model

    def url_for(self, model: str) -> str:
        return self.endpoint.replace("{model}", model)

    def estimate_cost(self, model: str, usage: TokenUsage) -> float:
        table = self.costs.get(model)
        if not table:
            return 0.0
        return (
            usage.prompt_tokens / 1000 * table.get("input", 0.0)
            + usage.completion_tokens / 1000 * table.get("output", 0.0)
        )


def mask_secret(secret: str) -> str:
    """Masked form of an API key, safe for logs and listings."""
    if len(secret) <= 8:
        return "*" * len(secret)
    return f"{secret[:4]}...{secret[-4:]}"


@dataclass
class Credential:
    """One API key belonging to a provider, with its health counters."""

    secret: str
    usage: int = 0
    errors: int = 0
    last_used: float = 0.0
    created_at: float = field(default_factory=time.time)

    @property
    def masked(self) -> str:
        return mask_secret(self.secret)

    def to_dict(self) -> dict[str, Any]:
        return {
            "secret": self.secret,
            "usage": self.usage,
            "errors": self.errors,
            "last_used": self.last_used,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Credential:
        return cls(
            secret=str(data["secret"]),
            usage=int(data.get("usage", 0)),
            errors=int(data.get("errors", 0)),
            last_used=float(data.get("last_used", 0.0)),
            created_at=float(data.get("created_at", time.time())),
        )
