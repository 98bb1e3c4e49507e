"""ai-gateway: Provider adapters, descriptors and the adapter registry."""

from __future__ import annotations

from ai_gateway.models import ProviderDescriptor
from ai_gateway.providers.anthropic import AnthropicAdapter
from ai_gateway.providers.base import ProviderAdapter
from ai_gateway.providers.gemini import GeminiAdapter
from ai_gateway.providers.openai import OpenAIAdapter

# Provider id → adapter instance
_ADAPTER_REGISTRY: dict[str, ProviderAdapter] = {
    "openai": OpenAIAdapter(),
    "groq": OpenAIAdapter(),
    "anthropic": AnthropicAdapter(),
    "gemini": GeminiAdapter(),
}

DEFAULT_PROVIDERS: tuple[ProviderDescriptor, ...] = (
    ProviderDescriptor(
        id="openai",
        name="OpenAI",
        priority=1,
        endpoint="https://api.openai.com/v1/chat/completions",
        models=("gpt-4o-mini", "gpt-4o", "gpt-4-turbo", "gpt-3.5-turbo"),
        default_model="gpt-4o-mini",
        requests_per_minute=60,
        tokens_per_minute=150000,
        costs={
            "gpt-4o-mini": {"input": 0.00015, "output": 0.0006},
            "gpt-4o": {"input": 0.005, "output": 0.015},
            "gpt-4-turbo": {"input": 0.01, "output": 0.03},
            "gpt-3.5-turbo": {"input": 0.0005, "output": 0.0015},
        },
    ),
    ProviderDescriptor(
        id="anthropic",
        name="Anthropic",
        priority=2,
        endpoint="https://api.anthropic.com/v1/messages",
        models=("claude-3-5-haiku-latest", "claude-3-5-sonnet-latest"),
        default_model="claude-3-5-haiku-latest",
        requests_per_minute=50,
        tokens_per_minute=40000,
        costs={
            "claude-3-5-haiku-latest": {"input": 0.0008, "output": 0.004},
            "claude-3-5-sonnet-latest": {"input": 0.003, "output": 0.015},
        },
    ),
    ProviderDescriptor(
        id="groq",
        name="Groq",
        priority=3,
        endpoint="https://api.groq.com/openai/v1/chat/completions",
        models=("llama-3.1-70b-versatile", "llama-3.1-8b-instant", "mixtral-8x7b-32768"),
        default_model="llama-3.1-70b-versatile",
        requests_per_minute=30,
        tokens_per_minute=6000,
        costs={
            "llama-3.1-70b-versatile": {"input": 0.00059, "output": 0.00079},
            "llama-3.1-8b-instant": {"input": 0.00005, "output": 0.00008},
        },
    ),
    ProviderDescriptor(
        id="gemini",
        name="Google Gemini",
        priority=4,
        endpoint="https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent",
        models=("gemini-1.5-flash", "gemini-1.5-pro"),
        default_model="gemini-1.5-flash",
        requests_per_minute=15,
        tokens_per_minute=1000000,
        costs={
            "gemini-1.5-flash": {"input": 0.000075, "output": 0.0003},
            "gemini-1.5-pro": {"input": 0.00125, "output": 0.005},
        },
    ),
)


def register_adapter(provider_id: str, adapter: ProviderAdapter) -> None:
    """Register request/response shaping for a provider id.

    Example::

        from ai_gateway import register_adapter
        from ai_gateway.providers import OpenAIAdapter

        register_adapter("together", OpenAIAdapter())
    """
    _ADAPTER_REGISTRY[provider_id.lower()] = adapter


def get_adapter(provider_id: str) -> ProviderAdapter | None:
    return _ADAPTER_REGISTRY.get(provider_id.lower())


__all__ = [
    "AnthropicAdapter",
    "DEFAULT_PROVIDERS",
    "GeminiAdapter",
    "OpenAIAdapter",
    "ProviderAdapter",
    "get_adapter",
    "register_adapter",
]
