"""
ai-gateway: Reliable AI completions over a pool of providers and API keys.

Credential load-balancing, multi-scope rate limiting, per-provider circuit
breakers, a priority admission queue, response caching, in-flight
deduplication and ordered provider fallback with bounded retry.

Quickstart::

    from ai_gateway import AIGateway

    gateway = AIGateway()
    gateway.add_credential("openai", "sk-...")
    gateway.add_credential("anthropic", "sk-ant-...")

    async with gateway:
        result = await gateway.complete([{"role": "user", "content": "Hello!"}])
        print(result.provider, result.text)
"""

from ai_gateway.cache import CacheConfig, ResponseCache, fingerprint
from ai_gateway.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitState,
)
from ai_gateway.collaborators import (
    CreditAuthority,
    CreditLedger,
    EventBus,
    EventNotifier,
    JsonFileStore,
    KeyValueStore,
    MemoryStore,
    UnlimitedCredits,
)
from ai_gateway.config import GatewayConfig
from ai_gateway.credentials import CredentialPool, CredentialScoring
from ai_gateway.dedup import Deduplicator
from ai_gateway.errors import (
    AdmissionError,
    AuthorizationError,
    CircuitOpenError,
    CreditsExhaustedError,
    GatewayError,
    InsufficientCreditsError,
    NoProvidersAvailableError,
    NonRetryableError,
    ProviderError,
    QueueClosedError,
    QueueFullError,
    QueueTimeoutError,
    RateLimitedError,
)
from ai_gateway.gateway import AIGateway
from ai_gateway.models import (
    CompletionRequest,
    CompletionResult,
    Credential,
    Message,
    Priority,
    ProviderDescriptor,
    TokenUsage,
)
from ai_gateway.providers import DEFAULT_PROVIDERS, ProviderAdapter, register_adapter
from ai_gateway.queue import AdmissionQueue, QueueConfig
from ai_gateway.rate_limiter import RateLimitConfig, RateLimitDecision, RateLimiter
from ai_gateway.retry import RetryConfig, with_retry
from ai_gateway.stats import MetricsTracker
from ai_gateway.transport import AiohttpTransport, HttpRequest, HttpResponse, Transport

__version__ = "0.1.0"

__all__ = [
    # Core
    "AIGateway",
    "GatewayConfig",
    "Priority",
    "Message",
    "CompletionRequest",
    "CompletionResult",
    "TokenUsage",
    "ProviderDescriptor",
    "Credential",
    # Providers & transport
    "DEFAULT_PROVIDERS",
    "ProviderAdapter",
    "register_adapter",
    "Transport",
    "AiohttpTransport",
    "HttpRequest",
    "HttpResponse",
    # Components
    "AdmissionQueue",
    "QueueConfig",
    "CacheConfig",
    "ResponseCache",
    "fingerprint",
    "Deduplicator",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerRegistry",
    "CircuitState",
    "CredentialPool",
    "CredentialScoring",
    "RateLimiter",
    "RateLimitConfig",
    "RateLimitDecision",
    "RetryConfig",
    "with_retry",
    "MetricsTracker",
    # Collaborators
    "CreditAuthority",
    "CreditLedger",
    "UnlimitedCredits",
    "KeyValueStore",
    "MemoryStore",
    "JsonFileStore",
    "EventNotifier",
    "EventBus",
    # Errors
    "GatewayError",
    "AdmissionError",
    "QueueFullError",
    "QueueTimeoutError",
    "QueueClosedError",
    "RateLimitedError",
    "CircuitOpenError",
    "CreditsExhaustedError",
    "NoProvidersAvailableError",
    "ProviderError",
    "NonRetryableError",
    "AuthorizationError",
    "InsufficientCreditsError",
]
