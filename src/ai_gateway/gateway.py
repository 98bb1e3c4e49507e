"""
ai-gateway: AIGateway, the fallback orchestrator.

Turns a pool of unreliable providers and API keys into a single
``complete(messages) -> result`` operation.

Request flow:
1. Credit authority check → CreditsExhaustedError
2. Global, then per-caller rate limit → RateLimitedError with wait time
3. Response cache lookup → return on hit (unless skip_cache)
4. Deduplicate: identical concurrent requests share one execution
5. Build candidates: circuit not open and at least one credential,
   preferred provider first, then ascending priority
6. For each candidate:
   a. Provider rate limit → skip on violation
   b. Select a credential → skip if none
   c. Call the provider with retry/backoff
   d. Success: record usage, circuit success, rate windows, metrics,
      charge credits, populate cache, return
   e. Failure: record usage failure and circuit failure, try the next one
7. All candidates failed → raise the last error; with nothing attempted,
   CircuitOpenError when every circuit is open, else NoProvidersAvailableError

Calls go straight to the orchestrator while the admission queue is idle;
once the queue holds or runs an item, new calls wait their turn in it.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from typing import Any, Awaitable, Callable, Iterable, Mapping

from ai_gateway.cache import ResponseCache, fingerprint
from ai_gateway.circuit_breaker import CircuitBreakerRegistry
from ai_gateway.collaborators import (
    CreditAuthority,
    EventBus,
    EventNotifier,
    KeyValueStore,
    UnlimitedCredits,
)
from ai_gateway.config import GatewayConfig
from ai_gateway.credentials import CredentialPool
from ai_gateway.dedup import Deduplicator
from ai_gateway.errors import (
    CircuitOpenError,
    CreditsExhaustedError,
    NoProvidersAvailableError,
    RateLimitedError,
    classify_http_error,
)
from ai_gateway.models import (
    CompletionRequest,
    CompletionResult,
    Credential,
    Message,
    Priority,
    ProviderDescriptor,
)
from ai_gateway.providers import DEFAULT_PROVIDERS, ProviderAdapter, get_adapter
from ai_gateway.queue import AdmissionQueue
from ai_gateway.rate_limiter import RateLimiter
from ai_gateway.retry import with_retry
from ai_gateway.stats import MetricsTracker
from ai_gateway.transport import AiohttpTransport, Transport

logger = logging.getLogger(__name__)

CREDENTIALS_KEY = "ai_gateway.credentials"
METRICS_KEY = "ai_gateway.metrics"


class AIGateway:
    """Reliable completions over a pool of AI providers.

    Quickstart::

        gateway = AIGateway()
        gateway.add_credential("openai", "sk-...")
        gateway.add_credential("anthropic", "sk-ant-...")

        async with gateway:
            text = await gateway.ask("Suggest a friendly reply to: 'oi'")

    Full configuration::

        gateway = AIGateway(
            config=GatewayConfig.from_dict({
                "rate_limit": {"caller_max": 10},
                "retry": {"max_attempts": 2},
            }),
            credits=my_credit_authority,
            store=JsonFileStore("state/gateway.json"),
        )
        result = await gateway.complete(
            [{"role": "user", "content": "Hi"}],
            preferred_provider="anthropic",
            caller_id="chat-123",
        )
    """

    def __init__(
        self,
        config: GatewayConfig | None = None,
        providers: Iterable[ProviderDescriptor] | None = None,
        transport: Transport | None = None,
        credits: CreditAuthority | None = None,
        store: KeyValueStore | None = None,
        notifier: EventNotifier | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config or GatewayConfig()
        self._transport: Transport = transport or AiohttpTransport()
        self._credits: CreditAuthority = credits or UnlimitedCredits()
        self._store = store
        self._notifier: EventNotifier = notifier or EventBus()
        self._sleep = sleep

        self._providers: dict[str, ProviderDescriptor] = {}
        self._adapters: dict[str, ProviderAdapter] = {}
        self._pool = CredentialPool(self.config.credentials)
        self._rate_limiter = RateLimiter(self.config.rate_limit)
        self._circuits = CircuitBreakerRegistry(
            self.config.circuit_breaker, on_open=self._on_circuit_open
        )
        self._cache = ResponseCache(self.config.cache)
        self._dedup = Deduplicator()
        self._metrics = MetricsTracker()
        self._queue = AdmissionQueue(self.execute_request, self.config.queue)

        self._persist_task: asyncio.Task | None = None
        self._cleanup_task: asyncio.Task | None = None
        self._credits_notified = False
        self._started = False

        for descriptor in DEFAULT_PROVIDERS if providers is None else providers:
            self.add_provider(descriptor)

    # ──────────────────────────────────────────────────────────────────────
    # Providers & credentials
    # ──────────────────────────────────────────────────────────────────────

    def add_provider(
        self, descriptor: ProviderDescriptor, adapter: ProviderAdapter | None = None
    ) -> AIGateway:
        """Register a provider.

        Args:
            descriptor: Static provider description.
            adapter: Request/response shaping. Defaults to the adapter
                registered for ``descriptor.id``.

        Returns:
            self (for method chaining).

        Raises:
            ValueError: If the provider is already registered or no adapter
                is known for it.
        """
        if descriptor.id in self._providers:
            raise ValueError(f"Provider '{descriptor.id}' is already registered")

        adapter = adapter or get_adapter(descriptor.id)
        if adapter is None:
            raise ValueError(
                f"No adapter for provider '{descriptor.id}'. "
                f"Pass `adapter=` or call register_adapter() first."
            )

        self._providers[descriptor.id] = descriptor
        self._adapters[descriptor.id] = adapter

        scale = self.config.rate_limit.window_seconds / 60.0
        self._rate_limiter.set_provider_limits(
            descriptor.id,
            max(1, int(descriptor.requests_per_minute * scale)) if descriptor.requests_per_minute else 0,
            max(1, int(descriptor.tokens_per_minute * scale)) if descriptor.tokens_per_minute else 0,
        )
        logger.info(f"Registered provider '{descriptor.id}' (priority {descriptor.priority})")
        return self

    def remove_provider(self, provider: str) -> None:
        """Unregister a provider. Its credentials stay in the pool.

        Raises:
            KeyError: If the provider is not registered.
        """
        if provider not in self._providers:
            raise KeyError(f"Provider '{provider}' is not registered")
        del self._providers[provider]
        del self._adapters[provider]
        logger.info(f"Removed provider '{provider}'")

    def add_credential(self, provider: str, secret: str) -> bool:
        """Add an API key. Returns False if it is already present.

        Raises:
            ValueError: If the provider is not registered.
        """
        self._require_provider(provider)
        return self._pool.add(provider, secret)

    def remove_credential(self, provider: str, secret: str) -> bool:
        return self._pool.remove(provider, secret)

    def list_credentials(self, provider: str) -> list[dict[str, Any]]:
        """Credential usage for a provider, with masked secrets."""
        return self._pool.list_credentials(provider)

    # ──────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Load persisted state and start background tasks."""
        if self._started:
            return

        if self._store is not None:
            await self.load_state()
            if self.config.persist_interval > 0:
                self._persist_task = asyncio.get_running_loop().create_task(
                    self._persist_loop()
                )

        if self.config.cleanup_interval > 0:
            self._cleanup_task = asyncio.get_running_loop().create_task(self._cleanup_loop())

        self._queue.start()
        self._started = True
        providers = [p for p in self._providers if self._pool.has_credentials(p)]
        logger.info(
            f"AIGateway started with {len(self._providers)} provider(s), "
            f"{len(providers)} with credentials: {', '.join(providers) or 'none'}"
        )
        self._notifier.notify("initialized", {"providers": providers})

    async def stop(self) -> None:
        """Stop background tasks, flush state and close the transport."""
        await self._queue.stop()

        for task in (self._persist_task, self._cleanup_task):
            if task is not None:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._persist_task = None
        self._cleanup_task = None

        if self._store is not None:
            try:
                await self.save_state()
            except OSError as e:
                logger.warning(f"Failed to save gateway state on stop: {e}")

        try:
            await self._transport.close()
        except Exception as e:
            logger.warning(f"Error closing transport: {e}")

        self._started = False
        logger.info("AIGateway stopped")

    async def __aenter__(self) -> AIGateway:
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.stop()

    async def load_state(self) -> None:
        """Restore credentials and metrics from the key-value store."""
        if self._store is None:
            return
        data = await self._store.get([CREDENTIALS_KEY, METRICS_KEY])
        if CREDENTIALS_KEY in data:
            self._pool.load(data[CREDENTIALS_KEY])
        if METRICS_KEY in data:
            self._metrics.restore(data[METRICS_KEY])
        logger.debug(f"Loaded gateway state: {sorted(data)}")

    async def save_state(self) -> None:
        """Flush credentials and metrics to the key-value store."""
        if self._store is None:
            return
        await self._store.set(
            {CREDENTIALS_KEY: self._pool.export(), METRICS_KEY: self._metrics.snapshot()}
        )

    async def _persist_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.persist_interval)
            try:
                await self.save_state()
            except OSError as e:
                logger.warning(f"Failed to persist gateway state: {e}")

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.cleanup_interval)
            self.prune_expired()

    # ──────────────────────────────────────────────────────────────────────
    # Core API
    # ──────────────────────────────────────────────────────────────────────

    async def complete(
        self,
        messages: Iterable[Message | Mapping[str, Any]],
        *,
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 1024,
        preferred_provider: str | None = None,
        skip_cache: bool = False,
        caller_id: str = "default",
        priority: Priority = Priority.NORMAL,
    ) -> CompletionResult:
        """Complete a conversation using the best available provider.

        Runs directly while the admission queue is idle, otherwise waits in
        the queue (always, when ``config.always_queue`` is set).

        Args:
            messages: Conversation as Message objects or role/content dicts.
            model: Preferred model; providers not serving it use their default.
            temperature: Sampling temperature.
            max_tokens: Maximum output tokens.
            preferred_provider: Provider tried first when eligible.
            skip_cache: Ignore cached results for this call.
            caller_id: Identifier for the per-caller rate limit.
            priority: Queue ordering when the call is queued.

        Raises:
            GatewayError: Any admission, rate-limit, credit or provider failure.
        """
        request = CompletionRequest(
            messages=[Message.coerce(m) for m in messages],
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            preferred_provider=preferred_provider,
            skip_cache=skip_cache,
            caller_id=caller_id,
            priority=priority,
        )
        if not request.messages:
            raise ValueError("At least one message is required")

        if self.config.always_queue or self._queue.is_active:
            return await self._queue.submit(request, request.priority)
        return await self.execute_request(request)

    async def submit(
        self,
        messages: Iterable[Message | Mapping[str, Any]],
        *,
        priority: Priority = Priority.NORMAL,
        timeout: float | None = None,
        **options: Any,
    ) -> CompletionResult:
        """Like complete(), but always admitted through the queue."""
        request = CompletionRequest(
            messages=[Message.coerce(m) for m in messages], priority=priority, **options
        )
        return await self._queue.submit(request, priority, timeout)

    async def ask(self, prompt: str, *, system_prompt: str | None = None, **options: Any) -> str:
        """Single-prompt convenience wrapper returning only the text."""
        messages = []
        if system_prompt:
            messages.append(Message("system", system_prompt))
        messages.append(Message("user", prompt))
        result = await self.complete(messages, **options)
        return result.text

    async def execute_request(self, request: CompletionRequest) -> CompletionResult:
        """Run one request through credits, rate limits, cache, dedup and fallback."""
        if not self._credits.can_use():
            if not self._credits_notified:
                self._credits_notified = True
                self._notifier.notify("credits_depleted", {"caller_id": request.caller_id})
            raise CreditsExhaustedError()
        self._credits_notified = False

        for decision in (
            self._rate_limiter.check_global(),
            self._rate_limiter.check_caller(request.caller_id),
        ):
            if not decision.allowed:
                raise RateLimitedError(decision.scope, decision.wait_seconds, decision.reason)

        self._metrics.record_request()
        key = fingerprint(request.messages, request.model, request.temperature)

        if self.config.cache.enabled and not request.skip_cache:
            cached = self._cache.lookup(key)
            if cached is not None:
                self._metrics.record_cache_hit()
                logger.debug(f"Cache hit {key[:12]} ({cached.provider})")
                return cached
            self._metrics.record_cache_miss()

        if self._dedup.is_pending(key):
            self._metrics.record_deduplicated()
        return await self._dedup.dedupe(key, lambda: self._execute_uncached(request, key))

    async def _execute_uncached(self, request: CompletionRequest, key: str) -> CompletionResult:
        candidates, open_circuits = self._candidates(request.preferred_provider)
        skipped = [f"{p}: circuit open" for p in open_circuits]
        last_error: Exception | None = None

        for descriptor in candidates:
            provider = descriptor.id

            decision = self._rate_limiter.check_provider(provider)
            if not decision.allowed:
                skipped.append(f"{provider}: rate limited")
                last_error = RateLimitedError(decision.scope, decision.wait_seconds, decision.reason)
                continue

            credential = self._pool.select(provider)
            if credential is None:
                skipped.append(f"{provider}: no credentials")
                continue

            try:
                result = await with_retry(
                    lambda: self._call_provider(descriptor, credential, request),
                    self.config.retry,
                    sleep=self._sleep,
                )
            except Exception as e:
                logger.warning(f"Provider '{provider}' failed ({credential.masked}): {e}")
                self._pool.record_usage(provider, credential.secret, success=False)
                self._circuits.record_result(provider, False, str(e))
                self._metrics.record_provider_failure(provider)
                last_error = e
                continue

            self._pool.record_usage(provider, credential.secret, success=True)
            self._circuits.record_result(provider, True)
            self._rate_limiter.record_send(request.caller_id, provider, result.usage.total_tokens)
            self._metrics.record_success(
                provider,
                result.latency_ms,
                tokens=result.usage.total_tokens,
                cost=descriptor.estimate_cost(result.model, result.usage),
            )
            await self._credits.consume(self.config.credit_cost, f"ai_completion:{provider}")
            if self.config.cache.enabled:
                self._cache.insert(key, result)
            return result

        self._metrics.record_failure()
        if last_error is not None:
            raise last_error
        if open_circuits and not candidates:
            raise CircuitOpenError(", ".join(open_circuits))
        detail = f" ({'; '.join(skipped)})" if skipped else ""
        raise NoProvidersAvailableError(f"No AI providers available{detail}")

    async def _call_provider(
        self,
        descriptor: ProviderDescriptor,
        credential: Credential,
        request: CompletionRequest,
    ) -> CompletionResult:
        adapter = self._adapters[descriptor.id]
        model = descriptor.resolve_model(request.model)
        http_request = adapter.build_request(descriptor, credential.secret, request, model)

        start_time = time.time()
        response = await self._transport.send(http_request, descriptor.id)
        latency_ms = (time.time() - start_time) * 1000

        if not response.ok:
            raise classify_http_error(descriptor.id, response.status, response.body)

        text, usage = adapter.parse_response(descriptor.id, response.body)
        return CompletionResult(
            text=text,
            usage=usage,
            provider=descriptor.id,
            model=model,
            latency_ms=latency_ms,
        )

    def _candidates(
        self, preferred: str | None
    ) -> tuple[list[ProviderDescriptor], list[str]]:
        """Eligible providers in attempt order, plus those with an open circuit."""
        eligible: list[ProviderDescriptor] = []
        open_circuits: list[str] = []
        for descriptor in sorted(self._providers.values(), key=lambda d: d.priority):
            if not self._pool.has_credentials(descriptor.id):
                continue
            if self._circuits.is_open(descriptor.id):
                open_circuits.append(descriptor.id)
                continue
            eligible.append(descriptor)

        if preferred:
            eligible.sort(key=lambda d: d.id != preferred)
        return eligible, open_circuits

    # ──────────────────────────────────────────────────────────────────────
    # Observability & operator actions
    # ──────────────────────────────────────────────────────────────────────

    def get_metrics(self) -> dict[str, Any]:
        metrics = self._metrics.snapshot()
        metrics["in_flight"] = self._dedup.in_flight
        metrics["queue"] = self._queue.get_stats()
        return metrics

    def get_cache_stats(self) -> dict[str, Any]:
        return self._cache.get_stats()

    def get_circuit_states(self) -> dict[str, str]:
        return self._circuits.states()

    def get_queue_depth(self) -> int:
        return self._queue.depth

    def get_provider_status(self) -> dict[str, dict[str, Any]]:
        """Per-provider circuit, credential and rate-window status."""
        rate_stats = self._rate_limiter.get_stats()["providers"]
        return {
            provider: {
                "name": descriptor.name,
                "priority": descriptor.priority,
                "credentials": len(self._pool.list_credentials(provider)),
                "circuit_breaker": self._circuits.get(provider).get_stats(),
                "rate_window": rate_stats.get(provider, {"count": 0, "tokens": 0}),
            }
            for provider, descriptor in self._providers.items()
        }

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.info("Response cache cleared")

    def reset_metrics(self) -> None:
        self._metrics.reset()
        logger.info("Gateway metrics reset")

    def reset_circuits(self, provider: str | None = None) -> None:
        self._circuits.reset(provider)

    def prune_expired(self) -> dict[str, int]:
        """Drop idle caller rate windows and expired cache entries."""
        return {
            "caller_windows": self._rate_limiter.prune(),
            "cache_entries": self._cache.prune(),
        }

    # ──────────────────────────────────────────────────────────────────────
    # Internal
    # ──────────────────────────────────────────────────────────────────────

    def _require_provider(self, provider: str) -> None:
        if provider not in self._providers:
            raise ValueError(
                f"Unknown provider '{provider}'. Available: {sorted(self._providers)}"
            )

    def _on_circuit_open(self, provider: str) -> None:
        logger.warning(f"Circuit opened for provider '{provider}'")
        self._notifier.notify("circuit_open", {"provider": provider})


__all__ = ["AIGateway", "CREDENTIALS_KEY", "METRICS_KEY"]
