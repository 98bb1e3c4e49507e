"""
ai-gateway caching, dedup and fallback example.

Shows identical prompts being answered from the response cache,
concurrent duplicates collapsing into one provider call, and the
metrics, circuit and queue state an operator dashboard would read.

Prerequisites:
    pip install ai-gateway
    export OPENAI_API_KEY=sk-...
    export GROQ_API_KEY=gsk_...   # optional fallback provider
"""

import asyncio
import os

from ai_gateway import AIGateway, EventBus, GatewayConfig, JsonFileStore


async def main():
    events = EventBus()
    events.subscribe(lambda event, payload: print(f"  [event] {event}: {payload}"))

    gateway = AIGateway(
        config=GatewayConfig.from_dict({
            "cache": {"ttl_seconds": 600, "max_entries": 500},
            "circuit_breaker": {"failure_threshold": 3, "reset_timeout": 30},
            "retry": {"max_attempts": 2},
        }),
        store=JsonFileStore(".ai_gateway_state.json"),
        notifier=events,
    )
    for provider, env_var in (("openai", "OPENAI_API_KEY"), ("groq", "GROQ_API_KEY")):
        if os.environ.get(env_var):
            gateway.add_credential(provider, os.environ[env_var])

    async with gateway:
        question = [{"role": "user", "content": "What is the capital of France?"}]

        # First call — cache miss, calls a provider
        r1 = await gateway.complete(question, temperature=0.1)
        print(f"First call:  {r1.text[:60]}...")
        print(f"  Cached: {r1.cached}, Latency: {r1.latency_ms:.0f}ms")

        # Same prompt — served from the cache
        r2 = await gateway.complete(question, temperature=0.1)
        print(f"\nSecond call: {r2.text[:60]}...")
        print(f"  Cached: {r2.cached}, Provider: {r2.provider}")

        # Concurrent duplicates — one provider call shared by all callers
        prompt = "Write a haiku about Python programming"
        haikus = await asyncio.gather(*(gateway.ask(prompt, temperature=0.9) for _ in range(3)))
        print(f"\nConcurrent duplicates identical: {len(set(haikus)) == 1}")

        metrics = gateway.get_metrics()
        print(f"\nRequests: {metrics['total_requests']}, "
              f"cache hits: {metrics['cache_hits']}, deduplicated: {metrics['deduplicated']}")
        print(f"Cache stats: {gateway.get_cache_stats()}")
        print(f"Circuits: {gateway.get_circuit_states()}")
        print(f"Keys: {gateway.list_credentials('openai')}")


if __name__ == "__main__":
    asyncio.run(main())
