"""
ai-gateway quickstart — Minimal example.

Prerequisites:
    pip install ai-gateway
    export OPENAI_API_KEY=sk-...        # any of these is enough
    export ANTHROPIC_API_KEY=sk-ant-...
"""

import asyncio
import logging
import os

from ai_gateway import AIGateway, GatewayError

ENV_KEYS = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "groq": "GROQ_API_KEY",
    "gemini": "GEMINI_API_KEY",
}


async def main():
    logging.basicConfig(level=logging.INFO)

    gateway = AIGateway()
    for provider, env_var in ENV_KEYS.items():
        if os.environ.get(env_var):
            gateway.add_credential(provider, os.environ[env_var])

    async with gateway:
        try:
            result = await gateway.complete(
                [
                    {"role": "system", "content": "You suggest short, friendly chat replies."},
                    {"role": "user", "content": "Suggest a reply to: 'oi, tudo bem?'"},
                ],
                caller_id="chat-42",
            )
        except GatewayError as e:
            print(f"Error: {e}")
            return

        print(f"Response: {result.text}")
        print(f"Provider: {result.provider} ({result.model})")
        print(f"Latency: {result.latency_ms:.0f}ms, tokens: {result.usage.total_tokens}")


if __name__ == "__main__":
    asyncio.run(main())
