"""
ai-gateway: OpenAI-compatible chat completions adapter.

Works with any provider that exposes a /v1/chat/completions endpoint:
OpenAI, Groq, Together AI, vLLM, LM Studio, etc.
"""

from __future__ import annotations

from typing import Any

from ai_gateway.errors import ProviderError
from ai_gateway.models import CompletionRequest, ProviderDescriptor, TokenUsage
from ai_gateway.transport import HttpRequest


class OpenAIAdapter:
    """Shapes requests for /v1/chat/completions."""

    def __init__(self, timeout: float = 60.0) -> None:
        self.timeout = timeout

    def build_request(
        self,
        descriptor: ProviderDescriptor,
        secret: str,
        request: CompletionRequest,
        model: str,
    ) -> HttpRequest:
        return HttpRequest(
            url=descriptor.url_for(model),
            headers={"Authorization": f"Bearer {secret}"},
            body={
                "model": model,
                "messages": [m.to_dict() for m in request.messages],
                "max_tokens": request.max_tokens,
                "temperature": request.temperature,
            },
            timeout=self.timeout,
        )

    def parse_response(self, provider: str, body: Any) -> tuple[str, TokenUsage]:
        choices = body.get("choices") if isinstance(body, dict) else None
        if not choices:
            raise ProviderError(provider, "Response contained no choices")
        content = choices[0].get("message", {}).get("content") or ""
        if not content.strip():
            raise ProviderError(provider, "Empty completion")

        usage = body.get("usage") or {}
        return content, TokenUsage(
            prompt_tokens=usage.get("prompt_tokens", 0),
            completion_tokens=usage.get("completion_tokens", 0),
            total_tokens=usage.get("total_tokens", 0),
        )
