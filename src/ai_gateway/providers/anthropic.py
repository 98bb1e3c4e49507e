"""
ai-gateway: Anthropic Messages API adapter.

System turns are lifted into the top-level ``system`` field; the remaining
turns are sent as ``messages``.
"""

from __future__ import annotations

from typing import Any

from ai_gateway.errors import ProviderError
from ai_gateway.models import CompletionRequest, ProviderDescriptor, TokenUsage
from ai_gateway.transport import HttpRequest

API_VERSION = "2023-06-01"


class AnthropicAdapter:
    def __init__(self, timeout: float = 60.0) -> None:
        self.timeout = timeout

    def build_request(
        self,
        descriptor: ProviderDescriptor,
        secret: str,
        request: CompletionRequest,
        model: str,
    ) -> HttpRequest:
        system = "\n\n".join(m.content for m in request.messages if m.role == "system")
        turns = [m.to_dict() for m in request.messages if m.role != "system"]

        body: dict[str, Any] = {
            "model": model,
            "messages": turns,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
        }
        if system:
            body["system"] = system

        return HttpRequest(
            url=descriptor.url_for(model),
            headers={"x-api-key": secret, "anthropic-version": API_VERSION},
            body=body,
            timeout=self.timeout,
        )

    def parse_response(self, provider: str, body: Any) -> tuple[str, TokenUsage]:
        blocks = body.get("content") if isinstance(body, dict) else None
        text = "".join(
            block.get("text", "") for block in blocks or [] if block.get("type") == "text"
        )
        if not text.strip():
            raise ProviderError(provider, "Empty completion")

        usage = body.get("usage") or {}
        return text, TokenUsage(
            prompt_tokens=usage.get("input_tokens", 0),
            completion_tokens=usage.get("output_tokens", 0),
        )
