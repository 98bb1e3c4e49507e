"""ai-gateway: Google Gemini generateContent adapter."""

from __future__ import annotations

from typing import Any

from ai_gateway.errors import ProviderError
from ai_gateway.models import CompletionRequest, ProviderDescriptor, TokenUsage
from ai_gateway.transport import HttpRequest


class GeminiAdapter:
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
        contents = [
            {
                "role": "model" if m.role == "assistant" else "user",
                "parts": [{"text": m.content}],
            }
            for m in request.messages
            if m.role != "system"
        ]

        body: dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "temperature": request.temperature,
                "maxOutputTokens": request.max_tokens,
            },
        }
        if system:
            body["systemInstruction"] = {"parts": [{"text": system}]}

        return HttpRequest(
            url=descriptor.url_for(model),
            headers={"x-goog-api-key": secret},
            body=body,
            timeout=self.timeout,
        )

    def parse_response(self, provider: str, body: Any) -> tuple[str, TokenUsage]:
        candidates = body.get("candidates") if isinstance(body, dict) else None
        if not candidates:
            raise ProviderError(provider, "Response contained no candidates")
        parts = candidates[0].get("content", {}).get("parts", [])
        text = "".join(part.get("text", "") for part in parts)
        if not text.strip():
            raise ProviderError(provider, "Empty completion")

        usage = body.get("usageMetadata") or {}
        return text, TokenUsage(
            prompt_tokens=usage.get("promptTokenCount", 0),
            completion_tokens=usage.get("candidatesTokenCount", 0),
            total_tokens=usage.get("totalTokenCount", 0),
        )
