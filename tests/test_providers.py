"""Tests for provider adapters and the aiohttp transport using mocked HTTP responses."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from ai_gateway.errors import ProviderError
from ai_gateway.models import CompletionRequest, Message, ProviderDescriptor
from ai_gateway.providers import (
    DEFAULT_PROVIDERS,
    AnthropicAdapter,
    GeminiAdapter,
    OpenAIAdapter,
    get_adapter,
    register_adapter,
)
from ai_gateway.transport import AiohttpTransport, HttpRequest


def make_request(**kwargs) -> CompletionRequest:
    defaults = {
        "messages": [Message("system", "Be brief."), Message("user", "Hello")],
        "temperature": 0.3,
        "max_tokens": 64,
    }
    defaults.update(kwargs)
    return CompletionRequest(**defaults)


def descriptor(provider_id: str) -> ProviderDescriptor:
    return next(d for d in DEFAULT_PROVIDERS if d.id == provider_id)


class TestOpenAIAdapter:
    def test_build_request(self) -> None:
        req = OpenAIAdapter().build_request(
            descriptor("openai"), "sk-test", make_request(), "gpt-4o-mini"
        )

        assert req.url == "https://api.openai.com/v1/chat/completions"
        assert req.headers["Authorization"] == "Bearer sk-test"
        assert req.body["model"] == "gpt-4o-mini"
        assert req.body["messages"][0] == {"role": "system", "content": "Be brief."}
        assert req.body["max_tokens"] == 64
        assert req.body["temperature"] == 0.3

    def test_parse_response(self) -> None:
        text, usage = OpenAIAdapter().parse_response(
            "openai",
            {
                "choices": [{"message": {"content": "Hi there"}}],
                "usage": {"prompt_tokens": 9, "completion_tokens": 3, "total_tokens": 12},
            },
        )
        assert text == "Hi there"
        assert usage.total_tokens == 12

    def test_empty_completion_is_error(self) -> None:
        with pytest.raises(ProviderError, match="Empty completion"):
            OpenAIAdapter().parse_response(
                "groq", {"choices": [{"message": {"content": "  "}}]}
            )

    def test_missing_choices_is_error(self) -> None:
        with pytest.raises(ProviderError):
            OpenAIAdapter().parse_response("openai", {"error": "boom"})


class TestAnthropicAdapter:
    def test_system_lifted_out(self) -> None:
        req = AnthropicAdapter().build_request(
            descriptor("anthropic"), "sk-ant", make_request(), "claude-3-5-haiku-latest"
        )

        assert req.headers["x-api-key"] == "sk-ant"
        assert req.headers["anthropic-version"] == "2023-06-01"
        assert req.body["system"] == "Be brief."
        assert req.body["messages"] == [{"role": "user", "content": "Hello"}]

    def test_parse_response(self) -> None:
        text, usage = AnthropicAdapter().parse_response(
            "anthropic",
            {
                "content": [{"type": "text", "text": "Hey"}, {"type": "tool_use"}],
                "usage": {"input_tokens": 4, "output_tokens": 2},
            },
        )
        assert text == "Hey"
        assert usage.prompt_tokens == 4
        assert usage.total_tokens == 6


class TestGeminiAdapter:
    def test_model_in_url_and_roles_mapped(self) -> None:
        request = make_request(
            messages=[
                Message("system", "Be brief."),
                Message("user", "Hi"),
                Message("assistant", "Hello!"),
                Message("user", "How are you?"),
            ]
        )
        req = GeminiAdapter().build_request(
            descriptor("gemini"), "g-key", request, "gemini-1.5-flash"
        )

        assert req.url.endswith("/models/gemini-1.5-flash:generateContent")
        assert req.headers["x-goog-api-key"] == "g-key"
        assert [c["role"] for c in req.body["contents"]] == ["user", "model", "user"]
        assert req.body["systemInstruction"] == {"parts": [{"text": "Be brief."}]}
        assert req.body["generationConfig"]["maxOutputTokens"] == 64

    def test_parse_response(self) -> None:
        text, usage = GeminiAdapter().parse_response(
            "gemini",
            {
                "candidates": [{"content": {"parts": [{"text": "Fine, "}, {"text": "thanks"}]}}],
                "usageMetadata": {"promptTokenCount": 6, "candidatesTokenCount": 2},
            },
        )
        assert text == "Fine, thanks"
        assert usage.total_tokens == 8

    def test_no_candidates_is_error(self) -> None:
        with pytest.raises(ProviderError, match="no candidates"):
            GeminiAdapter().parse_response("gemini", {"candidates": []})


class TestRegistry:
    def test_builtin_adapters(self) -> None:
        assert isinstance(get_adapter("openai"), OpenAIAdapter)
        assert isinstance(get_adapter("GROQ"), OpenAIAdapter)
        assert isinstance(get_adapter("anthropic"), AnthropicAdapter)
        assert get_adapter("unknown") is None

    def test_register_adapter(self) -> None:
        adapter = OpenAIAdapter(timeout=5)
        register_adapter("together", adapter)
        assert get_adapter("together") is adapter

    def test_default_providers_ranked(self) -> None:
        priorities = [d.priority for d in DEFAULT_PROVIDERS]
        assert priorities == sorted(priorities)
        for d in DEFAULT_PROVIDERS:
            assert d.default_model in d.models


def mock_session_returning(status: int, text: str) -> AsyncMock:
    mock_response = AsyncMock()
    mock_response.status = status
    mock_response.text = AsyncMock(return_value=text)

    mock_session = AsyncMock()
    mock_session.request = MagicMock(return_value=AsyncMock(
        __aenter__=AsyncMock(return_value=mock_response),
        __aexit__=AsyncMock(return_value=False),
    ))
    mock_session.closed = False
    return mock_session


class TestAiohttpTransport:
    """Transport with mocked aiohttp session."""

    @pytest.mark.asyncio
    async def test_json_body_decoded(self) -> None:
        transport = AiohttpTransport()
        transport._session = mock_session_returning(200, '{"choices": []}')

        response = await transport.send(
            HttpRequest(url="https://x.test", headers={"A": "b"}, body={"k": 1}), "openai"
        )

        assert response.ok is True
        assert response.body == {"choices": []}
        args, kwargs = transport._session.request.call_args
        assert args == ("POST", "https://x.test")
        assert kwargs["json"] == {"k": 1}
        assert kwargs["headers"] == {"A": "b"}

    @pytest.mark.asyncio
    async def test_error_status_returned_not_raised(self) -> None:
        transport = AiohttpTransport()
        transport._session = mock_session_returning(502, "Bad Gateway")

        response = await transport.send(HttpRequest(url="https://x.test"), "openai")

        assert response.ok is False
        assert response.status == 502
        assert response.body == "Bad Gateway"

    @pytest.mark.asyncio
    async def test_connection_error_becomes_provider_error(self) -> None:
        transport = AiohttpTransport()
        mock_session = AsyncMock()
        mock_session.request = MagicMock(side_effect=aiohttp.ClientConnectionError("refused"))
        mock_session.closed = False
        transport._session = mock_session

        with pytest.raises(ProviderError, match="Connection error") as exc_info:
            await transport.send(HttpRequest(url="https://x.test"), "groq")
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_timeout_becomes_provider_error(self) -> None:
        transport = AiohttpTransport()
        mock_session = AsyncMock()
        mock_session.request = MagicMock(side_effect=asyncio.TimeoutError())
        mock_session.closed = False
        transport._session = mock_session

        with pytest.raises(ProviderError, match="Timeout"):
            await transport.send(HttpRequest(url="https://x.test", timeout=2), "openai")

    @pytest.mark.asyncio
    async def test_close(self) -> None:
        transport = AiohttpTransport()
        mock_session = AsyncMock()
        mock_session.closed = False
        transport._session = mock_session

        await transport.close()

        mock_session.close.assert_awaited_once()
        assert transport._session is None
