"""
ai-gateway: Provider adapter protocol.

An adapter turns a ``CompletionRequest`` into the vendor's HTTP request and
extracts text and usage from the vendor's response body. Adapters are pure
and stateless; adding a provider means supplying an adapter plus a
``ProviderDescriptor``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ai_gateway.models import CompletionRequest, ProviderDescriptor, TokenUsage
    from ai_gateway.transport import HttpRequest


@runtime_checkable
class ProviderAdapter(Protocol):
    """Request/response shaping for one vendor API.

    Example::

        class MyAdapter:
            def build_request(self, descriptor, secret, request, model):
                return HttpRequest(
                    url=descriptor.url_for(model),
                    headers={"Authorization": f"Bearer {secret}"},
                    body={"model": model, "prompt": request.messages[-1].content},
                )

            def parse_response(self, provider, body):
                return body["text"], TokenUsage()

        register_adapter("my_provider", MyAdapter())
    """

    def build_request(
        self,
        descriptor: ProviderDescriptor,
        secret: str,
        request: CompletionRequest,
        model: str,
    ) -> HttpRequest:
        """Build the outbound HTTP request for ``model``."""
        ...

    def parse_response(self, provider: str, body: Any) -> tuple[str, TokenUsage]:
        """Extract generated text and token usage.

        Raises:
            ProviderError: If the body carries no usable text.
        """
        ...
