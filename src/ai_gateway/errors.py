"""
ai-gateway: Exception hierarchy and provider error classification.

Every failure surfaced to a caller is a ``GatewayError``. Errors that tell
the retry controller to stop immediately derive from ``NonRetryableError``.
"""

from __future__ import annotations

import math
from typing import Any


class GatewayError(Exception):
    """Base class for all gateway failures."""


# ──────────────────────────────────────────────────────────────────────────
# Admission
# ──────────────────────────────────────────────────────────────────────────


class AdmissionError(GatewayError):
    """The admission queue refused or abandoned a request."""


class QueueFullError(AdmissionError):
    def __init__(self, capacity: int) -> None:
        super().__init__(f"Request queue is full ({capacity} pending). Try again shortly.")
        self.capacity = capacity


class QueueTimeoutError(AdmissionError):
    def __init__(self, item_id: str, timeout: float) -> None:
        super().__init__(f"Request {item_id} timed out after {timeout:.1f}s in the queue")
        self.item_id = item_id
        self.timeout = timeout


class QueueClosedError(AdmissionError):
    """The queue was stopped before the item could be processed."""


# ──────────────────────────────────────────────────────────────────────────
# Gating
# ──────────────────────────────────────────────────────────────────────────


class RateLimitedError(GatewayError):
    """A rate-limit window denied the request.

    Attributes:
        scope: Which window denied it ("global", "caller" or "provider").
        wait_seconds: Seconds until the window resets.
    """

    def __init__(self, scope: str, wait_seconds: float, reason: str = "") -> None:
        seconds = max(1, math.ceil(wait_seconds))
        message = reason or f"{scope.capitalize()} rate limit exceeded"
        super().__init__(f"{message}. Try again in {seconds}s.")
        self.scope = scope
        self.wait_seconds = wait_seconds


class CircuitOpenError(GatewayError):
    def __init__(self, provider: str) -> None:
        super().__init__(f"Provider '{provider}' is temporarily disabled (circuit open)")
        self.provider = provider


class CreditsExhaustedError(GatewayError):
    """The credit authority refused usage for this caller."""

    def __init__(self, message: str = "No AI credits left. Top up to keep using AI replies.") -> None:
        super().__init__(message)


class NoProvidersAvailableError(GatewayError):
    def __init__(self, message: str = "No AI providers available") -> None:
        super().__init__(message)


# ──────────────────────────────────────────────────────────────────────────
# Provider calls
# ──────────────────────────────────────────────────────────────────────────


class ProviderError(GatewayError):
    """A provider call failed. Retryable unless a subclass says otherwise.

    Attributes:
        provider: Provider identifier.
        status: HTTP status, or None for transport-level failures.
    """

    retryable = True

    def __init__(self, provider: str, message: str, status: int | None = None) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.status = status


class NonRetryableError(ProviderError):
    retryable = False


class AuthorizationError(NonRetryableError):
    """Invalid API key, or the provider refused access (401/403)."""


class InsufficientCreditsError(NonRetryableError):
    """The provider account has no balance or quota left."""


_AUTH_MARKERS = ("invalid api key", "invalid_api_key", "incorrect api key", "unauthorized", "forbidden")
_CREDIT_MARKERS = ("insufficient", "credit balance", "billing")


def _body_text(body: Any) -> str:
    if isinstance(body, dict):
        error = body.get("error", body)
        if isinstance(error, dict):
            return str(error.get("message") or error.get("type") or error)
        return str(error)
    return str(body or "")


def classify_http_error(provider: str, status: int, body: Any) -> ProviderError:
    """Map a non-2xx provider response to the matching exception."""
    text = _body_text(body)[:200]
    lowered = text.lower()

    if status in (401, 403) or any(marker in lowered for marker in _AUTH_MARKERS):
        return AuthorizationError(provider, f"HTTP {status}: {text}", status)
    if status == 402 or any(marker in lowered for marker in _CREDIT_MARKERS):
        return InsufficientCreditsError(provider, f"HTTP {status}: {text}", status)
    return ProviderError(provider, f"HTTP {status}: {text}", status)


def is_retryable(error: BaseException) -> bool:
    """Whether the retry controller may try ``error``'s attempt again."""
    if not isinstance(error, Exception):
        return False
    if isinstance(error, ProviderError):
        return error.retryable
    return not isinstance(error, GatewayError)
