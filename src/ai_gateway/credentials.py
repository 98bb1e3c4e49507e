"""
ai-gateway: Per-provider API key pool with least-loaded selection.

Each provider owns a list of credentials. Selection skips credentials whose
error count reached the health threshold and ranks the rest by::

    usage + errors * error_weight - idle_seconds / idle_divisor

lowest first, i.e. the least-used, least error-prone, longest-idle key wins.
A key that was never used counts as idle since the epoch, so newly added
keys are tried first.
When every credential of a provider is unhealthy, all error counts for that
provider are reset so the provider never starves completely.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Mapping

from ai_gateway.models import Credential, mask_secret

logger = logging.getLogger(__name__)


@dataclass
class CredentialScoring:
    """Weights used to rank credentials.

    Attributes:
        health_threshold: Error count at which a credential is excluded.
        error_weight: Score penalty per recorded error.
        idle_divisor: Seconds of idle time worth one point of score.
    """

    health_threshold: int = 5
    error_weight: float = 10.0
    idle_divisor: float = 60.0


class CredentialPool:
    """Thread-safe store of provider credentials.

    Example::

        pool = CredentialPool()
        pool.add("openai", "sk-...")
        credential = pool.select("openai")
        ...
        pool.record_usage("openai", credential.secret, success=True)
    """

    def __init__(self, scoring: CredentialScoring | None = None) -> None:
        self.scoring = scoring or CredentialScoring()
        self._credentials: dict[str, list[Credential]] = {}
        self._lock = threading.RLock()

    def add(self, provider: str, secret: str) -> bool:
        """Add a credential. Returns False if the secret is already present."""
        secret = secret.strip()
        if not secret:
            raise ValueError("Credential secret must not be empty")
        with self._lock:
            entries = self._credentials.setdefault(provider, [])
            if any(c.secret == secret for c in entries):
                return False
            entries.append(Credential(secret=secret))
        logger.info(f"Added credential {mask_secret(secret)} for '{provider}'")
        return True

    def remove(self, provider: str, secret: str) -> bool:
        """Remove a credential. Returns False if it was not present."""
        with self._lock:
            entries = self._credentials.get(provider, [])
            for index, credential in enumerate(entries):
                if credential.secret == secret:
                    del entries[index]
                    logger.info(f"Removed credential {credential.masked} from '{provider}'")
                    return True
        return False

    def has_credentials(self, provider: str) -> bool:
        with self._lock:
            return bool(self._credentials.get(provider))

    def select(self, provider: str) -> Credential | None:
        """Return the best available credential, or None if the provider has none."""
        with self._lock:
            entries = self._credentials.get(provider)
            if not entries:
                return None

            healthy = self._healthy(entries)
            if not healthy:
                logger.warning(
                    f"All {len(entries)} credential(s) for '{provider}' are unhealthy; "
                    f"resetting error counts"
                )
                for credential in entries:
                    credential.errors = 0
                healthy = self._healthy(entries)

            now = time.time()
            return min(healthy, key=lambda c: self._score(c, now))

    def record_usage(self, provider: str, secret: str, success: bool) -> None:
        """Update counters after an attempt with this credential."""
        with self._lock:
            credential = self._find(provider, secret)
            if credential is None:
                return
            credential.usage += 1
            credential.last_used = time.time()
            if success:
                credential.errors = max(0, credential.errors - 1)
            else:
                credential.errors += 1

    def list_credentials(self, provider: str) -> list[dict[str, Any]]:
        """Credential summaries for a provider. Secrets are masked."""
        with self._lock:
            return [
                {
                    "masked_secret": c.masked,
                    "usage": c.usage,
                    "errors": c.errors,
                    "last_used": c.last_used or None,
                }
                for c in self._credentials.get(provider, [])
            ]

    def providers(self) -> list[str]:
        with self._lock:
            return [p for p, entries in self._credentials.items() if entries]

    def export(self) -> dict[str, list[dict[str, Any]]]:
        """Full state for persistence (secrets included)."""
        with self._lock:
            return {
                provider: [c.to_dict() for c in entries]
                for provider, entries in self._credentials.items()
            }

    def load(self, data: Mapping[str, Any]) -> None:
        """Replace the pool contents with previously exported state."""
        with self._lock:
            self._credentials = {
                provider: [Credential.from_dict(item) for item in entries]
                for provider, entries in data.items()
            }

    def _healthy(self, entries: list[Credential]) -> list[Credential]:
        return [c for c in entries if c.errors < self.scoring.health_threshold]

    def _score(self, credential: Credential, now: float) -> float:
        idle = now - credential.last_used
        return (
            credential.usage
            + credential.errors * self.scoring.error_weight
            - idle / self.scoring.idle_divisor
        )

    def _find(self, provider: str, secret: str) -> Credential | None:
        for credential in self._credentials.get(provider, []):
            if credential.secret == secret:
                return credential
        return None
