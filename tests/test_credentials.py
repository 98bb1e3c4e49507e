"""Tests for the credential pool."""

import time

import pytest

from ai_gateway.credentials import CredentialPool, CredentialScoring


class TestCredentialManagement:
    def test_add_and_duplicate(self) -> None:
        pool = CredentialPool()
        assert pool.add("openai", "sk-aaaa1111bbbb") is True
        assert pool.add("openai", "sk-aaaa1111bbbb") is False
        assert len(pool.list_credentials("openai")) == 1

    def test_same_secret_different_provider(self) -> None:
        pool = CredentialPool()
        assert pool.add("openai", "shared-secret-1") is True
        assert pool.add("groq", "shared-secret-1") is True

    def test_empty_secret_rejected(self) -> None:
        with pytest.raises(ValueError):
            CredentialPool().add("openai", "   ")

    def test_remove(self) -> None:
        pool = CredentialPool()
        pool.add("openai", "sk-aaaa1111bbbb")
        assert pool.remove("openai", "sk-aaaa1111bbbb") is True
        assert pool.remove("openai", "sk-aaaa1111bbbb") is False
        assert pool.has_credentials("openai") is False

    def test_list_masks_secrets(self) -> None:
        pool = CredentialPool()
        pool.add("openai", "sk-proj-abcdefghijklmnop")
        listed = pool.list_credentials("openai")[0]
        assert listed["masked_secret"] == "sk-p...mnop"
        assert "abcdefghijkl" not in str(listed)
        assert listed["usage"] == 0
        assert listed["last_used"] is None


class TestSelection:
    def test_select_unknown_provider_returns_none(self) -> None:
        assert CredentialPool().select("nobody") is None

    def test_prefers_least_used(self) -> None:
        pool = CredentialPool()
        pool.add("openai", "key-one-123456")
        pool.add("openai", "key-two-123456")
        for _ in range(3):
            pool.record_usage("openai", "key-one-123456", success=True)

        assert pool.select("openai").secret == "key-two-123456"

    def test_new_key_tried_before_long_idle_busy_key(self) -> None:
        pool = CredentialPool()
        pool.load({
            "openai": [
                {"secret": "key-old-123456", "usage": 100, "last_used": time.time() - 7200},
            ]
        })
        pool.add("openai", "key-new-123456")

        assert pool.select("openai").secret == "key-new-123456"

    def test_errors_weigh_more_than_usage(self) -> None:
        pool = CredentialPool()
        pool.add("openai", "key-busy-12345")
        pool.add("openai", "key-flaky-1234")
        for _ in range(5):
            pool.record_usage("openai", "key-busy-12345", success=True)
        pool.record_usage("openai", "key-flaky-1234", success=False)

        # busy: 5 uses; flaky: 1 use + 1 error * 10
        assert pool.select("openai").secret == "key-busy-12345"

    def test_unhealthy_credential_excluded(self) -> None:
        pool = CredentialPool(CredentialScoring(health_threshold=2, error_weight=0))
        pool.add("openai", "key-bad-123456")
        pool.add("openai", "key-good-12345")
        pool.record_usage("openai", "key-bad-123456", success=False)
        pool.record_usage("openai", "key-bad-123456", success=False)
        for _ in range(20):
            pool.record_usage("openai", "key-good-12345", success=True)

        # Much more used, but the only healthy one.
        assert pool.select("openai").secret == "key-good-12345"

    def test_all_unhealthy_resets_error_counts(self) -> None:
        pool = CredentialPool(CredentialScoring(health_threshold=1))
        pool.add("openai", "key-a-12345678")
        pool.add("openai", "key-b-12345678")
        pool.record_usage("openai", "key-a-12345678", success=False)
        pool.record_usage("openai", "key-b-12345678", success=False)

        selected = pool.select("openai")
        assert selected is not None
        assert all(c["errors"] == 0 for c in pool.list_credentials("openai"))

    def test_success_decrements_errors_with_floor(self) -> None:
        pool = CredentialPool()
        pool.add("openai", "key-a-12345678")
        pool.record_usage("openai", "key-a-12345678", success=False)
        pool.record_usage("openai", "key-a-12345678", success=True)
        pool.record_usage("openai", "key-a-12345678", success=True)

        listed = pool.list_credentials("openai")[0]
        assert listed["errors"] == 0
        assert listed["usage"] == 3


class TestPersistence:
    def test_export_and_load(self) -> None:
        pool = CredentialPool()
        pool.add("openai", "key-a-12345678")
        pool.record_usage("openai", "key-a-12345678", success=False)

        restored = CredentialPool()
        restored.load(pool.export())

        listed = restored.list_credentials("openai")[0]
        assert listed["usage"] == 1
        assert listed["errors"] == 1
        assert restored.select("openai").secret == "key-a-12345678"
