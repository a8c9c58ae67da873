"""
Tests for environment-driven application settings.
"""

import pytest
from pydantic import ValidationError


class TestVapidSettings:
    """Tests for Web Push configuration."""

    def test_not_configured_by_default(self):
        from backend.src.config.settings import AppSettings

        settings = AppSettings()

        assert settings.vapid_configured is False
        assert settings.vapid_claims == {}

    def test_configured_from_env(self, monkeypatch):
        from backend.src.config.settings import AppSettings

        monkeypatch.setenv("VAPID_PUBLIC_KEY", "BPublic")
        monkeypatch.setenv("VAPID_PRIVATE_KEY", "private")
        monkeypatch.setenv("VAPID_SUBJECT", "mailto:ops@example.com")
        settings = AppSettings()

        assert settings.vapid_configured is True
        assert settings.vapid_claims == {"sub": "mailto:ops@example.com"}

    def test_subject_must_be_mailto_or_https(self, monkeypatch):
        from backend.src.config.settings import AppSettings

        monkeypatch.setenv("VAPID_SUBJECT", "ops@example.com")

        with pytest.raises(ValidationError):
            AppSettings()


class TestOverdueScanSettings:
    """Tests for overdue scan configuration."""

    def test_defaults(self):
        from backend.src.config.settings import AppSettings

        settings = AppSettings()

        assert settings.overdue_batch_size == 50
        assert settings.overdue_check_hour == 0

    def test_from_env(self, monkeypatch):
        from backend.src.config.settings import AppSettings

        monkeypatch.setenv("WNP_OVERDUE_BATCH_SIZE", "20")
        monkeypatch.setenv("WNP_OVERDUE_CHECK_HOUR", "6")
        settings = AppSettings()

        assert settings.overdue_batch_size == 20
        assert settings.overdue_check_hour == 6
        assert settings.overdue_scheduler_enabled is False

    @pytest.mark.parametrize("name,value", [
        ("WNP_OVERDUE_BATCH_SIZE", "0"),
        ("WNP_OVERDUE_CHECK_HOUR", "24"),
    ])
    def test_out_of_range(self, monkeypatch, name, value):
        from backend.src.config.settings import AppSettings

        monkeypatch.setenv(name, value)

        with pytest.raises(ValidationError):
            AppSettings()


class TestRateLimitSettings:
    def test_default_storage_uri_is_memory(self):
        from backend.src.config.settings import AppSettings

        assert AppSettings().rate_limit_storage_uri == "memory://"

    def test_custom_storage_uri_from_env(self, monkeypatch):
        from backend.src.config.settings import AppSettings

        monkeypatch.setenv("RATE_LIMIT_STORAGE_URI", "redis://redis:6379")

        assert AppSettings().rate_limit_storage_uri == "redis://redis:6379"
