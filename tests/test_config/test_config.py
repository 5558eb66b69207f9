"""Tests for unichat.config settings loading."""

from __future__ import annotations

import pytest

from unichat.config import Settings, get_settings
from unichat.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings()
        assert settings.request_timeout == 300.0
        assert settings.rate_limit_requests == 100
        assert settings.max_body_bytes == 10 * 1024 * 1024
        assert ".blob.core.windows.net" in settings.allowed_file_hosts

    def test_environment_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("UNICHAT_RATE_LIMIT_REQUESTS", "5")
        monkeypatch.setenv("UNICHAT_STAGE_TIMEOUTS", '{"RAGEnricher": 4}')
        settings = Settings()
        assert settings.rate_limit_requests == 5
        assert settings.stage_timeouts == {"RAGEnricher": 4.0}

    def test_secret_not_in_repr(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("UNICHAT_ANTHROPIC_API_KEY", "sk-very-secret")
        settings = Settings()
        assert "sk-very-secret" not in repr(settings)
        assert settings.anthropic_api_key.get_secret_value() == "sk-very-secret"  # type: ignore[union-attr]

    def test_override_must_fit_request_timeout(self) -> None:
        with pytest.raises(ValueError, match="RAGEnricher"):
            Settings(stage_timeouts={"RAGEnricher": 500.0})

    def test_short_request_timeout_with_matching_overrides(self) -> None:
        from unichat.pipeline import DEFAULT_STAGE_TIMEOUTS

        settings = Settings(
            request_timeout=5.0,
            default_stage_timeout=1.0,
            stage_timeouts={name: 1.0 for name in DEFAULT_STAGE_TIMEOUTS},
        )
        assert settings.request_timeout == 5.0


class TestGetSettings:
    def test_cached(self) -> None:
        assert get_settings() is get_settings()

    def test_invalid_environment_is_configuration_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("UNICHAT_REQUEST_TIMEOUT", "-3")
        with pytest.raises(ConfigurationError, match="Invalid unichat configuration"):
            get_settings()
