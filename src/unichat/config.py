"""Runtime configuration loaded from ``UNICHAT_*`` environment variables."""

from __future__ import annotations

from functools import cache

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from unichat.exceptions import ConfigurationError
from unichat.pipeline.pipeline import DEFAULT_STAGE_TIMEOUT, DEFAULT_STAGE_TIMEOUTS

MB = 1024 * 1024


class Settings(BaseSettings):
    """Typed settings for the chat service.

    Every field can be set through the environment with the ``UNICHAT_``
    prefix (``UNICHAT_REQUEST_TIMEOUT=120``) or a ``.env`` file.  Mapping
    fields take JSON (``UNICHAT_STAGE_TIMEOUTS='{"RAGEnricher": 4}'``).
    """

    model_config = SettingsConfigDict(
        env_prefix="UNICHAT_", env_file=".env", env_file_encoding="utf-8", extra="ignore",
    )

    request_timeout: float = Field(default=300.0, gt=0)
    """Whole-request ceiling in seconds (context build plus pipeline)."""

    default_stage_timeout: float = Field(default=DEFAULT_STAGE_TIMEOUT, gt=0)
    stage_timeouts: dict[str, float] = Field(default_factory=dict)
    """Per-stage timeout overrides in seconds, merged over ``DEFAULT_STAGE_TIMEOUTS``."""

    rate_limit_requests: int = Field(default=100, gt=0)
    rate_limit_window_seconds: float = Field(default=60.0, gt=0)

    max_body_bytes: int = Field(default=10 * MB, gt=0)
    max_download_bytes: int = Field(default=1536 * MB, gt=0)
    sync_transcription_max_bytes: int = Field(default=25 * MB, gt=0)
    allowed_file_hosts: list[str] = Field(
        default_factory=lambda: [".blob.core.windows.net", "localhost"],
    )
    """Host suffixes file URLs may point at."""

    inline_file_max_tokens: int = Field(default=12_000, gt=0)
    """Documents at or below this size are sent verbatim instead of summarised."""

    base_system_prompt: str | None = None
    default_user_prompt: str = "You are a helpful AI assistant. Answer questions accurately and helpfully."

    anthropic_model: str = "claude-sonnet-4-5"
    anthropic_api_key: SecretStr | None = None
    anthropic_max_tokens: int = Field(default=4096, gt=0)

    blob_base_url: str | None = None
    blob_timeout: float = Field(default=60.0, gt=0)

    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = Field(default=8000, gt=0, lt=65536)

    @model_validator(mode="after")
    def _stage_timeouts_fit_request(self) -> Settings:
        effective = {
            **DEFAULT_STAGE_TIMEOUTS, **self.stage_timeouts, "<default>": self.default_stage_timeout,
        }
        too_long = {k: v for k, v in effective.items() if v >= self.request_timeout}
        if too_long:
            msg = (
                f"Stage timeouts must be shorter than request_timeout "
                f"({self.request_timeout}s): {too_long}"
            )
            raise ValueError(msg)
        return self


@cache
def get_settings() -> Settings:
    """Return the process-wide settings, loading them on first use.

    Raises:
        ConfigurationError: When the environment holds invalid values.
    """
    try:
        return Settings()
    except ValueError as exc:
        msg = f"Invalid unichat configuration: {exc}"
        raise ConfigurationError(msg) from exc
