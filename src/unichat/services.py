"""Explicit container for the backend clients shared by every request."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from unichat.exceptions import ConfigurationError
from unichat.protocols import (
    AgentClient,
    BlobStorage,
    CompletionClient,
    RetrievalClient,
    Tokenizer,
    ToolRouterClient,
    Transcriber,
)
from unichat.validation import InputValidator

if TYPE_CHECKING:
    from unichat.config import Settings

logger = logging.getLogger(__name__)


class ServiceContext:
    """Holds long-lived clients and hands them to stages by reference.

    Built once per process.  Optional collaborators return ``None`` when
    absent so the stage that needs them can degrade; the completion client,
    tokenizer and blob storage are built lazily from settings on first use
    and then cached, so every request sees the same instances.

    Example::

        services = ServiceContext(settings=get_settings(), retrieval=my_kb)
        assert services.get_completion_client() is services.get_completion_client()
    """

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        completion: CompletionClient | None = None,
        retrieval: RetrievalClient | None = None,
        tool_router: ToolRouterClient | None = None,
        agent: AgentClient | None = None,
        blob_storage: BlobStorage | None = None,
        transcriber: Transcriber | None = None,
        tokenizer: Tokenizer | None = None,
        validator: InputValidator | None = None,
    ) -> None:
        self._settings = settings
        self._completion = completion
        self._retrieval = retrieval
        self._tool_router = tool_router
        self._agent = agent
        self._blob_storage = blob_storage
        self._transcriber = transcriber
        self._tokenizer = tokenizer
        self._validator = validator

    def __repr__(self) -> str:
        wired = [
            name
            for name, value in (
                ("completion", self._completion),
                ("retrieval", self._retrieval),
                ("tool_router", self._tool_router),
                ("agent", self._agent),
                ("blob_storage", self._blob_storage),
                ("transcriber", self._transcriber),
            )
            if value is not None
        ]
        return f"ServiceContext(wired={wired!r})"

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            from unichat.config import get_settings

            self._settings = get_settings()
        return self._settings

    def get_completion_client(self) -> CompletionClient:
        """Return the completion client, building the Anthropic one on first use.

        Raises:
            ConfigurationError: When no client was injected and the
                ``anthropic`` extra is not installed.
        """
        if self._completion is None:
            from unichat.clients.anthropic import AnthropicCompletionClient

            settings = self.settings
            key = settings.anthropic_api_key
            try:
                self._completion = AnthropicCompletionClient(
                    settings.anthropic_model,
                    api_key=key.get_secret_value() if key else None,
                    max_tokens=settings.anthropic_max_tokens,
                )
            except ImportError as exc:
                msg = f"No completion client configured: {exc}"
                raise ConfigurationError(msg) from exc
            logger.info("Created completion client %r", self._completion)
        return self._completion

    def get_retrieval_client(self) -> RetrievalClient | None:
        return self._retrieval

    def get_tool_router(self) -> ToolRouterClient | None:
        return self._tool_router

    def get_agent_client(self) -> AgentClient | None:
        return self._agent

    def get_transcriber(self) -> Transcriber | None:
        return self._transcriber

    def get_blob_storage(self) -> BlobStorage:
        if self._blob_storage is None:
            from unichat.clients.blob import HttpBlobStorage

            settings = self.settings
            self._blob_storage = HttpBlobStorage(
                settings.blob_base_url,
                timeout=settings.blob_timeout,
                url_allowed=self.get_validator().is_valid_file_url,
            )
        return self._blob_storage

    def get_tokenizer(self) -> Tokenizer:
        """Return the tokenizer, falling back to the shared tiktoken counter."""
        if self._tokenizer is None:
            from unichat.tokens import get_default_counter

            self._tokenizer = get_default_counter()
        return self._tokenizer

    def get_validator(self) -> InputValidator:
        if self._validator is None:
            settings = self.settings
            self._validator = InputValidator(
                max_body_bytes=settings.max_body_bytes,
                max_download_bytes=settings.max_download_bytes,
                allowed_file_hosts=settings.allowed_file_hosts,
            )
        return self._validator

    async def aclose(self) -> None:
        """Close every wired client that holds network resources."""
        for client in (self._blob_storage, self._completion, self._agent):
            close = getattr(client, "aclose", None)
            if close is not None:
                await close()
