"""The per-request context threaded through every pipeline stage."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from unichat.exceptions import PipelineError
from unichat.models.chat import ContentType, Message, ModelDescriptor, SearchMode
from unichat.models.response import ChatResponse, Citation, PendingTranscription


class ExecutionStrategy(StrEnum):
    """Which execution handler should produce the response."""

    STANDARD = "standard"
    AGENT = "agent"


class Session(BaseModel):
    """Opaque identity supplied by the authentication collaborator."""

    user_id: str
    display_name: str | None = None
    email: str | None = None
    job_title: str | None = None
    department: str | None = None
    extra: dict[str, Any] = Field(default_factory=dict)


class FileSummary(BaseModel):
    filename: str
    summary: str
    original_content: str = ""


class InlineFile(BaseModel):
    filename: str
    content: str


class Transcript(BaseModel):
    filename: str
    transcript: str


class ProcessedImage(BaseModel):
    url: str
    detail: str = "auto"


class ProcessedContent(BaseModel):
    """Artifacts attached by content processors.

    Lists only ever grow and ``metadata`` is merged key by key, so an
    enricher can never erase what a processor recorded.
    """

    file_summaries: list[FileSummary] = Field(default_factory=list)
    inline_files: list[InlineFile] = Field(default_factory=list)
    transcripts: list[Transcript] = Field(default_factory=list)
    pending_transcriptions: list[PendingTranscription] = Field(default_factory=list)
    images: list[ProcessedImage] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def citations(self) -> list[Citation]:
        return list(self.metadata.get("citations", []))

    def merge_metadata(self, **updates: Any) -> None:
        self.metadata.update({k: v for k, v in updates.items() if v is not None})

    def has_document_context(self) -> bool:
        return bool(self.file_summaries or self.inline_files or self.transcripts)


class CancellationToken:
    """Cooperative cancellation flag shared by the orchestrator and handlers.

    Long-running work (stream forwarding in particular) checks
    :attr:`cancelled` once per iteration and stops when it is set.
    """

    __slots__ = ("_reason",)

    def __init__(self) -> None:
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._reason is not None

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        if self._reason is None:
            self._reason = reason

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled})"


@dataclass(slots=True)
class PipelineMetrics:
    """Timing information for one pipeline run (monotonic clock, seconds)."""

    start_time: float = field(default_factory=time.monotonic)
    end_time: float | None = None
    stage_timings: dict[str, float] = field(default_factory=dict)

    @property
    def duration_ms(self) -> float | None:
        if self.end_time is None:
            return None
        return round((self.end_time - self.start_time) * 1000, 2)


@dataclass(slots=True)
class ChatContext:
    """All state for one chat request as it flows through the pipeline.

    Created by the context builder, owned by the orchestrator for a single
    run and discarded afterwards.  Stages read and annotate it in place, or
    hand back a replacement that the orchestrator adopts.

    Invariants:
        * ``annotate`` never clears a field that an earlier stage set.
        * ``response`` is set at most once (``set_response``).
        * ``errors`` only grows (``add_error``).
        * ``content_types`` is a set; detection only adds to it.
    """

    model: ModelDescriptor
    messages: list[Message]
    session: Session
    model_id: str = ""
    system_prompt: str = ""
    temperature: float | None = None
    stream: bool = True
    reasoning_effort: str | None = None
    verbosity: str | None = None

    bot_id: str | None = None
    search_mode: SearchMode = SearchMode.OFF
    agent_mode: bool = False
    thread_id: str | None = None
    forced_agent_type: str | None = None

    content_types: set[ContentType] = field(default_factory=set)
    has_files: bool = False
    has_images: bool = False
    has_audio: bool = False

    processed_content: ProcessedContent = field(default_factory=ProcessedContent)
    enriched_messages: list[Message] | None = None
    execution_strategy: ExecutionStrategy = ExecutionStrategy.STANDARD
    agent_capabilities: dict[str, Any] = field(default_factory=dict)
    rate_limit: dict[str, Any] = field(default_factory=dict)

    errors: list[PipelineError] = field(default_factory=list)
    response: ChatResponse | None = None
    metrics: PipelineMetrics = field(default_factory=PipelineMetrics)
    cancellation: CancellationToken = field(default_factory=CancellationToken)

    def __post_init__(self) -> None:
        if not self.model_id:
            self.model_id = self.model.id

    # -- Invariant-preserving mutators --

    def annotate(self, name: str, value: Any) -> None:
        """Set a field, refusing to clear one that is already set."""
        if name in ("errors", "response", "metrics", "cancellation"):
            msg = f"'{name}' cannot be annotated; use the dedicated mutator"
            raise AttributeError(msg)
        current = getattr(self, name)
        if value is None and current is not None:
            msg = f"Cannot clear context field '{name}' set by an earlier stage"
            raise ValueError(msg)
        setattr(self, name, value)

    def add_content_types(self, *types: ContentType) -> None:
        self.content_types.update(types)
        if ContentType.FILE in self.content_types or ContentType.AUDIO in self.content_types:
            self.has_files = True
        if ContentType.IMAGE in self.content_types:
            self.has_images = True
        if ContentType.AUDIO in self.content_types:
            self.has_audio = True

    def add_error(self, error: PipelineError) -> None:
        self.errors.append(error)

    def set_response(self, response: ChatResponse) -> None:
        if self.response is not None:
            msg = "Response has already been set for this request"
            raise RuntimeError(msg)
        self.response = response

    # -- Convenience accessors --

    @property
    def has_response(self) -> bool:
        return self.response is not None

    @property
    def has_critical_error(self) -> bool:
        return any(e.is_critical for e in self.errors)

    @property
    def user_id(self) -> str:
        return self.session.user_id

    @property
    def last_message(self) -> Message:
        return self.messages[-1]

    def current_messages(self) -> list[Message]:
        """Enriched messages when an enricher produced them, else the originals."""
        if self.enriched_messages is not None:
            return list(self.enriched_messages)
        return list(self.messages)
