"""Framework-agnostic response objects produced by execution handlers.

The route boundary turns these into real HTTP responses; keeping them free
of any web framework lets handlers be unit-tested in isolation.
"""

from __future__ import annotations

import json
import re
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

METADATA_START = "<<<METADATA_START>>>"
METADATA_END = "<<<METADATA_END>>>"
_METADATA_SEPARATOR = "\n\n" + METADATA_START
_METADATA_PATTERN = re.compile(
    r"\n\n" + re.escape(METADATA_START) + r"(.*?)" + re.escape(METADATA_END), re.DOTALL,
)

JSON_HEADERS: dict[str, str] = {"Content-Type": "application/json"}
STREAMING_HEADERS: dict[str, str] = {
    "Content-Type": "text/plain; charset=utf-8",
    "Cache-Control": "no-cache",
}


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Citation(_WireModel):
    """A numbered source the model may cite as ``[n]``."""

    number: int
    title: str = ""
    url: str = ""
    date: str | None = None


class PendingTranscription(_WireModel):
    """An asynchronous transcription job the client should poll for."""

    filename: str
    job_id: str
    job_type: str = "batch"
    blob_path: str | None = None


class TranscriptInfo(_WireModel):
    filename: str
    transcript: str
    job_id: str | None = None


class StreamMetadata(_WireModel):
    """Out-of-band data appended after the streamed content completes."""

    citations: list[Citation] = Field(default_factory=list)
    thread_id: str | None = None
    thinking: str | None = None
    transcript: TranscriptInfo | None = None
    pending_transcriptions: list[PendingTranscription] = Field(default_factory=list)
    action: str | None = None

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_defaults=True)

    def to_trailer(self) -> str:
        """Render the trailing block, or ``""`` when there is nothing to send."""
        payload = self.model_dump(mode="json", exclude_defaults=True, by_alias=True)
        if not payload:
            return ""
        return f"{_METADATA_SEPARATOR}{json.dumps(payload, separators=(',', ':'))}{METADATA_END}"


def parse_metadata(content: str) -> tuple[str, StreamMetadata | None]:
    """Split a full response body into its text and its trailing metadata.

    Returns the body unchanged and ``None`` when no block is present or the
    block is not valid JSON.
    """
    match = _METADATA_PATTERN.search(content)
    if match is None:
        return content, None
    text = _METADATA_PATTERN.sub("", content, count=1)
    try:
        data = json.loads(match.group(1))
    except json.JSONDecodeError:
        return text, None
    return text, StreamMetadata.model_validate(data)


@dataclass(slots=True)
class ChatResponse:
    """Base class of the two response shapes a handler can produce."""

    status_code: int = 200
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def media_type(self) -> str:
        return self.headers.get("Content-Type", "")


@dataclass(slots=True)
class JSONChatResponse(ChatResponse):
    """A buffered ``{"text": ...}`` response."""

    text: str = ""
    headers: dict[str, str] = field(default_factory=lambda: dict(JSON_HEADERS))

    def body(self) -> dict[str, Any]:
        return {"text": self.text}


@dataclass(slots=True)
class StreamingChatResponse(ChatResponse):
    """An incrementally flushed ``text/plain`` response."""

    chunks: AsyncIterator[bytes] | None = None
    headers: dict[str, str] = field(default_factory=lambda: dict(STREAMING_HEADERS))
