"""Inbound chat request schema.

Field names follow Python conventions; the JSON wire format uses camelCase
aliases (``tokenLimit``, ``botId``...).  Both spellings are accepted.
"""

from __future__ import annotations

from enum import StrEnum
from pathlib import PurePosixPath
from typing import Annotated, Any, Literal
from urllib.parse import unquote, urlparse

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, StringConstraints
from pydantic.alias_generators import to_camel

AUDIO_VIDEO_EXTENSIONS: frozenset[str] = frozenset({
    ".mp3", ".mp4", ".mpeg", ".mpga", ".m4a", ".wav", ".webm",
    ".ogg", ".flac", ".mov", ".avi", ".mkv",
})


class SearchMode(StrEnum):
    """How the request wants web search / agent routing handled."""

    OFF = "off"
    INTELLIGENT = "intelligent"
    ALWAYS = "always"
    AGENT = "agent"


class ContentType(StrEnum):
    """Content-type tags detected in a message."""

    TEXT = "text"
    IMAGE = "image"
    FILE = "file"
    AUDIO = "audio"


def _check_url_or_data_url(value: str) -> str:
    if value.startswith(("data:", "/api/")):
        return value
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        msg = "Invalid URL"
        raise ValueError(msg)
    return value


UrlOrDataUrl = Annotated[str, AfterValidator(_check_url_or_data_url)]


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class TextContent(_WireModel):
    type: Literal["text"] = "text"
    text: str = Field(max_length=50_000)


class ImageUrl(_WireModel):
    url: UrlOrDataUrl
    detail: Literal["auto", "low", "high"] = "auto"


class ImageUrlContent(_WireModel):
    type: Literal["image_url"] = "image_url"
    image_url: ImageUrl = Field(alias="image_url")


class FileUrlContent(_WireModel):
    type: Literal["file_url"] = "file_url"
    url: UrlOrDataUrl
    original_filename: str | None = None

    @property
    def filename(self) -> str:
        """Best-effort display name: the original name, else the URL's last segment."""
        if self.original_filename:
            return self.original_filename
        return unquote(PurePosixPath(urlparse(self.url).path).name) or "file"

    @property
    def is_audio_video(self) -> bool:
        return PurePosixPath(self.filename.lower()).suffix in AUDIO_VIDEO_EXTENSIONS


class ThinkingContent(_WireModel):
    type: Literal["thinking"] = "thinking"
    thinking: str


ContentBlock = Annotated[
    TextContent | ImageUrlContent | FileUrlContent | ThinkingContent,
    Field(discriminator="type"),
]
MessageContent = Annotated[str, StringConstraints(max_length=100_000)] | list[ContentBlock]


class ModelDescriptor(_WireModel):
    """The model the client asked for."""

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    token_limit: int | None = Field(default=None, gt=0)
    max_length: int | None = Field(default=None, gt=0)
    is_agent: bool = False
    is_custom_agent: bool = False
    agent_id: str | None = None


class ArtifactContext(_WireModel):
    file_name: str
    language: str
    code: str = Field(max_length=100_000)


class Message(_WireModel):
    """A single conversation turn."""

    role: Literal["user", "assistant", "system"]
    content: MessageContent
    message_type: str | None = None
    tone_id: str | None = None
    prompt_id: str | None = None
    prompt_variables: dict[str, str] | None = None
    artifact_context: ArtifactContext | None = None
    citations: list[Any] | None = None
    thinking: str | None = None

    @property
    def text(self) -> str:
        """Concatenated text of the message (text blocks only)."""
        return message_text(self.content)


class ChatBody(_WireModel):
    """The validated request body of ``POST /api/chat``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    model: ModelDescriptor
    messages: list[Message] = Field(min_length=1, max_length=100)
    prompt: str | None = Field(default=None, max_length=10_000)
    temperature: float | None = Field(default=None, ge=0, le=2)
    stream: bool = True
    reasoning_effort: Literal["minimal", "low", "medium", "high"] | None = None
    verbosity: Literal["low", "medium", "high"] | None = None
    bot_id: str | None = Field(default=None, max_length=100)
    search_mode: SearchMode | None = None
    thread_id: str | None = Field(default=None, max_length=100)
    forced_agent_type: str | None = Field(default=None, max_length=50)
    include_user_info_in_prompt: bool = False
    preferred_name: str | None = Field(default=None, max_length=100)
    user_context: str | None = Field(default=None, max_length=2_000)


def message_text(content: str | list[Any]) -> str:
    """Extract the plain text of a message's content."""
    if isinstance(content, str):
        return content
    return "\n".join(block.text for block in content if isinstance(block, TextContent))


def detect_content_types(content: str | list[Any]) -> set[ContentType]:
    """Return every content-type tag present in a message's content."""
    if isinstance(content, str):
        return {ContentType.TEXT}
    found: set[ContentType] = set()
    for block in content:
        if isinstance(block, TextContent):
            found.add(ContentType.TEXT)
        elif isinstance(block, ImageUrlContent):
            found.add(ContentType.IMAGE)
        elif isinstance(block, FileUrlContent):
            found.add(ContentType.AUDIO if block.is_audio_video else ContentType.FILE)
    return found
