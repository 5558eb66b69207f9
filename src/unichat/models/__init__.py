"""Data models for requests, per-request context and responses."""

from .chat import (
    ArtifactContext,
    ChatBody,
    ContentBlock,
    ContentType,
    FileUrlContent,
    ImageUrl,
    ImageUrlContent,
    Message,
    ModelDescriptor,
    SearchMode,
    TextContent,
    ThinkingContent,
    detect_content_types,
    message_text,
)
from .context import (
    CancellationToken,
    ChatContext,
    ExecutionStrategy,
    FileSummary,
    InlineFile,
    PipelineMetrics,
    ProcessedContent,
    ProcessedImage,
    Session,
    Transcript,
)
from .response import (
    ChatResponse,
    Citation,
    JSONChatResponse,
    PendingTranscription,
    StreamingChatResponse,
    StreamMetadata,
    TranscriptInfo,
    parse_metadata,
)
from .streaming import StreamDelta, StreamEvent, StreamResult, StreamUsage

__all__ = [
    "ArtifactContext",
    "CancellationToken",
    "ChatBody",
    "ChatContext",
    "ChatResponse",
    "Citation",
    "ContentBlock",
    "ContentType",
    "ExecutionStrategy",
    "FileSummary",
    "FileUrlContent",
    "ImageUrl",
    "ImageUrlContent",
    "InlineFile",
    "JSONChatResponse",
    "Message",
    "ModelDescriptor",
    "PendingTranscription",
    "PipelineMetrics",
    "ProcessedContent",
    "ProcessedImage",
    "SearchMode",
    "Session",
    "StreamDelta",
    "StreamEvent",
    "StreamMetadata",
    "StreamResult",
    "StreamUsage",
    "StreamingChatResponse",
    "TextContent",
    "ThinkingContent",
    "Transcript",
    "TranscriptInfo",
    "detect_content_types",
    "message_text",
    "parse_metadata",
]
