"""unichat: Unified chat request pipeline.

Core Pipeline:
    ChatPipeline, PipelineResult, PipelineStage, BaseStage, FunctionStage,
    stage, PipelineCallback, build_chat_context,
    DEFAULT_STAGE_TIMEOUT, DEFAULT_STAGE_TIMEOUTS

Stages:
    FileProcessor, ImageProcessor, RAGEnricher, ToolRouterEnricher,
    AgentEnricher, AgentChatHandler, StandardChatHandler

Services & Configuration:
    ServiceContext, Settings, get_settings, InputValidator, RateLimiter,
    RateLimitInfo

Observability:
    LoggingCallback, OpenTelemetryCallback

Protocols (extension points):
    AgentClient, Authenticator, BlobStorage, CompletionClient,
    RetrievalClient, Tokenizer, ToolRouterClient, Transcriber

Models & Types:
    ChatBody, Message, ModelDescriptor, SearchMode, ContentType,
    ChatContext, Session, ExecutionStrategy, ProcessedContent,
    CancellationToken, ChatResponse, JSONChatResponse, StreamingChatResponse,
    StreamMetadata, Citation, StreamDelta, StreamResult, StreamUsage,
    parse_metadata

Exceptions:
    UnichatError, ConfigurationError, DocumentError, PipelineError,
    ErrorCode, ErrorSeverity

Tokens:
    TiktokenCounter
"""

from importlib.metadata import PackageNotFoundError, version

from unichat.config import Settings, get_settings
from unichat.enrichers import AgentEnricher, RAGEnricher, ToolRouterEnricher
from unichat.exceptions import (
    ConfigurationError,
    DocumentError,
    ErrorCode,
    ErrorSeverity,
    PipelineError,
    UnichatError,
)
from unichat.handlers import AgentChatHandler, StandardChatHandler
from unichat.models import (
    CancellationToken,
    ChatBody,
    ChatContext,
    ChatResponse,
    Citation,
    ContentType,
    ExecutionStrategy,
    JSONChatResponse,
    Message,
    ModelDescriptor,
    ProcessedContent,
    SearchMode,
    Session,
    StreamDelta,
    StreamingChatResponse,
    StreamMetadata,
    StreamResult,
    StreamUsage,
    parse_metadata,
)
from unichat.observability import LoggingCallback, OpenTelemetryCallback
from unichat.pipeline import (
    DEFAULT_STAGE_TIMEOUT,
    DEFAULT_STAGE_TIMEOUTS,
    BaseStage,
    ChatPipeline,
    FunctionStage,
    PipelineCallback,
    PipelineResult,
    PipelineStage,
    build_chat_context,
    stage,
)
from unichat.processors import FileProcessor, ImageProcessor
from unichat.protocols import (
    AgentClient,
    Authenticator,
    BlobStorage,
    CompletionClient,
    RetrievalClient,
    Tokenizer,
    ToolRouterClient,
    Transcriber,
)
from unichat.ratelimit import RateLimiter, RateLimitInfo
from unichat.services import ServiceContext
from unichat.tokens import TiktokenCounter
from unichat.validation import InputValidator

try:
    __version__ = version("unichat")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

__all__ = [
    "DEFAULT_STAGE_TIMEOUT",
    "DEFAULT_STAGE_TIMEOUTS",
    "AgentChatHandler",
    "AgentClient",
    "AgentEnricher",
    "Authenticator",
    "BaseStage",
    "BlobStorage",
    "CancellationToken",
    "ChatBody",
    "ChatContext",
    "ChatPipeline",
    "ChatResponse",
    "Citation",
    "CompletionClient",
    "ConfigurationError",
    "ContentType",
    "DocumentError",
    "ErrorCode",
    "ErrorSeverity",
    "ExecutionStrategy",
    "FileProcessor",
    "FunctionStage",
    "ImageProcessor",
    "InputValidator",
    "JSONChatResponse",
    "LoggingCallback",
    "Message",
    "ModelDescriptor",
    "OpenTelemetryCallback",
    "PipelineCallback",
    "PipelineError",
    "PipelineResult",
    "PipelineStage",
    "ProcessedContent",
    "RAGEnricher",
    "RateLimitInfo",
    "RateLimiter",
    "RetrievalClient",
    "SearchMode",
    "ServiceContext",
    "Session",
    "Settings",
    "StandardChatHandler",
    "StreamDelta",
    "StreamMetadata",
    "StreamResult",
    "StreamUsage",
    "StreamingChatResponse",
    "TiktokenCounter",
    "Tokenizer",
    "ToolRouterClient",
    "ToolRouterEnricher",
    "Transcriber",
    "UnichatError",
    "build_chat_context",
    "get_settings",
    "parse_metadata",
    "stage",
]
