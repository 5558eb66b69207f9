"""Custom exceptions and the pipeline error taxonomy for unichat."""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from types import MappingProxyType
from typing import Any

__all__ = [
    "ConfigurationError",
    "DocumentError",
    "ErrorCode",
    "ErrorSeverity",
    "PipelineError",
    "UnichatError",
    "status_for_code",
]


class UnichatError(Exception):
    """Base exception for all unichat errors."""


class ConfigurationError(UnichatError):
    """Raised when settings or service wiring are inconsistent."""


class DocumentError(UnichatError):
    """Raised when an uploaded document cannot be turned into text."""


class ErrorSeverity(StrEnum):
    """Whether a pipeline error halts the chain or is merely recorded."""

    CRITICAL = "CRITICAL"
    RECOVERABLE = "RECOVERABLE"


class ErrorCode(StrEnum):
    """Stable error codes surfaced to API clients."""

    AUTH_FAILED = "AUTH_FAILED"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    REQUEST_TIMEOUT = "REQUEST_TIMEOUT"
    PIPELINE_TIMEOUT = "PIPELINE_TIMEOUT"
    INTERNAL_ERROR = "INTERNAL_ERROR"

    # Feature-specific, usually recoverable
    FILE_PROCESSING_FAILED = "FILE_PROCESSING_FAILED"
    IMAGE_PROCESSING_FAILED = "IMAGE_PROCESSING_FAILED"
    RAG_FAILED = "RAG_FAILED"
    TOOL_ROUTING_FAILED = "TOOL_ROUTING_FAILED"
    AGENT_EXECUTION_FAILED = "AGENT_EXECUTION_FAILED"
    CHAT_COMPLETION_FAILED = "CHAT_COMPLETION_FAILED"


_STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.AUTH_FAILED: 401,
    ErrorCode.RATE_LIMIT_EXCEEDED: 401,
    ErrorCode.VALIDATION_FAILED: 400,
    ErrorCode.REQUEST_TIMEOUT: 408,
    ErrorCode.PIPELINE_TIMEOUT: 408,
}


def status_for_code(code: ErrorCode | str) -> int:
    """Map an error code to its HTTP status. Unknown codes map to 500."""
    try:
        return _STATUS_BY_CODE.get(ErrorCode(code), 500)
    except ValueError:
        return 500


class PipelineError(UnichatError):
    """A typed, severity-tagged failure raised by (or on behalf of) a stage.

    Instances are value objects: ``code``, ``severity``, ``message`` and
    ``metadata`` are fixed at construction and the metadata mapping is
    exposed read-only.

    Use the :meth:`critical` and :meth:`recoverable` factories rather than
    the constructor so that the severity reads at the raise site::

        raise PipelineError.critical(ErrorCode.VALIDATION_FAILED, "Bad file")
    """

    __slots__ = ("_code", "_message", "_metadata", "_severity")

    def __init__(
        self,
        code: ErrorCode,
        severity: ErrorSeverity,
        message: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self._code = ErrorCode(code)
        self._severity = ErrorSeverity(severity)
        self._message = message
        self._metadata: Mapping[str, Any] = MappingProxyType(dict(metadata or {}))

    @classmethod
    def critical(
        cls,
        code: ErrorCode,
        message: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> PipelineError:
        """Build an error that halts the pipeline immediately."""
        return cls(code, ErrorSeverity.CRITICAL, message, metadata)

    @classmethod
    def recoverable(
        cls,
        code: ErrorCode,
        message: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> PipelineError:
        """Build an error that is recorded while the pipeline continues."""
        return cls(code, ErrorSeverity.RECOVERABLE, message, metadata)

    @classmethod
    def wrap(cls, exc: BaseException, stage: str | None = None) -> PipelineError:
        """Normalise an arbitrary exception into a pipeline error.

        Pipeline errors pass through unchanged.  Anything else becomes an
        ``INTERNAL_ERROR`` of ``CRITICAL`` severity whose ``__cause__`` is
        the original exception.
        """
        if isinstance(exc, PipelineError):
            return exc
        where = f" in stage {stage}" if stage else ""
        metadata: dict[str, Any] = {"original_error": type(exc).__name__}
        if stage:
            metadata["stage"] = stage
        error = cls.critical(ErrorCode.INTERNAL_ERROR, f"Uncaught error{where}: {exc}", metadata)
        error.__cause__ = exc
        return error

    @property
    def code(self) -> ErrorCode:
        return self._code

    @property
    def severity(self) -> ErrorSeverity:
        return self._severity

    @property
    def message(self) -> str:
        return self._message

    @property
    def metadata(self) -> Mapping[str, Any]:
        return self._metadata

    @property
    def is_critical(self) -> bool:
        return self._severity is ErrorSeverity.CRITICAL

    @property
    def status_code(self) -> int:
        """The HTTP status this error maps to."""
        return status_for_code(self._code)

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a JSON-safe dict for error response bodies."""
        data: dict[str, Any] = {
            "code": self._code.value,
            "severity": self._severity.value,
            "message": self._message,
        }
        if self._metadata:
            data["metadata"] = dict(self._metadata)
        return data

    def __repr__(self) -> str:
        return (
            f"PipelineError(code={self._code.value!r}, "
            f"severity={self._severity.value!r}, message={self._message!r})"
        )
