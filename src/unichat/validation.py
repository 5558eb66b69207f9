"""Request validation at the route boundary."""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any
from urllib.parse import urlparse

from pydantic import ValidationError

from unichat.exceptions import ErrorCode, PipelineError
from unichat.logsafe import sanitize_for_log
from unichat.models.chat import ChatBody

logger = logging.getLogger(__name__)

MB = 1024 * 1024
DEFAULT_MAX_BODY_BYTES = 10 * MB
DEFAULT_MAX_DOWNLOAD_BYTES = 1536 * MB
DEFAULT_ALLOWED_FILE_HOSTS: tuple[str, ...] = (".blob.core.windows.net", "localhost")


def _host_matches(hostname: str, allowed: str) -> bool:
    """``.example.com`` matches any subdomain; a bare name matches itself or its subdomains."""
    allowed = allowed.lower()
    if allowed.startswith("."):
        return hostname.endswith(allowed)
    return hostname == allowed or hostname.endswith("." + allowed)


def _format_location(loc: Sequence[Any]) -> str:
    return ".".join(str(part) for part in loc)


class InputValidator:
    """Size, schema and URL checks for inbound chat requests.

    Every failure surfaces as a ``CRITICAL`` ``VALIDATION_FAILED``
    :class:`~unichat.exceptions.PipelineError`.
    """

    def __init__(
        self,
        *,
        max_body_bytes: int = DEFAULT_MAX_BODY_BYTES,
        max_download_bytes: int = DEFAULT_MAX_DOWNLOAD_BYTES,
        allowed_file_hosts: Sequence[str] = DEFAULT_ALLOWED_FILE_HOSTS,
    ) -> None:
        self.max_body_bytes = max_body_bytes
        self.max_download_bytes = max_download_bytes
        self.allowed_file_hosts = tuple(allowed_file_hosts)

    def validate_request_size(self, body: Any) -> bool:
        """Return ``True`` when the JSON-serialised body fits the ceiling."""
        try:
            size = len(json.dumps(body, separators=(",", ":"), ensure_ascii=False).encode("utf-8"))
        except (TypeError, ValueError):
            return False
        if size > self.max_body_bytes:
            logger.warning(
                "Request size %d bytes exceeds maximum %d bytes", size, self.max_body_bytes,
            )
            return False
        return True

    def validate_chat_request(self, body: Any) -> ChatBody:
        """Parse *body* into a :class:`ChatBody`.

        Raises:
            PipelineError: ``VALIDATION_FAILED`` naming the first offending
                field, with every issue in ``metadata["validation_errors"]``.
        """
        if not isinstance(body, dict):
            msg = "Chat request validation failed: request body must be a JSON object"
            raise PipelineError.critical(ErrorCode.VALIDATION_FAILED, msg)
        try:
            return ChatBody.model_validate(body)
        except ValidationError as exc:
            issues = exc.errors(include_url=False, include_input=False, include_context=False)
            first = issues[0] if issues else None
            detail = (
                f"{_format_location(first['loc'])}: {first['msg']}" if first else "Invalid request body"
            )
            error = PipelineError.critical(
                ErrorCode.VALIDATION_FAILED,
                f"Chat request validation failed: {detail}",
                {
                    "validation_errors": [
                        {"path": _format_location(i["loc"]), "message": i["msg"], "type": i["type"]}
                        for i in issues
                    ],
                },
            )
            raise error from exc

    def is_valid_file_url(self, url: str) -> bool:
        """Return ``True`` when *url* points at an allowed storage host."""
        try:
            hostname = urlparse(url).hostname
        except ValueError:
            return False
        if not hostname:
            return False
        if not any(_host_matches(hostname, host) for host in self.allowed_file_hosts):
            logger.warning("Rejected file URL from unauthorized host: %s", sanitize_for_log(hostname))
            return False
        return True

    async def validate_file_size(
        self,
        file_url: str,
        get_size: Callable[[str], Awaitable[int]],
    ) -> int:
        """Check a remote file's size before downloading it.

        Returns the size in bytes.

        Raises:
            PipelineError: ``VALIDATION_FAILED`` when the file is too large or
                its size cannot be determined.
        """
        try:
            size = await get_size(file_url)
        except PipelineError:
            raise
        except Exception as exc:
            msg = "Failed to validate file size"
            raise PipelineError.critical(
                ErrorCode.VALIDATION_FAILED, msg, {"original_error": str(exc)},
            ) from exc

        if size > self.max_download_bytes:
            msg = (
                f"File size {size / MB:.2f}MB exceeds maximum allowed size of "
                f"{self.max_download_bytes / MB:.2f}MB"
            )
            raise PipelineError.critical(
                ErrorCode.VALIDATION_FAILED, msg, {"file_size": size, "max_size": self.max_download_bytes},
            )
        logger.debug("File size validation passed: %.2fMB", size / MB)
        return size
