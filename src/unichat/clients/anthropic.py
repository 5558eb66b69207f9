"""Completion client for the Anthropic Messages API."""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import AsyncIterator
from typing import Any

from unichat.models.backends import CompletionRequest
from unichat.models.streaming import StreamDelta, StreamEvent, StreamResult, StreamUsage

logger = logging.getLogger(__name__)

_DATA_URL = re.compile(r"^data:(?P<media>[\w/+.-]+);base64,(?P<data>.+)$", re.DOTALL)
_MAX_TEMPERATURE = 1.0


def _image_block(url: str) -> dict[str, Any]:
    match = _DATA_URL.match(url)
    if match:
        return {
            "type": "image",
            "source": {"type": "base64", "media_type": match["media"], "data": match["data"]},
        }
    return {"type": "image", "source": {"type": "url", "url": url}}


def _convert_content(content: Any) -> str | list[dict[str, Any]]:
    if isinstance(content, str):
        return content
    blocks: list[dict[str, Any]] = []
    for part in content:
        if part.get("type") == "text":
            blocks.append({"type": "text", "text": part["text"]})
        elif part.get("type") == "image_url":
            blocks.append(_image_block(part["image_url"]["url"]))
    return blocks


def to_anthropic_messages(
    messages: list[dict[str, Any]],
) -> tuple[list[str], list[dict[str, Any]]]:
    """Split provider-neutral messages into system text and Messages API turns.

    ``system`` role messages are lifted into the system prompt and
    consecutive same-role turns are merged, since the API requires strict
    user/assistant alternation.
    """
    system_parts: list[str] = []
    turns: list[dict[str, Any]] = []
    for message in messages:
        if message["role"] == "system":
            content = message["content"]
            system_parts.append(content if isinstance(content, str) else "\n".join(
                p.get("text", "") for p in content if p.get("type") == "text"
            ))
            continue
        converted = _convert_content(message["content"])
        if turns and turns[-1]["role"] == message["role"]:
            previous = turns[-1]["content"]
            if isinstance(previous, str):
                previous = [{"type": "text", "text": previous}]
            if isinstance(converted, str):
                converted = [{"type": "text", "text": converted}]
            turns[-1] = {"role": message["role"], "content": previous + converted}
        else:
            turns.append({"role": message["role"], "content": converted})
    return system_parts, turns


class AnthropicCompletionClient:
    """:class:`~unichat.protocols.completion.CompletionClient` backed by ``AsyncAnthropic``.

    Requests for a model id that is not a Claude model are served by
    ``default_model``.

    Parameters:
        default_model: Model used when the request names a non-Claude model.
        api_key: Passed to ``AsyncAnthropic``; falls back to ``ANTHROPIC_API_KEY``.
        client: Pre-built client (tests inject a fake here).
        max_tokens: Output token ceiling per call.
        max_retries: Attempts for transient API errors on buffered calls.
    """

    __slots__ = ("_client", "_default_model", "_max_retries", "_max_tokens")

    def __init__(
        self,
        default_model: str = "claude-sonnet-4-5",
        *,
        api_key: str | None = None,
        client: Any = None,
        max_tokens: int = 4096,
        max_retries: int = 3,
    ) -> None:
        if client is not None:
            self._client: Any = client
        else:
            try:
                import anthropic
            except ImportError:
                msg = (
                    "anthropic is required for AnthropicCompletionClient. "
                    "Install with: pip install unichat[anthropic]"
                )
                raise ImportError(msg) from None
            self._client = anthropic.AsyncAnthropic(api_key=api_key)
        self._default_model = default_model
        self._max_tokens = max_tokens
        self._max_retries = max_retries

    def __repr__(self) -> str:
        return f"AnthropicCompletionClient(default_model={self._default_model!r})"

    def _model_for(self, request: CompletionRequest) -> str:
        return request.model_id if request.model_id.startswith("claude") else self._default_model

    def _build_kwargs(self, request: CompletionRequest) -> dict[str, Any]:
        system_parts, turns = to_anthropic_messages(request.messages)
        system = "\n\n".join(p for p in (request.system_prompt, *system_parts) if p)
        kwargs: dict[str, Any] = {
            "model": self._model_for(request),
            "max_tokens": self._max_tokens,
            "messages": turns,
        }
        if system:
            kwargs["system"] = system
        if request.temperature is not None:
            kwargs["temperature"] = min(request.temperature, _MAX_TEMPERATURE)
        if request.user_id:
            kwargs["metadata"] = {"user_id": request.user_id}
        return kwargs

    @staticmethod
    def _retryable_errors() -> tuple[type[Exception], ...]:
        try:
            import anthropic as _anthropic
        except ImportError:
            return ()
        return (
            _anthropic.RateLimitError,
            _anthropic.APIConnectionError,
            _anthropic.APITimeoutError,
        )

    async def _create_with_retry(self, **kwargs: Any) -> Any:
        """Call ``messages.create`` with exponential backoff on transient errors."""
        retryable = self._retryable_errors()
        last_exc: Exception | None = None
        for attempt in range(self._max_retries):
            try:
                return await self._client.messages.create(**kwargs)
            except retryable as exc:
                last_exc = exc
                delay = 2**attempt
                logger.warning(
                    "API call failed (attempt %d/%d): %s. Retrying in %ds...",
                    attempt + 1, self._max_retries, exc, delay,
                )
                await asyncio.sleep(delay)
        if last_exc is not None:
            raise last_exc
        msg = "max_retries must be >= 1"
        raise ValueError(msg)

    async def complete(self, request: CompletionRequest) -> StreamResult:
        response = await self._create_with_retry(**self._build_kwargs(request))
        text = "".join(b.text for b in response.content if b.type == "text")
        thinking = "".join(b.thinking for b in response.content if b.type == "thinking")
        return StreamResult(
            text=text,
            thinking=thinking,
            usage=StreamUsage(
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
            ),
            model=response.model,
            stop_reason=response.stop_reason or "",
        )

    async def stream(self, request: CompletionRequest) -> AsyncIterator[StreamEvent]:
        async with self._client.messages.stream(**self._build_kwargs(request)) as stream:
            async for event in stream:
                if event.type != "content_block_delta":
                    continue
                if event.delta.type == "text_delta":
                    yield StreamDelta(text=event.delta.text, index=event.index)
                elif event.delta.type == "thinking_delta":
                    yield StreamDelta(text=event.delta.thinking, kind="thinking", index=event.index)
            final = await stream.get_final_message()
        yield StreamResult(
            usage=StreamUsage(
                input_tokens=final.usage.input_tokens,
                output_tokens=final.usage.output_tokens,
            ),
            model=final.model,
            stop_reason=final.stop_reason or "",
        )
