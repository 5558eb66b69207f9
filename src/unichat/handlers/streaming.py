"""Helpers that turn backend event streams into response bodies."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable, Iterable, Mapping
from typing import Any

from unichat.logsafe import sanitize_for_log
from unichat.models.context import CancellationToken
from unichat.models.response import Citation, StreamMetadata
from unichat.models.streaming import StreamEvent, StreamResult

logger = logging.getLogger(__name__)

MetadataFinalizer = Callable[[StreamResult | None, str], StreamMetadata]
"""Builds the trailing metadata from the final backend result and the thinking trace."""


def coerce_citations(raw: Iterable[Mapping[str, Any]], *, start: int = 1) -> list[Citation]:
    """Build numbered citations from backend dicts, numbering any that lack one."""
    citations: list[Citation] = []
    for offset, item in enumerate(raw):
        data = dict(item)
        data.setdefault("number", start + offset)
        citations.append(Citation.model_validate(data))
    return citations


async def prime_stream(events: AsyncIterator[StreamEvent]) -> AsyncIterator[StreamEvent]:
    """Pull the first event eagerly so connection failures raise here.

    Handlers call this inside their stage, where a failure can still become
    a pipeline error; once the response is handed to the client it cannot.
    """
    iterator = aiter(events)
    try:
        first: StreamEvent | None = await anext(iterator)
    except StopAsyncIteration:
        first = None

    async def _chain() -> AsyncIterator[StreamEvent]:
        if first is not None:
            yield first
        async for event in iterator:
            yield event

    return _chain()


async def encode_stream(
    events: AsyncIterator[StreamEvent],
    *,
    cancellation: CancellationToken,
    finalize: MetadataFinalizer,
) -> AsyncIterator[bytes]:
    """Forward text deltas as UTF-8 and append the metadata trailer.

    Thinking deltas are collected for the trailer instead of being sent.
    The cancellation token is checked once per event; when it trips the
    stream ends without a trailer.
    """
    thinking: list[str] = []
    final: StreamResult | None = None
    try:
        async for event in events:
            if cancellation.cancelled:
                logger.info("Stream cancelled: %s", sanitize_for_log(cancellation.reason))
                return
            if isinstance(event, StreamResult):
                final = event
            elif event.kind == "thinking":
                thinking.append(event.text)
            elif event.text:
                yield event.text.encode("utf-8")
    except GeneratorExit:
        cancellation.cancel("client disconnected")
        raise
    except Exception as exc:
        # The status line is already sent; all that is left is to end the body.
        logger.error("Backend stream failed mid-response: %s", sanitize_for_log(exc))
        return
    finally:
        close = getattr(events, "aclose", None)
        if close is not None:
            await close()

    trailer = finalize(final, "".join(thinking)).to_trailer()
    if trailer:
        yield trailer.encode("utf-8")


async def static_stream(text: str, metadata: StreamMetadata | None = None) -> AsyncIterator[bytes]:
    """A one-shot body: *text* followed by an optional trailer."""
    if text:
        yield text.encode("utf-8")
    if metadata is not None:
        trailer = metadata.to_trailer()
        if trailer:
            yield trailer.encode("utf-8")
