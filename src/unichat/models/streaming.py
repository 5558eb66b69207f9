"""Streaming event models for model-backend responses."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class StreamDelta(BaseModel):
    """A single delta from a streaming model response.

    ``kind="thinking"`` deltas carry the reasoning trace; they are not
    forwarded to the client body but collected into the trailing metadata.
    """

    text: str
    kind: Literal["text", "thinking"] = "text"
    index: int = 0


class StreamUsage(BaseModel):
    """Token usage from a completed response."""

    input_tokens: int = 0
    output_tokens: int = 0


class StreamResult(BaseModel):
    """Accumulated result from a completed (buffered) response."""

    text: str = ""
    thinking: str = ""
    usage: StreamUsage = Field(default_factory=StreamUsage)
    model: str = ""
    stop_reason: str = ""
    thread_id: str | None = None
    citations: list[dict[str, object]] = Field(default_factory=list)


StreamEvent = StreamDelta | StreamResult
"""What a streaming backend yields: deltas, then optionally one final result.

The final :class:`StreamResult` carries data only known once generation ends
(usage, thread id, citations); its ``text`` is not re-sent to the client.
"""
