"""Completion backend protocol.

Any object with matching ``complete`` and ``stream`` methods can serve the
standard chat handler and the document summariser -- no inheritance required.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Protocol, runtime_checkable

from unichat.models.backends import CompletionRequest
from unichat.models.streaming import StreamEvent, StreamResult


@runtime_checkable
class CompletionClient(Protocol):
    """A chat-completion model backend."""

    async def complete(self, request: CompletionRequest) -> StreamResult:
        """Run one buffered completion.

        Parameters:
            request: Model, provider-shaped messages and sampling options.

        Returns:
            The full response text plus usage, stop reason and any thinking
            trace the model produced.
        """
        ...

    def stream(self, request: CompletionRequest) -> AsyncIterator[StreamEvent]:
        """Stream a completion as :class:`StreamDelta` events.

        Implementations may finish with a single :class:`StreamResult`
        carrying usage information.
        """
        ...
