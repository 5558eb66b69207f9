"""Hosted-agent backend protocol."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Protocol, runtime_checkable

from unichat.models.backends import AgentRunRequest
from unichat.models.streaming import StreamEvent, StreamResult


@runtime_checkable
class AgentClient(Protocol):
    """Executes a pre-configured hosted agent."""

    async def run(self, request: AgentRunRequest) -> StreamResult:
        """Run the agent to completion; ``thread_id`` and citations ride on the result."""
        ...

    def stream(self, request: AgentRunRequest) -> AsyncIterator[StreamEvent]:
        """Stream the agent's answer, ending with a :class:`StreamResult`
        that carries the thread id and citations."""
        ...
