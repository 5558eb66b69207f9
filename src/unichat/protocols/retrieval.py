"""Knowledge-base retrieval protocol."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from unichat.models.backends import KnowledgeAgent, SearchResults
from unichat.models.chat import Message


@runtime_checkable
class RetrievalClient(Protocol):
    """Resolves knowledge-base agents and searches their indexes."""

    def get_agent(self, bot_id: str) -> KnowledgeAgent | None:
        """Return the agent registered under *bot_id*, or ``None``."""
        ...

    async def search(
        self, messages: list[Message], agent: KnowledgeAgent, *, user_id: str | None = None,
    ) -> SearchResults:
        """Search *agent*'s sources for documents relevant to the conversation."""
        ...
