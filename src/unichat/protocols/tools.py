"""Tool routing and web search protocol."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from unichat.models.backends import ToolDecision, WebSearchResult
from unichat.models.chat import Message, ModelDescriptor


@runtime_checkable
class ToolRouterClient(Protocol):
    """Decides which tools a request needs and runs web search."""

    async def determine_tool(
        self, messages: list[Message], current_message: str, *, force_web_search: bool = False,
    ) -> ToolDecision:
        """Pick tools for the request.

        With ``force_web_search`` the decision must include ``web_search``;
        only the search query is left to the router.
        """
        ...

    async def web_search(
        self, query: str, *, model: ModelDescriptor, user_id: str | None = None,
    ) -> WebSearchResult:
        """Run a web search and return its text with the sources it used."""
        ...
