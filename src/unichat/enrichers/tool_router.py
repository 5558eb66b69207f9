"""Intelligent tool routing: decides on and runs web search."""

from __future__ import annotations

import logging

from unichat.exceptions import ErrorCode, PipelineError
from unichat.formatting import system_message
from unichat.logsafe import sanitize_for_log
from unichat.models.backends import WebSearchCitation, WebSearchResult
from unichat.models.chat import SearchMode
from unichat.models.context import ChatContext, ProcessedContent
from unichat.models.response import Citation
from unichat.pipeline.stage import BaseStage
from unichat.services import ServiceContext

logger = logging.getLogger(__name__)

_SEARCH_MODES = frozenset({SearchMode.INTELLIGENT, SearchMode.ALWAYS})
_SEARCH_INSTRUCTIONS = (
    "IMPORTANT: When referencing these sources in your response, use citation markers "
    "in SEPARATE brackets like [1][2][3] - never group them like [1,2,3]. Do NOT include "
    "source information (URLs, titles, or dates) in your response text. The citation "
    "details will be displayed separately to the user."
)


def routing_text(message_text: str, processed: ProcessedContent) -> str:
    """The text the router decides on: the user's words plus any attachments."""
    extra: list[str] = []
    if processed.file_summaries:
        extra.append("\n\n".join(f"[File: {f.filename}]\n{f.summary}" for f in processed.file_summaries))
    if processed.inline_files:
        extra.append("\n\n".join(f"[File: {f.filename}]\n{f.content}" for f in processed.inline_files))
    if processed.transcripts:
        extra.append(
            "\n\n".join(f"[Audio/Video: {t.filename}]\n{t.transcript}" for t in processed.transcripts),
        )
    if not extra:
        return message_text
    return "\n\n".join([message_text, *extra])


def _search_message(result: WebSearchResult, offset: int) -> str:
    references = "\n".join(
        f"[{offset + i}] {c.title or c.url}" for i, c in enumerate(result.citations, start=1)
    )
    return (
        f"Web Search results:\n\n{result.text}\n\n"
        f"Available sources:\n{references}\n\n{_SEARCH_INSTRUCTIONS}"
    )


def _merge_citations(existing: list[Citation], found: list[WebSearchCitation]) -> list[Citation]:
    offset = len(existing)
    return [
        *existing,
        *(
            Citation(number=offset + i, title=c.title, url=c.url, date=c.date)
            for i, c in enumerate(found, start=1)
        ),
    ]


class ToolRouterEnricher(BaseStage):
    """Runs web search when the router decides the request needs it.

    Active for ``intelligent`` and ``always`` search modes.  A request tied
    to a knowledge base only searches the web when that knowledge base
    allows it.  ``always`` forces the ``web_search`` tool; the router only
    chooses the query.
    """

    name = "ToolRouterEnricher"

    def __init__(self, services: ServiceContext) -> None:
        self._services = services

    def should_run(self, context: ChatContext) -> bool:
        return context.search_mode in _SEARCH_MODES

    def _web_search_allowed(self, context: ChatContext) -> bool:
        """Without a knowledge base, always; with one, only if its agent allows it."""
        if context.bot_id is None:
            return True
        retrieval = self._services.get_retrieval_client()
        agent = retrieval.get_agent(context.bot_id) if retrieval is not None else None
        return agent is not None and agent.allow_web_search

    async def _execute(self, context: ChatContext) -> ChatContext:
        router = self._services.get_tool_router()
        if router is None:
            logger.warning("No tool router configured; skipping web search")
            return context

        base = context.current_messages()
        current = routing_text(base[-1].text or "[non-text content]", context.processed_content)
        force = context.search_mode is SearchMode.ALWAYS

        try:
            if not self._web_search_allowed(context):
                logger.debug(
                    "Web search not allowed for knowledge base %s", sanitize_for_log(context.bot_id),
                )
                return context
            decision = await router.determine_tool(base, current, force_web_search=force)
            if not decision.wants_web_search:
                logger.debug("Router chose no tools (%s)", sanitize_for_log(decision.reasoning))
                return context
            query = decision.search_query or current
            logger.info("Executing web search: %s", sanitize_for_log(query[:200]))
            result = await router.web_search(query, model=context.model, user_id=context.user_id)
        except Exception as exc:
            logger.error("Tool routing failed: %s", sanitize_for_log(exc))
            msg = f"Tool routing failed: {exc}"
            raise PipelineError.recoverable(ErrorCode.TOOL_ROUTING_FAILED, msg) from exc

        existing = context.processed_content.citations
        logger.info(
            "Search completed: %d chars, %d citations (existing: %d)",
            len(result.text), len(result.citations), len(existing),
        )
        enriched = [*base[:-1], system_message(_search_message(result, len(existing))), base[-1]]
        context.annotate("enriched_messages", enriched)
        context.processed_content.merge_metadata(
            citations=_merge_citations(existing, result.citations),
        )
        return context
