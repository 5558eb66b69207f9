"""Knowledge-base retrieval enrichment."""

from __future__ import annotations

import logging

from unichat.exceptions import ErrorCode, PipelineError
from unichat.formatting import (
    CITATION_STYLE_NOTE,
    render_inline_files,
    render_summaries,
    render_transcripts,
    system_message,
)
from unichat.logsafe import sanitize_for_log
from unichat.models.backends import KnowledgeAgent, SearchDocument
from unichat.models.chat import Message
from unichat.models.context import ChatContext, ProcessedContent
from unichat.models.response import Citation
from unichat.pipeline.stage import BaseStage
from unichat.services import ServiceContext

logger = logging.getLogger(__name__)

DOCUMENTS_INJECTED_KEY = "documents_injected"


def _format_source(number: int, doc: SearchDocument) -> str:
    date = (doc.date or "")[:10]
    return f"Source {number}:\nTitle: {doc.title}\nDate: {date}\nURL: {doc.url}\nContent: {doc.chunk}"


def _document_messages(processed: ProcessedContent) -> list[Message]:
    messages: list[Message] = []
    if processed.transcripts:
        messages.append(system_message(
            "The user has uploaded the following audio/video files:\n\n"
            + render_transcripts(processed.transcripts),
        ))
    documents = [
        p for p in (render_summaries(processed.file_summaries),
                    render_inline_files(processed.inline_files)) if p
    ]
    if documents:
        messages.append(system_message(
            "The user has uploaded the following documents:\n\n" + "\n\n".join(documents),
        ))
    return messages


class RAGEnricher(BaseStage):
    """Adds knowledge-base search results for requests with a ``bot_id``.

    Processed documents are injected as system messages ahead of the
    conversation so the search sees them, then the top documents are
    prepended as numbered sources.  Citations and the agent configuration
    land in ``processed_content.metadata``; the agent's own system prompt,
    when it has one, replaces the request's.
    """

    name = "RAGEnricher"

    def __init__(self, services: ServiceContext) -> None:
        self._services = services

    def should_run(self, context: ChatContext) -> bool:
        return context.bot_id is not None

    async def _execute(self, context: ChatContext) -> ChatContext:
        client = self._services.get_retrieval_client()
        if client is None:
            logger.warning("No retrieval client configured; skipping knowledge-base search")
            return context
        try:
            agent: KnowledgeAgent | None = client.get_agent(context.bot_id or "")
        except Exception as exc:
            logger.error("Knowledge-base lookup failed: %s", sanitize_for_log(exc))
            msg = f"Knowledge-base lookup failed: {exc}"
            raise PipelineError.recoverable(
                ErrorCode.RAG_FAILED, msg, {"bot_id": context.bot_id},
            ) from exc
        if agent is None:
            logger.warning("Knowledge-base agent not found: %s", sanitize_for_log(context.bot_id))
            return context
        logger.info("Adding RAG with knowledge-base agent %s", sanitize_for_log(agent.name))

        processed = context.processed_content
        document_messages = _document_messages(processed)
        enriched = [*document_messages, *context.current_messages()]

        try:
            results = await client.search(enriched, agent, user_id=context.user_id)
        except Exception as exc:
            logger.error("RAG search failed: %s", sanitize_for_log(exc))
            msg = f"Knowledge-base search failed: {exc}"
            raise PipelineError.recoverable(
                ErrorCode.RAG_FAILED, msg, {"bot_id": context.bot_id},
            ) from exc

        documents = results.documents
        logger.info("Search returned %d documents", len(documents))
        if documents:
            sources = "\n\n".join(_format_source(i, d) for i, d in enumerate(documents, start=1))
            enriched.insert(0, system_message(
                "You have access to the following knowledge base sources. "
                f"{CITATION_STYLE_NOTE}\n\nAvailable sources:\n\n{sources}",
            ))

        citations = [
            Citation(number=i, title=d.title, url=d.url, date=d.date)
            for i, d in enumerate(documents, start=1)
        ]
        context.annotate("enriched_messages", enriched)
        if agent.system_prompt:
            context.annotate("system_prompt", agent.system_prompt)
        processed.merge_metadata(
            citations=citations,
            rag_config={
                "bot_id": context.bot_id,
                "agent_name": agent.name,
                "agent_sources": list(agent.sources),
                "search_metadata": results.metadata,
            },
        )
        if document_messages:
            processed.merge_metadata(**{DOCUMENTS_INJECTED_KEY: True})
        return context
