"""Execution handler for hosted agents."""

from __future__ import annotations

import logging
import time

from unichat.exceptions import ErrorCode, PipelineError
from unichat.logsafe import sanitize_for_log
from unichat.models.backends import AgentRunRequest
from unichat.models.context import ChatContext, ExecutionStrategy
from unichat.models.response import JSONChatResponse, StreamingChatResponse, StreamMetadata
from unichat.models.streaming import StreamResult
from unichat.pipeline.stage import BaseStage
from unichat.services import ServiceContext

from .streaming import coerce_citations, encode_stream, prime_stream

logger = logging.getLogger(__name__)

DEFAULT_AGENT_TEMPERATURE = 0.7


class AgentChatHandler(BaseStage):
    """Delegates the conversation to a hosted agent.

    Runs only when an enricher chose ``ExecutionStrategy.AGENT``.  The
    streamed body ends with a trailer carrying the agent's ``threadId`` and
    citations so the client can continue the thread.
    """

    name = "AgentChatHandler"

    def __init__(self, services: ServiceContext) -> None:
        self._services = services

    def should_run(self, context: ChatContext) -> bool:
        return context.execution_strategy is ExecutionStrategy.AGENT

    def _request(self, context: ChatContext) -> AgentRunRequest:
        temperature = context.temperature
        return AgentRunRequest(
            model=context.model,
            model_id=context.model_id,
            messages=context.current_messages(),
            temperature=DEFAULT_AGENT_TEMPERATURE if temperature is None else temperature,
            bot_id=context.bot_id,
            thread_id=context.thread_id,
            capabilities=dict(context.agent_capabilities),
            user_id=context.user_id,
        )

    @staticmethod
    def _metadata(context: ChatContext, final: StreamResult | None, thinking: str) -> StreamMetadata:
        return StreamMetadata(
            thread_id=(final.thread_id if final else None) or context.thread_id,
            citations=coerce_citations(final.citations) if final else [],
            thinking=thinking or None,
        )

    async def _execute(self, context: ChatContext) -> ChatContext:
        client = self._services.get_agent_client()
        if client is None:
            msg = "No agent client is configured"
            raise PipelineError.recoverable(ErrorCode.AGENT_EXECUTION_FAILED, msg)

        request = self._request(context)
        started = time.monotonic()
        logger.info(
            "Executing hosted agent %s (messages: %d, thread: %s)",
            sanitize_for_log(context.model.agent_id),
            len(request.messages),
            sanitize_for_log(context.thread_id),
        )

        try:
            if context.stream:
                events = await prime_stream(client.stream(request))
            else:
                result = await client.run(request)
        except Exception as exc:
            logger.error("Agent execution failed: %s", sanitize_for_log(exc))
            msg = f"Agent execution failed: {exc}"
            raise PipelineError.recoverable(
                ErrorCode.AGENT_EXECUTION_FAILED, msg, {"agent_id": context.model.agent_id},
            ) from exc

        if context.stream:
            chunks = encode_stream(
                events,
                cancellation=context.cancellation,
                finalize=lambda final, thinking: self._metadata(context, final, thinking),
            )
            context.set_response(StreamingChatResponse(chunks=chunks))
        else:
            context.set_response(JSONChatResponse(text=result.text))
        logger.info("Agent response ready in %.0fms", (time.monotonic() - started) * 1000)
        return context
