"""Selects hosted-agent execution."""

from __future__ import annotations

import logging

from unichat.logsafe import sanitize_for_log
from unichat.models.chat import SearchMode
from unichat.models.context import ChatContext, ExecutionStrategy
from unichat.pipeline.stage import BaseStage

logger = logging.getLogger(__name__)


class AgentEnricher(BaseStage):
    """Routes agent-mode requests to the agent handler.

    Runs last among the enrichers so its decision wins.  Hosted agents take
    text only, so a request carrying files or images stays on the standard
    path and is switched to intelligent search instead.
    """

    name = "AgentEnricher"

    def should_run(self, context: ChatContext) -> bool:
        wants_agent = context.agent_mode or context.forced_agent_type is not None
        return wants_agent and bool(context.model.agent_id)

    async def _execute(self, context: ChatContext) -> ChatContext:
        if context.has_files or context.has_images:
            logger.warning(
                "Agent mode with files/images is not supported; using standard execution "
                "with intelligent search",
            )
            context.annotate("search_mode", SearchMode.INTELLIGENT)
            return context

        capabilities: dict[str, object] = {"web_grounding": True}
        if context.forced_agent_type:
            capabilities["agent_type"] = context.forced_agent_type
        logger.info("Using hosted agent %s", sanitize_for_log(context.model.agent_id))
        context.annotate("execution_strategy", ExecutionStrategy.AGENT)
        context.annotate("agent_capabilities", capabilities)
        return context
