"""Feature enrichers: annotate the context with feature decisions, never respond."""

from .agent import AgentEnricher
from .rag import RAGEnricher
from .tool_router import ToolRouterEnricher, routing_text

__all__ = ["AgentEnricher", "RAGEnricher", "ToolRouterEnricher", "routing_text"]
