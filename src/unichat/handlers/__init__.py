"""Execution handlers: terminal stages that call a model backend and respond."""

from .agent_handler import AgentChatHandler
from .standard_handler import StandardChatHandler
from .streaming import coerce_citations, encode_stream, prime_stream, static_stream

__all__ = [
    "AgentChatHandler",
    "StandardChatHandler",
    "coerce_citations",
    "encode_stream",
    "prime_stream",
    "static_stream",
]
