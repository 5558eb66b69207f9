"""Token counting and history trimming."""

from .counter import TiktokenCounter, get_default_counter
from .history import count_message_tokens, trim_history

__all__ = ["TiktokenCounter", "count_message_tokens", "get_default_counter", "trim_history"]
