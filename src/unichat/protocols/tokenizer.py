"""Tokenizer protocol for token counting abstraction."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class Tokenizer(Protocol):
    """Protocol for token counting.

    The default implementation uses tiktoken, but any object with
    ``count_tokens`` works (a whitespace splitter is enough for tests).
    """

    def count_tokens(self, text: str) -> int:
        """Count the number of tokens in a text string."""
        ...
