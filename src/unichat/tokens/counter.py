"""Token counting implementations."""

from __future__ import annotations

import functools

_INSTALL_HINT = (
    "tiktoken is required for the default tokenizer. "
    "Install it with: pip install unichat[tiktoken] or pip install tiktoken"
)


class TiktokenCounter:
    """Token counter backed by tiktoken.

    The default ``cl100k_base`` encoding is close enough to the tokenizers
    of the hosted models for history trimming.  Implements the
    :class:`~unichat.protocols.tokenizer.Tokenizer` protocol structurally.

    The tiktoken import is deferred to ``__init__`` so importing this module
    never loads BPE data when a caller injects its own tokenizer.
    """

    __slots__ = ("_cache", "_encoding", "_max_cache_size")

    def __init__(self, encoding_name: str = "cl100k_base", max_cache_size: int = 10_000) -> None:
        try:
            import tiktoken
        except ImportError:
            raise ImportError(_INSTALL_HINT) from None

        self._encoding = tiktoken.get_encoding(encoding_name)
        self._max_cache_size = max_cache_size
        self._cache: dict[str, int] = {}

    def count_tokens(self, text: str) -> int:
        if text in self._cache:
            return self._cache[text]
        count = len(self._encoding.encode(text))
        # Long strings are mostly one-off documents; cache chat-sized text only
        if len(text) < 10_000:
            if len(self._cache) >= self._max_cache_size:
                self._cache.clear()
            self._cache[text] = count
        return count

    def __repr__(self) -> str:
        return f"{type(self).__name__}(encoding={self._encoding.name!r})"


@functools.cache
def get_default_counter() -> TiktokenCounter:
    """Get or create the shared :class:`TiktokenCounter`.

    Call ``get_default_counter.cache_clear()`` to reset it in tests.

    Raises:
        ImportError: If tiktoken is not installed.
    """
    return TiktokenCounter()
