"""Tests for unichat.tokens: counting and history trimming.

tiktoken downloads its encoding data on first use, so TiktokenCounter is
exercised with a mocked encoding; the trimming logic uses FakeTokenizer.
"""

from __future__ import annotations

import sys
from unittest.mock import MagicMock, patch

import pytest

from unichat.models.chat import Message
from unichat.protocols.tokenizer import Tokenizer
from unichat.tokens import TiktokenCounter, count_message_tokens, trim_history
from tests.conftest import FakeTokenizer


class _MockEncoding:
    name = "mock_base"

    def encode(self, text: str) -> list[int]:
        return list(range(len(text.split())))

    def decode(self, tokens: list[int]) -> str:
        return " ".join(f"tok{t}" for t in tokens)


def _make_counter(**kwargs: int) -> TiktokenCounter:
    fake_tiktoken = MagicMock()
    fake_tiktoken.get_encoding.return_value = _MockEncoding()
    with patch.dict(sys.modules, {"tiktoken": fake_tiktoken}):
        return TiktokenCounter(**kwargs)


def _msg(role: str, text: str) -> Message:
    return Message(role=role, content=text)


class TestTiktokenCounter:
    def test_counts_and_caches(self) -> None:
        counter = _make_counter()
        assert counter.count_tokens("one two three") == 3
        assert counter.count_tokens("one two three") == 3
        assert counter._cache == {"one two three": 3}

    def test_cache_cleared_when_full(self) -> None:
        counter = _make_counter(max_cache_size=2)
        counter.count_tokens("a")
        counter.count_tokens("a b")
        counter.count_tokens("a b c")
        assert counter._cache == {"a b c": 3}

    def test_satisfies_protocol(self) -> None:
        assert isinstance(_make_counter(), Tokenizer)
        assert isinstance(FakeTokenizer(), Tokenizer)

    def test_repr(self) -> None:
        assert repr(_make_counter()) == "TiktokenCounter(encoding='mock_base')"

    def test_missing_tiktoken_hint(self) -> None:
        with patch.dict(sys.modules, {"tiktoken": None}), pytest.raises(
            ImportError, match=r"unichat\[tiktoken\]",
        ):
            TiktokenCounter()


class TestCountMessageTokens:
    def test_adds_framing_overhead(self) -> None:
        assert count_message_tokens(_msg("user", "hello there"), FakeTokenizer()) == 6

    def test_multipart_counts_text_parts(self) -> None:
        message = Message(
            role="user",
            content=[
                {"type": "text", "text": "look at this"},
                {"type": "image_url", "image_url": {"url": "data:image/png;base64,AAAA"}},
            ],
        )
        assert count_message_tokens(message, FakeTokenizer()) == 7


class TestTrimHistory:
    def test_no_limit_returns_copy(self) -> None:
        messages = [_msg("user", "a"), _msg("assistant", "b")]
        trimmed = trim_history(messages, FakeTokenizer(), token_limit=None)
        assert trimmed == messages
        assert trimmed is not messages

    def test_empty(self) -> None:
        assert trim_history([], FakeTokenizer(), token_limit=10) == []

    def test_drops_oldest_first(self) -> None:
        messages = [
            _msg("user", "one two three four five six"),
            _msg("assistant", "ok"),
            _msg("user", "latest question"),
        ]
        # latest = 2 + 4, "ok" = 1 + 4, the first = 6 + 4
        trimmed = trim_history(messages, FakeTokenizer(), token_limit=12)
        assert [m.text for m in trimmed] == ["ok", "latest question"]

    def test_reserved_tokens_count_against_limit(self) -> None:
        messages = [_msg("user", "hi"), _msg("assistant", "hey"), _msg("user", "again")]
        trimmed = trim_history(messages, FakeTokenizer(), token_limit=15, reserved_tokens=5)
        assert [m.text for m in trimmed] == ["hey", "again"]

    def test_last_message_always_kept(self) -> None:
        messages = [_msg("user", "earlier"), _msg("user", "word " * 50)]
        trimmed = trim_history(messages, FakeTokenizer(), token_limit=3)
        assert len(trimmed) == 1
        assert trimmed[0] is messages[-1]
