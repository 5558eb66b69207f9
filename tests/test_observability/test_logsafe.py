"""Tests for unichat.logsafe."""

from __future__ import annotations

import pytest

from unichat.logsafe import sanitize_for_log


class TestSanitizeForLog:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("plain", "plain"),
            ("line one\nline two", "line one line two"),
            ("fake\r\n[INFO] forged entry", "fake [INFO] forged entry"),
            ("\x1b[31mred\x1b[0m", "[31mred[0m"),
            ("bell\x07", "bell"),
            (None, "None"),
            (42, "42"),
        ],
    )
    def test_values(self, value: object, expected: str) -> None:
        assert sanitize_for_log(value) == expected

    def test_exception_uses_message(self) -> None:
        assert sanitize_for_log(ValueError("bad\ninput")) == "bad input"
        assert sanitize_for_log(RuntimeError()) == "RuntimeError"

    def test_containers_are_json(self) -> None:
        assert sanitize_for_log({"user": "ada"}) == '{"user": "ada"}'
        assert sanitize_for_log(["a", 1]) == '["a", 1]'
