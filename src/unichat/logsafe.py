"""Sanitisation of user-controlled values before they reach log records."""

from __future__ import annotations

import json
import re
from typing import Any

_NEWLINES = re.compile(r"[\r\n]+")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f-\x9f]")


def sanitize_for_log(value: Any) -> str:
    """Return a single-line, control-character-free rendering of *value*.

    Newlines collapse to a space and every other C0/C1 control character
    (including ANSI escape introducers) is removed, so a crafted message
    cannot forge extra log lines.  Exceptions render as their message;
    other non-string objects are JSON-encoded when possible.
    """
    if value is None:
        return "None"

    if isinstance(value, BaseException):
        text = str(value) or type(value).__name__
    elif isinstance(value, str):
        text = value
    elif isinstance(value, (dict, list, tuple)):
        try:
            text = json.dumps(value, default=str)
        except (TypeError, ValueError):
            text = "[Object]"
    else:
        text = str(value)

    text = _NEWLINES.sub(" ", text)
    return _CONTROL_CHARS.sub("", text).strip()

