"""System prompt assembly."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

DEFAULT_BASE_SYSTEM_PROMPT = """# Core Behavior

You are a helpful AI assistant. Help users accomplish their tasks while being \
honest about your capabilities and limitations.

## Communication

- Respond in the language the user is writing in unless asked otherwise.
- Be clear and direct. Ask clarifying questions when genuinely needed.
- Say "I don't know" rather than guessing.

## Response Formatting

- Use GitHub-flavored markdown; use headers to organise longer answers.
- Always give code blocks a language identifier.
- Use `$$...$$` for mathematical notation.
- When citing numbered sources, use the form [1], [2].
"""

DEFAULT_USER_PROMPT = "You are a helpful AI assistant. Answer questions accurately and helpfully."

_USER_INSTRUCTIONS_MARKER = "# User Instructions\n\n"


@dataclass(slots=True)
class UserInfo:
    """Optional facts about the user that may be added to the prompt."""

    name: str | None = None
    title: str | None = None
    email: str | None = None
    department: str | None = None
    additional_context: str | None = None

    def lines(self) -> list[str]:
        pairs = (
            ("Name", self.name),
            ("Title", self.title),
            ("Email", self.email),
            ("Department", self.department),
        )
        return [f"- {label}: {value}" for label, value in pairs if value]


def _format_datetime(moment: datetime) -> str:
    return moment.strftime("%A, %B %d, %Y, %I:%M %p %Z").strip()


def _dynamic_context(now: datetime, user_info: UserInfo | None) -> str:
    parts = [f"Current date and time: {_format_datetime(now)}"]
    if user_info is not None:
        user_lines = user_info.lines()
        if user_lines or user_info.additional_context:
            section = "\n## About the Current User\n"
            if user_lines:
                section += "\n".join(user_lines)
            if user_info.additional_context:
                if user_lines:
                    section += "\n\n"
                section += f"Additional context:\n{user_info.additional_context}"
            parts.append(section)
    return "# Dynamic Context\n\n" + "\n".join(parts) + "\n"


def build_system_prompt(
    user_prompt: str | None = None,
    *,
    user_info: UserInfo | None = None,
    base_prompt: str | None = None,
    default_user_prompt: str = DEFAULT_USER_PROMPT,
    now: datetime | None = None,
) -> str:
    """Combine the base prompt, dynamic context and the user's instructions.

    The current date is always part of the dynamic context; *user_info* is
    only included when given.  A blank *user_prompt* falls back to
    *default_user_prompt*.
    """
    base = base_prompt or DEFAULT_BASE_SYSTEM_PROMPT
    instructions = (user_prompt or "").strip() or default_user_prompt
    context = _dynamic_context(now or datetime.now(timezone.utc), user_info)
    return f"{base}\n\n{context}\n{_USER_INSTRUCTIONS_MARKER}{instructions}"


def extract_user_prompt(full_prompt: str, default: str = DEFAULT_USER_PROMPT) -> str:
    """Return the user-instructions part of a prompt built by :func:`build_system_prompt`."""
    _, marker, tail = full_prompt.partition(_USER_INSTRUCTIONS_MARKER)
    if not marker:
        return full_prompt or default
    return tail or default
