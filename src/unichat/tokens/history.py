"""Fitting a conversation into a model's context window."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from unichat.models.chat import Message
from unichat.protocols.tokenizer import Tokenizer

logger = logging.getLogger(__name__)

# Per-message framing overhead (role markers, separators)
MESSAGE_OVERHEAD_TOKENS = 4


def count_message_tokens(message: Message, tokenizer: Tokenizer) -> int:
    return tokenizer.count_tokens(message.text) + MESSAGE_OVERHEAD_TOKENS


def trim_history(
    messages: Sequence[Message],
    tokenizer: Tokenizer,
    *,
    token_limit: int | None,
    reserved_tokens: int = 0,
) -> list[Message]:
    """Drop the oldest messages until the conversation fits *token_limit*.

    Messages are kept newest-first.  The last message is always kept, even
    when it alone exceeds the limit; the backend reports that case itself.
    ``reserved_tokens`` accounts for the system prompt.  With no limit the
    conversation is returned unchanged.
    """
    if not messages:
        return []
    if token_limit is None:
        return list(messages)

    kept: list[Message] = [messages[-1]]
    used = reserved_tokens + count_message_tokens(messages[-1], tokenizer)
    for message in reversed(messages[:-1]):
        cost = count_message_tokens(message, tokenizer)
        if used + cost > token_limit:
            break
        kept.append(message)
        used += cost

    dropped = len(messages) - len(kept)
    if dropped:
        logger.info(
            "Trimmed %d of %d messages to fit %d tokens", dropped, len(messages), token_limit,
        )
    kept.reverse()
    return kept
