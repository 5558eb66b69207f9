"""Builds a :class:`ChatContext` from a raw request body."""

from __future__ import annotations

import logging
from typing import Any

from unichat.exceptions import ErrorCode, PipelineError
from unichat.models.chat import ChatBody, SearchMode, detect_content_types
from unichat.models.context import ChatContext, Session
from unichat.prompts import DEFAULT_USER_PROMPT, UserInfo, build_system_prompt
from unichat.ratelimit import RateLimiter
from unichat.validation import InputValidator

logger = logging.getLogger(__name__)


def _user_info(body: ChatBody, session: Session) -> UserInfo | None:
    if not body.include_user_info_in_prompt:
        return None
    return UserInfo(
        name=body.preferred_name or session.display_name,
        title=session.job_title,
        email=session.email,
        department=session.department,
        additional_context=body.user_context,
    )


def build_chat_context(
    raw_body: Any,
    session: Session | None,
    *,
    validator: InputValidator | None = None,
    rate_limiter: RateLimiter | None = None,
    base_prompt: str | None = None,
    default_user_prompt: str = DEFAULT_USER_PROMPT,
) -> ChatContext:
    """Authenticate, rate-limit, validate and analyse one chat request.

    Steps, in order: session check, per-user rate limit, body size, schema
    validation, content analysis of the last message, system prompt
    assembly and agent-mode selection.

    Raises:
        PipelineError: ``AUTH_FAILED``, ``RATE_LIMIT_EXCEEDED`` or
            ``VALIDATION_FAILED``, always critical.
    """
    if session is None or not session.user_id:
        msg = "Unauthorized: No valid session found"
        raise PipelineError.critical(ErrorCode.AUTH_FAILED, msg)

    rate_limit: dict[str, Any] = {}
    if rate_limiter is not None:
        info = rate_limiter.enforce_limit(session.user_id)
        rate_limit = {"limit": info.limit, "remaining": info.remaining, "reset_after": info.reset_after}
        logger.debug(
            "User %s: %d/%d requests remaining", session.user_id, info.remaining, info.limit,
        )

    validator = validator or InputValidator()
    if not validator.validate_request_size(raw_body):
        mb = validator.max_body_bytes / (1024 * 1024)
        msg = f"Request body too large (max {mb:g}MB)"
        raise PipelineError.critical(ErrorCode.VALIDATION_FAILED, msg)
    body = validator.validate_chat_request(raw_body)

    system_prompt = build_system_prompt(
        body.prompt,
        user_info=_user_info(body, session),
        base_prompt=base_prompt,
        default_user_prompt=default_user_prompt,
    )
    search_mode = body.search_mode or SearchMode.OFF

    context = ChatContext(
        model=body.model,
        messages=list(body.messages),
        session=session,
        system_prompt=system_prompt,
        temperature=body.temperature,
        stream=body.stream,
        reasoning_effort=body.reasoning_effort,
        verbosity=body.verbosity,
        bot_id=body.bot_id,
        search_mode=search_mode,
        agent_mode=search_mode is SearchMode.AGENT or body.model.is_custom_agent,
        thread_id=body.thread_id,
        forced_agent_type=body.forced_agent_type,
        rate_limit=rate_limit,
    )
    context.add_content_types(*detect_content_types(context.last_message.content))

    logger.info(
        "Chat context built: model=%s messages=%d content_types=%s bot=%s search=%s agent=%s",
        context.model_id,
        len(context.messages),
        sorted(context.content_types),
        context.bot_id is not None,
        context.search_mode.value,
        context.agent_mode,
    )
    return context
