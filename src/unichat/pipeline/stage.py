"""The stage contract shared by processors, enrichers and handlers."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from unichat.models.context import ChatContext

logger = logging.getLogger(__name__)

SyncStageFn = Callable[[ChatContext], ChatContext | None]
AsyncStageFn = Callable[[ChatContext], Awaitable[ChatContext | None]]
StageFn = SyncStageFn | AsyncStageFn


@runtime_checkable
class PipelineStage(Protocol):
    """Anything the orchestrator can run.

    ``process`` receives the request context, may annotate it, may raise a
    :class:`~unichat.exceptions.PipelineError` and may set a response.  It
    returns the context later stages continue with: usually the same object,
    though a replacement is adopted by the orchestrator.  Stages hold no
    per-request state between calls.
    """

    @property
    def name(self) -> str: ...

    async def process(self, context: ChatContext) -> ChatContext: ...


class BaseStage:
    """Convenience base with a precondition gate.

    Subclasses implement :meth:`_execute` and, usually, :meth:`should_run`.
    When ``should_run`` returns ``False`` the stage is a no-op and the
    context passes through untouched.
    """

    name: str = "BaseStage"

    def should_run(self, context: ChatContext) -> bool:
        return True

    async def process(self, context: ChatContext) -> ChatContext:
        if not self.should_run(context):
            logger.debug("Stage %s skipped; precondition not met", self.name)
            return context
        return await self._execute(context)

    async def _execute(self, context: ChatContext) -> ChatContext:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


@dataclass(slots=True)
class FunctionStage:
    """Wrap a plain callable as a pipeline stage.

    Both sync and async callables are accepted.  A callable that returns
    ``None`` is treated as having mutated the context in place::

        async def tag(ctx):
            ctx.processed_content.merge_metadata(tagged=True)

        pipeline = ChatPipeline([FunctionStage("Tagger", tag), handler])
    """

    name: str
    fn: StageFn
    metadata: dict[str, Any] = field(default_factory=dict)

    async def process(self, context: ChatContext) -> ChatContext:
        result = self.fn(context)
        if inspect.isawaitable(result):
            result = await result
        if result is None:
            return context
        if not isinstance(result, ChatContext):
            msg = f"Stage '{self.name}' must return a ChatContext or None"
            raise TypeError(msg)
        return result


def stage(name: str | None = None) -> Callable[[StageFn], FunctionStage]:
    """Decorator form of :class:`FunctionStage`.

    Usage::

        @stage("AuditLog")
        async def audit(ctx):
            ...
    """

    def _wrap(fn: StageFn) -> FunctionStage:
        stage_name = name or str(getattr(fn, "__name__", "unnamed_stage"))
        return FunctionStage(name=stage_name, fn=fn)

    return _wrap
