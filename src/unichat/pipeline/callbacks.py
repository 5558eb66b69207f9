"""Pipeline callback protocol for observability and event hooks."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from unichat.exceptions import PipelineError
    from unichat.models.context import ChatContext
    from unichat.pipeline.pipeline import PipelineResult


@runtime_checkable
class PipelineCallback(Protocol):
    """Protocol for chat pipeline event callbacks.

    Implement this protocol to receive events while a request moves through
    the stages.  Hooks are looked up by name, so an implementation only has
    to define the ones it cares about.
    """

    def on_pipeline_start(self, context: ChatContext) -> None: ...
    def on_stage_start(self, stage_name: str, context: ChatContext) -> None: ...
    def on_stage_end(self, stage_name: str, context: ChatContext, time_ms: float) -> None: ...
    def on_stage_error(self, stage_name: str, error: PipelineError) -> None: ...
    def on_pipeline_end(self, result: PipelineResult) -> None: ...
