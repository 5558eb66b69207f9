"""Chat pipeline orchestration."""

from .builder import build_chat_context
from .callbacks import PipelineCallback
from .pipeline import DEFAULT_STAGE_TIMEOUT, DEFAULT_STAGE_TIMEOUTS, ChatPipeline, PipelineResult
from .stage import BaseStage, FunctionStage, PipelineStage, stage

__all__ = [
    "DEFAULT_STAGE_TIMEOUT",
    "DEFAULT_STAGE_TIMEOUTS",
    "BaseStage",
    "ChatPipeline",
    "FunctionStage",
    "PipelineCallback",
    "PipelineResult",
    "PipelineStage",
    "build_chat_context",
    "stage",
]
