"""ChatPipeline -- the orchestrator that runs a request through its stages."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from unichat._callbacks import fire_callbacks
from unichat.exceptions import ErrorCode, PipelineError
from unichat.logsafe import sanitize_for_log
from unichat.models.context import ChatContext, PipelineMetrics
from unichat.models.response import ChatResponse

from .callbacks import PipelineCallback
from .stage import PipelineStage

logger = logging.getLogger(__name__)

# Seconds.  Stages not listed fall back to the pipeline's default.
DEFAULT_STAGE_TIMEOUTS: dict[str, float] = {
    "FileProcessor": 30.0,
    "ImageProcessor": 5.0,
    "RAGEnricher": 10.0,
    "ToolRouterEnricher": 45.0,
    "AgentEnricher": 5.0,
    "AgentChatHandler": 120.0,
    "StandardChatHandler": 90.0,
}
DEFAULT_STAGE_TIMEOUT = 30.0


@dataclass(slots=True)
class PipelineResult:
    """Outcome of one :meth:`ChatPipeline.execute` call."""

    response: ChatResponse | None
    errors: list[PipelineError] = field(default_factory=list)
    metrics: PipelineMetrics = field(default_factory=PipelineMetrics)
    stages_run: list[str] = field(default_factory=list)

    @property
    def critical_error(self) -> PipelineError | None:
        return next((e for e in self.errors if e.is_critical), None)

    @property
    def first_error(self) -> PipelineError | None:
        return self.errors[0] if self.errors else None

    @property
    def succeeded(self) -> bool:
        return self.response is not None and self.critical_error is None


class ChatPipeline:
    """Runs an ordered list of stages against a :class:`ChatContext`.

    Usage::

        pipeline = ChatPipeline(
            [
                FileProcessor(services),
                ImageProcessor(),
                RAGEnricher(services),
                ToolRouterEnricher(services),
                AgentEnricher(),
                AgentChatHandler(services),
                StandardChatHandler(services),
            ],
            request_timeout=300.0,
        )
        result = await pipeline.execute(context)

    For each stage, in order:
        1. Run it under its own timeout.  Expiry cancels the stage, records a
           ``PIPELINE_TIMEOUT`` error and stops the chain.
        2. A ``CRITICAL`` pipeline error stops the chain; a ``RECOVERABLE``
           one is recorded and the next stage runs.
        3. Any other exception is wrapped as ``INTERNAL_ERROR`` and stops
           the chain.
        4. Once a stage has set ``context.response`` no further stage runs.
    """

    def __init__(
        self,
        stages: Sequence[PipelineStage],
        *,
        stage_timeouts: Mapping[str, float] | None = None,
        default_stage_timeout: float = DEFAULT_STAGE_TIMEOUT,
        request_timeout: float | None = None,
        callbacks: Sequence[PipelineCallback] | None = None,
    ) -> None:
        if default_stage_timeout <= 0:
            msg = "default_stage_timeout must be positive"
            raise ValueError(msg)
        timeouts = {**DEFAULT_STAGE_TIMEOUTS, **(stage_timeouts or {})}
        for name, value in timeouts.items():
            if value <= 0:
                msg = f"Timeout for stage '{name}' must be positive, got {value}"
                raise ValueError(msg)

        self._stages: list[PipelineStage] = list(stages)
        self._stage_timeouts = timeouts
        self._default_stage_timeout = default_stage_timeout
        self._request_timeout = request_timeout
        self._callbacks: list[PipelineCallback] = list(callbacks or [])

        if request_timeout is not None:
            self._check_against_request_timeout(request_timeout)

    def _check_against_request_timeout(self, request_timeout: float) -> None:
        if request_timeout <= 0:
            msg = "request_timeout must be positive"
            raise ValueError(msg)
        for stage in self._stages:
            timeout = self.timeout_for(stage.name)
            if timeout >= request_timeout:
                msg = (
                    f"Timeout for stage '{stage.name}' ({timeout}s) must be shorter "
                    f"than the request timeout ({request_timeout}s)"
                )
                raise ValueError(msg)

    # -- Read-only accessors --

    @property
    def request_timeout(self) -> float | None:
        return self._request_timeout

    def timeout_for(self, stage_name: str) -> float:
        """The effective timeout, in seconds, for a stage name."""
        return self._stage_timeouts.get(stage_name, self._default_stage_timeout)

    def get_stages(self) -> tuple[PipelineStage, ...]:
        return tuple(self._stages)

    def get_stage_names(self) -> list[str]:
        return [s.name for s in self._stages]

    def add_callback(self, callback: PipelineCallback) -> ChatPipeline:
        """Register an event callback. Returns self for chaining."""
        self._callbacks.append(callback)
        return self

    def __repr__(self) -> str:
        return f"ChatPipeline(stages={self.get_stage_names()!r})"

    def _fire(self, method: str, *args: Any) -> None:
        fire_callbacks(self._callbacks, method, *args, logger=logger, log_level=logging.WARNING)

    # -- Execution --

    def _record_error(self, context: ChatContext, stage_name: str, error: PipelineError) -> None:
        if not any(e is error for e in context.errors):
            context.add_error(error)
        self._fire("on_stage_error", stage_name, error)

    async def _run_stage(
        self, stage: PipelineStage, context: ChatContext,
    ) -> tuple[ChatContext, bool]:
        """Run one stage.

        Returns the context to continue with (the one the stage returned, or
        *context* when it failed or returned ``None``) and whether the chain
        must stop.
        """
        timeout = self.timeout_for(stage.name)
        started = time.monotonic()
        self._fire("on_stage_start", stage.name, context)
        logger.debug("Running stage %s (timeout: %ss)", stage.name, timeout)

        returned: ChatContext | None = None
        try:
            async with asyncio.timeout(timeout) as scope:
                returned = await stage.process(context)
        except TimeoutError as exc:
            if not scope.expired():
                error = PipelineError.wrap(exc, stage.name)
                logger.error("Uncaught error in stage %s: %s", stage.name, sanitize_for_log(exc))
                self._record_error(context, stage.name, error)
                return context, True
            timeout_ms = round(timeout * 1000)
            error = PipelineError.critical(
                ErrorCode.PIPELINE_TIMEOUT,
                f"Stage {stage.name} exceeded timeout of {timeout_ms}ms",
                {"stage": stage.name, "timeout_ms": timeout_ms},
            )
            context.cancellation.cancel(f"stage {stage.name} timed out")
            logger.warning("Stage %s timed out after %sms", stage.name, timeout_ms)
            self._record_error(context, stage.name, error)
            return context, True
        except PipelineError as exc:
            self._record_error(context, stage.name, exc)
            if exc.is_critical:
                logger.error(
                    "Critical error in stage %s, stopping pipeline: %s",
                    stage.name, sanitize_for_log(exc.message),
                )
                return context, True
            logger.warning(
                "Recoverable error in stage %s: %s", stage.name, sanitize_for_log(exc.message),
            )
        except asyncio.CancelledError:
            context.cancellation.cancel("request cancelled")
            raise
        except Exception as exc:
            logger.error("Uncaught error in stage %s: %s", stage.name, sanitize_for_log(exc))
            self._record_error(context, stage.name, PipelineError.wrap(exc, stage.name))
            return context, True
        finally:
            elapsed_ms = round((time.monotonic() - started) * 1000, 2)
            context.metrics.stage_timings[stage.name] = elapsed_ms

        if returned is not None and returned is not context:
            if not isinstance(returned, ChatContext):
                msg = (
                    f"Stage '{stage.name}' returned {type(returned).__name__}, "
                    "expected ChatContext"
                )
                error = PipelineError.wrap(TypeError(msg), stage.name)
                self._record_error(context, stage.name, error)
                return context, True
            # Timings and start time live on one metrics object per request
            returned.metrics = context.metrics
            context = returned

        self._fire("on_stage_end", stage.name, context, context.metrics.stage_timings[stage.name])

        if context.has_critical_error:
            logger.error("Stage %s recorded a critical error, stopping pipeline", stage.name)
            return context, True
        return context, context.has_response

    async def execute(self, context: ChatContext) -> PipelineResult:
        """Run every stage against *context* and collect the outcome.

        Never raises for stage failures: they are recorded in the result's
        ``errors``.  Only cancellation of the calling task propagates.
        """
        metrics = context.metrics
        metrics.start_time = time.monotonic()
        stages_run: list[str] = []
        self._fire("on_pipeline_start", context)
        logger.info("Starting pipeline with stages: %s", self.get_stage_names())

        for stage in self._stages:
            if context.has_response:
                break
            if context.cancellation.cancelled:
                logger.info("Request cancelled before stage %s", stage.name)
                break
            stages_run.append(stage.name)
            context, stop = await self._run_stage(stage, context)
            if stop:
                break

        metrics.end_time = time.monotonic()
        result = PipelineResult(
            response=context.response,
            errors=list(context.errors),
            metrics=metrics,
            stages_run=stages_run,
        )
        logger.info(
            "Pipeline completed in %sms (stages: %s, errors: %d)",
            metrics.duration_ms, stages_run, len(result.errors),
        )
        self._fire("on_pipeline_end", result)
        return result
