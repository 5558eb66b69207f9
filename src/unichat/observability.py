"""Pipeline callbacks for logging and OpenTelemetry tracing.

``OpenTelemetryCallback`` requires the ``otel`` extra:
``pip install unichat[otel]``
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from unichat.exceptions import PipelineError
from unichat.logsafe import sanitize_for_log
from unichat.models.context import ChatContext

logger = logging.getLogger(__name__)

__all__ = ["LoggingCallback", "OpenTelemetryCallback"]


def _run_key() -> int:
    # All hooks of one pipeline run fire from the task that awaits execute()
    task = asyncio.current_task()
    return id(task) if task is not None else 0


class LoggingCallback:
    """Logs every stage transition at a configurable level."""

    def __init__(self, level: int = logging.DEBUG, log: logging.Logger | None = None) -> None:
        self._level = level
        self._logger = log or logger

    def on_pipeline_start(self, context: ChatContext) -> None:
        self._logger.log(
            self._level, "Pipeline start: user=%s model=%s",
            sanitize_for_log(context.user_id), sanitize_for_log(context.model_id),
        )

    def on_stage_start(self, stage_name: str, context: ChatContext) -> None:
        self._logger.log(self._level, "Stage start: %s", stage_name)

    def on_stage_end(self, stage_name: str, context: ChatContext, time_ms: float) -> None:
        self._logger.log(self._level, "Stage end: %s (%.1fms)", stage_name, time_ms)

    def on_stage_error(self, stage_name: str, error: PipelineError) -> None:
        self._logger.log(
            self._level, "Stage error: %s %s %s",
            stage_name, error.code.value, sanitize_for_log(error.message),
        )

    def on_pipeline_end(self, result: Any) -> None:
        self._logger.log(
            self._level, "Pipeline end: stages=%s errors=%d duration=%sms",
            result.stages_run, len(result.errors), result.metrics.duration_ms,
        )


class OpenTelemetryCallback:
    """Opens one OpenTelemetry span per pipeline run and one child per stage.

    Span state is keyed by the running asyncio task, so a single callback
    can be shared by a pipeline that serves concurrent requests.

    Usage::

        pipeline.add_callback(OpenTelemetryCallback())

    Parameters:
        tracer_provider: Optional ``TracerProvider``; the global provider is
            used when omitted.
        tracer_name: Instrumentation scope name.
    """

    __slots__ = ("_pipeline_spans", "_stage_spans", "_status_code", "_trace", "_tracer")

    def __init__(self, tracer_provider: Any = None, tracer_name: str = "unichat.pipeline") -> None:
        try:
            from opentelemetry import trace
            from opentelemetry.trace import StatusCode
        except ImportError:
            msg = (
                "OpenTelemetryCallback requires opentelemetry-api. "
                "Install with: pip install unichat[otel]"
            )
            raise ImportError(msg) from None

        self._trace = trace
        self._status_code = StatusCode
        self._tracer = trace.get_tracer(tracer_name, tracer_provider=tracer_provider)
        self._pipeline_spans: dict[int, Any] = {}
        self._stage_spans: dict[tuple[int, str], Any] = {}

    def on_pipeline_start(self, context: ChatContext) -> None:
        span = self._tracer.start_span(
            "chat.pipeline",
            attributes={
                "model.id": context.model_id,
                "chat.stream": context.stream,
                "chat.message_count": len(context.messages),
                "chat.has_files": context.has_files,
                "chat.has_images": context.has_images,
                "chat.has_rag": context.bot_id is not None,
            },
        )
        self._pipeline_spans[_run_key()] = span

    def on_stage_start(self, stage_name: str, context: ChatContext) -> None:
        key = _run_key()
        parent = self._pipeline_spans.get(key)
        ctx = self._trace.set_span_in_context(parent) if parent is not None else None
        self._stage_spans[(key, stage_name)] = self._tracer.start_span(
            f"chat.stage.{stage_name}", context=ctx, attributes={"stage.name": stage_name},
        )

    def on_stage_end(self, stage_name: str, context: ChatContext, time_ms: float) -> None:
        span = self._stage_spans.pop((_run_key(), stage_name), None)
        if span is None:
            return
        span.set_attribute("stage.time_ms", time_ms)
        span.set_status(self._status_code.OK)
        span.end()

    def on_stage_error(self, stage_name: str, error: PipelineError) -> None:
        span = self._stage_spans.pop((_run_key(), stage_name), None)
        if span is None:
            return
        span.set_attribute("error.code", error.code.value)
        span.set_attribute("error.severity", error.severity.value)
        span.record_exception(error)
        span.set_status(self._status_code.ERROR, error.message)
        span.end()

    def on_pipeline_end(self, result: Any) -> None:
        key = _run_key()
        for stage_key in [k for k in self._stage_spans if k[0] == key]:
            self._stage_spans.pop(stage_key).end()
        span = self._pipeline_spans.pop(key, None)
        if span is None:
            return
        span.set_attribute("pipeline.stages_run", list(result.stages_run))
        span.set_attribute("pipeline.error_count", len(result.errors))
        if result.metrics.duration_ms is not None:
            span.set_attribute("pipeline.duration_ms", result.metrics.duration_ms)
        critical = result.critical_error
        if critical is not None:
            span.set_status(self._status_code.ERROR, critical.message)
        else:
            span.set_status(self._status_code.OK)
        span.end()
