"""FastAPI route boundary for the chat pipeline.

The app does four things per request: authenticate, build the context,
run the pipeline and translate the outcome into HTTP.  Everything else
lives in the pipeline stages.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse

from unichat.config import Settings, get_settings
from unichat.enrichers import AgentEnricher, RAGEnricher, ToolRouterEnricher
from unichat.exceptions import ErrorCode, PipelineError
from unichat.handlers import AgentChatHandler, StandardChatHandler
from unichat.logsafe import sanitize_for_log
from unichat.models.response import JSONChatResponse, StreamingChatResponse
from unichat.pipeline import ChatPipeline, PipelineCallback, PipelineResult, PipelineStage
from unichat.pipeline.builder import build_chat_context
from unichat.processors import FileProcessor, ImageProcessor
from unichat.protocols import Authenticator
from unichat.ratelimit import RateLimiter
from unichat.services import ServiceContext

logger = logging.getLogger(__name__)

StagesFactory = Callable[[ServiceContext], Sequence[PipelineStage]]

# Set by the route; the framework-agnostic responses only carry the first two
STREAM_TRANSPORT_HEADERS: dict[str, str] = {
    "X-Accel-Buffering": "no",
    "Connection": "keep-alive",
}


def default_stages(services: ServiceContext) -> list[PipelineStage]:
    """Processors, then enrichers, then the agent handler before the fallback."""
    return [
        FileProcessor(services),
        ImageProcessor(),
        RAGEnricher(services),
        ToolRouterEnricher(services),
        AgentEnricher(),
        AgentChatHandler(services),
        StandardChatHandler(services),
    ]


def build_pipeline(
    settings: Settings,
    services: ServiceContext,
    *,
    stages_factory: StagesFactory = default_stages,
    callbacks: Sequence[PipelineCallback] | None = None,
) -> ChatPipeline:
    return ChatPipeline(
        stages_factory(services),
        stage_timeouts=settings.stage_timeouts,
        default_stage_timeout=settings.default_stage_timeout,
        request_timeout=settings.request_timeout,
        callbacks=callbacks,
    )


def error_response(errors: Sequence[PipelineError]) -> JSONResponse:
    """Render pipeline errors as ``{error, code, message, details, metadata?}``.

    A critical error decides the status; otherwise the first error does.
    """
    primary = next((e for e in errors if e.is_critical), errors[0])
    body: dict[str, Any] = {
        "error": "Critical Error" if primary.is_critical else "Error",
        "code": primary.code.value,
        "message": primary.message,
        "details": [e.to_dict() for e in errors],
    }
    if primary.metadata:
        body["metadata"] = dict(primary.metadata)
    return JSONResponse(body, status_code=primary.status_code)


def to_http_response(result: PipelineResult) -> Response:
    """Translate a pipeline outcome into an HTTP response."""
    response = result.response
    if response is None:
        if result.errors:
            return error_response(result.errors)
        error = PipelineError.critical(
            ErrorCode.INTERNAL_ERROR, "Pipeline did not generate a response",
        )
        return error_response([error])

    if result.errors:
        logger.warning(
            "Response produced with %d recoverable error(s): %s",
            len(result.errors), [e.code.value for e in result.errors],
        )

    headers = {k: v for k, v in response.headers.items() if k.lower() != "content-type"}
    if isinstance(response, StreamingChatResponse) and response.chunks is not None:
        return StreamingResponse(
            response.chunks,
            status_code=response.status_code,
            media_type=response.media_type,
            headers={**headers, **STREAM_TRANSPORT_HEADERS},
        )
    if isinstance(response, JSONChatResponse):
        return JSONResponse(response.body(), status_code=response.status_code, headers=headers)

    msg = f"Unsupported response type: {type(response).__name__}"
    return error_response([PipelineError.critical(ErrorCode.INTERNAL_ERROR, msg)])


async def _read_json(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        # Unparseable bodies fail schema validation like any other bad body
        return None


def create_app(
    settings: Settings | None = None,
    *,
    authenticator: Authenticator,
    services: ServiceContext | None = None,
    rate_limiter: RateLimiter | None = None,
    stages_factory: StagesFactory = default_stages,
    callbacks: Sequence[PipelineCallback] | None = None,
) -> FastAPI:
    """Create the chat service.

    Parameters:
        settings: Runtime settings; loaded from the environment when omitted.
        authenticator: Resolves the caller's session for each request.
        services: Shared backend clients.  One container serves every
            request for the life of the app.
        rate_limiter: Per-user limiter; built from settings when omitted.
        stages_factory: Builds the ordered stage list from the services.
        callbacks: Pipeline callbacks (logging, tracing).
    """
    settings = settings or get_settings()
    services = services or ServiceContext(settings=settings)
    rate_limiter = rate_limiter or RateLimiter(
        settings.rate_limit_requests, settings.rate_limit_window_seconds,
    )
    pipeline = build_pipeline(
        settings, services, stages_factory=stages_factory, callbacks=callbacks,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("unichat started (stages: %s)", pipeline.get_stage_names())
        yield
        await services.aclose()
        logger.info("unichat shutting down")

    app = FastAPI(title="unichat", lifespan=lifespan)
    app.state.settings = settings
    app.state.services = services
    app.state.pipeline = pipeline
    app.state.rate_limiter = rate_limiter

    @app.post("/api/chat")
    async def chat(request: Request) -> Response:
        """Run one chat request through the pipeline."""
        try:
            async with asyncio.timeout(settings.request_timeout):
                raw_body = await _read_json(request)
                session = await authenticator.authenticate(request)
                context = build_chat_context(
                    raw_body,
                    session,
                    validator=services.get_validator(),
                    rate_limiter=rate_limiter,
                    base_prompt=settings.base_system_prompt,
                    default_user_prompt=settings.default_user_prompt,
                )
                result = await pipeline.execute(context)
        except TimeoutError:
            timeout_ms = round(settings.request_timeout * 1000)
            error = PipelineError.critical(
                ErrorCode.REQUEST_TIMEOUT,
                f"Request exceeded timeout of {timeout_ms}ms",
                {"timeout_ms": timeout_ms},
            )
            logger.warning("Chat request timed out after %sms", timeout_ms)
            return error_response([error])
        except PipelineError as exc:
            logger.warning(
                "Chat request rejected: %s %s", exc.code.value, sanitize_for_log(exc.message),
            )
            return error_response([exc])
        except Exception as exc:
            logger.exception("Unhandled error in chat route")
            return error_response([PipelineError.wrap(exc)])
        return to_http_response(result)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        """Liveness check."""
        return {"status": "healthy", "stages": pipeline.get_stage_names()}

    return app
