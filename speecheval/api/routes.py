"""API route definitions for evaluation and health endpoints."""

import json
import time
from datetime import datetime, timezone
from typing import AsyncGenerator
from uuid import uuid4

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from speecheval import __version__
from speecheval.models.events import PipelineError, event_to_dict
from speecheval.models.prompt import PipelineOptions
from speecheval.models.request import EvaluateRequest
from speecheval.services.backend import OpenAIBackend
from speecheval.services.orchestrator import PipelineOrchestrator
from speecheval.services.prompt_service import load_prompt_templates

router = APIRouter()


def get_orchestrator() -> PipelineOrchestrator:
    """Build an orchestrator for one request."""
    return PipelineOrchestrator(OpenAIBackend(), templates=load_prompt_templates())


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint.

    Returns:
        Status, version and timestamp in ISO8601 format
    """
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def format_sse(payload: dict) -> str:
    return f"data: {json.dumps(payload)}\n\n"


async def generate_sse_stream(
    orchestrator: PipelineOrchestrator,
    transcript: str,
    options: PipelineOptions,
    correlation_id: str,
) -> AsyncGenerator[str, None]:
    """Stream pipeline events as SSE, one ``data:`` frame per event.

    Unexpected failures are streamed as a final error frame so the client
    always sees the stream terminate.
    """
    logger = structlog.get_logger()
    start_time = time.perf_counter()
    event_count = 0
    status = "incomplete"

    try:
        async for event in orchestrator.run(transcript, options):
            event_count += 1
            status = event.kind
            yield format_sse({**event_to_dict(event), "correlation_id": correlation_id})
    except Exception as e:
        status = "error"
        logger.error(
            "stream_error",
            correlation_id=correlation_id,
            error_type=type(e).__name__,
            error_message=str(e),
        )
        error = PipelineError(
            f"An error occurred while processing your request. {type(e).__name__}: Please try again."
        )
        yield format_sse({**event_to_dict(error), "correlation_id": correlation_id})
    finally:
        logger.info(
            "response_complete",
            correlation_id=correlation_id,
            duration_ms=int((time.perf_counter() - start_time) * 1000),
            event_count=event_count,
            status=status,
        )


@router.post("/evaluate")
async def evaluate(
    request: EvaluateRequest,
    http_request: Request,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
) -> StreamingResponse:
    """Evaluate a transcript and stream pipeline progress.

    Streams StageStarted / StageCompleted events followed by exactly one
    terminal event: completed, safety_blocked or error.

    Args:
        request: EvaluateRequest with transcript, preset id and option overrides
        http_request: FastAPI request object for metadata
        orchestrator: Pipeline orchestrator (injected)

    Returns:
        StreamingResponse with SSE content type
    """
    correlation_id = getattr(http_request.state, "correlation_id", None) or str(uuid4())
    logger = structlog.get_logger()
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)

    logger.info(
        "request_received",
        method=http_request.method,
        path=str(http_request.url.path),
        content_length=len(request.transcript),
        prompt_id=request.prompt_id,
    )

    return StreamingResponse(
        generate_sse_stream(orchestrator, request.transcript, request.to_options(), correlation_id),
        media_type="text/event-stream",
        headers={
            "X-Correlation-Id": correlation_id,
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )
