"""FastAPI application initialization."""

from contextlib import asynccontextmanager
from uuid import uuid4

from dotenv import load_dotenv

# Load environment variables before anything else
load_dotenv()

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from speecheval import __version__
from speecheval.api.middleware import CorrelationIdMiddleware
from speecheval.api.routes import router
from speecheval.config import get_settings
from speecheval.services.logging_service import configure_logging, get_logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    settings = get_settings()
    configure_logging(settings.log_level)
    logger = get_logger("main")

    if settings.prompt_registry_enabled:
        from speecheval.services.prompt_service import seed_prompts

        seed_prompts()

    logger.info(
        "application_started",
        model=settings.openai_model,
        base_url=settings.openai_base_url,
        model_safety_scan=settings.use_model_safety_scan,
        prompt_registry=settings.prompt_registry_enabled,
        log_level=settings.log_level,
    )

    yield

    logger.info("application_shutdown")


app = FastAPI(
    title="Speech Evaluation API",
    description="Safety-gated transcript summarization and evaluation, streamed as SSE",
    version=__version__,
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return 400 with the first validation problem and the correlation id."""
    correlation_id = getattr(request.state, "correlation_id", None) or str(uuid4())
    logger = structlog.get_logger()

    errors = exc.errors()
    if errors:
        first_error = errors[0]
        field = ".".join(str(loc) for loc in first_error.get("loc", ["unknown"]))
        message = first_error.get("msg", "Validation failed")
        detail = f"Field '{field}': {message}"
    else:
        detail = "Request validation failed"

    logger.warning("validation_error", correlation_id=correlation_id, detail=detail)

    return JSONResponse(
        status_code=400,
        content={
            "error": "Validation error",
            "detail": detail,
            "correlation_id": correlation_id,
        },
        headers={"X-Correlation-Id": correlation_id},
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(CorrelationIdMiddleware)

app.include_router(router)
