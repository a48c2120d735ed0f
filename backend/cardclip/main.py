import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cardclip.api import cards
from cardclip.config import get_settings
from cardclip.constants.error_codes import get_error_spec
from cardclip.exceptions import CardError
from cardclip.middleware.request_context import build_meta, create_request_context
from cardclip.schemas.envelope import EnvelopeResponse, ErrorInfo

settings = get_settings()
logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup: resolve the encoder once
    pipeline = cards.get_card_pipeline()
    logger.info(f"Video encoder available: {pipeline.video_available}")
    yield
    # Shutdown
    cards.get_fetcher().close()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["POST", "GET", "OPTIONS"],
    allow_headers=["Content-Type"],
)


def _envelope_response(status_code: int, error: ErrorInfo) -> JSONResponse:
    context = create_request_context()
    envelope = EnvelopeResponse(
        request_id=context.request_id,
        error=error,
        meta=build_meta(context),
    )
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(envelope.model_dump(exclude_none=True)),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle request body validation errors with the envelope format."""
    spec = get_error_spec("VALIDATION_ERROR")
    errors = exc.errors()
    if errors:
        first_error = errors[0]
        loc = " -> ".join(str(x) for x in first_error.get("loc", []))
        msg = first_error.get("msg", "Validation error")
        message = f"{loc}: {msg}" if loc else msg
    else:
        message = "Request validation failed"

    error = ErrorInfo(
        code="VALIDATION_ERROR",
        kind="ValidationError",
        message=message,
        stage="validate",
        retryable=spec.get("retryable", False),
        suggested_fix=spec.get("suggested_fix"),
    )
    return _envelope_response(422, error)


@app.exception_handler(CardError)
async def card_error_handler(request: Request, exc: CardError) -> JSONResponse:
    """Map pipeline errors to their status codes."""
    if exc.status_code >= 500:
        logger.error(f"[{exc.stage or 'pipeline'}] {exc.code}: {exc.message} ({exc.cause})")
    else:
        logger.info(f"[{exc.stage or 'pipeline'}] {exc.code}: {exc.message}")
    return _envelope_response(exc.status_code, exc.to_error_info())


# Global exception handler so unexpected failures still return the envelope
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled exception: {exc}")
    spec = get_error_spec("INTERNAL_ERROR")
    error = ErrorInfo(
        code="INTERNAL_ERROR",
        kind="InternalError",
        message="Internal server error",
        retryable=spec.get("retryable", False),
        suggested_fix=spec.get("suggested_fix"),
    )
    return _envelope_response(500, error)


# Routers
app.include_router(cards.router, prefix="/api", tags=["cards"])


@app.get("/health")
async def health_check() -> dict:
    return {
        "status": "healthy",
        "version": settings.app_version,
        "video_encoder": cards.get_card_pipeline().video_available,
    }
