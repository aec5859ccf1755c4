"""FastAPI application for the match consent & notification pipeline."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from match_pipeline.api.deps import get_channel
from match_pipeline.api.routes.health import router as health_router
from match_pipeline.api.routes.introductions import router as introductions_router
from match_pipeline.api.routes.notifications import router as notifications_router
from match_pipeline.api.routes.signals import router as signals_router
from match_pipeline.errors import (
    GuardianMismatch,
    InvalidSignal,
    InvalidTransition,
    NotFound,
    PipelineError,
    QuotaExceeded,
    UnknownNotificationType,
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    # The delivery channel is built lazily on first flush
    if get_channel.cache_info().currsize:
        await get_channel().aclose()
        get_channel.cache_clear()


app = FastAPI(title="Match Pipeline API", version="0.1.0", lifespan=lifespan)

_STATUS_CODES: dict[type[PipelineError], int] = {
    QuotaExceeded: 429,
    InvalidTransition: 409,
    NotFound: 404,
    GuardianMismatch: 403,
    InvalidSignal: 422,
    UnknownNotificationType: 422,
}


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    status_code = next(
        (code for error_type, code in _STATUS_CODES.items() if isinstance(exc, error_type)),
        500,
    )
    body: dict = {"detail": str(exc), "error": type(exc).__name__}
    if isinstance(exc, QuotaExceeded):
        body.update(tier=exc.tier, limit=exc.limit, used=exc.used)
    if status_code >= 500:
        logger.error("pipeline_error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=status_code, content=body)


app.include_router(health_router)
app.include_router(signals_router)
app.include_router(introductions_router)
app.include_router(notifications_router)
