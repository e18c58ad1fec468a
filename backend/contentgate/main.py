from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware

from contentgate import __version__
from contentgate.limits import limiter
from contentgate.pipeline.run import build_pipeline
from contentgate.routers import quality as quality_router
from contentgate.routers import versions as versions_router
from contentgate.schemas import AppStatus
from contentgate.settings import settings

logger = logging.getLogger(__name__)


class TimeoutMiddleware(BaseHTTPMiddleware):
    """Fail requests that exceed ``settings.request_timeout_s`` with a 504."""

    async def dispatch(self, request: Request, call_next):
        timeout_s = settings.request_timeout_s
        try:
            return await asyncio.wait_for(call_next(request), timeout=timeout_s)
        except asyncio.TimeoutError:
            return JSONResponse(
                status_code=504,
                content={"detail": f"Request timed out after {timeout_s} seconds"},
            )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the quality pipeline once; configuration errors abort startup."""
    try:
        logger.info("Starting content quality gate...")
        app.state.pipeline = build_pipeline(settings)
        logger.info(
            "Content quality gate started with dimensions: %s",
            ", ".join(app.state.pipeline.registry.dimensions),
        )
    except Exception as e:
        logger.error("FATAL: Startup failed: %s", e, exc_info=True)
        raise

    yield

    logger.info("Shutting down content quality gate...")
    app.state.pipeline.emitter.close()
    app.state.pipeline = None
    logger.info("Shutdown complete")


app = FastAPI(title="Content quality gate", version=__version__, lifespan=lifespan)
app.state.limiter = limiter


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(status_code=429, content={"detail": "Rate limit exceeded. Try again later."})


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(TimeoutMiddleware)

app.include_router(quality_router.router)
app.include_router(versions_router.router)


@app.get("/api/status", response_model=AppStatus)
def api_status(request: Request) -> AppStatus:
    pipeline = getattr(request.app.state, "pipeline", None)
    return AppStatus(
        status="ok" if pipeline is not None else "starting",
        version=__version__,
        dimensions=list(pipeline.registry.dimensions) if pipeline is not None else [],
        version_store=settings.version_store.value,
    )
