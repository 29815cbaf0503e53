"""
FastAPI application entry point.

Configures application lifespan, logging, CORS, request logging, error
responses, health check, and API routes.
Initializes database tables only in development mode; production relies on migrations.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from edge_agent.api.v1.endpoints import router as v1_router
from edge_agent.core.clock import system_clock
from edge_agent.core.config import settings
from edge_agent.core.dependencies import close_clients, engine
from edge_agent.core.errors import (
    ConversationDeleteError,
    ConversationStoreError,
    ModelResponseError,
    RateLimitExceeded,
)
from edge_agent.models.schemas import ErrorResponse, HealthResponse
from edge_agent.persistence.database import init_models

logger = logging.getLogger("edge_agent")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context.

    Configures logging, records the start time and initializes database tables
    in development mode. Shared clients are closed on shutdown.
    """
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app.state.started_at = time.monotonic()

    if settings.environment.lower() == "development":
        await init_models(engine)

    yield

    await close_clients()


def _error_response(
    request: Request,
    status_code: int,
    error: str,
    code: str,
    headers: Optional[dict] = None,
) -> JSONResponse:
    body = ErrorResponse(
        error=error,
        code=code,
        timestamp=system_clock.timestamp(),
        request_id=getattr(request.state, "request_id", None),
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True), headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """Map service exceptions to the common error body."""

    @app.exception_handler(RateLimitExceeded)
    async def _rate_limited(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        return _error_response(
            request,
            429,
            "Rate limit exceeded. Please try again later.",
            "RATE_LIMIT_EXCEEDED",
            headers={
                "X-RateLimit-Remaining": "0",
                "X-RateLimit-Reset": str(exc.result.reset_time),
            },
        )

    @app.exception_handler(ModelResponseError)
    async def _model_failed(request: Request, exc: ModelResponseError) -> JSONResponse:
        return _error_response(request, 502, "The language model is unavailable.", "MODEL_UNAVAILABLE")

    @app.exception_handler(ConversationDeleteError)
    async def _delete_failed(request: Request, exc: ConversationDeleteError) -> JSONResponse:
        return _error_response(request, 500, "Failed to delete conversation.", "DELETE_FAILED")

    @app.exception_handler(ConversationStoreError)
    async def _store_failed(request: Request, exc: ConversationStoreError) -> JSONResponse:
        return _error_response(request, 500, "Internal server error", "INTERNAL_ERROR")


def create_app() -> FastAPI:
    """Creates and configures the FastAPI application instance."""
    app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=86400,
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Tag every request with an id and log its duration."""
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        started = time.perf_counter()
        logger.info("Request received %s %s", request.method, request.url.path)
        try:
            response = await call_next(request)
        finally:
            duration_ms = (time.perf_counter() - started) * 1000
            logger.info("Request completed %s %s in %.1fms", request.method, request.url.path, duration_ms)
        response.headers["X-Request-ID"] = request_id
        return response

    register_exception_handlers(app)

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        """Simple health check endpoint."""
        return HealthResponse(
            status="healthy",
            timestamp=system_clock.timestamp(),
            version=settings.app_version,
            environment=settings.environment,
        )

    app.include_router(v1_router)
    return app


app = create_app()
