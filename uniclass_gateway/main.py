"""FastAPI application entry point for the Uniclass Match Gateway.

This module initializes the FastAPI application with its routes, middleware,
exception handlers and lifecycle management.
"""

import time
import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from uniclass_gateway.api.routes import health, match
from uniclass_gateway.config import settings
from uniclass_gateway.core.errors import BatchTooLarge, GatewayError, InvalidRequest
from uniclass_gateway.observability.logging import (
    clear_request_context,
    correlation_id_scope,
    get_logger,
    setup_logging,
)
from uniclass_gateway.observability.metrics import get_metrics_manager

logger = get_logger(__name__)

# Spreadsheet add-ins call the gateway from arbitrary origins
CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

MAX_REQUEST_ID_LENGTH = 128


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Args:
        app: FastAPI application instance

    Yields:
        Control to the application
    """
    setup_logging(
        json_format=settings.observability.log_format == "json",
        log_level=settings.observability.log_level,
    )

    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.env,
        embedding_model=settings.embedding.model,
        max_batch_size=settings.matching.max_batch_size,
    )

    yield

    logger.info("application_shutdown_complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Batch semantic classification of free text against Uniclass",
        docs_url="/docs" if settings.env != "production" else None,
        redoc_url="/redoc" if settings.env != "production" else None,
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    _add_middleware(app)
    _add_exception_handlers(app)
    _add_routes(app)

    app.include_router(health.router)
    app.include_router(match.router)

    return app


def _add_middleware(app: FastAPI) -> None:
    """Add middleware to the application.

    Args:
        app: FastAPI application
    """

    @app.middleware("http")
    async def cors_headers(request: Request, call_next: "Callable[[Request], Awaitable[Response]]") -> Response:
        """Stamp CORS headers on every response, error responses included."""
        response = await call_next(request)
        response.headers.update(CORS_HEADERS)
        return response

    # Request ID, timing and metrics middleware
    @app.middleware("http")
    async def add_request_metadata(request: Request, call_next: "Callable[[Request], Awaitable[Response]]") -> Response:
        """Add request ID, track timing and record request metrics.

        A caller-supplied ``X-Request-ID`` is echoed back and becomes the
        correlation id of every log event for the request.
        """
        request_id = request.headers.get("X-Request-ID", "")[:MAX_REQUEST_ID_LENGTH] or str(uuid.uuid4())
        start_time = time.time()
        route = request.url.path
        method = request.method
        metrics = get_metrics_manager()

        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        clear_request_context()
        structlog.contextvars.bind_contextvars(
            method=method,
            path=route,
        )

        with correlation_id_scope(request_id):
            try:
                response = await call_next(request)
            except Exception as e:
                duration = time.time() - start_time
                metrics.record_api_request(method=method, endpoint=route, status_code=500, duration=duration)
                logger.error(
                    "request_failed",
                    error=str(e),
                    duration_ms=round(duration * 1000, 2),
                    exc_info=True,
                )
                raise

            duration = time.time() - start_time
            response.headers["X-Request-ID"] = request_id
            metrics.record_api_request(
                method=method,
                endpoint=route,
                status_code=response.status_code,
                duration=duration,
            )
            logger.info(
                "request_completed",
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2),
            )
        return response


def _add_exception_handlers(app: FastAPI) -> None:
    """Render every error as ``{"error": <message>}``.

    Args:
        app: FastAPI application
    """

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        message = str(exc.detail)
        if exc.status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
            message = "Method not allowed"
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": message},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
        if isinstance(exc, (InvalidRequest, BatchTooLarge)):
            logger.warning("request_rejected", reason=exc.message, context=exc.context)
            return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": exc.message})

        logger.error(
            "gateway_error",
            error_type=type(exc).__name__,
            error=exc.message,
            context=exc.context,
        )
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": exc.message})

    # Unhandled exceptions are answered outside the http middleware stack
    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error"},
            headers=CORS_HEADERS,
        )


def _add_routes(app: FastAPI) -> None:
    """Add system routes to the application.

    Args:
        app: FastAPI application
    """

    @app.get("/metrics", tags=["System"])
    async def get_metrics() -> PlainTextResponse:
        """Prometheus metrics endpoint."""
        metrics = get_metrics_manager()
        return PlainTextResponse(
            content=metrics.get_metrics().decode("utf-8"),
            media_type=metrics.content_type,
        )


def cli() -> None:
    """Command-line entry point."""
    import uvicorn

    uvicorn.run(
        "uniclass_gateway.main:app",
        host=settings.host,
        port=settings.port,
        workers=settings.workers,
        reload=settings.debug,
        log_level=settings.observability.log_level.lower(),
    )


# Create application instance
app = create_app()
