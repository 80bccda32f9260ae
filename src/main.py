"""FastAPI application entry point.

Wires the HTTP API, the identity webhook and the Inngest serve endpoint
into one application. Durable functions are served from the same process
so they share the database engine and settings.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import inngest.fast_api
import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from sqlalchemy import text

from src.api.deps import _async_session_maker, get_db_session
from src.api.routes import (
    credentials_router,
    oauth_router,
    templates_router,
    webhooks_router,
    workflows_router,
)
from src.config import settings
from src.core.encryption import CredentialEncryption, EncryptionKeyError
from src.core.errors import (
    ConflictError,
    NotFoundError,
    ProviderRequestError,
    ReauthenticationRequired,
    TransientProviderError,
    ValidationError,
    WorkflowAppError,
)
from src.functions import ALL_FUNCTIONS, init_function_sessions, inngest_client

APP_VERSION = "0.1.0"

# Most specific first; the first isinstance match wins.
ERROR_STATUS_CODES: list[tuple[type[WorkflowAppError], int]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (ReauthenticationRequired, status.HTTP_401_UNAUTHORIZED),
    (TransientProviderError, status.HTTP_502_BAD_GATEWAY),
    (ProviderRequestError, status.HTTP_502_BAD_GATEWAY),
]


def configure_logging() -> None:
    """Configure structlog for the process.

    JSON lines in production, the console renderer when debugging.
    """
    renderer = structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()
logger = structlog.get_logger()


def status_code_for(error: WorkflowAppError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Validate configuration and hand the session factory to durable functions."""
    logger.info(
        "application_starting",
        host=settings.host,
        port=settings.port,
        debug=settings.debug,
        log_level=settings.log_level,
    )

    try:
        CredentialEncryption(settings.encryption_key.get_secret_value())
    except EncryptionKeyError as e:
        logger.error("encryption_key_invalid", error=str(e))
        raise ValueError("Invalid ENCRYPTION_KEY format") from e

    logger.info(
        "configuration_loaded",
        inngest_app_id=settings.inngest_app_id,
        inngest_is_production=settings.inngest_is_production,
        inngest_event_key=settings.get_masked_key("inngest_event_key"),
        functions=len(ALL_FUNCTIONS),
    )

    init_function_sessions(_async_session_maker)

    yield

    logger.info("application_shutting_down")


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(WorkflowAppError)
    async def workflow_error_handler(request: Request, exc: WorkflowAppError) -> JSONResponse:
        """Map domain errors that escaped a route to an HTTP status."""
        status_code = status_code_for(exc)
        logger.warning(
            "workflow_error",
            path=request.url.path,
            error_type=type(exc).__name__,
            status_code=status_code,
        )
        content: dict = {"detail": exc.message, "error_type": type(exc).__name__}
        if isinstance(exc, ValidationError) and exc.errors:
            content["errors"] = exc.errors
        return JSONResponse(status_code=status_code, content=content)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Never expose internal error details outside debug mode."""
        logger.exception(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
        )
        detail = str(exc) if settings.debug else "An internal error occurred"
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": detail, "error_type": "internal_error"},
        )


def register_health_routes(app: FastAPI) -> None:
    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, str]:
        return {"status": "healthy", "version": APP_VERSION}

    @app.get("/ready", tags=["health"], response_model=None)
    async def ready_check() -> dict[str, str] | JSONResponse:
        """Readiness including database connectivity."""
        try:
            async for session in get_db_session():
                await session.execute(text("SELECT 1"))
        except Exception as e:
            logger.error("readiness_check_failed", error=str(e))
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"status": "not_ready", "error": "database_unavailable"},
            )
        return {"status": "ready"}


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Flowdeck",
        description="Template-based workflow automation with durable recurring schedules",
        version=APP_VERSION,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for router, prefix, tags in (
        (workflows_router, "/api/v1/workflows", ["workflows"]),
        (templates_router, "/api/v1/templates", ["templates"]),
        (credentials_router, "/api/v1/credentials", ["credentials"]),
    ):
        app.include_router(router, prefix=prefix, tags=tags)
    # These routers carry their own prefix and tags
    app.include_router(oauth_router, prefix="/api/v1")
    app.include_router(webhooks_router, prefix="/api/v1")

    register_error_handlers(app)
    register_health_routes(app)

    inngest.fast_api.serve(
        app,
        inngest_client,
        ALL_FUNCTIONS,
        serve_path=settings.inngest_serve_path,
    )

    FastAPIInstrumentor.instrument_app(app)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
