"""LearnHub API - Main Application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.assessments.attempts import AttemptStore
from src.assessments.router import router as assessments_router
from src.assessments.service import AssessmentService
from src.certificates.router import router as certificates_router
from src.certificates.service import CertificateService
from src.config import get_settings
from src.core.context import get_request_id
from src.core.database import init_async_cassandra, shutdown_async_cassandra
from src.core.exceptions import APIError
from src.core.logging import configure_structlog, get_logger
from src.core.middleware import RequestContextMiddleware
from src.core.redis import init_redis, shutdown_redis
from src.core.store import TTLStore
from src.courses.service import CourseService
from src.health.router import router as health_router
from src.live.router import router as live_router
from src.live.service import LiveSessionService
from src.progress.router import router as progress_router
from src.progress.service import ProgressService


# Configure logging early (before creating logger)
settings = get_settings()
configure_structlog(settings, log_dir=Path(settings.log_dir))

logger = get_logger(__name__)


class AppState:
    """Application state container."""

    cassandra_session: Any = None
    ttl_store: TTLStore | None = None
    course_service: CourseService | None = None
    progress_service: ProgressService | None = None
    assessment_service: AssessmentService | None = None
    certificate_service: CertificateService | None = None
    live_session_service: LiveSessionService | None = None

    def bind(self, app: FastAPI) -> None:
        """Expose services on app.state for request.app.state lookups."""
        for name in (
            "cassandra_session",
            "ttl_store",
            "course_service",
            "progress_service",
            "assessment_service",
            "certificate_service",
            "live_session_service",
        ):
            setattr(app.state, name, getattr(self, name))


app_state = AppState()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()
    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    # Redis is optional: ephemeral state falls back to process memory
    redis_client = None
    try:
        redis_client = await init_redis()
        logger.info("redis_initialized")
    except Exception as e:
        logger.warning(
            "redis_init_skipped",
            error=str(e),
            message="Running without Redis - attempts and live sessions are per-process",
        )

    app_state.ttl_store = TTLStore(redis=redis_client)
    app_state.live_session_service = LiveSessionService(
        store=app_state.ttl_store,
        ttl_seconds=settings.live_session_ttl_seconds,
    )
    logger.info("ttl_store_initialized", backend=app_state.ttl_store.backend)

    try:
        app_state.cassandra_session = await init_async_cassandra()
        logger.info("cassandra_initialized")

        app_state.course_service = CourseService(
            session=app_state.cassandra_session,
            keyspace=settings.cassandra_keyspace,
        )
        app_state.progress_service = ProgressService(
            session=app_state.cassandra_session,
            keyspace=settings.cassandra_keyspace,
            course_service=app_state.course_service,
        )
        app_state.assessment_service = AssessmentService(
            session=app_state.cassandra_session,
            keyspace=settings.cassandra_keyspace,
            progress_service=app_state.progress_service,
            attempt_store=AttemptStore(app_state.ttl_store),
            settings=settings,
        )
        app_state.certificate_service = CertificateService(
            progress_service=app_state.progress_service,
            course_service=app_state.course_service,
        )
        logger.info("services_initialized")
    except Exception as e:
        logger.warning(
            "database_init_skipped",
            error=str(e),
            message="Running without database connection",
        )

    app_state.bind(app)

    yield

    # Shutdown
    logger.info("shutting_down_application")
    await shutdown_redis()
    await shutdown_async_cassandra()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    # debug stays off so Starlette never renders stack traces in responses
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="LearnHub - Course progress and proctored assessments API",
        debug=False,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
    )

    # Request context middleware (must be added first - outermost)
    app.add_middleware(
        RequestContextMiddleware,
        log_requests=settings.log_requests,
        exclude_paths=settings.log_exclude_paths,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        max_age=settings.cors_max_age,
    )

    def _get_request_id_safe(request: Request) -> str | None:
        if hasattr(request.state, "request_id"):
            return request.state.request_id
        return get_request_id()

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> ORJSONResponse:
        """Handle HTTP exceptions with safe error messages.

        Context fields carried by ``APIError`` (e.g. ``videoProgress``) are
        merged into the body.
        """
        request_id = _get_request_id_safe(request)

        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=str(exc.detail),
            path=request.url.path,
            method=request.method,
        )

        content: dict[str, Any] = {
            "error": True,
            "message": str(exc.detail)
            if exc.status_code < status.HTTP_500_INTERNAL_SERVER_ERROR
            else "Internal server error",
            "status_code": exc.status_code,
            "request_id": request_id,
        }
        if isinstance(exc, APIError):
            content.update(exc.extra)

        return ORJSONResponse(
            status_code=exc.status_code,
            content=content,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        """Request schema failures are client errors (400) with field details."""
        request_id = _get_request_id_safe(request)

        logger.warning(
            "validation_error",
            errors=exc.errors(),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": True,
                "message": "Validation error",
                "status_code": status.HTTP_400_BAD_REQUEST,
                "request_id": request_id,
                "details": [
                    {
                        "field": ".".join(str(loc) for loc in err.get("loc", [])),
                        "message": err.get("msg", "Invalid value"),
                    }
                    for err in exc.errors()
                ],
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> ORJSONResponse:
        """Catch-all handler. Details are logged, never returned."""
        request_id = _get_request_id_safe(request)

        logger.exception(
            "unhandled_exception",
            error_type=type(exc).__name__,
            error_message=str(exc),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": True,
                "message": "An unexpected error occurred. Please try again later.",
                "status_code": 500,
                "request_id": request_id,
            },
        )

    app.include_router(health_router)
    app.include_router(progress_router)
    app.include_router(assessments_router)
    app.include_router(live_router)
    app.include_router(certificates_router)

    @app.get("/", include_in_schema=False)
    async def root(request: Request) -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": "LearnHub API",
            "version": settings.app_version,
            "docs": f"{request.url}docs",
        }

    return app


app = create_app()
