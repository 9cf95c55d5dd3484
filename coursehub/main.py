"""CourseHub API - Main Application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from coursehub.auth.identity import IdentityProvider
from coursehub.config import get_settings
from coursehub.core.context import get_request_id
from coursehub.core.database import init_async_cassandra, shutdown_async_cassandra
from coursehub.core.exceptions import DomainError
from coursehub.core.logging import configure_structlog, get_logger
from coursehub.core.middleware import RequestContextMiddleware
from coursehub.core.redis import init_redis, shutdown_redis
from coursehub.core.schemas import ErrorResponse
from coursehub.courses.router import router as courses_router
from coursehub.courses.service import CourseService
from coursehub.educator.router import router as educator_router
from coursehub.educator.service import EducatorService
from coursehub.enrollments.router import router as enrollments_router
from coursehub.enrollments.service import EnrollmentService
from coursehub.health import router as health_router
from coursehub.progress.router import router as progress_router
from coursehub.progress.service import ProgressService
from coursehub.purchases.gateway import StripeGateway
from coursehub.purchases.router import router as purchases_router
from coursehub.purchases.router import webhook_router
from coursehub.purchases.service import PurchaseService
from coursehub.storage.service import FirebaseStorageService
from coursehub.users.router import router as users_router
from coursehub.users.service import UserService


# Configure logging early (before creating logger)
settings = get_settings()
configure_structlog(settings, log_dir=Path(settings.log_dir))

logger = get_logger(__name__)


def init_services(app: FastAPI, session, redis_client=None) -> None:
    """Build every service on ``app.state`` around one Cassandra session."""
    settings = get_settings()
    keyspace = settings.cassandra_keyspace

    app.state.cassandra_session = session
    app.state.storage_service = FirebaseStorageService(settings)
    app.state.payment_gateway = StripeGateway(settings)

    app.state.course_service = CourseService(
        session=session,
        keyspace=keyspace,
        storage=app.state.storage_service,
    )
    app.state.user_service = UserService(session=session, keyspace=keyspace)
    app.state.enrollment_service = EnrollmentService(
        session=session,
        keyspace=keyspace,
        course_service=app.state.course_service,
    )
    app.state.progress_service = ProgressService(
        session=session,
        keyspace=keyspace,
        course_service=app.state.course_service,
    )
    app.state.purchase_service = PurchaseService(
        session=session,
        keyspace=keyspace,
        course_service=app.state.course_service,
        user_service=app.state.user_service,
        enrollment_service=app.state.enrollment_service,
        gateway=app.state.payment_gateway,
        currency=settings.payment_currency,
    )
    app.state.educator_service = EducatorService(
        course_service=app.state.course_service,
        purchase_service=app.state.purchase_service,
        user_service=app.state.user_service,
    )
    logger.info("services_initialized", redis_enabled=redis_client is not None)


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

    # Initialize Redis (non-critical - role claims are then never cached)
    redis_client = None
    try:
        redis_client = await init_redis()
        logger.info("redis_initialized")
    except Exception as e:
        logger.warning(
            "redis_init_skipped",
            error=str(e),
            message="Running without Redis - identity role cache disabled",
        )

    app.state.identity_provider = IdentityProvider(settings, redis=redis_client)

    # Initialize Cassandra (async)
    try:
        session = await init_async_cassandra()
        logger.info("cassandra_initialized")
        init_services(app, session, redis_client)
    except Exception as e:
        logger.warning(
            "database_init_skipped",
            error=str(e),
            message="Running without database connection",
        )

    yield

    # Shutdown
    logger.info("shutting_down_application")
    await app.state.identity_provider.aclose()
    await shutdown_redis()
    await shutdown_async_cassandra()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    # debug stays False so Starlette never renders tracebacks; the handlers
    # below log details and return safe messages.
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Online learning marketplace API",
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

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        max_age=settings.cors_max_age,
    )

    def _get_request_id_safe(request: Request) -> str | None:
        """Get request_id from request state or context."""
        if hasattr(request.state, "request_id"):
            return request.state.request_id
        return get_request_id()

    @app.exception_handler(DomainError)
    async def domain_error_handler(
        request: Request, exc: DomainError
    ) -> ORJSONResponse:
        """Business rule violations use the regular response envelope."""
        logger.info(
            "domain_error",
            code=exc.code,
            error_message=exc.message,
            path=request.url.path,
            method=request.method,
        )
        return ORJSONResponse(
            status_code=status.HTTP_200_OK,
            content=ErrorResponse(message=exc.message, code=exc.code).model_dump(),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> ORJSONResponse:
        """Handle HTTP exceptions with safe error messages."""
        request_id = _get_request_id_safe(request)

        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=str(exc.detail),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
            content={
                "success": False,
                "message": str(exc.detail)
                if exc.status_code < status.HTTP_500_INTERNAL_SERVER_ERROR
                else "Internal server error",
                "status_code": exc.status_code,
                "request_id": request_id,
            },
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        """Handle validation errors with safe error messages."""
        request_id = _get_request_id_safe(request)

        logger.warning(
            "validation_error",
            errors=exc.errors(),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "success": False,
                "message": "Validation error",
                "status_code": 422,
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
        """Catch-all handler for unhandled exceptions.

        Details go to the log only; the response carries a generic message.
        """
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
                "success": False,
                "message": "An unexpected error occurred. Please try again later.",
                "status_code": 500,
                "request_id": request_id,
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(courses_router)
    app.include_router(educator_router)
    app.include_router(enrollments_router)
    app.include_router(progress_router)
    app.include_router(purchases_router)
    app.include_router(webhook_router)
    app.include_router(users_router)

    @app.get("/", include_in_schema=False)
    async def root(request: Request) -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": "CourseHub API",
            "version": settings.app_version,
            "docs": f"{request.url}docs",
        }

    return app


app = create_app()
