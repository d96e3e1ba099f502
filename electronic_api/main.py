"""
FastAPI application entry point for the Electronic Store API.

This module provides the application factory with:
- Fail-fast configuration loading
- Structured logging setup
- Database engine and request-scoped services
- The ordered request pipeline (logging, security headers, CORS, docs,
  static images, HTTPS redirection, authentication, controllers)
- Exception handlers, health, readiness and Prometheus metrics endpoints
- Startup schema creation and role seeding, graceful shutdown

Run with `electronic-store-api` or
`uvicorn --factory electronic_api.main:create_app`.
"""

import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

import structlog
import uvicorn
from fastapi import FastAPI, Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from electronic_api import __version__
from electronic_api.config import Settings, get_settings
from electronic_api.database import Database
from electronic_api.exceptions import ConfigurationError, DomainError, IdentityError
from electronic_api.logging import configure_logging
from electronic_api.openapi import API_DESCRIPTION
from electronic_api.pipeline import apply_stage_hooks, build_pipeline, collect_app_options, collect_middleware
from electronic_api.rate_limit import configure_rate_limiting
from electronic_api.services.identity_service import IdentityService
from electronic_api.services.jwt_service import JwtService
from electronic_api.services.password_policy import PasswordHasher

logger = structlog.get_logger(__name__)


# ============================================================================
# Lifespan Management
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager for startup and shutdown events.

    Handles:
    - Database connectivity check
    - Optional schema creation
    - Seeding of the default roles
    - Engine disposal on shutdown
    """
    settings: Settings = app.state.settings
    database: Database = app.state.database

    logger.info(
        "application_starting",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment
    )

    try:
        await database.ping()
        logger.info("database_connected")

        if settings.database_create_schema:
            await database.create_schema()

        async with database.session() as session:
            identity = IdentityService(
                session,
                settings.identity,
                app.state.password_hasher,
                app.state.jwt_service
            )
            created = await identity.ensure_roles(settings.identity.default_roles)
        if created:
            logger.info("roles_seeded", roles=created)

        logger.info(
            "application_started",
            app_name=settings.app_name,
            pipeline=app.state.pipeline
        )

        yield

    except Exception as e:
        logger.error("application_startup_failed", error=str(e), exc_info=True)
        raise

    finally:
        logger.info("application_shutting_down")
        await database.dispose()
        logger.info("application_shutdown_complete")


# ============================================================================
# Exception Handlers
# ============================================================================


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request validation errors."""
    logger.warning("validation_error", path=request.url.path, errors=len(exc.errors()))
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": jsonable_encoder(exc.errors())}
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle HTTP exceptions, keeping headers such as WWW-Authenticate."""
    logger.info(
        "http_exception",
        path=request.url.path,
        status_code=exc.status_code,
        detail=exc.detail
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=getattr(exc, "headers", None)
    )


async def identity_exception_handler(request: Request, exc: IdentityError) -> JSONResponse:
    logger.info("identity_error", path=request.url.path, errors=exc.errors)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": str(exc), "errors": exc.errors}
    )


async def domain_exception_handler(request: Request, exc: DomainError) -> JSONResponse:
    logger.info("domain_error", path=request.url.path, status_code=exc.status_code, detail=exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.error(
        "unexpected_exception",
        path=request.url.path,
        error=str(exc),
        exc_info=True
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"}
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(IdentityError, identity_exception_handler)
    app.add_exception_handler(DomainError, domain_exception_handler)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(Exception, general_exception_handler)


# ============================================================================
# Health, Readiness and Metrics Endpoints
# ============================================================================


def register_health_routes(app: FastAPI, settings: Settings) -> None:

    @app.get("/health", tags=["Health"], response_class=JSONResponse)
    async def health_check() -> Dict[str, Any]:
        """
        Health check endpoint.

        Returns basic health status without checking dependencies.
        """
        return {
            "status": "healthy",
            "service": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment
        }

    @app.get("/ready", tags=["Health"], response_class=JSONResponse)
    async def readiness_check(request: Request) -> JSONResponse:
        """
        Readiness check endpoint.

        Verifies database connectivity; 503 when a check fails.
        """
        checks = {"database": "unknown"}

        try:
            await request.app.state.database.ping()
            checks["database"] = "healthy"
        except Exception as e:
            logger.error("database_health_check_failed", error=str(e))
            checks["database"] = "unhealthy"

        all_healthy = all(value == "healthy" for value in checks.values())
        return JSONResponse(
            status_code=status.HTTP_200_OK if all_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "ready" if all_healthy else "not_ready",
                "service": settings.app_name,
                "version": settings.app_version,
                "checks": checks
            }
        )

    if settings.metrics_enabled:
        @app.get("/metrics", tags=["Monitoring"], response_class=PlainTextResponse)
        async def metrics() -> Response:
            """Prometheus metrics endpoint."""
            return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# ============================================================================
# Application Factory
# ============================================================================


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Validated settings; loaded from the environment when omitted

    Returns:
        Configured FastAPI application

    Raises:
        ConfigurationError: If required configuration is missing or invalid
    """
    if settings is None:
        settings = get_settings()

    configure_logging(
        log_level=settings.log_level,
        json_logs=settings.log_format == "json",
        service_name=settings.app_name,
        environment=settings.environment,
    )

    settings.images_path.mkdir(parents=True, exist_ok=True)

    database = Database(settings)
    jwt_service = JwtService(settings.jwt_settings)
    password_hasher = PasswordHasher(settings.password_bcrypt_rounds)
    limiter = configure_rate_limiting(settings)

    stages = build_pipeline(settings, jwt_service)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=API_DESCRIPTION,
        lifespan=lifespan,
        middleware=collect_middleware(stages),
        **collect_app_options(stages),
    )

    app.state.settings = settings
    app.state.database = database
    app.state.jwt_service = jwt_service
    app.state.password_hasher = password_hasher
    app.state.limiter = limiter
    app.state.pipeline = [stage.name for stage in stages]

    register_exception_handlers(app)
    register_health_routes(app, settings)
    apply_stage_hooks(app, stages)

    logger.info(
        "application_built",
        app_name=settings.app_name,
        version=__version__,
        environment=settings.environment,
        images_path=str(settings.images_path)
    )
    return app


# ============================================================================
# Application Entry Point
# ============================================================================


def main() -> None:
    """
    Validate configuration and run the application with Uvicorn.

    Exits with status 1 when configuration is missing or invalid.
    """
    try:
        settings = get_settings()
    except ConfigurationError as e:
        configure_logging()
        logger.error("configuration_invalid", error=str(e))
        sys.exit(1)

    logger.info(
        "starting_uvicorn_server",
        host=settings.host,
        port=settings.port,
        environment=settings.environment
    )

    uvicorn.run(
        "electronic_api.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        access_log=True,
    )


if __name__ == "__main__":
    main()
