"""
Main FastAPI application entry point.
"""

import logging
import sys
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.v1 import health
from app.authz.bootstrap import ensure_bootstrap_admin, seed_default_role_permissions
from app.authz.catalog import parse_role
from app.authz.errors import (
    AuthzDataAccessError,
    CatalogError,
    DuplicateEntityError,
    EntityNotFoundError,
    InvalidEntityError,
    TenantAdminError,
)
from app.authz.routes import router as authz_router
from app.core.config import settings
from app.core.database import close_db, get_db_context, init_db
from app.core.dependencies import close_redis_pool

# Configure structured logging
logging.basicConfig(format="%(message)s", stream=sys.stdout, level=settings.log.level.upper())

structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer() if settings.log.format == "json" else structlog.dev.ConsoleRenderer(),
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)


async def bootstrap_authz() -> None:
    """Seed default role permission sets and the bootstrap admin."""
    # Fail at startup, not on the first signup, for an unknown role
    if settings.authz.signup_default_role is not None:
        parse_role(settings.authz.signup_default_role)

    if settings.authz.seed_default_roles:
        async with get_db_context() as db:
            await seed_default_role_permissions(db)

    if settings.authz.bootstrap_admin_id:
        admin_id = uuid.UUID(settings.authz.bootstrap_admin_id)
        async with get_db_context() as db:
            await ensure_bootstrap_admin(db, admin_id)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    # Startup
    logger.info("Starting application", version=settings.app.app_version, env=settings.app.app_env)

    if settings.database.auto_create:
        await init_db()
        logger.info("Database tables verified via init_db")

    await bootstrap_authz()

    logger.info(
        "Configuration loaded",
        app_name=settings.app.app_name,
        db_host=settings.database.host,
        redis_enabled=settings.redis.enabled,
        cache_enabled=settings.authz.cache_enabled,
        cors_origins=settings.app.cors_origins_list,
    )

    yield

    # Shutdown
    logger.info("Shutting down application")
    await close_redis_pool()
    await close_db()


def _error_response(request, status_code: int, code, message, **extra) -> JSONResponse:
    error = {"code": code, "message": message}
    error.update(extra)
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": error,
            "meta": {
                "request_id": getattr(request.state, "request_id", None),
            },
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Map HTTP, validation and domain errors onto the error envelope."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request, exc: StarletteHTTPException):
        """Handle HTTP exceptions."""
        if isinstance(exc.detail, dict):
            detail = dict(exc.detail)
            code = detail.pop("code", exc.status_code)
            message = detail.pop("message", "")
            return _error_response(request, exc.status_code, code, message, **detail)
        return _error_response(request, exc.status_code, exc.status_code, exc.detail)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request, exc: RequestValidationError):
        """Handle validation errors."""
        errors = []
        for error in exc.errors():
            field = ".".join(str(loc) for loc in error["loc"])
            errors.append({
                "field": field,
                "message": error["msg"],
                "type": error["type"],
            })
        return _error_response(request, 422, "VALIDATION_ERROR", "Request validation failed", details=errors)

    @app.exception_handler(CatalogError)
    async def catalog_exception_handler(request, exc: CatalogError):
        """Unknown permission or role values."""
        return _error_response(request, 422, "INVALID_CATALOG_VALUE", str(exc), kind=exc.kind, value=exc.value)

    @app.exception_handler(AuthzDataAccessError)
    async def authz_unavailable_handler(request, exc: AuthzDataAccessError):
        """The engine could not read its data; never reported as a denial."""
        logger.error("Authorization data unavailable", path=request.url.path, error=str(exc))
        return _error_response(request, 503, "AUTHZ_UNAVAILABLE", "Authorization data is unavailable")

    @app.exception_handler(TenantAdminError)
    async def tenant_admin_exception_handler(request, exc: TenantAdminError):
        """Store invariant violations from the admin service."""
        if isinstance(exc, EntityNotFoundError):
            return _error_response(request, 404, "NOT_FOUND", str(exc))
        if isinstance(exc, DuplicateEntityError):
            return _error_response(request, 409, "CONFLICT", str(exc))
        if isinstance(exc, InvalidEntityError):
            return _error_response(request, 400, "INVALID_REQUEST", str(exc))
        return _error_response(request, 400, "BAD_REQUEST", str(exc))

    @app.exception_handler(Exception)
    async def general_exception_handler(request, exc: Exception):
        """Handle general exceptions."""
        logger.error(
            "Unhandled exception",
            path=request.url.path,
            error=str(exc),
            exc_info=exc,
        )
        return _error_response(
            request,
            500,
            "INTERNAL_ERROR",
            "An internal error occurred" if not settings.app.app_debug else str(exc),
        )


def create_app() -> FastAPI:
    """Build the FastAPI application."""
    app = FastAPI(
        title=settings.app.app_name,
        version=settings.app.app_version,
        description="Multi-tenant RBAC - Authorization API",
        docs_url="/docs" if settings.docs_enabled else None,
        redoc_url="/redoc" if settings.docs_enabled else None,
        lifespan=lifespan,
    )

    # ========================================================================
    # Middleware
    # ========================================================================

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.app.cors_origins_list,
        allow_credentials=settings.app.cors_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    @app.middleware("http")
    async def log_requests(request, call_next):
        """Log all requests and add request ID."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.time()
        if settings.log.requests:
            logger.info(
                "Request started",
                method=request.method,
                path=request.url.path,
                request_id=request_id,
            )

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.time() - start_time
            logger.error(
                "Request failed",
                method=request.method,
                path=request.url.path,
                error=str(e),
                duration_ms=round(duration * 1000, 2),
                request_id=request_id,
            )
            raise

        response.headers["X-Request-ID"] = request_id
        if settings.log.requests:
            duration = time.time() - start_time
            logger.info(
                "Request completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2),
                request_id=request_id,
            )
        return response

    register_exception_handlers(app)

    # ========================================================================
    # Routes
    # ========================================================================

    app.include_router(health.router, prefix="/api/v1")
    app.include_router(authz_router, prefix="/api/v1")

    @app.get("/")
    async def root():
        """Root endpoint with API information."""
        return {
            "name": settings.app.app_name,
            "version": settings.app.app_version,
            "environment": settings.app.app_env,
            "docs_url": "/docs" if settings.docs_enabled else None,
            "api_v1": "/api/v1",
        }

    return app


app = create_app()
