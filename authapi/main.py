"""
Auth API - FastAPI Application
Email/password and Google OAuth authentication with role-based user management
"""

import time
import traceback
from contextlib import asynccontextmanager
from typing import Optional
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from authapi.config import Settings, get_settings
from authapi.models.user import Envelope
from authapi.routes import auth, health, users
from authapi.utils.database import create_user_store
from authapi.utils.errors import AuthAPIError, InternalError, RateLimited
from authapi.utils.logger import get_request_logger, setup_logging
from authapi.utils.rate_limit import create_rate_limiter

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "Content-Security-Policy": (
        "default-src 'self'; style-src 'self' 'unsafe-inline'; "
        "script-src 'self'; img-src 'self' data: https:"
    ),
}


def _error_response(
    status_code: int,
    message: str,
    error: Optional[object] = None,
    errors: Optional[list] = None,
    headers: Optional[dict] = None
) -> JSONResponse:
    content = Envelope(
        success=False, message=message, error=error, errors=errors
    ).model_dump(exclude_none=True)
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _internal_error_response(request: Request, exc: Exception, settings: Settings) -> JSONResponse:
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    error = InternalError.error_code
    if not settings.is_production:
        error = {
            "type": type(exc).__name__,
            "detail": str(exc),
            "stack": traceback.format_exception(type(exc), exc, exc.__traceback__),
        }
    return _error_response(InternalError.status_code, "Internal server error", error=error)


def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    """Map every error onto the response envelope"""

    @app.exception_handler(AuthAPIError)
    async def auth_api_error_handler(request: Request, exc: AuthAPIError):
        log_fn = logger.error if exc.status_code >= 500 else logger.warning
        log_fn(f"{request.method} {request.url.path} -> {exc.status_code} {exc.error_code}: {exc.message}")

        headers = None
        if exc.status_code == status.HTTP_401_UNAUTHORIZED:
            headers = {"WWW-Authenticate": "Bearer"}
        return _error_response(
            exc.status_code, exc.message, error=exc.error_code, errors=exc.errors, headers=headers
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = []
        for err in exc.errors():
            loc = [str(part) for part in err.get("loc", ())]
            field = ".".join(loc[1:]) if len(loc) > 1 else ".".join(loc)
            errors.append({"field": field, "message": err.get("msg", "Invalid value")})
        logger.warning(f"{request.method} {request.url.path} -> 400 validation failed: {errors}")
        return _error_response(
            status.HTTP_400_BAD_REQUEST, "Validation failed", error="validation_error", errors=errors
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            message = f"Route {request.url.path} not found"
        else:
            message = str(exc.detail)
        return _error_response(exc.status_code, message, headers=getattr(exc, "headers", None))

    # Errors raised by the middlewares themselves
    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        return _internal_error_response(request, exc, settings)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the FastAPI application"""
    settings = settings or get_settings()
    rate_limiter = create_rate_limiter(settings)
    request_logger = get_request_logger()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler"""
        # Startup
        setup_logging(
            config_path=settings.log_config_path,
            log_level=settings.log_level,
            log_format=settings.log_format,
            environment=settings.environment,
        )
        logger.info(f"{settings.app_name} starting up...")
        settings.log_config()

        store = app.state.user_store
        await store.init()

        logger.info(f"{settings.app_name} startup complete")

        yield

        # Shutdown
        logger.info(f"{settings.app_name} shutting down...")
        await store.close()
        await rate_limiter.close()

    app = FastAPI(
        title=settings.app_name,
        description="Email/password and Google OAuth authentication with role-based user management",
        version=settings.version,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.settings = settings
    app.state.user_store = create_user_store(settings)
    app.state.rate_limiter = rate_limiter

    register_exception_handlers(app, settings)

    # Innermost, so the 500 envelope still passes through CORS and the security headers
    @app.middleware("http")
    async def unhandled_error_middleware(request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            return _internal_error_response(request, exc, settings)

    @app.middleware("http")
    async def rate_limit_middleware(request: Request, call_next):
        """Fixed-window limit per client IP, stricter on auth routes"""
        if not settings.rate_limit_enabled or request.method == "OPTIONS":
            return await call_next(request)

        path = request.url.path
        api_prefix = settings.api_prefix
        if api_prefix and not path.startswith(api_prefix + "/"):
            return await call_next(request)

        ip_address = _client_ip(request)
        result = await rate_limiter.hit(ip_address, "api", settings.rate_limit_max_requests)
        exc = RateLimited("Too many requests from this IP, please try again later.")

        if result.allowed and path.startswith(f"{api_prefix}/auth/"):
            result = await rate_limiter.hit(ip_address, "auth", settings.auth_rate_limit_max_requests)
            exc = RateLimited("Too many authentication attempts, please try again later.")

        headers = {
            "RateLimit-Limit": str(result.limit),
            "RateLimit-Remaining": str(result.remaining),
            "RateLimit-Reset": str(result.reset_after),
        }
        if not result.allowed:
            logger.warning(f"Rate limit exceeded for {ip_address} on {path}")
            headers["Retry-After"] = str(result.reset_after)
            return _error_response(exc.status_code, exc.message, error=exc.error_code, headers=headers)

        response = await call_next(request)
        response.headers.update(headers)
        return response

    @app.middleware("http")
    async def access_log_middleware(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        request_logger.log_request(
            request.method,
            request.url.path,
            response.status_code,
            time.perf_counter() - start,
            client_ip=_client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
        return response

    @app.middleware("http")
    async def security_headers_middleware(request: Request, call_next):
        response = await call_next(request)
        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        return response

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.client_url],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    # Include routers
    prefix = settings.api_prefix
    app.include_router(health.router, prefix=prefix, tags=["Health"])
    app.include_router(auth.router, prefix=f"{prefix}/auth", tags=["Authentication"])
    app.include_router(users.router, prefix=f"{prefix}/users", tags=["User Management"])

    # Root endpoint
    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "success": True,
            "message": settings.app_name,
            "data": {
                "version": settings.version,
                "endpoints": {
                    "health": f"{prefix}/health",
                    "auth": f"{prefix}/auth",
                    "users": f"{prefix}/users",
                },
                "docs": "/docs"
            }
        }

    return app
