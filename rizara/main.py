import asyncio
import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

import redis
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from rizara.api.v1.router import api_router
from rizara.config import settings
from rizara.core.database import init_database
from rizara.core.exceptions import AppException
from rizara.core.redis import RedisClient, get_redis
from rizara.schemas.base import ErrorResponse
from rizara.services.cleanup_service import otp_cleanup_loop
from rizara.utils.logger import app_logger

SECURE_PATH_PREFIXES = ("/api/auth", "/api/otp")


def error_response(status_code: int, message: str, code: str,
                   extra: Optional[dict] = None, headers: Optional[dict] = None) -> JSONResponse:
    """Render the error envelope; `extra` adds fields such as resetIn"""
    content = ErrorResponse(message=message, code=code).model_dump(mode="json")
    content.update(extra or {})
    return JSONResponse(status_code=status_code, content=content, headers=headers)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown"""
    app_logger.info("Application starting up...")

    try:
        init_database()
        app_logger.info("Database initialized successfully")
    except Exception as e:
        app_logger.error(f"Database initialization failed: {e}")

    if RedisClient.is_available():
        app_logger.info("Redis connection successful")
    elif settings.rate_limit_fail_open:
        app_logger.error("Redis connection failed, OTP rate limiting will fail open")
    else:
        app_logger.error("Redis connection failed, OTP requests will be refused")

    cleanup_task = None
    if settings.otp_cleanup_enabled:
        cleanup_task = asyncio.create_task(
            otp_cleanup_loop(settings.otp_cleanup_interval_minutes))

    app_logger.info(
        f"Application started: {settings.app_name} v{settings.app_version}")

    yield

    app_logger.info("Application shutting down...")
    if cleanup_task is not None:
        cleanup_task.cancel()
        try:
            await cleanup_task
        except asyncio.CancelledError:
            pass
    RedisClient.close()
    app_logger.info("Application shut down complete")


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Rizara Luxe storefront - authentication and OTP API",
        openapi_url="/api/openapi.json",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(process_time)

        if request.url.path.startswith(SECURE_PATH_PREFIXES):
            response.headers["X-Frame-Options"] = "DENY"
            response.headers["X-Content-Type-Options"] = "nosniff"
            response.headers["X-XSS-Protection"] = "1; mode=block"
            if not settings.debug:
                response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response

    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException):
        headers = None
        if "resetIn" in exc.extra:
            headers = {"Retry-After": str(int(exc.extra["resetIn"]) * 60)}
        return error_response(exc.status_code, exc.message, exc.code, exc.extra, headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        fields = sorted({str(err["loc"][-1]) for err in errors if err.get("loc")})
        message = f"Invalid or missing fields: {', '.join(fields)}" if fields else "Validation failed"
        return error_response(400, message, "VALIDATION_ERROR")

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        app_logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}")
        return error_response(500, "Internal server error", "INTERNAL_ERROR")

    app.include_router(api_router, prefix="/api")

    @app.get("/health", tags=["health"])
    async def health(redis_client: redis.Redis = Depends(get_redis)):
        return {
            "status": "ok",
            "version": settings.app_version,
            "redis": "ok" if RedisClient.is_available(redis_client) else "unavailable",
        }

    return app


app = create_app()
