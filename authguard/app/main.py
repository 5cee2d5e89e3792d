from __future__ import annotations

import logging
import time
import uuid

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from authguard.app.api.health import VERSION, router as health_router
from authguard.app.api.rate_limit import router as rate_limit_router
from authguard.app.auth.routes import router as auth_router
from authguard.app.auth.users import UserStore
from authguard.app.config.settings import Settings, settings as default_settings
from authguard.app.core.clock import Clock
from authguard.app.core.errors import APIError, InvalidIdentifierError
from authguard.app.core.logging import request_id_ctx, setup_logging
from authguard.app.core.rate_limit import RateLimitExceeded, json_timestamp
from authguard.app.security.cors import cors_kwargs
from authguard.app.services.rate_limit import RateLimiter

logger = logging.getLogger("authguard")


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "no-referrer"
        return response


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        token = request_id_ctx.set(request_id)
        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            request_id_ctx.reset(token)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        latency = time.time() - start_time

        logger.info(
            "Request completed",
            extra={
                "request_id": _request_id(request),
                "extra_data": {
                    "method": request.method,
                    "path": request.url.path,
                    "status": response.status_code,
                    "latency_ms": round(latency * 1000, 2),
                },
            },
        )
        return response


async def http_exception_handler(request: Request, exc: HTTPException):
    detail = exc.detail if isinstance(exc.detail, dict) else {"code": "HTTP_ERROR", "message": str(exc.detail)}
    logger.warning(
        "HTTPException",
        extra={
            "request_id": _request_id(request),
            "extra_data": {"status_code": exc.status_code, "error_code": detail.get("code"), "path": request.url.path},
        },
    )
    content = {
        **detail,
        "code": detail.get("code", "HTTP_ERROR"),
        "message": detail.get("message", "Request failed"),
        "request_id": _request_id(request),
    }
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


async def rate_limit_exception_handler(request: Request, exc: RateLimitExceeded):
    retry_after = exc.retry_after_seconds
    headers = {"Retry-After": str(retry_after)} if retry_after is not None else None
    return JSONResponse(
        status_code=429,
        content={
            "code": "RATE_LIMITED",
            "message": "Too many attempts, try again later",
            "request_id": _request_id(request),
            "blocked_until": json_timestamp(exc.decision.blocked_until),
            "retry_after": retry_after,
        },
        headers=headers,
    )


async def invalid_identifier_handler(request: Request, exc: InvalidIdentifierError):
    return JSONResponse(
        status_code=400,
        content={"code": "INVALID_IDENTIFIER", "message": str(exc), "request_id": _request_id(request)},
    )


async def api_error_handler(request: Request, exc: APIError):
    content = {"code": exc.code, "message": exc.message, "request_id": _request_id(request)}
    if exc.detail:
        content["detail"] = exc.detail
    return JSONResponse(status_code=exc.status_code, content=content)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(
        "RequestValidationError",
        extra={"request_id": _request_id(request), "extra_data": {"path": request.url.path}},
    )
    return JSONResponse(
        status_code=400,
        content={
            "code": "VALIDATION_ERROR",
            "message": "Invalid request",
            "detail": [{"loc": list(err.get("loc", ())), "msg": err.get("msg")} for err in exc.errors()],
            "request_id": _request_id(request),
        },
    )


async def global_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled exception", extra={"request_id": _request_id(request)}, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "code": "INTERNAL_ERROR",
            "message": "An internal error occurred",
            "request_id": _request_id(request),
        },
    )


def create_app(
    settings: Settings | None = None,
    limiter: RateLimiter | None = None,
    clock: Clock | None = None,
    users: UserStore | None = None,
) -> FastAPI:
    """Build the API with its own limiter and user store."""
    settings = settings or default_settings
    setup_logging(level=settings.log_level, json_output=settings.log_json, log_file=settings.log_file or None)
    if not settings.is_production:
        logger.warning("Running with debug mode or the default JWT secret")

    app = FastAPI(title="authguard", version=VERSION)
    app.state.settings = settings
    if limiter is None:
        limiter = RateLimiter(settings.rate_limit_config(), clock=clock)
    app.state.rate_limiter = limiter
    app.state.users = users if users is not None else UserStore()

    app.add_middleware(CORSMiddleware, **cors_kwargs(settings.cors_origins_list))
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(rate_limit_router)

    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exception_handler)
    app.add_exception_handler(InvalidIdentifierError, invalid_identifier_handler)
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
    return app


app = create_app()
