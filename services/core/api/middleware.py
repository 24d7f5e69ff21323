"""
API Middleware Module
CORS and request logging middleware
"""
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
import time
import os

from logging_config import http_request_summary


def cors_options() -> dict:
    """
    CORS settings for app.add_middleware(CORSMiddleware, **cors_options()).
    Reads allowed origins from environment variable.
    """
    allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000")
    origins = [origin.strip() for origin in allowed_origins.split(",") if origin.strip()]

    return {
        "allow_origins": origins,
        "allow_credentials": True,
        "allow_methods": ["GET", "POST", "OPTIONS"],
        "allow_headers": ["Authorization", "Content-Type", os.getenv("AUTH_USER_HEADER", "X-User-Id")],
        "expose_headers": ["X-Process-Time"],
    }


class LoggingMiddleware(BaseHTTPMiddleware):
    """Request/response logging middleware"""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        response = await call_next(request)

        process_time = time.time() - start_time

        if request.url.path != "/health":
            http_request_summary(
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(process_time * 1000, 2)
            )

        response.headers["X-Process-Time"] = str(process_time)
        return response


__all__ = ["CORSMiddleware", "LoggingMiddleware", "cors_options"]
