"""HTTP plumbing: CORS, request ids, security headers and auth rate limiting."""

import uuid
import time
import logging

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from orgauth.core.config import settings

logger = logging.getLogger("orgauth")

# Shared with the route-level decorators on the auth router.
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=settings.RATE_LIMIT_STORAGE_URI or settings.REDIS_URL,
    enabled=settings.RATE_LIMIT_ENABLED,
)

CONTENT_SECURITY_POLICY = (
    "default-src 'self'; img-src 'self' data: https:; font-src 'self' data:; "
    "style-src 'self' 'unsafe-inline'; script-src 'self'"
)
HSTS_VALUE = "max-age=31536000; includeSubDomains; preload"
DOCS_PATHS = ("/docs", "/redoc", "/openapi.json")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id (reusing an incoming X-Request-Id) and time it."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        request.state.request_id = request_id
        start_time = time.perf_counter()

        response: Response = await call_next(request)

        duration = round((time.perf_counter() - start_time) * 1000, 2)
        response.headers["X-Request-Id"] = request_id
        response.headers["X-Response-Time-Ms"] = str(duration)

        logger.info(
            "%s %s %s %sms [%s]",
            request.method,
            request.url.path,
            response.status_code,
            duration,
            request_id,
        )
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Hardening headers on every response; HSTS only behind HTTPS or in production."""

    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)
        headers = response.headers
        headers["X-Content-Type-Options"] = "nosniff"
        headers["X-Frame-Options"] = "DENY"
        headers["X-XSS-Protection"] = "1; mode=block"
        headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=(), payment=()"

        csp = CONTENT_SECURITY_POLICY
        https = request.headers.get("X-Forwarded-Proto") == "https"
        if settings.APP_ENV == "production" or https:
            headers["Strict-Transport-Security"] = HSTS_VALUE
            csp += "; upgrade-insecure-requests"
        # Swagger and ReDoc load their assets from a CDN.
        if not request.url.path.startswith(DOCS_PATHS):
            headers["Content-Security-Policy"] = csp
        return response


def setup_middleware(app: FastAPI) -> None:
    """Configure all middleware and the rate limiter for the application."""
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIdMiddleware)
