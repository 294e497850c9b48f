"""HTTP middleware stack for the Campus Connect API."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from campus_connect.config import Settings
from campus_connect.middleware.error_handler import setup_error_handlers
from campus_connect.middleware.logging import setup_logging
from campus_connect.middleware.rate_limit import RateLimitMiddleware
from campus_connect.middleware.request_context import REQUEST_ID_HEADER, RequestContextMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Configure logging, error handlers and middleware.

    Starlette wraps in reverse registration order, so the request context
    is bound before rate limiting runs and CORS headers reach every
    response, 429s included.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_window=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", REQUEST_ID_HEADER],
        expose_headers=[REQUEST_ID_HEADER, "X-RateLimit-Remaining", "X-RateLimit-Limit"],
    )
