"""Middleware and exception handler registration."""

from fastapi import FastAPI

from questcoder.config import Settings
from questcoder.middleware.cors import setup_cors
from questcoder.middleware.error_handler import setup_error_handlers
from questcoder.middleware.logging import setup_logging
from questcoder.middleware.rate_limit import RateLimitMiddleware
from questcoder.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Install logging, error envelopes and the middleware stack.

    Starlette runs middleware outermost-last-added, so the effective order for
    a request is CORS -> request id -> rate limit -> routes. CORS wraps 429s,
    and rate-limited requests still carry a request id.
    """
    setup_logging(settings)
    setup_error_handlers(app, debug=settings.debug)

    app.add_middleware(
        RateLimitMiddleware,
        requests_per_window=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
