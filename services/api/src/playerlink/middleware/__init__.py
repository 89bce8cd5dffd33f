"""Logging, exception handlers and the HTTP middleware stack of the identity API."""

from fastapi import FastAPI

from playerlink.config import Settings
from playerlink.middleware.cors import setup_cors
from playerlink.middleware.error_handler import setup_error_handlers
from playerlink.middleware.logging import setup_logging
from playerlink.middleware.rate_limit import RateLimitMiddleware
from playerlink.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Configure logging, install the error mapping and wrap the app.

    A request passes CORS first, then gets its request id bound, and only
    then meets the Redis rate limiter. Rejected requests are therefore logged
    under their request id, and browser clients can still read their 429.
    """
    setup_logging(settings)
    setup_error_handlers(app)

    # add_middleware prepends: innermost layer first
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_window=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
