"""
Per-request timing and correlation ids.

Each response carries ``X-Request-ID`` (echoed from the client or freshly
minted) and ``X-Request-Duration-Ms``.  Requests slower than
SLOW_REQUEST_MS log at WARNING, 5xx responses at ERROR, the rest at DEBUG.
"""

import logging
import time
import uuid

from flask import Flask, current_app, g, request

logger = logging.getLogger(__name__)

# Health checks hit these every few seconds.
QUIET_PATHS = frozenset({"/api/v1/health", "/api/v1/health/ready", "/api/v1/health/live"})


def _request_context(response, duration_ms: float) -> dict:
    user = getattr(g, "current_user", None)
    return {
        "request_id": g.get("request_id"),
        "user_id": user.id if user is not None else None,
        "method": request.method,
        "path": request.path,
        "status": response.status_code,
        "duration_ms": duration_ms,
        "remote_addr": request.remote_addr,
    }


def init_request_timing(app: Flask):
    """Register the before/after request hooks on ``app``."""

    @app.before_request
    def _begin():
        g.request_started = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _finish(response):
        started = g.get("request_started")
        if started is None:
            return response

        duration_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = g.request_id
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        if request.path in QUIET_PATHS:
            return response

        summary = f"{request.method} {request.path} -> {response.status_code}"
        extra = _request_context(response, duration_ms)
        if response.status_code >= 500:
            logger.error("Server error: %s", summary, extra=extra)
        elif duration_ms > current_app.config.get("SLOW_REQUEST_MS", 1000):
            logger.warning("Slow request: %s (%.0fms)", summary, duration_ms, extra=extra)
        else:
            logger.debug("Request: %s", summary, extra=extra)
        return response
