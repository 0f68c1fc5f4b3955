"""
Request timing middleware.

Every /api/v1 response carries ``X-Request-ID`` (echoed from the request or
generated) and ``X-Request-Duration-Ms``. Slow requests are logged as
warnings and 5xx responses as errors. Run endpoints get their own, higher
threshold since a sampling run is executed inside the request.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

# Polled by the UI; not worth a log line per hit
_QUIET_PATHS = frozenset({"/api/v1/health", "/api/v1/sampling/run-status/latest"})
_RUN_PATHS = frozenset({"/api/v1/sampling/run", "/api/v1/sampling/auto-run"})


def _threshold_ms(app: Flask) -> float:
    if request.path in _RUN_PATHS:
        return app.config.get("SLOW_RUN_REQUEST_MS", 60000)
    return app.config.get("SLOW_REQUEST_MS", 1000)


def init_request_timing(app: Flask):
    """Register the before/after request hooks."""

    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _stamp_and_log(response):
        start = getattr(g, "request_start", None)
        if start is None:
            return response

        elapsed = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = g.request_id
        response.headers["X-Request-Duration-Ms"] = f"{elapsed:.1f}"
        if request.path in _QUIET_PATHS:
            return response

        extra = {
            "method": request.method,
            "path": request.path,
            "status": response.status_code,
            "duration_ms": elapsed,
        }
        summary = "%s %s -> %d"
        args = (request.method, request.path, response.status_code)
        if response.status_code >= 500:
            logger.error("Server error: " + summary, *args, extra=extra)
        elif elapsed > _threshold_ms(app):
            logger.warning("Slow request: " + summary, *args, extra=extra)
        else:
            logger.debug(summary, *args, extra=extra)
        return response
