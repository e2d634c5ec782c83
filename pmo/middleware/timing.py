"""
Request correlation and timing.

Every response carries ``X-Request-ID`` (the caller's, or a fresh 12-char
hex id) and ``X-Request-Duration-Ms``. One log record per request: debug
normally, warning past ``SLOW_REQUEST_MS``, error on a 5xx.
"""

import logging
import time
import uuid

from flask import Flask, current_app, g, request

logger = logging.getLogger(__name__)

# Health checks are polled constantly
UNLOGGED_PATHS = frozenset({"/api/v1/health/live", "/api/v1/health/ready"})


def _request_fields(response, duration_ms: float) -> dict:
    principal = getattr(g, "principal", None)
    view_args = request.view_args or {}
    return {
        "request_id": g.request_id,
        "method": request.method,
        "path": request.path,
        "status": response.status_code,
        "duration_ms": duration_ms,
        "remote_addr": request.remote_addr,
        "user_id": principal.id if principal else None,
        "project_id": view_args.get("project_id"),
    }


def init_request_timing(app: Flask):
    """Register the before/after request hooks on ``app``."""

    @app.before_request
    def _stamp_request():
        g.request_started = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _finish_request(response):
        started = getattr(g, "request_started", None)
        if started is None:
            return response

        duration_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = g.request_id
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        if request.path in UNLOGGED_PATHS:
            return response

        fields = _request_fields(response, duration_ms)
        summary = "%s %s -> %d in %.0fms"
        args = (request.method, request.path, response.status_code, duration_ms)
        if response.status_code >= 500:
            logger.error("Server error: " + summary, *args, extra=fields)
        elif duration_ms > current_app.config.get("SLOW_REQUEST_MS", 1000):
            logger.warning("Slow request: " + summary, *args, extra=fields)
        else:
            logger.debug(summary, *args, extra=fields)
        return response
