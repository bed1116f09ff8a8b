"""
Per-request timing and correlation ids.

Every response gets ``X-Request-ID`` (echoed from the request when the
caller sent one) and ``X-Request-Duration-Ms``. One log line per request:
WARNING when slower than SLOW_REQUEST_MS, ERROR on 5xx, DEBUG otherwise.
Health probes are timed but never logged.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

SLOW_REQUEST_MS = 1000
_UNLOGGED_PREFIX = "/api/v1/health/"


def init_request_timing(app: Flask):
    @app.before_request
    def _stamp_request():
        g.request_started = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _finish_request(response):
        started = g.get("request_started")
        if started is None:
            return response

        elapsed_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = g.request_id
        response.headers["X-Request-Duration-Ms"] = f"{elapsed_ms:.1f}"

        if request.path.startswith(_UNLOGGED_PREFIX):
            return response

        if elapsed_ms > SLOW_REQUEST_MS:
            log = logger.warning
        elif response.status_code >= 500:
            log = logger.error
        else:
            log = logger.debug
        log(
            "%s %s -> %d in %.0fms", request.method, request.path, response.status_code, elapsed_ms,
            extra={
                "method": request.method,
                "path": request.path,
                "status": response.status_code,
                "duration_ms": elapsed_ms,
                "remote_addr": request.remote_addr,
            },
        )
        return response
