"""
Request and SQL timing.

Each response carries ``X-Request-ID`` (echoed from the request when the
client sent one) and ``X-Request-Duration-Ms``. Requests are logged at DEBUG,
slow ones at WARNING and 5xx at ERROR. Statements slower than
``SLOW_QUERY_MS`` are logged on the ``testhub.sql`` logger.
"""

import logging
import time
import uuid

from flask import Flask, g, request
from sqlalchemy import event

logger = logging.getLogger(__name__)
sql_logger = logging.getLogger("testhub.sql")

SLOW_REQUEST_MS = 1000
QUIET_PATHS = frozenset({"/api/v1/health"})


def _level_for(status: int, duration_ms: float) -> int:
    if status >= 500:
        return logging.ERROR
    if duration_ms > SLOW_REQUEST_MS:
        return logging.WARNING
    return logging.DEBUG


def init_request_timing(app: Flask):
    @app.before_request
    def _begin():
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
        g.request_started = time.perf_counter()

    @app.after_request
    def _finish(response):
        started = g.get("request_started")
        if started is None:
            return response
        elapsed = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = g.request_id
        response.headers["X-Request-Duration-Ms"] = f"{elapsed:.1f}"

        if request.path not in QUIET_PATHS:
            logger.log(
                _level_for(response.status_code, elapsed),
                "%s %s -> %d",
                request.method, request.path, response.status_code,
                extra={
                    "method": request.method,
                    "path": request.path,
                    "status": response.status_code,
                    "duration_ms": elapsed,
                },
            )
        return response


def init_query_timing(engine, threshold_ms: int):
    """Attach cursor listeners to ``engine`` that report statements over ``threshold_ms``."""

    @event.listens_for(engine, "before_cursor_execute")
    def _stamp(conn, cursor, statement, parameters, context, executemany):
        conn.info.setdefault("testhub_query_started", []).append(time.perf_counter())

    @event.listens_for(engine, "after_cursor_execute")
    def _measure(conn, cursor, statement, parameters, context, executemany):
        stack = conn.info.get("testhub_query_started")
        if not stack:
            return
        elapsed = (time.perf_counter() - stack.pop()) * 1000
        if elapsed > threshold_ms:
            sql_logger.warning(
                "Slow query: %.0fms, rowcount=%s", elapsed, cursor.rowcount,
                extra={"duration_ms": elapsed, "statement": statement[:500]},
            )
