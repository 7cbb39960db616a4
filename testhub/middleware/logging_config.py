"""
Logging setup for testhub.

Every record passes through RequestContextFilter, which stamps the current
request id and principal (when there is one) so import runs, ledger writes
and storage calls can be traced back to the request that caused them.

    development  one line per record, request id in brackets
    production   one JSON object per line
    testing      WARNING and above only

LOG_LEVEL overrides the default level of the environment.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

# Optional record attributes carried into the JSON payload.
CONTEXT_FIELDS = (
    "request_id",
    "user_id",
    "method",
    "path",
    "status",
    "duration_ms",
    "test_group_id",
    "import_result_id",
    "statement",
)

QUIET_LOGGERS = ("werkzeug", "sqlalchemy.engine", "urllib3", "botocore", "boto3", "s3transfer")


class RequestContextFilter(logging.Filter):
    """Attach request_id / user_id from ``flask.g`` unless the caller set them."""

    def filter(self, record):
        if has_request_context():
            if getattr(record, "request_id", None) is None:
                record.request_id = g.get("request_id")
            if getattr(record, "user_id", None) is None:
                principal = g.get("principal")
                record.user_id = principal.id if principal else None
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record):
        payload = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        payload.update(
            (name, getattr(record, name))
            for name in CONTEXT_FIELDS
            if getattr(record, name, None) is not None
        )
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``12:00:01 INFO  testhub.services.import_service [3f2a91c0d4e1] message``"""

    def format(self, record):
        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        request_id = getattr(record, "request_id", None)
        tag = f" [{request_id}]" if request_id else ""
        line = f"{stamp} {record.levelname:<5} {record.name}{tag} {record.getMessage()}"
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" ({duration:.0f}ms)"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _default_level(app) -> str:
    if app.config.get("TESTING"):
        return "WARNING"
    return "DEBUG" if app.config.get("DEBUG") else "INFO"


def configure_logging(app):
    """Install one stderr handler on the root logger for this app's environment."""
    level_name = os.getenv("LOG_LEVEL", _default_level(app)).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    use_json = not app.config.get("DEBUG") and not app.config.get("TESTING")
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if use_json else ReadableFormatter())
    handler.addFilter(RequestContextFilter())

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)
    app.logger.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    app.logger.debug("Logging ready (level=%s, json=%s)", level_name, use_json)
