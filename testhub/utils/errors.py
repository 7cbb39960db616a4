"""JSON error responses.

Every error leaving the API has the shape::

    {"error": "<message>", "code": "ERR_...", "details": {...}}

``details`` is omitted when empty. Views return ``api_error(...)`` directly;
services raise ``testhub.core.exceptions`` and the app-level handlers in
``testhub.create_app`` turn those into the same shape.

    return api_error(E.NOT_FOUND, "Test group not found")
    return api_error(E.VALIDATION_REQUIRED, "oem is required", details={"oem": "required"})
"""

from __future__ import annotations

from flask import jsonify


class E:
    """Error codes, grouped by the HTTP status they map to."""

    # 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    IMPORT_FAILED = "ERR_IMPORT_FAILED"
    # 401 / 403
    UNAUTHORIZED = "ERR_UNAUTHORIZED"
    FORBIDDEN = "ERR_FORBIDDEN"
    # 404
    NOT_FOUND = "ERR_NOT_FOUND"
    # 409: a live duplicate, or a stale expected_version on a result write
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONFLICT_VERSION = "ERR_CONFLICT_VERSION"
    # 413
    PAYLOAD_TOO_LARGE = "ERR_PAYLOAD_TOO_LARGE"
    # 500
    DATABASE = "ERR_DATABASE"
    STORAGE = "ERR_STORAGE"
    INTERNAL = "ERR_INTERNAL"


STATUS_BY_CODE: dict[str, int] = {
    **dict.fromkeys((E.VALIDATION_REQUIRED, E.VALIDATION_INVALID, E.IMPORT_FAILED), 400),
    E.UNAUTHORIZED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    **dict.fromkeys((E.CONFLICT_DUPLICATE, E.CONFLICT_VERSION), 409),
    E.PAYLOAD_TOO_LARGE: 413,
    **dict.fromkeys((E.DATABASE, E.STORAGE, E.INTERNAL), 500),
}


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """Build ``(response, status)`` for a view to return.

    ``status`` overrides the code's usual status; unknown codes fall back to 400.
    """
    body = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or STATUS_BY_CODE.get(code, 400)
