"""
Upload Blueprint — single-file upload to object storage.

Endpoints:
  POST /api/v1/uploads     — multipart ``file`` + optional ``folder`` (default: temp prefix)

Evidence is uploaded here first and later promoted out of the temp prefix
when a result referencing it is submitted.
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from testhub.middleware.permission_required import require_auth
from testhub.services.storage_service import ALLOWED_CONTENT_TYPES, get_storage, sanitize_filename
from testhub.utils.errors import E, api_error

logger = logging.getLogger(__name__)

upload_bp = Blueprint("upload_bp", __name__, url_prefix="/api/v1/uploads")


def _clean_folder(raw: str) -> str | None:
    """Sanitize each path segment; None when the folder tries to climb out."""
    parts = [p for p in raw.strip().strip("/").split("/") if p]
    if not parts or any(p in (".", "..") for p in parts):
        return None
    return "/".join(sanitize_filename(p) for p in parts)


@upload_bp.route("", methods=["POST"])
@require_auth
def upload_file():
    file = request.files.get("file")
    if file is None or not file.filename:
        return api_error(E.VALIDATION_REQUIRED, "file is required", details={"file": "required"})

    folder = _clean_folder(request.form.get("folder") or current_app.config.get("STORAGE_TEMP_PREFIX", "temp"))
    if folder is None:
        return api_error(E.VALIDATION_INVALID, "Invalid folder", details={"folder": "invalid"})

    content_type = file.mimetype
    if content_type not in ALLOWED_CONTENT_TYPES:
        return api_error(
            E.VALIDATION_INVALID,
            f"File type not allowed: {content_type or 'unknown'}",
            details={"content_type": content_type},
        )

    data = file.read()
    max_size = current_app.config.get("MAX_UPLOAD_SIZE", 100 * 1024 * 1024)
    if len(data) > max_size:
        return api_error(
            E.PAYLOAD_TOO_LARGE,
            f"File exceeds the {max_size // (1024 * 1024)} MB limit",
            details={"size": len(data), "max_size": max_size},
        )

    path = get_storage().store(data, folder, file.filename, content_type)
    return jsonify({
        "path": path,
        "file_name": file.filename,
        "size": len(data),
        "content_type": content_type,
    }), 201
