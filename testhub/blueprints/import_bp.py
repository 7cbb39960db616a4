"""
Import Blueprint — CSV bulk import of test cases and users.

Endpoints:
  POST /api/v1/imports/test-cases            — Import test cases into a group (edit)
  POST /api/v1/imports/users                 — Import users (Admin)
  GET  /api/v1/imports/test-cases/template   — Download CSV template
  GET  /api/v1/imports/users/template        — Download CSV template (Admin)
  GET  /api/v1/imports                       — Latest import runs (Admin)
  GET  /api/v1/imports/<id>                  — Run detail (Admin)
  GET  /api/v1/imports/<id>/errors           — Run error rows (Admin)

The CSV is accepted as a multipart ``file``, a JSON ``csv_content`` field
or the raw request body.
"""

import logging

from flask import Blueprint, Response, g, jsonify, request

from testhub.core.exceptions import ForbiddenError
from testhub.middleware.permission_required import require_admin, require_auth
from testhub.models.import_result import ImportType
from testhub.services import import_service
from testhub.services.access_resolver import get_access_resolver
from testhub.services.test_group_service import get_group
from testhub.utils.errors import E, api_error
from testhub.utils.helpers import parse_int

logger = logging.getLogger(__name__)

import_bp = Blueprint("import_bp", __name__, url_prefix="/api/v1/imports")


# ═══════════════════════════════════════════════════════════════
# Templates
# ═══════════════════════════════════════════════════════════════
def _csv_response(content: str, filename: str) -> Response:
    return Response(
        content,
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@import_bp.route("/test-cases/template", methods=["GET"])
@require_auth
def download_test_case_template():
    return _csv_response(import_service.generate_test_case_template(), "test_case_import_template.csv")


@import_bp.route("/users/template", methods=["GET"])
@require_admin
def download_user_template():
    return _csv_response(import_service.generate_user_template(), "user_import_template.csv")


# ═══════════════════════════════════════════════════════════════
# Import
# ═══════════════════════════════════════════════════════════════
@import_bp.route("/test-cases", methods=["POST"])
@require_auth
def import_test_cases():
    """Import test cases. ``test_group_id`` comes from the form, JSON body or query string."""
    test_group_id = parse_int(_request_value("test_group_id"), "test_group_id")
    # a missing group reads as 404 only for callers who could edit it
    if not get_access_resolver().check("edit", g.principal, test_group_id):
        raise ForbiddenError("edit", test_group_id)
    get_group(test_group_id)

    file_content = _extract_file_content()
    if not file_content:
        return api_error(E.VALIDATION_REQUIRED, "CSV file is required (file upload or raw body)")

    run, outcome = import_service.execute_import(
        ImportType.TEST_CASE,
        _file_name(),
        g.principal.email,
        lambda: import_service.import_test_cases(test_group_id, file_content, g.principal.actor),
        test_group_id=test_group_id,
    )
    return jsonify(_run_summary(run, outcome)), 200


@import_bp.route("/users", methods=["POST"])
@require_admin
def import_users():
    file_content = _extract_file_content()
    if not file_content:
        return api_error(E.VALIDATION_REQUIRED, "CSV file is required (file upload or raw body)")

    run, outcome = import_service.execute_import(
        ImportType.USER,
        _file_name(),
        g.principal.email,
        lambda: import_service.import_users(file_content),
    )
    return jsonify(_run_summary(run, outcome)), 200


# ═══════════════════════════════════════════════════════════════
# Import runs
# ═══════════════════════════════════════════════════════════════
@import_bp.route("", methods=["GET"])
@require_admin
def list_import_runs():
    import_type = request.args.get("import_type")
    if import_type not in (None, ""):
        import_type = parse_int(import_type, "import_type")
    else:
        import_type = None
    runs = import_service.list_import_runs(import_type)
    return jsonify([run.to_dict() for run in runs]), 200


@import_bp.route("/<int:run_id>", methods=["GET"])
@require_admin
def get_import_run(run_id):
    return jsonify(import_service.get_import_run(run_id).to_dict()), 200


@import_bp.route("/<int:run_id>/errors", methods=["GET"])
@require_admin
def list_import_errors(run_id):
    return jsonify([e.to_dict() for e in import_service.list_import_errors(run_id)]), 200


# ═══════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════
def _run_summary(run, outcome: dict) -> dict:
    return {
        "import_result_id": run.id,
        "status": run.status,
        "success_count": outcome["success_count"],
        "error_count": outcome["error_count"],
        "errors": outcome["errors"],
    }


def _request_value(name: str):
    if name in request.form:
        return request.form[name]
    data = request.get_json(silent=True)
    if isinstance(data, dict) and name in data:
        return data[name]
    return request.args.get(name)


def _file_name() -> str:
    file = request.files.get("file")
    if file and file.filename:
        return file.filename
    data = request.get_json(silent=True)
    if isinstance(data, dict) and data.get("file_name"):
        return str(data["file_name"])
    return request.args.get("file_name") or "import.csv"


def _extract_file_content() -> str | bytes | None:
    """Extract CSV file content from multipart upload, JSON field or raw body."""
    # Multipart file upload
    if request.files:
        file = request.files.get("file")
        if file:
            return file.read()

    # JSON body with csv_content field
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        content = data.get("csv_content")
        return content if isinstance(content, str) else None

    # Raw body
    if request.data:
        return request.data

    return None
