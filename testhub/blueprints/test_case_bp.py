"""
Test Case Blueprint — test cases, their contents and attached files.

Endpoints:
  GET    /api/v1/test-groups/<gid>/cases                          — List (view)
  POST   /api/v1/test-groups/<gid>/cases                          — Create (edit)
  GET    /api/v1/test-groups/<gid>/cases/<tid>                    — Detail (view)
  PUT    /api/v1/test-groups/<gid>/cases/<tid>                    — Update (edit)
  DELETE /api/v1/test-groups/<gid>/cases/<tid>                    — Soft delete (edit)
  POST   /api/v1/test-groups/<gid>/cases/<tid>/files              — Upload files (edit)
  DELETE /api/v1/test-groups/<gid>/cases/<tid>/files/<type>/<no>  — Delete file (edit)
"""

from flask import Blueprint, g, jsonify, request

from testhub.blueprints import json_body
from testhub.middleware.permission_required import require_group_access
from testhub.services import test_case_service
from testhub.services.storage_service import get_storage

test_case_bp = Blueprint(
    "test_case_bp", __name__, url_prefix="/api/v1/test-groups/<int:test_group_id>/cases",
)


# ═══════════════════════════════════════════════════════════════
# Cases
# ═══════════════════════════════════════════════════════════════
@test_case_bp.route("", methods=["GET"])
@require_group_access("view")
def list_test_cases(test_group_id):
    return jsonify(test_case_service.list_cases(test_group_id, get_storage())), 200


@test_case_bp.route("", methods=["POST"])
@require_group_access("edit")
def create_test_case(test_group_id):
    """
    Body: { "tid": "...", "first_layer": "...", ...,
            "contents": [{"test_case_no": 1, "test_case": "...",
                          "expected_value": "...", "is_target": true}] }
    """
    case = test_case_service.create_case(test_group_id, json_body(), g.principal)
    return jsonify(case), 201


@test_case_bp.route("/<tid>", methods=["GET"])
@require_group_access("view")
def get_test_case(test_group_id, tid):
    return jsonify(test_case_service.get_case_detail(test_group_id, tid, get_storage())), 200


@test_case_bp.route("/<tid>", methods=["PUT"])
@require_group_access("edit")
def update_test_case(test_group_id, tid):
    case = test_case_service.update_case(test_group_id, tid, json_body(), g.principal)
    return jsonify(case), 200


@test_case_bp.route("/<tid>", methods=["DELETE"])
@require_group_access("edit")
def delete_test_case(test_group_id, tid):
    test_case_service.delete_case(test_group_id, tid, g.principal)
    return jsonify({"message": "Test case deleted"}), 200


# ═══════════════════════════════════════════════════════════════
# Files
# ═══════════════════════════════════════════════════════════════
@test_case_bp.route("/<tid>/files", methods=["POST"])
@require_group_access("edit")
def upload_test_case_files(test_group_id, tid):
    """Multipart: files (one or more) + file_type (0 control spec, 1 data flow)."""
    uploads = [
        (f.filename, f.read(), f.mimetype)
        for f in request.files.getlist("files")
        if f and f.filename
    ]
    files = test_case_service.upload_files(
        test_group_id, tid, request.form.get("file_type"), uploads, get_storage(),
    )
    return jsonify(files), 201


@test_case_bp.route("/<tid>/files/<int:file_type>/<int:file_no>", methods=["DELETE"])
@require_group_access("edit")
def delete_test_case_file(test_group_id, tid, file_type, file_no):
    test_case_service.delete_file(test_group_id, tid, file_type, file_no)
    return jsonify({"message": "File deleted"}), 200
