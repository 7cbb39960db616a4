"""
Result Blueprint — result submission, history and evidence.

Endpoints:
  POST   /api/v1/test-groups/<gid>/cases/<tid>/<no>/results          — Submit (execute)
  GET    /api/v1/test-groups/<gid>/cases/<tid>/results               — Current results (view)
  GET    /api/v1/test-groups/<gid>/cases/<tid>/<no>/history          — Snapshots (view)
  DELETE /api/v1/test-groups/<gid>/cases/<tid>/<no>/evidences/<h>/<e> — Delete evidence (execute)
"""

from flask import Blueprint, current_app, g, jsonify

from testhub.blueprints import json_body
from testhub.middleware.permission_required import require_group_access
from testhub.services import result_service
from testhub.services.storage_service import get_storage

result_bp = Blueprint(
    "result_bp", __name__, url_prefix="/api/v1/test-groups/<int:test_group_id>/cases/<tid>",
)


@result_bp.route("/<int:test_case_no>/results", methods=["POST"])
@require_group_access("execute")
def submit_result(test_group_id, tid, test_case_no):
    """
    Body: { "result": "...", "judgment": "OK" | "NG" | "re-test excluded",
            "software_version": "...", "hardware_version": "...",
            "comparator_version": "...", "execution_date": "YYYY-MM-DD",
            "executor": "...", "note": "...",
            "evidence_urls": ["temp/..."], "expected_version": 3 }
    """
    outcome = result_service.submit_result(
        test_group_id, tid, test_case_no, json_body(), g.principal, get_storage(),
    )
    return jsonify(outcome), 201


@result_bp.route("/results", methods=["GET"])
@require_group_access("view")
def list_results(test_group_id, tid):
    snapshot = current_app.config.get("EVIDENCE_SNAPSHOT", result_service.SNAPSHOT_LATEST)
    entries = result_service.list_results(test_group_id, tid, snapshot=snapshot, storage=get_storage())
    return jsonify(entries), 200


@result_bp.route("/<int:test_case_no>/history", methods=["GET"])
@require_group_access("view")
def list_history(test_group_id, tid, test_case_no):
    return jsonify(result_service.list_history(test_group_id, tid, test_case_no, get_storage())), 200


@result_bp.route(
    "/<int:test_case_no>/evidences/<int:history_count>/<int:evidence_no>", methods=["DELETE"],
)
@require_group_access("execute")
def delete_evidence(test_group_id, tid, test_case_no, history_count, evidence_no):
    result_service.delete_evidence(
        test_group_id, tid, test_case_no, history_count, evidence_no, get_storage(),
    )
    return jsonify({"message": "Evidence deleted"}), 200
