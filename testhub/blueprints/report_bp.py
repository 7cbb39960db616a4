"""
Report Blueprint — pass rate and progress per test group.

Endpoints:
  GET /api/v1/test-groups/<gid>/report
"""

from flask import Blueprint, jsonify

from testhub.middleware.permission_required import require_group_access
from testhub.services.report_service import build_report

report_bp = Blueprint("report_bp", __name__, url_prefix="/api/v1/test-groups")


@report_bp.route("/<int:test_group_id>/report", methods=["GET"])
@require_group_access("view")
def get_report(test_group_id):
    return jsonify(build_report(test_group_id)), 200
