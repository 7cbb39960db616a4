"""
Test Group Blueprint — CRUD for test groups and their tag bindings.

Endpoints:
  GET    /api/v1/test-groups          — Accessible groups (search + pagination)
  POST   /api/v1/test-groups          — Create (Admin / TestManager)
  GET    /api/v1/test-groups/<id>     — Detail with tag bindings (view)
  PUT    /api/v1/test-groups/<id>     — Update (modify)
  DELETE /api/v1/test-groups/<id>     — Soft delete (modify)
"""

import logging

from flask import Blueprint, g, jsonify, request

from testhub.blueprints import json_body, paginate_query
from testhub.middleware.permission_required import (
    require_auth,
    require_group_access,
    require_roles,
)
from testhub.models.auth import UserRole
from testhub.services import test_group_service
from testhub.services.access_resolver import get_access_resolver

logger = logging.getLogger(__name__)

test_group_bp = Blueprint("test_group_bp", __name__, url_prefix="/api/v1/test-groups")


# ═══════════════════════════════════════════════════════════════
# List / Search
# ═══════════════════════════════════════════════════════════════
@test_group_bp.route("", methods=["GET"])
@require_auth
def list_test_groups():
    """
    Query params: oem, model, event, variation, destination (substring), page, limit.
    """
    group_ids = get_access_resolver().accessible_group_ids(g.principal)
    query = test_group_service.search_groups(group_ids, request.args)
    items, total, page, limit = paginate_query(query)
    return jsonify({
        "items": [group.to_dict() for group in items],
        "total_count": total,
        "page": page,
        "limit": limit,
    }), 200


# ═══════════════════════════════════════════════════════════════
# Create
# ═══════════════════════════════════════════════════════════════
@test_group_bp.route("", methods=["POST"])
@require_roles(UserRole.ADMIN, UserRole.TEST_MANAGER)
def create_test_group():
    group = test_group_service.create_group(json_body(), g.principal)
    return jsonify(group.to_dict(include_tags=True)), 201


# ═══════════════════════════════════════════════════════════════
# Detail / Update / Delete
# ═══════════════════════════════════════════════════════════════
@test_group_bp.route("/<int:test_group_id>", methods=["GET"])
@require_group_access("view")
def get_test_group(test_group_id):
    group = test_group_service.get_group(test_group_id)
    return jsonify(group.to_dict(include_tags=True)), 200


@test_group_bp.route("/<int:test_group_id>", methods=["PUT"])
@require_group_access("modify")
def update_test_group(test_group_id):
    group = test_group_service.update_group(test_group_id, json_body(), g.principal)
    return jsonify(group.to_dict(include_tags=True)), 200


@test_group_bp.route("/<int:test_group_id>", methods=["DELETE"])
@require_group_access("modify")
def delete_test_group(test_group_id):
    test_group_service.delete_group(test_group_id, g.principal)
    return jsonify({"message": "Test group deleted"}), 200
