"""
User Blueprint — user administration and tags.

Endpoints:
  GET    /api/v1/users            — List users (Admin, filters + pagination)
  POST   /api/v1/users            — Create user (Admin)
  GET    /api/v1/users/export     — CSV export in the import layout (Admin)
  GET    /api/v1/users/<id>       — Detail (Admin)
  PUT    /api/v1/users/<id>       — Update (Admin)
  DELETE /api/v1/users/<id>       — Soft delete (Admin)
  GET    /api/v1/tags             — Live tags (any principal)
  POST   /api/v1/tags             — Create tag (Admin)
  DELETE /api/v1/tags/<id>        — Soft delete tag (Admin)
"""

from flask import Blueprint, Response, jsonify, request

from testhub.blueprints import json_body, paginate_query
from testhub.middleware.permission_required import require_admin, require_auth
from testhub.services import user_service
from testhub.utils.helpers import parse_int

user_bp = Blueprint("user_bp", __name__, url_prefix="/api/v1")


# ═══════════════════════════════════════════════════════════════
# Users
# ═══════════════════════════════════════════════════════════════
@user_bp.route("/users", methods=["GET"])
@require_admin
def list_users():
    """Query params: email, department (substring), tag_id, page, limit."""
    tag_id = request.args.get("tag_id")
    query = user_service.list_users(
        email=(request.args.get("email") or "").strip() or None,
        department=(request.args.get("department") or "").strip() or None,
        tag_id=parse_int(tag_id, "tag_id") if tag_id else None,
    )
    items, total, page, limit = paginate_query(query)
    return jsonify({
        "items": [user.to_dict() for user in items],
        "total_count": total,
        "page": page,
        "limit": limit,
    }), 200


@user_bp.route("/users", methods=["POST"])
@require_admin
def create_user():
    user = user_service.create_user(json_body())
    return jsonify(user.to_dict()), 201


@user_bp.route("/users/export", methods=["GET"])
@require_admin
def export_users():
    return Response(
        user_service.export_users_csv(),
        mimetype="text/csv",
        headers={"Content-Disposition": "attachment; filename=users.csv"},
    )


@user_bp.route("/users/<int:user_id>", methods=["GET"])
@require_admin
def get_user(user_id):
    return jsonify(user_service.get_user(user_id).to_dict()), 200


@user_bp.route("/users/<int:user_id>", methods=["PUT"])
@require_admin
def update_user(user_id):
    user = user_service.update_user(user_id, json_body())
    return jsonify(user.to_dict()), 200


@user_bp.route("/users/<int:user_id>", methods=["DELETE"])
@require_admin
def delete_user(user_id):
    user_service.delete_user(user_id)
    return jsonify({"message": "User deleted"}), 200


# ═══════════════════════════════════════════════════════════════
# Tags
# ═══════════════════════════════════════════════════════════════
@user_bp.route("/tags", methods=["GET"])
@require_auth
def list_tags():
    return jsonify([tag.to_dict() for tag in user_service.list_tags()]), 200


@user_bp.route("/tags", methods=["POST"])
@require_admin
def create_tag():
    tag = user_service.create_tag(json_body().get("name"))
    return jsonify(tag.to_dict()), 201


@user_bp.route("/tags/<int:tag_id>", methods=["DELETE"])
@require_admin
def delete_tag(tag_id):
    user_service.delete_tag(tag_id)
    return jsonify({"message": "Tag deleted"}), 200
