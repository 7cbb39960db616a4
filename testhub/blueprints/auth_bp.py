"""
Auth Blueprint — JWT authentication endpoints.

Endpoints:
  POST /api/v1/auth/login       — Email + password → access token
  GET  /api/v1/auth/me          — Current user profile
"""

import logging

from flask import Blueprint, g, jsonify

from testhub.blueprints import json_body
from testhub.middleware.permission_required import require_auth
from testhub.services.jwt_service import generate_access_token, get_access_expires
from testhub.services.user_service import authenticate, get_user
from testhub.utils.errors import E, api_error

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth_bp", __name__, url_prefix="/api/v1/auth")


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/login
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Authenticate with email + password, return an access token.

    Body: { "email": "...", "password": "..." }
    """
    data = json_body()
    email = data.get("email") or ""
    password = data.get("password") or ""
    if not isinstance(email, str) or not isinstance(password, str):
        return api_error(E.VALIDATION_INVALID, "Email and password must be strings")
    email = email.strip()

    if not email or not password:
        return api_error(E.VALIDATION_REQUIRED, "Email and password are required")

    user = authenticate(email, password)
    if user is None:
        logger.info("Failed login for %s", email)
        return api_error(E.UNAUTHORIZED, "Invalid email or password")

    return jsonify({
        "access_token": generate_access_token(user),
        "token_type": "Bearer",
        "expires_in": get_access_expires(),
        "user": user.to_dict(),
    }), 200


# ═══════════════════════════════════════════════════════════════
# GET /api/v1/auth/me
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/me", methods=["GET"])
@require_auth
def me():
    return jsonify(get_user(g.principal.id).to_dict()), 200
