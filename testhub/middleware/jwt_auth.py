"""
JWT Auth Middleware — parses the bearer token and sets ``g.principal``.

``g.principal`` is a Principal(id, role, email) built from the token claims,
or None when the header is missing, the token is invalid/expired, or the
user has been deleted since the token was issued. Routes decide what None
means through the decorators in permission_required.
"""

import logging

import jwt as pyjwt
from flask import g, request

from testhub.core.principal import Principal
from testhub.models.auth import User, UserRole
from testhub.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/auth/login",
    "/api/v1/health",
)


def principal_from_token(token: str) -> Principal | None:
    try:
        payload = decode_access_token(token)
        user_id = int(payload["sub"])
        role = UserRole(int(payload["user_role"]))
    except pyjwt.ExpiredSignatureError:
        logger.debug("Expired access token")
        return None
    except (pyjwt.InvalidTokenError, KeyError, TypeError, ValueError):
        logger.debug("Rejected malformed access token")
        return None

    if User.scoped().filter(User.id == user_id).first() is None:
        return None
    return Principal(id=user_id, role=role, email=payload.get("email", ""))


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.principal = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        g.principal = principal_from_token(auth_header[7:])
