"""
Permission Decorators — route guards built on ``g.principal``.

Usage:
    @bp.route("/users", methods=["GET"])
    @require_admin
    def list_users():
        ...

    @bp.route("/test-groups/<int:test_group_id>/cases", methods=["POST"])
    @require_group_access("edit")
    def create_case(test_group_id):
        ...

Capabilities for require_group_access are those of AccessResolver.check:
view | modify | edit | execute.
"""

import functools
import logging

from flask import g

from testhub.core.exceptions import ForbiddenError, UnauthorizedError
from testhub.models.auth import UserRole
from testhub.services.access_resolver import get_access_resolver

logger = logging.getLogger(__name__)


def _current_principal():
    principal = getattr(g, "principal", None)
    if principal is None:
        raise UnauthorizedError()
    return principal


def require_auth(f):
    """Decorator: refuse requests without a valid principal (UnauthorizedError, 401)."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _current_principal()
        return f(*args, **kwargs)
    return decorated


def require_roles(*roles):
    """Decorator: require one of the given global roles (ForbiddenError, 403, otherwise)."""
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            principal = _current_principal()
            if principal.role not in roles:
                logger.warning(
                    "User %s denied: role %s not in %s on %s",
                    principal.id, principal.role.name, [r.name for r in roles], f.__name__,
                )
                raise ForbiddenError(f.__name__.replace("_", " "))
            return f(*args, **kwargs)
        return decorated
    return decorator


def require_admin(f):
    """Decorator: Admin only."""
    return require_roles(UserRole.ADMIN)(f)


def require_group_access(capability: str, arg: str = "test_group_id"):
    """
    Decorator: check a per-group capability for the route's group id.

    Args:
        capability: view | modify | edit | execute
        arg: Name of the view argument that holds the test group id.
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            principal = _current_principal()
            group_id = kwargs.get(arg)
            if not get_access_resolver().check(capability, principal, group_id):
                raise ForbiddenError(capability, group_id)
            return f(*args, **kwargs)
        return decorated
    return decorator
