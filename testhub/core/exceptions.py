"""
Application-wide exception hierarchy.

Services raise these; ``create_app`` registers one handler per type so every
blueprint gets the same HTTP status mapping:

    UnauthorizedError → 401    ForbiddenError → 403    NotFoundError → 404
    ValidationError   → 400    ConflictError  → 409
    StorageError / ImportFailedError → see handlers in testhub/__init__.py

Usage:
    from testhub.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="TestGroup", resource_id=42)
    raise ValidationError("oem is required", details={"oem": "required"})
"""


class UnauthorizedError(Exception):
    """No valid principal on the request."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class ForbiddenError(Exception):
    """Valid principal, insufficient global role or tag-granted test role.

    Args:
        action: What was attempted (e.g. "edit test cases"). Logged and returned.
        test_group_id: Optional group the check ran against.
    """

    def __init__(self, action: str, test_group_id: int | None = None) -> None:
        self.action = action
        self.test_group_id = test_group_id
        msg = f"Permission denied: {action}"
        if test_group_id is not None:
            msg += f" (test_group={test_group_id})"
        super().__init__(msg)


class NotFoundError(Exception):
    """Raised when a requested resource does not exist or is soft-deleted.

    Args:
        resource: Human-readable entity name (e.g. "TestGroup", "TestEvidence").
        resource_id: The key that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is missing or malformed.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. Keys are field names.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when a write collides with existing state.

    Args:
        resource: Model name.
        field: The field that collides (unique key, version, ...).
        value: The conflicting value.
        message: Optional override for the default "already exists" text.
    """

    def __init__(
        self,
        resource: str,
        field: str,
        value: str | int | None = None,
        message: str | None = None,
    ) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(message or f"{resource} with {field}={value!r} already exists")


class StorageError(Exception):
    """Object storage call failed. Reported to callers as a generic failure."""


class ImportFailedError(Exception):
    """A CSV import could not run at all (empty file, missing header columns)."""
