"""
User Service — user CRUD, credential check, tag management and CSV export.
"""

import logging

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import func

from testhub.core.exceptions import ConflictError, NotFoundError, ValidationError
from testhub.models import db
from testhub.models.auth import Tag, User, UserRole, UserTag
from testhub.services.csv_service import write_csv
from testhub.utils.crypto import hash_password, verify_password
from testhub.utils.db import transaction
from testhub.utils.helpers import is_blank, parse_int

logger = logging.getLogger(__name__)

USER_CSV_HEADER = ["email", "password", "user_role", "department", "company", "tags"]


# ═══════════════════════════════════════════════════════════════
# Field validation
# ═══════════════════════════════════════════════════════════════
def normalize_email(email: str) -> str:
    """Validate syntax (no DNS lookup) and return the normalized address."""
    if email is not None and not isinstance(email, str):
        raise ValidationError("email must be a string", details={"email": "not a string"})
    try:
        return validate_email((email or "").strip(), check_deliverability=False).normalized
    except EmailNotValidError as exc:
        raise ValidationError(f"Invalid email: {exc}", details={"email": "invalid"}) from exc


def parse_user_role(value) -> int:
    return parse_int(
        value, "user_role", minimum=int(UserRole.ADMIN), maximum=int(UserRole.GENERAL),
    )


def find_user_by_email(email: str, include_deleted: bool = False) -> User | None:
    return (
        User.scoped(include_deleted=include_deleted)
        .filter(func.lower(User.email) == email.lower())
        .first()
    )


# ═══════════════════════════════════════════════════════════════
# Tags
# ═══════════════════════════════════════════════════════════════
def list_tags() -> list[Tag]:
    return Tag.scoped().order_by(Tag.name).all()


def get_tag(tag_id: int, include_deleted: bool = False) -> Tag:
    tag = Tag.scoped(include_deleted=include_deleted).filter(Tag.id == tag_id).first()
    if tag is None:
        raise NotFoundError("Tag", tag_id)
    return tag


def create_tag(name: str) -> Tag:
    name = str(name or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    if Tag.scoped().filter(Tag.name == name).first():
        raise ConflictError("Tag", "name", name)
    with transaction() as session:
        tag = Tag(name=name)
        session.add(tag)
    return tag


def delete_tag(tag_id: int) -> None:
    tag = get_tag(tag_id)
    with transaction():
        tag.soft_delete()
    logger.info("Tag %s soft-deleted", tag_id)


def get_or_create_tag(session, name: str) -> Tag:
    """Reuse a live tag by exact name, otherwise create it inside the caller's transaction."""
    tag = Tag.scoped().filter(Tag.name == name).first()
    if tag is None:
        tag = Tag(name=name)
        session.add(tag)
        session.flush()
    return tag


def resolve_tag_ids(tag_ids) -> list[int]:
    """Validate that every id names a live tag. Duplicates collapse."""
    if tag_ids is None:
        return []
    if not isinstance(tag_ids, list):
        raise ValidationError("tag_ids must be a list", details={"tag_ids": "not a list"})
    ids = list(dict.fromkeys(parse_int(t, "tag_ids") for t in tag_ids))
    if ids:
        found = {t.id for t in Tag.scoped().filter(Tag.id.in_(ids))}
        unknown = [i for i in ids if i not in found]
        if unknown:
            raise ValidationError(
                f"Unknown tag id(s): {', '.join(map(str, unknown))}",
                details={"tag_ids": unknown},
            )
    return ids


def replace_user_tags(user: User, tag_ids) -> None:
    """Make the user's live assignments exactly ``tag_ids``.

    Existing rows are restored or soft-deleted rather than re-inserted, so a
    repeated (user, tag) pair is a no-op.
    """
    wanted = set(tag_ids)
    existing = {a.tag_id: a for a in user.tag_assignments}
    for tag_id, assignment in existing.items():
        if tag_id in wanted:
            assignment.restore()
        else:
            assignment.soft_delete()
    for tag_id in wanted - existing.keys():
        user.tag_assignments.append(UserTag(tag_id=tag_id))


# ═══════════════════════════════════════════════════════════════
# Users
# ═══════════════════════════════════════════════════════════════
def list_users(email: str | None = None, department: str | None = None, tag_id: int | None = None):
    """Return a query over live users, filtered and ordered by id."""
    query = User.scoped()
    if email:
        query = query.filter(User.email.ilike(f"%{email}%"))
    if department:
        query = query.filter(User.department.ilike(f"%{department}%"))
    if tag_id is not None:
        query = query.filter(
            User.tag_assignments.any(
                (UserTag.tag_id == tag_id) & UserTag.is_deleted.is_(False)
            )
        )
    return query.order_by(User.id)


def get_user(user_id: int) -> User:
    user = User.scoped().filter(User.id == user_id).first()
    if user is None:
        raise NotFoundError("User", user_id)
    return user


def create_user(data: dict) -> User:
    email = normalize_email(data.get("email"))
    password = data.get("password") or ""
    if not isinstance(password, str):
        raise ValidationError("password must be a string", details={"password": "not a string"})
    if is_blank(password):
        raise ValidationError("password is required", details={"password": "required"})
    user_role = parse_user_role(data.get("user_role", int(UserRole.GENERAL)))
    tag_ids = resolve_tag_ids(data.get("tag_ids"))

    if find_user_by_email(email):
        raise ConflictError("User", "email", email)

    with transaction() as session:
        user = User(
            email=email,
            password_hash=hash_password(password),
            user_role=user_role,
            department=data.get("department") or "",
            company=data.get("company") or "",
        )
        session.add(user)
        replace_user_tags(user, tag_ids)
    logger.info("User %s created (role=%s)", user.id, UserRole(user_role).name)
    return user


def update_user(user_id: int, data: dict) -> User:
    user = get_user(user_id)
    updates = {}
    if "email" in data:
        email = normalize_email(data["email"])
        other = find_user_by_email(email)
        if other and other.id != user.id:
            raise ConflictError("User", "email", email)
        updates["email"] = email
    if "user_role" in data:
        updates["user_role"] = parse_user_role(data["user_role"])
    tag_ids = resolve_tag_ids(data["tag_ids"]) if "tag_ids" in data else None
    new_password = data.get("password")
    if new_password is not None and not isinstance(new_password, str):
        raise ValidationError("password must be a string", details={"password": "not a string"})

    with transaction():
        for field, value in updates.items():
            setattr(user, field, value)
        for field in ("department", "company"):
            if field in data:
                setattr(user, field, data[field] or "")
        # Credential only changes when a new password is supplied.
        if not is_blank(new_password):
            user.password_hash = hash_password(new_password)
        if tag_ids is not None:
            replace_user_tags(user, tag_ids)
    return user


def delete_user(user_id: int) -> None:
    user = get_user(user_id)
    with transaction():
        user.soft_delete()
        for assignment in user.tag_assignments:
            assignment.soft_delete()
    logger.info("User %s soft-deleted", user_id)


def authenticate(email: str, password: str) -> User | None:
    """Return the live user whose credentials match, else None."""
    if is_blank(email) or is_blank(password):
        return None
    user = find_user_by_email(email.strip())
    if user is None or not verify_password(password, user.password_hash):
        return None
    return user


def export_users_csv() -> str:
    """All live users in the import layout. Password column stays blank."""
    rows = [
        [
            u.email,
            "",
            u.user_role,
            u.department or "",
            u.company or "",
            ",".join(t.name for t in u.active_tags()),
        ]
        for u in User.scoped().order_by(User.id)
    ]
    return write_csv(USER_CSV_HEADER, rows)
