"""
Test Group Service — CRUD and search over test groups and their tag bindings.

Permission checks happen in the blueprint (see require_group_access); this
module only enforces data rules.
"""

import logging

from testhub.core.exceptions import NotFoundError, ValidationError
from testhub.core.principal import Principal
from testhub.models.auth import Tag
from testhub.models.test_group import TestGroup, TestGroupTag, TestRole
from testhub.utils.db import transaction
from testhub.utils.helpers import parse_date_input, parse_int, require_fields

logger = logging.getLogger(__name__)

SEARCH_FIELDS = ("oem", "model", "event", "variation", "destination")
TEXT_FIELDS = ("oem", "model", "event", "variation", "destination", "specs")


def get_group(test_group_id: int, include_deleted: bool = False) -> TestGroup:
    group = TestGroup.scoped(include_deleted=include_deleted).filter(
        TestGroup.id == test_group_id
    ).first()
    if group is None:
        raise NotFoundError("TestGroup", test_group_id)
    return group


def search_groups(group_ids, filters: dict):
    """Query over the given live groups, narrowed by substring filters, newest first."""
    query = TestGroup.scoped().filter(TestGroup.id.in_(group_ids or [-1]))
    for field in SEARCH_FIELDS:
        value = (filters.get(field) or "").strip()
        if value:
            query = query.filter(getattr(TestGroup, field).ilike(f"%{value}%"))
    return query.order_by(TestGroup.created_at.desc(), TestGroup.id.desc())


def _parse_tag_bindings(raw) -> list[tuple[int, int]]:
    if not isinstance(raw, list):
        raise ValidationError("tags must be a list", details={"tags": "not a list"})
    bindings = []
    for item in raw:
        if not isinstance(item, dict):
            raise ValidationError("each tag must be an object {tag_id, test_role}")
        tag_id = parse_int(item.get("tag_id"), "tag_id")
        test_role = parse_int(
            item.get("test_role"), "test_role",
            minimum=int(TestRole.DESIGNER), maximum=int(TestRole.VIEWER),
        )
        bindings.append((tag_id, test_role))
    bindings = list(dict.fromkeys(bindings))

    tag_ids = {tag_id for tag_id, _ in bindings}
    if tag_ids:
        found = {t.id for t in Tag.scoped().filter(Tag.id.in_(tag_ids))}
        unknown = sorted(tag_ids - found)
        if unknown:
            raise ValidationError(
                f"Unknown tag id(s): {', '.join(map(str, unknown))}",
                details={"tags": unknown},
            )
    return bindings


def _text(data: dict, field: str) -> str:
    value = data.get(field)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", details={field: "not a string"})
    return value.strip()


def _apply_fields(group: TestGroup, data: dict) -> None:
    for field in TEXT_FIELDS:
        if field in data:
            setattr(group, field, _text(data, field))
    if "test_start_date" in data:
        group.test_start_date = parse_date_input(data["test_start_date"], "test_start_date")
    if "test_end_date" in data:
        group.test_end_date = parse_date_input(data["test_end_date"], "test_end_date")
    if "ng_plan_count" in data:
        value = data["ng_plan_count"]
        group.ng_plan_count = 0 if value in (None, "") else parse_int(value, "ng_plan_count", minimum=0)
    if group.test_start_date and group.test_end_date and group.test_end_date < group.test_start_date:
        raise ValidationError(
            "test_end_date must not be before test_start_date",
            details={"test_end_date": "before start"},
        )


def _replace_bindings(group: TestGroup, bindings: list[tuple[int, int]]) -> None:
    group.tag_bindings.clear()
    for tag_id, test_role in bindings:
        group.tag_bindings.append(TestGroupTag(tag_id=tag_id, test_role=test_role))


def create_group(data: dict, principal: Principal) -> TestGroup:
    require_fields(data, "oem", "model")
    bindings = _parse_tag_bindings(data.get("tags") or [])

    group = TestGroup(created_by=principal.actor, updated_by=principal.actor)
    _apply_fields(group, data)
    with transaction() as session:
        session.add(group)
        _replace_bindings(group, bindings)
    logger.info("Test group %s created by user %s", group.id, principal.id)
    return group


def update_group(test_group_id: int, data: dict, principal: Principal) -> TestGroup:
    group = get_group(test_group_id)
    for field in ("oem", "model"):
        if field in data and not _text(data, field):
            raise ValidationError(f"{field} cannot be empty", details={field: "required"})
    bindings = _parse_tag_bindings(data["tags"]) if "tags" in data else None

    with transaction() as session:
        _apply_fields(group, data)
        group.updated_by = principal.actor
        if bindings is not None:
            _replace_bindings(group, bindings)
            session.flush()
    return group


def delete_group(test_group_id: int, principal: Principal) -> None:
    """Soft-delete the group row only; its test cases are left as they are."""
    group = get_group(test_group_id)
    with transaction():
        group.soft_delete()
        group.updated_by = principal.actor
    logger.info("Test group %s soft-deleted by user %s", test_group_id, principal.id)
