"""
Access Resolver — global role + tag-mediated per-group test roles.

A user reaches a test group only through tags: the user holds a tag
(UserTag) and the group binds that tag to a TestRole (TestGroupTag).
Test roles are ordered by privilege, lower value = more privilege:

    Designer(1)  satisfies Designer, Executor and Viewer requirements
    Executor(2)  satisfies Executor and Viewer requirements
    Viewer(3)    satisfies Viewer requirements only

Decision table:
    can_view            Admin | creator | any tag bound to the group
    can_modify          Admin | creator
    can_edit_test_cases Admin | has_test_role(DESIGNER)
    can_execute_tests   Admin | has_test_role(EXECUTOR)

The resolver never raises for missing rows: an unknown or deleted group
simply yields False / an empty list. All lookups go through the injected
TagAssignmentStore so the rules can be exercised without a database.
"""

import logging

from sqlalchemy import select

from testhub.core.principal import Principal
from testhub.models import db
from testhub.models.auth import Tag, UserRole, UserTag
from testhub.models.test_group import TestGroup, TestGroupTag, TestRole

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════
# Store
# ═══════════════════════════════════════════════════════════════
class TagAssignmentStore:
    """SQL lookups the resolver needs. Deleted rows are never returned."""

    def __init__(self, session):
        self.session = session

    def group_creator(self, group_id: int) -> str | None:
        """Return created_by of a live group, or None when it does not exist."""
        return self.session.execute(
            select(TestGroup.created_by).where(
                TestGroup.id == group_id,
                TestGroup.is_deleted.is_(False),
            )
        ).scalar_one_or_none()

    def test_roles(self, user_id: int, group_id: int) -> list[int]:
        """Every test_role the user reaches on the group through a live tag."""
        rows = self.session.execute(
            select(TestGroupTag.test_role)
            .join(UserTag, UserTag.tag_id == TestGroupTag.tag_id)
            .join(Tag, Tag.id == TestGroupTag.tag_id)
            .join(TestGroup, TestGroup.id == TestGroupTag.test_group_id)
            .where(
                UserTag.user_id == user_id,
                TestGroupTag.test_group_id == group_id,
                UserTag.is_deleted.is_(False),
                Tag.is_deleted.is_(False),
                TestGroup.is_deleted.is_(False),
            )
        ).scalars()
        return list(rows)

    def live_group_ids(self) -> set[int]:
        return set(
            self.session.execute(
                select(TestGroup.id).where(TestGroup.is_deleted.is_(False))
            ).scalars()
        )

    def created_group_ids(self, user_id: int) -> set[int]:
        return set(
            self.session.execute(
                select(TestGroup.id).where(
                    TestGroup.created_by == str(user_id),
                    TestGroup.is_deleted.is_(False),
                )
            ).scalars()
        )

    def tagged_group_ids(self, user_id: int) -> set[int]:
        return set(
            self.session.execute(
                select(TestGroupTag.test_group_id)
                .join(UserTag, UserTag.tag_id == TestGroupTag.tag_id)
                .join(Tag, Tag.id == TestGroupTag.tag_id)
                .join(TestGroup, TestGroup.id == TestGroupTag.test_group_id)
                .where(
                    UserTag.user_id == user_id,
                    UserTag.is_deleted.is_(False),
                    Tag.is_deleted.is_(False),
                    TestGroup.is_deleted.is_(False),
                )
            ).scalars()
        )


# ═══════════════════════════════════════════════════════════════
# Resolver
# ═══════════════════════════════════════════════════════════════
class AccessResolver:
    def __init__(self, store: TagAssignmentStore):
        self.store = store

    def can_view(self, principal: Principal, group_id: int) -> bool:
        if principal.is_admin:
            return True
        creator = self.store.group_creator(group_id)
        if creator is None:
            return False
        if creator == principal.actor:
            return True
        # Presence of any bound tag grants viewing, whatever its role.
        return bool(self.store.test_roles(principal.id, group_id))

    def can_modify(self, principal: Principal, group_id: int) -> bool:
        if principal.is_admin:
            return True
        return self.store.group_creator(group_id) == principal.actor

    def has_test_role(self, principal: Principal, group_id: int, required: TestRole) -> bool:
        return any(role <= required for role in self.store.test_roles(principal.id, group_id))

    def can_edit_test_cases(self, principal: Principal, group_id: int) -> bool:
        return principal.is_admin or self.has_test_role(principal, group_id, TestRole.DESIGNER)

    def can_execute_tests(self, principal: Principal, group_id: int) -> bool:
        return principal.is_admin or self.has_test_role(principal, group_id, TestRole.EXECUTOR)

    def accessible_group_ids(self, principal: Principal) -> set[int]:
        if principal.is_admin:
            return self.store.live_group_ids()
        tagged = self.store.tagged_group_ids(principal.id)
        if principal.role == UserRole.TEST_MANAGER:
            return tagged | self.store.created_group_ids(principal.id)
        return tagged

    def check(self, capability: str, principal: Principal, group_id: int) -> bool:
        """Dispatch by capability name: view | modify | edit | execute."""
        try:
            rule = _CAPABILITIES[capability]
        except KeyError:
            raise ValueError(f"Unknown capability {capability!r}") from None
        allowed = rule(self, principal, group_id)
        if not allowed:
            logger.info(
                "Access denied: user=%s role=%s capability=%s test_group=%s",
                principal.id, principal.role.name, capability, group_id,
            )
        return allowed


_CAPABILITIES = {
    "view": AccessResolver.can_view,
    "modify": AccessResolver.can_modify,
    "edit": AccessResolver.can_edit_test_cases,
    "execute": AccessResolver.can_execute_tests,
}


def get_access_resolver(session=None) -> AccessResolver:
    """Build a resolver bound to ``session`` (defaults to the request session)."""
    return AccessResolver(TagAssignmentStore(session or db.session))
