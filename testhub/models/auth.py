"""
Auth models: users, tags and the user ↔ tag assignment table.

Tags are the only link between a user and a test group; see
``testhub.models.test_group.TestGroupTag`` for the group side.
"""

from datetime import datetime, timezone
from enum import IntEnum

from testhub.models import db
from testhub.models.soft_delete import SoftDeleteMixin


def _utcnow():
    return datetime.now(timezone.utc)


class UserRole(IntEnum):
    """Global role. Lower value means more privilege."""

    ADMIN = 0
    TEST_MANAGER = 1
    GENERAL = 2


# ═══════════════════════════════════════════════════════════════
# 1. USERS
# ═══════════════════════════════════════════════════════════════
class User(SoftDeleteMixin, db.Model):
    __tablename__ = "mt_users"

    id = db.Column(db.Integer, primary_key=True)
    # Unique among live users only; enforced in user_service.
    email = db.Column(db.String(255), nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    user_role = db.Column(db.Integer, nullable=False, default=int(UserRole.GENERAL))
    department = db.Column(db.String(255), default="")
    company = db.Column(db.String(255), default="")
    created_at = db.Column(db.DateTime, default=_utcnow)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    tag_assignments = db.relationship(
        "UserTag", back_populates="user", cascade="all, delete-orphan",
    )

    @property
    def role(self) -> UserRole:
        return UserRole(self.user_role)

    def active_tags(self):
        """Tags currently assigned to the user (deleted tags and assignments hidden)."""
        return sorted(
            (a.tag for a in self.tag_assignments if not a.is_deleted and not a.tag.is_deleted),
            key=lambda t: t.name,
        )

    def to_dict(self, include_tags=True):
        d = {
            "id": self.id,
            "email": self.email,
            "user_role": self.user_role,
            "department": self.department or "",
            "company": self.company or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_tags:
            d["tags"] = [t.to_dict() for t in self.active_tags()]
        return d


# ═══════════════════════════════════════════════════════════════
# 2. TAGS
# ═══════════════════════════════════════════════════════════════
class Tag(SoftDeleteMixin, db.Model):
    __tablename__ = "mt_tags"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=_utcnow)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {"id": self.id, "name": self.name}


class UserTag(SoftDeleteMixin, db.Model):
    """A user holds a tag."""

    __tablename__ = "mt_user_tags"

    user_id = db.Column(
        db.Integer, db.ForeignKey("mt_users.id", ondelete="CASCADE"), primary_key=True,
    )
    tag_id = db.Column(
        db.Integer, db.ForeignKey("mt_tags.id", ondelete="CASCADE"), primary_key=True,
    )
    created_at = db.Column(db.DateTime, default=_utcnow)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    user = db.relationship("User", back_populates="tag_assignments")
    tag = db.relationship("Tag")
