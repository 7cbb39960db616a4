"""
Soft Delete Mixin.

Adds an ``is_deleted`` flag and query helpers. Models that include this
mixin are flagged rather than physically removed, and every read helper
hides flagged rows unless ``include_deleted=True`` is passed explicitly.

Usage:
    class MyModel(SoftDeleteMixin, db.Model):
        ...

    obj.soft_delete()
    db.session.commit()

    MyModel.scoped().all()                      # live rows only
    MyModel.scoped(include_deleted=True).all()  # everything
"""

from sqlalchemy import false

from testhub.models import db


class SoftDeleteMixin:
    """Mixin that adds soft delete support to any SQLAlchemy model."""

    is_deleted = db.Column(
        db.Boolean, nullable=False, default=False, server_default=false(), index=True,
    )

    def soft_delete(self):
        """Mark this record as deleted."""
        self.is_deleted = True

    def restore(self):
        """Restore a soft-deleted record."""
        self.is_deleted = False

    @classmethod
    def scoped(cls, include_deleted: bool = False):
        """Return a query over this model, hiding deleted rows by default."""
        query = cls.query
        if not include_deleted:
            query = query.filter(cls.is_deleted.is_(False))
        return query

