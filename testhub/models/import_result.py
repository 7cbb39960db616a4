"""Import run records and their per-row errors."""

from datetime import datetime, timezone
from enum import IntEnum

from testhub.models import db


def _utcnow():
    return datetime.now(timezone.utc)


class ImportStatus(IntEnum):
    ERROR = 0
    IN_PROGRESS = 1
    COMPLETED = 3


class ImportType(IntEnum):
    TEST_CASE = 0
    USER = 1


class ImportResult(db.Model):
    __tablename__ = "tt_import_results"

    id = db.Column(db.Integer, primary_key=True)
    file_name = db.Column(db.String(255), nullable=False)
    import_date = db.Column(db.Date, nullable=False)
    status = db.Column(db.Integer, nullable=False, default=int(ImportStatus.IN_PROGRESS))
    executor_name = db.Column(db.String(255), nullable=False)
    import_type = db.Column(db.Integer, nullable=False)
    test_group_id = db.Column(
        db.Integer, db.ForeignKey("tt_test_groups.id", ondelete="SET NULL"), nullable=True,
    )
    count = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=_utcnow)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    errors = db.relationship(
        "ImportResultError",
        back_populates="import_result",
        cascade="all, delete-orphan",
        order_by="ImportResultError.error_row",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "file_name": self.file_name,
            "import_date": self.import_date.isoformat() if self.import_date else None,
            "status": self.status,
            "executor_name": self.executor_name,
            "import_type": self.import_type,
            "test_group_id": self.test_group_id,
            "count": self.count,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class ImportResultError(db.Model):
    __tablename__ = "tt_import_result_errors"

    id = db.Column(db.Integer, primary_key=True)
    import_result_id = db.Column(
        db.Integer, db.ForeignKey("tt_import_results.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    error_details = db.Column(db.Text, nullable=False)
    error_row = db.Column(db.Integer, nullable=False)  # -1 when keyed by group, not row
    created_at = db.Column(db.DateTime, default=_utcnow)

    import_result = db.relationship("ImportResult", back_populates="errors")

    def to_dict(self):
        return {
            "id": self.id,
            "error_details": self.error_details,
            "error_row": self.error_row,
        }
