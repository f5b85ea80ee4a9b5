"""
Phase Progress Engine
Work-log ledger model.

One row = hours an engineer spent on a phase on a given date. Rows are
soft-deleted only; the sum of an engineer's active rows on a phase is the
sole input to that engineer's hours-based progress.
"""

from datetime import datetime, timezone

from app.models import db
from app.models.soft_delete import SoftDeleteMixin
from app.utils.helpers import decimal_str


class WorkLog(SoftDeleteMixin, db.Model):
    __tablename__ = "work_logs"
    __table_args__ = (
        db.CheckConstraint("hours > 0", name="ck_work_logs_hours_positive"),
        db.Index("ix_work_logs_phase_engineer", "phase_id", "engineer_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    phase_id = db.Column(
        db.Integer, db.ForeignKey("phases.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    engineer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False)
    hours = db.Column(db.Numeric(5, 2), nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True,
                           comment="Differs from engineer_id when a supervisor logs on someone's behalf")
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    phase = db.relationship("Phase", back_populates="work_logs")
    engineer = db.relationship("User", foreign_keys=[engineer_id])

    def to_dict(self):
        return {
            "id": self.id,
            "phase_id": self.phase_id,
            "engineer_id": self.engineer_id,
            "engineer_name": self.engineer.name if self.engineer else None,
            "date": self.date.isoformat() if self.date else None,
            "hours": decimal_str(self.hours),
            "description": self.description,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "is_deleted": self.is_deleted,
        }

    def __repr__(self):
        return f"<WorkLog {self.id}: phase={self.phase_id} engineer={self.engineer_id} {self.hours}h>"
