"""
Phase Progress Engine
Progress adjustment audit trail.

ProgressAdjustment is append-only: a row is written each time a supervisor
asserts a manual progress figure and is never updated or deleted (only the
project cascade removes it). It records why actual progress diverges from
hours-based progress.
"""

from datetime import datetime, timezone

from app.models import db
from app.utils.helpers import decimal_str

ADJUSTMENT_TYPES = ("phase_engineer", "work_log_entry", "phase_overall")


class ProgressAdjustment(db.Model):
    """
    Snapshot of a manual override.

    ``engineer_id`` is NULL for phase-overall adjustments. ``hours_logged``
    and ``hours_based_progress`` freeze what the ledger said at the moment
    of the override, so later work logs never rewrite history.
    """

    __tablename__ = "progress_adjustments"
    __table_args__ = (
        db.CheckConstraint(
            "manual_progress_percentage >= 0 AND manual_progress_percentage <= 100",
            name="ck_progress_adjustments_pct",
        ),
        db.Index("ix_progress_adjustments_phase_engineer", "phase_id", "engineer_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    phase_id = db.Column(
        db.Integer, db.ForeignKey("phases.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    engineer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    work_log_id = db.Column(db.Integer, db.ForeignKey("work_logs.id", ondelete="SET NULL"), nullable=True)
    adjustment_type = db.Column(
        db.String(20), nullable=False, default="phase_engineer",
        comment="phase_engineer | work_log_entry | phase_overall",
    )
    hours_logged = db.Column(db.Numeric(10, 2), nullable=False)
    hours_based_progress = db.Column(db.Numeric(5, 2), nullable=False)
    manual_progress_percentage = db.Column(db.Numeric(5, 2), nullable=False)
    adjustment_reason = db.Column(db.Text, nullable=False)
    adjusted_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    phase = db.relationship("Phase", back_populates="adjustments")
    engineer = db.relationship("User", foreign_keys=[engineer_id])
    adjuster = db.relationship("User", foreign_keys=[adjusted_by])

    def to_dict(self):
        return {
            "id": self.id,
            "phase_id": self.phase_id,
            "engineer_id": self.engineer_id,
            "engineer_name": self.engineer.name if self.engineer else None,
            "work_log_id": self.work_log_id,
            "adjustment_type": self.adjustment_type,
            "hours_logged": decimal_str(self.hours_logged),
            "hours_based_progress": decimal_str(self.hours_based_progress),
            "manual_progress_percentage": decimal_str(self.manual_progress_percentage),
            "adjustment_reason": self.adjustment_reason,
            "adjusted_by": self.adjusted_by,
            "adjusted_by_name": self.adjuster.name if self.adjuster else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return (
            f"<ProgressAdjustment {self.id}: phase={self.phase_id} "
            f"engineer={self.engineer_id} {self.manual_progress_percentage}%>"
        )
