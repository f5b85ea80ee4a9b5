"""
Phase Progress Engine
Payment ledger model.

Active PhasePayment rows are the only source of a phase's ``paid_amount``; the
aggregate is re-derived from this table after every ledger mutation.
"""

from datetime import datetime, timezone

from app.models import db
from app.models.soft_delete import SoftDeleteMixin
from app.utils.helpers import decimal_str

PAYMENT_TYPES = ("advance", "partial", "milestone", "final")
PAYMENT_METHODS = ("bank_transfer", "cheque", "cash", "other")


class PhasePayment(SoftDeleteMixin, db.Model):
    """Ledger transaction. Deleting soft-deletes; the row leaves the aggregate."""

    __tablename__ = "phase_payments"
    __table_args__ = (
        db.CheckConstraint("payment_amount > 0", name="ck_phase_payments_amount_positive"),
    )

    id = db.Column(db.Integer, primary_key=True)
    phase_id = db.Column(
        db.Integer, db.ForeignKey("phases.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    payment_amount = db.Column(db.Numeric(14, 2), nullable=False)
    payment_date = db.Column(db.Date, nullable=False)
    payment_type = db.Column(db.String(20), nullable=False, default="partial",
                             comment="advance | partial | milestone | final")
    payment_method = db.Column(db.String(20), nullable=True,
                               comment="bank_transfer | cheque | cash | other")
    notes = db.Column(db.Text, nullable=True)
    recorded_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    phase = db.relationship("Phase", back_populates="payments")

    def to_dict(self):
        return {
            "id": self.id,
            "phase_id": self.phase_id,
            "project_id": self.project_id,
            "payment_amount": decimal_str(self.payment_amount),
            "payment_date": self.payment_date.isoformat() if self.payment_date else None,
            "payment_type": self.payment_type,
            "payment_method": self.payment_method,
            "notes": self.notes,
            "recorded_by": self.recorded_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<PhasePayment {self.id}: phase={self.phase_id} {self.payment_amount}>"
