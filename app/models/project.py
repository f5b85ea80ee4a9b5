"""
Phase Progress Engine
Project & Phase domain models.

Models:
    - Project: owning container; deleting it cascades to every phase table.
    - Phase:   ordered sub-unit with schedule, hours budget, lifecycle status,
               early-access sub-state and derived progress / payment aggregates.

Aggregate columns on Phase (``calculated_progress``, ``actual_progress``,
``progress_variance``, ``actual_hours``, ``paid_amount``, ``payment_status``)
are written only by the recompute paths in ``progress_service`` and
``payment_service``; nothing else assigns them.
"""

from datetime import datetime, timezone
from decimal import Decimal

from app.models import db
from app.utils.helpers import decimal_str

# ── Constants ────────────────────────────────────────────────────────────────

PROJECT_STATUSES = {"active", "on_hold", "completed", "cancelled"}

PHASE_STATUSES = ("not_started", "ready", "in_progress", "submitted", "approved", "completed")

# Primary lifecycle edges. ``not_started -> in_progress`` is reachable only
# through the early-access path and is guarded separately.
PHASE_TRANSITIONS = {
    "not_started": ["ready"],
    "ready": ["in_progress"],
    "in_progress": ["submitted"],
    "submitted": ["approved", "completed"],
    "approved": ["completed"],
    "completed": [],
}

# Statuses in which the phase's work is considered delivered
TERMINAL_PHASE_STATUSES = frozenset({"approved", "completed"})

EARLY_ACCESS_STATUSES = ("not_accessible", "accessible", "in_progress")

DELAY_REASONS = ("none", "client", "company")

PAYMENT_STATUSES = ("unpaid", "partially_paid", "fully_paid")

DEFAULT_PHASES = (
    {"name": "Concept Design", "planned_weeks": 2},
    {"name": "Schematic Design", "planned_weeks": 3},
    {"name": "Design Development", "planned_weeks": 4},
    {"name": "Licensing", "planned_weeks": 3},
    {"name": "Working Drawings", "planned_weeks": 6},
    {"name": "BOQ & Tender", "planned_weeks": 2},
)


def _utcnow():
    return datetime.now(timezone.utc)


def validate_phase_transition(old_status, new_status):
    """Check if a primary phase status transition is allowed."""
    return new_status in PHASE_TRANSITIONS.get(old_status, [])


class Project(db.Model):
    """Engineering project made of ordered phases."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    client_name = db.Column(db.String(200), nullable=True)
    location = db.Column(db.String(200), nullable=True)
    start_date = db.Column(db.Date, nullable=True)
    status = db.Column(
        db.String(20), nullable=False, default="active",
        comment="active | on_hold | completed | cancelled",
    )
    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    phases = db.relationship(
        "Phase",
        back_populates="project",
        order_by="Phase.phase_order",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def to_dict(self, include_phases=False) -> dict:
        d = {
            "id": self.id,
            "name": self.name,
            "client_name": self.client_name,
            "location": self.location,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "status": self.status,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_phases:
            d["phases"] = [p.to_dict() for p in self.phases]
        return d

    def __repr__(self) -> str:
        return f"<Project {self.id}: {self.name}>"


class Phase(db.Model):
    """
    One ordered phase of a project.

    Status lifecycle: not_started → ready → in_progress → submitted → approved → completed
    Early-access sub-state (parallel): not_accessible → accessible → in_progress
    """

    __tablename__ = "phases"
    __table_args__ = (
        db.UniqueConstraint("project_id", "phase_order", name="uq_phases_project_order"),
        db.CheckConstraint("actual_progress >= 0 AND actual_progress <= 100", name="ck_phases_actual_progress"),
        db.Index("ix_phases_project_status", "project_id", "status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    phase_order = db.Column(db.Integer, nullable=False, comment="1-based position, unique per project")
    name = db.Column(db.String(100), nullable=False)
    is_custom = db.Column(db.Boolean, nullable=False, default=False)

    # ── Schedule ──
    planned_weeks = db.Column(db.Integer, nullable=False, default=1)
    planned_start_date = db.Column(db.Date, nullable=True)
    planned_end_date = db.Column(db.Date, nullable=True)
    actual_start_date = db.Column(db.Date, nullable=True)
    actual_end_date = db.Column(db.Date, nullable=True)
    submitted_date = db.Column(db.Date, nullable=True)
    approved_date = db.Column(db.Date, nullable=True)

    # ── Lifecycle ──
    status = db.Column(
        db.String(20), nullable=False, default="not_started",
        comment="not_started | ready | in_progress | submitted | approved | completed",
    )
    delay_reason = db.Column(db.String(10), nullable=False, default="none", comment="none | client | company")
    warning_flag = db.Column(db.Boolean, nullable=False, default=False)

    # ── Early access ──
    early_access_granted = db.Column(db.Boolean, nullable=False, default=False)
    early_access_status = db.Column(
        db.String(20), nullable=False, default="not_accessible",
        comment="not_accessible | accessible | in_progress",
    )
    early_access_granted_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    early_access_granted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    early_access_note = db.Column(db.Text, nullable=True)

    # ── Hours & progress aggregates ──
    predicted_hours = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0"))
    actual_hours = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0"))
    calculated_progress = db.Column(db.Numeric(5, 2), nullable=False, default=Decimal("0"))
    actual_progress = db.Column(db.Numeric(5, 2), nullable=False, default=Decimal("0"))
    progress_variance = db.Column(db.Numeric(6, 2), nullable=False, default=Decimal("0"))

    # ── Payment aggregates ──
    total_amount = db.Column(db.Numeric(14, 2), nullable=True, comment="NULL = no contracted total")
    paid_amount = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal("0"))
    payment_status = db.Column(
        db.String(20), nullable=False, default="unpaid",
        comment="unpaid | partially_paid | fully_paid",
    )
    payment_deadline = db.Column(db.Date, nullable=True)
    payment_notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    project = db.relationship("Project", back_populates="phases")
    work_logs = db.relationship(
        "WorkLog", back_populates="phase", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    payments = db.relationship(
        "PhasePayment", back_populates="phase", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    adjustments = db.relationship(
        "ProgressAdjustment", back_populates="phase", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_PHASE_STATUSES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "phase_order": self.phase_order,
            "name": self.name,
            "is_custom": self.is_custom,
            "planned_weeks": self.planned_weeks,
            "planned_start_date": self.planned_start_date.isoformat() if self.planned_start_date else None,
            "planned_end_date": self.planned_end_date.isoformat() if self.planned_end_date else None,
            "actual_start_date": self.actual_start_date.isoformat() if self.actual_start_date else None,
            "actual_end_date": self.actual_end_date.isoformat() if self.actual_end_date else None,
            "submitted_date": self.submitted_date.isoformat() if self.submitted_date else None,
            "approved_date": self.approved_date.isoformat() if self.approved_date else None,
            "status": self.status,
            "delay_reason": self.delay_reason,
            "warning_flag": self.warning_flag,
            "early_access_granted": self.early_access_granted,
            "early_access_status": self.early_access_status,
            "early_access_granted_by": self.early_access_granted_by,
            "early_access_granted_at": (
                self.early_access_granted_at.isoformat() if self.early_access_granted_at else None
            ),
            "early_access_note": self.early_access_note,
            "predicted_hours": decimal_str(self.predicted_hours),
            "actual_hours": decimal_str(self.actual_hours),
            "calculated_progress": decimal_str(self.calculated_progress),
            "actual_progress": decimal_str(self.actual_progress),
            "progress_variance": decimal_str(self.progress_variance),
            "total_amount": decimal_str(self.total_amount),
            "paid_amount": decimal_str(self.paid_amount),
            "payment_status": self.payment_status,
            "payment_deadline": self.payment_deadline.isoformat() if self.payment_deadline else None,
        }

    def __repr__(self) -> str:
        return f"<Phase {self.id}: #{self.phase_order} {self.name} [{self.status}]>"
