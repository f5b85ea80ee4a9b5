"""
Phase Progress Engine
Audit domain model.

Models:
    - AuditLog: immutable, append-only trail of phase lifecycle and ledger events.
"""

import json
from datetime import UTC, datetime

from app.models import db

# ── Constants ────────────────────────────────────────────────────────────────

AUDIT_ENTITY_TYPES = {"project", "phase", "work_log", "phase_payment"}

AUDIT_ACTIONS = {
    # Phase lifecycle
    "phase.unlock",
    "phase.start",
    "phase.submit",
    "phase.approve",
    "phase.complete",
    "phase.delay",
    "phase.warning_add",
    "phase.warning_remove",
    "phase.plan_update",
    # Early access
    "phase.early_access_grant",
    "phase.early_access_revoke",
    "phase.early_access_start",
    # Ledgers
    "payment.terms_update",
    "payment.create",
    "payment.update",
    "payment.delete",
    "work_log.create",
    "work_log.update",
    "work_log.delete",
    # Generic
    "create",
    "delete",
}


class AuditLog(db.Model):
    """
    Immutable audit trail.

    One row per action. ``diff_json`` carries an old→new snapshot for the
    fields the action touched plus the free-text note supplied by the actor.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_project", "project_id"),
        db.Index("idx_audit_action", "action"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    entity_type = db.Column(db.String(30), nullable=False, comment="project | phase | work_log | phase_payment")
    entity_id = db.Column(db.String(36), nullable=False)
    action = db.Column(db.String(60), nullable=False, comment="phase.approve | payment.create | …")
    actor_user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        comment="NULL for system-triggered events (auto unlock)",
    )
    note = db.Column(db.Text, nullable=True)
    diff_json = db.Column(db.Text, default="{}")
    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(UTC),
    )

    @property
    def diff(self) -> dict:
        """Deserialise *diff_json* to a Python dict."""
        try:
            return json.loads(self.diff_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "actor_user_id": self.actor_user_id,
            "note": self.note,
            "diff": self.diff,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_audit(
    *,
    entity_type: str,
    entity_id,
    action: str,
    project_id: int | None = None,
    actor_user_id: int | None = None,
    note: str | None = None,
    diff: dict | None = None,
) -> AuditLog:
    """
    Append a single audit row. Uses ``flush`` so callers keep
    transaction control: the row commits or rolls back with the change
    it describes.
    """
    log = AuditLog(
        project_id=project_id,
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        actor_user_id=actor_user_id,
        note=note,
        diff_json=json.dumps(diff or {}, default=str),
    )
    db.session.add(log)
    db.session.flush()
    return log
