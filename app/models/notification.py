"""
Phase Progress Engine
Notification domain model.

Models:
    - Notification: in-app notification written by ``InAppNotifier`` after a
      successful phase transition. Delivery is best-effort; a missing row
      never implies the transition failed.
"""

from datetime import datetime, timezone

from app.models import db

# ── Constants ────────────────────────────────────────────────────────────────

NOTIFICATION_EVENTS = {
    "early_access_granted",
    "early_access_revoked",
    "early_access_phase_started",
    "phase_status_changed",
    "notification",
}
NOTIFICATION_SEVERITIES = {"info", "warning", "error", "success"}


class Notification(db.Model):
    """
    In-app notification entity.

    ``user_id`` NULL broadcasts to every member of ``project_id``.
    """

    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    event = db.Column(db.String(40), nullable=False, default="notification")
    message = db.Column(db.Text, default="")
    severity = db.Column(db.String(20), default="info")
    phase_id = db.Column(db.Integer, nullable=True)

    is_read = db.Column(db.Boolean, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def mark_read(self):
        self.is_read = True
        self.read_at = datetime.now(timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "user_id": self.user_id,
            "event": self.event,
            "message": self.message,
            "severity": self.severity,
            "phase_id": self.phase_id,
            "is_read": self.is_read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.event}>"
