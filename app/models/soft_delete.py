"""
Soft delete mixin for ledger rows.

Ledger rows (work logs) are never physically removed while their project
exists: a soft-deleted row drops out of every aggregation but stays
available for reconstructing progress history.

Usage:
    class WorkLog(SoftDeleteMixin, db.Model):
        ...

    log.soft_delete(deleted_by=principal.user_id)
    WorkLog.query_active().filter_by(phase_id=7)
    WorkLog.active_clause()            # for select() statements
"""

from datetime import datetime, timezone

from app.models import db


class SoftDeleteMixin:
    """Adds ``deleted_at`` / ``deleted_by`` and active-row query helpers."""

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, default=None, index=True)
    deleted_by = db.Column(db.Integer, nullable=True, comment="users.id of who soft-deleted the row")

    def soft_delete(self, deleted_by=None):
        """Mark this row as deleted. Idempotent: the first timestamp is kept."""
        if self.deleted_at is None:
            self.deleted_at = datetime.now(timezone.utc)
            self.deleted_by = deleted_by

    @property
    def is_deleted(self):
        return self.deleted_at is not None

    @classmethod
    def active_clause(cls):
        return cls.deleted_at.is_(None)

    @classmethod
    def query_active(cls):
        """Return a query that excludes soft-deleted rows."""
        return cls.query.filter(cls.active_clause())
