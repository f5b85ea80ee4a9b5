"""
Phase Progress Engine
Notifier capability.

Engine operations accept a ``Notifier`` argument and hand it
fire-and-forget events *after* their transaction has committed. A delivery
failure is logged and dropped: it never rolls back the transition that
produced it.

Events:
    early_access_granted, early_access_revoked, early_access_phase_started,
    phase_status_changed, notification (generic project/user message)

Usage:
    from app.services.notifier import InAppNotifier, deliver

    deliver(notifier, "early_access_granted", project_id=3, phase=phase.to_dict(),
            message="Early access granted for Licensing")
"""

import logging

from app.models import db
from app.models.notification import Notification

logger = logging.getLogger(__name__)


class Notifier:
    """Transport-agnostic sink for engine events."""

    def notify(self, event: str, *, project_id: int | None, payload: dict) -> None:
        raise NotImplementedError


class LogNotifier(Notifier):
    """Writes each event to the application log. Default for new apps."""

    def notify(self, event, *, project_id, payload):
        logger.info("notify %s project_id=%s %s", event, project_id, payload.get("message", ""),
                    extra={"event_type": event, "project_id": project_id})


class InAppNotifier(Notifier):
    """Persists events as ``Notification`` rows in their own transaction."""

    def notify(self, event, *, project_id, payload):
        phase = payload.get("phase") or {}
        notif = Notification(
            project_id=project_id,
            user_id=payload.get("user_id"),
            event=event,
            message=payload.get("message", ""),
            severity=payload.get("severity", "info"),
            phase_id=phase.get("id"),
        )
        db.session.add(notif)
        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

    @staticmethod
    def list_for_project(project_id, unread_only=False, limit=50):
        """Notifications for a project, newest first."""
        q = Notification.query.filter_by(project_id=project_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        return q.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def deliver(notifier: Notifier | None, event: str, *, project_id: int | None, **payload) -> bool:
    """Hand *event* to *notifier*; never raises.

    Returns True when the notifier accepted the event.
    """
    if notifier is None:
        return False
    try:
        notifier.notify(event, project_id=project_id, payload=payload)
        return True
    except Exception:
        logger.warning("Notifier %s failed to deliver %s for project_id=%s",
                       type(notifier).__name__, event, project_id, exc_info=True)
        return False


def current_notifier() -> Notifier | None:
    """Notifier installed on the running app (``app.extensions["notifier"]``)."""
    from flask import current_app

    return current_app.extensions.get("notifier")
