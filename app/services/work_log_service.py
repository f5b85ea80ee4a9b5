"""
Work-Log Ledger — Service Layer.

Business logic for:
    - Recording hours (own or on behalf of an engineer)
    - Editing / soft-deleting entries (owner or supervisor)
    - Ledger listings and per-engineer hour totals

Every insert, edit and delete takes the phase row lock and recomputes the
phase progress aggregate in the same transaction; no write path returns
with a stale aggregate.

Bounds (``Config``):
    WORK_LOG_MIN_HOURS ≤ hours ≤ WORK_LOG_MAX_HOURS
    today - WORK_LOG_MAX_PAST_DAYS ≤ date ≤ today
"""

import logging
from datetime import date, timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy import func, select

from app.auth import Principal, ensure_supervisor
from app.core.exceptions import PermissionDenied, ValidationError
from app.models import db
from app.models.audit import write_audit
from app.models.auth import User
from app.models.work_log import WorkLog
from app.services.helpers.lookups import get_engineer, get_or_raise, get_phase, lock_phase
from app.services.helpers.transaction import commit_or_rollback
from app.services.progress_service import recompute_phase_progress
from app.utils.helpers import decimal_str, parse_date, quantize, to_decimal

logger = logging.getLogger(__name__)


# ── Validation ───────────────────────────────────────────────────────────────


def validate_hours(hours) -> Decimal:
    value = to_decimal(hours, "hours")
    lo = Decimal(str(current_app.config.get("WORK_LOG_MIN_HOURS", 0.25)))
    hi = Decimal(str(current_app.config.get("WORK_LOG_MAX_HOURS", 24)))
    if value < lo or value > hi:
        raise ValidationError(
            f"hours must be between {lo} and {hi}",
            details={"field": "hours", "min": str(lo), "max": str(hi)},
        )
    return quantize(value)


def validate_work_date(work_date, today: date | None = None) -> date:
    """Date must be today or within the rolling past window; never in the future."""
    if work_date is None or work_date == "":
        raise ValidationError("date is required", details={"field": "date"})
    parsed = parse_date(work_date)
    if parsed is None:
        raise ValidationError("date must be an ISO date (YYYY-MM-DD)", details={"field": "date"})
    today = today or date.today()
    max_past = int(current_app.config.get("WORK_LOG_MAX_PAST_DAYS", 30))
    if parsed > today:
        raise ValidationError("date cannot be in the future", details={"field": "date"})
    if parsed < today - timedelta(days=max_past):
        raise ValidationError(
            f"date cannot be more than {max_past} days in the past",
            details={"field": "date", "max_past_days": max_past},
        )
    return parsed


def _ensure_owner_or_supervisor(log: WorkLog, principal: Principal, action: str):
    if principal.is_supervisor:
        return
    if log.engineer_id != principal.user_id:
        raise PermissionDenied(
            f"Engineers can only {action} their own work logs",
            details={"role": principal.role},
        )


# ── Writes ───────────────────────────────────────────────────────────────────


def _insert(phase_id, engineer_id, work_date, hours, description, principal, today):
    hours = validate_hours(hours)
    work_date = validate_work_date(work_date, today)
    get_phase(phase_id)
    get_engineer(engineer_id)

    phase = lock_phase(phase_id)
    log = WorkLog(
        phase_id=phase.id,
        engineer_id=engineer_id,
        date=work_date,
        hours=hours,
        description=(description or "").strip() or None,
        created_by=principal.user_id,
    )
    db.session.add(log)
    db.session.flush()
    recompute_phase_progress(phase)
    write_audit(
        entity_type="work_log",
        entity_id=log.id,
        action="work_log.create",
        project_id=phase.project_id,
        actor_user_id=principal.user_id,
        diff={"engineer_id": engineer_id, "date": work_date.isoformat(), "hours": str(hours)},
    )
    commit_or_rollback()
    logger.info(
        "Work log %s: %sh on phase_id=%s for engineer_id=%s by user_id=%s",
        log.id, hours, phase_id, engineer_id, principal.user_id,
    )
    return log


def record_hours(
    phase_id: int,
    engineer_id: int,
    work_date,
    hours,
    description: str | None = None,
    *,
    principal: Principal,
    today: date | None = None,
) -> WorkLog:
    """
    Append a work log and recompute the phase's progress.

    Engineers may only log their own hours; supervisors use
    ``record_hours_for_engineer`` or pass any engineer here.

    Raises:
        ValidationError: hours out of bounds, date outside the window.
        NotFoundError: phase or engineer missing.
        PermissionDenied: engineer logging for someone else.
    """
    if not principal.is_supervisor and engineer_id != principal.user_id:
        raise PermissionDenied(
            "Engineers can only log their own hours",
            details={"role": principal.role, "field": "engineer_id"},
        )
    return _insert(phase_id, engineer_id, work_date, hours, description, principal, today)


def record_hours_for_engineer(
    phase_id: int,
    engineer_id: int,
    work_date,
    hours,
    description: str | None = None,
    *,
    principal: Principal,
    today: date | None = None,
) -> WorkLog:
    """Supervisor/administrator logs hours on behalf of an engineer."""
    ensure_supervisor(principal, "log hours for another engineer")
    return _insert(phase_id, engineer_id, work_date, hours, description, principal, today)


def update_work_log(
    work_log_id: int,
    principal: Principal,
    *,
    hours=None,
    work_date=None,
    description=None,
    today: date | None = None,
) -> WorkLog:
    """Edit an active work log. Only supplied fields change; all are re-validated."""
    log = get_or_raise(WorkLog, work_log_id, "Work log", active_only=True)
    _ensure_owner_or_supervisor(log, principal, "edit")

    new_hours = validate_hours(hours) if hours is not None else None
    new_date = validate_work_date(work_date, today) if work_date is not None else None

    phase = lock_phase(log.phase_id)
    diff = {}
    if new_hours is not None and new_hours != quantize(log.hours):
        diff["hours"] = {"old": str(log.hours), "new": str(new_hours)}
        log.hours = new_hours
    if new_date is not None and new_date != log.date:
        diff["date"] = {"old": log.date.isoformat(), "new": new_date.isoformat()}
        log.date = new_date
    if description is not None:
        log.description = description.strip() or None

    db.session.flush()
    recompute_phase_progress(phase)
    write_audit(
        entity_type="work_log",
        entity_id=log.id,
        action="work_log.update",
        project_id=phase.project_id,
        actor_user_id=principal.user_id,
        diff=diff,
    )
    commit_or_rollback()
    logger.info("Work log %s updated by user_id=%s %s", log.id, principal.user_id, diff)
    return log


def soft_delete_work_log(work_log_id: int, principal: Principal) -> WorkLog:
    """
    Exclude a work log from every aggregate without removing the row.

    Deleting an already-deleted log is a no-op that still returns the row.
    """
    log = get_or_raise(WorkLog, work_log_id, "Work log")
    _ensure_owner_or_supervisor(log, principal, "delete")
    if log.is_deleted:
        return log

    phase = lock_phase(log.phase_id)
    log.soft_delete(deleted_by=principal.user_id)
    db.session.flush()
    recompute_phase_progress(phase)
    write_audit(
        entity_type="work_log",
        entity_id=log.id,
        action="work_log.delete",
        project_id=phase.project_id,
        actor_user_id=principal.user_id,
        diff={"hours": str(log.hours), "engineer_id": log.engineer_id},
    )
    commit_or_rollback()
    logger.info("Work log %s soft-deleted by user_id=%s", log.id, principal.user_id)
    return log


# ── Reads ────────────────────────────────────────────────────────────────────


def list_phase_work_logs(phase_id: int, engineer_id: int | None = None) -> list[WorkLog]:
    get_phase(phase_id)
    stmt = select(WorkLog).where(WorkLog.phase_id == phase_id, WorkLog.active_clause())
    if engineer_id is not None:
        stmt = stmt.where(WorkLog.engineer_id == engineer_id)
    return db.session.execute(stmt.order_by(WorkLog.date.desc(), WorkLog.id.desc())).scalars().all()


def engineer_hours_summary(phase_id: int) -> list[dict]:
    """Active hours and entry count per engineer on a phase, most hours first."""
    get_phase(phase_id)
    rows = db.session.execute(
        select(
            WorkLog.engineer_id,
            User.name,
            func.sum(WorkLog.hours).label("total_hours"),
            func.count(WorkLog.id).label("entries"),
            func.max(WorkLog.date).label("last_logged"),
        )
        .join(User, User.id == WorkLog.engineer_id)
        .where(WorkLog.phase_id == phase_id, WorkLog.active_clause())
        .group_by(WorkLog.engineer_id, User.name)
        .order_by(func.sum(WorkLog.hours).desc())
    ).all()
    return [
        {
            "engineer_id": r.engineer_id,
            "engineer_name": r.name,
            "total_hours": decimal_str(r.total_hours),
            "entries": r.entries,
            "last_logged": r.last_logged.isoformat() if r.last_logged else None,
        }
        for r in rows
    ]
