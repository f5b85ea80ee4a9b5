"""
Phase State Machine — Service Layer.

Primary lifecycle:
    not_started → ready → in_progress → submitted → approved → completed
                                                  ↘ completed
Early-access sub-state (parallel):
    not_accessible → accessible → in_progress

Rules:
    - The first phase is created ``ready``; approving (or completing) phase N
      unlocks phase N+1 from ``not_started`` to ``ready``.
    - ``start_phase`` needs ``ready`` or an ``accessible`` early-access grant.
    - A grant is only possible while the phase is ``not_started``; a revoke
      only before the phase has been started through it.
    - Every transition validates first, then writes the phase, an audit row
      and commits; a rejected transition leaves the phase untouched.
    - Notifications go out after the commit and can never undo it.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import func, select

from app.auth import Principal, ensure_supervisor
from app.core.exceptions import (
    EarlyAccessStateError,
    InvalidTransitionError,
    PreconditionError,
    ValidationError,
)
from app.models import db
from app.models.audit import write_audit
from app.models.project import (
    DELAY_REASONS,
    PHASE_TRANSITIONS,
    TERMINAL_PHASE_STATUSES,
    Phase,
    validate_phase_transition,
)
from app.models.work_log import WorkLog
from app.services.helpers.lookups import get_project, lock_phase
from app.services.helpers.transaction import commit_or_rollback
from app.services.notifier import deliver
from app.services.progress_service import recompute_phase_progress
from app.utils.helpers import parse_date, to_decimal

logger = logging.getLogger(__name__)

DEFAULT_EARLY_ACCESS_NOTE = "Early access granted for trusted client"

# Statuses from which a phase may still be delayed
DELAYABLE_STATUSES = ("not_started", "ready", "in_progress", "submitted")


def _expected_from(new_status):
    return [s for s, targets in PHASE_TRANSITIONS.items() if new_status in targets]


def _phase_audit(phase, action, principal, *, note=None, diff=None):
    write_audit(
        entity_type="phase",
        entity_id=phase.id,
        action=action,
        project_id=phase.project_id,
        actor_user_id=principal.user_id if principal else None,
        note=note,
        diff=diff,
    )


def _unlock_next(phase: Phase) -> Phase | None:
    """Move the following phase from ``not_started`` to ``ready`` (system action)."""
    nxt = db.session.execute(
        select(Phase)
        .where(Phase.project_id == phase.project_id, Phase.phase_order == phase.phase_order + 1)
        .with_for_update()
    ).scalar_one_or_none()
    if nxt is None or nxt.status != "not_started":
        return None
    nxt.status = "ready"
    _phase_audit(
        nxt, "phase.unlock", None,
        note=f"Unlocked after '{phase.name}' reached {phase.status}",
        diff={"status": {"old": "not_started", "new": "ready"}},
    )
    return nxt


def _transition(phase_id, new_status, principal, *, action, note=None, today=None, notifier=None):
    ensure_supervisor(principal, f"{action} a phase")
    phase = lock_phase(phase_id)
    old = phase.status
    if not validate_phase_transition(old, new_status):
        raise InvalidTransitionError(action, old, _expected_from(new_status))

    diff = {"status": {"old": old, "new": new_status}}
    today = today or date.today()
    phase.status = new_status
    if new_status == "in_progress":
        if phase.actual_start_date is None:
            phase.actual_start_date = today
        if phase.early_access_status == "accessible":
            phase.early_access_status = "in_progress"
            diff["early_access_status"] = {"old": "accessible", "new": "in_progress"}
    elif new_status == "submitted":
        phase.submitted_date = today
    elif new_status == "approved":
        phase.approved_date = today
        phase.actual_end_date = today
    elif new_status == "completed" and phase.actual_end_date is None:
        phase.actual_end_date = today

    unlocked = None
    if new_status in TERMINAL_PHASE_STATUSES:
        unlocked = _unlock_next(phase)

    _phase_audit(phase, f"phase.{action}", principal, note=note, diff=diff)
    commit_or_rollback()
    logger.info("Phase %s: %s → %s by user_id=%s", phase.id, old, new_status, principal.user_id)

    deliver(notifier, "phase_status_changed", project_id=phase.project_id,
            phase=phase.to_dict(), message=f"{phase.name}: {old} → {new_status}")
    if unlocked is not None:
        deliver(notifier, "phase_status_changed", project_id=phase.project_id,
                phase=unlocked.to_dict(), message=f"{unlocked.name} is ready to start")
    return phase


# ── Primary lifecycle ────────────────────────────────────────────────────────


def start_phase(phase_id: int, principal: Principal, *, note=None, today=None, notifier=None) -> Phase:
    """
    Start work on a phase.

    A ``ready`` phase moves to ``in_progress``. A ``not_started`` phase with an
    ``accessible`` early-access grant takes the early-access path instead.
    """
    ensure_supervisor(principal, "start a phase")
    phase = lock_phase(phase_id)
    if phase.status == "not_started" and phase.early_access_status == "accessible":
        return start_with_early_access(phase_id, principal, note=note, today=today, notifier=notifier)
    return _transition(phase_id, "in_progress", principal, action="start",
                       note=note, today=today, notifier=notifier)


def submit_phase(phase_id: int, principal: Principal, *, note=None, today=None, notifier=None) -> Phase:
    return _transition(phase_id, "submitted", principal, action="submit",
                       note=note, today=today, notifier=notifier)


def approve_phase(phase_id: int, principal: Principal, *, note=None, today=None, notifier=None) -> Phase:
    """Approve a submitted phase and unlock the next one."""
    return _transition(phase_id, "approved", principal, action="approve",
                       note=note, today=today, notifier=notifier)


def complete_phase(phase_id: int, principal: Principal, *, note=None, today=None, notifier=None) -> Phase:
    return _transition(phase_id, "completed", principal, action="complete",
                       note=note, today=today, notifier=notifier)


# ── Early access ─────────────────────────────────────────────────────────────


def grant_early_access(phase_id: int, principal: Principal, note: str | None = None, *, notifier=None) -> Phase:
    """Allow a ``not_started`` phase to start before it becomes ``ready``."""
    ensure_supervisor(principal, "grant early access")
    phase = lock_phase(phase_id)
    if phase.status != "not_started":
        raise EarlyAccessStateError("grant_early_access", phase.status, "not_started")
    if phase.early_access_status != "not_accessible":
        raise EarlyAccessStateError(
            "grant_early_access", phase.early_access_status, "not_accessible",
            reason="early access already granted",
        )

    phase.early_access_granted = True
    phase.early_access_status = "accessible"
    phase.early_access_granted_by = principal.user_id
    phase.early_access_granted_at = datetime.now(timezone.utc)
    phase.early_access_note = (note or "").strip() or DEFAULT_EARLY_ACCESS_NOTE
    _phase_audit(phase, "phase.early_access_grant", principal, note=phase.early_access_note,
                 diff={"early_access_status": {"old": "not_accessible", "new": "accessible"}})
    commit_or_rollback()
    logger.info("Early access granted on phase_id=%s by user_id=%s", phase.id, principal.user_id)

    deliver(notifier, "early_access_granted", project_id=phase.project_id,
            phase=phase.to_dict(), message=f"Early access granted for {phase.name}")
    return phase


def start_with_early_access(phase_id: int, principal: Principal, *, note=None, today=None,
                            notifier=None) -> Phase:
    """Start an ``accessible`` phase: both statuses become ``in_progress``."""
    ensure_supervisor(principal, "start a phase with early access")
    phase = lock_phase(phase_id)
    if phase.early_access_status != "accessible":
        raise EarlyAccessStateError("start_with_early_access", phase.early_access_status, "accessible")
    if phase.status != "not_started":
        raise EarlyAccessStateError(
            "start_with_early_access", phase.status, "not_started",
            reason="phase already left its initial status",
        )

    old = phase.status
    phase.early_access_status = "in_progress"
    phase.status = "in_progress"
    phase.actual_start_date = today or date.today()
    _phase_audit(phase, "phase.early_access_start", principal, note=note, diff={
        "status": {"old": old, "new": "in_progress"},
        "early_access_status": {"old": "accessible", "new": "in_progress"},
    })
    commit_or_rollback()
    logger.info("Phase %s started via early access by user_id=%s", phase.id, principal.user_id)

    deliver(notifier, "early_access_phase_started", project_id=phase.project_id,
            phase=phase.to_dict(), message=f"{phase.name} started with early access")
    return phase


def revoke_early_access(phase_id: int, principal: Principal, *, notifier=None) -> Phase:
    """Withdraw an unused grant and clear its metadata."""
    ensure_supervisor(principal, "revoke early access")
    phase = lock_phase(phase_id)
    if phase.early_access_status != "accessible":
        raise EarlyAccessStateError(
            "revoke_early_access", phase.early_access_status, "accessible",
            reason="only an unused grant can be revoked",
        )
    if phase.status != "not_started":
        raise EarlyAccessStateError(
            "revoke_early_access", phase.status, "not_started",
            reason="phase has already been started",
        )
    logged = db.session.execute(
        select(func.count(WorkLog.id)).where(WorkLog.phase_id == phase.id, WorkLog.active_clause())
    ).scalar()
    if logged:
        raise PreconditionError(
            "Cannot revoke early access: work has already been logged on this phase",
            details={"early_access_status": phase.early_access_status, "work_logs": logged},
        )

    phase.early_access_granted = False
    phase.early_access_status = "not_accessible"
    phase.early_access_granted_by = None
    phase.early_access_granted_at = None
    phase.early_access_note = None
    _phase_audit(phase, "phase.early_access_revoke", principal,
                 diff={"early_access_status": {"old": "accessible", "new": "not_accessible"}})
    commit_or_rollback()
    logger.info("Early access revoked on phase_id=%s by user_id=%s", phase.id, principal.user_id)

    deliver(notifier, "early_access_revoked", project_id=phase.project_id,
            phase=phase.to_dict(), message=f"Early access revoked for {phase.name}")
    return phase


def early_access_overview(project_id: int) -> dict:
    project = get_project(project_id)
    rows = [
        {
            "phase_id": p.id,
            "phase_order": p.phase_order,
            "name": p.name,
            "status": p.status,
            "early_access_granted": p.early_access_granted,
            "early_access_status": p.early_access_status,
            "early_access_granted_by": p.early_access_granted_by,
            "early_access_granted_at": p.early_access_granted_at.isoformat() if p.early_access_granted_at else None,
            "early_access_note": p.early_access_note,
            "can_grant": p.status == "not_started" and p.early_access_status == "not_accessible",
        }
        for p in project.phases
    ]
    return {
        "project_id": project.id,
        "phases": rows,
        "granted": sum(1 for r in rows if r["early_access_granted"]),
        "accessible": sum(1 for r in rows if r["early_access_status"] == "accessible"),
        "in_progress": sum(1 for r in rows if r["early_access_status"] == "in_progress"),
    }


# ── Delay & warning flag ─────────────────────────────────────────────────────


def mark_phase_delayed(
    phase_id: int,
    principal: Principal,
    delay_reason: str,
    *,
    new_end_date=None,
    additional_weeks=None,
    note: str | None = None,
) -> Phase:
    """
    Record a delay, raise the warning flag and optionally move the end date.

    A ``client`` delay pushes every later phase of the project by the same
    number of days; a ``company`` delay moves only this phase.
    """
    ensure_supervisor(principal, "mark a phase delayed")
    if delay_reason not in DELAY_REASONS or delay_reason == "none":
        raise ValidationError(
            "delay_reason must be 'client' or 'company'",
            details={"field": "delay_reason", "allowed": ["client", "company"]},
        )
    end = None
    if new_end_date not in (None, ""):
        end = parse_date(new_end_date)
        if end is None:
            raise ValidationError("new_end_date must be an ISO date", details={"field": "new_end_date"})

    phase = lock_phase(phase_id)
    if phase.status not in DELAYABLE_STATUSES:
        raise InvalidTransitionError("mark_delayed", phase.status, list(DELAYABLE_STATUSES))

    if end is None and additional_weeks not in (None, ""):
        weeks = to_decimal(additional_weeks, "additional_weeks")
        if weeks <= 0 or weeks != weeks.to_integral_value():
            raise ValidationError("additional_weeks must be a positive whole number",
                                  details={"field": "additional_weeks"})
        if phase.planned_end_date is None:
            raise PreconditionError("Phase has no planned end date to extend",
                                    details={"field": "planned_end_date"})
        end = phase.planned_end_date + timedelta(weeks=int(weeks))
    if end is not None and phase.planned_start_date and end < phase.planned_start_date:
        raise ValidationError("new_end_date cannot precede the planned start date",
                              details={"field": "new_end_date"})

    old_end = phase.planned_end_date
    shift_days = (end - old_end).days if (end and old_end) else 0

    diff = {"delay_reason": {"old": phase.delay_reason, "new": delay_reason},
            "warning_flag": {"old": phase.warning_flag, "new": True}}
    phase.delay_reason = delay_reason
    phase.warning_flag = True
    if end is not None:
        phase.planned_end_date = end
        diff["planned_end_date"] = {"old": old_end.isoformat() if old_end else None, "new": end.isoformat()}

    shifted = 0
    if delay_reason == "client" and shift_days > 0:
        later = db.session.execute(
            select(Phase)
            .where(Phase.project_id == phase.project_id, Phase.phase_order > phase.phase_order)
            .order_by(Phase.phase_order)
            .with_for_update()
        ).scalars().all()
        for p in later:
            if p.planned_start_date:
                p.planned_start_date += timedelta(days=shift_days)
            if p.planned_end_date:
                p.planned_end_date += timedelta(days=shift_days)
            shifted += 1
        diff["shifted_phases"] = shifted
        diff["shift_days"] = shift_days

    _phase_audit(phase, "phase.delay", principal, note=note, diff=diff)
    commit_or_rollback()
    logger.info("Phase %s delayed (%s) by %s days, %s later phase(s) shifted",
                phase.id, delay_reason, shift_days, shifted)
    return phase


def set_warning_flag(phase_id: int, principal: Principal, flag: bool, note: str | None = None) -> Phase:
    ensure_supervisor(principal, "change the warning flag")
    phase = lock_phase(phase_id)
    flag = bool(flag)
    if phase.warning_flag == flag:
        return phase
    phase.warning_flag = flag
    _phase_audit(phase, "phase.warning_add" if flag else "phase.warning_remove", principal,
                 note=note, diff={"warning_flag": {"old": not flag, "new": flag}})
    commit_or_rollback()
    logger.info("Phase %s warning_flag=%s", phase.id, flag)
    return phase


# ── Plan ─────────────────────────────────────────────────────────────────────


def update_phase_plan(
    phase_id: int,
    principal: Principal,
    *,
    predicted_hours=None,
    planned_start_date=None,
    planned_end_date=None,
    planned_weeks=None,
) -> Phase:
    """Change the hours budget or schedule; a new budget recomputes progress."""
    ensure_supervisor(principal, "update a phase plan")
    predicted = None
    if predicted_hours is not None:
        predicted = to_decimal(predicted_hours, "predicted_hours")
        if predicted < 0:
            raise ValidationError("predicted_hours must not be negative", details={"field": "predicted_hours"})
    start = parse_date(planned_start_date) if planned_start_date else None
    end = parse_date(planned_end_date) if planned_end_date else None
    if planned_start_date and start is None:
        raise ValidationError("planned_start_date must be an ISO date", details={"field": "planned_start_date"})
    if planned_end_date and end is None:
        raise ValidationError("planned_end_date must be an ISO date", details={"field": "planned_end_date"})
    weeks = None
    if planned_weeks is not None:
        weeks = to_decimal(planned_weeks, "planned_weeks")
        if weeks < 1 or weeks != weeks.to_integral_value():
            raise ValidationError("planned_weeks must be a whole number ≥ 1", details={"field": "planned_weeks"})

    phase = lock_phase(phase_id)
    new_start = start or phase.planned_start_date
    new_end = end or phase.planned_end_date
    if new_start and new_end and new_end < new_start:
        raise ValidationError("planned_end_date cannot precede planned_start_date",
                              details={"field": "planned_end_date"})

    diff = {}
    if predicted is not None and predicted != Decimal(phase.predicted_hours or 0):
        diff["predicted_hours"] = {"old": str(phase.predicted_hours), "new": str(predicted)}
        phase.predicted_hours = predicted
    if start is not None:
        diff["planned_start_date"] = start.isoformat()
        phase.planned_start_date = start
    if end is not None:
        diff["planned_end_date"] = end.isoformat()
        phase.planned_end_date = end
    if weeks is not None:
        diff["planned_weeks"] = int(weeks)
        phase.planned_weeks = int(weeks)

    db.session.flush()
    if "predicted_hours" in diff:
        recompute_phase_progress(phase)
    _phase_audit(phase, "phase.plan_update", principal, diff=diff)
    commit_or_rollback()
    logger.info("Phase %s plan updated: %s", phase.id, sorted(diff))
    return phase
