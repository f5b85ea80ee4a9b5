"""
Progress Reconciliation Service.

Combines hours-based progress with supervisor overrides:

    actual(phase, engineer) = latest override for (phase, engineer)
                              else calculated_progress(hours, predicted)

Overrides are append-only ``ProgressAdjustment`` rows; "latest" is creation
order (primary key), never the date of the underlying work log. An override
is sticky: new hours move the calculated figure but leave the actual figure
alone until the next adjustment.

Phase aggregate (written only by ``recompute_phase_progress``):
    actual_hours        = Σ active work-log hours on the phase
    calculated_progress = calculated_progress(actual_hours, predicted_hours)
    actual_progress     = newest phase-overall override when it is newer than
                          every per-engineer override, otherwise
                          calculated_progress + Σ per-engineer drift, clamped
    progress_variance   = actual_progress - calculated_progress

The aggregate is re-derived from the ledger tables on every call, so running
it twice is harmless and a failed write is repaired by the next one.
"""

import logging
from decimal import Decimal

from sqlalchemy import func, select

from app.auth import Principal, ensure_supervisor
from app.core.exceptions import PreconditionError, ValidationError
from app.models import db
from app.models.auth import User
from app.models.progress import ProgressAdjustment
from app.models.project import Phase
from app.models.work_log import WorkLog
from app.services.helpers.lookups import (
    get_engineer,
    get_or_raise,
    get_phase,
    get_project,
    lock_phase,
)
from app.services.helpers.transaction import commit_or_rollback
from app.services.progress_calculator import (
    HUNDRED,
    calculated_progress,
    clamp_percentage,
    variance,
)
from app.utils.helpers import ZERO, decimal_str, quantize, to_decimal

logger = logging.getLogger(__name__)

# Phases whose |variance| exceeds this count as ahead of / behind schedule
VARIANCE_ALERT_POINTS = Decimal("10")


# ── Ledger reads ─────────────────────────────────────────────────────────────


def _hours_stmt(phase_id, engineer_id=None):
    stmt = select(func.coalesce(func.sum(WorkLog.hours), 0)).where(
        WorkLog.phase_id == phase_id, WorkLog.active_clause(),
    )
    if engineer_id is not None:
        stmt = stmt.where(WorkLog.engineer_id == engineer_id)
    return stmt


def engineer_hours(phase_id: int, engineer_id: int) -> Decimal:
    """Σ active work-log hours for one engineer on one phase."""
    return quantize(Decimal(str(db.session.execute(_hours_stmt(phase_id, engineer_id)).scalar())))


def phase_hours(phase_id: int) -> Decimal:
    """Σ active work-log hours on a phase, all engineers."""
    return quantize(Decimal(str(db.session.execute(_hours_stmt(phase_id)).scalar())))


def _active_log_count(phase_id, engineer_id=None) -> int:
    stmt = select(func.count(WorkLog.id)).where(WorkLog.phase_id == phase_id, WorkLog.active_clause())
    if engineer_id is not None:
        stmt = stmt.where(WorkLog.engineer_id == engineer_id)
    return db.session.execute(stmt).scalar() or 0


def latest_adjustment(phase_id: int, engineer_id: int | None) -> ProgressAdjustment | None:
    """Newest adjustment for (phase, engineer); ``None`` engineer = phase-overall."""
    stmt = select(ProgressAdjustment).where(ProgressAdjustment.phase_id == phase_id)
    if engineer_id is None:
        stmt = stmt.where(ProgressAdjustment.engineer_id.is_(None))
    else:
        stmt = stmt.where(ProgressAdjustment.engineer_id == engineer_id)
    return db.session.execute(stmt.order_by(ProgressAdjustment.id.desc()).limit(1)).scalar_one_or_none()


def _engineer_figures(phase: Phase, engineer_id: int) -> dict:
    hours = engineer_hours(phase.id, engineer_id)
    calc = calculated_progress(hours, phase.predicted_hours)
    override = latest_adjustment(phase.id, engineer_id)
    actual = quantize(override.manual_progress_percentage) if override else calc
    return {
        "hours_logged": hours,
        "calculated_progress": calc,
        "actual_progress": actual,
        "variance": variance(actual, calc),
        "override": override,
    }


def actual_progress(phase_id: int, engineer_id: int) -> Decimal:
    """Reconciled progress for one engineer on one phase."""
    phase = get_phase(phase_id)
    get_engineer(engineer_id)
    return _engineer_figures(phase, engineer_id)["actual_progress"]


# ── Phase aggregate ──────────────────────────────────────────────────────────


def recompute_phase_progress(phase: Phase) -> Phase:
    """Re-derive every progress aggregate on *phase* from the ledger tables.

    Callers hold the phase row lock (``lock_phase``) and own the commit.
    """
    total = phase_hours(phase.id)
    calc = calculated_progress(total, phase.predicted_hours)

    overall = latest_adjustment(phase.id, None)
    newest_engineer_adj = db.session.execute(
        select(func.max(ProgressAdjustment.id)).where(
            ProgressAdjustment.phase_id == phase.id,
            ProgressAdjustment.engineer_id.isnot(None),
        )
    ).scalar()

    if overall is not None and (newest_engineer_adj is None or overall.id > newest_engineer_adj):
        actual = clamp_percentage(overall.manual_progress_percentage)
    else:
        overridden = db.session.execute(
            select(ProgressAdjustment.engineer_id)
            .where(ProgressAdjustment.phase_id == phase.id, ProgressAdjustment.engineer_id.isnot(None))
            .distinct()
        ).scalars().all()
        drift = sum((_engineer_figures(phase, eid)["variance"] for eid in overridden), ZERO)
        actual = clamp_percentage(calc + drift)

    phase.actual_hours = total
    phase.calculated_progress = calc
    phase.actual_progress = actual
    phase.progress_variance = variance(actual, calc)
    db.session.flush()
    return phase


# ── Overrides ────────────────────────────────────────────────────────────────


def _validate_override(percentage, reason) -> tuple[Decimal, str]:
    pct = to_decimal(percentage, "percentage")
    if pct < 0 or pct > HUNDRED:
        raise ValidationError(
            "percentage must be between 0 and 100",
            details={"field": "percentage", "value": str(percentage)},
        )
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("reason is required", details={"field": "reason"})
    return quantize(pct), reason


def _append_adjustment(phase, *, engineer_id, work_log_id, adjustment_type, hours, pct, reason, principal):
    adj = ProgressAdjustment(
        phase_id=phase.id,
        engineer_id=engineer_id,
        work_log_id=work_log_id,
        adjustment_type=adjustment_type,
        hours_logged=hours,
        hours_based_progress=calculated_progress(hours, phase.predicted_hours),
        manual_progress_percentage=pct,
        adjustment_reason=reason,
        adjusted_by=principal.user_id,
    )
    db.session.add(adj)
    db.session.flush()
    recompute_phase_progress(phase)
    return adj


def set_engineer_progress(
    phase_id: int,
    engineer_id: int,
    percentage,
    reason: str,
    principal: Principal,
) -> dict:
    """
    Record a supervisor's manual progress figure for one engineer.

    Checks, in order: supervisor authority, percentage in [0, 100], non-empty
    reason, phase exists, engineer exists, engineer has at least one active
    work log on the phase. Nothing is written unless all pass.

    Returns:
        The engineer's breakdown after the override.
    """
    ensure_supervisor(principal, "set engineer progress")
    pct, reason = _validate_override(percentage, reason)
    get_phase(phase_id)
    get_engineer(engineer_id)

    phase = lock_phase(phase_id)
    if _active_log_count(phase_id, engineer_id) == 0:
        raise PreconditionError(
            "Cannot set progress for an engineer with no logged work on this phase",
            details={"field": "engineer_id", "hours_logged": "0.00"},
        )
    adj = _append_adjustment(
        phase,
        engineer_id=engineer_id,
        work_log_id=None,
        adjustment_type="phase_engineer",
        hours=engineer_hours(phase_id, engineer_id),
        pct=pct,
        reason=reason,
        principal=principal,
    )
    commit_or_rollback()
    logger.info(
        "Progress override phase_id=%s engineer_id=%s %s%% (calculated %s%%) by user_id=%s",
        phase_id, engineer_id, pct, adj.hours_based_progress, principal.user_id,
    )
    return breakdown(phase_id, engineer_id)


def set_work_log_progress(work_log_id: int, percentage, reason: str, principal: Principal) -> dict:
    """Override anchored to a specific work log; applies to the log's engineer."""
    ensure_supervisor(principal, "set work log progress")
    pct, reason = _validate_override(percentage, reason)
    log = get_or_raise(WorkLog, work_log_id, "Work log", active_only=True)

    phase = lock_phase(log.phase_id)
    _append_adjustment(
        phase,
        engineer_id=log.engineer_id,
        work_log_id=log.id,
        adjustment_type="work_log_entry",
        hours=quantize(log.hours),
        pct=pct,
        reason=reason,
        principal=principal,
    )
    commit_or_rollback()
    logger.info("Progress override via work_log_id=%s phase_id=%s %s%%", work_log_id, phase.id, pct)
    return breakdown(phase.id, log.engineer_id)


def set_phase_overall_progress(phase_id: int, percentage, reason: str, principal: Principal) -> dict:
    """
    Override the phase figure as a whole (``engineer_id`` NULL).

    Requires at least one active work log on the phase from any engineer.
    """
    ensure_supervisor(principal, "set phase progress")
    pct, reason = _validate_override(percentage, reason)
    phase = lock_phase(phase_id)
    if _active_log_count(phase_id) == 0:
        raise PreconditionError(
            "Cannot set progress on a phase with no logged work",
            details={"field": "phase_id", "hours_logged": "0.00"},
        )
    _append_adjustment(
        phase,
        engineer_id=None,
        work_log_id=None,
        adjustment_type="phase_overall",
        hours=phase_hours(phase_id),
        pct=pct,
        reason=reason,
        principal=principal,
    )
    commit_or_rollback()
    logger.info("Phase-overall progress override phase_id=%s %s%%", phase_id, pct)
    return phase_detail(phase_id)


# ── Read models ──────────────────────────────────────────────────────────────


class AdjustmentHistory:
    """
    Lazy, restartable sequence of adjustments, newest first.

    Nothing is queried until iteration starts, and every ``iter()`` re-runs
    the query, so the sequence can be walked any number of times.
    """

    def __init__(self, phase_id: int, engineer_id: int | None = None):
        self.phase_id = phase_id
        self.engineer_id = engineer_id

    def _statement(self):
        stmt = select(ProgressAdjustment).where(ProgressAdjustment.phase_id == self.phase_id)
        if self.engineer_id is not None:
            stmt = stmt.where(ProgressAdjustment.engineer_id == self.engineer_id)
        return stmt.order_by(ProgressAdjustment.id.desc())

    def __iter__(self):
        return iter(db.session.execute(self._statement()).scalars().all())

    def count(self) -> int:
        return db.session.execute(
            select(func.count()).select_from(self._statement().order_by(None).subquery())
        ).scalar()

    def __repr__(self):
        return f"<AdjustmentHistory phase={self.phase_id} engineer={self.engineer_id}>"


def history(phase_id: int, engineer_id: int | None = None) -> AdjustmentHistory:
    get_phase(phase_id)
    if engineer_id is not None:
        get_engineer(engineer_id)
    return AdjustmentHistory(phase_id, engineer_id)


def breakdown(phase_id: int, engineer_id: int) -> dict:
    """Hours, calculated vs actual progress and full adjustment trail for one engineer."""
    phase = get_phase(phase_id)
    engineer = get_engineer(engineer_id)
    figures = _engineer_figures(phase, engineer_id)
    adjustments = [a.to_dict() for a in AdjustmentHistory(phase_id, engineer_id)]
    return {
        "phase_id": phase.id,
        "phase_name": phase.name,
        "engineer_id": engineer.id,
        "engineer_name": engineer.name,
        "hours_logged": decimal_str(figures["hours_logged"]),
        "predicted_hours": decimal_str(phase.predicted_hours),
        "calculated_progress": decimal_str(figures["calculated_progress"]),
        "actual_progress": decimal_str(figures["actual_progress"]),
        "variance": decimal_str(figures["variance"]),
        "has_override": figures["override"] is not None,
        "adjustment_count": len(adjustments),
        "adjustments": adjustments,
    }


def phase_summary(phase_id: int) -> list[dict]:
    """One row per engineer with active work logs or overrides on the phase."""
    phase = get_phase(phase_id)
    logged = set(db.session.execute(
        select(WorkLog.engineer_id).where(WorkLog.phase_id == phase_id, WorkLog.active_clause()).distinct()
    ).scalars())
    adjusted = set(db.session.execute(
        select(ProgressAdjustment.engineer_id)
        .where(ProgressAdjustment.phase_id == phase_id, ProgressAdjustment.engineer_id.isnot(None))
        .distinct()
    ).scalars())
    engineer_ids = sorted(logged | adjusted)
    users = {u.id: u for u in User.query.filter(User.id.in_(engineer_ids)).all()} if engineer_ids else {}

    rows = []
    for eid in engineer_ids:
        f = _engineer_figures(phase, eid)
        override = f["override"]
        rows.append({
            "engineer_id": eid,
            "engineer_name": users[eid].name if eid in users else None,
            "job_description": users[eid].job_description if eid in users else None,
            "hours_logged": decimal_str(f["hours_logged"]),
            "calculated_progress": decimal_str(f["calculated_progress"]),
            "actual_progress": decimal_str(f["actual_progress"]),
            "variance": decimal_str(f["variance"]),
            "adjustment_count": AdjustmentHistory(phase_id, eid).count(),
            "last_adjustment_at": override.created_at.isoformat() if override else None,
            "last_adjusted_by": override.adjuster.name if override and override.adjuster else None,
        })
    return rows


def phase_detail(phase_id: int) -> dict:
    phase = get_phase(phase_id)
    overall = latest_adjustment(phase_id, None)
    engineers = phase_summary(phase_id)
    return {
        "phase": phase.to_dict(),
        "engineer_count": len(engineers),
        "engineers": engineers,
        "phase_override": overall.to_dict() if overall else None,
    }


def project_progress_stats(project_id: int) -> dict:
    """Averages across a project's phases plus phases drifting > 10 points."""
    project = get_project(project_id)
    phases = project.phases
    count = len(phases)

    def _avg(attr):
        if not count:
            return ZERO
        return quantize(sum((Decimal(getattr(p, attr) or 0) for p in phases), ZERO) / count)

    ahead = [p for p in phases if Decimal(p.progress_variance or 0) > VARIANCE_ALERT_POINTS]
    behind = [p for p in phases if Decimal(p.progress_variance or 0) < -VARIANCE_ALERT_POINTS]
    return {
        "project_id": project.id,
        "total_phases": count,
        "avg_calculated_progress": decimal_str(_avg("calculated_progress")),
        "avg_actual_progress": decimal_str(_avg("actual_progress")),
        "avg_variance": decimal_str(_avg("progress_variance")),
        "total_hours_logged": decimal_str(sum((Decimal(p.actual_hours or 0) for p in phases), ZERO)),
        "total_predicted_hours": decimal_str(sum((Decimal(p.predicted_hours or 0) for p in phases), ZERO)),
        "phases_ahead": len(ahead),
        "phases_behind": len(behind),
        "phases_with_overrides": sum(1 for p in phases if p.adjustments.count()),
    }


def preview_progress(hours, predicted_hours) -> dict:
    """What-if calculator; touches nothing."""
    hours = to_decimal(hours, "hours")
    predicted = to_decimal(predicted_hours, "predicted_hours")
    if hours < 0:
        raise ValidationError("hours must not be negative", details={"field": "hours"})
    if predicted < 0:
        raise ValidationError("predicted_hours must not be negative", details={"field": "predicted_hours"})
    return {
        "hours": decimal_str(hours),
        "predicted_hours": decimal_str(predicted),
        "calculated_progress": decimal_str(calculated_progress(hours, predicted)),
    }
