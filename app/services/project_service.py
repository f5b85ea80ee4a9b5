"""
Project Service — create, read and delete projects with their phases.

A project is created together with its ordered phases in one transaction.
Without an explicit phase list the six default phases are used. Planned
dates are chained: each phase starts where the previous one ends and lasts
``planned_weeks`` weeks. Phase 1 starts ``ready``, the rest ``not_started``.
"""

import logging
from datetime import date, timedelta
from decimal import Decimal

from app.auth import Principal, ensure_supervisor
from app.core.exceptions import ValidationError
from app.models import db
from app.models.audit import write_audit
from app.models.project import DEFAULT_PHASES, Phase, Project
from app.services.helpers.lookups import get_project as _get_project
from app.services.helpers.transaction import commit_or_rollback
from app.utils.helpers import parse_date, to_decimal

logger = logging.getLogger(__name__)


def _validate_phase_specs(phases) -> list[dict]:
    specs = []
    for idx, raw in enumerate(phases, start=1):
        name = (raw.get("name") or "").strip()
        if not name:
            raise ValidationError(f"phases[{idx}].name is required", details={"field": f"phases[{idx}].name"})
        try:
            weeks = int(raw.get("planned_weeks", 1))
        except (TypeError, ValueError):
            weeks = 0
        if weeks < 1:
            raise ValidationError(
                f"phases[{idx}].planned_weeks must be a whole number ≥ 1",
                details={"field": f"phases[{idx}].planned_weeks"},
            )
        predicted = raw.get("predicted_hours")
        predicted = to_decimal(predicted, f"phases[{idx}].predicted_hours") if predicted not in (None, "") else Decimal("0")
        if predicted < 0:
            raise ValidationError(
                f"phases[{idx}].predicted_hours must not be negative",
                details={"field": f"phases[{idx}].predicted_hours"},
            )
        specs.append({
            "name": name,
            "planned_weeks": weeks,
            "predicted_hours": predicted,
            "is_custom": bool(raw.get("is_custom", False)),
        })
    return specs


def create_project(
    name: str,
    principal: Principal,
    *,
    start_date=None,
    client_name: str | None = None,
    location: str | None = None,
    phases: list[dict] | None = None,
) -> Project:
    """
    Create a project and its phases.

    Args:
        phases: ``[{"name", "planned_weeks", "predicted_hours", "is_custom"}, ...]``
            in execution order. ``None`` or empty → ``DEFAULT_PHASES``.
    """
    ensure_supervisor(principal, "create projects")
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required", details={"field": "name"})
    start = parse_date(start_date) if start_date else date.today()
    if start is None:
        raise ValidationError("start_date must be an ISO date", details={"field": "start_date"})
    specs = _validate_phase_specs(phases or DEFAULT_PHASES)

    project = Project(
        name=name,
        client_name=client_name,
        location=location,
        start_date=start,
        created_by=principal.user_id,
    )
    db.session.add(project)
    db.session.flush()

    cursor = start
    for order, spec in enumerate(specs, start=1):
        end = cursor + timedelta(weeks=spec["planned_weeks"])
        db.session.add(Phase(
            project_id=project.id,
            phase_order=order,
            name=spec["name"],
            is_custom=spec["is_custom"],
            planned_weeks=spec["planned_weeks"],
            planned_start_date=cursor,
            planned_end_date=end,
            predicted_hours=spec["predicted_hours"],
            status="ready" if order == 1 else "not_started",
        ))
        cursor = end

    write_audit(
        entity_type="project",
        entity_id=project.id,
        action="create",
        project_id=project.id,
        actor_user_id=principal.user_id,
        note=f"Project created with {len(specs)} phases",
    )
    commit_or_rollback()
    logger.info("Project %s '%s' created with %d phases by user_id=%s",
                project.id, project.name, len(specs), principal.user_id)
    return project


def get_project(project_id: int) -> Project:
    return _get_project(project_id)


def delete_project(project_id: int, principal: Principal) -> None:
    """Hard-delete a project; phases and every ledger row go with it."""
    ensure_supervisor(principal, "delete projects")
    project = _get_project(project_id)
    name = project.name
    db.session.delete(project)
    commit_or_rollback()
    logger.info("Project %s '%s' deleted by user_id=%s", project_id, name, principal.user_id)
