"""
Phases Blueprint — lifecycle, early access, delay and plan.

Endpoints:
    GET    /api/v1/phases/<id>                      — phase detail
    PUT    /api/v1/phases/<id>                      — update plan (hours budget, dates)
    POST   /api/v1/phases/<id>/start                — ready → in_progress (or early-access start)
    POST   /api/v1/phases/<id>/submit               — in_progress → submitted
    POST   /api/v1/phases/<id>/approve              — submitted → approved (unlocks next)
    POST   /api/v1/phases/<id>/complete             — → completed
    POST   /api/v1/phases/<id>/delay                — mark delayed (client | company)
    POST   /api/v1/phases/<id>/warning              — set / clear warning flag
    POST   /api/v1/phases/<id>/early-access         — grant early access
    DELETE /api/v1/phases/<id>/early-access         — revoke early access
    POST   /api/v1/phases/<id>/early-access/start   — start via early access

All mutations require supervisor or administrator.
"""

import logging

from flask import Blueprint, jsonify

from app.auth import ADMINISTRATOR, SUPERVISOR, current_principal, require_role
from app.blueprints import json_body, register_error_handlers
from app.services import phase_lifecycle
from app.services.helpers.lookups import get_phase
from app.services.notifier import current_notifier

logger = logging.getLogger(__name__)

phases_bp = Blueprint("phases", __name__, url_prefix="/api/v1")
register_error_handlers(phases_bp)

_TRANSITIONS = {
    "start": phase_lifecycle.start_phase,
    "submit": phase_lifecycle.submit_phase,
    "approve": phase_lifecycle.approve_phase,
    "complete": phase_lifecycle.complete_phase,
}


@phases_bp.route("/phases/<int:phase_id>", methods=["GET"])
@require_role()
def get(phase_id):
    return jsonify(get_phase(phase_id).to_dict())


@phases_bp.route("/phases/<int:phase_id>", methods=["PUT"])
@require_role(SUPERVISOR, ADMINISTRATOR)
def update_plan(phase_id):
    """Body: {predicted_hours?, planned_start_date?, planned_end_date?, planned_weeks?}"""
    data = json_body()
    phase = phase_lifecycle.update_phase_plan(
        phase_id,
        current_principal(),
        predicted_hours=data.get("predicted_hours"),
        planned_start_date=data.get("planned_start_date"),
        planned_end_date=data.get("planned_end_date"),
        planned_weeks=data.get("planned_weeks"),
    )
    return jsonify(phase.to_dict())


@phases_bp.route("/phases/<int:phase_id>/<any(start, submit, approve, complete):action>", methods=["POST"])
@require_role(SUPERVISOR, ADMINISTRATOR)
def transition(phase_id, action):
    """Body: {note?}"""
    data = json_body()
    phase = _TRANSITIONS[action](
        phase_id, current_principal(), note=data.get("note"), notifier=current_notifier(),
    )
    return jsonify(phase.to_dict())


@phases_bp.route("/phases/<int:phase_id>/delay", methods=["POST"])
@require_role(SUPERVISOR, ADMINISTRATOR)
def mark_delayed(phase_id):
    """Body: {delay_reason: client|company, new_end_date? | additional_weeks?, note?}"""
    data = json_body()
    phase = phase_lifecycle.mark_phase_delayed(
        phase_id,
        current_principal(),
        data.get("delay_reason"),
        new_end_date=data.get("new_end_date"),
        additional_weeks=data.get("additional_weeks"),
        note=data.get("note"),
    )
    return jsonify(phase.to_dict())


@phases_bp.route("/phases/<int:phase_id>/warning", methods=["POST"])
@require_role(SUPERVISOR, ADMINISTRATOR)
def warning_flag(phase_id):
    """Body: {warning_flag: bool, note?}"""
    data = json_body()
    phase = phase_lifecycle.set_warning_flag(
        phase_id, current_principal(), bool(data.get("warning_flag", True)), note=data.get("note"),
    )
    return jsonify(phase.to_dict())


@phases_bp.route("/phases/<int:phase_id>/early-access", methods=["POST"])
@require_role(SUPERVISOR, ADMINISTRATOR)
def grant_early_access(phase_id):
    """Body: {note?}"""
    data = json_body()
    phase = phase_lifecycle.grant_early_access(
        phase_id, current_principal(), data.get("note"), notifier=current_notifier(),
    )
    return jsonify(phase.to_dict())


@phases_bp.route("/phases/<int:phase_id>/early-access", methods=["DELETE"])
@require_role(SUPERVISOR, ADMINISTRATOR)
def revoke_early_access(phase_id):
    phase = phase_lifecycle.revoke_early_access(phase_id, current_principal(), notifier=current_notifier())
    return jsonify(phase.to_dict())


@phases_bp.route("/phases/<int:phase_id>/early-access/start", methods=["POST"])
@require_role(SUPERVISOR, ADMINISTRATOR)
def start_with_early_access(phase_id):
    """Body: {note?}"""
    data = json_body()
    phase = phase_lifecycle.start_with_early_access(
        phase_id, current_principal(), note=data.get("note"), notifier=current_notifier(),
    )
    return jsonify(phase.to_dict())
