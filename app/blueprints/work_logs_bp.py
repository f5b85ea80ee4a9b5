"""
Work Logs Blueprint.

Endpoints:
    POST   /api/v1/phases/<id>/work-logs            — log hours
    GET    /api/v1/phases/<id>/work-logs            — active logs (?engineer_id=)
    GET    /api/v1/phases/<id>/work-logs/summary    — hours per engineer
    PUT    /api/v1/work-logs/<id>                   — edit (owner or supervisor)
    DELETE /api/v1/work-logs/<id>                   — soft delete (owner or supervisor)

Engineers log for themselves; supervisors may pass ``engineer_id`` to log on
someone's behalf.
"""

import logging

from flask import Blueprint, jsonify, request

from app.auth import current_principal, require_role
from app.blueprints import json_body, register_error_handlers
from app.core.exceptions import ValidationError
from app.services import work_log_service

logger = logging.getLogger(__name__)

work_logs_bp = Blueprint("work_logs", __name__, url_prefix="/api/v1")
register_error_handlers(work_logs_bp)


def _engineer_id(data, principal):
    raw = data.get("engineer_id")
    if raw in (None, ""):
        return principal.user_id
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValidationError("engineer_id must be an integer", details={"field": "engineer_id"}) from None


@work_logs_bp.route("/phases/<int:phase_id>/work-logs", methods=["POST"])
@require_role()
def create(phase_id):
    """Body: {date, hours, description?, engineer_id?}"""
    data = json_body()
    principal = current_principal()
    engineer_id = _engineer_id(data, principal)
    if principal.is_supervisor and engineer_id != principal.user_id:
        log = work_log_service.record_hours_for_engineer(
            phase_id, engineer_id, data.get("date"), data.get("hours"), data.get("description"),
            principal=principal,
        )
    else:
        log = work_log_service.record_hours(
            phase_id, engineer_id, data.get("date"), data.get("hours"), data.get("description"),
            principal=principal,
        )
    return jsonify(log.to_dict()), 201


@work_logs_bp.route("/phases/<int:phase_id>/work-logs", methods=["GET"])
@require_role()
def list_logs(phase_id):
    engineer_id = request.args.get("engineer_id", type=int)
    logs = work_log_service.list_phase_work_logs(phase_id, engineer_id)
    return jsonify({"items": [log.to_dict() for log in logs], "total": len(logs)})


@work_logs_bp.route("/phases/<int:phase_id>/work-logs/summary", methods=["GET"])
@require_role()
def summary(phase_id):
    return jsonify(work_log_service.engineer_hours_summary(phase_id))


@work_logs_bp.route("/work-logs/<int:work_log_id>", methods=["PUT"])
@require_role()
def update(work_log_id):
    """Body: {hours?, date?, description?}"""
    data = json_body()
    log = work_log_service.update_work_log(
        work_log_id,
        current_principal(),
        hours=data.get("hours"),
        work_date=data.get("date"),
        description=data.get("description"),
    )
    return jsonify(log.to_dict())


@work_logs_bp.route("/work-logs/<int:work_log_id>", methods=["DELETE"])
@require_role()
def delete(work_log_id):
    work_log_service.soft_delete_work_log(work_log_id, current_principal())
    return jsonify({"message": "Work log deleted"}), 200
