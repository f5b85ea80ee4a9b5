"""
Progress Blueprint — reconciliation of hours-based and manual progress.

Endpoints:
    GET  /api/v1/progress/phase/<pid>/engineer/<eid>   — breakdown
    POST /api/v1/progress/phase/<pid>/engineer/<eid>   — set engineer progress
    POST /api/v1/progress/phase/<pid>                  — set phase-overall progress
    POST /api/v1/progress/work-log/<id>                — override anchored to a work log
    GET  /api/v1/progress/phase/<pid>/summary          — one row per engineer
    GET  /api/v1/progress/phase/<pid>/detail           — phase + engineers + overall override
    GET  /api/v1/progress/phase/<pid>/history          — adjustments, newest first (?engineer_id=)
    GET  /api/v1/progress/calculate                    — what-if (?hours=&predicted_hours=)

Override bodies: {"percentage": 0..100, "reason": "..."}.
"""

import logging

from flask import Blueprint, jsonify, request

from app.auth import ADMINISTRATOR, SUPERVISOR, current_principal, require_role
from app.blueprints import json_body, register_error_handlers
from app.core.exceptions import PermissionDenied
from app.services import progress_service

logger = logging.getLogger(__name__)

progress_bp = Blueprint("progress", __name__, url_prefix="/api/v1/progress")
register_error_handlers(progress_bp)


@progress_bp.route("/phase/<int:phase_id>/engineer/<int:engineer_id>", methods=["GET"])
@require_role()
def breakdown(phase_id, engineer_id):
    principal = current_principal()
    if principal.is_engineer and principal.user_id != engineer_id:
        raise PermissionDenied("Engineers can only view their own progress", details={"role": principal.role})
    return jsonify(progress_service.breakdown(phase_id, engineer_id))


@progress_bp.route("/phase/<int:phase_id>/engineer/<int:engineer_id>", methods=["POST"])
@require_role(SUPERVISOR, ADMINISTRATOR)
def set_engineer_progress(phase_id, engineer_id):
    data = json_body()
    result = progress_service.set_engineer_progress(
        phase_id, engineer_id, data.get("percentage"), data.get("reason"), current_principal(),
    )
    return jsonify(result), 201


@progress_bp.route("/phase/<int:phase_id>", methods=["POST"])
@require_role(SUPERVISOR, ADMINISTRATOR)
def set_phase_progress(phase_id):
    data = json_body()
    result = progress_service.set_phase_overall_progress(
        phase_id, data.get("percentage"), data.get("reason"), current_principal(),
    )
    return jsonify(result), 201


@progress_bp.route("/work-log/<int:work_log_id>", methods=["POST"])
@require_role(SUPERVISOR, ADMINISTRATOR)
def set_work_log_progress(work_log_id):
    data = json_body()
    result = progress_service.set_work_log_progress(
        work_log_id, data.get("percentage"), data.get("reason"), current_principal(),
    )
    return jsonify(result), 201


@progress_bp.route("/phase/<int:phase_id>/summary", methods=["GET"])
@require_role()
def summary(phase_id):
    return jsonify(progress_service.phase_summary(phase_id))


@progress_bp.route("/phase/<int:phase_id>/detail", methods=["GET"])
@require_role()
def detail(phase_id):
    return jsonify(progress_service.phase_detail(phase_id))


@progress_bp.route("/phase/<int:phase_id>/history", methods=["GET"])
@require_role()
def history(phase_id):
    engineer_id = request.args.get("engineer_id", type=int)
    items = [adj.to_dict() for adj in progress_service.history(phase_id, engineer_id)]
    return jsonify({"items": items, "total": len(items)})


@progress_bp.route("/calculate", methods=["GET"])
@require_role()
def calculate():
    return jsonify(progress_service.preview_progress(
        request.args.get("hours"), request.args.get("predicted_hours"),
    ))
