"""
Projects Blueprint.

Endpoints:
    POST   /api/v1/projects                         — create project (+ phases)
    GET    /api/v1/projects/<id>                    — project with phases
    DELETE /api/v1/projects/<id>                    — delete project (cascade)
    GET    /api/v1/projects/<id>/warnings           — delay / risk snapshot
    GET    /api/v1/projects/<id>/progress-stats     — progress averages & drift
    GET    /api/v1/projects/<id>/payments           — payment summary
    GET    /api/v1/projects/<id>/early-access       — early access overview

Layer contract: no ORM writes here; services own commits.
"""

import logging

from flask import Blueprint, jsonify, request

from app.auth import ADMINISTRATOR, SUPERVISOR, current_principal, require_role
from app.blueprints import json_body, register_error_handlers
from app.services import payment_service, phase_lifecycle, progress_service, project_service
from app.services.warning_engine import project_warnings
from app.utils.helpers import parse_date

logger = logging.getLogger(__name__)

projects_bp = Blueprint("projects", __name__, url_prefix="/api/v1")
register_error_handlers(projects_bp)


@projects_bp.route("/projects", methods=["POST"])
@require_role(SUPERVISOR, ADMINISTRATOR)
def create_project():
    """Body: {name, start_date?, client_name?, location?, phases?: [{name, planned_weeks, predicted_hours}]}"""
    data = json_body()
    project = project_service.create_project(
        data.get("name"),
        current_principal(),
        start_date=data.get("start_date"),
        client_name=data.get("client_name"),
        location=data.get("location"),
        phases=data.get("phases"),
    )
    return jsonify(project.to_dict(include_phases=True)), 201


@projects_bp.route("/projects/<int:project_id>", methods=["GET"])
@require_role()
def get_project(project_id):
    return jsonify(project_service.get_project(project_id).to_dict(include_phases=True))


@projects_bp.route("/projects/<int:project_id>", methods=["DELETE"])
@require_role(SUPERVISOR, ADMINISTRATOR)
def delete_project(project_id):
    project_service.delete_project(project_id, current_principal())
    return jsonify({"message": "Project deleted"}), 200


@projects_bp.route("/projects/<int:project_id>/warnings", methods=["GET"])
@require_role()
def warnings(project_id):
    """Query: as_of (ISO date, defaults to today)."""
    as_of = parse_date(request.args.get("as_of"))
    return jsonify(project_warnings(project_id, today=as_of).to_dict())


@projects_bp.route("/projects/<int:project_id>/progress-stats", methods=["GET"])
@require_role()
def progress_stats(project_id):
    return jsonify(progress_service.project_progress_stats(project_id))


@projects_bp.route("/projects/<int:project_id>/payments", methods=["GET"])
@require_role(SUPERVISOR, ADMINISTRATOR)
def payments(project_id):
    return jsonify(payment_service.project_payment_summary(project_id))


@projects_bp.route("/projects/<int:project_id>/early-access", methods=["GET"])
@require_role()
def early_access(project_id):
    return jsonify(phase_lifecycle.early_access_overview(project_id))
