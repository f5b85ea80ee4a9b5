"""
Payments Blueprint — payment terms and ledger transactions.

Endpoints:
    GET    /api/v1/phases/<id>/payments                 — phase payment summary
    PUT    /api/v1/phases/<id>/payments                 — set terms {total_amount?, payment_deadline?, payment_notes?}
    POST   /api/v1/phases/<id>/payments/transactions    — record payment
    PUT    /api/v1/payments/<id>                        — edit payment
    DELETE /api/v1/payments/<id>                        — soft delete payment

Supervisor / administrator only. Overpayment is accepted and reported in a
``warning`` field of the response.
"""

import logging

from flask import Blueprint, jsonify

from app.auth import ADMINISTRATOR, SUPERVISOR, current_principal, require_role
from app.blueprints import json_body, register_error_handlers
from app.services import payment_service

logger = logging.getLogger(__name__)

payments_bp = Blueprint("payments", __name__, url_prefix="/api/v1")
register_error_handlers(payments_bp)

_TERM_FIELDS = ("total_amount", "payment_deadline", "payment_notes")
_EDIT_FIELDS = ("payment_method", "notes")


def _with_warning(body: dict, agg) -> dict:
    if agg.is_overpaid:
        body["warning"] = (
            f"Total payments ({agg.paid_amount}) exceed the phase total ({agg.total_amount})"
        )
    return body


@payments_bp.route("/phases/<int:phase_id>/payments", methods=["GET"])
@require_role(SUPERVISOR, ADMINISTRATOR)
def phase_summary(phase_id):
    return jsonify(payment_service.phase_payment_summary(phase_id))


@payments_bp.route("/phases/<int:phase_id>/payments", methods=["PUT"])
@require_role(SUPERVISOR, ADMINISTRATOR)
def set_terms(phase_id):
    data = json_body()
    terms = {k: data[k] for k in _TERM_FIELDS if k in data}
    payment_service.set_payment_terms(phase_id, current_principal(), **terms)
    return jsonify(payment_service.phase_payment_summary(phase_id))


@payments_bp.route("/phases/<int:phase_id>/payments/transactions", methods=["POST"])
@require_role(SUPERVISOR, ADMINISTRATOR)
def record(phase_id):
    """Body: {payment_amount, payment_date, payment_type?, payment_method?, notes?}"""
    data = json_body()
    payment, agg = payment_service.record_payment(
        phase_id,
        current_principal(),
        amount=data.get("payment_amount"),
        payment_date=data.get("payment_date"),
        payment_type=data.get("payment_type") or "partial",
        payment_method=data.get("payment_method"),
        notes=data.get("notes"),
    )
    return jsonify(_with_warning({"payment": payment.to_dict(), "summary": agg.to_dict()}, agg)), 201


@payments_bp.route("/payments/<int:payment_id>", methods=["PUT"])
@require_role(SUPERVISOR, ADMINISTRATOR)
def update(payment_id):
    data = json_body()
    payment, agg = payment_service.update_payment(
        payment_id,
        current_principal(),
        amount=data.get("payment_amount"),
        payment_date=data.get("payment_date"),
        payment_type=data.get("payment_type"),
        **{k: data[k] for k in _EDIT_FIELDS if k in data},
    )
    return jsonify(_with_warning({"payment": payment.to_dict(), "summary": agg.to_dict()}, agg))


@payments_bp.route("/payments/<int:payment_id>", methods=["DELETE"])
@require_role(SUPERVISOR, ADMINISTRATOR)
def delete(payment_id):
    agg = payment_service.delete_payment(payment_id, current_principal())
    return jsonify({"message": "Payment deleted", "summary": agg.to_dict()})
