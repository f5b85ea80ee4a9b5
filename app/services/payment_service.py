"""
Payment Ledger & Aggregator — Service Layer.

Business logic for:
    - Recording, editing and soft-deleting payment transactions
    - Setting contracted payment terms (total, deadline, notes) on a phase
    - Re-deriving ``paid_amount`` / ``payment_status`` after every mutation
    - Phase and project payment summaries

Aggregation is a pure function of the active ledger rows and the phase's
optional contracted total:

    paid      = Σ active payment_amount
    status    = unpaid          if paid == 0
                fully_paid      if total is set and paid ≥ total
                partially_paid  otherwise
    remaining = total - paid    if total is set, else None (unknown)

Overpayment is allowed and reported (``remaining`` goes negative); it is
logged as a warning, never rejected.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select

from app.auth import Principal, ensure_supervisor
from app.core.exceptions import ConflictError, ValidationError
from app.models import db
from app.models.audit import write_audit
from app.models.payment import PAYMENT_METHODS, PAYMENT_TYPES, PhasePayment
from app.models.project import Phase
from app.services.helpers.lookups import get_or_raise, get_phase, get_project, lock_phase
from app.services.helpers.transaction import commit_or_rollback
from app.utils.helpers import ZERO, decimal_str, parse_date, quantize, to_decimal

logger = logging.getLogger(__name__)

_UNSET = object()


# ── Pure aggregation ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class PaymentAggregate:
    """Derived payment state of one phase.

    ``total_amount`` None means no contracted total: the remaining amount
    is then unknown, not zero.
    """

    paid_amount: Decimal
    total_amount: Decimal | None
    payment_status: str

    @property
    def remaining_amount(self) -> Decimal | None:
        if self.total_amount is None:
            return None
        return quantize(self.total_amount - self.paid_amount)

    @property
    def is_overpaid(self) -> bool:
        return self.total_amount is not None and self.paid_amount > self.total_amount

    def to_dict(self) -> dict:
        return {
            "paid_amount": decimal_str(self.paid_amount),
            "total_amount": decimal_str(self.total_amount),
            "remaining_amount": decimal_str(self.remaining_amount),
            "payment_status": self.payment_status,
            "is_overpaid": self.is_overpaid,
        }


def payment_status_for(paid: Decimal, total: Decimal | None) -> str:
    if paid == 0:
        return "unpaid"
    if total is not None and paid >= total:
        return "fully_paid"
    return "partially_paid"


def aggregate_payments(amounts, total_amount=None) -> PaymentAggregate:
    """Fold ledger amounts into a ``PaymentAggregate``.

    Raises:
        ConflictError: the derived paid amount is negative, which no valid
            ledger can produce.
    """
    paid = quantize(sum((Decimal(str(a)) for a in amounts), ZERO))
    if paid < 0:
        raise ConflictError(
            "Derived paid amount is negative",
            details={"paid_amount": str(paid)},
        )
    total = quantize(Decimal(str(total_amount))) if total_amount is not None else None
    return PaymentAggregate(paid_amount=paid, total_amount=total, payment_status=payment_status_for(paid, total))


def _active_amounts(phase_id: int) -> list[Decimal]:
    return db.session.execute(
        select(PhasePayment.payment_amount).where(
            PhasePayment.phase_id == phase_id, PhasePayment.active_clause(),
        )
    ).scalars().all()


def current_aggregate(phase: Phase) -> PaymentAggregate:
    return aggregate_payments(_active_amounts(phase.id), phase.total_amount)


def recompute_phase_payments(phase: Phase) -> PaymentAggregate:
    """Re-derive the payment aggregate on *phase* from its ledger.

    Callers hold the phase row lock and own the commit.
    """
    agg = current_aggregate(phase)
    phase.paid_amount = agg.paid_amount
    phase.payment_status = agg.payment_status
    db.session.flush()
    if agg.is_overpaid:
        logger.warning(
            "Phase %s overpaid: paid %s exceeds total %s by %s",
            phase.id, agg.paid_amount, agg.total_amount, -agg.remaining_amount,
        )
    return agg


# ── Validation ───────────────────────────────────────────────────────────────


def _validate_amount(value, field="amount") -> Decimal:
    amount = to_decimal(value, field)
    if amount <= 0:
        raise ValidationError(f"{field} must be greater than 0", details={"field": field})
    return quantize(amount)


def _validate_date(value, field="payment_date"):
    if value in (None, ""):
        raise ValidationError(f"{field} is required", details={"field": field})
    parsed = parse_date(value)
    if parsed is None:
        raise ValidationError(f"{field} must be an ISO date", details={"field": field})
    return parsed


def _validate_choice(value, allowed, field):
    if value not in allowed:
        raise ValidationError(
            f"{field} must be one of: {', '.join(allowed)}",
            details={"field": field, "allowed": list(allowed)},
        )
    return value


# ── Ledger writes ────────────────────────────────────────────────────────────


def record_payment(
    phase_id: int,
    principal: Principal,
    *,
    amount,
    payment_date,
    payment_type: str = "partial",
    payment_method: str | None = None,
    notes: str | None = None,
) -> tuple[PhasePayment, PaymentAggregate]:
    """
    Append a payment transaction and re-aggregate the phase.

    Returns:
        (payment, aggregate); ``aggregate.is_overpaid`` flags the non-fatal
        overpayment warning.
    """
    ensure_supervisor(principal, "record payments")
    amount = _validate_amount(amount)
    pay_date = _validate_date(payment_date)
    _validate_choice(payment_type or "partial", PAYMENT_TYPES, "payment_type")
    if payment_method is not None:
        _validate_choice(payment_method, PAYMENT_METHODS, "payment_method")
    get_phase(phase_id)

    phase = lock_phase(phase_id)
    payment = PhasePayment(
        phase_id=phase.id,
        project_id=phase.project_id,
        payment_amount=amount,
        payment_date=pay_date,
        payment_type=payment_type or "partial",
        payment_method=payment_method,
        notes=notes,
        recorded_by=principal.user_id,
    )
    db.session.add(payment)
    db.session.flush()
    agg = recompute_phase_payments(phase)
    write_audit(
        entity_type="phase_payment",
        entity_id=payment.id,
        action="payment.create",
        project_id=phase.project_id,
        actor_user_id=principal.user_id,
        diff={"amount": str(amount), "paid_amount": str(agg.paid_amount), "status": agg.payment_status},
    )
    commit_or_rollback()
    logger.info("Payment %s: %s on phase_id=%s → %s (%s)",
                payment.id, amount, phase.id, agg.paid_amount, agg.payment_status)
    return payment, agg


def update_payment(
    payment_id: int,
    principal: Principal,
    *,
    amount=None,
    payment_date=None,
    payment_type=None,
    payment_method=_UNSET,
    notes=_UNSET,
) -> tuple[PhasePayment, PaymentAggregate]:
    ensure_supervisor(principal, "update payments")
    payment = get_or_raise(PhasePayment, payment_id, "Payment", active_only=True)
    new_amount = _validate_amount(amount) if amount is not None else None
    new_date = _validate_date(payment_date) if payment_date is not None else None
    if payment_type is not None:
        _validate_choice(payment_type, PAYMENT_TYPES, "payment_type")
    if payment_method not in (_UNSET, None):
        _validate_choice(payment_method, PAYMENT_METHODS, "payment_method")

    phase = lock_phase(payment.phase_id)
    diff = {}
    if new_amount is not None and new_amount != quantize(payment.payment_amount):
        diff["amount"] = {"old": str(payment.payment_amount), "new": str(new_amount)}
        payment.payment_amount = new_amount
    if new_date is not None:
        payment.payment_date = new_date
    if payment_type is not None:
        payment.payment_type = payment_type
    if payment_method is not _UNSET:
        payment.payment_method = payment_method
    if notes is not _UNSET:
        payment.notes = notes

    db.session.flush()
    agg = recompute_phase_payments(phase)
    write_audit(
        entity_type="phase_payment",
        entity_id=payment.id,
        action="payment.update",
        project_id=phase.project_id,
        actor_user_id=principal.user_id,
        diff=diff,
    )
    commit_or_rollback()
    logger.info("Payment %s updated → phase_id=%s paid %s", payment.id, phase.id, agg.paid_amount)
    return payment, agg


def delete_payment(payment_id: int, principal: Principal) -> PaymentAggregate:
    """Soft-delete a transaction; the row leaves the aggregate."""
    ensure_supervisor(principal, "delete payments")
    payment = get_or_raise(PhasePayment, payment_id, "Payment", active_only=True)

    phase = lock_phase(payment.phase_id)
    payment.soft_delete(deleted_by=principal.user_id)
    db.session.flush()
    agg = recompute_phase_payments(phase)
    write_audit(
        entity_type="phase_payment",
        entity_id=payment.id,
        action="payment.delete",
        project_id=phase.project_id,
        actor_user_id=principal.user_id,
        diff={"amount": str(payment.payment_amount), "paid_amount": str(agg.paid_amount)},
    )
    commit_or_rollback()
    logger.info("Payment %s deleted → phase_id=%s paid %s", payment.id, phase.id, agg.paid_amount)
    return agg


def set_payment_terms(
    phase_id: int,
    principal: Principal,
    *,
    total_amount=_UNSET,
    payment_deadline=_UNSET,
    payment_notes=_UNSET,
) -> PaymentAggregate:
    """
    Set or clear the contracted total, deadline and notes of a phase.

    ``total_amount=None`` clears the total (remaining becomes unknown);
    omitted arguments are left unchanged.
    """
    ensure_supervisor(principal, "set payment terms")
    total = _UNSET
    if total_amount is not _UNSET:
        total = None if total_amount in (None, "") else to_decimal(total_amount, "total_amount")
        if total is not None and total < 0:
            raise ValidationError("total_amount must not be negative", details={"field": "total_amount"})
    deadline = _UNSET
    if payment_deadline is not _UNSET:
        deadline = parse_date(payment_deadline) if payment_deadline else None
        if payment_deadline and deadline is None:
            raise ValidationError("payment_deadline must be an ISO date", details={"field": "payment_deadline"})

    phase = lock_phase(phase_id)
    diff = {}
    if total is not _UNSET:
        diff["total_amount"] = {"old": decimal_str(phase.total_amount),
                                "new": decimal_str(total)}
        phase.total_amount = quantize(total) if total is not None else None
    if deadline is not _UNSET:
        phase.payment_deadline = deadline
    if payment_notes is not _UNSET:
        phase.payment_notes = payment_notes

    db.session.flush()
    agg = recompute_phase_payments(phase)
    write_audit(
        entity_type="phase",
        entity_id=phase.id,
        action="payment.terms_update",
        project_id=phase.project_id,
        actor_user_id=principal.user_id,
        diff=diff,
    )
    commit_or_rollback()
    logger.info("Payment terms on phase_id=%s: total=%s status=%s", phase.id, agg.total_amount, agg.payment_status)
    return agg


# ── Read models ──────────────────────────────────────────────────────────────


def list_payments(phase_id: int) -> list[PhasePayment]:
    return db.session.execute(
        select(PhasePayment)
        .where(PhasePayment.phase_id == phase_id, PhasePayment.active_clause())
        .order_by(PhasePayment.payment_date.desc(), PhasePayment.id.desc())
    ).scalars().all()


def phase_payment_summary(phase_id: int) -> dict:
    phase = get_phase(phase_id)
    agg = current_aggregate(phase)
    payments = list_payments(phase_id)
    return {
        "phase_id": phase.id,
        "phase_name": phase.name,
        **agg.to_dict(),
        "payment_deadline": phase.payment_deadline.isoformat() if phase.payment_deadline else None,
        "payment_notes": phase.payment_notes,
        "transaction_count": len(payments),
        "transactions": [p.to_dict() for p in payments],
    }


def project_payment_summary(project_id: int) -> dict:
    """
    Per-phase aggregates plus project totals.

    ``total_remaining`` covers only phases with a contracted total;
    ``phases_without_total`` counts the phases whose remaining is unknown.
    """
    project = get_project(project_id)
    phases = []
    contracted = paid = remaining = ZERO
    unknown = 0
    for phase in project.phases:
        agg = current_aggregate(phase)
        phases.append({"phase_id": phase.id, "phase_order": phase.phase_order,
                       "name": phase.name, **agg.to_dict()})
        paid += agg.paid_amount
        if agg.total_amount is None:
            unknown += 1
        else:
            contracted += agg.total_amount
            remaining += agg.remaining_amount
    return {
        "project_id": project.id,
        "total_contracted": decimal_str(contracted),
        "total_paid": decimal_str(paid),
        "total_remaining": decimal_str(remaining),
        "phases_without_total": unknown,
        "status_counts": {
            s: sum(1 for p in phases if p["payment_status"] == s)
            for s in ("unpaid", "partially_paid", "fully_paid")
        },
        "phases": phases,
    }
