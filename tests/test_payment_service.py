"""
Payment ledger & aggregator tests.

Pure aggregation rules first, then ledger writes: every create / update /
delete re-derives ``paid_amount`` and ``payment_status`` on the phase.
"""

from datetime import date
from decimal import Decimal

import pytest

from app.core.exceptions import ConflictError, NotFoundError, PermissionDenied, ValidationError
from app.models import db
from app.models.audit import AuditLog
from app.models.payment import PhasePayment
from app.models.project import Phase
from app.services import payment_service as svc

PAY_DATE = date(2025, 2, 1)


def _reload(phase_id):
    return db.session.get(Phase, phase_id)


class TestAggregate:
    def test_empty_ledger_is_unpaid(self):
        agg = svc.aggregate_payments([], Decimal("1000"))
        assert agg.paid_amount == Decimal("0.00")
        assert agg.payment_status == "unpaid"
        assert agg.remaining_amount == Decimal("1000.00")

    def test_partial(self):
        agg = svc.aggregate_payments([Decimal("400")], Decimal("1000"))
        assert agg.payment_status == "partially_paid"
        assert agg.remaining_amount == Decimal("600.00")
        assert not agg.is_overpaid

    def test_exact_total_is_fully_paid(self):
        agg = svc.aggregate_payments(["250.50", "749.50"], "1000")
        assert agg.payment_status == "fully_paid"
        assert agg.remaining_amount == Decimal("0.00")

    def test_overpayment_reports_negative_remaining(self):
        agg = svc.aggregate_payments([Decimal("400"), Decimal("700")], Decimal("1000"))
        assert agg.paid_amount == Decimal("1100.00")
        assert agg.payment_status == "fully_paid"
        assert agg.remaining_amount == Decimal("-100.00")
        assert agg.is_overpaid

    def test_no_total_means_unknown_remaining(self):
        agg = svc.aggregate_payments([Decimal("5000")])
        assert agg.payment_status == "partially_paid"
        assert agg.remaining_amount is None
        assert agg.to_dict()["remaining_amount"] is None
        assert agg.is_overpaid is False

    def test_negative_paid_is_a_conflict(self):
        with pytest.raises(ConflictError):
            svc.aggregate_payments([Decimal("10"), Decimal("-25")], Decimal("100"))

    def test_to_dict_serialises_strings(self):
        d = svc.aggregate_payments(["0.1", "0.2"], "1").to_dict()
        assert d["paid_amount"] == "0.30"
        assert d["total_amount"] == "1.00"
        assert d["remaining_amount"] == "0.70"


class TestLedger:
    def test_overpayment_scenario(self, phase, sup):
        svc.set_payment_terms(phase.id, sup, total_amount="1000")
        svc.record_payment(phase.id, sup, amount=400, payment_date=PAY_DATE)
        payment, agg = svc.record_payment(phase.id, sup, amount=700, payment_date=PAY_DATE,
                                          payment_type="final", payment_method="bank_transfer")

        assert payment.payment_type == "final"
        assert agg.is_overpaid
        p = _reload(phase.id)
        assert p.paid_amount == Decimal("1100.00")
        assert p.payment_status == "fully_paid"
        assert svc.phase_payment_summary(phase.id)["remaining_amount"] == "-100.00"

    def test_recompute_is_idempotent(self, phase, sup):
        svc.record_payment(phase.id, sup, amount="123.45", payment_date=PAY_DATE)
        p = _reload(phase.id)
        first = svc.recompute_phase_payments(p)
        second = svc.recompute_phase_payments(p)
        assert first == second
        assert p.paid_amount == Decimal("123.45")

    def test_delete_then_readd_restores_aggregate(self, phase, sup):
        svc.set_payment_terms(phase.id, sup, total_amount=500)
        payment, before = svc.record_payment(phase.id, sup, amount=200, payment_date=PAY_DATE)

        after_delete = svc.delete_payment(payment.id, sup)
        assert after_delete.paid_amount == Decimal("0.00")
        assert after_delete.payment_status == "unpaid"
        assert db.session.get(PhasePayment, payment.id).is_deleted

        _, readded = svc.record_payment(phase.id, sup, amount=200, payment_date=PAY_DATE)
        assert readded == before

    def test_deleted_payment_cannot_be_deleted_again(self, phase, sup):
        payment, _ = svc.record_payment(phase.id, sup, amount=50, payment_date=PAY_DATE)
        svc.delete_payment(payment.id, sup)
        with pytest.raises(NotFoundError):
            svc.delete_payment(payment.id, sup)

    def test_update_amount_reaggregates(self, phase, sup):
        svc.set_payment_terms(phase.id, sup, total_amount=1000)
        payment, _ = svc.record_payment(phase.id, sup, amount=300, payment_date=PAY_DATE)
        _, agg = svc.update_payment(payment.id, sup, amount=1000, notes="Corrected")
        assert agg.payment_status == "fully_paid"
        assert db.session.get(PhasePayment, payment.id).notes == "Corrected"

    @pytest.mark.parametrize("amount", [0, -5, "abc", None])
    def test_amount_must_be_positive(self, phase, sup, amount):
        with pytest.raises(ValidationError):
            svc.record_payment(phase.id, sup, amount=amount, payment_date=PAY_DATE)
        assert svc.list_payments(phase.id) == []

    def test_date_required(self, phase, sup):
        with pytest.raises(ValidationError) as exc:
            svc.record_payment(phase.id, sup, amount=10, payment_date=None)
        assert exc.value.details["field"] == "payment_date"

    def test_bad_type_and_method(self, phase, sup):
        with pytest.raises(ValidationError):
            svc.record_payment(phase.id, sup, amount=10, payment_date=PAY_DATE, payment_type="bonus")
        with pytest.raises(ValidationError):
            svc.record_payment(phase.id, sup, amount=10, payment_date=PAY_DATE, payment_method="crypto")

    def test_engineer_cannot_record(self, phase, eng):
        with pytest.raises(PermissionDenied):
            svc.record_payment(phase.id, eng, amount=10, payment_date=PAY_DATE)

    def test_missing_phase(self, sup):
        with pytest.raises(NotFoundError):
            svc.record_payment(99999, sup, amount=10, payment_date=PAY_DATE)

    def test_audit_rows(self, phase, sup):
        payment, _ = svc.record_payment(phase.id, sup, amount=10, payment_date=PAY_DATE)
        svc.delete_payment(payment.id, sup)
        actions = [a.action for a in AuditLog.query.filter_by(entity_type="phase_payment").all()]
        assert actions == ["payment.create", "payment.delete"]


class TestTerms:
    def test_clearing_total_makes_remaining_unknown(self, phase, sup):
        svc.set_payment_terms(phase.id, sup, total_amount=100)
        svc.record_payment(phase.id, sup, amount=100, payment_date=PAY_DATE)
        assert _reload(phase.id).payment_status == "fully_paid"

        agg = svc.set_payment_terms(phase.id, sup, total_amount=None)
        assert agg.remaining_amount is None
        assert _reload(phase.id).payment_status == "partially_paid"

    def test_raising_total_reopens_payment(self, phase, sup):
        svc.set_payment_terms(phase.id, sup, total_amount=100)
        svc.record_payment(phase.id, sup, amount=100, payment_date=PAY_DATE)
        agg = svc.set_payment_terms(phase.id, sup, total_amount=150)
        assert agg.payment_status == "partially_paid"
        assert agg.remaining_amount == Decimal("50.00")

    def test_deadline_and_notes(self, phase, sup):
        svc.set_payment_terms(phase.id, sup, payment_deadline="2025-03-31", payment_notes="Net 30")
        p = _reload(phase.id)
        assert p.payment_deadline == date(2025, 3, 31)
        assert p.payment_notes == "Net 30"
        assert p.total_amount is None

    def test_negative_total_rejected(self, phase, sup):
        with pytest.raises(ValidationError):
            svc.set_payment_terms(phase.id, sup, total_amount=-1)


def test_project_summary(project, sup):
    first, second, _third = project.phases
    svc.set_payment_terms(first.id, sup, total_amount=1000)
    svc.set_payment_terms(second.id, sup, total_amount=2000)
    svc.record_payment(first.id, sup, amount=1000, payment_date=PAY_DATE)
    svc.record_payment(second.id, sup, amount=500, payment_date=PAY_DATE)

    summary = svc.project_payment_summary(project.id)
    assert summary["total_contracted"] == "3000.00"
    assert summary["total_paid"] == "1500.00"
    assert summary["total_remaining"] == "1500.00"
    assert summary["phases_without_total"] == 1
    assert summary["status_counts"] == {"unpaid": 1, "partially_paid": 1, "fully_paid": 1}
