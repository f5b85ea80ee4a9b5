"""
Phase state machine tests.

Primary lifecycle (ready → in_progress → submitted → approved → completed),
auto-unlock of the next phase, the early-access side channel, delays and
notification delivery after commit.
"""

from datetime import date, timedelta

import pytest

from app.core.exceptions import (
    EarlyAccessStateError,
    InvalidTransitionError,
    PermissionDenied,
    PreconditionError,
    ValidationError,
)
from app.models import db
from app.models.audit import AuditLog
from app.models.notification import Notification
from app.models.project import PHASE_TRANSITIONS, Phase, validate_phase_transition
from app.services import phase_lifecycle as svc
from app.services import work_log_service
from app.services.notifier import InAppNotifier, Notifier

TODAY = date.today()


class RecordingNotifier(Notifier):
    def __init__(self):
        self.events = []

    def notify(self, event, *, project_id, payload):
        self.events.append((event, project_id, payload))


class ExplodingNotifier(Notifier):
    def notify(self, event, *, project_id, payload):
        raise RuntimeError("push channel down")


def _reload(phase_id):
    return db.session.get(Phase, phase_id)


def test_transition_table():
    assert validate_phase_transition("ready", "in_progress")
    assert validate_phase_transition("submitted", "approved")
    assert validate_phase_transition("submitted", "completed")
    assert not validate_phase_transition("not_started", "in_progress")
    assert not validate_phase_transition("in_progress", "approved")
    assert PHASE_TRANSITIONS["completed"] == []


class TestPrimaryLifecycle:
    def test_project_creation_states(self, project):
        statuses = [p.status for p in project.phases]
        assert statuses == ["ready", "not_started", "not_started"]

    def test_full_walk_unlocks_next_phase(self, phase, second_phase, sup):
        svc.start_phase(phase.id, sup, today=TODAY)
        p = _reload(phase.id)
        assert p.status == "in_progress"
        assert p.actual_start_date == TODAY

        svc.submit_phase(phase.id, sup, today=TODAY)
        assert _reload(phase.id).submitted_date == TODAY

        svc.approve_phase(phase.id, sup, today=TODAY)
        p = _reload(phase.id)
        assert p.status == "approved"
        assert p.approved_date == TODAY
        assert p.actual_end_date == TODAY
        assert _reload(second_phase.id).status == "ready"

        svc.complete_phase(phase.id, sup)
        assert _reload(phase.id).status == "completed"

        actions = [a.action for a in AuditLog.query.order_by(AuditLog.id).all()]
        assert actions[-5:] == ["phase.start", "phase.submit", "phase.unlock", "phase.approve", "phase.complete"]

    def test_unlock_is_recorded_as_system_action(self, phase, second_phase, sup):
        svc.start_phase(phase.id, sup)
        svc.submit_phase(phase.id, sup)
        svc.approve_phase(phase.id, sup)
        unlock = AuditLog.query.filter_by(action="phase.unlock").one()
        assert unlock.entity_id == str(second_phase.id)
        assert unlock.actor_user_id is None

    def test_submitted_can_complete_directly(self, phase, second_phase, sup):
        svc.start_phase(phase.id, sup)
        svc.submit_phase(phase.id, sup)
        svc.complete_phase(phase.id, sup)
        assert _reload(phase.id).status == "completed"
        assert _reload(second_phase.id).status == "ready"

    def test_cannot_start_not_started_phase(self, second_phase, sup):
        with pytest.raises(InvalidTransitionError) as exc:
            svc.start_phase(second_phase.id, sup)
        assert exc.value.details["current_state"] == "not_started"
        assert exc.value.details["expected_state"] == "ready"
        assert _reload(second_phase.id).status == "not_started"

    def test_cannot_submit_ready_phase(self, phase, sup):
        with pytest.raises(InvalidTransitionError):
            svc.submit_phase(phase.id, sup)
        assert _reload(phase.id).submitted_date is None

    def test_cannot_approve_in_progress(self, phase, sup):
        svc.start_phase(phase.id, sup)
        with pytest.raises(InvalidTransitionError):
            svc.approve_phase(phase.id, sup)

    def test_engineer_cannot_transition(self, phase, eng):
        with pytest.raises(PermissionDenied):
            svc.start_phase(phase.id, eng)
        assert _reload(phase.id).status == "ready"

    def test_notifier_receives_status_change(self, phase, sup):
        rec = RecordingNotifier()
        svc.start_phase(phase.id, sup, notifier=rec)
        assert rec.events[0][0] == "phase_status_changed"
        assert rec.events[0][1] == phase.project_id

    def test_notifier_failure_does_not_roll_back(self, phase, sup):
        svc.start_phase(phase.id, sup, notifier=ExplodingNotifier())
        assert _reload(phase.id).status == "in_progress"


class TestEarlyAccess:
    def test_grant_on_non_not_started_fails(self, phase, sup):
        with pytest.raises(InvalidTransitionError):
            svc.grant_early_access(phase.id, sup)
        assert _reload(phase.id).early_access_status == "not_accessible"

    def test_grant_sets_metadata(self, second_phase, supervisor, sup):
        rec = RecordingNotifier()
        svc.grant_early_access(second_phase.id, sup, "Client approved concept", notifier=rec)
        p = _reload(second_phase.id)
        assert p.early_access_granted is True
        assert p.early_access_status == "accessible"
        assert p.early_access_granted_by == supervisor.id
        assert p.early_access_granted_at is not None
        assert p.early_access_note == "Client approved concept"
        assert p.status == "not_started"
        assert rec.events[0][0] == "early_access_granted"

    def test_grant_default_note(self, second_phase, sup):
        svc.grant_early_access(second_phase.id, sup)
        assert _reload(second_phase.id).early_access_note == svc.DEFAULT_EARLY_ACCESS_NOTE

    def test_double_grant_fails(self, second_phase, sup):
        svc.grant_early_access(second_phase.id, sup)
        with pytest.raises(EarlyAccessStateError):
            svc.grant_early_access(second_phase.id, sup)

    def test_start_without_grant_fails(self, second_phase, sup):
        with pytest.raises(InvalidTransitionError) as exc:
            svc.start_with_early_access(second_phase.id, sup)
        assert exc.value.details["current_state"] == "not_accessible"
        p = _reload(second_phase.id)
        assert p.status == "not_started"
        assert p.actual_start_date is None

    def test_early_access_error_is_also_a_precondition_error(self, second_phase, sup):
        with pytest.raises(PreconditionError):
            svc.start_with_early_access(second_phase.id, sup)

    def test_start_with_early_access(self, second_phase, sup):
        rec = RecordingNotifier()
        svc.grant_early_access(second_phase.id, sup)
        svc.start_with_early_access(second_phase.id, sup, today=TODAY, notifier=rec)
        p = _reload(second_phase.id)
        assert p.status == "in_progress"
        assert p.early_access_status == "in_progress"
        assert p.actual_start_date == TODAY
        assert rec.events[-1][0] == "early_access_phase_started"

    def test_start_phase_takes_early_access_path(self, second_phase, sup):
        svc.grant_early_access(second_phase.id, sup)
        svc.start_phase(second_phase.id, sup)
        p = _reload(second_phase.id)
        assert (p.status, p.early_access_status) == ("in_progress", "in_progress")

    def test_revoke_clears_grant(self, second_phase, sup):
        rec = RecordingNotifier()
        svc.grant_early_access(second_phase.id, sup, "note")
        svc.revoke_early_access(second_phase.id, sup, notifier=rec)
        p = _reload(second_phase.id)
        assert p.early_access_granted is False
        assert p.early_access_status == "not_accessible"
        assert p.early_access_granted_by is None
        assert p.early_access_granted_at is None
        assert p.early_access_note is None
        assert rec.events[-1][0] == "early_access_revoked"

    def test_revoke_after_start_fails(self, second_phase, sup):
        svc.grant_early_access(second_phase.id, sup)
        svc.start_with_early_access(second_phase.id, sup)
        with pytest.raises(InvalidTransitionError):
            svc.revoke_early_access(second_phase.id, sup)
        assert _reload(second_phase.id).early_access_status == "in_progress"

    def test_revoke_with_logged_work_fails(self, second_phase, engineer, eng, sup):
        svc.grant_early_access(second_phase.id, sup)
        work_log_service.record_hours(second_phase.id, engineer.id, TODAY, 2, principal=eng)
        with pytest.raises(PreconditionError):
            svc.revoke_early_access(second_phase.id, sup)
        assert _reload(second_phase.id).early_access_status == "accessible"

    def test_normal_start_consumes_unused_grant(self, phase, second_phase, sup):
        svc.grant_early_access(second_phase.id, sup)
        svc.start_phase(phase.id, sup)
        svc.submit_phase(phase.id, sup)
        svc.approve_phase(phase.id, sup)
        p = _reload(second_phase.id)
        assert (p.status, p.early_access_status) == ("ready", "accessible")

        svc.start_phase(second_phase.id, sup)
        p = _reload(second_phase.id)
        assert (p.status, p.early_access_status) == ("in_progress", "in_progress")
        audit = AuditLog.query.filter_by(entity_id=str(second_phase.id), action="phase.start").one()
        assert audit.diff["early_access_status"] == {"old": "accessible", "new": "in_progress"}

        with pytest.raises(EarlyAccessStateError):
            svc.revoke_early_access(second_phase.id, sup)
        p = _reload(second_phase.id)
        assert p.early_access_granted is True
        assert p.early_access_status == "in_progress"

    def test_revoke_requires_not_started_phase(self, phase, second_phase, sup):
        svc.grant_early_access(second_phase.id, sup)
        svc.start_phase(phase.id, sup)
        svc.submit_phase(phase.id, sup)
        svc.approve_phase(phase.id, sup)
        with pytest.raises(EarlyAccessStateError) as exc:
            svc.revoke_early_access(second_phase.id, sup)
        assert exc.value.details["current_state"] == "ready"
        assert exc.value.details["expected_state"] == "not_started"
        assert _reload(second_phase.id).early_access_status == "accessible"

    def test_start_phase_keeps_note_on_early_access_path(self, second_phase, sup):
        svc.grant_early_access(second_phase.id, sup)
        svc.start_phase(second_phase.id, sup, note="Structural grid frozen")
        audit = AuditLog.query.filter_by(
            entity_id=str(second_phase.id), action="phase.early_access_start",
        ).one()
        assert audit.note == "Structural grid frozen"

    def test_in_app_notifier_persists(self, second_phase, sup):
        svc.grant_early_access(second_phase.id, sup, notifier=InAppNotifier())
        notif = Notification.query.one()
        assert notif.event == "early_access_granted"
        assert notif.phase_id == second_phase.id
        assert InAppNotifier.list_for_project(second_phase.project_id) == [notif]

    def test_overview(self, project, second_phase, sup):
        svc.grant_early_access(second_phase.id, sup)
        overview = svc.early_access_overview(project.id)
        assert overview["granted"] == 1
        assert overview["accessible"] == 1
        rows = {r["phase_id"]: r for r in overview["phases"]}
        assert rows[second_phase.id]["can_grant"] is False
        assert rows[project.phases[2].id]["can_grant"] is True


class TestDelay:
    def test_client_delay_shifts_later_phases(self, project, phase, sup):
        phases = project.phases
        old = [(p.planned_start_date, p.planned_end_date) for p in phases]

        svc.mark_phase_delayed(phase.id, sup, "client", additional_weeks=1, note="Client review late")

        p1, p2, p3 = [_reload(p.id) for p in phases]
        assert p1.delay_reason == "client"
        assert p1.warning_flag is True
        assert p1.planned_end_date == old[0][1] + timedelta(days=7)
        assert p2.planned_start_date == old[1][0] + timedelta(days=7)
        assert p3.planned_end_date == old[2][1] + timedelta(days=7)

    def test_company_delay_moves_only_this_phase(self, project, phase, sup):
        later_start = project.phases[1].planned_start_date
        new_end = phase.planned_end_date + timedelta(days=10)
        svc.mark_phase_delayed(phase.id, sup, "company", new_end_date=new_end.isoformat())
        assert _reload(phase.id).planned_end_date == new_end
        assert _reload(project.phases[1].id).planned_start_date == later_start

    @pytest.mark.parametrize("reason", ["none", "weather", "", None])
    def test_delay_reason_must_be_client_or_company(self, phase, sup, reason):
        with pytest.raises(ValidationError):
            svc.mark_phase_delayed(phase.id, sup, reason)
        assert _reload(phase.id).warning_flag is False

    def test_delay_without_date_change_sets_flag(self, phase, sup):
        end = phase.planned_end_date
        svc.mark_phase_delayed(phase.id, sup, "company")
        p = _reload(phase.id)
        assert p.warning_flag is True
        assert p.planned_end_date == end

    def test_warning_flag_toggle(self, phase, sup):
        svc.set_warning_flag(phase.id, sup, True, note="Budget concern")
        assert _reload(phase.id).warning_flag is True
        svc.set_warning_flag(phase.id, sup, False)
        assert _reload(phase.id).warning_flag is False
        actions = [a.action for a in AuditLog.query.filter_by(entity_type="phase").all()]
        assert "phase.warning_add" in actions and "phase.warning_remove" in actions


class TestPlan:
    def test_new_budget_recomputes_progress(self, phase, engineer, eng, sup):
        work_log_service.record_hours(phase.id, engineer.id, TODAY, 20, principal=eng)
        svc.update_phase_plan(phase.id, sup, predicted_hours=40)
        p = _reload(phase.id)
        assert str(p.calculated_progress) in ("50", "50.00")

    def test_end_before_start_rejected(self, phase, sup):
        with pytest.raises(ValidationError):
            svc.update_phase_plan(
                phase.id, sup,
                planned_end_date=(phase.planned_start_date - timedelta(days=1)).isoformat(),
            )
