"""
HTTP tests — work logs, progress reconciliation and payments.
"""

from datetime import date, timedelta

TODAY = date.today().isoformat()


def _log(client, header, phase_id, hours, **extra):
    return client.post(f"/api/v1/phases/{phase_id}/work-logs", headers=header,
                       json={"date": TODAY, "hours": hours, **extra})


class TestWorkLogs:
    def test_engineer_logs_own_hours(self, client, phase, engineer, auth_header):
        res = _log(client, auth_header(engineer), phase.id, 6.5, description="Grid layout")
        assert res.status_code == 201
        body = res.get_json()
        assert body["hours"] == "6.50"
        assert body["engineer_id"] == engineer.id

        phase_body = client.get(f"/api/v1/phases/{phase.id}", headers=auth_header(engineer)).get_json()
        assert phase_body["actual_hours"] == "6.50"
        assert phase_body["calculated_progress"] == "6.50"

    def test_engineer_cannot_log_for_others(self, client, phase, engineer, other_engineer, auth_header):
        res = _log(client, auth_header(engineer), phase.id, 2, engineer_id=other_engineer.id)
        assert res.status_code == 403

    def test_supervisor_logs_on_behalf(self, client, phase, supervisor, engineer, auth_header):
        res = _log(client, auth_header(supervisor), phase.id, 4, engineer_id=engineer.id)
        assert res.status_code == 201
        assert res.get_json()["engineer_id"] == engineer.id
        assert res.get_json()["created_by"] == supervisor.id

    def test_supervisor_cannot_log_for_non_engineer(self, client, phase, supervisor, admin, auth_header):
        res = _log(client, auth_header(supervisor), phase.id, 4, engineer_id=admin.id)
        assert res.status_code == 404

    def test_validation_errors(self, client, phase, engineer, auth_header):
        h = auth_header(engineer)
        assert _log(client, h, phase.id, 0.1).status_code == 400
        assert _log(client, h, phase.id, 25).status_code == 400
        future = (date.today() + timedelta(days=1)).isoformat()
        res = client.post(f"/api/v1/phases/{phase.id}/work-logs", headers=h, json={"date": future, "hours": 2})
        assert res.status_code == 400
        assert res.get_json()["details"]["field"] == "date"

    def test_edit_delete_and_list(self, client, phase, engineer, other_engineer, auth_header):
        h = auth_header(engineer)
        log_id = _log(client, h, phase.id, 5).get_json()["id"]
        _log(client, h, phase.id, 3)

        assert client.put(f"/api/v1/work-logs/{log_id}", headers=auth_header(other_engineer),
                          json={"hours": 1}).status_code == 403
        res = client.put(f"/api/v1/work-logs/{log_id}", headers=h, json={"hours": 7})
        assert res.status_code == 200
        assert res.get_json()["hours"] == "7.00"

        assert client.delete(f"/api/v1/work-logs/{log_id}", headers=h).status_code == 200
        listing = client.get(f"/api/v1/phases/{phase.id}/work-logs", headers=h).get_json()
        assert listing["total"] == 1

        summary = client.get(f"/api/v1/phases/{phase.id}/work-logs/summary", headers=h).get_json()
        assert summary[0]["total_hours"] == "3.00"
        assert summary[0]["entries"] == 1


class TestProgress:
    def test_override_and_breakdown(self, client, phase, supervisor, engineer, auth_header):
        _log(client, auth_header(engineer), phase.id, 10)
        url = f"/api/v1/progress/phase/{phase.id}/engineer/{engineer.id}"

        res = client.post(url, headers=auth_header(supervisor),
                          json={"percentage": 25, "reason": "Drawings further along"})
        assert res.status_code == 201
        body = res.get_json()
        assert body["calculated_progress"] == "10.00"
        assert body["actual_progress"] == "25.00"
        assert body["variance"] == "15.00"

        mine = client.get(url, headers=auth_header(engineer)).get_json()
        assert mine["has_override"] is True
        assert mine["adjustment_count"] == 1

        history = client.get(f"/api/v1/progress/phase/{phase.id}/history?engineer_id={engineer.id}",
                             headers=auth_header(supervisor)).get_json()
        assert history["total"] == 1
        assert history["items"][0]["adjustment_reason"] == "Drawings further along"

    def test_engineer_cannot_view_someone_else(self, client, phase, engineer, other_engineer, auth_header):
        res = client.get(f"/api/v1/progress/phase/{phase.id}/engineer/{other_engineer.id}",
                         headers=auth_header(engineer))
        assert res.status_code == 403

    def test_engineer_cannot_override(self, client, phase, engineer, auth_header):
        _log(client, auth_header(engineer), phase.id, 10)
        res = client.post(f"/api/v1/progress/phase/{phase.id}/engineer/{engineer.id}",
                          headers=auth_header(engineer), json={"percentage": 90, "reason": "x"})
        assert res.status_code == 403

    def test_override_without_logs_is_422(self, client, phase, supervisor, engineer, auth_header):
        res = client.post(f"/api/v1/progress/phase/{phase.id}/engineer/{engineer.id}",
                          headers=auth_header(supervisor), json={"percentage": 10, "reason": "early"})
        assert res.status_code == 422

    def test_override_bad_percentage_is_400(self, client, phase, supervisor, engineer, auth_header):
        _log(client, auth_header(engineer), phase.id, 10)
        res = client.post(f"/api/v1/progress/phase/{phase.id}/engineer/{engineer.id}",
                          headers=auth_header(supervisor), json={"percentage": 101, "reason": "too far"})
        assert res.status_code == 400

    def test_phase_override_and_detail(self, client, phase, supervisor, engineer, auth_header):
        _log(client, auth_header(engineer), phase.id, 10)
        res = client.post(f"/api/v1/progress/phase/{phase.id}", headers=auth_header(supervisor),
                          json={"percentage": 40, "reason": "Site review"})
        assert res.status_code == 201
        detail = client.get(f"/api/v1/progress/phase/{phase.id}/detail", headers=auth_header(engineer)).get_json()
        assert detail["phase"]["actual_progress"] == "40.00"
        assert detail["engineer_count"] == 1

    def test_work_log_override(self, client, phase, supervisor, engineer, auth_header):
        log_id = _log(client, auth_header(engineer), phase.id, 10).get_json()["id"]
        res = client.post(f"/api/v1/progress/work-log/{log_id}", headers=auth_header(supervisor),
                          json={"percentage": 15, "reason": "Entry undercounts"})
        assert res.status_code == 201

    def test_summary(self, client, phase, engineer, auth_header):
        _log(client, auth_header(engineer), phase.id, 8)
        rows = client.get(f"/api/v1/progress/phase/{phase.id}/summary", headers=auth_header(engineer)).get_json()
        assert rows[0]["engineer_name"] == "Eli Engineer"

    def test_calculate(self, client, engineer, auth_header):
        res = client.get("/api/v1/progress/calculate?hours=30&predicted_hours=120", headers=auth_header(engineer))
        assert res.get_json()["calculated_progress"] == "25.00"
        res = client.get("/api/v1/progress/calculate?predicted_hours=120", headers=auth_header(engineer))
        assert res.status_code == 400


class TestPayments:
    def test_overpayment_warning(self, client, phase, supervisor, auth_header):
        h = auth_header(supervisor)
        assert client.put(f"/api/v1/phases/{phase.id}/payments", headers=h,
                          json={"total_amount": "1000"}).status_code == 200
        url = f"/api/v1/phases/{phase.id}/payments/transactions"
        res = client.post(url, headers=h, json={"payment_amount": 400, "payment_date": "2025-02-01"})
        assert res.status_code == 201
        assert "warning" not in res.get_json()

        res = client.post(url, headers=h, json={"payment_amount": 700, "payment_date": "2025-02-15",
                                                "payment_type": "final"})
        body = res.get_json()
        assert body["summary"]["payment_status"] == "fully_paid"
        assert body["summary"]["remaining_amount"] == "-100.00"
        assert "warning" in body

    def test_edit_and_delete(self, client, phase, supervisor, auth_header):
        h = auth_header(supervisor)
        pid = client.post(f"/api/v1/phases/{phase.id}/payments/transactions", headers=h,
                          json={"payment_amount": 250, "payment_date": "2025-02-01"}).get_json()["payment"]["id"]

        res = client.put(f"/api/v1/payments/{pid}", headers=h, json={"payment_amount": 300, "notes": "fixed"})
        assert res.status_code == 200
        assert res.get_json()["summary"]["paid_amount"] == "300.00"
        assert res.get_json()["summary"]["remaining_amount"] is None

        res = client.delete(f"/api/v1/payments/{pid}", headers=h)
        assert res.get_json()["summary"]["payment_status"] == "unpaid"
        assert client.delete(f"/api/v1/payments/{pid}", headers=h).status_code == 404

    def test_validation_and_roles(self, client, phase, supervisor, engineer, auth_header):
        url = f"/api/v1/phases/{phase.id}/payments/transactions"
        res = client.post(url, headers=auth_header(supervisor), json={"payment_amount": 0, "payment_date": "2025-02-01"})
        assert res.status_code == 400
        res = client.post(url, headers=auth_header(engineer), json={"payment_amount": 10, "payment_date": "2025-02-01"})
        assert res.status_code == 403

    def test_project_summary(self, client, project, supervisor, auth_header):
        res = client.get(f"/api/v1/projects/{project.id}/payments", headers=auth_header(supervisor))
        assert res.status_code == 200
        body = res.get_json()
        assert body["phases_without_total"] == 3
        assert body["status_counts"]["unpaid"] == 3
