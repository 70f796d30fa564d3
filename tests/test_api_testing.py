"""
Test Execution API Tests

Covers:
  - POST /test-runs, validation of case ids
  - step recording via PUT .../steps/<n>, aggregation in the response
  - POST .../execute restart
  - PUT /test-runs/<id>/approve
  - reporting endpoints
"""

import pytest


def _approved_tc(client, headers, password, title, step_count=1, linked=None):
    res = client.post("/api/v1/test-cases", json={
        "title": title,
        "description": f"{title} scenario",
        "status": "approved",
        "password": password,
        "steps": [
            {"action": f"Action {n}", "expected_result": f"Expected {n}"}
            for n in range(1, step_count + 1)
        ],
        "linked_requirements": linked or [],
    }, headers=headers)
    assert res.status_code == 201, res.get_json()
    return res.get_json()["id"]


def _create_run(client, headers, case_ids, name="Release 1.2"):
    return client.post(
        "/api/v1/test-runs",
        json={"name": name, "description": "Regression", "test_case_ids": case_ids},
        headers=headers,
    )


def _record(client, headers, run_id, tc_id, step, status, actual="As expected"):
    return client.put(
        f"/api/v1/test-runs/{run_id}/test-cases/{tc_id}/steps/{step}",
        json={"status": status, "actual_result": actual, "evidence_ref": "screenshot-01.png"},
        headers=headers,
    )


@pytest.fixture()
def complete_run(client, auth_headers, password):
    """Two cases: TC-1 (2 steps, pass) and TC-2 (1 step, fail)."""
    tc1 = _approved_tc(client, auth_headers, password, "Badge login", step_count=2)
    tc2 = _approved_tc(client, auth_headers, password, "Session timeout")
    run_id = _create_run(client, auth_headers, [tc1, tc2]).get_json()["id"]
    _record(client, auth_headers, run_id, tc1, 1, "pass")
    _record(client, auth_headers, run_id, tc1, 2, "pass")
    _record(client, auth_headers, run_id, tc2, 1, "fail", actual="Timed out")
    return run_id, tc1, tc2


class TestRunsApi:

    def test_create_run(self, client, auth_headers, password):
        tc = _approved_tc(client, auth_headers, password, "Badge login")
        res = _create_run(client, auth_headers, [tc])
        assert res.status_code == 201
        body = res.get_json()
        assert body["id"] == "TR-1"
        assert body["status"] == "not_started"
        assert [c["test_case_id"] for c in body["cases"]] == [tc]

    def test_unapproved_case_is_422(self, client, auth_headers):
        res = client.post(
            "/api/v1/test-cases", json={"title": "Draft", "description": "d"}, headers=auth_headers,
        )
        res = _create_run(client, auth_headers, [res.get_json()["id"]])
        assert res.status_code == 422
        assert res.get_json()["details"]["invalid_test_case_ids"] == ["TC-1"]

    def test_list_and_detail(self, client, auth_headers, complete_run):
        run_id, tc1, _ = complete_run
        body = client.get("/api/v1/test-runs?status=complete", headers=auth_headers).get_json()
        assert body["total"] == 1
        detail = client.get(f"/api/v1/test-runs/{run_id}", headers=auth_headers).get_json()
        assert detail["overall_result"] == "fail"
        assert detail["cases"][0]["test_case_id"] == tc1
        assert detail["cases"][0]["step_results"][0]["evidence_ref"] == "screenshot-01.png"

    def test_unknown_run_is_404(self, client, auth_headers):
        res = client.get("/api/v1/test-runs/TR-42", headers=auth_headers)
        assert res.status_code == 404
        assert res.get_json()["error"] == "Test run not found"

    def test_requires_authentication(self, client):
        assert client.get("/api/v1/test-runs").status_code == 401


class TestExecutionApi:

    def test_record_step_response(self, client, auth_headers, password):
        tc = _approved_tc(client, auth_headers, password, "Badge login", step_count=2)
        run_id = _create_run(client, auth_headers, [tc]).get_json()["id"]
        res = _record(client, auth_headers, run_id, tc, 1, "pass")
        assert res.status_code == 200
        body = res.get_json()
        assert body["step_result"]["step_number"] == 1
        assert body["test_run_case"]["status"] == "in_progress"
        assert body["test_run"]["status"] == "in_progress"

    def test_invalid_status_is_422(self, client, auth_headers, password):
        tc = _approved_tc(client, auth_headers, password, "Badge login")
        run_id = _create_run(client, auth_headers, [tc]).get_json()["id"]
        assert _record(client, auth_headers, run_id, tc, 1, "maybe").status_code == 422

    def test_unknown_step_is_404(self, client, auth_headers, password):
        tc = _approved_tc(client, auth_headers, password, "Badge login")
        run_id = _create_run(client, auth_headers, [tc]).get_json()["id"]
        res = _record(client, auth_headers, run_id, tc, 5, "pass")
        assert res.status_code == 404
        assert res.get_json()["error"] == "Test step not found"

    def test_restart_case(self, client, auth_headers, complete_run):
        run_id, _, tc2 = complete_run
        res = client.post(f"/api/v1/test-runs/{run_id}/test-cases/{tc2}/execute", headers=auth_headers)
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "in_progress"
        assert body["step_results"] == []
        run = client.get(f"/api/v1/test-runs/{run_id}", headers=auth_headers).get_json()
        assert run["status"] == "in_progress"


class TestApproveApi:

    def test_approve(self, client, auth_headers, password, complete_run):
        run_id, tc1, tc2 = complete_run
        res = client.put(f"/api/v1/test-runs/{run_id}/approve", json={"password": password}, headers=auth_headers)
        assert res.status_code == 200
        body = res.get_json()
        assert body["test_run"]["status"] == "approved"
        assert {r["test_case_id"]: r["result"] for r in body["test_results"]} == {tc1: "pass", tc2: "fail"}

        traces = client.get("/api/v1/traces", headers=auth_headers).get_json()["traces"]
        assert len(traces) == 2
        assert all(t["is_system_generated"] for t in traces)

    def test_approve_wrong_password_is_401(self, client, auth_headers, complete_run):
        run_id, _, _ = complete_run
        res = client.put(f"/api/v1/test-runs/{run_id}/approve", json={"password": "x"}, headers=auth_headers)
        assert res.status_code == 401
        run = client.get(f"/api/v1/test-runs/{run_id}", headers=auth_headers).get_json()
        assert run["status"] == "complete"

    def test_approve_incomplete_is_400(self, client, auth_headers, password):
        tc = _approved_tc(client, auth_headers, password, "Badge login")
        run_id = _create_run(client, auth_headers, [tc]).get_json()["id"]
        res = client.put(f"/api/v1/test-runs/{run_id}/approve", json={"password": password}, headers=auth_headers)
        assert res.status_code == 400

    def test_approved_run_rejects_steps(self, client, auth_headers, password, complete_run):
        run_id, tc1, _ = complete_run
        client.put(f"/api/v1/test-runs/{run_id}/approve", json={"password": password}, headers=auth_headers)
        res = _record(client, auth_headers, run_id, tc1, 1, "fail")
        assert res.status_code == 400
        assert res.get_json()["error"] == "Cannot modify approved test run"


class TestReportingApi:

    def test_test_case_results(self, client, auth_headers, password, complete_run):
        run_id, tc1, _ = complete_run
        client.put(f"/api/v1/test-runs/{run_id}/approve", json={"password": password}, headers=auth_headers)
        body = client.get(f"/api/v1/test-cases/{tc1}/results", headers=auth_headers).get_json()
        assert body["test_case"]["id"] == tc1
        assert body["executions"][0]["test_run_id"] == run_id
        assert body["test_results"][0]["result"] == "pass"

    def test_requirement_coverage(self, client, auth_headers, password):
        ur = client.post(
            "/api/v1/user-requirements", json={"title": "Badge login", "description": "d"},
            headers=auth_headers,
        ).get_json()["id"]
        tc1 = _approved_tc(client, auth_headers, password, "Happy path", linked=[ur])
        tc2 = _approved_tc(client, auth_headers, password, "Wrong PIN", linked=[ur])
        run_id = _create_run(client, auth_headers, [tc1, tc2]).get_json()["id"]
        _record(client, auth_headers, run_id, tc1, 1, "pass")
        _record(client, auth_headers, run_id, tc2, 1, "fail")

        body = client.get(f"/api/v1/requirements/{ur}/test-coverage", headers=auth_headers).get_json()
        assert body["coverage_stats"] == {
            "total_tests": 2,
            "passed_tests": 1,
            "failed_tests": 1,
            "pending_tests": 0,
            "coverage_percentage": 100,
        }

    def test_coverage_of_unknown_requirement_is_404(self, client, auth_headers):
        res = client.get("/api/v1/requirements/UR-3/test-coverage", headers=auth_headers)
        assert res.status_code == 404
