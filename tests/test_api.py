"""
API endpoint tests.

Uses FastAPI TestClient (backed by httpx) against the seeded database from
conftest, with the reporting month pinned to MAR 2025.  Each group covers one
router: happy path, envelope shape and the error codes it can produce.
"""

import pytest

# FastAPI TestClient requires fastapi + httpx; skip the entire module if not installed
pytest.importorskip("fastapi")
pytest.importorskip("httpx")


# ── /health ───────────────────────────────────────────────────────────────────

class TestHealth:
    def test_health_ok(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "SUCCESS"
        assert body["data"]["tables"]["users"] == 6

    def test_request_id_header(self, client):
        resp = client.get("/health")
        assert len(resp.headers["X-Request-ID"]) == 8
        assert resp.headers["X-Content-Type-Options"] == "nosniff"


# ── Authentication ────────────────────────────────────────────────────────────

class TestAuth:
    def test_missing_token(self, client):
        resp = client.get("/api/performance-statistics/counts")
        assert resp.status_code == 401
        body = resp.json()
        assert body["status"] == "ERROR"
        assert body["error"]["code"] == "UNAUTHENTICATED"

    def test_unknown_token(self, client):
        resp = client.get("/api/performance-statistics/counts",
                          headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401


# ── /api/performance-statistics ───────────────────────────────────────────────

class TestPerformanceForm:
    def test_form(self, client, auth, add_fact):
        add_fact(4, 2, "FEB 2025", "42")
        resp = client.get("/api/performance-statistics/performance",
                          params={"modulePathId": 0, "topicPathId": 1}, headers=auth("d1"))
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "SUCCESS"
        questions = {q["questionId"]: q for q in body["data"]["questions"]}
        assert questions[2]["currentCount"] == "42"
        assert questions[2]["isDisabled"] is True
        assert questions[1]["currentCount"] == ""
        assert body["data"]["monthYear"] == "MAR 2025"

    def test_unknown_module(self, client, auth):
        resp = client.get("/api/performance-statistics/performance",
                          params={"modulePathId": 9, "topicPathId": 1}, headers=auth("d1"))
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "NOT_FOUND"

    def test_missing_params(self, client, auth):
        resp = client.get("/api/performance-statistics/performance", headers=auth("d1"))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION"


class TestSaveAndFinalize:
    def _save(self, client, auth, entries, who="d1"):
        return client.post("/api/performance-statistics/save-statistics",
                           json={"performanceStatistics": entries}, headers=auth(who))

    def test_save_then_resave(self, client, auth):
        resp = self._save(client, auth, [{"questionId": 1, "value": "12"},
                                         {"questionId": 6, "subTopicId": 1, "value": 3}])
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["monthYear"] == "MAR 2025"
        assert [r["outcome"] for r in data["results"]] == ["created", "created"]

        resp = self._save(client, auth, [{"questionId": 1, "value": "13"}])
        assert resp.json()["data"]["results"][0]["outcome"] == "updated"

        counts = client.get("/api/performance-statistics/counts", headers=auth("d1")).json()
        assert counts["data"]["totalCount"] == 2

    def test_invalid_entry_rejects_whole_batch(self, client, auth):
        resp = self._save(client, auth, [{"questionId": 1, "value": "12"},
                                         {"questionId": 999, "value": "1"}])
        assert resp.status_code == 400
        body = resp.json()
        assert body["error"]["code"] == "VALIDATION"
        assert body["error"]["details"][0]["index"] == 1
        counts = client.get("/api/performance-statistics/counts", headers=auth("d1")).json()
        assert counts["data"]["totalCount"] == 0

    def test_empty_batch(self, client, auth):
        assert self._save(client, auth, []).status_code == 400

    def test_cannot_finalize_without_otp(self, client, auth):
        resp = self._save(client, auth, [{"questionId": 1, "value": "5", "status": "SUCCESS"}])
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION"

        report = client.post("/api/reports/generate",
                             json={"questionIds": [1], "months": ["MAR 2025"]},
                             headers=auth("admin"))
        assert report.json()["data"]["datasets"] == []

        self._save(client, auth, [{"questionId": 1, "value": "5"}])
        rows = client.get("/api/performance-statistics", headers=auth("d1")).json()["data"]
        assert [r["status"] for r in rows] == ["INPROGRESS"]

    def test_otp_flow_locks_facts(self, client, auth):
        self._save(client, auth, [{"questionId": 1, "value": "12"}])

        sent = client.post("/api/performance-statistics/sent-otp", headers=auth("d1"))
        assert sent.status_code == 200
        assert "otp" not in sent.json()["data"]
        assert sent.json()["data"]["sentTo"].endswith("3210")

        verified = client.post("/api/performance-statistics/verify-otp",
                               json={"otp": "123456"}, headers=auth("d1"))
        assert verified.status_code == 200
        assert verified.json()["data"]["finalized"] == 1

        resp = self._save(client, auth, [{"questionId": 1, "value": "99"}])
        assert resp.json()["data"]["results"][0]["outcome"] == "locked"

    def test_bad_otp(self, client, auth):
        resp = client.post("/api/performance-statistics/verify-otp",
                           json={"otp": "12ab"}, headers=auth("d1"))
        assert resp.status_code == 400


class TestLedgerReads:
    def test_list_is_confined_to_caller_district(self, client, auth, add_fact):
        add_fact(4, 1, "FEB 2025", "1")
        add_fact(6, 1, "FEB 2025", "2")
        resp = client.get("/api/performance-statistics", headers=auth("d1"))
        body = resp.json()
        assert resp.status_code == 200
        assert [i["userId"] for i in body["data"]] == [4]
        assert body["pagination"]["totalItems"] == 1

    def test_list_other_district_is_denied(self, client, auth):
        resp = client.get("/api/performance-statistics", params={"districtId": 4},
                          headers=auth("d1"))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "ACCESS_DENIED"

    def test_admin_list_with_month_filter(self, client, auth, add_fact):
        add_fact(4, 1, "FEB 2025", "1")
        add_fact(6, 1, "JAN 2025", "2")
        resp = client.get("/api/performance-statistics", params={"monthYear": "feb 2025"},
                          headers=auth("admin"))
        assert [i["monthYear"] for i in resp.json()["data"]] == ["FEB 2025"]

    def test_summary(self, client, auth, add_fact):
        add_fact(4, 1, "FEB 2025", "10")
        add_fact(5, 1, "FEB 2025", "Yes")
        resp = client.get("/api/performance-statistics/summary", headers=auth("range"))
        data = resp.json()["data"]
        assert data["totalCount"] == 2
        assert data["totalValue"] == 10

    def test_user_month(self, client, auth, add_fact):
        add_fact(5, 1, "FEB 2025", "3")
        resp = client.get("/api/performance-statistics/user/5/month/FEB 2025",
                          headers=auth("range"))
        assert resp.status_code == 200
        assert resp.json()["data"][0]["value"] == "3"

        denied = client.get("/api/performance-statistics/user/5/month/FEB 2025",
                            headers=auth("d1"))
        assert denied.status_code == 403

    def test_labels(self, client, auth, add_fact):
        add_fact(4, 1, "FEB 2025", "1")
        add_fact(4, 1, "JAN 2025", "1", status="INPROGRESS")
        resp = client.get("/api/performance-statistics/labels", headers=auth("d1"))
        assert resp.json()["data"] == ["JAN 2025", "FEB 2025"]

        resp = client.post("/api/performance-statistics/labels/filter",
                           json={"districtIds": [1]}, headers=auth("d1"))
        assert resp.json()["data"] == ["FEB 2025"]

    def test_report_values(self, client, auth, add_fact):
        add_fact(4, 1, "FEB 2025", "4")
        add_fact(5, 1, "FEB 2025", "6")
        resp = client.post("/api/performance-statistics/report-values",
                           json={"type": "range", "id": 1, "questionId": 1},
                           headers=auth("range"))
        assert resp.json()["data"] == [{"monthYear": "FEB 2025", "totalValue": 10}]

    @pytest.mark.parametrize("body", [
        {"type": "multiUser", "id": 4, "userIds": [5], "questionId": 1},
        {"type": "range", "id": 1, "userIds": [4], "questionId": 1},
    ])
    def test_report_values_ambiguous_users(self, client, auth, body):
        resp = client.post("/api/performance-statistics/report-values", json=body,
                           headers=auth("admin"))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION"

    def test_delete(self, client, auth, add_fact):
        stat_id = add_fact(4, 1, "MAR 2025", "1", status="INPROGRESS")
        assert client.delete(f"/api/performance-statistics/{stat_id}",
                             headers=auth("d2")).status_code == 403
        assert client.delete(f"/api/performance-statistics/{stat_id}",
                             headers=auth("d1")).status_code == 200
        assert client.delete(f"/api/performance-statistics/{stat_id}",
                             headers=auth("d1")).status_code == 404

    def test_delete_finalized_conflicts(self, client, auth, add_fact):
        stat_id = add_fact(4, 1, "MAR 2025", "1")
        resp = client.delete(f"/api/performance-statistics/{stat_id}", headers=auth("d1"))
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "CONFLICT"


# ── /api/reports ──────────────────────────────────────────────────────────────

class TestReports:
    def test_generate(self, client, auth, add_fact):
        add_fact(4, 1, "JAN 2025", "10")
        add_fact(5, 1, "FEB 2025", "5")
        resp = client.post("/api/reports/generate",
                           json={"rangeIds": [1], "questionIds": [1],
                                 "startMonth": "01:2025", "endMonth": "02:2025"},
                           headers=auth("admin"))
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["labels"] == ["JAN 2025", "FEB 2025"]
        assert {d["label"]: d["data"] for d in data["datasets"]} == {
            "Ashford": [10, 0], "Brookfield": [0, 5],
        }

    def test_generate_out_of_scope(self, client, auth):
        resp = client.post("/api/reports/generate", json={"stateIds": [2]},
                           headers=auth("state"))
        assert resp.status_code == 403

    def test_generate_bad_months(self, client, auth):
        resp = client.post("/api/reports/generate",
                           json={"startMonth": "2025-01", "endMonth": "02:2025"},
                           headers=auth("admin"))
        assert resp.status_code == 400

    def test_excel(self, client, auth, add_fact):
        add_fact(4, 1, "JAN 2025", "10")
        resp = client.post("/api/reports/excel", json={"questionIds": [1]},
                           headers=auth("admin"))
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith(
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet")
        assert "attachment" in resp.headers["content-disposition"]
        assert resp.content[:2] == b"PK"

    def test_district_excel(self, client, auth, add_fact):
        add_fact(4, 1, "JAN 2025", "10")
        resp = client.post("/api/reports/district-excel", json={}, headers=auth("d1"))
        assert resp.status_code == 200
        assert resp.content[:2] == b"PK"


# ── /api/reference ────────────────────────────────────────────────────────────

class TestReference:
    def test_states(self, client, auth):
        resp = client.get("/api/reference/states", headers=auth("d1"))
        assert [s["stateName"] for s in resp.json()["data"]] == ["Alpha State", "Beta State"]

    def test_ranges_by_state(self, client, auth):
        resp = client.get("/api/reference/ranges", params={"stateId": 1}, headers=auth("d1"))
        assert [r["rangeName"] for r in resp.json()["data"]] == ["North Range", "South Range"]

    def test_districts_by_range(self, client, auth):
        resp = client.get("/api/reference/districts", params={"rangeId": 1},
                          headers=auth("d1"))
        assert [d["districtName"] for d in resp.json()["data"]] == ["Ashford", "Brookfield"]
