"""
Catalog endpoint tests: /api/modules, /api/topics, /api/sub-topics, /api/questions.
"""

import pytest

pytest.importorskip("fastapi")
pytest.importorskip("httpx")


class TestCatalogReads:
    def test_list_modules(self, client, auth):
        resp = client.get("/api/modules", headers=auth("d1"))
        assert resp.status_code == 200
        body = resp.json()
        assert [m["name"] for m in body["data"]] == ["Crime", "Traffic"]
        assert body["pagination"]["totalItems"] == 2

    def test_list_topics_by_module(self, client, auth):
        resp = client.get("/api/topics", params={"moduleId": 1, "limit": 2},
                          headers=auth("d1"))
        body = resp.json()
        assert [t["name"] for t in body["data"]] == ["Cases", "Arrests"]
        assert body["pagination"]["hasNext"] is True
        assert body["data"][0]["formType"] == "NORMAL"

    def test_get_question(self, client, auth):
        resp = client.get("/api/questions/5", headers=auth("d1"))
        data = resp.json()["data"]
        assert data["defaultVal"] == "QUESTION"
        assert data["defaultQue"] == 1

    def test_get_missing(self, client, auth):
        resp = client.get("/api/sub-topics/99", headers=auth("d1"))
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "NOT_FOUND"

    def test_requires_token(self, client):
        assert client.get("/api/modules").status_code == 401


class TestCatalogWrites:
    def test_non_admin_cannot_write(self, client, auth):
        resp = client.post("/api/modules", json={"name": "Cyber"}, headers=auth("state"))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "ACCESS_DENIED"

    def test_create_update_delete_topic(self, client, auth):
        created = client.post("/api/topics",
                              json={"moduleId": 2, "name": "Signals", "formType": "Q/ST",
                                    "startMonth": 4, "endMonth": 9},
                              headers=auth("admin"))
        assert created.status_code == 200
        topic = created.json()["data"]
        assert created.json()["message"] == "Topic created"
        assert topic["priority"] == 2
        assert topic["formType"] == "Q/ST"

        updated = client.put(f"/api/topics/{topic['id']}", json={"name": "Signal Checks"},
                             headers=auth("admin"))
        assert updated.json()["data"]["name"] == "Signal Checks"
        assert updated.json()["data"]["startMonth"] == 4

        deleted = client.delete(f"/api/topics/{topic['id']}", headers=auth("admin"))
        assert deleted.status_code == 200
        assert client.get(f"/api/topics/{topic['id']}",
                          headers=auth("admin")).status_code == 404

    @pytest.mark.parametrize("path,body", [
        ("/api/modules/1", {"priority": None}),
        ("/api/topics/1", {"isShowPrevious": None}),
        ("/api/topics/1", {"isShowCummulative": None}),
        ("/api/topics/1", {"formType": None}),
        ("/api/questions/1", {"question": None}),
    ])
    def test_null_for_required_column_is_rejected(self, client, auth, path, body):
        resp = client.put(path, json=body, headers=auth("admin"))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION"

    def test_null_clears_optional_column(self, client, auth):
        resp = client.put("/api/topics/4", json={"startMonth": None, "endMonth": None},
                          headers=auth("admin"))
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert (data["startMonth"], data["endMonth"]) == (None, None)
        assert data["formType"] == "NORMAL"

    def test_duplicate_name_conflicts(self, client, auth):
        resp = client.post("/api/modules", json={"name": "crime"}, headers=auth("admin"))
        assert resp.status_code == 409

    def test_invalid_default_value(self, client, auth):
        resp = client.post("/api/questions",
                           json={"topicId": 1, "question": "New", "defaultVal": "LAST"},
                           headers=auth("admin"))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION"

    def test_create_question_with_subtopic(self, client, auth):
        resp = client.post("/api/questions",
                           json={"topicId": 2, "subTopicId": 1, "question": "Adults held"},
                           headers=auth("admin"))
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["subTopicId"] == 1
        assert data["defaultVal"] == "NONE"
