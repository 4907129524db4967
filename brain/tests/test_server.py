"""
Tests for the Brain server endpoints

A pipeline over an in-memory store is installed before the app starts so the
lifespan hook leaves it in place.
"""

import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def client(pipeline):
    from brain.intake import server
    server.pipeline = pipeline
    with TestClient(server.app) as client:
        yield client
    server.pipeline = None


def _post_capture(client, classifier, text, **classification):
    classifier.push(classification)
    return client.post("/captures", json={"text": text})


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["initialized"] is True
        assert data["classifier"] == "ScriptedClassifier"
        assert data["pending_reviews"] == 0

    def test_uninitialized_pipeline(self):
        from brain.intake import server
        server.pipeline = None
        client = TestClient(server.app)
        assert client.post("/captures", json={"text": "x"}).status_code == 503


class TestCaptures:
    def test_filed(self, client, classifier):
        response = _post_capture(client, classifier, "Book the venue", type="task", confidence=0.9,
                                 task_name="Book the venue")
        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "Filed"
        assert data["destination"]["table"] == "tasks"
        assert data["reason"] is None

    def test_queued(self, client, classifier):
        data = _post_capture(client, classifier, "maybe", type="task", confidence=0.2).json()
        assert data["status"] == "Queued"
        assert data["reason"] == "low_confidence"
        assert data["destination"] is None

    def test_empty_text_is_422(self, client, classifier, store):
        response = client.post("/captures", json={"text": "   "})
        assert response.status_code == 422
        assert response.json()["error"] == "ValidationFailed"
        assert store.select("captures") == []

    def test_list_and_filters(self, client, classifier):
        _post_capture(client, classifier, "Call Dana", type="person", confidence=0.95, contact_name="Dana")
        _post_capture(client, classifier, "Podcast idea", type="content", confidence=0.65)

        everything = client.get("/captures").json()
        assert everything["count"] == 2
        assert everything["items"][0]["raw_text"] == "Podcast idea"

        medium = client.get("/captures", params={"confidence": "medium"}).json()
        assert [i["raw_text"] for i in medium["items"]] == ["Podcast idea"]

        filed = client.get("/captures", params={"status": "filed"}).json()
        assert [i["status"] for i in filed["items"]] == ["Filed"]

    def test_bad_filter_is_422(self, client):
        assert client.get("/captures", params={"sort": "random"}).status_code == 422

    def test_stats(self, client, classifier):
        _post_capture(client, classifier, "Call Dana", type="person", confidence=0.95, contact_name="Dana")
        stats = client.get("/captures/stats").json()
        assert stats["total"] == 1
        assert stats["filed"] == 1

    def test_export(self, client, classifier):
        _post_capture(client, classifier, "milk, eggs", type="task", confidence=0.3)
        response = client.get("/captures/export")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment" in response.headers["content-disposition"]
        assert '"milk, eggs"' in response.text

    def test_correct(self, client, classifier):
        capture_id = _post_capture(client, classifier, "Gym at 7", type="task", confidence=0.9,
                                   task_name="Gym at 7").json()["capture_id"]

        response = client.post(f"/captures/{capture_id}/correct", json={"category": "health", "note": "workout"})

        assert response.status_code == 200
        assert response.json()["destination"]["table"] == "health_entries"
        again = client.post(f"/captures/{capture_id}/correct", json={"category": "task", "note": "again"})
        assert again.status_code == 409

    def test_correct_missing_is_404(self, client):
        response = client.post("/captures/missing/correct", json={"category": "task", "note": "x"})
        assert response.status_code == 404


class TestReview:
    @pytest.fixture
    def queued(self, client, classifier):
        return [
            _post_capture(client, classifier, f"item {i}", type="task", confidence=0.1,
                          task_name=f"Item {i}").json()["capture_id"]
            for i in range(3)
        ]

    def test_list(self, client, queued):
        data = client.get("/review").json()
        assert data["pending_count"] == 3
        assert data["items"][0]["id"] == queued[-1]
        assert data["items"][0]["suggested_fields"]["task_name"] == "Item 2"

    def test_get_item(self, client, queued):
        data = client.get(f"/review/{queued[0]}").json()
        assert data["reason"] == "low_confidence"
        assert "CAPTURE:" in data["formatted"]

    def test_skip_and_batch_skip(self, client, queued):
        assert client.post(f"/review/{queued[0]}/skip").status_code == 200
        assert client.post(f"/review/{queued[0]}/skip").status_code == 409

        data = client.post("/review/skip", json={"ids": [queued[0], queued[1], queued[2]]}).json()
        assert data["skipped"] == 2
        assert data["failed"] == 1
        assert [r["ok"] for r in data["results"]] == [False, True, True]
        assert client.get("/review").json()["pending_count"] == 0

    def test_accept(self, client, queued, store):
        response = client.post(f"/review/{queued[0]}/accept", json={"fields": {"priority": 1}})
        assert response.status_code == 200
        destination = response.json()["destination"]
        assert store.get("tasks", destination["id"])["is_top_priority"] is True

    def test_accept_materialization_failure_is_502(self, client, queued, pipeline):
        from unittest.mock import patch
        from brain.common.errors import MaterializationFailed
        failure = MaterializationFailed("task", {"name": "Item 0"}, "store offline")
        with patch.object(pipeline.materializer, "materialize", side_effect=failure):
            response = client.post(f"/review/{queued[0]}/accept", json={})
        assert response.status_code == 502
        assert response.json()["fields"] == {"name": "Item 0"}
        assert response.json()["category"] == "task"

    def test_discard(self, client, queued):
        assert client.delete(f"/review/{queued[0]}").json()["status"] == "discarded"
        assert client.delete(f"/review/{queued[0]}").status_code == 404


class TestKnowledge:
    @pytest.fixture
    def task_id(self, store):
        store.insert("tasks", {"id": "t1", "name": "Plan launch event", "description": "venue", "project_id": "P"})
        store.insert("knowledge_items", {"id": "k1", "type": "note", "content": "great venue", "project_id": "P"})
        store.insert("knowledge_items", {"id": "k2", "type": "link", "content": "other", "project_id": "P"})
        return "t1"

    def test_search(self, client, task_id):
        data = client.post("/knowledge/search", json={"taskId": task_id}).json()
        assert data["task"]["name"] == "Plan launch event"
        assert [i["id"] for i in data["knowledgeItems"]] == ["k1", "k2"]

    def test_search_missing_task(self, client):
        assert client.post("/knowledge/search", json={"taskId": "nope"}).status_code == 404

    def test_sync_links(self, client, task_id):
        response = client.put(f"/tasks/{task_id}/knowledge-links", json={"knowledge_item_ids": ["k2"]})
        assert response.json() == {"task_id": "t1", "linked": ["k2"], "unlinked": []}

        data = client.post("/knowledge/search", json={"taskId": task_id}).json()
        assert data["linkedCount"] == 1
        assert data["knowledgeItems"][0]["id"] == "k2"


class TestHandlers:
    def test_routes_run_off_the_event_loop(self):
        import inspect
        from fastapi.routing import APIRoute
        from brain.intake import server
        routes = [route for route in server.app.routes if isinstance(route, APIRoute)]
        assert routes
        assert [r.path for r in routes if inspect.iscoroutinefunction(r.endpoint)] == []
