"""
Unit tests for the HTTP endpoints using FastAPI's TestClient.
"""
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from getpath.ai_gateway import AIGateway, get_gateway
from getpath.main import app
from getpath.rate_limit import RateLimiter
from getpath.routers import api as api_router
from getpath.store import get_store


ASSESSMENT = {
    "questions": [
        {"id": 1, "text": "Q1", "options": ["a", "b"], "correctAnswerIndex": 0, "difficulty": "beginner"},
        {"id": 2, "text": "Q2", "options": ["a", "b"], "correctAnswerIndex": 1, "difficulty": "advanced"},
    ]
}


@pytest.fixture
def server_key(monkeypatch):
    monkeypatch.setattr(api_router.settings, "gemini_api_key", None)
    return None


@pytest.fixture
def client(store, model, server_key):
    gateway = AIGateway(limiter=RateLimiter(0), model_factory=lambda k, m: model, server_api_key=server_key)
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_gateway] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()


HEADERS = {"apiKey": "user-key"}


class TestProxyEndpoints:

    def test_root(self, client):
        assert client.get("/").text == "GetPath API is running"

    def test_config(self, client):
        assert client.get("/api/config").json()["hasServerKey"] is False

    def test_missing_key_is_401(self, client):
        r = client.post("/api/assess", json={"topic": "Rust"})
        assert r.status_code == 401
        assert set(r.json()) == {"error", "details"}

    def test_missing_topic_is_400(self, client):
        r = client.post("/api/assess", json={}, headers=HEADERS)
        assert r.status_code == 400
        assert r.json()["error"] == "Topic required"

    def test_malformed_body_is_400(self, client):
        r = client.post("/api/generate-path", json={"topic": "Rust", "assessmentResults": "nope"}, headers=HEADERS)
        assert r.status_code == 400

    def test_assess(self, client, model):
        model.queue(f"Here you go!\n```json\n{json.dumps(ASSESSMENT)}\n```")
        r = client.post("/api/assess", json={"topic": "Rust"}, headers=HEADERS)
        assert r.status_code == 200
        assert r.json()["questions"][1]["correctAnswerIndex"] == 1

    def test_decode_failure_is_500_without_raw_text(self, client, model):
        model.queue("no json here, sorry")
        r = client.post("/api/quiz", json={"nodeContext": "Ownership"}, headers=HEADERS)
        assert r.status_code == 500
        assert "sorry" not in r.text
        assert "API key" in r.json()["error"]

    def test_upstream_failure_is_500(self, client, model):
        model.error = httpx.ReadTimeout("timed out")
        r = client.post("/api/quiz", json={"nodeContext": "Ownership"}, headers=HEADERS)
        assert r.status_code == 500
        assert "timed out" in r.json()["error"]

    def test_refine_reports_changes(self, client, model, path_nodes):
        refined = [dict(n) for n in path_nodes]
        refined[0]["title"] = "Getting Started"
        refined.append({"id": "node-9", "title": "Extra"})
        model.queue({"nodes": refined})
        r = client.post(
            "/api/refine-path",
            json={"topic": "Rust", "currentNodes": path_nodes, "feedback": "Add extra"},
            headers=HEADERS,
        )
        assert r.status_code == 200
        assert r.json()["changedIds"] == ["node-1", "node-9"]

    def test_refine_refused_for_finalized_path(self, client, store, path_nodes):
        store.save_path("Rust", {"nodes": path_nodes, "isFinalized": True})
        r = client.post(
            "/api/refine-path",
            json={"topic": "rust", "currentNodes": path_nodes, "feedback": "Add extra"},
            headers=HEADERS,
        )
        assert r.status_code == 400

    def test_generate_resources_attaches_to_node(self, client, model, store, path_nodes):
        store.save_path("Rust", {"nodes": path_nodes})
        model.queue({"resources": [{"type": "article", "title": "Book", "url": "rust book"}]})
        r = client.post(
            "/api/generate-resources",
            json={"topic": "Rust", "nodeTitle": "Core Concepts", "nodeDescription": "d", "nodeId": "node-2"},
            headers=HEADERS,
        )
        assert r.status_code == 200
        assert store.get_path("rust").nodes[1].resources[0].title == "Book"


class TestStoreEndpoints:

    def test_path_not_found(self, client):
        r = client.get("/api/path/Nothing")
        assert r.status_code == 404
        assert "error" in r.json()

    def test_save_get_history(self, client, path_nodes):
        assert client.put("/api/path/Rust", json={"summary": "s", "nodes": path_nodes}).status_code == 200
        assert client.get("/api/path/RUST").json()["topic"] == "Rust"
        assert client.get("/api/history").json() == [
            {"topic": "Rust", "summary": "s", "nodeCount": 3, "isFinalized": False}
        ]

    def test_finalize_unknown_topic(self, client):
        r = client.post("/api/path/ghost/finalize", json={"isFinalized": True})
        assert r.status_code == 404

    def test_finalize_and_complete(self, client, path_nodes):
        client.put("/api/path/Rust", json={"nodes": path_nodes})
        assert client.post("/api/path/rust/finalize", json={"isFinalized": True}).json()["isFinalized"] is True
        body = client.post("/api/path/rust/complete", json={"nodeId": "node-1"}).json()
        assert body["completedNodes"] == ["node-1"]

    def test_settings(self, client):
        client.put("/api/settings", json={"quizQuestionCount": 4})
        assert client.get("/api/settings").json()["quizQuestionCount"] == 4

    def test_export_import(self, client, path_nodes):
        client.put("/api/path/Rust", json={"nodes": path_nodes})
        exported = client.get("/api/export")
        assert "getpath_backup.json" in exported.headers["content-disposition"]
        client.delete("/api/path/Rust")
        r = client.post("/api/import", content=exported.content)
        assert r.json() == {"ok": True, "paths": 1}
        assert client.get("/api/export").json()["paths"] == exported.json()["paths"]

    @pytest.mark.parametrize("body", [b"not json", b'{"settings": {}}', b"[]"])
    def test_import_rejects_bad_backup(self, client, body):
        r = client.post("/api/import", content=body)
        assert r.status_code == 400


class TestSessionEndpoints:

    def test_full_flow(self, client, model, path_nodes):
        state = client.post("/api/session/start", json={"topic": "Rust"}, headers=HEADERS).json()["state"]
        sid = state["sessionId"]
        assert state["step"] == "assessment"

        model.queue(ASSESSMENT)
        state = client.post(f"/api/session/{sid}/assessment", headers=HEADERS).json()["state"]
        assert len(state["questions"]) == 2

        state = client.post(f"/api/session/{sid}/assessment/answers", json={"answers": {"1": 0, "2": 0}}).json()["state"]
        assert [r["correct"] for r in state["assessmentResults"]] == [True, False]

        model.queue({"summary": "Plan", "nodes": path_nodes})
        state = client.post(f"/api/session/{sid}/path").json()["state"]
        assert state["lockedNodes"] == ["node-2", "node-3"]

        assert client.post(f"/api/session/{sid}/nodes/node-1/open").status_code == 400
        client.post(f"/api/session/{sid}/finalize", json={"isFinalized": True})
        assert client.post(f"/api/session/{sid}/nodes/node-1/open").json()["state"]["step"] == "node"

        model.queue(ASSESSMENT)
        client.post(f"/api/session/{sid}/quiz")
        client.post(f"/api/session/{sid}/quiz/answers", json={"questionId": 1, "choiceIndex": 0})
        client.post(f"/api/session/{sid}/quiz/answers", json={"questionId": 2, "choiceIndex": 1})
        body = client.post(f"/api/session/{sid}/quiz/submit").json()
        assert body["checkpoint"] == {"score": 2, "total": 2, "passed": True}
        assert body["state"]["step"] == "path"
        assert body["state"]["lockedNodes"] == ["node-3"]
        assert body["state"]["currentNodeIndex"] == 1

    def test_unknown_session(self, client):
        assert client.get("/api/session/nope").status_code == 404
