"""
Integration tests for the API endpoints.

Uses FastAPI's TestClient with dependency overrides so that:
- No real embedding model is loaded
- No .env with API keys is needed
- HTTP status codes, response models and error handlers are exercised

Covers:
- GET  /                          → 200 + info
- GET  /health                    → 200 + HealthResponse
- GET  /agents                    → 200 + AgentInfo list
- POST /agents/{id}/messages      → 200 / 400 / 404 / 422 / 503, persisted=false
- POST /agents/{id}/documents     → 200 + DocumentResponse
- POST /agents/{id}/facts         → 200 + FactResponse
- GET  /nonexistent               → 404 + ErrorResponse
"""

from unittest.mock import AsyncMock, patch

from agent.errors import StorageUnavailable


# Root


class TestRootEndpoint:
    def test_root_returns_200(self, client):
        resp = client.get("/")
        assert resp.status_code == 200
        data = resp.json()
        assert data["message"] == "Deskmate API"
        assert data["agents"] == "/agents"


# Health


class TestHealthEndpoint:
    def test_health_returns_200(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["components"] == {"agents": "3", "database": "ok", "knowledge": "ok"}


# Agents


class TestAgentsEndpoint:
    def test_lists_every_agent(self, client):
        resp = client.get("/agents")
        assert resp.status_code == 200
        ids = sorted(a["id"] for a in resp.json())
        assert ids == ["artwork-analyzer", "general-assistant", "task-manager"]

    def test_agent_info_fields(self, client):
        agents = {a["id"]: a for a in client.get("/agents").json()}
        task_manager = agents["task-manager"]
        assert task_manager["context_markers"] == ["Task"]
        assert "task-manager-no-delete" in task_manager["constraints"]
        assert task_manager["handlers"][0]["name"] == "TaskManagerGreetingHandler"


# Messages


class TestMessagesEndpoint:
    def test_message_returns_reply(self, client):
        resp = client.post(
            "/agents/general-assistant/messages",
            json={"message": "hello", "user_id": "u1"},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["persisted"] is True
        assert data["error"] is None
        assert len(data["session_id"]) == 32
        assert data["metadata"]["handler_name"] == "GreetingHandler"

    def test_session_id_is_reused(self, client):
        first = client.post(
            "/agents/task-manager/messages",
            json={"message": "[Task: TSK-3] hi", "session_id": "abc"},
        )
        second = client.post(
            "/agents/task-manager/messages",
            json={"message": "show my tasks", "session_id": "abc"},
        )
        assert first.json()["session_id"] == second.json()["session_id"] == "abc"
        assert second.json()["metadata"]["task_ids"] == ["TSK-3"]

    def test_unknown_agent_returns_404(self, client):
        resp = client.post("/agents/billing/messages", json={"message": "hello"})
        assert resp.status_code == 404
        data = resp.json()
        assert data["type"] == "agent_not_found"
        assert "billing" in data["detail"]

    def test_blank_message_returns_400(self, client):
        resp = client.post("/agents/general-assistant/messages", json={"message": "   "})
        assert resp.status_code == 400
        assert resp.json()["type"] == "invalid_message"

    def test_missing_message_returns_422(self, client):
        resp = client.post("/agents/general-assistant/messages", json={})
        assert resp.status_code == 422
        assert resp.json()["type"] == "validation_error"

    def test_too_long_message_returns_422(self, client):
        resp = client.post(
            "/agents/general-assistant/messages", json={"message": "a" * 4001}
        )
        assert resp.status_code == 422

    def test_save_failure_returns_unpersisted_reply(self, client, services):
        failing_save = AsyncMock(side_effect=StorageUnavailable("disk full"))

        with patch.object(services.sessions, "save_session", failing_save):
            resp = client.post("/agents/general-assistant/messages", json={"message": "hello"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["persisted"] is False
        assert data["error"] == "disk full"
        assert data["content"]

    def test_load_failure_returns_503(self, client, services):
        failing_load = AsyncMock(side_effect=StorageUnavailable("database locked"))

        with patch.object(services.sessions, "load_or_create_session", failing_load):
            resp = client.post("/agents/general-assistant/messages", json={"message": "hello"})
        assert resp.status_code == 503
        data = resp.json()
        assert data["type"] == "storage_unavailable"
        assert "database locked" not in data["detail"]


# Knowledge and memory


class TestDocumentsEndpoint:
    def test_ingest_document(self, client):
        resp = client.post(
            "/agents/artwork-analyzer/documents",
            json={
                "id": "dtf-guide",
                "title": "DTF transfers",
                "content": "DTF transfers need curing at 160 degrees for 15 seconds.",
            },
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["document_id"] == "dtf-guide"
        assert data["chunks"] == data["embeddings"] == 1

    def test_empty_content_returns_422(self, client):
        resp = client.post(
            "/agents/artwork-analyzer/documents", json={"id": "x", "content": ""}
        )
        assert resp.status_code == 422


class TestFactsEndpoint:
    def test_store_fact(self, client):
        resp = client.post(
            "/agents/task-manager/facts",
            json={"content": "Maria is off on Fridays", "metadata": {"source": "hr"}},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["agent_id"] == "task-manager"
        assert data["metadata"] == {"source": "hr"}
        assert data["id"] > 0

    def test_blank_fact_returns_400(self, client):
        resp = client.post("/agents/task-manager/facts", json={"content": "  "})
        assert resp.status_code == 400


# 404


class TestNotFound:
    def test_unknown_endpoint_returns_404(self, client):
        resp = client.get("/nonexistent")
        assert resp.status_code == 404
        data = resp.json()
        assert data["type"] == "not_found"
        assert data["status"] == 404
