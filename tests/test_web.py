"""Tests for web/app.py — Flask JSON API over a scripted orchestrator."""

from __future__ import annotations

import pytest

from conftest import FakeTransport, make_settings
from core.errors import CredentialMissing
from core.pipeline import ResearchOrchestrator
from core.transport import ContentPart, GenerationResponse
from web.app import create_app


@pytest.fixture
def orchestrator(store):
    return ResearchOrchestrator(
        make_settings(),
        store,
        text_transport=FakeTransport(),
        image_transport=FakeTransport(),
    )


@pytest.fixture
def client(orchestrator):
    app = create_app(settings=make_settings(), orchestrator=orchestrator)
    app.config["TESTING"] = True
    return app.test_client()


@pytest.fixture
def created(client, orchestrator, discovery_json) -> dict:
    orchestrator.text_transport.script.append(discovery_json)
    response = client.post("/api/research", json={"topic": "CRISPR", "config": {"focus": "recent"}})
    assert response.status_code == 201
    return response.get_json()


class TestResearchRoute:
    def test_creates_session(self, created):
        assert created["topic"] == "CRISPR"
        assert created["config"]["focus"] == "recent"
        assert len(created["result"]["articles"]) == 3
        assert created["timelineImage"] is None

    def test_blank_topic_is_400(self, client):
        assert client.post("/api/research", json={"topic": "  "}).status_code == 400

    def test_invalid_config_is_400(self, client):
        response = client.post("/api/research", json={"topic": "x", "config": {"count": 7}})
        assert response.status_code == 400

    def test_malformed_output_is_502(self, client, orchestrator):
        orchestrator.text_transport.script.append("I cannot help.")
        response = client.post("/api/research", json={"topic": "CRISPR"})
        assert response.status_code == 502
        assert response.get_json()["kind"] == "malformed_output"
        assert client.get("/api/history").get_json() == []

    def test_missing_credential_is_401(self, client, orchestrator):
        orchestrator.text_transport.script.append(CredentialMissing("no key"))
        response = client.post("/api/research", json={"topic": "CRISPR"})
        assert response.status_code == 401


class TestHistoryRoutes:
    def test_list_and_get(self, client, created):
        listing = client.get("/api/history").get_json()
        assert listing[0]["id"] == created["id"]
        assert listing[0]["active"] is True

        entry = client.get(f"/api/history/{created['id']}").get_json()
        assert entry["result"]["suggestedVisualPrompt"] == "A timeline of CRISPR"

    def test_get_missing_is_404(self, client):
        assert client.get("/api/history/nope").status_code == 404

    def test_delete(self, client, created):
        assert client.delete(f"/api/history/{created['id']}").get_json() == {"deleted": created["id"]}
        assert client.delete(f"/api/history/{created['id']}").status_code == 404

    def test_clear(self, client, created):
        assert client.delete("/api/history").status_code == 200
        assert client.get("/api/history").get_json() == []


class TestStageRoutes:
    def test_timeline(self, client, orchestrator, created):
        orchestrator.image_transport.script.append(
            GenerationResponse(parts=[ContentPart(mime_type="image/jpeg", data=b"JPG")])
        )
        response = client.post(f"/api/history/{created['id']}/timeline", json={"size": "1K"})
        assert response.status_code == 200
        assert response.get_json()["timelineImage"].startswith("data:image/jpeg;base64,")

    def test_timeline_bad_size_is_400(self, client, created):
        response = client.post(f"/api/history/{created['id']}/timeline", json={"size": "8K"})
        assert response.status_code == 400

    def test_review(self, client, orchestrator, created):
        orchestrator.text_transport.script.append("# Review")
        response = client.post(f"/api/history/{created['id']}/review", json={"citation_style": "ieee"})
        assert response.get_json()["literatureReview"] == "# Review"

    def test_chat(self, client, orchestrator, created):
        orchestrator.text_transport.script.append("An answer")
        response = client.post(f"/api/history/{created['id']}/chat", json={"message": "A question"})
        messages = response.get_json()["messages"]
        assert [m["role"] for m in messages] == ["assistant", "user", "assistant"]
        assert messages[-1]["text"] == "An answer"

    def test_unknown_session_is_404(self, client):
        assert client.post("/api/history/nope/review", json={}).status_code == 404


class TestExportRoutes:
    def test_session_export(self, client, created):
        response = client.get(f"/api/history/{created['id']}/export")
        assert response.mimetype == "text/markdown"
        assert "DeepResearch-crispr.md" in response.headers["Content-Disposition"]
        assert response.get_data(as_text=True).startswith("# DeepResearch: CRISPR")

    def test_chat_export(self, client, created):
        response = client.get(f"/api/history/{created['id']}/chat/export")
        assert "chat-crispr.md" in response.headers["Content-Disposition"]
        assert response.get_data(as_text=True).startswith("# Research Chat - CRISPR")

    def test_chat_export_of_inactive_session_is_409(self, client, orchestrator, created, discovery_json):
        orchestrator.text_transport.script.append(discovery_json)
        second = client.post("/api/research", json={"topic": "Gene drives"}).get_json()

        response = client.get(f"/api/history/{created['id']}/chat/export")

        assert response.status_code == 409
        assert response.get_json()["kind"] == "session_not_active"
        assert orchestrator.active_id == second["id"]

    def test_chat_export_missing_is_404(self, client):
        assert client.get("/api/history/nope/chat/export").status_code == 404
