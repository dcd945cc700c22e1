"""Tests for core/pipeline.py — stages and the orchestrator."""

from __future__ import annotations

import base64
import json
import threading

import pytest

from conftest import FakeTransport, discovery_payload, make_settings
from core.chat import APOLOGY
from core.errors import (
    CredentialMissing,
    EmptyResponse,
    MalformedOutput,
    NoImagePayload,
    SessionNotFound,
    TransportFailure,
)
from core.models import CitationStyle, Focus, GenerationConfig, ImageSize, Language
from core.pipeline import ResearchOrchestrator, discover, render_timeline, write_review
from core.prompts import IEEE_ORDER_RULE
from core.transport import ContentPart, GenerationResponse

PNG = b"\x89PNG\r\n\x1a\nfake"


def image_response(data: bytes = PNG) -> GenerationResponse:
    return GenerationResponse(
        text="Here is your timeline.",
        parts=[ContentPart(text="Here is your timeline."), ContentPart(mime_type="image/png", data=data)],
    )


def make_orchestrator(store, text=(), image=()):
    return ResearchOrchestrator(
        make_settings(),
        store,
        text_transport=FakeTransport(*text),
        image_transport=FakeTransport(*image),
    )


# ── Stage functions ────────────────────────────────────────────────────────


class TestDiscover:
    def test_fenced_response_recovers(self, discovery_json):
        transport = FakeTransport(f"Sure! ```json\n{discovery_json}\n```")
        result = discover(transport, "CRISPR", GenerationConfig(), model="m")

        assert result.topic == "CRISPR"
        assert [a.title for a in result.articles] == ["Paper 1", "Paper 2", "Paper 3"]

    def test_request_uses_search_and_thinking(self, discovery_json):
        transport = FakeTransport(discovery_json)
        config = GenerationConfig(focus=Focus.RECENT, language=Language.ZH)
        discover(transport, "CRISPR", config, model="m", thinking_budget=2048)

        request = transport.requests[0]
        assert request.use_search is True
        assert request.thinking_budget == 2048
        assert request.model == "m"
        assert "Chinese (Simplified)" in request.instruction

    def test_refusal_raises_malformed(self):
        with pytest.raises(MalformedOutput):
            discover(FakeTransport("I cannot help."), "CRISPR", GenerationConfig(), model="m")

    def test_empty_response_raises(self):
        with pytest.raises(EmptyResponse):
            discover(FakeTransport(""), "CRISPR", GenerationConfig(), model="m")

    def test_blank_topic_raises(self):
        with pytest.raises(ValueError, match="empty"):
            discover(FakeTransport(), "   ", GenerationConfig(), model="m")

    def test_article_order_preserved_and_capped(self):
        payload = discovery_payload(n=8)
        payload["articles"].reverse()
        transport = FakeTransport(json.dumps(payload))

        result = discover(transport, "CRISPR", GenerationConfig(), model="m", max_articles=5)

        assert [a.title for a in result.articles] == [f"Paper {i}" for i in (8, 7, 6, 5, 4)]


class TestRenderTimeline:
    def test_returns_first_inline_image_as_data_uri(self):
        transport = FakeTransport(image_response())
        uri = render_timeline(transport, "A timeline", ImageSize.FOUR_K, Language.JA, model="img")

        assert uri == "data:image/png;base64," + base64.b64encode(PNG).decode()
        request = transport.requests[0]
        assert request.image_size == "4K"
        assert request.aspect_ratio == "16:9"
        assert "Japanese" in request.prompt

    def test_text_only_response_raises(self):
        with pytest.raises(NoImagePayload):
            render_timeline(FakeTransport("No image, sorry."), "p", "2K", "en", model="img")

    def test_unknown_size_raises(self):
        with pytest.raises(ValueError):
            render_timeline(FakeTransport(), "p", "3K", "en", model="img")


class TestWriteReview:
    def test_returns_stripped_text(self, sample_result):
        transport = FakeTransport("\n# Review\nBody [1].\n")
        review = write_review(transport, sample_result, "en", CitationStyle.IEEE, model="r")

        assert review == "# Review\nBody [1]."
        assert IEEE_ORDER_RULE in transport.requests[0].prompt

    def test_empty_review_raises(self, sample_result):
        with pytest.raises(EmptyResponse):
            write_review(FakeTransport("  "), sample_result, "en", "apa", model="r")


# ── Orchestrator ───────────────────────────────────────────────────────────


class TestResearch:
    def test_creates_active_session(self, store, discovery_json):
        orch = make_orchestrator(store, text=[discovery_json])
        config = GenerationConfig(focus=Focus.CLASSIC, count=20)

        session = orch.research("  CRISPR ", config)

        assert store.sessions == [session]
        assert session.topic == "CRISPR"
        assert session.config == config
        assert session.timeline_image is None and session.literature_review is None
        assert orch.active_id == session.id
        assert orch.chat.messages[0].role == "assistant"

    @pytest.mark.parametrize(
        "failure",
        [
            "I cannot help.",
            "",
            CredentialMissing("ANTHROPIC_API_KEY is missing."),
            TransportFailure("connection reset"),
        ],
    )
    def test_failure_creates_nothing(self, store, failure):
        orch = make_orchestrator(store, text=[failure])
        with pytest.raises((MalformedOutput, EmptyResponse, CredentialMissing, TransportFailure)):
            orch.research("CRISPR")
        assert len(store) == 0
        assert orch.active_id is None

    def test_session_ids_are_unique(self, store, discovery_json):
        orch = make_orchestrator(store, text=[discovery_json, discovery_json])
        first = orch.research("CRISPR")
        second = orch.research("CRISPR")
        assert first.id != second.id
        assert [s.id for s in store.sessions] == [second.id, first.id]


class TestGenerateTimeline:
    def test_regeneration_replaces_image(self, store, discovery_json):
        orch = make_orchestrator(
            store,
            text=[discovery_json, discovery_json],
            image=[image_response(b"one"), image_response(b"two")],
        )
        other = orch.research("Other")
        session = orch.research("CRISPR")

        orch.generate_timeline(session.id)
        updated = orch.generate_timeline(session.id, "1K")

        assert updated.timeline_image.endswith(base64.b64encode(b"two").decode())
        assert updated.id == session.id
        assert updated.result == session.result
        assert store.get(other.id) == other
        assert orch.image_transport.requests[0].prompt.endswith("A timeline of CRISPR")

    def test_failure_keeps_previous_image(self, store, discovery_json):
        orch = make_orchestrator(
            store,
            text=[discovery_json],
            image=[image_response(b"one"), GenerationResponse(text="nope")],
        )
        session = orch.research("CRISPR")
        first = orch.generate_timeline(session.id).timeline_image

        with pytest.raises(NoImagePayload):
            orch.generate_timeline(session.id)
        assert store.get(session.id).timeline_image == first

    def test_unknown_session_raises(self, store):
        with pytest.raises(SessionNotFound):
            make_orchestrator(store).generate_timeline("missing")


class TestGenerateReview:
    def test_style_overrides_config_and_replaces_review(self, store, discovery_json):
        orch = make_orchestrator(store, text=[discovery_json, "First review", "Second review"])
        session = orch.research("CRISPR", GenerationConfig(citation_style=CitationStyle.APA))

        orch.generate_review(session.id)
        updated = orch.generate_review(session.id, CitationStyle.IEEE)

        assert updated.literature_review == "Second review"
        assert updated.config.citation_style == CitationStyle.APA
        requests = orch.text_transport.requests
        assert "APA 7th Edition" in requests[1].prompt
        assert IEEE_ORDER_RULE in requests[2].prompt

    def test_failure_keeps_previous_review(self, store, discovery_json):
        orch = make_orchestrator(
            store, text=[discovery_json, "Kept", TransportFailure("503")]
        )
        session = orch.research("CRISPR")
        orch.generate_review(session.id)

        with pytest.raises(TransportFailure):
            orch.generate_review(session.id)
        assert store.get(session.id).literature_review == "Kept"


class TestActiveSession:
    def test_switching_rebuilds_chat(self, store):
        orch = make_orchestrator(
            store,
            text=[
                json.dumps(discovery_payload("A")),
                json.dumps(discovery_payload("B")),
                "Answer about A",
            ],
        )
        a = orch.research("A")
        b = orch.research("B")

        orch.send_chat(a.id, "Tell me about A")
        assert orch.active_id == a.id
        assert len(orch.chat.messages) == 3

        orch.activate(b.id)
        assert orch.chat.result.topic == "B"
        assert len(orch.chat.messages) == 1

    def test_reactivating_same_session_keeps_chat(self, store, discovery_json):
        orch = make_orchestrator(store, text=[discovery_json, TransportFailure("down")])
        session = orch.research("CRISPR")
        orch.send_chat(session.id, "Hello?")
        orch.activate(session.id)
        assert orch.chat.messages[-1].text == APOLOGY

    def test_deleting_active_session_clears_state(self, store, discovery_json):
        orch = make_orchestrator(store, text=[discovery_json, discovery_json])
        keep = orch.research("Keep")
        gone = orch.research("Gone")

        remaining = orch.delete(gone.id)

        assert remaining == [keep]
        assert orch.active_id is None
        assert orch.chat is None

    def test_deleting_other_session_keeps_active(self, store, discovery_json):
        orch = make_orchestrator(store, text=[discovery_json, discovery_json])
        other = orch.research("Other")
        active = orch.research("Active")

        orch.delete(other.id)
        assert orch.active_id == active.id

    def test_clear(self, store, discovery_json):
        orch = make_orchestrator(store, text=[discovery_json])
        orch.research("CRISPR")
        assert orch.clear() == []
        assert orch.active_id is None

    def test_switch_waits_for_chat_turn(self, store):
        orch = make_orchestrator(
            store,
            text=[json.dumps(discovery_payload("A")), json.dumps(discovery_payload("B"))],
        )
        a = orch.research("A")
        b = orch.research("B")
        switcher = threading.Thread(target=orch.activate, args=(b.id,))
        seen = {}

        class SwitchDuringTurn:
            def generate(self, request):
                seen["chat"] = orch.active_chat(a.id)
                switcher.start()
                switcher.join(timeout=0.2)
                seen["blocked"] = switcher.is_alive()
                return GenerationResponse(text="Answer about A")

        orch.text_transport = SwitchDuringTurn()
        reply = orch.send_chat(a.id, "Tell me about A")
        switcher.join(timeout=5)

        assert seen["blocked"] is True
        assert seen["chat"].result.topic == "A"
        assert seen["chat"].messages[-1] is reply
        assert reply.text == "Answer about A"
        assert orch.active_id == b.id
        assert orch.chat.result.topic == "B"

    def test_active_chat_only_for_active_session(self, store):
        orch = make_orchestrator(
            store,
            text=[json.dumps(discovery_payload("A")), json.dumps(discovery_payload("B"))],
        )
        a = orch.research("A")
        b = orch.research("B")

        assert orch.active_chat(a.id) is None
        assert orch.active_chat(b.id) is orch.chat
        assert orch.active_id == b.id
