"""
Flask web server for Research Lineage.

Routes
──────
POST   /api/research                      Run discovery, create a session
GET    /api/history                       List history entries (JSON)
DELETE /api/history                       Clear all history
GET    /api/history/<id>                  Fetch a full session
DELETE /api/history/<id>                  Delete a session
POST   /api/history/<id>/activate         Make a session active, return its chat
POST   /api/history/<id>/timeline         (Re)generate the timeline image
POST   /api/history/<id>/review           (Re)generate the literature review
POST   /api/history/<id>/chat             Send a follow-up chat message
GET    /api/history/<id>/export           Download the session as markdown
GET    /api/history/<id>/chat/export      Download the active chat transcript
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional

from dotenv import load_dotenv
from flask import Flask, Response, jsonify, request
from pydantic import ValidationError

# Allow running as `python web/app.py` from the project root
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from config.settings import Settings
from core.errors import CredentialMissing, ResearchError, SessionNotFound
from core.export import export_filename, export_markdown
from core.history import HistoryStore, SQLiteBackend
from core.models import GenerationConfig, ImageSize, Session
from core.pipeline import ResearchOrchestrator
from core.transport import GeminiTransport, build_transport

logger = logging.getLogger(__name__)


def build_orchestrator(settings: Settings) -> ResearchOrchestrator:
    """Wire the store and transports described by *settings*."""
    store = HistoryStore(SQLiteBackend(settings.db_path), capacity=settings.history_capacity)
    return ResearchOrchestrator(
        settings,
        store,
        text_transport=build_transport(settings.text_provider, settings),
        image_transport=GeminiTransport(api_key=settings.gemini_api_key),
    )


def _session_json(session: Session) -> dict:
    return session.model_dump(mode="json", by_alias=True)


def _chat_json(orchestrator: ResearchOrchestrator) -> list[dict]:
    if orchestrator.chat is None:
        return []
    return [m.model_dump() for m in orchestrator.chat.messages]


def _markdown_download(content: str, filename: str) -> Response:
    return Response(
        content,
        mimetype="text/markdown",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def create_app(
    settings: Optional[Settings] = None,
    orchestrator: Optional[ResearchOrchestrator] = None,
) -> Flask:
    """Build the Flask app around an orchestrator."""
    settings = settings or Settings()
    orchestrator = orchestrator or build_orchestrator(settings)

    app = Flask(__name__)

    # ── Errors ─────────────────────────────────────────────────────────────

    @app.errorhandler(SessionNotFound)
    def session_not_found(exc: SessionNotFound):
        return jsonify({"error": str(exc), "kind": exc.kind}), 404

    @app.errorhandler(ResearchError)
    def research_failed(exc: ResearchError):
        logger.exception("Stage failed: %s", exc)
        status = 401 if isinstance(exc, CredentialMissing) else 502
        return jsonify({"error": str(exc), "kind": exc.kind}), status

    @app.errorhandler(ValidationError)
    def invalid_options(exc: ValidationError):
        return jsonify({"error": "Invalid options", "details": exc.errors(include_url=False, include_context=False)}), 400

    @app.errorhandler(ValueError)
    def invalid_input(exc: ValueError):
        return jsonify({"error": str(exc)}), 400

    # ── Research ───────────────────────────────────────────────────────────

    @app.route("/api/research", methods=["POST"])
    def research():
        """Run the discovery stage.

        Body: ``{"topic": "...", "config": {focus, count, language, citationStyle}}``
        """
        body = request.get_json(silent=True) or {}
        topic = str(body.get("topic", "")).strip()
        if not topic:
            return jsonify({"error": "topic is required"}), 400
        config = GenerationConfig.model_validate(body.get("config") or {})

        session = orchestrator.research(topic, config)
        return jsonify(_session_json(session)), 201

    # ── History API ────────────────────────────────────────────────────────

    @app.route("/api/history")
    def list_history():
        """Return history entries, newest first, without their payloads."""
        return jsonify(
            [
                {
                    "id": s.id,
                    "topic": s.topic,
                    "timestamp": s.timestamp,
                    "articles": len(s.result.articles),
                    "hasTimeline": s.timeline_image is not None,
                    "hasReview": s.literature_review is not None,
                    "active": s.id == orchestrator.active_id,
                }
                for s in orchestrator.store.sessions
            ]
        )

    @app.route("/api/history", methods=["DELETE"])
    def clear_history():
        orchestrator.clear()
        return jsonify({"cleared": True})

    @app.route("/api/history/<session_id>")
    def get_history_entry(session_id: str):
        session = orchestrator.store.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return jsonify(_session_json(session))

    @app.route("/api/history/<session_id>", methods=["DELETE"])
    def delete_history_entry(session_id: str):
        if session_id not in orchestrator.store:
            raise SessionNotFound(session_id)
        orchestrator.delete(session_id)
        return jsonify({"deleted": session_id})

    @app.route("/api/history/<session_id>/activate", methods=["POST"])
    def activate(session_id: str):
        session = orchestrator.activate(session_id)
        return jsonify({"session": _session_json(session), "messages": _chat_json(orchestrator)})

    # ── Optional stages ────────────────────────────────────────────────────

    @app.route("/api/history/<session_id>/timeline", methods=["POST"])
    def timeline(session_id: str):
        body = request.get_json(silent=True) or {}
        size = ImageSize(body.get("size", ImageSize.TWO_K.value))
        session = orchestrator.generate_timeline(session_id, size)
        return jsonify(_session_json(session))

    @app.route("/api/history/<session_id>/review", methods=["POST"])
    def review(session_id: str):
        body = request.get_json(silent=True) or {}
        style = body.get("citation_style") or body.get("citationStyle")
        session = orchestrator.generate_review(session_id, style)
        return jsonify(_session_json(session))

    @app.route("/api/history/<session_id>/chat", methods=["POST"])
    def chat(session_id: str):
        body = request.get_json(silent=True) or {}
        orchestrator.send_chat(session_id, str(body.get("message", "")))
        return jsonify({"messages": _chat_json(orchestrator)})

    # ── Export ─────────────────────────────────────────────────────────────

    @app.route("/api/history/<session_id>/export")
    def export_session(session_id: str):
        session = orchestrator.store.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return _markdown_download(export_markdown(session), export_filename(session.topic))

    @app.route("/api/history/<session_id>/chat/export")
    def export_chat(session_id: str):
        """Download the transcript of the active session's chat.

        Export never switches sessions; any other session answers 409.
        """
        session = orchestrator.store.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        chat = orchestrator.active_chat(session_id)
        if chat is None:
            return jsonify({"error": "Session is not active", "kind": "session_not_active"}), 409
        return _markdown_download(
            chat.export_markdown(),
            export_filename(session.topic, prefix="chat"),
        )

    return app


# ── Entry point ────────────────────────────────────────────────────────────

if __name__ == "__main__":
    load_dotenv()
    logging.basicConfig(level=logging.INFO)
    settings = Settings()
    settings.validate()
    create_app(settings).run(debug=settings.debug, host="0.0.0.0", port=settings.port)
