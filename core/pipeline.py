"""
Research stage pipeline.

Stages
──────
1. discover(topic, config)          → DiscoveryResult         (required, first)
2. render_timeline(prompt, size)    → data URI of the image    (optional, repeatable)
3. write_review(result, style)      → markdown review          (optional, repeatable)
4. chat                             → see core.chat            (optional, many turns)

The module-level stage functions are pure request/response steps over a
transport. ``ResearchOrchestrator`` ties them to the history store: a
successful discovery creates a session, and stages 2-3 replace the matching
artifact on an existing session. A failed stage never writes anything.
"""

from __future__ import annotations

import base64
import logging
import threading
import time
import uuid
from typing import Optional

from core.chat import ChatSession
from core.errors import EmptyResponse, NoImagePayload, SessionNotFound
from core.history import HistoryStore
from core.models import (
    CitationStyle,
    DiscoveryResult,
    GenerationConfig,
    ImageSize,
    Language,
    Session,
)
from core.prompts import compile_discovery, compile_review, compile_timeline
from core.recovery import recover_model
from core.transport import GenerationRequest, Transport

logger = logging.getLogger(__name__)

#: Hard upper bound on articles kept from one discovery response.
MAX_ARTICLES = 50
TIMELINE_ASPECT_RATIO = "16:9"


# ── Stage functions ────────────────────────────────────────────────────────

def discover(
    transport: Transport,
    topic: str,
    config: GenerationConfig,
    *,
    model: str,
    thinking_budget: int = 16000,
    max_articles: int = MAX_ARTICLES,
) -> DiscoveryResult:
    """Run the discovery stage for *topic*.

    Args:
        transport: Model transport (search-capable).
        topic: Free-text research topic.
        config: Focus, count and language options.
        model: Model identifier.
        thinking_budget: Extended-reasoning token budget.
        max_articles: Articles past this bound are dropped from the tail.

    Returns:
        The recovered DiscoveryResult, articles in the order the model chose.

    Raises:
        ValueError: If topic is blank.
        CredentialMissing, TransportFailure: From the transport.
        EmptyResponse, MalformedOutput: If the output cannot be recovered.
    """
    topic = topic.strip()
    if not topic:
        raise ValueError("Topic must not be empty.")

    instruction, prompt = compile_discovery(topic, config)
    response = transport.generate(
        GenerationRequest(
            model=model,
            instruction=instruction,
            prompt=prompt,
            use_search=True,
            thinking_budget=thinking_budget,
        )
    )
    result = recover_model(response.text, DiscoveryResult)

    if len(result.articles) > max_articles:
        logger.warning(
            "Discovery returned %d articles for topic=%r, keeping the first %d",
            len(result.articles), topic, max_articles,
        )
        result = result.model_copy(update={"articles": result.articles[:max_articles]})

    logger.info("Discovery complete: %d articles for topic=%r", len(result.articles), topic)
    return result


def render_timeline(
    transport: Transport,
    visual_prompt: str,
    size: ImageSize | str,
    language: Language | str,
    *,
    model: str,
) -> str:
    """Generate the timeline infographic and return it as a ``data:`` URI.

    Raises:
        NoImagePayload: If the response carries no inline binary part.
        CredentialMissing, TransportFailure: From the transport.
    """
    instruction, prompt = compile_timeline(visual_prompt, language)
    response = transport.generate(
        GenerationRequest(
            model=model,
            instruction=instruction,
            prompt=prompt,
            image_size=ImageSize(size).value,
            aspect_ratio=TIMELINE_ASPECT_RATIO,
        )
    )
    for part in response.parts:
        if part.is_inline_data:
            encoded = base64.b64encode(part.data).decode("ascii")
            return f"data:{part.mime_type or 'image/png'};base64,{encoded}"
    raise NoImagePayload("No image data found in response.")


def write_review(
    transport: Transport,
    result: DiscoveryResult,
    language: Language | str,
    style: CitationStyle | str,
    *,
    model: str,
    thinking_budget: int = 16000,
) -> str:
    """Synthesise a literature review over every article in *result*.

    Raises:
        EmptyResponse: If the model returns no text.
        CredentialMissing, TransportFailure: From the transport.
    """
    instruction, prompt = compile_review(result, language, style)
    response = transport.generate(
        GenerationRequest(
            model=model,
            instruction=instruction,
            prompt=prompt,
            thinking_budget=thinking_budget,
        )
    )
    review = (response.text or "").strip()
    if not review:
        raise EmptyResponse("Model returned an empty literature review.")
    return review


# ── Orchestrator ───────────────────────────────────────────────────────────

class ResearchOrchestrator:
    """Runs stages against sessions held in a ``HistoryStore``.

    Tracks one active session; the follow-up chat belongs to it and is
    rebuilt whenever the active session changes.

    Switching the active session and sending a chat turn are serialised by
    one lock, so a turn always lands in the chat it was sent to. Concurrent
    regeneration of the same artifact on the same session is not serialised
    here; the last completed call wins.
    """

    def __init__(
        self,
        settings,
        store: HistoryStore,
        text_transport: Transport,
        image_transport: Optional[Transport] = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.text_transport = text_transport
        self.image_transport = image_transport or text_transport
        self.active_id: Optional[str] = None
        self.chat: Optional[ChatSession] = None
        self._lock = threading.RLock()

    def _require(self, session_id: str) -> Session:
        session = self.store.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    # ── Stages ─────────────────────────────────────────────────────────────

    def research(self, topic: str, config: Optional[GenerationConfig] = None) -> Session:
        """Run discovery and record a new session (which becomes active).

        Nothing is stored when discovery fails; the error propagates.
        """
        config = config or GenerationConfig()
        result = discover(
            self.text_transport,
            topic,
            config,
            model=self.settings.research_model,
            thinking_budget=self.settings.thinking_budget,
            max_articles=self.settings.max_articles,
        )
        session = Session(
            id=uuid.uuid4().hex,
            timestamp=int(time.time() * 1000),
            topic=topic.strip(),
            result=result,
            config=config,
        )
        self.store.add(session)
        with self._lock:
            self._activate(session)
        return session

    def generate_timeline(
        self,
        session_id: str,
        size: ImageSize | str = ImageSize.TWO_K,
    ) -> Session:
        """Render (or re-render) the timeline image for a session.

        Raises:
            SessionNotFound: If the session does not exist, or was evicted
                while the image was being generated.
        """
        session = self._require(session_id)
        image = render_timeline(
            self.image_transport,
            session.result.suggested_visual_prompt,
            size,
            session.config.language,
            model=self.settings.image_model,
        )
        self.store.update(session_id, timeline_image=image)
        return self._require(session_id)

    def generate_review(
        self,
        session_id: str,
        citation_style: CitationStyle | str | None = None,
    ) -> Session:
        """Write (or rewrite) the literature review for a session.

        *citation_style* defaults to the session's config but may be any
        style; it is not written back to the config.
        """
        session = self._require(session_id)
        review = write_review(
            self.text_transport,
            session.result,
            session.config.language,
            citation_style or session.config.citation_style,
            model=self.settings.review_model,
            thinking_budget=self.settings.thinking_budget,
        )
        self.store.update(session_id, literature_review=review)
        return self._require(session_id)

    # ── Active session + chat ──────────────────────────────────────────────

    def _activate(self, session: Session) -> ChatSession:
        self.active_id = session.id
        self.chat = ChatSession(
            session.result,
            self.text_transport,
            model=self.settings.chat_model,
        )
        return self.chat

    def activate(self, session_id: str) -> Session:
        """Make *session_id* the active session, rebuilding the chat if it changed."""
        session = self._require(session_id)
        with self._lock:
            if session_id != self.active_id or self.chat is None:
                self._activate(session)
        return session

    def active_chat(self, session_id: str) -> Optional[ChatSession]:
        """Return the chat for *session_id* if it is the active session, else None."""
        with self._lock:
            return self.chat if session_id == self.active_id else None

    def send_chat(self, session_id: str, text: str):
        """Send one chat turn against *session_id*, activating it first.

        The lock is held for the whole turn; a concurrent switch waits until
        the reply has been appended.
        """
        with self._lock:
            self.activate(session_id)
            return self.chat.send(text)

    def _deactivate(self) -> None:
        self.active_id = None
        self.chat = None

    # ── History management ─────────────────────────────────────────────────

    def delete(self, session_id: str) -> list[Session]:
        """Delete one session; clears the active state if it was active."""
        remaining = self.store.delete(session_id)
        with self._lock:
            if session_id == self.active_id:
                self._deactivate()
        return remaining

    def clear(self) -> list[Session]:
        """Delete every session."""
        with self._lock:
            self._deactivate()
        return self.store.clear()
