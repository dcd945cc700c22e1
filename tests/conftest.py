"""Shared fixtures: sample discovery data and a scripted fake transport."""

from __future__ import annotations

import json
from types import SimpleNamespace

import pytest

from core.history import HistoryStore, MemoryBackend
from core.models import DiscoveryResult
from core.transport import ContentPart, GenerationResponse


class FakeTransport:
    """Transport that replays scripted responses and records requests.

    Each scripted item is a ``GenerationResponse``, a plain string (text
    response) or an exception instance (raised).
    """

    def __init__(self, *script):
        self.script = list(script)
        self.requests = []

    def generate(self, request):
        self.requests.append(request)
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, str):
            return GenerationResponse(text=item, parts=[ContentPart(text=item)])
        return item


def make_settings(**overrides):
    """Return a minimal Settings-like object for testing."""
    values = dict(
        research_model="research-model",
        review_model="review-model",
        chat_model="chat-model",
        image_model="image-model",
        thinking_budget=1024,
        max_articles=50,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def discovery_payload(topic: str = "CRISPR", n: int = 3) -> dict:
    return {
        "topic": topic,
        "summary": f"How {topic} developed.\nRecent work accelerated.",
        "suggestedVisualPrompt": f"A timeline of {topic}",
        "articles": [
            {
                "title": f"Paper {i}",
                "authors": f"Author {i}",
                "journal": "Nature" if i % 2 else None,
                "publication_date": str(2000 + i),
                "ai_summary": f"Summary {i}",
                "significance": f"Significance {i}",
                "url": f"https://example.org/{i}",
            }
            for i in range(1, n + 1)
        ],
    }


@pytest.fixture
def sample_result() -> DiscoveryResult:
    return DiscoveryResult.model_validate(discovery_payload())


@pytest.fixture
def discovery_json() -> str:
    return json.dumps(discovery_payload())


@pytest.fixture
def store() -> HistoryStore:
    return HistoryStore(MemoryBackend(), capacity=15)


@pytest.fixture
def settings():
    return make_settings()


