"""
Pydantic models shared across the Research Lineage core.

Persisted and wire shapes keep the camelCase keys of the browser client
(``suggestedVisualPrompt``, ``timelineImage``, ``literatureReview``); the
Python attributes are snake_case and populate from either spelling.
"""

from __future__ import annotations

from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# ── Enumerated options ─────────────────────────────────────────────────────

class Focus(str, Enum):
    """Historical/recent balance of the discovered articles."""

    CLASSIC = "classic"
    BALANCED = "balanced"
    RECENT = "recent"


class Language(str, Enum):
    """Target language for generated prose fields."""

    EN = "en"
    ZH = "zh"
    JA = "ja"


class CitationStyle(str, Enum):
    """Formatting convention for the literature-review stage."""

    APA = "apa"
    MLA = "mla"
    HARVARD = "harvard"
    IEEE = "ieee"


class ImageSize(str, Enum):
    """Resolution tier for the timeline image."""

    ONE_K = "1K"
    TWO_K = "2K"
    FOUR_K = "4K"


# ── Discovery output ───────────────────────────────────────────────────────

class Article(BaseModel):
    """A single discovered work."""

    model_config = ConfigDict(frozen=True)

    title: str
    authors: str = ""
    journal: Optional[str] = None
    publication_date: str = ""
    ai_summary: str = ""
    significance: str = ""
    url: Optional[str] = None


class DiscoveryResult(BaseModel):
    """Structured result of the discovery stage."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    topic: str
    summary: str
    suggested_visual_prompt: str = Field(default="", alias="suggestedVisualPrompt")
    articles: list[Article] = Field(default_factory=list)


# ── Session ────────────────────────────────────────────────────────────────

class GenerationConfig(BaseModel):
    """Per-session generation options, stored alongside the session."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    focus: Focus = Focus.BALANCED
    count: Literal[10, 20, 30] = 10
    language: Language = Language.EN
    citation_style: CitationStyle = Field(default=CitationStyle.APA, alias="citationStyle")


class Session(BaseModel):
    """A persisted research session (one history entry)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    timestamp: int
    topic: str
    result: DiscoveryResult
    timeline_image: Optional[str] = Field(default=None, alias="timelineImage")
    literature_review: Optional[str] = Field(default=None, alias="literatureReview")
    config: GenerationConfig = Field(default_factory=GenerationConfig)


class Message(BaseModel):
    """One turn of the follow-up conversation."""

    id: str
    role: Literal["user", "assistant"]
    text: str
