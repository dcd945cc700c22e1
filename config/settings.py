"""Application settings — all configuration loaded from environment variables.

Usage:
    from config.settings import Settings
    settings = Settings()
    settings.validate()   # raises ValueError if the text provider's key is missing
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from core.history import DEFAULT_CAPACITY, DEFAULT_DB_PATH
from core.pipeline import MAX_ARTICLES


@dataclass
class Settings:
    """Centralised application configuration.

    All values are read from environment variables at instantiation time
    so that tests can override them by patching ``os.environ``.
    """

    # ── API Keys ────────────────────────────────────────────────────────────
    anthropic_api_key: str = field(
        default_factory=lambda: os.environ.get("ANTHROPIC_API_KEY", "")
    )
    gemini_api_key: str = field(
        default_factory=lambda: os.environ.get("GEMINI_API_KEY", "")
    )

    # ── Flask ───────────────────────────────────────────────────────────────
    debug: bool = field(
        default_factory=lambda: os.environ.get("FLASK_DEBUG", "0") == "1"
    )
    port: int = field(
        default_factory=lambda: int(os.environ.get("PORT", "5001"))
    )

    # ── History ─────────────────────────────────────────────────────────────
    db_path: Path = field(
        default_factory=lambda: Path(os.environ.get("DB_PATH") or DEFAULT_DB_PATH)
    )
    history_capacity: int = field(
        default_factory=lambda: int(os.environ.get("HISTORY_CAPACITY", str(DEFAULT_CAPACITY)))
    )

    # ── AI Models ───────────────────────────────────────────────────────────
    #: "anthropic" or "gemini"; the image stage always uses Gemini.
    text_provider: str = field(
        default_factory=lambda: os.environ.get("TEXT_PROVIDER", "anthropic")
    )
    #: Search-augmented discovery pass.
    research_model: str = field(
        default_factory=lambda: os.environ.get("RESEARCH_MODEL", "claude-sonnet-4-5")
    )
    review_model: str = field(
        default_factory=lambda: os.environ.get("REVIEW_MODEL", "claude-sonnet-4-5")
    )
    chat_model: str = field(
        default_factory=lambda: os.environ.get("CHAT_MODEL", "claude-haiku-4-5")
    )
    image_model: str = field(
        default_factory=lambda: os.environ.get("IMAGE_MODEL", "gemini-3-pro-image-preview")
    )
    thinking_budget: int = field(
        default_factory=lambda: int(os.environ.get("THINKING_BUDGET", "16000"))
    )
    max_articles: int = field(
        default_factory=lambda: int(os.environ.get("MAX_ARTICLES", str(MAX_ARTICLES)))
    )

    def validate(self) -> None:
        """Raise ``ValueError`` if any required setting is missing."""
        if self.text_provider not in ("anthropic", "gemini"):
            raise ValueError(
                f"TEXT_PROVIDER must be 'anthropic' or 'gemini', got {self.text_provider!r}."
            )
        if self.text_provider == "anthropic" and not self.anthropic_api_key:
            raise ValueError(
                "ANTHROPIC_API_KEY environment variable is not set. "
                "Copy .env.example to .env and add your key."
            )
        if self.text_provider == "gemini" and not self.gemini_api_key:
            raise ValueError(
                "GEMINI_API_KEY environment variable is not set. "
                "Copy .env.example to .env and add your key."
            )
