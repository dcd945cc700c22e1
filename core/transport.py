"""
Model transports.

A transport accepts a ``GenerationRequest`` and returns a
``GenerationResponse`` (free text plus content parts, some of which may carry
inline binary data). Two adapters are provided:

AnthropicTransport — Claude via the anthropic SDK; search augmentation with
                     the ``web_search`` server tool, extended reasoning with
                     a ``thinking`` budget. Text only.
GeminiTransport    — Gemini via the google-genai SDK; Google Search
                     grounding, thinking budget and image generation.

Credentials are injected through the constructor. SDK clients are
lazy-initialised so a transport can be built without a key; the first call
without one raises ``CredentialMissing``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Literal, Optional, Protocol

import anthropic
import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from core.errors import CredentialMissing, TransportFailure

logger = logging.getLogger(__name__)

#: Tool definition for Claude's server-side web search.
WEB_SEARCH_TOOL = {"type": "web_search_20250305", "name": "web_search", "max_uses": 5}


# ── Request / response ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class ChatTurn:
    """One prior turn passed to a conversational request."""

    role: Literal["user", "assistant"]
    text: str


@dataclass(frozen=True)
class GenerationRequest:
    """Everything a transport needs for one model call."""

    model: str
    instruction: str
    prompt: str = ""
    #: Full conversation; when set it replaces ``prompt``.
    history: tuple[ChatTurn, ...] = ()
    use_search: bool = False
    thinking_budget: int = 0
    image_size: Optional[str] = None
    aspect_ratio: Optional[str] = None
    max_tokens: int = 8000


@dataclass(frozen=True)
class ContentPart:
    """A response part: either text or inline binary data."""

    text: Optional[str] = None
    mime_type: Optional[str] = None
    data: Optional[bytes] = None

    @property
    def is_inline_data(self) -> bool:
        return self.data is not None


@dataclass
class GenerationResponse:
    """Text and parts returned by a model call."""

    text: str = ""
    parts: list[ContentPart] = field(default_factory=list)


class Transport(Protocol):
    def generate(self, request: GenerationRequest) -> GenerationResponse: ...


# ── Anthropic ──────────────────────────────────────────────────────────────

class AnthropicTransport:
    """Claude transport for the text stages (discovery, review, chat)."""

    def __init__(self, api_key: str, max_retries: int = 5) -> None:
        self.api_key = api_key
        self.max_retries = max_retries
        self._client: object = None  # Lazy-initialised anthropic.Anthropic

    @property
    def client(self) -> object:
        """Lazy-initialise and return the Anthropic SDK client."""
        if self._client is None:
            if not self.api_key:
                raise CredentialMissing("ANTHROPIC_API_KEY is missing.")
            self._client = anthropic.Anthropic(
                api_key=self.api_key,
                max_retries=self.max_retries,
            )
        return self._client

    def generate(self, request: GenerationRequest) -> GenerationResponse:
        """Run one Messages API call and collect its text blocks.

        Raises:
            CredentialMissing: If no key is configured or it is rejected.
            TransportFailure: On any other API or network error, or when
                the request asks for image output.
        """
        if request.image_size:
            raise TransportFailure("Claude models cannot generate images.")

        if request.history:
            messages = [{"role": t.role, "content": t.text} for t in request.history]
        else:
            messages = [{"role": "user", "content": request.prompt}]

        kwargs: dict = {
            "model": request.model,
            "max_tokens": request.max_tokens,
            "system": request.instruction,
            "messages": messages,
        }
        if request.use_search:
            kwargs["tools"] = [WEB_SEARCH_TOOL]
        if request.thinking_budget:
            kwargs["thinking"] = {"type": "enabled", "budget_tokens": request.thinking_budget}
            # max_tokens must leave room for the answer after the thinking budget
            kwargs["max_tokens"] = max(request.max_tokens, request.thinking_budget + 4096)

        logger.info(
            "Claude request model=%s search=%s thinking=%d",
            request.model, request.use_search, request.thinking_budget,
        )
        try:
            response = self.client.messages.create(**kwargs)
        except anthropic.AuthenticationError as exc:
            raise CredentialMissing(str(exc)) from exc
        except anthropic.APIError as exc:
            raise TransportFailure(str(exc)) from exc

        parts = [
            ContentPart(text=block.text)
            for block in response.content
            if getattr(block, "type", None) == "text"
        ]
        return GenerationResponse(
            text="".join(p.text for p in parts),
            parts=parts,
        )


# ── Gemini ─────────────────────────────────────────────────────────────────

class GeminiTransport:
    """Gemini transport; the only adapter that can return images."""

    def __init__(self, api_key: str) -> None:
        self.api_key = api_key
        self._client: object = None  # Lazy-initialised genai.Client

    @property
    def client(self) -> object:
        """Lazy-initialise and return the google-genai client."""
        if self._client is None:
            if not self.api_key:
                raise CredentialMissing("GEMINI_API_KEY is missing.")
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def _config(self, request: GenerationRequest) -> types.GenerateContentConfig:
        kwargs: dict = {}
        if request.instruction:
            kwargs["system_instruction"] = request.instruction
        if request.use_search:
            kwargs["tools"] = [types.Tool(google_search=types.GoogleSearch())]
        if request.thinking_budget:
            kwargs["thinking_config"] = types.ThinkingConfig(
                thinking_budget=request.thinking_budget
            )
        if request.image_size:
            kwargs["response_modalities"] = ["TEXT", "IMAGE"]
            kwargs["image_config"] = types.ImageConfig(
                image_size=request.image_size,
                aspect_ratio=request.aspect_ratio or "16:9",
            )
        else:
            kwargs["max_output_tokens"] = request.max_tokens
        return types.GenerateContentConfig(**kwargs)

    @staticmethod
    def _contents(request: GenerationRequest) -> object:
        if not request.history:
            return request.prompt
        return [
            types.Content(
                role="model" if t.role == "assistant" else "user",
                parts=[types.Part(text=t.text)],
            )
            for t in request.history
        ]

    def generate(self, request: GenerationRequest) -> GenerationResponse:
        """Run one ``generate_content`` call and collect text and inline parts.

        Raises:
            CredentialMissing: If no key is configured or it is rejected.
            TransportFailure: On any other API or network error.
        """
        logger.info(
            "Gemini request model=%s search=%s thinking=%d image=%s",
            request.model, request.use_search, request.thinking_budget, request.image_size,
        )
        try:
            response = self.client.models.generate_content(
                model=request.model,
                contents=self._contents(request),
                config=self._config(request),
            )
        except genai_errors.ClientError as exc:
            if exc.code in (401, 403):
                raise CredentialMissing(str(exc)) from exc
            raise TransportFailure(str(exc)) from exc
        except genai_errors.APIError as exc:
            raise TransportFailure(str(exc)) from exc
        except httpx.HTTPError as exc:
            raise TransportFailure(str(exc)) from exc

        parts: list[ContentPart] = []
        candidates = getattr(response, "candidates", None) or []
        content = getattr(candidates[0], "content", None) if candidates else None
        for part in getattr(content, "parts", None) or []:
            inline = getattr(part, "inline_data", None)
            if inline is not None and inline.data:
                parts.append(ContentPart(mime_type=inline.mime_type, data=inline.data))
            elif getattr(part, "text", None) and not getattr(part, "thought", False):
                parts.append(ContentPart(text=part.text))

        return GenerationResponse(
            text="".join(p.text for p in parts if p.text),
            parts=parts,
        )


def build_transport(provider: str, settings) -> Transport:
    """Return the transport for *provider* (``"anthropic"`` or ``"gemini"``)."""
    if provider == "gemini":
        return GeminiTransport(api_key=settings.gemini_api_key)
    return AnthropicTransport(api_key=settings.anthropic_api_key)
