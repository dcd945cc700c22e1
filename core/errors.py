"""Error kinds raised by the research stages."""

from __future__ import annotations


class ResearchError(Exception):
    """Base class for every stage failure."""

    kind = "research_error"


class CredentialMissing(ResearchError):
    """No API key was supplied for the transport, or it was rejected."""

    kind = "credential_missing"


class EmptyResponse(ResearchError):
    """The model returned no text."""

    kind = "empty_response"


class MalformedOutput(ResearchError):
    """The brace-bounded slice of a response did not parse as the expected JSON."""

    kind = "malformed_output"


class NoImagePayload(ResearchError):
    """The image stage found no inline binary part in the response."""

    kind = "no_image_payload"


class TransportFailure(ResearchError):
    """Network or service error reported by the model SDK."""

    kind = "transport_failure"


class SessionNotFound(KeyError):
    """No history entry exists for the given session id."""

    kind = "session_not_found"

    def __str__(self) -> str:
        return f"Session not found: {self.args[0]!r}" if self.args else "Session not found"
