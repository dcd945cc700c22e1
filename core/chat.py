"""
Follow-up conversation about one research session.

A ``ChatSession`` starts with a synthetic greeting and grows append-only.
Each turn sends the full history with the session context as the system
instruction. A failed turn is answered with a fixed apology rather than
raised, so the conversation stays usable.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Optional

from core.context import greeting
from core.models import DiscoveryResult, Message
from core.prompts import compile_chat
from core.transport import ChatTurn, GenerationRequest, Transport

logger = logging.getLogger(__name__)

APOLOGY = "Sorry, I encountered an error while trying to answer that."
NO_ANSWER = "I couldn't generate a response."


class ChatSession:
    """Conversation scoped to a single DiscoveryResult."""

    def __init__(
        self,
        result: DiscoveryResult,
        transport: Transport,
        model: str,
        max_tokens: int = 4000,
    ) -> None:
        self.result = result
        self.transport = transport
        self.model = model
        self.max_tokens = max_tokens
        self.instruction = compile_chat(result)
        welcome = Message(id="welcome", role="assistant", text=greeting(result.topic))
        self.messages: list[Message] = [welcome]
        # Greeting and apologies are shown to the user but never sent to the model
        self._synthetic: set[str] = {welcome.id}

    def _append(self, role: str, text: str, synthetic: bool = False) -> Message:
        message = Message(id=uuid.uuid4().hex, role=role, text=text)
        self.messages.append(message)
        if synthetic:
            self._synthetic.add(message.id)
        return message

    def history(self) -> tuple[ChatTurn, ...]:
        """Turns sent to the model: everything except synthetic messages."""
        return tuple(
            ChatTurn(role=m.role, text=m.text)
            for m in self.messages
            if m.id not in self._synthetic
        )

    def send(self, text: str) -> Optional[Message]:
        """Append a user turn and the assistant's reply.

        Args:
            text: The user's message. Blank input is ignored.

        Returns:
            The assistant Message (an apology on failure), or None for blank input.
        """
        if not text or not text.strip():
            return None

        self._append("user", text)
        try:
            response = self.transport.generate(
                GenerationRequest(
                    model=self.model,
                    instruction=self.instruction,
                    history=self.history(),
                    max_tokens=self.max_tokens,
                )
            )
        except Exception:
            logger.exception("Chat turn failed for topic=%r", self.result.topic)
            return self._append("assistant", APOLOGY, synthetic=True)

        reply = (response.text or "").strip()
        if not reply:
            return self._append("assistant", NO_ANSWER, synthetic=True)
        return self._append("assistant", reply)

    def export_markdown(self, now: Optional[datetime] = None) -> str:
        """Render the transcript as a markdown document."""
        date = (now or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")
        body = "\n---\n\n".join(
            f"### {'User' if m.role == 'user' else 'Assistant'}\n{m.text}\n"
            for m in self.messages
        )
        return f"# Research Chat - {self.result.topic}\nDate: {date}\n\n{body}"
