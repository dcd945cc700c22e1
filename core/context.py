"""
Chat context built from a completed discovery result.

The context is a read-only projection: it is rebuilt whenever the active
session changes and is never persisted.
"""

from __future__ import annotations

from core.models import DiscoveryResult

_CHAT_SYSTEM = """You are an intelligent research assistant helping a user explore the topic: "{topic}".
You have access to the research summary and key articles listed below.
Use this context to answer the user's questions in a helpful, academic, yet accessible manner.
If the user asks about something not in the context, you can use your general knowledge but mention that it wasn't in the specific generated report.

CONTEXT DATA:
{context}"""


def build_context(result: DiscoveryResult) -> str:
    """Render topic, summary and every article (1-based, original order)."""
    lines = [
        f"TOPIC: {result.topic}",
        "",
        "SUMMARY:",
        result.summary,
        "",
        "KEY ARTICLES (Foundational & Recent):",
    ]
    for i, article in enumerate(result.articles, start=1):
        lines.append(
            f'{i}. "{article.title}" ({article.publication_date}) by {article.authors}. '
            f"Journal: {article.journal or 'Unknown'}. "
            f"Significance: {article.significance}. "
            f"Summary: {article.ai_summary}"
        )
    return "\n".join(lines)


def chat_instruction(result: DiscoveryResult) -> str:
    """Wrap :func:`build_context` into the chat system instruction."""
    return _CHAT_SYSTEM.format(topic=result.topic, context=build_context(result))


def greeting(topic: str) -> str:
    """Opening assistant message for a new conversation."""
    return (
        f"Hi! I've studied the research on **{topic}**. "
        "Ask me anything about the summary or the articles!"
    )
