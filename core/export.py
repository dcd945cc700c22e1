"""Markdown export of a research session."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Optional

from core.models import Session

_NON_SLUG = re.compile(r"[^a-z0-9]", re.IGNORECASE)


def export_filename(topic: str, prefix: str = "DeepResearch") -> str:
    """``DeepResearch-<slug>.md`` with every non-alphanumeric replaced by ``-``."""
    return f"{prefix}-{_NON_SLUG.sub('-', topic).lower()}.md"


def export_markdown(session: Session, generated_at: Optional[datetime] = None) -> str:
    """Render a session as a self-contained markdown report.

    Sections: topic header, block-quoted summary, optional timeline image,
    optional literature review, then one subsection per article in the
    order discovery returned them.
    """
    result = session.result
    date = (generated_at or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")
    quoted = result.summary.replace("\n", "\n> ")

    out = [
        f"# DeepResearch: {result.topic}\n",
        f"*Generated on {date}*\n\n",
        "## Development Summary\n",
        f"> {quoted}\n\n",
    ]

    if session.timeline_image:
        out.append("## Visual Timeline\n")
        out.append(f"![Timeline of {result.topic}]({session.timeline_image})\n\n")

    if session.literature_review:
        out.append("## Literature Review\n\n")
        out.append(f"{session.literature_review}\n\n")

    out.append("## Seminal & Important Articles\n\n")
    for index, article in enumerate(result.articles, start=1):
        out.append(f"### {index}. {article.title}\n")
        line = f"*{article.authors}*"
        if article.publication_date:
            line += f" • **{article.publication_date}**"
        out.append(f"{line}\n\n")
        if article.url:
            out.append(f"[Read Full Paper]({article.url})\n\n")
        out.append(f"**Significance**\n{article.significance}\n\n")
        out.append(f"**AI Summary**\n{article.ai_summary}\n\n")
        out.append("---\n\n")

    return "".join(out)
