"""
Prompt compilation for every research stage.

Each ``compile_*`` function is pure: it turns a topic, a DiscoveryResult and
the enumerated options into a ``StagePrompt`` (system instruction + user
prompt). Stages share no conversational memory, so each instruction restates
the target language on its own.

Unknown option values never raise; they fall back to the defaults
(English, balanced focus, APA).
"""

from __future__ import annotations

from enum import Enum
from typing import NamedTuple

from core.context import chat_instruction
from core.models import CitationStyle, DiscoveryResult, Focus, GenerationConfig, Language


class StagePrompt(NamedTuple):
    """Instruction and prompt text for a single model call."""

    instruction: str
    prompt: str


def _key(option: Enum | str) -> str:
    """Lookup key for an option given as an enum member or its raw value."""
    return option.value if isinstance(option, Enum) else str(option)


# ── Language ───────────────────────────────────────────────────────────────

LANGUAGE_NAMES: dict[str, str] = {
    Language.EN.value: "English",
    Language.ZH.value: "Chinese (Simplified)",
    Language.JA.value: "Japanese",
}

_DEFAULT_LANGUAGE = LANGUAGE_NAMES[Language.EN.value]


def language_name(language: Language | str) -> str:
    """Return the natural-language name for a language code."""
    return LANGUAGE_NAMES.get(_key(language), _DEFAULT_LANGUAGE)


# ── Focus blocks ───────────────────────────────────────────────────────────

FOCUS_BLOCKS: dict[str, str] = {
    Focus.CLASSIC.value: (
        "PRIORITY: FOCUS HEAVILY ON HISTORY.\n"
        '1. Identify the most seminal "Foundational" papers that started the field (the classics).\n'
        "2. Include a few recent papers only if they fundamentally changed the original paradigms.\n"
        "3. The list should be dominated by the most cited, historical works."
    ),
    Focus.BALANCED.value: (
        "PRIORITY: BALANCE HISTORY AND MODERNITY.\n"
        '1. Identify the most seminal "Foundational" papers that started the field (the classics).\n'
        '2. CRITICAL: Identify key "Recent Breakthroughs" or "State of the Art" papers '
        "from the last 3-5 years.\n"
        "3. The list MUST be a 50/50 mix of history and modern state-of-the-art."
    ),
    Focus.RECENT.value: (
        "PRIORITY: FOCUS HEAVILY ON THE LAST 5 YEARS.\n"
        '1. Identify key "Recent Breakthroughs" or "State of the Art" papers primarily '
        "from the last five years.\n"
        "2. Only include the absolute most vital 1-2 historical papers for context.\n"
        "3. The list should be dominated by recent advancements."
    ),
}


def focus_block(focus: Focus | str) -> str:
    """Return the instruction block for *focus* (balanced if unknown)."""
    return FOCUS_BLOCKS.get(_key(focus), FOCUS_BLOCKS[Focus.BALANCED.value])


# ── Citation style blocks ──────────────────────────────────────────────────

#: Emphasised ordering rule for the numeric style; repeated in the system
#: instruction because it is the rule most often ignored.
IEEE_ORDER_RULE = (
    "CRITICAL: The References list MUST be sorted by the order of first appearance "
    "in the text (Citation Order), NOT alphabetically."
)

CITATION_BLOCKS: dict[str, str] = {
    CitationStyle.APA.value: (
        "CITATION STYLE: APA 7th Edition.\n"
        "- Use (Author, Year) in text.\n"
        '- References should be labeled "References" and formatted in APA 7th style (Alphabetical).'
    ),
    CitationStyle.MLA.value: (
        "CITATION STYLE: MLA.\n"
        "- Use (Author Page) or (Author) style in text.\n"
        '- References should be labeled "Works Cited" and formatted in MLA style (Alphabetical).'
    ),
    CitationStyle.HARVARD.value: (
        "CITATION STYLE: Harvard.\n"
        "- Use (Author, Year) in text.\n"
        "- References should be alphabetical and formatted in Harvard style."
    ),
    CitationStyle.IEEE.value: (
        "CITATION STYLE: IEEE (Numeric).\n"
        "- Use numeric citations in square brackets like [1], [2] in the text.\n"
        f"- {IEEE_ORDER_RULE}\n"
        "- The References section MUST be a numbered list corresponding to the appearance order."
    ),
}


def citation_block(style: CitationStyle | str) -> str:
    """Return the instruction block for *style* (APA if unknown)."""
    return CITATION_BLOCKS.get(_key(style), CITATION_BLOCKS[CitationStyle.APA.value])


# ── Discovery ──────────────────────────────────────────────────────────────

_DISCOVERY_SYSTEM = """You are an expert academic researcher and historian of science.
Your goal is to research a specific concept, method, or field provided by the user.

IMPORTANT LANGUAGE REQUIREMENT:
The user has requested the output in {language}.
- The "summary", "ai_summary", and "significance" fields MUST be written in {language}.
- The "title", "authors", and "journal" should remain in their original language unless there is a standard translation.

STRICT PAPER SELECTION CRITERIA:
1. ARTICLE TYPE:
   - Select ONLY original "Research Articles" (Primary Research).
   - STRICTLY EXCLUDE "Review Articles" (systematic reviews, literature reviews).
   - STRICTLY EXCLUDE "Letters", "Editorials", and "Perspectives".
2. QUALITY & IMPACT:
   - Prioritize papers published in top-tier, high-impact journals or conferences.
   - Prioritize papers with high citation counts relative to their publication year.

{focus}

4. Summarize the historical development and evolution of the field in {language}.
5. Explain the significance of each selected paper in {language}.
6. Create a visual description for a timeline that represents this evolution.

Never invent papers, authors, or publication details.
Return the output in strictly valid JSON format. Do not include markdown code blocks if possible, just the raw JSON string."""

_DISCOVERY_PROMPT = """Conduct deep research on the field: "{topic}".

Use web search to verify authors, titles, publication dates, article types, journal names, and citation impact.
Ensure ALL selected papers are Primary Research Articles. Do not include Reviews.

TARGET ARTICLE COUNT: {count}
Aim to find {count} distinct, high-quality papers.
If there aren't enough seminal papers to meet this number, return fewer. Do not fabricate papers to reach the target.

Output JSON structure:
{{
  "topic": "{topic}",
  "summary": "A comprehensive narrative summary of how this field developed, in {language}, mentioning recent trends in the last paragraph",
  "suggestedVisualPrompt": "A detailed prompt to generate a timeline infographic showing the evolution",
  "articles": [
    {{
      "title": "Exact Title",
      "authors": "List of authors (comma separated)",
      "journal": "Full name of the journal or venue",
      "publication_date": "YYYY-MM-DD (or YYYY if exact date unknown)",
      "ai_summary": "Brief summary of the content in {language}",
      "significance": "Why this paper is important, in {language}",
      "url": "URL to the paper"
    }}
  ]
}}"""


def compile_discovery(topic: str, config: GenerationConfig) -> StagePrompt:
    """Build the discovery-stage request for *topic* under *config*."""
    language = language_name(config.language)
    instruction = _DISCOVERY_SYSTEM.format(
        language=language, focus=focus_block(config.focus)
    )
    prompt = _DISCOVERY_PROMPT.format(
        topic=topic, count=config.count, language=language
    )
    return StagePrompt(instruction, prompt)


# ── Timeline image ─────────────────────────────────────────────────────────

_TIMELINE_SYSTEM = (
    "You design clean, academic infographics. "
    "All visible text labels inside the image MUST be in {language}."
)

_TIMELINE_PROMPT = """Create a high-quality, professional infographic timeline.
Style: Clean, academic, modern data visualization.
Language Requirement: All visible text labels inside the infographic MUST be in {language}.
Content description: {visual_prompt}"""


def compile_timeline(visual_prompt: str, language: Language | str) -> StagePrompt:
    """Build the timeline-image request from a discovery visual prompt."""
    name = language_name(language)
    return StagePrompt(
        _TIMELINE_SYSTEM.format(language=name),
        _TIMELINE_PROMPT.format(language=name, visual_prompt=visual_prompt),
    )


# ── Literature review ──────────────────────────────────────────────────────

_REVIEW_SYSTEM = """You are an expert academic writer specializing in literature reviews.
You write in a formal, objective, and synthesized manner, in {language}.
You strictly follow the requested citation style.
{order_rule}You do not hallucinate sources outside of the provided list.
Return the output in Markdown format."""

_REVIEW_PROMPT = """Write a high-quality academic Literature Review based ONLY on the provided articles about "{topic}".

LANGUAGE: Write the review in {language}.

{style}

STRUCTURE:
1. Title (Top of page)
2. Introduction: Define the scope and importance of the topic.
3. Thematic Analysis: Synthesize the papers by themes, methodology, or chronological evolution. DO NOT just list them one by one. Compare and contrast findings.
4. Conclusion: Summarize the state of the field and potential future directions.
5. References / Works Cited:
   - Strictly formatted as a MARKDOWN LIST (e.g., "1. [1] Author..." or "- Author...").
   - ENSURE every reference starts on a NEW LINE.
   - Do NOT group them into a single paragraph.

SOURCE DATA:
{articles}"""


def _review_article_list(result: DiscoveryResult) -> str:
    return "\n\n".join(
        f"[{i}] Title: {a.title}\n"
        f"Authors: {a.authors}\n"
        f"Journal: {a.journal or 'Unknown'}\n"
        f"Year: {a.publication_date}\n"
        f"Summary: {a.ai_summary}\n"
        f"Significance: {a.significance}"
        for i, a in enumerate(result.articles, start=1)
    )


def compile_review(
    result: DiscoveryResult,
    language: Language | str,
    style: CitationStyle | str,
) -> StagePrompt:
    """Build the literature-review request over every article in *result*.

    The citation style is a per-call argument and may differ from the
    session's discovery-time config.
    """
    name = language_name(language)
    block = citation_block(style)
    order_rule = (
        "For IEEE style, you STRICTLY respect the order of appearance for the "
        "bibliography, never alphabetical order.\n"
        if block == CITATION_BLOCKS[CitationStyle.IEEE.value] else ""
    )
    instruction = _REVIEW_SYSTEM.format(language=name, order_rule=order_rule)
    prompt = _REVIEW_PROMPT.format(
        topic=result.topic,
        language=name,
        style=block,
        articles=_review_article_list(result),
    )
    return StagePrompt(instruction, prompt)


# ── Chat ───────────────────────────────────────────────────────────────────

def compile_chat(result: DiscoveryResult) -> str:
    """Return the system instruction for follow-up chat about *result*."""
    return chat_instruction(result)
