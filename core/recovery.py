"""
Structured-output recovery.

Models asked for JSON often wrap it in prose or markdown fences. Recovery is
deliberately narrow: slice from the first ``{`` to the last ``}`` and parse
that. There is no repair beyond brace-bounding, so a truncated or unbalanced
payload fails with ``MalformedOutput`` instead of producing a partial result.
"""

from __future__ import annotations

import json
import logging
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from core.errors import EmptyResponse, MalformedOutput

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def extract_json_span(text: str) -> str:
    """Return the substring from the first ``{`` to the last ``}`` inclusive.

    Falls back to the trimmed text when either brace is missing or the
    first ``{`` comes after the last ``}``.
    """
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or start > end:
        return text.strip()
    return text[start:end + 1]


def recover_json(text: str | None) -> dict:
    """Parse the JSON object embedded in a model response.

    Args:
        text: Raw response text.

    Returns:
        The parsed JSON object.

    Raises:
        EmptyResponse: If *text* is empty or blank.
        MalformedOutput: If the brace-bounded span is not a JSON object.
    """
    if not text or not text.strip():
        raise EmptyResponse("Model returned an empty response.")

    candidate = extract_json_span(text)
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as exc:
        logger.warning("Could not parse model output as JSON: %s", exc)
        raise MalformedOutput(f"Model output is not valid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise MalformedOutput(
            f"Expected a JSON object, got {type(data).__name__}."
        )
    return data


def recover_model(text: str | None, model_cls: type[ModelT]) -> ModelT:
    """Recover a JSON object from *text* and validate it as *model_cls*.

    Raises:
        EmptyResponse: If *text* is empty or blank.
        MalformedOutput: If parsing or validation fails.
    """
    data = recover_json(text)
    try:
        return model_cls.model_validate(data)
    except ValidationError as exc:
        logger.warning(
            "Model output does not match %s: %d error(s)",
            model_cls.__name__, exc.error_count(),
        )
        raise MalformedOutput(
            f"Model output does not match the {model_cls.__name__} shape: {exc}"
        ) from exc
