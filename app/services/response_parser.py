"""
Response Parser — recover a JSON array of gift objects from raw model text.

Models wrap answers in prose, restate them in code fences, get cut off
mid-array or leave trailing commas. Recovery runs strict-to-lenient and
stops at the first strategy that works:

1. Parse the whole text.
2. Parse the greedy slice from the first '[' to the last ']'.
3. Re-run 1-2 on the content of the LAST fenced code block.
4. Parse every non-greedy '{...}' block on its own, stripping trailing
   commas from blocks that fail, and keep every object that parses.

If nothing is recovered, MalformedAIOutputError carries an excerpt of the
text for diagnostics.
"""

import json
import logging
import re
from typing import Any, Optional

from app.core.errors import MALFORMED_EXCERPT_LIMIT, MalformedAIOutputError

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_OBJECT_RE = re.compile(r"\{[\s\S]*?\}")
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")


def _try_parse(text: Optional[str]) -> Any:
    """json.loads that returns None instead of raising."""
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return None


def _as_objects(parsed: Any) -> Optional[list[dict[str, Any]]]:
    """
    Normalize a parse result to a list of objects.

    A bare object becomes a one-element list. Scalars do not count as a
    successful parse.
    """
    if isinstance(parsed, dict):
        return [parsed]
    if isinstance(parsed, list):
        return [item for item in parsed if isinstance(item, dict)]
    return None


def _parse_direct_or_bracketed(text: str) -> Optional[list[dict[str, Any]]]:
    # 1. Direct parse
    objects = _as_objects(_try_parse(text))
    if objects is not None:
        return objects

    # 2. Greedy '[' ... ']' slice (prose before/after a complete array)
    first = text.find("[")
    last = text.rfind("]")
    if first != -1 and last > first:
        return _as_objects(_try_parse(text[first:last + 1]))
    return None


def _parse_last_fence(text: str) -> Optional[list[dict[str, Any]]]:
    fenced = _FENCE_RE.findall(text)
    if not fenced:
        return None
    return _parse_direct_or_bracketed(fenced[-1].strip())


def _parse_object_blocks(text: str) -> list[dict[str, Any]]:
    objects: list[dict[str, Any]] = []
    for match in _OBJECT_RE.finditer(text):
        block = match.group(0)
        parsed = _try_parse(block)
        if not isinstance(parsed, dict):
            parsed = _try_parse(_TRAILING_COMMA_RE.sub(r"\1", block))
        if isinstance(parsed, dict):
            objects.append(parsed)
    return objects


def extract_json_objects(raw_text: Optional[str]) -> list[dict[str, Any]]:
    """
    Recover the list of JSON objects contained in ``raw_text``.

    Returns:
        The recovered objects (possibly empty if the model returned a valid
        empty array).

    Raises:
        MalformedAIOutputError: No strategy produced a parse.
    """
    text = (raw_text or "").strip()

    objects = _parse_direct_or_bracketed(text)
    if objects is None:
        objects = _parse_last_fence(text)

    if objects is None:
        recovered = _parse_object_blocks(text)
        if recovered:
            logger.warning(
                "Recovered %d objects from malformed model output", len(recovered),
            )
            objects = recovered

    if objects is None:
        logger.error(
            "Failed to parse AI response as JSON. Raw content: %s",
            text[:MALFORMED_EXCERPT_LIMIT],
        )
        raise MalformedAIOutputError(
            "AI returned malformed or truncated JSON.",
            details=text[:MALFORMED_EXCERPT_LIMIT],
        )

    return objects
