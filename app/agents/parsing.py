"""
Parsing Node — LangGraph node that turns the backend envelope into typed
Candidates.

Picks the model text out of the envelope, recovers the JSON objects and
coerces each one. An envelope with no text at all is a malformed response,
not an empty result.
"""

import logging
from typing import Any

from app.agents.state import SuggestionState
from app.core.errors import MalformedAIOutputError
from app.services.candidates import normalize_candidates
from app.services.completion import extract_response_text, response_finish_reason
from app.services.response_parser import extract_json_objects

logger = logging.getLogger(__name__)

PREVIEW_LIMIT = 1000


async def parse_candidates(state: SuggestionState) -> dict[str, Any]:
    """
    LangGraph node: Extract and normalize model candidates.

    Returns:
        A dict with "candidates" (possibly empty; the batch sizer pads).

    Raises:
        MalformedAIOutputError: No text in the envelope, or no JSON object
            could be recovered from it.
    """
    text = extract_response_text(state.raw_response)
    if text is None:
        logger.error(
            "AI response had no text (finish reason: %s)",
            response_finish_reason(state.raw_response),
        )
        raise MalformedAIOutputError(
            "AI returned unexpected response shape (no text).",
            details=str(state.raw_response)[:PREVIEW_LIMIT],
        )

    logger.debug("AI raw text (truncated): %s", text[:PREVIEW_LIMIT])

    objects = extract_json_objects(text)
    candidates = normalize_candidates(objects)

    logger.info("Parsed %d candidates from AI response", len(candidates))
    return {"candidates": candidates}
