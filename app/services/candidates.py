"""
Candidate normalization — coerce raw model objects into typed Candidates.

Never raises: every field falls back to a best-effort value, so the scoring
and batching stages can rely on types without further checks. Running the
normalizer on an already-normalized candidate returns it unchanged.
"""

import math
import re
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from app.agents.state import Candidate

TEXT_FIELDS = ("title", "description", "ai_rationale", "vendor", "delivery_estimate")

# Currency symbols/codes and thousands separators the model likes to add
_NUMERIC_NOISE_RE = re.compile(r"(₹|rs\.?|inr|\$|€|£|,|\s)", re.IGNORECASE)


def round_half_up(value: float, digits: int = 0) -> float:
    """Round like a person would (0.125 -> 0.13), not banker's rounding."""
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _to_number(value: Any) -> Optional[float]:
    """Parse ints, floats and numeric-looking strings; None if not finite."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
    elif isinstance(value, str):
        cleaned = _NUMERIC_NOISE_RE.sub("", value).rstrip("%")
        if not cleaned:
            return None
        try:
            number = float(cleaned)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def normalize_price(value: Any) -> Optional[int]:
    """Round to a whole rupee and floor at zero; None if not a number."""
    number = _to_number(value)
    if number is None:
        return None
    return max(0, int(round_half_up(number)))


def normalize_score(value: Any) -> float:
    """
    Coerce a model score into [0, 1] with two decimals.

    Values above 1 are read as percentages ("85" or "85%" -> 0.85). Values
    above 100 are scaled down by powers of ten until they fit (850 -> 0.85).
    Anything unparseable becomes 0.
    """
    number = _to_number(value)
    if number is None:
        return 0.0
    if number > 1:
        if number <= 100:
            number /= 100
        else:
            while number > 1:
                number /= 10
    number = min(1.0, max(0.0, number))
    return round_half_up(number, 2)


def normalize_tags(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    tags = []
    for item in value:
        if item is None or isinstance(item, (dict, list)):
            continue
        tag = str(item).strip()
        if tag:
            tags.append(tag)
    return tags


def normalize_candidate(raw: Any) -> Candidate:
    """Convert one raw model object (or a Candidate's dump) into a Candidate."""
    if isinstance(raw, Candidate):
        raw = raw.model_dump()
    if not isinstance(raw, dict):
        raw = {}

    fields: dict[str, Any] = {name: _to_text(raw.get(name)) for name in TEXT_FIELDS}
    return Candidate(
        **fields,
        price_min=normalize_price(raw.get("price_min")),
        price_max=normalize_price(raw.get("price_max")),
        match_score=normalize_score(raw.get("match_score")),
        matched_tags=normalize_tags(raw.get("matched_tags")),
    )


def normalize_candidates(raw_items: list[Any]) -> list[Candidate]:
    return [normalize_candidate(item) for item in raw_items]
