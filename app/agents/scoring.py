"""
Scoring and Tag Coverage Node — LangGraph node that re-scores and re-tags
model candidates against the user's own tags and budget.

1. Computes a tag overlap score (share of user tags evidenced in the
   candidate's title, description and model tags)
2. Computes a budget fit score from the candidate's price range
3. Blends both server signals with the model's self-reported score:
   final = 0.65 × (0.8 × overlap + 0.2 × budget) + 0.35 × model_score
   then +0.08 for strong overlap with a near-perfect budget fit, −0.12 for
   a poor budget fit
4. Picks 3–6 Title-Case tags per candidate, preferring real user tags
5. Spreads any user tag missing from the whole batch onto candidates with
   spare tag capacity (round-robin)
"""

import logging
from typing import Any, Optional

from pydantic import BaseModel, Field

from app.agents.state import Candidate, GiftRequest, GiftSuggestion, SuggestionState
from app.services.candidates import round_half_up
from app.services.prompts import MAX_TAGS_PER_ITEM, MIN_TAGS_PER_ITEM, delivery_estimate_for
from app.services.tags import meaningful_tokens, tag_key, title_case, tokenize

logger = logging.getLogger(__name__)

# ======================================================================
# Constants
# ======================================================================

OVERLAP_WEIGHT = 0.8
BUDGET_WEIGHT = 0.2
SERVER_WEIGHT = 0.65
MODEL_WEIGHT = 0.35

STRONG_MATCH_OVERLAP = 0.75
STRONG_MATCH_BUDGET = 0.9
STRONG_MATCH_BONUS = 0.08
POOR_BUDGET_THRESHOLD = 0.3
POOR_BUDGET_PENALTY = 0.12

BUDGET_FULL_FIT = 1.0
BUDGET_PARTIAL_FLOOR = 0.3
BUDGET_PARTIAL_SPAN = 0.25  # partial fit ranges over [0.30, 0.55]
BUDGET_DISJOINT = 0.25
BUDGET_UNKNOWN = 0.5

FULL_MATCH_BONUS = 1.0
RELEVANCE_FILL_TARGET = 4  # leaves room for the coverage pass
COVERAGE_CAPACITY = 5

FALLBACK_TAGS = ("Thoughtful", "Curated", "Gift Idea")


# ======================================================================
# Text matching helpers
# ======================================================================

class _CandidateText:
    """Pre-tokenized title + description + model tags of one candidate."""

    def __init__(self, candidate: Candidate) -> None:
        raw = " ".join(
            [candidate.title, candidate.description, *candidate.matched_tags]
        )
        tokens = tokenize(raw)
        self.tokens = set(tokens)
        self.padded = f" {' '.join(tokens)} "


def tag_relevance(tag: str, text: _CandidateText) -> float:
    """
    How strongly the candidate text evidences a user tag.

    One point per meaningful tag token found (exact token, or substring for
    tokens of 4+ letters), plus a bonus when the whole tag appears verbatim.
    """
    score = 0.0
    for token in meaningful_tokens(tag):
        if token in text.tokens or (len(token) >= 4 and token in text.padded):
            score += 1.0
    key = tag_key(tag)
    if key and f" {key} " in text.padded:
        score += FULL_MATCH_BONUS
    return score


def tag_overlap_score(candidate: Candidate, user_tags: list[str]) -> float:
    """Fraction of user tags evidenced by the candidate (0 with no tags)."""
    if not user_tags:
        return 0.0
    text = _CandidateText(candidate)
    matched = sum(1 for tag in user_tags if tag_relevance(tag, text) > 0)
    return matched / len(user_tags)


def budget_score(
    price_min: Optional[int],
    price_max: Optional[int],
    budget_min: Optional[int],
    budget_max: Optional[int],
) -> float:
    """
    Budget fit in [0, 1].

    Full fit 1.0 > partial overlap 0.30–0.55 (by share of the price range
    inside the budget) > disjoint 0.25. Missing data is neutral (0.5).
    """
    if budget_min is None or budget_max is None:
        return BUDGET_UNKNOWN
    if price_min is None and price_max is None:
        return BUDGET_UNKNOWN

    low = price_min if price_min is not None else price_max
    high = price_max if price_max is not None else price_min
    if low > high:
        low, high = high, low
    b_low, b_high = min(budget_min, budget_max), max(budget_min, budget_max)

    if b_low <= low and high <= b_high:
        return BUDGET_FULL_FIT

    overlap = min(high, b_high) - max(low, b_low)
    if overlap < 0:
        return BUDGET_DISJOINT

    width = high - low
    proportion = overlap / width if width > 0 else 0.0
    return BUDGET_PARTIAL_FLOOR + BUDGET_PARTIAL_SPAN * proportion


def compute_match_score(overlap: float, budget: float, model_score: float) -> float:
    """Blend server signals with the model score, apply adjustments, round."""
    server = OVERLAP_WEIGHT * overlap + BUDGET_WEIGHT * budget
    score = SERVER_WEIGHT * server + MODEL_WEIGHT * model_score
    score = min(1.0, max(0.0, score))

    if overlap >= STRONG_MATCH_OVERLAP and budget >= STRONG_MATCH_BUDGET:
        score = min(1.0, score + STRONG_MATCH_BONUS)
    if budget < POOR_BUDGET_THRESHOLD:
        score = max(0.0, score - POOR_BUDGET_PENALTY)

    return round_half_up(score, 2)


def resolve_prices(
    price_min: Optional[int],
    price_max: Optional[int],
    budget_min: int,
    budget_max: int,
) -> tuple[int, int]:
    """Guarantee two non-negative ints with low <= high."""
    if price_min is None and price_max is None:
        price_min, price_max = budget_min, budget_max
    elif price_min is None:
        price_min = price_max
    elif price_max is None:
        price_max = price_min
    low, high = max(0, int(price_min)), max(0, int(price_max))
    return (low, high) if low <= high else (high, low)


# ======================================================================
# Tag selection
# ======================================================================

def _map_to_user_tag(model_tag: str, user_tags: list[str]) -> Optional[str]:
    """Exact (case-insensitive) match first, then substring either way."""
    key = tag_key(model_tag)
    if not key:
        return None
    for user_tag in user_tags:
        if tag_key(user_tag) == key:
            return user_tag
    for user_tag in user_tags:
        user_key = tag_key(user_tag)
        if len(user_key) >= 3 and len(key) >= 3 and (user_key in key or key in user_key):
            return user_tag
    return None


class TagList:
    """Ordered, case-insensitively unique tag list with a size cap."""

    def __init__(self, limit: int = MAX_TAGS_PER_ITEM) -> None:
        self.limit = limit
        self.tags: list[str] = []
        self._keys: set[str] = set()

    def __len__(self) -> int:
        return len(self.tags)

    def add(self, tag: str) -> bool:
        key = tag_key(tag)
        if not key or key in self._keys or len(self.tags) >= self.limit:
            return False
        self._keys.add(key)
        self.tags.append(title_case(tag))
        return True


def select_tags(candidate: Candidate, user_tags: list[str]) -> list[str]:
    """
    Choose 3–6 Title-Case tags for a candidate.

    Order of preference: model tags that map onto a user tag, the most
    relevant unused user tags, remaining model tags, title tokens, any
    other user tag, then generic fallbacks.
    """
    selected = TagList()
    text = _CandidateText(candidate)

    unmapped: list[str] = []
    for model_tag in candidate.matched_tags:
        user_tag = _map_to_user_tag(model_tag, user_tags)
        if user_tag is not None:
            selected.add(user_tag)
        else:
            unmapped.append(model_tag)

    relevance = [(tag_relevance(tag, text), i, tag) for i, tag in enumerate(user_tags)]
    ranked = sorted(
        (item for item in relevance if item[0] > 0),
        key=lambda item: (-item[0], item[1]),
    )
    for _, _, user_tag in ranked:
        if len(selected) >= RELEVANCE_FILL_TARGET:
            break
        selected.add(user_tag)

    fallbacks = (
        unmapped,
        meaningful_tokens(candidate.title),
        user_tags,
        FALLBACK_TAGS,
    )
    for source in fallbacks:
        for tag in source:
            if len(selected) >= MIN_TAGS_PER_ITEM:
                return selected.tags
            selected.add(tag)

    return selected.tags


# ======================================================================
# Batch coverage
# ======================================================================

class CoverageReport(BaseModel):
    """Which user tags the batch already shows, and which it is missing."""

    user_tags: list[str] = Field(default_factory=list)
    covered: list[str] = Field(default_factory=list)
    uncovered: list[str] = Field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.uncovered


def compute_coverage(
    suggestions: list[GiftSuggestion],
    user_tags: list[str],
) -> CoverageReport:
    present = {tag_key(tag) for s in suggestions for tag in s.matched_tags}
    covered = [tag for tag in user_tags if tag_key(tag) in present]
    uncovered = [tag for tag in user_tags if tag_key(tag) not in present]
    return CoverageReport(user_tags=user_tags, covered=covered, uncovered=uncovered)


def _replace_redundant_tag(
    tag_lists: list[list[str]],
    new_tag: str,
    user_keys: set[str],
    start: int,
) -> Optional[int]:
    """
    Swap ``new_tag`` in for a tag the batch can spare.

    A tag is spare when it is not a user tag, or when its user tag also
    appears on another suggestion. Returns the index of the changed list.
    """
    counts: dict[str, int] = {}
    for tags in tag_lists:
        for tag in tags:
            counts[tag_key(tag)] = counts.get(tag_key(tag), 0) + 1

    n = len(tag_lists)
    for step in range(n):
        i = (start + step) % n
        tags = tag_lists[i]
        for pos in range(len(tags) - 1, -1, -1):
            key = tag_key(tags[pos])
            if key not in user_keys or counts.get(key, 0) > 1:
                logger.debug("Coverage replaced tag '%s' with '%s'", tags[pos], new_tag)
                tags[pos] = title_case(new_tag)
                return i
    return None


def apply_coverage(
    suggestions: list[GiftSuggestion],
    report: CoverageReport,
) -> list[GiftSuggestion]:
    """
    Return copies of ``suggestions`` with every uncovered user tag placed.

    Each missing tag goes to the next suggestion (round-robin) with fewer
    than 5 tags that lacks it. When no suggestion has room, a spare tag is
    replaced instead, so coverage holds whenever 5 × len(suggestions) is at
    least the number of user tags.
    """
    if not suggestions or report.complete:
        return list(suggestions)

    tag_lists = [list(s.matched_tags) for s in suggestions]
    user_keys = {tag_key(tag) for tag in report.user_tags}
    n = len(tag_lists)
    cursor = 0

    for tag in report.uncovered:
        key = tag_key(tag)
        placed_at = None
        for step in range(n):
            i = (cursor + step) % n
            tags = tag_lists[i]
            if len(tags) < COVERAGE_CAPACITY and key not in {tag_key(t) for t in tags}:
                tags.append(title_case(tag))
                placed_at = i
                break
        if placed_at is None:
            placed_at = _replace_redundant_tag(tag_lists, tag, user_keys, cursor)
        if placed_at is None:
            logger.warning("No tag capacity left to cover '%s'", tag)
            continue
        cursor = placed_at + 1

    return [
        s.model_copy(update={"matched_tags": tags})
        for s, tags in zip(suggestions, tag_lists)
    ]


def ensure_coverage(
    suggestions: list[GiftSuggestion],
    user_tags: list[str],
) -> list[GiftSuggestion]:
    report = compute_coverage(suggestions, user_tags)
    if report.uncovered:
        logger.info(
            "Batch coverage: %d/%d user tags covered, placing %s",
            len(report.covered), len(user_tags), report.uncovered,
        )
    return apply_coverage(suggestions, report)


# ======================================================================
# Per-candidate scoring
# ======================================================================

def score_candidate(
    candidate: Candidate,
    request: GiftRequest,
    user_tags: list[str],
) -> GiftSuggestion:
    """Turn one normalized candidate into a server-scored GiftSuggestion."""
    overlap = tag_overlap_score(candidate, user_tags)
    budget = budget_score(
        candidate.price_min, candidate.price_max,
        request.budget_min, request.budget_max,
    )
    final = compute_match_score(overlap, budget, candidate.match_score)
    price_min, price_max = resolve_prices(
        candidate.price_min, candidate.price_max,
        request.budget_min, request.budget_max,
    )

    logger.debug(
        "Scored '%s': overlap=%.2f budget=%.2f model=%.2f -> %.2f",
        candidate.title, overlap, budget, candidate.match_score, final,
    )

    return GiftSuggestion(
        title=candidate.title,
        description=candidate.description,
        price_min=price_min,
        price_max=price_max,
        match_score=final,
        matched_tags=select_tags(candidate, user_tags),
        ai_rationale=candidate.ai_rationale,
        delivery_estimate=candidate.delivery_estimate or delivery_estimate_for(request.city),
        vendor=candidate.vendor,
    )


# ======================================================================
# LangGraph node
# ======================================================================

async def score_candidates(state: SuggestionState) -> dict[str, Any]:
    """
    LangGraph node: Score, tag and cover the normalized candidates.

    Returns:
        A dict with "scored" containing one GiftSuggestion per candidate,
        with the first batch-coverage pass applied.
    """
    scored = [
        score_candidate(candidate, state.request, state.user_tags)
        for candidate in state.candidates
    ]
    scored = ensure_coverage(scored, state.user_tags)

    logger.info(
        "Scored %d candidates: %s",
        len(scored), [(s.title, s.match_score) for s in scored],
    )
    return {"scored": scored}
