"""
Batch Sizing Node — LangGraph node that turns scored suggestions into the
exact page the caller asked for.

1. Stable sort by match_score descending
2. Truncate to the required count, or pad with deterministic items built
   round-robin from the user's own tags
3. Re-run batch coverage (padding adds spare tag capacity)
4. Final invariant pass: repair prices and tags, clamp scores into
   [0.30, 1.00], re-sort
"""

import logging
from typing import Any

from app.agents.scoring import FALLBACK_TAGS, TagList, ensure_coverage
from app.agents.state import GiftRequest, GiftSuggestion, SuggestionState
from app.services.candidates import round_half_up
from app.services.prompts import (
    MIN_TAGS_PER_ITEM,
    PREFERRED_VENDORS,
    delivery_estimate_for,
    required_count,
    round_price,
)
from app.services.tags import meaningful_tokens

logger = logging.getLogger(__name__)

# ======================================================================
# Constants
# ======================================================================

PADDING_SCORE = 0.45
MIN_FINAL_SCORE = 0.30
MAX_FINAL_SCORE = 1.00

# Padded prices sit in the middle of the budget band
PADDING_PRICE_LOW = 0.2
PADDING_PRICE_HIGH = 0.8

# (title, description) per padding slot; {tag} is Title Case, {tag_lower} lowercase
PADDING_TEMPLATES = (
    (
        "{tag} Starter Kit",
        "A curated starter kit built around {tag_lower}, picked for your "
        "{relation} this {occasion}.",
    ),
    (
        "Personalised {tag} Hamper",
        "A personalised hamper themed on {tag_lower}, a warm way to mark "
        "the {occasion}.",
    ),
    (
        "{tag} Experience Voucher",
        "An experience voucher that lets your {relation} spend time on "
        "{tag_lower}.",
    ),
    (
        "Handcrafted {tag} Keepsake",
        "A handcrafted keepsake from an Indian artisan, inspired by "
        "{tag_lower}.",
    ),
    (
        "{tag} Book & Journal Set",
        "A book and journal pairing for someone who loves {tag_lower}.",
    ),
    (
        "Premium {tag} Accessory",
        "A well-made everyday accessory that suits a {tag_lower} lifestyle.",
    ),
)


# ======================================================================
# Sorting and padding
# ======================================================================

def sort_by_score(suggestions: list[GiftSuggestion]) -> list[GiftSuggestion]:
    """Descending by match_score; ties keep their relative order."""
    return sorted(suggestions, key=lambda s: s.match_score, reverse=True)


def padding_prices(budget_min: int, budget_max: int) -> tuple[int, int]:
    """A rounded price range inside the budget band."""
    low_bound, high_bound = sorted((max(0, budget_min), max(0, budget_max)))
    span = high_bound - low_bound
    price_min = round_price(low_bound + span * PADDING_PRICE_LOW)
    price_max = round_price(low_bound + span * PADDING_PRICE_HIGH)
    price_min = min(max(price_min, low_bound), high_bound)
    price_max = min(max(price_max, low_bound), high_bound)
    return min(price_min, price_max), max(price_min, price_max)


def build_padding_item(
    index: int,
    request: GiftRequest,
    user_tags: list[str],
) -> GiftSuggestion:
    """
    Deterministic filler suggestion number ``index``.

    The anchor tag rotates through the user tags; the template advances
    once every full rotation so titles stay distinct.
    """
    tags_pool = user_tags or list(FALLBACK_TAGS)
    anchor = tags_pool[index % len(tags_pool)]
    template_index = (index // len(tags_pool)) % len(PADDING_TEMPLATES)
    title_template, description_template = PADDING_TEMPLATES[template_index]

    tags = TagList()
    tags.add(anchor)
    for offset in range(1, len(tags_pool)):
        if len(tags) >= MIN_TAGS_PER_ITEM:
            break
        tags.add(tags_pool[(index + offset) % len(tags_pool)])
    for tag in FALLBACK_TAGS:
        if len(tags) >= MIN_TAGS_PER_ITEM:
            break
        tags.add(tag)

    display_tag = tags.tags[0]
    values = {
        "tag": display_tag,
        "tag_lower": display_tag.lower(),
        "relation": request.relation.strip().lower(),
        "occasion": request.occasion.strip().lower(),
    }
    price_min, price_max = padding_prices(request.budget_min, request.budget_max)

    return GiftSuggestion(
        title=title_template.format(**values),
        description=description_template.format(**values),
        price_min=price_min,
        price_max=price_max,
        match_score=PADDING_SCORE,
        matched_tags=tags.tags,
        ai_rationale=f"Chosen to reflect their interest in {display_tag}.",
        delivery_estimate=delivery_estimate_for(request.city),
        vendor=PREFERRED_VENDORS[index % len(PREFERRED_VENDORS)],
    )


def fit_to_count(
    suggestions: list[GiftSuggestion],
    count: int,
    request: GiftRequest,
    user_tags: list[str],
) -> list[GiftSuggestion]:
    """Sort, then truncate or pad to exactly ``count`` items."""
    ranked = sort_by_score(suggestions)
    if len(ranked) >= count:
        if len(ranked) > count:
            logger.info("Trimming %d suggestions to %d", len(ranked), count)
        return ranked[:count]

    missing = count - len(ranked)
    logger.info(
        "Padding batch with %d deterministic suggestions (%d from model)",
        missing, len(ranked),
    )
    padding = [build_padding_item(i, request, user_tags) for i in range(missing)]
    return ranked + padding


# ======================================================================
# Final invariant pass
# ======================================================================

def repair_prices(suggestion: GiftSuggestion, request: GiftRequest) -> tuple[int, int]:
    low = suggestion.price_min if suggestion.price_min is not None else suggestion.price_max
    high = suggestion.price_max if suggestion.price_max is not None else suggestion.price_min
    if low is None or high is None:
        low, high = request.budget_min, request.budget_max
    low, high = max(0, int(low)), max(0, int(high))
    return (low, high) if low <= high else (high, low)


def repair_tags(title: str, tags: list[str], user_tags: list[str]) -> list[str]:
    """Dedupe case-insensitively, cap at 6, complete short lists to 3."""
    repaired = TagList()
    for tag in tags:
        repaired.add(tag)
    for source in (meaningful_tokens(title), user_tags, FALLBACK_TAGS):
        for tag in source:
            if len(repaired) >= MIN_TAGS_PER_ITEM:
                return repaired.tags
            repaired.add(tag)
    return repaired.tags


def clamp_score(score: float) -> float:
    return round_half_up(min(MAX_FINAL_SCORE, max(MIN_FINAL_SCORE, score)), 2)


def finalize_suggestions(
    suggestions: list[GiftSuggestion],
    request: GiftRequest,
    user_tags: list[str],
) -> list[GiftSuggestion]:
    finalized = []
    for suggestion in suggestions:
        price_min, price_max = repair_prices(suggestion, request)
        finalized.append(suggestion.model_copy(update={
            "price_min": price_min,
            "price_max": price_max,
            "matched_tags": repair_tags(
                suggestion.title, suggestion.matched_tags, user_tags,
            ),
            "match_score": clamp_score(suggestion.match_score),
        }))
    return sort_by_score(finalized)


# ======================================================================
# LangGraph node
# ======================================================================

async def size_batch(state: SuggestionState) -> dict[str, Any]:
    """
    LangGraph node: Produce the exact-size, ordered suggestion page.

    Returns:
        A dict with "suggestions" holding exactly the required count.
    """
    count = (
        state.prompt.required_count
        if state.prompt is not None
        else required_count(state.request.offset, state.settings)
    )

    batch = fit_to_count(state.scored, count, state.request, state.user_tags)
    batch = ensure_coverage(batch, state.user_tags)
    batch = finalize_suggestions(batch, state.request, state.user_tags)

    logger.info(
        "Final batch: %d suggestions, top score %.2f",
        len(batch), batch[0].match_score if batch else 0.0,
    )
    return {"suggestions": batch}
