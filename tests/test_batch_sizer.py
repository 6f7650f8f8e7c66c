"""
Batch Sizer Tests

Tests that:
1. Sorting is descending and stable
2. Long batches are truncated to the highest-scoring items
3. Short batches are padded deterministically from the user's tags
4. Padded prices and delivery estimates follow the budget and city rules
5. The final pass repairs prices and tags and clamps scores to [0.30, 1.00]
6. The size_batch node returns exactly the required count

Run with: pytest tests/test_batch_sizer.py -v
"""

import pytest

from app.agents.batching import (
    PADDING_SCORE,
    build_padding_item,
    clamp_score,
    finalize_suggestions,
    fit_to_count,
    padding_prices,
    repair_prices,
    repair_tags,
    size_batch,
    sort_by_score,
)
from app.agents.state import GiftRequest, GiftSuggestion, SuggestionState
from app.services.tags import tag_key

USER_TAGS = ["Gardening", "Reading", "Calm"]


# ======================================================================
# Sample data factories
# ======================================================================

def _sample_request(**overrides) -> GiftRequest:
    data = {
        "relation": "Mother",
        "occasion": "Birthday",
        "budget_min": 500,
        "budget_max": 2000,
        "hobbies": ["Gardening", "Reading"],
        "personalities": ["Calm"],
    }
    data.update(overrides)
    return GiftRequest(**data)


def _sample_suggestion(title: str = "Gift", score: float = 0.5, **overrides) -> GiftSuggestion:
    data = {
        "title": title,
        "description": "",
        "price_min": 600,
        "price_max": 900,
        "match_score": score,
        "matched_tags": ["Gardening", "Herb", "Garden"],
    }
    data.update(overrides)
    return GiftSuggestion(**data)


# ======================================================================
# TestSorting
# ======================================================================

class TestSorting:

    def test_descending(self):
        result = sort_by_score([_sample_suggestion("A", 0.4), _sample_suggestion("B", 0.9)])
        assert [s.title for s in result] == ["B", "A"]

    def test_ties_keep_relative_order(self):
        result = sort_by_score([
            _sample_suggestion("A", 0.5),
            _sample_suggestion("B", 0.7),
            _sample_suggestion("C", 0.5),
        ])
        assert [s.title for s in result] == ["B", "A", "C"]


# ======================================================================
# TestPadding
# ======================================================================

class TestPadding:

    def test_padding_prices_sit_inside_budget(self):
        assert padding_prices(500, 2000) == (800, 1700)

    def test_padding_prices_use_fifty_step_above_2000(self):
        assert padding_prices(2000, 10000) == (3600, 8400)

    def test_padding_prices_zero_width_budget(self):
        assert padding_prices(1000, 1000) == (1000, 1000)
        assert padding_prices(0, 0) == (0, 0)

    def test_first_padding_item(self):
        item = build_padding_item(0, _sample_request(), USER_TAGS)
        assert item.title == "Gardening Starter Kit"
        assert "gardening" in item.description
        assert "mother" in item.description
        assert item.matched_tags == ["Gardening", "Reading", "Calm"]
        assert item.match_score == PADDING_SCORE
        assert (item.price_min, item.price_max) == (800, 1700)
        assert item.delivery_estimate == "4-7 working days across India"
        assert item.vendor == "Amazon India"

    def test_anchor_tag_rotates_round_robin(self):
        items = [build_padding_item(i, _sample_request(), USER_TAGS) for i in range(3)]
        assert [item.matched_tags[0] for item in items] == ["Gardening", "Reading", "Calm"]

    def test_template_advances_after_full_rotation(self):
        item = build_padding_item(4, _sample_request(), USER_TAGS)
        assert item.title == "Personalised Reading Hamper"

    def test_padding_titles_are_distinct(self):
        titles = [build_padding_item(i, _sample_request(), USER_TAGS).title for i in range(9)]
        assert len(set(titles)) == 9

    def test_city_delivery_rule(self):
        item = build_padding_item(0, _sample_request(city="Hyderabad"), USER_TAGS)
        assert item.delivery_estimate == "1-3 working days in Hyderabad"
        item = build_padding_item(0, _sample_request(city="Indore"), USER_TAGS)
        assert item.delivery_estimate == "3-5 working days in Indore"

    def test_single_user_tag_is_completed_with_generic_tags(self):
        item = build_padding_item(0, _sample_request(), ["Chess"])
        assert item.matched_tags == ["Chess", "Thoughtful", "Curated"]

    def test_no_user_tags_still_produces_item(self):
        item = build_padding_item(0, _sample_request(), [])
        assert len(item.matched_tags) == 3
        assert item.title


# ======================================================================
# TestFitToCount
# ======================================================================

class TestFitToCount:

    def test_truncates_to_highest_scores(self):
        suggestions = [_sample_suggestion(f"G{i}", score=i / 20) for i in range(12)]
        result = fit_to_count(suggestions, 9, _sample_request(), USER_TAGS)
        assert len(result) == 9
        assert result[0].title == "G11"
        assert "G0" not in {s.title for s in result}

    def test_pads_short_batches(self):
        suggestions = [_sample_suggestion("Real A", 0.8), _sample_suggestion("Real B", 0.6)]
        result = fit_to_count(suggestions, 9, _sample_request(), USER_TAGS)
        assert len(result) == 9
        assert [s.title for s in result[:2]] == ["Real A", "Real B"]
        assert all(s.match_score == PADDING_SCORE for s in result[2:])

    def test_pads_empty_batch(self):
        result = fit_to_count([], 6, _sample_request(), USER_TAGS)
        assert len(result) == 6

    def test_exact_count_is_unchanged(self):
        suggestions = [_sample_suggestion(f"G{i}") for i in range(6)]
        result = fit_to_count(suggestions, 6, _sample_request(), USER_TAGS)
        assert [s.title for s in result] == [s.title for s in suggestions]


# ======================================================================
# TestFinalPass
# ======================================================================

class TestFinalPass:

    def test_clamp_score(self):
        assert clamp_score(0.1) == 0.3
        assert clamp_score(1.2) == 1.0
        assert clamp_score(0.456) == 0.46
        assert clamp_score(0.3) == 0.3

    def test_repair_prices_swaps_inverted(self):
        suggestion = _sample_suggestion(price_min=900, price_max=500)
        assert repair_prices(suggestion, _sample_request()) == (500, 900)

    def test_repair_tags_dedupes_case_insensitively(self):
        tags = repair_tags("Lamp", ["gift", "Gift", "GIFT"], [])
        assert tags == ["Gift", "Lamp", "Thoughtful"]

    def test_repair_tags_caps_at_six(self):
        tags = repair_tags("Lamp", [f"Tag{i}" for i in range(8)], [])
        assert len(tags) == 6

    def test_repair_tags_uses_unused_user_tags(self):
        tags = repair_tags("", ["Calm"], USER_TAGS)
        assert tags == ["Calm", "Gardening", "Reading"]

    def test_finalize_clamps_and_resorts(self):
        suggestions = [
            _sample_suggestion("Low", 0.12),
            _sample_suggestion("High", 0.91),
        ]
        result = finalize_suggestions(suggestions, _sample_request(), USER_TAGS)
        assert [s.title for s in result] == ["High", "Low"]
        assert result[1].match_score == 0.3


# ======================================================================
# TestSizeBatchNode
# ======================================================================

class TestSizeBatchNode:

    async def test_first_page_has_nine(self):
        state = SuggestionState(
            request=_sample_request(),
            user_tags=USER_TAGS,
            scored=[_sample_suggestion("Real A", 0.82), _sample_suggestion("Real B", 0.2)],
        )

        suggestions = (await size_batch(state))["suggestions"]

        assert len(suggestions) == 9
        scores = [s.match_score for s in suggestions]
        assert scores == sorted(scores, reverse=True)
        assert all(0.30 <= s <= 1.00 and round(s, 2) == s for s in scores)
        assert all(3 <= len(s.matched_tags) <= 6 for s in suggestions)
        assert all(0 <= s.price_min <= s.price_max for s in suggestions)

        present = {tag_key(t) for s in suggestions for t in s.matched_tags}
        assert {"gardening", "reading", "calm"} <= present

    async def test_later_page_has_six(self):
        state = SuggestionState(
            request=_sample_request(offset=9),
            user_tags=USER_TAGS,
            scored=[_sample_suggestion(f"G{i}", 0.5 + i / 100) for i in range(10)],
        )

        suggestions = (await size_batch(state))["suggestions"]

        assert len(suggestions) == 6
        assert suggestions[0].title == "G9"

    @pytest.mark.parametrize("model_count", [0, 3, 9, 15])
    async def test_exact_count_for_any_model_count(self, model_count):
        state = SuggestionState(
            request=_sample_request(),
            user_tags=USER_TAGS,
            scored=[_sample_suggestion(f"G{i}", 0.6) for i in range(model_count)],
        )

        suggestions = (await size_batch(state))["suggestions"]

        assert len(suggestions) == 9
