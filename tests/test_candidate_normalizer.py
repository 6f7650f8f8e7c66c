"""
Candidate Normalizer Tests

Tests that:
1. Text fields are coerced to trimmed strings
2. Prices are rounded, floored at zero, or None when not numeric
3. Scores accept numbers, numeric strings and percentages
4. Tags become a list of trimmed non-empty strings
5. Normalizing a normalized candidate changes nothing

Run with: pytest tests/test_candidate_normalizer.py -v
"""

from app.agents.state import Candidate
from app.services.candidates import (
    normalize_candidate,
    normalize_candidates,
    normalize_price,
    normalize_score,
    normalize_tags,
    round_half_up,
)
from app.services.response_parser import extract_json_objects


# ======================================================================
# Sample data factories
# ======================================================================

def _sample_raw_candidate(**overrides) -> dict:
    """A model object with the usual amount of mess."""
    data = {
        "title": "  Herb Garden Starter Kit ",
        "description": "Indoor herbs for a calm gardener.",
        "price_min": "₹ 799.6",
        "price_max": 1200,
        "match_score": "87%",
        "matched_tags": ["Gardening ", "", None, "Calm"],
        "ai_rationale": None,
        "delivery_estimate": "4-7 working days across India",
        "vendor": "Amazon India",
    }
    data.update(overrides)
    return data


# ======================================================================
# TestPrices
# ======================================================================

class TestPrices:

    def test_integer_passthrough(self):
        assert normalize_price(1499) == 1499

    def test_rounds_half_up(self):
        assert normalize_price(1499.5) == 1500
        assert normalize_price(1499.4) == 1499

    def test_strips_currency_and_separators(self):
        assert normalize_price("₹1,499") == 1499
        assert normalize_price("Rs. 2,000") == 2000
        assert normalize_price("INR 750") == 750

    def test_negative_is_floored_at_zero(self):
        assert normalize_price(-20) == 0

    def test_non_numeric_is_none(self):
        assert normalize_price("abc") is None
        assert normalize_price(None) is None
        assert normalize_price([500]) is None
        assert normalize_price(True) is None

    def test_non_finite_is_none(self):
        assert normalize_price(float("nan")) is None
        assert normalize_price(float("inf")) is None

    def test_integer_too_large_for_float_is_none(self):
        assert normalize_price(int("9" * 400)) is None
        assert normalize_price("9" * 400) is None


# ======================================================================
# TestScores
# ======================================================================

class TestScores:

    def test_unit_interval_passthrough(self):
        assert normalize_score(0.85) == 0.85
        assert normalize_score(1) == 1.0
        assert normalize_score(0) == 0.0

    def test_rounds_to_two_decimals_half_up(self):
        assert normalize_score("0.876") == 0.88
        assert normalize_score(0.125) == 0.13

    def test_percentages(self):
        assert normalize_score(85) == 0.85
        assert normalize_score("85%") == 0.85
        assert normalize_score("100") == 1.0

    def test_values_above_100_are_scaled_down(self):
        assert normalize_score(850) == 0.85
        assert normalize_score(8500) == 0.85

    def test_negative_is_clamped(self):
        assert normalize_score(-0.5) == 0.0

    def test_unparseable_is_zero(self):
        assert normalize_score("n/a") == 0.0
        assert normalize_score(None) == 0.0
        assert normalize_score({"score": 1}) == 0.0

    def test_integer_too_large_for_float_is_zero(self):
        assert normalize_score(int("9" * 400)) == 0.0

    def test_round_half_up_helper(self):
        assert round_half_up(0.125, 2) == 0.13
        assert round_half_up(2.5) == 3.0


# ======================================================================
# TestTags
# ======================================================================

class TestTags:

    def test_trims_and_drops_empty(self):
        assert normalize_tags(["Gardening ", "", "  ", "Calm"]) == ["Gardening", "Calm"]

    def test_drops_null_and_nested_values(self):
        assert normalize_tags(["Chess", None, {"a": 1}, ["x"], 3]) == ["Chess", "3"]

    def test_non_list_is_empty(self):
        assert normalize_tags("Gardening") == []
        assert normalize_tags(None) == []


# ======================================================================
# TestNormalizeCandidate
# ======================================================================

class TestNormalizeCandidate:

    def test_full_candidate(self):
        candidate = normalize_candidate(_sample_raw_candidate())
        assert candidate.title == "Herb Garden Starter Kit"
        assert candidate.ai_rationale == ""
        assert candidate.price_min == 800
        assert candidate.price_max == 1200
        assert candidate.match_score == 0.87
        assert candidate.matched_tags == ["Gardening", "Calm"]

    def test_missing_fields_get_defaults(self):
        candidate = normalize_candidate({"title": "Mystery"})
        assert candidate.description == ""
        assert candidate.price_min is None
        assert candidate.price_max is None
        assert candidate.match_score == 0.0
        assert candidate.matched_tags == []

    def test_non_dict_input_never_raises(self):
        assert normalize_candidate("junk") == Candidate()
        assert normalize_candidate(None) == Candidate()

    def test_huge_parsed_numbers_never_raise(self):
        huge = "9" * 400
        raw = extract_json_objects(
            f'[{{"title": "A", "price_min": {huge}, "price_max": {huge}, "match_score": {huge}}}]'
        )[0]
        candidate = normalize_candidate(raw)
        assert candidate.title == "A"
        assert candidate.price_min is None
        assert candidate.price_max is None
        assert candidate.match_score == 0.0

    def test_numbers_in_text_fields_become_strings(self):
        candidate = normalize_candidate({"title": 42, "vendor": 7})
        assert candidate.title == "42"
        assert candidate.vendor == "7"

    def test_normalize_candidates_keeps_order(self):
        result = normalize_candidates([{"title": "A"}, {"title": "B"}])
        assert [c.title for c in result] == ["A", "B"]

    def test_idempotent_on_candidate(self):
        once = normalize_candidate(_sample_raw_candidate())
        twice = normalize_candidate(once)
        assert twice == once

    def test_idempotent_on_dumped_candidate(self):
        once = normalize_candidate(_sample_raw_candidate(match_score=850, price_min=None))
        assert normalize_candidate(once.model_dump()) == once
