"""
Gift Suggestions API Tests

Tests that:
1. POST /api/v1/gifts/suggest returns the pipeline's page with count/offset
2. Invalid payloads are rejected as validation_error (400) naming fields
3. Pipeline failures become typed error bodies with the right status
4. /health responds and CORS preflight honours the allowed origins

Run with: pytest tests/test_suggestions_api.py -v
"""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from app.agents.state import GiftSuggestion
from app.core.config import FRONTEND_ALLOWED_ORIGINS
from app.core.errors import (
    AIAPIError,
    AINotConfiguredError,
    AIUnavailableError,
    MalformedAIOutputError,
    StorageError,
)
from app.main import app

client = TestClient(app)

SUGGEST_URL = "/api/v1/gifts/suggest"


# ======================================================================
# Sample data factories
# ======================================================================

def _sample_payload(**overrides) -> dict:
    data = {
        "relation": "Mother",
        "occasion": "Birthday",
        "budget_min": 500,
        "budget_max": 2000,
        "hobbies": ["Gardening", "Reading"],
        "personalities": ["Calm"],
        "offset": 0,
    }
    data.update(overrides)
    return data


def _sample_suggestions(count: int = 9) -> list[GiftSuggestion]:
    return [
        GiftSuggestion(
            title=f"Gift {i}",
            description="A thoughtful gift.",
            price_min=500,
            price_max=900,
            match_score=round(0.9 - i * 0.05, 2),
            matched_tags=["Gardening", "Reading", "Calm"],
            ai_rationale="Fits her hobbies.",
            delivery_estimate="4-7 working days across India",
            vendor="Amazon India",
        )
        for i in range(count)
    ]


def _patch_pipeline(**kwargs):
    return patch("app.api.gifts.generate_suggestions", new_callable=AsyncMock, **kwargs)


# ======================================================================
# TestSuggestEndpoint
# ======================================================================

class TestSuggestEndpoint:

    def test_returns_gifts_count_and_offset(self):
        with _patch_pipeline(return_value=_sample_suggestions()):
            response = client.post(SUGGEST_URL, json=_sample_payload())

        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 9
        assert body["offset"] == 0
        assert len(body["gifts"]) == 9
        assert body["gifts"][0]["title"] == "Gift 0"
        assert set(body["gifts"][0]) >= {
            "title", "description", "price_min", "price_max", "match_score",
            "matched_tags", "ai_rationale", "delivery_estimate", "vendor",
        }

    def test_pipeline_receives_trimmed_request(self):
        with _patch_pipeline(return_value=_sample_suggestions(6)) as mock_pipeline:
            response = client.post(
                SUGGEST_URL,
                json=_sample_payload(relation="  Mother ", city=" ", offset=9),
            )

        assert response.status_code == 200
        request = mock_pipeline.call_args.args[0]
        assert request.relation == "Mother"
        assert request.city is None
        assert request.offset == 9
        assert response.json()["offset"] == 9


# ======================================================================
# TestValidation
# ======================================================================

class TestValidation:

    def _assert_rejected(self, payload: dict, field: str) -> None:
        with _patch_pipeline() as mock_pipeline:
            response = client.post(SUGGEST_URL, json=payload)

        assert response.status_code == 400
        body = response.json()
        assert body["gifts"] == []
        assert body["error"]["code"] == "validation_error"
        assert body["error"]["message"].startswith("Bad request: missing or invalid fields:")
        assert field in body["error"]["message"]
        mock_pipeline.assert_not_called()

    def test_missing_relation(self):
        payload = _sample_payload()
        del payload["relation"]
        self._assert_rejected(payload, "relation")

    def test_blank_occasion(self):
        self._assert_rejected(_sample_payload(occasion="   "), "occasion")

    def test_non_numeric_budget(self):
        self._assert_rejected(_sample_payload(budget_min="cheap"), "budget_min")

    def test_negative_budget(self):
        self._assert_rejected(_sample_payload(budget_min=-1), "budget_min")

    def test_budget_max_below_min(self):
        self._assert_rejected(_sample_payload(budget_min=3000, budget_max=1000), "budget_max")

    def test_empty_hobbies(self):
        self._assert_rejected(_sample_payload(hobbies=[]), "hobbies")

    def test_personalities_not_a_list(self):
        self._assert_rejected(_sample_payload(personalities="Calm"), "personalities")

    def test_non_positive_age(self):
        self._assert_rejected(_sample_payload(age=0), "age")

    def test_negative_offset(self):
        self._assert_rejected(_sample_payload(offset=-6), "offset")

    def test_lists_every_invalid_field(self):
        with _patch_pipeline():
            response = client.post(SUGGEST_URL, json={"budget_min": 0, "budget_max": 100})
        message = response.json()["error"]["message"]
        for field in ("relation", "occasion", "hobbies", "personalities"):
            assert field in message


# ======================================================================
# TestErrorResponses
# ======================================================================

class TestErrorResponses:

    @pytest.mark.parametrize("error, status, code, retryable", [
        (AIUnavailableError("AI API error: 503", status=503), 503, "ai_api_unavailable", True),
        (AIAPIError("AI API error: 400", status=400, details="bad key"), 502, "ai_api_error", False),
        (AINotConfiguredError("AI provider 'gemini' is not configured: missing API key."),
         503, "ai_not_configured", False),
        (MalformedAIOutputError("AI returned malformed or truncated JSON.", details="nope"),
         502, "ai_malformed_json", False),
        (StorageError("Failed to save suggestions."), 500, "storage_error", False),
    ])
    def test_typed_errors(self, error, status, code, retryable):
        with _patch_pipeline(side_effect=error):
            response = client.post(SUGGEST_URL, json=_sample_payload())

        assert response.status_code == status
        body = response.json()
        assert body["gifts"] == []
        assert body["error"]["code"] == code
        assert body["error"]["retryable"] is retryable
        assert body["error"]["message"] == error.message

    def test_details_are_included(self):
        error = AIAPIError("AI API error: 400", status=400, details="API key not valid")
        with _patch_pipeline(side_effect=error):
            response = client.post(SUGGEST_URL, json=_sample_payload())

        assert response.json()["error"]["details"] == "API key not valid"


# ======================================================================
# TestAppSurface
# ======================================================================

class TestAppSurface:

    def test_health(self):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_cors_preflight_for_allowed_origin(self):
        origin = FRONTEND_ALLOWED_ORIGINS[0]
        response = client.options(
            SUGGEST_URL,
            headers={
                "Origin": origin,
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "content-type",
            },
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == origin
        assert response.headers["access-control-allow-credentials"] == "true"
