"""
Gift Suggestion Models — Pydantic schemas for the gift suggestion API.

Defines request and response models for:
- POST /api/v1/gifts/suggest (generate one page of gift suggestions)

The request model performs the caller-side validation the pipeline relies
on; the pipeline itself assumes a well-formed GiftRequest.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationInfo, field_validator

from app.agents.state import GiftRequest, GiftSuggestion


# ======================================================================
# Request Models
# ======================================================================

class GiftSuggestRequest(GiftRequest):
    """
    Payload for POST /api/v1/gifts/suggest.

    offset 0 asks for the first page (9 items); any later offset asks for a
    "more" page (6 items).
    """

    age: Optional[int] = Field(default=None, gt=0)
    budget_min: int = Field(..., ge=0)
    budget_max: int = Field(..., ge=0)
    offset: int = Field(default=0, ge=0)

    @field_validator("relation", "occasion")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v

    @field_validator("name", "city")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None

    @field_validator("budget_max")
    @classmethod
    def validate_budget_order(cls, v: int, info: ValidationInfo) -> int:
        budget_min = info.data.get("budget_min")
        if budget_min is not None and v < budget_min:
            raise ValueError("budget_max must be greater than or equal to budget_min")
        return v

    @field_validator("hobbies", "personalities")
    @classmethod
    def validate_non_empty(cls, v: list[Any]) -> list[Any]:
        if not v:
            raise ValueError("must be a non-empty list")
        return v


# ======================================================================
# Response Models
# ======================================================================

class GiftSuggestResponse(BaseModel):
    """Response for POST /api/v1/gifts/suggest."""

    gifts: list[GiftSuggestion]
    count: int
    offset: int
