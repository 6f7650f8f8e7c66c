"""
Suggestion State Schema — Pydantic models for the LangGraph suggestion pipeline.

Defines the state that flows through the gift suggestion graph:
1. build_prompt — Normalize user tags and render the model prompt
2. generate — Call the generative backend (retry + truncation escalation)
3. parse_candidates — Extract/repair JSON and normalize each candidate
4. score_candidates — Re-score, re-tag and enforce batch tag coverage
5. size_batch — Trim or pad to the exact count, final invariant pass
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from app.core.config import PipelineSettings


# ======================================================================
# Request
# ======================================================================

class GiftRequest(BaseModel):
    """
    Structured gift request.

    Field-level validation (non-empty relation, budget ordering, ...) is the
    caller's job; see app.models.gifts.GiftSuggestRequest.
    """

    name: Optional[str] = None
    age: Optional[int] = None
    relation: str
    occasion: str
    budget_min: int  # INR
    budget_max: int  # INR
    hobbies: list[Any]
    personalities: list[Any]
    city: Optional[str] = None
    offset: int = 0

    @property
    def is_first_batch(self) -> bool:
        return self.offset == 0


# ======================================================================
# Candidates and suggestions
# ======================================================================

class Candidate(BaseModel):
    """
    A model-produced gift after type coercion.

    Scores and tags are still the model's own (untrusted) values.
    """

    title: str = ""
    description: str = ""
    price_min: Optional[int] = None
    price_max: Optional[int] = None
    match_score: float = 0.0
    matched_tags: list[str] = Field(default_factory=list)
    ai_rationale: str = ""
    delivery_estimate: str = ""
    vendor: str = ""


class GiftSuggestion(BaseModel):
    """A fully validated, server-scored gift returned to the caller."""

    title: str
    description: str = ""
    price_min: int
    price_max: int
    match_score: float
    matched_tags: list[str]
    ai_rationale: str = ""
    delivery_estimate: str = ""
    vendor: str = ""


class PromptPayload(BaseModel):
    """System instruction + user instruction + the count both demand."""

    system: str
    user: str
    required_count: int


# ======================================================================
# Main LangGraph State
# ======================================================================

class SuggestionState(BaseModel):
    """
    Complete state for one pipeline invocation. Request-scoped; nothing here
    outlives the call.
    """

    # --- Input data (set before graph execution) ---
    request: GiftRequest
    settings: PipelineSettings = Field(default_factory=PipelineSettings)

    # --- Populated by graph nodes ---
    user_tags: list[str] = Field(default_factory=list)
    prompt: Optional[PromptPayload] = None
    raw_response: dict[str, Any] = Field(default_factory=dict)
    candidates: list[Candidate] = Field(default_factory=list)
    scored: list[GiftSuggestion] = Field(default_factory=list)
    suggestions: list[GiftSuggestion] = Field(default_factory=list)
