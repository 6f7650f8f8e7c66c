"""
Gifts API — AI-powered gift suggestion pages.

POST /api/v1/gifts/suggest — Generate one page of gift suggestions

Pipeline failures are raised as SuggestionError subclasses and turned into
typed JSON error bodies by the handler registered in app.main.
"""

import logging

from fastapi import APIRouter, status

from app.agents.pipeline import generate_suggestions
from app.core.config import get_pipeline_settings
from app.core.errors import SuggestionError
from app.models.gifts import GiftSuggestRequest, GiftSuggestResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/gifts", tags=["gifts"])


# ===================================================================
# POST /api/v1/gifts/suggest — Generate Suggestions
# ===================================================================

@router.post(
    "/suggest",
    status_code=status.HTTP_200_OK,
    response_model=GiftSuggestResponse,
)
async def suggest_gifts(payload: GiftSuggestRequest) -> GiftSuggestResponse:
    """
    Generate one ordered page of gift suggestions.

    Returns:
        200: Exactly 9 suggestions (offset 0) or 6 (later pages).
        400: Missing or invalid request fields.
        502: The model backend failed or returned unusable output.
        503: The model backend is temporarily unavailable.
    """
    try:
        gifts = await generate_suggestions(payload, get_pipeline_settings())
    except SuggestionError as exc:
        logger.error(
            "Gift suggestion failed (%s, offset=%d): %s",
            exc.code, payload.offset, exc.message,
        )
        raise

    return GiftSuggestResponse(gifts=gifts, count=len(gifts), offset=payload.offset)
