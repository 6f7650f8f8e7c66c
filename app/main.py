"""
Gift Curator Backend — FastAPI Entry Point

This is the main application module for the gift suggestion backend.
It initializes the FastAPI app, CORS, error handlers and route handlers.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.gifts import router as gifts_router
from app.core.config import FRONTEND_ALLOWED_ORIGINS, PROJECT_NAME
from app.core.errors import InvalidGiftRequestError, SuggestionError

logger = logging.getLogger(__name__)

app = FastAPI(
    title=f"{PROJECT_NAME} API",
    description="AI-curated gift suggestions for Indian shoppers — Backend API",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=FRONTEND_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)

# --- Register API routers ---
app.include_router(gifts_router)


# ======================================================================
# Error handlers
# ======================================================================

def _error_response(exc: SuggestionError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.to_dict(), "gifts": []},
    )


@app.exception_handler(SuggestionError)
async def suggestion_error_handler(request: Request, exc: SuggestionError):
    """Typed pipeline failures keep their code, message and details."""
    return _error_response(exc)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Report invalid payloads as validation_error with the offending fields."""
    fields: list[str] = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part != "body"]
        field = loc[0] if loc else "body"
        if field not in fields:
            fields.append(field)

    logger.warning("Rejected gift request, invalid fields: %s", fields)
    error = InvalidGiftRequestError(
        f"Bad request: missing or invalid fields: {', '.join(fields)}",
        details="; ".join(
            f"{'.'.join(str(p) for p in e.get('loc', ()))}: {e.get('msg', '')}"
            for e in exc.errors()
        ),
    )
    return _error_response(error)


@app.get("/health")
async def health_check():
    """Health check endpoint. Returns service status."""
    return {"status": "ok"}
