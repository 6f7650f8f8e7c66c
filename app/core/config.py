"""
Application Configuration

Loads environment variables and provides typed settings
for the application. Uses python-dotenv to load from .env file.

The suggestion pipeline never reads the environment itself: callers build a
PipelineSettings (usually via get_pipeline_settings()) and pass it in.
"""

import os
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

# Load .env file from the repository root
_env_path = Path(__file__).resolve().parent.parent.parent / ".env"
load_dotenv(dotenv_path=_env_path)

# --- App Settings ---
API_V1_PREFIX = "/api/v1"
PROJECT_NAME = "Gift Curator"

# --- Generative backend ---
AI_PROVIDER: str = os.getenv("AI_PROVIDER", "gemini").strip().lower()
AI_API_KEY: str = os.getenv("AI_API_KEY", "").strip()
GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash").strip()
ANTHROPIC_API_KEY: str = os.getenv("ANTHROPIC_API_KEY", "").strip()
ANTHROPIC_MODEL: str = os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-20250514").strip()
AI_REQUEST_TIMEOUT: float = float(os.getenv("AI_REQUEST_TIMEOUT", "30"))

# --- CORS ---
FRONTEND_ALLOWED_ORIGINS: list[str] = [
    origin.strip()
    for origin in (
        os.getenv("FRONTEND_ALLOWED_ORIGINS")
        or os.getenv("VITE_FRONTEND_BASE_URL")
        or "http://localhost:8080"
    ).split(",")
    if origin.strip()
]


def is_ai_configured() -> bool:
    """Check if the active generative backend has an API key."""
    if AI_PROVIDER == "anthropic":
        return bool(ANTHROPIC_API_KEY)
    return bool(AI_API_KEY)


def validate_ai_config() -> bool:
    """Check that the active generative backend is fully configured."""
    if AI_PROVIDER not in ("gemini", "anthropic"):
        raise EnvironmentError(
            f"Unsupported AI_PROVIDER '{AI_PROVIDER}'. Use 'gemini' or 'anthropic'."
        )
    if not is_ai_configured():
        missing = "ANTHROPIC_API_KEY" if AI_PROVIDER == "anthropic" else "AI_API_KEY"
        raise EnvironmentError(
            f"Missing required environment variable: {missing}. "
            f"Please fill in your .env file at: {_env_path}"
        )
    return True


# ======================================================================
# Injectable pipeline settings
# ======================================================================

class PipelineSettings(BaseModel):
    """Everything the suggestion pipeline needs, passed in explicitly."""

    provider: Literal["gemini", "anthropic"] = "gemini"
    api_key: str = ""
    model: str = "gemini-2.5-flash"

    # Required output count: first page is richer than "more" pages
    first_batch_size: int = Field(default=9, ge=1)
    more_batch_size: int = Field(default=6, ge=1)

    temperature: float = 0.7
    initial_max_output_tokens: int = 2048
    escalated_max_output_tokens: int = 4096
    request_timeout: float = 30.0  # seconds, per attempt

    retry_max_attempts: int = Field(default=4, ge=1)
    retry_base_delay: float = 0.4  # seconds
    retry_max_jitter: float = 0.2  # seconds
    retryable_statuses: frozenset[int] = frozenset({429, 503})

    @model_validator(mode="after")
    def check_batch_sizes(self) -> "PipelineSettings":
        if self.first_batch_size <= self.more_batch_size:
            raise ValueError("first_batch_size must be larger than more_batch_size")
        return self


def get_pipeline_settings() -> PipelineSettings:
    """Build PipelineSettings from the environment-derived constants above."""
    if AI_PROVIDER == "anthropic":
        return PipelineSettings(
            provider="anthropic",
            api_key=ANTHROPIC_API_KEY,
            model=ANTHROPIC_MODEL,
            request_timeout=AI_REQUEST_TIMEOUT,
        )
    return PipelineSettings(
        provider="gemini",
        api_key=AI_API_KEY,
        model=GEMINI_MODEL,
        request_timeout=AI_REQUEST_TIMEOUT,
    )
