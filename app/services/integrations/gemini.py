"""
Gemini Integration — generateContent over the Generative Language REST API.

Sends the system instruction as a leading "model" turn followed by the user
prompt, exactly one HTTP request per attempt. Retries, backoff and truncation
escalation live in app.services.completion.
"""

import logging
from typing import Any
from urllib.parse import quote

import httpx

from app.agents.state import PromptPayload
from app.core.errors import AIAPIError, AIParseError
from app.services.completion import (
    BackendTransportError,
    CompletionClient,
    GenerationConfig,
    TransientStatusError,
)

logger = logging.getLogger(__name__)

# ======================================================================
# Constants
# ======================================================================

BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"
ERROR_BODY_LIMIT = 2000


class GeminiCompletionClient(CompletionClient):
    """Async client for Gemini text generation."""

    provider = "gemini"

    @property
    def endpoint(self) -> str:
        return f"{BASE_URL}/{quote(self.settings.model, safe='')}:generateContent"

    @staticmethod
    def build_body(
        prompt: PromptPayload,
        generation_config: GenerationConfig,
    ) -> dict[str, Any]:
        return {
            "contents": [
                {"role": "model", "parts": [{"text": prompt.system}]},
                {"role": "user", "parts": [{"text": prompt.user}]},
            ],
            "generationConfig": {
                "temperature": generation_config.temperature,
                "maxOutputTokens": generation_config.max_output_tokens,
            },
        }

    async def _attempt(
        self,
        prompt: PromptPayload,
        generation_config: GenerationConfig,
    ) -> dict[str, Any]:
        headers = {
            "Content-Type": "application/json",
            "x-goog-api-key": self.settings.api_key,
        }
        body = self.build_body(prompt, generation_config)

        async with httpx.AsyncClient(timeout=self.settings.request_timeout) as client:
            try:
                response = await client.post(self.endpoint, headers=headers, json=body)
            except httpx.HTTPError as exc:
                raise BackendTransportError(f"{type(exc).__name__}: {exc}") from exc

        if response.status_code >= 400:
            error_text = response.text[:ERROR_BODY_LIMIT]
            logger.error(
                "Gemini API error %d: %s", response.status_code, error_text,
            )
            if self.retry_policy.is_retryable(response.status_code):
                raise TransientStatusError(response.status_code, error_text)
            raise AIAPIError(
                f"AI API error: {response.status_code}",
                status=response.status_code,
                details=error_text,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raw_text = response.text[:ERROR_BODY_LIMIT]
            logger.error("Failed to parse Gemini response JSON: %s", exc)
            raise AIParseError(
                "Failed to parse AI response JSON.", details=raw_text,
            ) from exc

        if not isinstance(data, dict):
            raise AIParseError(
                "AI response JSON was not an object.",
                details=response.text[:ERROR_BODY_LIMIT],
            )

        logger.debug("Gemini response (truncated): %s", response.text[:1000])
        return data
