"""
Claude Integration — Anthropic Messages API backend for gift generation.

The SDK's own retry loop is disabled (max_retries=0) so the shared
RetryPolicy in app.services.completion is the only one in effect. SDK
exceptions are translated into the same signals the Gemini backend raises.
"""

import logging
from typing import Any, Optional

import anthropic
from anthropic import AsyncAnthropic

from app.agents.state import PromptPayload
from app.core.config import PipelineSettings
from app.core.errors import AIAPIError, AIParseError
from app.services.completion import (
    BackendTransportError,
    CompletionClient,
    GenerationConfig,
    RetryPolicy,
    TransientStatusError,
)

logger = logging.getLogger(__name__)

ERROR_BODY_LIMIT = 2000


class ClaudeCompletionClient(CompletionClient):
    """Async client for Claude text generation."""

    provider = "anthropic"

    def __init__(
        self,
        settings: PipelineSettings,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        super().__init__(settings, retry_policy)
        self._client = AsyncAnthropic(
            api_key=settings.api_key,
            max_retries=0,
            timeout=settings.request_timeout,
        )

    async def _attempt(
        self,
        prompt: PromptPayload,
        generation_config: GenerationConfig,
    ) -> dict[str, Any]:
        try:
            message = await self._client.messages.create(
                model=self.settings.model,
                max_tokens=generation_config.max_output_tokens,
                temperature=generation_config.temperature,
                system=prompt.system,
                messages=[{"role": "user", "content": prompt.user}],
            )
        except anthropic.APIResponseValidationError as exc:
            logger.error("Failed to parse Claude response: %s", exc)
            raise AIParseError(
                "Failed to parse AI response JSON.",
                details=str(exc)[:ERROR_BODY_LIMIT],
            ) from exc
        except anthropic.APIStatusError as exc:
            error_text = str(exc.message)[:ERROR_BODY_LIMIT]
            logger.error("Claude API error %d: %s", exc.status_code, error_text)
            if self.retry_policy.is_retryable(exc.status_code):
                raise TransientStatusError(exc.status_code, error_text) from exc
            raise AIAPIError(
                f"AI API error: {exc.status_code}",
                status=exc.status_code,
                details=error_text,
            ) from exc
        except anthropic.APIConnectionError as exc:
            raise BackendTransportError(f"{type(exc).__name__}: {exc}") from exc

        return message.model_dump()
