"""
Completion Client — one retry policy for every generative backend.

Backends (Gemini over httpx, Claude via the anthropic SDK) implement a single
attempt in ``_attempt``. This module owns everything around it:

- RetryPolicy: max attempts, exponential base delay, jitter and the
  retryable-status predicate. Backends must not retry on their own.
- CompletionClient.complete(): bounded retries for transient statuses and
  network failures; non-transient HTTP errors and unparseable bodies fail
  immediately.
- generate_completion(): one follow-up call with a larger output allowance
  when the first response was truncated and carried no usable text.
- extract_response_text(): ordered list of envelope strategies for the
  historically different response shapes.
"""

import asyncio
import logging
import random
from typing import Any, Callable, Optional

from pydantic import BaseModel

from app.agents.state import PromptPayload
from app.core.config import PipelineSettings
from app.core.errors import (
    AIRequestFailedError,
    AIRequestFatalError,
    AIUnavailableError,
)

logger = logging.getLogger(__name__)

TRUNCATION_REASONS = {"MAX_TOKENS", "max_tokens"}


# ======================================================================
# Policy and config objects
# ======================================================================

class RetryPolicy(BaseModel):
    """Retry settings owned by the completion client."""

    max_attempts: int = 4
    base_delay: float = 0.4  # seconds
    max_jitter: float = 0.2  # seconds
    retryable_statuses: frozenset[int] = frozenset({429, 503})

    @classmethod
    def from_settings(cls, settings: PipelineSettings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay,
            max_jitter=settings.retry_max_jitter,
            retryable_statuses=settings.retryable_statuses,
        )

    def is_retryable(self, status: int) -> bool:
        return status in self.retryable_statuses

    def delay_for(self, attempt: int) -> float:
        """Backoff before the attempt after ``attempt`` (0-based)."""
        return self.base_delay * (2 ** attempt) + random.uniform(0, self.max_jitter)


class GenerationConfig(BaseModel):
    temperature: float = 0.7
    max_output_tokens: int = 2048


class TransientStatusError(Exception):
    """A retryable HTTP status from a backend (not surfaced to callers)."""

    def __init__(self, status: int, details: str = "") -> None:
        super().__init__(f"AI API error: {status}")
        self.status = status
        self.details = details


class BackendTransportError(Exception):
    """A network-level failure from a backend (not surfaced to callers)."""


# ======================================================================
# Client base
# ======================================================================

class CompletionClient:
    """
    Base class for generative backends.

    Subclasses implement ``_attempt`` and report failures by raising
    TransientStatusError, BackendTransportError, AIAPIError or AIParseError.
    """

    provider = "base"

    def __init__(
        self,
        settings: PipelineSettings,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self.settings = settings
        self.retry_policy = retry_policy or RetryPolicy.from_settings(settings)

    async def _attempt(
        self,
        prompt: PromptPayload,
        generation_config: GenerationConfig,
    ) -> dict[str, Any]:
        raise NotImplementedError

    async def complete(
        self,
        prompt: PromptPayload,
        generation_config: GenerationConfig,
    ) -> dict[str, Any]:
        """
        Send one completion request, retrying transient failures.

        Returns:
            The backend's parsed JSON envelope.

        Raises:
            AIUnavailableError: Transient status on every attempt.
            AIAPIError: Non-transient HTTP status (not retried).
            AIParseError: Response body was not JSON (not retried).
            AIRequestFailedError: Network failure on every attempt.
            AIRequestFatalError: The policy allowed no attempts at all.
        """
        policy = self.retry_policy
        logger.info(
            "%s completion request (max_output_tokens=%d, temperature=%.2f)",
            self.provider, generation_config.max_output_tokens,
            generation_config.temperature,
        )

        for attempt in range(policy.max_attempts):
            is_last = attempt == policy.max_attempts - 1
            try:
                return await self._attempt(prompt, generation_config)

            except TransientStatusError as exc:
                if is_last:
                    raise AIUnavailableError(
                        f"AI API error: {exc.status}",
                        status=exc.status,
                        details=exc.details,
                    ) from exc
                delay = policy.delay_for(attempt)
                logger.warning(
                    "Transient %s error %d, retrying in %.2fs (attempt %d/%d)",
                    self.provider, exc.status, delay, attempt + 1,
                    policy.max_attempts,
                )
                await asyncio.sleep(delay)

            except BackendTransportError as exc:
                if is_last:
                    raise AIRequestFailedError(
                        "AI request failed after retries.",
                        details=str(exc),
                    ) from exc
                delay = policy.delay_for(attempt)
                logger.warning(
                    "Network error calling %s (attempt %d/%d), retrying in %.2fs: %s",
                    self.provider, attempt + 1, policy.max_attempts, delay, exc,
                )
                await asyncio.sleep(delay)

        raise AIRequestFatalError("AI request failed (fatal).")


# ======================================================================
# Envelope inspection
# ======================================================================

def _first_candidate(data: dict[str, Any]) -> Optional[dict[str, Any]]:
    candidates = data.get("candidates")
    if isinstance(candidates, list) and candidates and isinstance(candidates[0], dict):
        return candidates[0]
    return None


def _parts_text(container: Any) -> Optional[str]:
    """Text of ``container["parts"][0]`` if present."""
    if not isinstance(container, dict):
        return None
    parts = container.get("parts")
    if isinstance(parts, list) and parts and isinstance(parts[0], dict):
        text = parts[0].get("text")
        if isinstance(text, str) and text:
            return text
    return None


def _text_from_candidates(data: dict[str, Any]) -> Optional[str]:
    """candidates[0].content -> parts[0].text (content may be a list)."""
    candidate = _first_candidate(data)
    if candidate is None:
        return None
    content = candidate.get("content")
    if isinstance(content, list):
        for item in content:
            text = _parts_text(item)
            if text:
                return text
        return None
    return _parts_text(content)


def _text_from_output(data: dict[str, Any]) -> Optional[str]:
    """output[...].content[...] with either .text or .parts[0].text."""
    output = data.get("output")
    if not isinstance(output, list):
        return None
    for out_item in output:
        content = out_item.get("content") if isinstance(out_item, dict) else None
        if not isinstance(content, list):
            continue
        for item in content:
            if not isinstance(item, dict):
                continue
            text = item.get("text")
            if isinstance(text, str) and text:
                return text
            text = _parts_text(item)
            if text:
                return text
    return None


def _text_from_message_content(data: dict[str, Any]) -> Optional[str]:
    """Messages API shape: content[...] blocks carrying .text."""
    content = data.get("content")
    if not isinstance(content, list):
        return None
    texts = [
        block["text"] for block in content
        if isinstance(block, dict) and isinstance(block.get("text"), str)
    ]
    joined = "".join(texts)
    return joined or None


def _text_from_top_level(data: dict[str, Any]) -> Optional[str]:
    candidate = _first_candidate(data) or {}
    for value in (
        candidate.get("output_text"),
        candidate.get("text"),
        data.get("text"),
        data.get("generated_text"),
    ):
        if isinstance(value, str) and value:
            return value
    return None


_RESPONSE_TEXT_STRATEGIES: tuple[Callable[[dict[str, Any]], Optional[str]], ...] = (
    _text_from_candidates,
    _text_from_output,
    _text_from_message_content,
    _text_from_top_level,
)


def extract_response_text(data: Any) -> Optional[str]:
    """Return the model text from a backend envelope, or None if absent."""
    if not isinstance(data, dict):
        return None
    for strategy in _RESPONSE_TEXT_STRATEGIES:
        text = strategy(data)
        if text:
            return text
    return None


def response_finish_reason(data: Any) -> Optional[str]:
    if not isinstance(data, dict):
        return None
    candidate = _first_candidate(data) or {}
    reason = (
        candidate.get("finishReason")
        or candidate.get("finish_reason")
        or data.get("stop_reason")
    )
    return reason if isinstance(reason, str) else None


def is_truncated(data: Any) -> bool:
    return response_finish_reason(data) in TRUNCATION_REASONS


# ======================================================================
# Main completion entry point
# ======================================================================

async def generate_completion(
    client: CompletionClient,
    prompt: PromptPayload,
    settings: PipelineSettings,
) -> dict[str, Any]:
    """
    Run the completion, escalating the output allowance at most once.

    The follow-up call happens only when the first response was cut off
    (MAX_TOKENS) and carries no text at all.
    """
    data = await client.complete(
        prompt,
        GenerationConfig(
            temperature=settings.temperature,
            max_output_tokens=settings.initial_max_output_tokens,
        ),
    )

    if is_truncated(data) and extract_response_text(data) is None:
        logger.warning(
            "Response truncated with no text, retrying once with "
            "max_output_tokens=%d",
            settings.escalated_max_output_tokens,
        )
        data = await client.complete(
            prompt,
            GenerationConfig(
                temperature=settings.temperature,
                max_output_tokens=settings.escalated_max_output_tokens,
            ),
        )

    return data
