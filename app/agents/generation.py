"""
Generation Nodes — LangGraph nodes that render the prompt and call the
generative backend.

build_prompt normalizes the user tags and renders the system/user prompt.
The generate node is built per client (make_generate_node) so a stub or
pre-configured backend can be injected without touching the environment.
"""

import logging
from typing import Any, Awaitable, Callable

from app.agents.state import SuggestionState
from app.core.config import PipelineSettings
from app.core.errors import AINotConfiguredError
from app.services.completion import CompletionClient, generate_completion
from app.services.integrations.claude_completion import ClaudeCompletionClient
from app.services.integrations.gemini import GeminiCompletionClient
from app.services.prompts import build_prompt as render_prompt
from app.services.tags import normalize_user_tags

logger = logging.getLogger(__name__)

_CLIENTS: dict[str, type[CompletionClient]] = {
    "gemini": GeminiCompletionClient,
    "anthropic": ClaudeCompletionClient,
}


def create_completion_client(settings: PipelineSettings) -> CompletionClient:
    """
    Instantiate the backend named by ``settings.provider``.

    Raises:
        AINotConfiguredError: If no API key is set for the provider.
    """
    if not settings.api_key:
        logger.error("No API key configured for AI provider %s", settings.provider)
        raise AINotConfiguredError(
            f"AI provider '{settings.provider}' is not configured: missing API key."
        )
    return _CLIENTS[settings.provider](settings)


async def build_prompt(state: SuggestionState) -> dict[str, Any]:
    """
    LangGraph node: Normalize user tags and render the prompt.

    Returns:
        A dict with "user_tags" and "prompt".
    """
    user_tags = normalize_user_tags(state.request.hobbies, state.request.personalities)
    prompt = render_prompt(state.request, state.settings)

    logger.info(
        "Built prompt for %s / %s: %d user tags, %d items required",
        state.request.relation, state.request.occasion,
        len(user_tags), prompt.required_count,
    )
    return {"user_tags": user_tags, "prompt": prompt}


def make_generate_node(
    client: CompletionClient,
) -> Callable[[SuggestionState], Awaitable[dict[str, Any]]]:
    """Bind a completion client into a LangGraph node."""

    async def generate(state: SuggestionState) -> dict[str, Any]:
        """
        LangGraph node: Call the backend for the rendered prompt.

        Failures propagate as SuggestionError subclasses; the graph run is
        all-or-nothing.

        Returns:
            A dict with "raw_response" holding the backend envelope.
        """
        prompt = state.prompt
        if prompt is None:
            prompt = render_prompt(state.request, state.settings)

        raw_response = await generate_completion(client, prompt, state.settings)
        return {"raw_response": raw_response}

    return generate
