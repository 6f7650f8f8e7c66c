"""
Suggestion Pipeline — LangGraph graph composing the gift suggestion nodes.

Chains the nodes into an executable graph:
1. build_prompt — Normalize user tags, render the system/user prompt
2. generate — Call the generative backend (retry + truncation escalation)
3. parse_candidates — Extract/repair JSON, normalize each candidate
4. score_candidates — Server-side re-scoring, tag selection, coverage
5. size_batch — Exact count, padding, final invariant pass

There are no short-circuit edges: a node either succeeds or raises a
SuggestionError, which propagates out of ainvoke. Callers never see a
partial result.
"""

import logging
from typing import Optional

from langgraph.graph import END, START, StateGraph

from app.agents.batching import size_batch
from app.agents.generation import build_prompt, create_completion_client, make_generate_node
from app.agents.parsing import parse_candidates
from app.agents.scoring import score_candidates
from app.agents.state import GiftRequest, GiftSuggestion, SuggestionState
from app.core.config import PipelineSettings
from app.services.completion import CompletionClient

logger = logging.getLogger(__name__)


# ======================================================================
# Graph construction
# ======================================================================

def build_suggestion_graph(client: CompletionClient) -> StateGraph:
    """
    Build the LangGraph StateGraph for one completion client.

    Returns the uncompiled StateGraph (call .compile() to get the
    executable CompiledStateGraph).

    Node names:
    - "build_prompt"
    - "generate"
    - "parse_candidates"
    - "score_candidates"
    - "size_batch"
    """
    graph = StateGraph(SuggestionState)

    # --- Add nodes ---
    graph.add_node("build_prompt", build_prompt)
    graph.add_node("generate", make_generate_node(client))
    graph.add_node("parse_candidates", parse_candidates)
    graph.add_node("score_candidates", score_candidates)
    graph.add_node("size_batch", size_batch)

    # --- Define edges ---
    graph.add_edge(START, "build_prompt")
    graph.add_edge("build_prompt", "generate")
    graph.add_edge("generate", "parse_candidates")
    graph.add_edge("parse_candidates", "score_candidates")
    graph.add_edge("score_candidates", "size_batch")
    graph.add_edge("size_batch", END)

    return graph


# ======================================================================
# Library entry point
# ======================================================================

async def generate_suggestions(
    request: GiftRequest,
    settings: Optional[PipelineSettings] = None,
    client: Optional[CompletionClient] = None,
) -> list[GiftSuggestion]:
    """
    Generate one ordered, fixed-size page of gift suggestions.

    Args:
        request: A validated GiftRequest.
        settings: Pipeline settings; defaults to PipelineSettings().
        client: Completion backend; defaults to the one named by
                ``settings.provider``.

    Returns:
        Exactly 9 suggestions for offset 0, otherwise 6 (per settings),
        sorted by match_score descending.

    Raises:
        SuggestionError: Any backend or parse failure; nothing is returned
            partially.
    """
    settings = settings or PipelineSettings()
    client = client or create_completion_client(settings)

    logger.info(
        "Starting suggestion pipeline (%s, offset=%d)",
        client.provider, request.offset,
    )

    graph = build_suggestion_graph(client).compile()
    result = await graph.ainvoke(SuggestionState(request=request, settings=settings))

    suggestions = result.get("suggestions", [])
    logger.info(
        "Pipeline completed: %d suggestions: %s",
        len(suggestions), [s.title for s in suggestions],
    )
    return suggestions
