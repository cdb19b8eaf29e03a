"""Row pipeline LangGraph workflow assembly.

resolve_context -> research -> draft -> tailor, entered at the first stage
without a completed step so a paused row picks up where it stopped.
"""

from __future__ import annotations

import operator
from typing import Annotated, Any, cast

from typing_extensions import TypedDict

from langgraph.graph import END, START, StateGraph

from pipelines.graphs.nodes.row_stages import (
    draft_node,
    research_node,
    resolve_context_node,
    tailor_node,
)
from pipelines.graphs.routing import next_row_step


class RowGraphState(TypedDict, total=False):
    executor: object
    job_id: str
    row_index: int
    questions: list[str]
    instructions: str | None
    supporting_documents: str

    resolved_question: str
    has_references: bool
    referenced_rows: list[int]
    resolution_reasoning: str

    research_output: str
    draft_output: str
    final_output: str
    completed_stages: Annotated[list[int], operator.add]


NodeFn = object

_ROUTES = {
    "resolve_context": "resolve_context",
    "research": "research",
    "draft": "draft",
    "tailor": "tailor",
    "end": END,
}


def build_row_graph(*, node_overrides: dict[str, NodeFn] | None = None):
    """Build and compile the per-row workflow graph."""
    overrides = node_overrides or {}
    builder: StateGraph = StateGraph(cast(Any, RowGraphState))

    builder.add_node(
        "resolve_context",
        cast(Any, overrides.get("resolve_context") or resolve_context_node),
    )
    builder.add_node("research", cast(Any, overrides.get("research") or research_node))
    builder.add_node("draft", cast(Any, overrides.get("draft") or draft_node))
    builder.add_node("tailor", cast(Any, overrides.get("tailor") or tailor_node))

    builder.add_conditional_edges(START, next_row_step, _ROUTES)
    for node in ("resolve_context", "research", "draft", "tailor"):
        builder.add_conditional_edges(node, next_row_step, _ROUTES)

    return builder.compile()


__all__ = ["RowGraphState", "build_row_graph"]
