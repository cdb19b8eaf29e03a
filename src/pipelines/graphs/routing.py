"""Routing helpers for the row pipeline graph.

A row may enter the graph part-way through: stages that already have a
completed StepRecord are skipped, so resuming a paused job is purely a
routing decision made from state.
"""

from __future__ import annotations

from typing import Any, Literal, Mapping

RowRoute = Literal["resolve_context", "research", "draft", "tailor", "end"]

_STAGE_NODES: tuple[RowRoute, RowRoute, RowRoute] = ("research", "draft", "tailor")


def next_row_step(state: Mapping[str, Any]) -> RowRoute:
    """Route to the first unresolved piece of work for the row."""
    if not state.get("resolved_question"):
        return "resolve_context"
    completed = set(state.get("completed_stages") or [])
    for index, node in enumerate(_STAGE_NODES):
        if index not in completed:
            return node
    return "end"


__all__ = ["RowRoute", "next_row_step"]
