"""Row pipeline nodes: context resolution and the three generation stages."""

from __future__ import annotations

from typing import Any, Mapping

from pipelines.stages import DRAFT_STAGE, RESEARCH_STAGE
from services.pipeline_executor import PipelineExecutor, RowContext


def resolve_context_node(state: dict) -> dict:
    executor = _require_executor(state)
    resolution = executor.resolve_context(_row_context(state))
    return {
        "resolved_question": resolution.resolved_question,
        "has_references": resolution.has_references,
        "referenced_rows": list(resolution.referenced_rows),
        "resolution_reasoning": resolution.reasoning,
    }


def research_node(state: dict) -> dict:
    outcome = _run(state, 0)
    return {"research_output": outcome.output, "completed_stages": [0]}


def draft_node(state: dict) -> dict:
    outcome = _run(state, 1)
    return {"draft_output": outcome.output, "completed_stages": [1]}


def tailor_node(state: dict) -> dict:
    executor = _require_executor(state)
    ctx = _row_context(state)
    previous = executor.previous_context(ctx, state.get("referenced_rows") or [])
    outcome = _run(state, 2, previous_context=previous)
    return {"final_output": outcome.output, "completed_stages": [2]}


def _run(state: Mapping[str, Any], stage_index: int, *, previous_context: str = ""):
    executor = _require_executor(state)
    resolved = state.get("resolved_question")
    if not resolved:
        raise ValueError("Stage nodes require 'resolved_question'.")
    outputs: dict[str, str] = {}
    if state.get("research_output") is not None:
        outputs[RESEARCH_STAGE] = str(state["research_output"])
    if state.get("draft_output") is not None:
        outputs[DRAFT_STAGE] = str(state["draft_output"])
    return executor.run_stage(
        stage_index,
        _row_context(state),
        resolved_question=str(resolved),
        stage_outputs=outputs,
        previous_context=previous_context,
    )


def _require_executor(state: Mapping[str, Any]) -> PipelineExecutor:
    executor = state.get("executor")
    if executor is None:
        raise ValueError("Row nodes require an 'executor' in state.")
    return executor  # type: ignore[return-value]


def _row_context(state: Mapping[str, Any]) -> RowContext:
    for key in ("job_id", "row_index", "questions"):
        if key not in state:
            raise ValueError(f"Row nodes require '{key}'.")
    return RowContext(
        job_id=str(state["job_id"]),
        row_index=int(state["row_index"]),
        questions=list(state["questions"]),
        instructions=state.get("instructions"),
        supporting_documents=str(state.get("supporting_documents") or ""),
    )


__all__ = ["draft_node", "research_node", "resolve_context_node", "tailor_node"]
