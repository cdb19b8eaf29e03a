"""Run the three generation stages for a single row.

Each stage renders its prompt, consults the stage cache (research and draft
only), calls the generation backend on a miss, validates the URLs the backend
returned, and records a StepRecord before and after the call.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Mapping, Sequence

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from core.errors import MalformedOutputError
from persistence.cache import StageCache
from persistence.models import StepRecord
from persistence.sqlite_store import SqliteStore
from pipelines.prompts import TAILOR_REVISION_TEMPLATE
from pipelines.stages import (
    DRAFT_STAGE,
    RESEARCH_STAGE,
    StageSpec,
    build_prompt_values,
    default_stages,
    render_template,
)
from services.context_resolver import ContextResolution, ContextResolver
from services.generation import Generator, generate_with_retry
from services.journal import StepJournal, with_persistence_retry
from services.link_validator import LinkStatus, LinkValidator, extract_urls
from services.notifications import NotificationEvent, NotificationHub
from services.references import ReferenceLibrary, normalize_url
from utils.llm_json import extract_json_value

logger = logging.getLogger(__name__)

_USABLE_LINK_STATUSES = {LinkStatus.VALID.value, "unchecked"}
_FEEDBACK_REFERENCE_SUMMARY = "Suggested in reviewer feedback"


class ResearchReference(BaseModel):
    url: str = Field(validation_alias=AliasChoices("url", "Reference_URL", "reference_url"))
    summary: str = Field(
        default="",
        validation_alias=AliasChoices("summary", "Reference_URL_Summary", "reference_summary"),
    )
    quotes: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("quotes", "Reference_URL_Quotes", "reference_quotes"),
    )

    model_config = ConfigDict(extra="ignore")

    @field_validator("url")
    @classmethod
    def _strip_url(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("url must not be empty")
        return cleaned


@dataclass(frozen=True)
class RowContext:
    job_id: str
    row_index: int
    questions: Sequence[str]
    instructions: str | None = None
    supporting_documents: str = ""

    @property
    def question(self) -> str:
        return self.questions[self.row_index]


@dataclass(frozen=True)
class StageOutcome:
    stage: StageSpec
    output: str
    cache_hit: bool
    latency_ms: int
    step: StepRecord
    links: list[dict[str, Any]] = field(default_factory=list)


def parse_research_references(text: str) -> list[ResearchReference]:
    try:
        payload = extract_json_value(text)
    except ValueError as exc:
        raise MalformedOutputError("Reference research did not return JSON") from exc
    items = payload.get("references") if isinstance(payload, dict) else payload
    if not isinstance(items, list):
        raise MalformedOutputError("Reference research JSON has no 'references' list")
    references: list[ResearchReference] = []
    for item in items:
        try:
            references.append(ResearchReference.model_validate(item))
        except ValidationError:
            logger.debug("Skipping malformed research reference: %r", item)
    return references


class PipelineExecutor:
    def __init__(
        self,
        *,
        store: SqliteStore,
        generator: Generator,
        cache: StageCache,
        link_validator: LinkValidator,
        resolver: ContextResolver,
        journal: StepJournal,
        library: ReferenceLibrary,
        stages: Sequence[StageSpec] | None = None,
        notifier: NotificationHub | None = None,
        max_retries: int = 2,
        backoff_ms: int = 800,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._store = store
        self._generator = generator
        self._cache = cache
        self._link_validator = link_validator
        self._resolver = resolver
        self._journal = journal
        self._library = library
        self._stages = tuple(stages or default_stages())
        self._notifier = notifier or NotificationHub()
        self._max_retries = max_retries
        self._backoff_ms = backoff_ms
        self._sleep = sleep

    @property
    def stages(self) -> tuple[StageSpec, ...]:
        return self._stages

    @property
    def journal(self) -> StepJournal:
        return self._journal

    def resolve_context(self, ctx: RowContext) -> ContextResolution:
        resolution = self._resolver.resolve(ctx.questions, ctx.row_index + 1)
        with_persistence_retry(
            "store context resolution",
            self._store.update_row,
            ctx.job_id,
            ctx.row_index,
            resolved_question=resolution.resolved_question,
            has_references=resolution.has_references,
            referenced_rows=resolution.referenced_rows,
            resolution_reasoning=resolution.reasoning,
            sleep=self._sleep,
        )
        if resolution.has_references:
            self._notifier.log(
                ctx.job_id,
                f"Row {ctx.row_index + 1} builds on rows {resolution.referenced_rows}",
                row_index=ctx.row_index,
            )
        return resolution

    def previous_context(self, ctx: RowContext, referenced_rows: Sequence[int]) -> str:
        """Describe the earlier rows (one-based numbers) this row builds on."""
        if not referenced_rows:
            return ""
        rows = {row.row_index + 1: row for row in self._store.list_rows(ctx.job_id)}
        lines = ["Context from earlier questions this question builds on:"]
        for number in referenced_rows:
            row = rows.get(number)
            if row is None:
                continue
            lines.append(f"- Question {number}: {row.question}")
            if row.output:
                lines.append(f"  Previous response: {row.output}")
        return "\n".join(lines) if len(lines) > 1 else ""

    def run_stage(
        self,
        stage_index: int,
        ctx: RowContext,
        *,
        resolved_question: str,
        stage_outputs: Mapping[str, str] | None = None,
        previous_context: str = "",
    ) -> StageOutcome:
        stage = self._stages[stage_index]
        outputs = dict(stage_outputs or {})
        values = build_prompt_values(
            question=resolved_question,
            original_question=ctx.question,
            stage_outputs=outputs,
            instructions=ctx.instructions,
            supporting_documents=ctx.supporting_documents,
            previous_context=previous_context,
        )
        prompt = render_template(stage.user_template, values)
        step = self._journal.begin(
            job_id=ctx.job_id,
            row_index=ctx.row_index,
            stage_index=stage.index,
            stage_name=stage.name,
            input_text=resolved_question,
            prompt=prompt,
            model=stage.model,
        )
        started = time.perf_counter()
        try:
            if stage.cached:
                result = self._cache.get_or_compute(
                    stage.key,
                    self._fingerprint_inputs(stage, resolved_question, outputs),
                    lambda: self._compute(stage, prompt),
                    is_valid=_is_stage_payload,
                )
                payload, cache_hit = result.output, result.cache_hit
            else:
                payload, cache_hit = self._compute(stage, prompt), False
        except Exception as exc:
            self._journal.fail(step, error=str(exc) or type(exc).__name__, latency_ms=_elapsed_ms(started))
            raise

        if stage.key == "research" and not cache_hit:
            self._store_references(payload)

        latency_ms = _elapsed_ms(started)
        links = list(payload.get("links") or [])
        completed = self._journal.complete(
            step,
            output=payload["output"],
            latency_ms=latency_ms,
            cache_hit=cache_hit,
            metadata={"links": links, "usage": payload.get("usage") or {}},
        )
        self._notifier.emit(
            NotificationEvent.STEP_COMPLETED,
            ctx.job_id,
            row_index=ctx.row_index,
            stage_index=stage.index,
            stage_name=stage.name,
            cache_hit=cache_hit,
            latency_ms=latency_ms,
        )
        return StageOutcome(
            stage=stage,
            output=payload["output"],
            cache_hit=cache_hit,
            latency_ms=latency_ms,
            step=completed,
            links=links,
        )

    def revise_row(
        self,
        ctx: RowContext,
        *,
        resolved_question: str,
        research_output: str,
        draft_output: str,
        current_response: str,
        feedback: str,
        previous_context: str = "",
    ) -> StageOutcome:
        """Regenerate the tailored response from user feedback, keeping stages 1-2.

        URLs quoted in the feedback are validated and merged into the research
        references first. The revision is journalled as a new stage-3 record.
        """
        stage = replace(self._stages[2], user_template=TAILOR_REVISION_TEMPLATE)
        references, added = self._merge_feedback_references(research_output, feedback)
        values = build_prompt_values(
            question=resolved_question,
            original_question=ctx.question,
            stage_outputs={RESEARCH_STAGE: references, DRAFT_STAGE: draft_output},
            instructions=ctx.instructions,
            supporting_documents=ctx.supporting_documents,
            previous_context=previous_context,
            feedback=feedback,
            current_response=current_response,
        )
        prompt = render_template(stage.user_template, values)
        step = self._journal.begin(
            job_id=ctx.job_id,
            row_index=ctx.row_index,
            stage_index=stage.index,
            stage_name=stage.name,
            input_text=resolved_question,
            prompt=prompt,
            model=stage.model,
        )
        started = time.perf_counter()
        try:
            payload = self._compute(stage, prompt)
        except Exception as exc:
            self._journal.fail(step, error=str(exc) or type(exc).__name__, latency_ms=_elapsed_ms(started))
            raise

        latency_ms = _elapsed_ms(started)
        links = list(payload.get("links") or [])
        completed = self._journal.complete(
            step,
            output=payload["output"],
            latency_ms=latency_ms,
            cache_hit=False,
            metadata={
                "links": links,
                "usage": payload.get("usage") or {},
                "feedback": feedback,
                "added_references": added,
            },
        )
        self._notifier.emit(
            NotificationEvent.STEP_COMPLETED,
            ctx.job_id,
            row_index=ctx.row_index,
            stage_index=stage.index,
            stage_name=stage.name,
            cache_hit=False,
            latency_ms=latency_ms,
            revision=True,
        )
        return StageOutcome(
            stage=stage,
            output=payload["output"],
            cache_hit=False,
            latency_ms=latency_ms,
            step=completed,
            links=links,
        )

    def _compute(self, stage: StageSpec, prompt: str) -> dict[str, Any]:
        result = generate_with_retry(
            self._generator,
            model=stage.model,
            system_prompt=stage.system_prompt,
            user_prompt=prompt,
            temperature=stage.temperature,
            max_tokens=stage.max_tokens,
            max_retries=self._max_retries,
            backoff_ms=self._backoff_ms,
            sleep=self._sleep,
        )
        text = result.text.strip()
        if not text:
            raise MalformedOutputError(f"{stage.name} returned an empty response")

        if stage.key != "research":
            return {
                "output": text,
                "links": self._validate_links(extract_urls(text)),
                "model": stage.model,
                "usage": result.usage,
            }

        references = parse_research_references(text)
        links = self._validate_links([reference.url for reference in references])
        usable = {link["url"] for link in links if link["status"] in _USABLE_LINK_STATUSES}
        validated = [reference.model_dump() for reference in references if reference.url in usable]
        return {
            "output": json.dumps({"references": validated}, ensure_ascii=False, indent=2),
            "raw": text,
            "references": [reference.model_dump() for reference in references],
            "links": links,
            "model": stage.model,
            "usage": result.usage,
        }

    def _validate_links(self, urls: Sequence[str]) -> list[dict[str, Any]]:
        if not urls:
            return []
        try:
            return [result.to_dict() for result in self._link_validator.validate(urls)]
        except Exception:
            logger.warning("Link validation crashed; keeping %d URLs unchecked", len(urls), exc_info=True)
            return [{"url": url, "status": "unchecked"} for url in dict.fromkeys(urls)]

    def _store_references(self, payload: Mapping[str, Any]) -> None:
        try:
            validated = json.loads(payload["output"]).get("references", [])
            self._library.add_references(validated)
        except (sqlite3.Error, ValueError, AttributeError):
            logger.warning("Failed to chunk research references", exc_info=True)

    def _merge_feedback_references(self, research_output: str, feedback: str) -> tuple[str, list[str]]:
        urls = extract_urls(feedback)
        if not urls:
            return research_output, []
        try:
            existing = list(json.loads(research_output).get("references") or [])
        except (ValueError, AttributeError):
            logger.warning("Stored research output is not JSON; feedback references start a new list")
            existing = []
        known = {normalize_url(str(item.get("url") or "")) for item in existing if isinstance(item, dict)}
        fresh = [url for url in urls if normalize_url(url) not in known]
        links = self._validate_links(fresh)
        added = [
            {"url": link["url"], "summary": _FEEDBACK_REFERENCE_SUMMARY, "quotes": []}
            for link in links
            if link["status"] in _USABLE_LINK_STATUSES
        ]
        if not added:
            return research_output, []
        try:
            self._library.add_references(added)
        except (sqlite3.Error, ValueError):
            logger.warning("Failed to chunk feedback references", exc_info=True)
        merged = json.dumps({"references": existing + added}, ensure_ascii=False, indent=2)
        return merged, [item["url"] for item in added]

    @staticmethod
    def _fingerprint_inputs(
        stage: StageSpec, resolved_question: str, outputs: Mapping[str, str]
    ) -> dict[str, str]:
        if stage.key == "research":
            return {"question": resolved_question}
        return {"question": resolved_question, "research": outputs.get(RESEARCH_STAGE, "")}


def _is_stage_payload(payload: Mapping[str, Any]) -> bool:
    return isinstance(payload.get("output"), str)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


__all__ = [
    "PipelineExecutor",
    "ResearchReference",
    "RowContext",
    "StageOutcome",
    "parse_research_references",
]
