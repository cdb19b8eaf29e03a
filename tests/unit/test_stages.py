from __future__ import annotations

from core.config import Settings
from pipelines.stages import (
    DRAFT_STAGE,
    RESEARCH_STAGE,
    TAILOR_STAGE,
    build_prompt_values,
    default_stages,
    render_template,
)


def test_default_stages_order_and_caching() -> None:
    research, draft, tailor = default_stages()

    assert [stage.index for stage in (research, draft, tailor)] == [0, 1, 2]
    assert [stage.name for stage in (research, draft, tailor)] == [RESEARCH_STAGE, DRAFT_STAGE, TAILOR_STAGE]
    assert (research.cached, draft.cached, tailor.cached) == (True, True, False)
    assert tailor.model == "o3-mini"


def test_default_stages_follow_settings() -> None:
    settings = Settings(
        _env_file=None,
        RESEARCH_MODEL="research-model",
        DRAFT_TEMPERATURE=0.9,
        TAILOR_MAX_TOKENS=42,
    )

    research, draft, tailor = default_stages(settings)

    assert research.model == "research-model"
    assert draft.temperature == 0.9
    assert tailor.max_tokens == 42
    assert research.user_template == default_stages()[0].user_template


def test_render_template_substitutes_known_tokens() -> None:
    rendered = render_template(
        "Q: {{QUESTION}} | prior: {{ Reference Research }} | {{UNKNOWN}}",
        {"QUESTION": "Uptime?", "Reference Research": "99.9%"},
    )

    assert rendered == "Q: Uptime? | prior: 99.9% | {{UNKNOWN}}"


def test_render_template_does_not_rescan_substituted_values() -> None:
    rendered = render_template(
        "{{QUESTION}} / {{RFP_INSTRUCTIONS}}",
        {"QUESTION": "What is {{RFP_INSTRUCTIONS}}?", "RFP_INSTRUCTIONS": "secret"},
    )

    assert rendered == "What is {{RFP_INSTRUCTIONS}}? / secret"


def test_build_prompt_values_defaults_and_stage_outputs() -> None:
    values = build_prompt_values(
        question="Resolved question?",
        original_question="Original?",
        stage_outputs={RESEARCH_STAGE: "research text"},
    )

    assert values["QUESTION"] == "Resolved question?"
    assert values["FIRST_COLUMN"] == "Resolved question?"
    assert values["ORIGINAL_QUESTION"] == "Original?"
    assert values["RFP_INSTRUCTIONS"] == "No specific instructions provided."
    assert values["ADDITIONAL_DOCUMENTS"] == "No additional documents provided."
    assert values["PREVIOUS_CONTEXT"] == ""
    assert values["FEEDBACK"] == ""
    assert values["CURRENT_RESPONSE"] == "Not yet generated."
    assert values[RESEARCH_STAGE] == "research text"


def test_tailor_template_renders_every_placeholder() -> None:
    tailor = default_stages()[2]
    values = build_prompt_values(
        question="Q?",
        original_question="Q?",
        stage_outputs={RESEARCH_STAGE: "refs", DRAFT_STAGE: "draft"},
        instructions="Be concise",
        supporting_documents="**Document 1: a.md**\nalpha",
        previous_context="Earlier answer",
    )

    rendered = render_template(tailor.user_template, values)

    assert "{{" not in rendered
    assert rendered.startswith("Earlier answer")
    assert "Question: Q?" in rendered
    assert "Be concise" in rendered
