from __future__ import annotations

import pytest

from services.context_resolver import ContextResolver, ContextResolverConfig


QUESTIONS = [
    "Describe your hosting platform.",
    "Does it support single sign-on?",
    "What is your pricing model?",
]


def test_first_row_is_returned_without_a_backend_call(fake_generator) -> None:
    resolution = ContextResolver(fake_generator).resolve(QUESTIONS, 1)

    assert resolution.resolved_question == QUESTIONS[0]
    assert resolution.has_references is False
    assert resolution.referenced_rows == []
    assert fake_generator.calls == []


def test_referencing_question_is_rewritten(fake_generator) -> None:
    fake_generator.context_responses[QUESTIONS[1]] = {
        "resolvedQuestion": "Does your hosting platform support single sign-on?",
        "hasReferences": True,
        "referencedQuestions": [1],
        "reasoning": "'it' refers to the hosting platform",
    }

    resolution = ContextResolver(fake_generator).resolve(QUESTIONS, 2)

    assert resolution.resolved_question == "Does your hosting platform support single sign-on?"
    assert resolution.has_references is True
    assert resolution.referenced_rows == [1]
    prompt = fake_generator.calls[0]["prompt"]
    assert "Question 1: Describe your hosting platform." in prompt
    assert "CURRENT QUESTION (Question 2): Does it support single sign-on?" in prompt


def test_vague_back_reference_is_resolved_against_the_previous_row(fake_generator) -> None:
    questions = [
        "Describe your incident response process.",
        "Expand on the above.",
        "What is your pricing model?",
    ]
    fake_generator.context_responses[questions[1]] = {
        "resolvedQuestion": "Provide more detail on your incident response process.",
        "hasReferences": True,
        "referencedQuestions": [1],
        "reasoning": "'the above' points at question 1",
    }

    resolution = ContextResolver(fake_generator).resolve(questions, 2)

    assert resolution.referenced_rows == [1]
    assert resolution.has_references is True
    assert "the above" not in resolution.resolved_question.lower()
    assert "incident response" in resolution.resolved_question
    prompt = fake_generator.calls[0]["prompt"]
    assert "Question 3" not in prompt


def test_out_of_range_references_are_dropped(fake_generator) -> None:
    fake_generator.context_responses[QUESTIONS[2]] = {
        "resolvedQuestion": QUESTIONS[2],
        "hasReferences": True,
        "referencedQuestions": [3, 7, 0],
        "reasoning": "confused",
    }

    resolution = ContextResolver(fake_generator).resolve(QUESTIONS, 3)

    assert resolution.referenced_rows == []
    assert resolution.has_references is False


def test_standalone_question_passes_through(fake_generator) -> None:
    resolution = ContextResolver(fake_generator).resolve(QUESTIONS, 3)

    assert resolution.resolved_question == QUESTIONS[2]
    assert resolution.has_references is False


def test_unparseable_response_falls_back_to_original(fake_generator, monkeypatch) -> None:
    monkeypatch.setattr(fake_generator, "_respond", lambda stage, prompt: "no json here")

    resolution = ContextResolver(fake_generator).resolve(QUESTIONS, 2)

    assert resolution.resolved_question == QUESTIONS[1]
    assert resolution.has_references is False
    assert resolution.reasoning.startswith("Context resolution failed")


def test_backend_failure_is_retried_then_falls_back(fake_generator) -> None:
    def _fail(prompt: str) -> None:
        raise RuntimeError("503 overloaded")

    fake_generator.hooks["context"] = _fail
    sleeps: list[float] = []
    resolver = ContextResolver(
        fake_generator,
        ContextResolverConfig(max_retries=1, backoff_ms=50),
        sleep=sleeps.append,
    )

    resolution = resolver.resolve(QUESTIONS, 2)

    assert fake_generator.count("context") == 2
    assert sleeps == [0.05]
    assert resolution.resolved_question == QUESTIONS[1]
    assert resolution.has_references is False


def test_row_number_out_of_range(fake_generator) -> None:
    with pytest.raises(ValueError):
        ContextResolver(fake_generator).resolve(QUESTIONS, 0)
    with pytest.raises(ValueError):
        ContextResolver(fake_generator).resolve(QUESTIONS, 4)
