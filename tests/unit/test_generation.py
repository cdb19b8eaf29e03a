from __future__ import annotations

from types import SimpleNamespace

import pytest

from core.errors import GenerationError, SystemicGenerationError, TransientGenerationError
from services.generation import (
    GenerationResult,
    LangChainGenerator,
    classify_generation_error,
    generate_with_retry,
)


class _ScriptedGenerator:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    def generate(self, **kwargs):
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def _call(generator, sleeps: list[float], **overrides):
    params = dict(
        model="gpt-4o",
        system_prompt="system",
        user_prompt="user",
        temperature=0.1,
        max_tokens=100,
        max_retries=2,
        backoff_ms=800,
        sleep=sleeps.append,
    )
    params.update(overrides)
    return generate_with_retry(generator, **params)


@pytest.mark.parametrize(
    ("exc", "expected"),
    [
        (RuntimeError("Error code: 429 - rate limit exceeded"), TransientGenerationError),
        (TimeoutError("request timed out"), TransientGenerationError),
        (RuntimeError("503 Service temporarily unavailable"), TransientGenerationError),
        (RuntimeError("Error code: 401 - Incorrect API key provided"), SystemicGenerationError),
        (PermissionError("permission denied for model"), SystemicGenerationError),
        (ValueError("context length exceeded"), GenerationError),
    ],
)
def test_classify_generation_error(exc: Exception, expected: type) -> None:
    error = classify_generation_error(exc)
    assert type(error) is expected
    assert type(exc).__name__ in str(error)


def test_classify_keeps_existing_generation_errors() -> None:
    original = SystemicGenerationError("bad key")
    assert classify_generation_error(original) is original


def test_transient_errors_are_retried_with_exponential_backoff() -> None:
    sleeps: list[float] = []
    generator = _ScriptedGenerator(
        RuntimeError("429 too many requests"),
        RuntimeError("429 too many requests"),
        GenerationResult(text="ok"),
    )

    result = _call(generator, sleeps)

    assert result.text == "ok"
    assert generator.calls == 3
    assert sleeps == [0.8, 1.6]


def test_retries_stop_after_max_retries() -> None:
    sleeps: list[float] = []
    generator = _ScriptedGenerator(*[RuntimeError("read timeout")] * 3)

    with pytest.raises(TransientGenerationError):
        _call(generator, sleeps)

    assert generator.calls == 3
    assert len(sleeps) == 2


def test_non_transient_errors_raise_immediately() -> None:
    sleeps: list[float] = []
    generator = _ScriptedGenerator(RuntimeError("401 unauthorized"), GenerationResult(text="never"))

    with pytest.raises(SystemicGenerationError) as excinfo:
        _call(generator, sleeps)

    assert generator.calls == 1
    assert sleeps == []
    assert isinstance(excinfo.value.__cause__, RuntimeError)


def test_zero_retries_disables_retry() -> None:
    sleeps: list[float] = []
    generator = _ScriptedGenerator(RuntimeError("overloaded"))

    with pytest.raises(TransientGenerationError):
        _call(generator, sleeps, max_retries=0)

    assert sleeps == []


class _FakeChatModel:
    def __init__(self, response=None, error: Exception | None = None) -> None:
        self.response = response
        self.error = error
        self.inputs: list[object] = []

    def invoke(self, messages):
        self.inputs.append(messages)
        if self.error is not None:
            raise self.error
        return self.response


def test_langchain_generator_flattens_content_and_reports_usage() -> None:
    response = SimpleNamespace(
        content=[{"type": "text", "text": "Hello "}, "world"],
        usage_metadata={"input_tokens": 5, "output_tokens": 2},
    )
    model = _FakeChatModel(response)
    created: list[tuple[str, dict]] = []

    def factory(name, **kwargs):
        created.append((name, kwargs))
        return model

    generator = LangChainGenerator(model_provider="openai", timeout=30.0, model_factory=factory)
    result = generator.generate(
        model="gpt-4o", system_prompt="sys", user_prompt="usr", temperature=0.2, max_tokens=50
    )

    assert result.text == "Hello world"
    assert result.usage == {"input_tokens": 5, "output_tokens": 2}
    assert created == [
        (
            "gpt-4o",
            {
                "temperature": 0.2,
                "max_tokens": 50,
                "max_retries": 0,
                "model_provider": "openai",
                "timeout": 30.0,
            },
        )
    ]
    messages = model.inputs[0]
    assert [message.content for message in messages] == ["sys", "usr"]


def test_langchain_generator_caches_models_per_config() -> None:
    created: list[str] = []

    def factory(name, **kwargs):
        created.append(name)
        return _FakeChatModel(SimpleNamespace(content="ok", usage_metadata=None))

    generator = LangChainGenerator(model_factory=factory)
    for _ in range(2):
        generator.generate(model="a", system_prompt="s", user_prompt="u", temperature=0.1, max_tokens=10)
    generator.generate(model="a", system_prompt="s", user_prompt="u", temperature=0.5, max_tokens=10)

    assert created == ["a", "a"]


def test_langchain_generator_classifies_backend_errors() -> None:
    model = _FakeChatModel(error=RuntimeError("Error code: 429 - Rate limit reached"))
    generator = LangChainGenerator(model_factory=lambda name, **kwargs: model)

    with pytest.raises(TransientGenerationError):
        generator.generate(model="a", system_prompt="s", user_prompt="u", temperature=0.1, max_tokens=10)
