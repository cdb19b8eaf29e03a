# tests/conftest.py
from __future__ import annotations

import json
import re
import threading
from pathlib import Path
from typing import Callable

import httpx
import pytest

from core.config import Settings
from pipelines.prompts import DRAFT_SYSTEM_PROMPT, RESEARCH_SYSTEM_PROMPT, TAILOR_SYSTEM_PROMPT
from services.context_resolver import CONTEXT_SYSTEM_PROMPT
from services.engine import build_engine
from services.generation import GenerationResult

_STAGE_BY_PROMPT = {
    CONTEXT_SYSTEM_PROMPT: "context",
    RESEARCH_SYSTEM_PROMPT: "research",
    DRAFT_SYSTEM_PROMPT: "draft",
    TAILOR_SYSTEM_PROMPT: "tailor",
}
_CURRENT_QUESTION_RE = re.compile(r"CURRENT QUESTION \(Question \d+\): (.*?)\n")
_RESEARCH_QUESTION_RE = re.compile(r"address this RFP question:\s*\n\s*\n(.*?)\n")
_TAILOR_QUESTION_RE = re.compile(r"Question: (.*?)\n")


class FakeGenerator:
    """Deterministic stand-in for the chat backend.

    ``hooks[stage]`` runs before each call of that stage with the user prompt
    and may raise, block or trigger control operations.
    """

    def __init__(self) -> None:
        self.calls: list[dict] = []
        self.hooks: dict[str, Callable[[str], None]] = {}
        self.context_responses: dict[str, dict] = {}
        self._lock = threading.Lock()

    def generate(self, *, model, system_prompt, user_prompt, temperature, max_tokens):
        stage = _STAGE_BY_PROMPT.get(system_prompt, "unknown")
        with self._lock:
            self.calls.append({"stage": stage, "model": model, "prompt": user_prompt})
        hook = self.hooks.get(stage)
        if hook is not None:
            hook(user_prompt)
        return GenerationResult(text=self._respond(stage, user_prompt), usage={"input_tokens": 12, "output_tokens": 7})

    def count(self, stage: str) -> int:
        with self._lock:
            return sum(1 for call in self.calls if call["stage"] == stage)

    def _respond(self, stage: str, prompt: str) -> str:
        if stage == "context":
            current = _search(_CURRENT_QUESTION_RE, prompt)
            response = self.context_responses.get(current) or {
                "resolvedQuestion": current,
                "hasReferences": False,
                "referencedQuestions": [],
                "reasoning": "Standalone question",
            }
            return json.dumps(response)
        if stage == "research":
            question = _search(_RESEARCH_QUESTION_RE, prompt)
            return "Here is what I found:\n```json\n" + json.dumps(
                {
                    "references": [
                        {
                            "url": "https://docs.example.com/security",
                            "summary": f"Covers: {question}",
                            "quotes": ["Data is encrypted with AES-256."],
                        },
                        {
                            "url": "https://missing.example.com/gone",
                            "summary": "A page that no longer exists",
                            "quotes": [],
                        },
                    ]
                }
            ) + "\n```"
        if stage == "draft":
            return "Generic draft answer.\nReferences: https://docs.example.com/security"
        if stage == "tailor":
            if "User feedback:" in prompt:
                return f"Revised answer for: {_search(_TAILOR_QUESTION_RE, prompt)}"
            return f"Final answer for: {_search(_TAILOR_QUESTION_RE, prompt)}"
        return ""


def _search(pattern: re.Pattern[str], text: str) -> str:
    match = pattern.search(text)
    return match.group(1).strip() if match else ""


def link_transport() -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host.startswith("missing."):
            return httpx.Response(404, request=request)
        return httpx.Response(200, request=request)

    return httpx.MockTransport(handler)


@pytest.fixture
def fake_generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def engine_factory(tmp_path: Path, fake_generator: FakeGenerator, sleeps: list[float]):
    engines = []

    def _build(**env):
        values = {
            "RFPFLOW_DATA_DIR": str(tmp_path / "data"),
            "GENERATION_MAX_RETRIES": 2,
            "GENERATION_RETRY_BACKOFF_MS": 100,
            "LANGSMITH_TRACING": False,
        }
        values.update(env)
        engine = build_engine(
            Settings(**values),
            generator=fake_generator,
            http_client=httpx.Client(transport=link_transport()),
            sleep=sleeps.append,
        )
        engines.append(engine)
        return engine

    yield _build
    for engine in engines:
        engine.close()


@pytest.fixture
def engine(engine_factory):
    return engine_factory()
