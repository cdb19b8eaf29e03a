"""Hashing helpers for persistence and cache keys."""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Mapping

from utils.text import collapse_whitespace


def sha256_bytes(data: bytes) -> str:
    """Return hex sha256 of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def sha256_text(text: str) -> str:
    return sha256_bytes(text.encode("utf-8"))


def stable_json_dumps(payload: object) -> str:
    """Dump JSON with stable ordering for hashing."""
    return json.dumps(
        payload,
        ensure_ascii=True,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_default,
    )


def hash_payload(payload: object) -> str:
    """Return sha256 hash of a JSON-serializable payload."""
    return sha256_bytes(stable_json_dumps(payload).encode("utf-8"))


def stage_fingerprint(stage: str, inputs: Mapping[str, str]) -> str:
    """Fingerprint a stage invocation from its name and normalized text inputs."""
    payload = {
        "stage": stage,
        "inputs": {key: collapse_whitespace(value) for key, value in inputs.items()},
    }
    return hash_payload(payload)


def _json_default(value: object) -> str:
    if isinstance(value, Path):
        return str(value)
    return str(value)


__all__ = [
    "hash_payload",
    "sha256_bytes",
    "sha256_text",
    "stable_json_dumps",
    "stage_fingerprint",
]
