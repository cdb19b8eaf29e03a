"""Shared FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from fastapi import Depends

from services.engine import Engine, build_engine
from services.job_manager import JobManager


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    """Build the process-wide engine once, on first request."""
    return build_engine()


def get_manager(engine: Engine = Depends(get_engine)) -> JobManager:
    return engine.manager


__all__ = ["get_engine", "get_manager"]
