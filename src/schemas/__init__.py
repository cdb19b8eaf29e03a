"""Schema package for external request and response contracts."""

from .requests import (
    CacheInvalidateRequest,
    CreateJobRequest,
    DocumentInput,
    ReprocessRowsRequest,
    RowFeedback,
)
from .responses import (
    CacheStageStats,
    CacheStatsResponse,
    EventResponse,
    JobResponse,
    RowResponse,
    StepResponse,
)

__all__ = [
    "CacheInvalidateRequest",
    "CacheStageStats",
    "CacheStatsResponse",
    "CreateJobRequest",
    "DocumentInput",
    "EventResponse",
    "JobResponse",
    "ReprocessRowsRequest",
    "RowFeedback",
    "RowResponse",
    "StepResponse",
]
