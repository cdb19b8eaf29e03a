"""Job lifecycle states and the explicit transition table."""

from __future__ import annotations

from enum import Enum

from core.errors import InvalidTransitionError


class JobStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"


class JobEvent(str, Enum):
    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    RESET = "reset"
    REPROCESS = "reprocess"
    COMPLETE = "complete"
    FAIL = "fail"
    CANCEL = "cancel"


class RowStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


TERMINAL_ROW_STATUSES = frozenset({RowStatus.COMPLETED, RowStatus.ERROR})

_ALL = frozenset(JobStatus)

# event -> (allowed source statuses, target status)
TRANSITIONS: dict[JobEvent, tuple[frozenset[JobStatus], JobStatus]] = {
    JobEvent.START: (frozenset({JobStatus.NOT_STARTED}), JobStatus.IN_PROGRESS),
    JobEvent.PAUSE: (frozenset({JobStatus.IN_PROGRESS}), JobStatus.PAUSED),
    JobEvent.RESUME: (frozenset({JobStatus.PAUSED}), JobStatus.IN_PROGRESS),
    JobEvent.RESET: (_ALL, JobStatus.NOT_STARTED),
    JobEvent.REPROCESS: (
        frozenset({JobStatus.COMPLETED, JobStatus.ERROR}),
        JobStatus.IN_PROGRESS,
    ),
    JobEvent.COMPLETE: (frozenset({JobStatus.IN_PROGRESS}), JobStatus.COMPLETED),
    JobEvent.FAIL: (frozenset({JobStatus.IN_PROGRESS}), JobStatus.ERROR),
    JobEvent.CANCEL: (
        frozenset({JobStatus.IN_PROGRESS, JobStatus.PAUSED}),
        JobStatus.CANCELLED,
    ),
}


def allowed_sources(event: JobEvent) -> frozenset[JobStatus]:
    return TRANSITIONS[event][0]


def next_status(current: JobStatus | str, event: JobEvent | str) -> JobStatus:
    """Return the status reached by applying ``event``; raise if it is not allowed."""
    status = JobStatus(current)
    job_event = JobEvent(event)
    sources, target = TRANSITIONS[job_event]
    if status not in sources:
        raise InvalidTransitionError(status.value, job_event.value)
    return target


def can_apply(current: JobStatus | str, event: JobEvent | str) -> bool:
    return JobStatus(current) in TRANSITIONS[JobEvent(event)][0]


__all__ = [
    "JobEvent",
    "JobStatus",
    "RowStatus",
    "StepStatus",
    "TERMINAL_ROW_STATUSES",
    "TRANSITIONS",
    "allowed_sources",
    "can_apply",
    "next_status",
]
