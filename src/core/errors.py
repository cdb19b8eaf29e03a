"""Error taxonomy shared by the pipeline engine."""

from __future__ import annotations


class PipelineError(RuntimeError):
    """Base class for pipeline engine failures."""


class GenerationError(PipelineError):
    """Raised when the generation backend call fails."""


class TransientGenerationError(GenerationError):
    """Rate limits, timeouts and other failures worth retrying."""


class SystemicGenerationError(GenerationError):
    """Failures that will hit every row, e.g. a rejected API key."""


class MalformedOutputError(PipelineError):
    """Raised when a stage returns output that cannot be used."""


class PersistenceError(PipelineError):
    """Raised when the store rejects a write after a retry."""


class InvalidTransitionError(PipelineError):
    """Raised when an event is not allowed from the job's current status."""

    def __init__(self, status: str, event: str) -> None:
        super().__init__(f"Cannot apply '{event}' to a job in status '{status}'")
        self.status = status
        self.event = event


class JobNotFoundError(PipelineError):
    """Raised when a job id does not exist in the store."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


__all__ = [
    "GenerationError",
    "InvalidTransitionError",
    "JobNotFoundError",
    "MalformedOutputError",
    "PersistenceError",
    "PipelineError",
    "SystemicGenerationError",
    "TransientGenerationError",
]
