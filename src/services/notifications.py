"""Fire-and-forget job progress notifications."""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Protocol

logger = logging.getLogger(__name__)


class NotificationEvent(str, Enum):
    JOB_STARTED = "jobStarted"
    JOB_PAUSED = "jobPaused"
    JOB_COMPLETED = "jobCompleted"
    JOB_ERROR = "jobError"
    JOB_CANCELLED = "jobCancelled"
    JOB_RESET = "jobReset"
    ROW_PROCESSED = "rowProcessed"
    STEP_COMPLETED = "stepCompleted"
    PROCESSING_LOG = "processingLog"


@dataclass(frozen=True)
class Notification:
    event: NotificationEvent
    job_id: str
    row_index: int | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    sequence: int = 0
    emitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "event": self.event.value,
            "job_id": self.job_id,
            "row_index": self.row_index,
            "payload": dict(self.payload),
            "sequence": self.sequence,
            "emitted_at": self.emitted_at.isoformat(),
        }


class Notifier(Protocol):
    def emit(self, notification: Notification) -> None: ...


class EventLog:
    """In-memory, per-job bounded event buffer that clients can poll."""

    def __init__(self, *, max_events: int = 500) -> None:
        self._max_events = max_events
        self._lock = threading.Lock()
        self._events: dict[str, deque[Notification]] = {}
        self._sequence = 0

    def emit(self, notification: Notification) -> None:
        with self._lock:
            self._sequence += 1
            stamped = Notification(
                event=notification.event,
                job_id=notification.job_id,
                row_index=notification.row_index,
                payload=notification.payload,
                sequence=self._sequence,
                emitted_at=notification.emitted_at,
            )
            bucket = self._events.setdefault(
                notification.job_id, deque(maxlen=self._max_events)
            )
            bucket.append(stamped)

    def events(self, job_id: str, *, after: int = 0) -> list[Notification]:
        with self._lock:
            bucket = list(self._events.get(job_id, ()))
        return [event for event in bucket if event.sequence > after]


class NotificationHub:
    """Fan a notification out to every registered notifier; failures are logged only."""

    def __init__(self, notifiers: Iterable[Notifier] = ()) -> None:
        self._notifiers = list(notifiers)

    def subscribe(self, notifier: Notifier) -> None:
        self._notifiers.append(notifier)

    def emit(
        self,
        event: NotificationEvent,
        job_id: str,
        *,
        row_index: int | None = None,
        **payload: Any,
    ) -> None:
        notification = Notification(
            event=event,
            job_id=job_id,
            row_index=row_index,
            payload=payload,
        )
        for notifier in self._notifiers:
            try:
                notifier.emit(notification)
            except Exception:
                logger.warning(
                    "Notifier %s failed on %s for job %s",
                    type(notifier).__name__,
                    event.value,
                    job_id,
                    exc_info=True,
                )

    def log(self, job_id: str, message: str, *, level: str = "info", row_index: int | None = None) -> None:
        self.emit(
            NotificationEvent.PROCESSING_LOG,
            job_id,
            row_index=row_index,
            message=message,
            level=level,
        )


__all__ = [
    "EventLog",
    "Notification",
    "NotificationEvent",
    "NotificationHub",
    "Notifier",
]
