from __future__ import annotations

import logging

from services.notifications import EventLog, NotificationEvent, NotificationHub


class _BrokenNotifier:
    def emit(self, notification) -> None:
        raise RuntimeError("socket closed")


def test_event_log_sequences_and_filters_by_job() -> None:
    events = EventLog()
    hub = NotificationHub([events])

    hub.emit(NotificationEvent.JOB_STARTED, "job_a", total_rows=2)
    hub.emit(NotificationEvent.STEP_COMPLETED, "job_b", row_index=0, stage="research")
    hub.log("job_a", "Row 1 done", row_index=0)

    job_a = events.events("job_a")
    assert [event.event for event in job_a] == [NotificationEvent.JOB_STARTED, NotificationEvent.PROCESSING_LOG]
    assert [event.sequence for event in job_a] == [1, 3]
    assert job_a[1].payload == {"message": "Row 1 done", "level": "info"}
    assert [event.sequence for event in events.events("job_a", after=1)] == [3]

    payload = job_a[0].to_dict()
    assert payload["event"] == "jobStarted"
    assert payload["payload"] == {"total_rows": 2}


def test_event_log_is_bounded_per_job() -> None:
    events = EventLog(max_events=2)
    hub = NotificationHub([events])
    for index in range(4):
        hub.log("job", f"message {index}")

    assert [event.payload["message"] for event in events.events("job")] == ["message 2", "message 3"]


def test_failing_notifier_does_not_block_others(caplog) -> None:
    events = EventLog()
    hub = NotificationHub([_BrokenNotifier()])
    hub.subscribe(events)

    with caplog.at_level(logging.WARNING, logger="services.notifications"):
        hub.emit(NotificationEvent.JOB_COMPLETED, "job")

    assert len(events.events("job")) == 1
    assert "_BrokenNotifier failed on jobCompleted" in caplog.text
