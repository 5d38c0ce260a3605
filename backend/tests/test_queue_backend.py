"""Tests for the Celery-backed job queue."""
from datetime import timedelta

import pytest

from contract_assistant.core.errors import QueueError
from contract_assistant.db.models import QueueEntry
from contract_assistant.queue.base import BackoffPolicy, JobOptions
from contract_assistant.queue.celery_backend import CeleryQueueBackend
from contract_assistant.queue.payloads import ANALYZE_DOCUMENT, AnalyzeDocumentPayload
from contract_assistant.workers.celery_app import celery_app


def _payload(n: int = 1) -> AnalyzeDocumentPayload:
    return AnalyzeDocumentPayload(document_id=f"doc-{n}", user_id="user-1", tracker_id=f"tracker-{n}")


def test_backoff_policy_doubles_per_attempt():
    policy = BackoffPolicy(2000)

    assert policy.delay_for(1) == timedelta(seconds=2)
    assert policy.delay_for(2) == timedelta(seconds=4)
    assert policy.delay_for(3) == timedelta(seconds=8)


def test_enqueue_persists_payload_with_aliases(queue, db):
    handle = queue.enqueue(ANALYZE_DOCUMENT, _payload(), JobOptions(attempts=3))

    entry = db.get(QueueEntry, handle.id)
    assert handle.queue == "analysis-queue"
    assert handle.name == ANALYZE_DOCUMENT
    assert entry.state == "waiting"
    assert entry.attempt == 0
    assert entry.max_attempts == 3
    assert entry.backoff_base_ms == 2000
    assert entry.payload["documentId"] == "doc-1"
    assert entry.payload["userId"] == "user-1"
    assert entry.payload["trackerId"] == "tracker-1"
    assert "enqueuedAt" in entry.payload


def test_enqueue_sends_task_to_named_queue(queue, task_recorder, db):
    handle = queue.enqueue(ANALYZE_DOCUMENT, _payload())

    assert len(task_recorder.sent) == 1
    message = task_recorder.sent[0]
    assert message["name"] == ANALYZE_DOCUMENT
    assert message["kwargs"] == {"entry_id": handle.id}
    assert message["queue"] == "analysis-queue"
    assert message["task_id"] == handle.task_id
    assert message["countdown"] is None
    assert db.get(QueueEntry, handle.id).task_id == handle.task_id


def test_delayed_enqueue_sends_countdown(queue, task_recorder):
    queue.enqueue(ANALYZE_DOCUMENT, _payload(), JobOptions(delay_ms=5000))

    assert task_recorder.sent[0]["countdown"] == 5.0
    assert queue.stats()["delayed"] == 1


def test_broker_failure_marks_entry_failed(queue, db, monkeypatch):
    def refuse(*args, **kwargs):
        raise ConnectionError("broker unreachable")

    monkeypatch.setattr(celery_app, "send_task", refuse)

    with pytest.raises(QueueError):
        queue.enqueue(ANALYZE_DOCUMENT, _payload())

    entry = db.query(QueueEntry).one()
    assert entry.state == "failed"
    assert "broker unreachable" in entry.last_error
    assert entry.finished_at is not None


def test_enqueue_rejects_payload_of_wrong_kind(queue, task_recorder):
    with pytest.raises(QueueError):
        queue.enqueue("unknown_kind", _payload())
    assert task_recorder.sent == []


def test_closed_queue_refuses_work(session_factory, clock, task_recorder):
    backend = CeleryQueueBackend(session_factory, "analysis-queue", celery_app, clock=clock)

    with pytest.raises(QueueError):
        backend.enqueue(ANALYZE_DOCUMENT, _payload())
    assert task_recorder.sent == []


def test_start_attempt_marks_entry_active(queue, clock, db):
    handle = queue.enqueue(ANALYZE_DOCUMENT, _payload())

    job = queue.start_attempt(handle.id, 1)

    assert job.state == "active"
    assert job.attempt == 1
    assert job.task_id == handle.task_id
    assert db.get(QueueEntry, handle.id).started_at is not None


def test_start_attempt_ignores_finished_entry(queue):
    handle = queue.enqueue(ANALYZE_DOCUMENT, _payload())
    queue.start_attempt(handle.id, 1)
    queue.ack(handle.id)

    assert queue.start_attempt(handle.id, 1) is None
    with pytest.raises(QueueError):
        queue.start_attempt(999, 1)


def test_fail_schedules_exponential_backoff(queue, clock, db):
    handle = queue.enqueue(ANALYZE_DOCUMENT, _payload())

    queue.start_attempt(handle.id, 1)
    first = queue.fail(handle.id, "storage unavailable")
    assert first.terminal is False
    assert first.delay == timedelta(seconds=2)
    assert db.get(QueueEntry, handle.id).state == "delayed"

    queue.start_attempt(handle.id, 2)
    second = queue.fail(handle.id, "storage unavailable")
    assert second.delay == timedelta(seconds=4)

    queue.start_attempt(handle.id, 3)
    third = queue.fail(handle.id, "storage unavailable")
    assert third.terminal is True

    db.expire_all()
    entry = db.get(QueueEntry, handle.id)
    assert entry.state == "failed"
    assert entry.last_error == "storage unavailable"
    assert entry.finished_at is not None


def test_fail_requires_active_entry(queue):
    handle = queue.enqueue(ANALYZE_DOCUMENT, _payload())

    with pytest.raises(QueueError):
        queue.fail(handle.id, "boom")
    with pytest.raises(QueueError):
        queue.fail(999, "boom")


def test_ack_completes_active_entry_only(queue):
    handle = queue.enqueue(ANALYZE_DOCUMENT, _payload())

    assert queue.ack(handle.id) is False

    queue.start_attempt(handle.id, 1)
    assert queue.ack(handle.id, {"analysisId": "a-1"}) is True

    job = queue.get(handle.id)
    assert job.state == "completed"
    assert job.progress == 100
    assert job.result == {"analysisId": "a-1"}


def test_report_progress_updates_entry_and_task_state(queue):
    handle = queue.enqueue(ANALYZE_DOCUMENT, _payload())
    queue.start_attempt(handle.id, 1)

    queue.report_progress(handle.id, 50)

    assert queue.get(handle.id).progress == 50
    task_result = celery_app.AsyncResult(handle.task_id)
    assert task_result.state == "PROGRESS"
    assert task_result.info == {"progress": 50, "entryId": handle.id}


def test_report_progress_ignores_inactive_entry(queue):
    handle = queue.enqueue(ANALYZE_DOCUMENT, _payload())

    queue.report_progress(handle.id, 50)

    assert queue.get(handle.id).progress == 0


def test_stats_counts_each_state(queue):
    handles = [queue.enqueue(ANALYZE_DOCUMENT, _payload(n)) for n in range(4)]
    queue.start_attempt(handles[0].id, 1)
    queue.ack(handles[0].id)
    queue.start_attempt(handles[1].id, 1)

    stats = queue.stats()
    assert stats == {
        "queueName": "analysis-queue",
        "waiting": 2,
        "active": 1,
        "completed": 1,
        "failed": 0,
        "delayed": 0,
        "total": 4,
    }


def test_stats_are_scoped_to_queue_name(session_factory, clock, queue):
    other = CeleryQueueBackend(session_factory, "other-queue", celery_app, clock=clock)
    other.start()
    other.enqueue(ANALYZE_DOCUMENT, _payload())

    assert queue.stats()["total"] == 0
    assert other.stats()["total"] == 1


def test_prune_keeps_most_recent_finished_entries(queue, clock):
    handles = [queue.enqueue(ANALYZE_DOCUMENT, _payload(n), JobOptions(attempts=1)) for n in range(5)]
    for handle in handles[:3]:
        queue.start_attempt(handle.id, 1)
        queue.ack(handle.id)
        clock.advance(1)
    for handle in handles[3:]:
        queue.start_attempt(handle.id, 1)
        queue.fail(handle.id, "boom")
        clock.advance(1)

    removed = queue.prune(keep_completed=1, keep_failed=1)

    stats = queue.stats()
    assert removed == 3
    assert stats["completed"] == 1
    assert stats["failed"] == 1
