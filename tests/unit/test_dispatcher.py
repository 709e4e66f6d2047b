"""Unit tests for the single-worker dispatcher."""

from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import pytest

from doc_ingest.ingestion.errors import PersistError
from doc_ingest.ingestion.models import HAPPY_PATH, DocumentStatus, FileMetadata, IngestionJob
from doc_ingest.ingestion.pipeline import IngestionPipeline
from doc_ingest.jobs.dispatcher import Dispatcher
from doc_ingest.jobs.memory import InMemoryJobQueue
from doc_ingest.storage.base import ObjectStore, VectorStoreSession, VectorStoreSink
from doc_ingest.storage.status import InMemoryStatusTracker

S = DocumentStatus


def make_job(document_id: str) -> IngestionJob:
    return IngestionJob(
        document_id=document_id,
        name=f"{document_id}.txt",
        metadata=FileMetadata(file_type="txt", file_url="uploads/doc.txt", file_size="42"),
    )


class StaticObjectStore(ObjectStore):
    def download(self, location_key: str) -> bytes:
        return b"Some text worth indexing."


class SlowSession(VectorStoreSession):
    """Tracks how many documents are past ``processing`` at the same time."""

    def __init__(self, sink: ConcurrencySink) -> None:
        self._sink = sink

    def add_documents(self, documents: list[Any]) -> list[str]:
        time.sleep(0.01)
        return [str(i) for i in range(len(documents))]

    def close(self) -> None:
        with self._sink.lock:
            self._sink.in_flight -= 1


class ConcurrencySink(VectorStoreSink):
    def __init__(self, failures: dict[str, int] | None = None) -> None:
        self.lock = threading.Lock()
        self.in_flight = 0
        self.max_in_flight = 0
        self.calls: dict[str, int] = {}
        self.failures = failures or {}

    def open(self, collection_name: str, collection_id: str, metadata: dict[str, Any] | None = None) -> SlowSession:
        with self.lock:
            self.calls[collection_id] = self.calls.get(collection_id, 0) + 1
            if self.calls[collection_id] <= self.failures.get(collection_id, 0):
                raise PersistError("vector store unavailable")
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        return SlowSession(self)


def build(tmp_path: Path, doc_ids: list[str], failures: dict[str, int] | None = None, max_attempts: int = 3):
    tracker = InMemoryStatusTracker()
    for doc_id in doc_ids:
        tracker.register(doc_id)
    sink = ConcurrencySink(failures)
    pipeline = IngestionPipeline(tracker, StaticObjectStore(), sink, temp_dir=tmp_path)
    queue = InMemoryJobQueue(max_attempts=max_attempts)
    completed: list[str] = []
    failed: list[tuple[str, bool]] = []
    dispatcher = Dispatcher(
        queue,
        pipeline,
        poll_interval=0.01,
        on_completed=lambda job: completed.append(job.document_id),
        on_failed=lambda job, exc, retry: failed.append((job.document_id, retry)),
    )
    return tracker, sink, queue, dispatcher, completed, failed


def enqueue(tracker: InMemoryStatusTracker, queue: InMemoryJobQueue, doc_id: str) -> bool:
    tracker.set_status(doc_id, S.queued)
    return queue.enqueue(make_job(doc_id))


def drain(queue: InMemoryJobQueue, dispatcher: Dispatcher) -> None:
    while (job := queue.reserve(timeout=0)) is not None:
        dispatcher.run_once(job)


def test_jobs_never_overlap(tmp_path: Path) -> None:
    ids = [f"doc-{i}" for i in range(5)]
    tracker, sink, queue, dispatcher, completed, _ = build(tmp_path, ids)
    for doc_id in ids:
        enqueue(tracker, queue, doc_id)

    dispatcher.start()
    deadline = time.monotonic() + 5
    while len(completed) < 5 and time.monotonic() < deadline:
        time.sleep(0.01)
    assert dispatcher.stop(timeout=2)

    assert sorted(completed) == ids
    assert sink.max_in_flight == 1
    assert all(tracker.history(doc_id) == list(HAPPY_PATH) for doc_id in ids)


def test_retry_then_success(tmp_path: Path) -> None:
    tracker, sink, queue, dispatcher, completed, failed = build(tmp_path, ["doc-1"], failures={"doc-1": 2})
    enqueue(tracker, queue, "doc-1")

    drain(queue, dispatcher)

    assert sink.calls["doc-1"] == 3
    assert failed == [("doc-1", True), ("doc-1", True)]
    assert completed == ["doc-1"]
    assert tracker.get_status("doc-1") is S.ready
    assert len(queue) == 0


def test_permanent_failure_stops_after_max_attempts(tmp_path: Path) -> None:
    tracker, sink, queue, dispatcher, completed, failed = build(tmp_path, ["doc-1"], failures={"doc-1": 99})
    enqueue(tracker, queue, "doc-1")

    drain(queue, dispatcher)

    assert sink.calls["doc-1"] == 3
    assert failed[-1] == ("doc-1", False)
    assert completed == []
    assert tracker.get_status("doc-1") is S.failed
    assert len(queue) == 0


def test_duplicate_enqueue_runs_once(tmp_path: Path) -> None:
    tracker, sink, queue, dispatcher, completed, _ = build(tmp_path, ["doc-1"])
    assert enqueue(tracker, queue, "doc-1") is True
    assert enqueue(tracker, queue, "doc-1") is False

    drain(queue, dispatcher)

    assert sink.calls == {"doc-1": 1}
    assert completed == ["doc-1"]


def test_listener_errors_do_not_break_worker(tmp_path: Path) -> None:
    tracker, _, queue, _, _, _ = build(tmp_path, ["doc-1"])
    pipeline = IngestionPipeline(tracker, StaticObjectStore(), ConcurrencySink(), temp_dir=tmp_path)

    def boom(job: IngestionJob) -> None:
        raise RuntimeError("listener failed")

    dispatcher = Dispatcher(queue, pipeline, on_completed=boom)
    enqueue(tracker, queue, "doc-1")
    assert dispatcher.run_once(queue.reserve(timeout=0)) is True


@pytest.mark.parametrize("started", [False, True])
def test_stop_is_safe(tmp_path: Path, started: bool) -> None:
    *_, dispatcher, _, _ = build(tmp_path, [])
    if started:
        dispatcher.start()
        assert dispatcher.running
    assert dispatcher.stop(timeout=2) is True
    assert not dispatcher.running


def test_leased_queue_is_renewed_only_while_job_runs() -> None:
    queue = MagicMock(heartbeat_interval=0.01, max_attempts=3)
    runner = MagicMock()
    runner.run.side_effect = lambda job: time.sleep(0.1)

    assert Dispatcher(queue, runner).run_once(make_job("doc-1")) is True

    assert queue.heartbeat.call_count >= 2
    queue.heartbeat.assert_called_with("doc-1")
    time.sleep(0.03)
    settled = queue.heartbeat.call_count
    time.sleep(0.05)
    assert queue.heartbeat.call_count == settled
    queue.complete.assert_called_once_with("doc-1")


def test_unleased_queue_is_never_renewed(tmp_path: Path) -> None:
    tracker, _, queue, dispatcher, completed, _ = build(tmp_path, ["doc-1"])
    enqueue(tracker, queue, "doc-1")

    with patch.object(queue, "heartbeat") as heartbeat:
        drain(queue, dispatcher)

    heartbeat.assert_not_called()
    assert completed == ["doc-1"]
