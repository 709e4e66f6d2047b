"""Unit tests for the Redis job queue against an in-process fakeredis server."""

from __future__ import annotations

import threading
import time
from unittest.mock import MagicMock

import fakeredis
import pytest

from doc_ingest.ingestion.models import IngestionJob
from doc_ingest.jobs.dispatcher import Dispatcher
from doc_ingest.jobs.redis_queue import RedisJobQueue


@pytest.fixture()
def server() -> fakeredis.FakeServer:
    return fakeredis.FakeServer()


def connect(server: fakeredis.FakeServer) -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis(server=server, decode_responses=True)


@pytest.fixture()
def client(server: fakeredis.FakeServer) -> fakeredis.FakeRedis:
    return connect(server)


@pytest.fixture()
def queue(client: fakeredis.FakeRedis) -> RedisJobQueue:
    return RedisJobQueue(client, name="ingest", max_attempts=3, poll_interval=0.01)


def test_key_layout(queue: RedisJobQueue) -> None:
    assert queue.job_key("doc-1") == "ingest:job:doc-1"
    assert queue.lease_key("doc-1") == "ingest:lease:doc-1"
    assert queue.pending_key == "ingest:pending"
    assert queue.active_key == "ingest:active"


def test_lease_must_be_positive(client: fakeredis.FakeRedis) -> None:
    with pytest.raises(ValueError):
        RedisJobQueue(client, lease_seconds=0)


# ── enqueue / dedup ────────────────────────────────────────────────────


def test_enqueue_stores_payload_and_pending_entry(queue: RedisJobQueue, client, job_factory) -> None:
    assert queue.enqueue(job_factory("doc-1", attempts=2)) is True

    assert client.lrange("ingest:pending", 0, -1) == ["doc-1"]
    assert IngestionJob.model_validate_json(client.get("ingest:job:doc-1")).attempts == 0
    assert queue.contains("doc-1")
    assert not queue.contains("doc-2")


def test_duplicate_while_pending_is_ignored(queue: RedisJobQueue, client, job_factory) -> None:
    queue.enqueue(job_factory("doc-1"))
    assert queue.enqueue(job_factory("doc-1")) is False
    assert client.llen("ingest:pending") == 1
    assert len(queue) == 1


def test_duplicate_while_active_is_ignored(queue: RedisJobQueue, job_factory) -> None:
    queue.enqueue(job_factory("doc-1"))
    queue.reserve(timeout=0)

    assert queue.contains("doc-1")
    assert queue.enqueue(job_factory("doc-1")) is False
    assert queue.reserve(timeout=0) is None


# ── reserve ────────────────────────────────────────────────────────────


def test_reserve_is_fifo_and_counts_attempts(queue: RedisJobQueue, client, job_factory) -> None:
    for doc_id in ("a", "b"):
        queue.enqueue(job_factory(doc_id))

    first = queue.reserve(timeout=0)

    assert first.document_id == "a"
    assert first.attempts == 1
    assert client.lrange("ingest:active", 0, -1) == ["a"]
    assert client.lrange("ingest:pending", 0, -1) == ["b"]
    assert IngestionJob.model_validate_json(client.get("ingest:job:a")).attempts == 1


def test_reserve_takes_a_lease(queue: RedisJobQueue, client, job_factory) -> None:
    queue.enqueue(job_factory("doc-1"))
    queue.reserve(timeout=0)

    ttl = client.pttl("ingest:lease:doc-1")
    assert 0 < ttl <= 30_000


def test_zero_timeout_does_not_block(queue: RedisJobQueue) -> None:
    started = time.monotonic()
    assert queue.reserve(timeout=0) is None
    assert queue.reserve(timeout=-1) is None
    assert time.monotonic() - started < 0.5


def test_reserve_waits_for_a_late_job(queue: RedisJobQueue, job_factory) -> None:
    timer = threading.Timer(0.05, queue.enqueue, args=[job_factory("late")])
    timer.start()
    try:
        job = queue.reserve(timeout=2)
    finally:
        timer.cancel()
    assert job is not None and job.document_id == "late"


def test_entry_without_payload_is_dropped(queue: RedisJobQueue, client) -> None:
    client.lpush("ingest:pending", "ghost")

    assert queue.reserve(timeout=0) is None
    assert client.llen("ingest:active") == 0
    assert not client.exists("ingest:lease:ghost")


# ── settle ─────────────────────────────────────────────────────────────


def test_fail_requeues_until_max_attempts(queue: RedisJobQueue, client, job_factory) -> None:
    queue.enqueue(job_factory("doc-1"))
    outcomes = []
    attempts = []
    for _ in range(3):
        job = queue.reserve(timeout=0)
        attempts.append(job.attempts)
        outcomes.append(queue.fail("doc-1", "boom"))

    assert attempts == [1, 2, 3]
    assert outcomes == [True, True, False]
    assert not client.exists("ingest:job:doc-1")
    assert not client.exists("ingest:lease:doc-1")
    assert len(queue) == 0


def test_complete_removes_everything(queue: RedisJobQueue, client, job_factory) -> None:
    queue.enqueue(job_factory("doc-1"))
    queue.reserve(timeout=0)

    queue.complete("doc-1")

    assert len(queue) == 0
    assert not queue.contains("doc-1")
    assert not client.exists("ingest:lease:doc-1")
    assert queue.enqueue(job_factory("doc-1")) is True


def test_heartbeat_renews_until_lease_is_gone(queue: RedisJobQueue, client, job_factory) -> None:
    queue.enqueue(job_factory("doc-1"))
    queue.reserve(timeout=0)
    client.pexpire("ingest:lease:doc-1", 50)

    assert queue.heartbeat("doc-1") is True
    assert client.pttl("ingest:lease:doc-1") > 50

    client.delete("ingest:lease:doc-1")
    assert queue.heartbeat("doc-1") is False


# ── two consumers on one server ────────────────────────────────────────


def test_recover_leaves_leased_jobs_with_their_worker(server, job_factory) -> None:
    first = RedisJobQueue(connect(server), name="ingest")
    second = RedisJobQueue(connect(server), name="ingest")
    first.enqueue(job_factory("doc-1"))
    assert first.reserve(timeout=0).attempts == 1

    assert second.recover() == 0
    assert second.reserve(timeout=0) is None


def test_recover_reclaims_job_whose_lease_expired(server, client, job_factory) -> None:
    first = RedisJobQueue(connect(server), name="ingest", lease_seconds=0.05)
    second = RedisJobQueue(connect(server), name="ingest")
    first.enqueue(job_factory("doc-1"))
    first.reserve(timeout=0)
    time.sleep(0.1)

    assert second.recover() == 1
    redelivered = second.reserve(timeout=0)
    assert redelivered.document_id == "doc-1"
    assert redelivered.attempts == 2
    assert client.lrange("ingest:active", 0, -1) == ["doc-1"]


def test_starting_a_second_dispatcher_does_not_steal_running_job(server, client, job_factory) -> None:
    first = RedisJobQueue(connect(server), name="ingest")
    first.enqueue(job_factory("doc-1"))
    first.reserve(timeout=0)

    runner = MagicMock()
    dispatcher = Dispatcher(RedisJobQueue(connect(server), name="ingest", poll_interval=0.01), runner, poll_interval=0.05)
    dispatcher.start()
    time.sleep(0.2)
    assert dispatcher.stop(timeout=2)

    runner.run.assert_not_called()
    assert client.lrange("ingest:active", 0, -1) == ["doc-1"]
    assert client.llen("ingest:pending") == 0


def test_dispatcher_keeps_lease_alive_while_running(server, client, job_factory) -> None:
    queue = RedisJobQueue(connect(server), name="ingest", lease_seconds=0.3)
    queue.enqueue(job_factory("doc-1"))
    job = queue.reserve(timeout=0)
    lease_seen = []

    class SlowRunner:
        def run(self, _job: IngestionJob) -> None:
            time.sleep(0.6)
            lease_seen.append(bool(client.exists("ingest:lease:doc-1")))

    assert Dispatcher(queue, SlowRunner()).run_once(job) is True
    assert lease_seen == [True]
    assert RedisJobQueue(connect(server), name="ingest").recover() == 0
