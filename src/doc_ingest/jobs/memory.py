"""In-process job queue (development, tests, single-process deployments)."""

from __future__ import annotations

import logging
import threading
import time
from collections import deque

from doc_ingest.ingestion.models import IngestionJob
from doc_ingest.jobs.base import JobQueue

logger = logging.getLogger(__name__)


class InMemoryJobQueue(JobQueue):
    """Thread-safe FIFO queue with job-id deduplication.

    Not durable: pending jobs are lost when the process exits.
    """

    def __init__(self, max_attempts: int = 3) -> None:
        super().__init__(max_attempts)
        self._cond = threading.Condition()
        self._pending: deque[str] = deque()
        self._active: set[str] = set()
        self._jobs: dict[str, IngestionJob] = {}
        self._closed = False

    def enqueue(self, job: IngestionJob) -> bool:
        with self._cond:
            if self._closed:
                raise RuntimeError("Queue is closed")
            if job.job_id in self._jobs:
                logger.info("Job %s already queued or active; ignoring duplicate", job.job_id)
                return False
            self._jobs[job.job_id] = job.model_copy(update={"attempts": 0})
            self._pending.append(job.job_id)
            self._cond.notify()
            return True

    def reserve(self, timeout: float | None = None) -> IngestionJob | None:
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while not self._pending:
                if self._closed:
                    return None
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return None
                self._cond.wait(remaining)

            job_id = self._pending.popleft()
            job = self._jobs[job_id]
            job.attempts += 1
            self._active.add(job_id)
            return job.model_copy()

    def complete(self, job_id: str) -> None:
        with self._cond:
            self._active.discard(job_id)
            self._jobs.pop(job_id, None)

    def fail(self, job_id: str, reason: str = "") -> bool:
        with self._cond:
            self._active.discard(job_id)
            job = self._jobs.get(job_id)
            if job is None:
                return False
            if job.attempts < self.max_attempts:
                self._pending.append(job_id)
                self._cond.notify()
                return True
            del self._jobs[job_id]
            return False

    def contains(self, job_id: str) -> bool:
        with self._cond:
            return job_id in self._jobs

    def is_active(self, job_id: str) -> bool:
        with self._cond:
            return job_id in self._active

    def __len__(self) -> int:
        with self._cond:
            return len(self._jobs)

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()
