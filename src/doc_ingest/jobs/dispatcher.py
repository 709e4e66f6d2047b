"""Single-worker dispatcher.

Pulls jobs from a :class:`~doc_ingest.jobs.base.JobQueue` and runs them
through the ingestion pipeline strictly one at a time, so the ingestion
of one document never overlaps another.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from doc_ingest.ingestion.models import IngestionJob
    from doc_ingest.jobs.base import JobQueue

logger = logging.getLogger(__name__)

CompletedListener = Callable[["IngestionJob"], None]
FailedListener = Callable[["IngestionJob", BaseException, bool], None]


class JobRunner(Protocol):
    def run(self, job: IngestionJob) -> object: ...


class Dispatcher:
    """Runs queued jobs on one background thread.

    Parameters
    ----------
    queue:
        Source of jobs.
    pipeline:
        Object whose ``run(job)`` raises on failure.
    poll_interval:
        Seconds a reservation blocks before the stop flag is re-checked.
    on_completed / on_failed:
        Optional lifecycle listeners; ``on_failed`` receives the job, the
        error and whether the job will be retried.
    """

    def __init__(
        self,
        queue: JobQueue,
        pipeline: JobRunner,
        *,
        poll_interval: float = 1.0,
        on_completed: CompletedListener | None = None,
        on_failed: FailedListener | None = None,
    ) -> None:
        self._queue = queue
        self._pipeline = pipeline
        self.poll_interval = poll_interval
        self._on_completed = on_completed
        self._on_failed = on_failed
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Recover jobs whose lease expired and start the worker thread."""
        if self.running:
            return
        self._stop.clear()
        self._queue.recover()
        self._thread = threading.Thread(target=self.run_forever, name="ingestion-worker", daemon=True)
        self._thread.start()
        logger.info("Ingestion worker started")

    def stop(self, timeout: float | None = None) -> bool:
        """Stop taking jobs and wait for the in-flight one.

        Returns ``False`` when the worker was still busy after *timeout*;
        its job stays reserved until its lease runs out and a later
        :meth:`start` recovers it.
        """
        self._stop.set()
        if self._thread is None:
            return True
        self._thread.join(timeout)
        stopped = not self._thread.is_alive()
        if stopped:
            self._thread = None
            logger.info("Ingestion worker stopped")
        else:
            logger.warning("Ingestion worker still busy after %.1fs; abandoning in-flight job", timeout or 0)
        return stopped

    def run_forever(self) -> None:
        """Worker loop; returns once :meth:`stop` has been called."""
        while not self._stop.is_set():
            try:
                job = self._queue.reserve(timeout=self.poll_interval)
            except Exception:
                logger.exception("Failed to reserve a job; retrying in %.1fs", self.poll_interval)
                self._stop.wait(self.poll_interval)
                continue
            if job is not None:
                self.run_once(job)

    def run_once(self, job: IngestionJob) -> bool:
        """Run one reserved job and settle it on the queue.

        Returns ``True`` on success.
        """
        beating = self._start_heartbeat(job)
        try:
            self._pipeline.run(job)
        except Exception as exc:
            beating.set()
            will_retry = self._settle_failure(job, exc)
            logger.error(
                "Ingestion job %s failed (attempt %d/%d): %s%s",
                job.job_id,
                job.attempts,
                self._queue.max_attempts,
                exc,
                "; retrying" if will_retry else "",
            )
            self._notify(self._on_failed, job, exc, will_retry)
            return False

        beating.set()
        try:
            self._queue.complete(job.job_id)
        except Exception:
            logger.exception("Could not remove completed job %s from the queue", job.job_id)
        logger.info("Ingestion job %s completed", job.job_id)
        self._notify(self._on_completed, job)
        return True

    def _start_heartbeat(self, job: IngestionJob) -> threading.Event:
        """Renew the job's lease in the background until the returned event is set."""
        done = threading.Event()
        interval = self._queue.heartbeat_interval
        if interval is None:
            return done

        def beat() -> None:
            while not done.wait(interval):
                try:
                    self._queue.heartbeat(job.job_id)
                except Exception:
                    logger.exception("Could not renew lease on job %s", job.job_id)

        threading.Thread(target=beat, name=f"lease-{job.job_id}", daemon=True).start()
        return done

    def _settle_failure(self, job: IngestionJob, exc: Exception) -> bool:
        try:
            return self._queue.fail(job.job_id, str(exc))
        except Exception:
            logger.exception("Could not record failure of job %s on the queue", job.job_id)
            return False

    @staticmethod
    def _notify(listener: Callable[..., None] | None, *args: object) -> None:
        if listener is None:
            return
        try:
            listener(*args)
        except Exception:
            logger.exception("Job lifecycle listener raised")
