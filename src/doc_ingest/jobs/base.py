"""Abstract job queue.

Jobs are keyed by document id.  A queue holds at most one live job per
id: enqueueing an id that is already pending or active is a no-op.
Completed jobs and jobs that exhausted their attempts are discarded; the
document's own status is the only history.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from doc_ingest.ingestion.models import IngestionJob


class JobQueue(ABC):
    """At-least-once delivery queue of :class:`IngestionJob`.

    Parameters
    ----------
    max_attempts:
        Deliveries allowed per job before it is discarded as failed.
    """

    #: Seconds between lease renewals while a job runs; ``None`` when the
    #: queue holds no leases.
    heartbeat_interval: float | None = None

    def __init__(self, max_attempts: int = 3) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    def enqueue(self, job: IngestionJob) -> bool:
        """Add *job*; return ``False`` when its id is already pending or active."""
        ...

    @abstractmethod
    def contains(self, job_id: str) -> bool:
        """Whether a job with *job_id* is pending or active."""
        ...

    @abstractmethod
    def reserve(self, timeout: float | None = None) -> IngestionJob | None:
        """Take the next pending job, marking it active.

        Blocks up to *timeout* seconds (forever when ``None``, not at all
        when zero or negative) and returns ``None`` when nothing became
        available.  The returned job's ``attempts`` counts this delivery.
        """
        ...

    @abstractmethod
    def complete(self, job_id: str) -> None:
        """Discard an active job that finished successfully."""
        ...

    @abstractmethod
    def fail(self, job_id: str, reason: str = "") -> bool:
        """Handle a failed delivery.

        Returns ``True`` when the job was re-queued for another attempt and
        ``False`` when it has been discarded.
        """
        ...

    @abstractmethod
    def __len__(self) -> int:
        """Number of live (pending + active) jobs."""
        ...

    # -- optional overrides ---------------------------------------------------

    def recover(self) -> int:
        """Re-queue jobs whose worker went away without settling them.

        Returns the number of recovered jobs.  Queues without durable state
        have nothing to recover.
        """
        return 0

    def heartbeat(self, job_id: str) -> bool:
        """Extend the reservation of an active job.

        Returns ``False`` when the reservation was already lost.
        """
        return True

    def close(self) -> None:
        """Release connections held by the queue."""

    def __enter__(self) -> JobQueue:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
