"""
Jobs: durable ingestion queue and the single-worker dispatcher.

Public surface
--------------
- :class:`JobQueue`: abstract queue keyed by document id.
- :class:`InMemoryJobQueue`: in-process queue.
- :class:`Dispatcher`: runs jobs one at a time through the pipeline.
- :class:`RedisJobQueue`: durable Redis-backed queue (lazy import).
"""

from doc_ingest.jobs.base import JobQueue
from doc_ingest.jobs.dispatcher import Dispatcher
from doc_ingest.jobs.memory import InMemoryJobQueue

__all__ = ["Dispatcher", "InMemoryJobQueue", "JobQueue", "RedisJobQueue"]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import RedisJobQueue to avoid pulling in redis at import time."""
    if name == "RedisJobQueue":
        from doc_ingest.jobs.redis_queue import RedisJobQueue

        return RedisJobQueue
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
