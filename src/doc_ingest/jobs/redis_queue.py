"""Durable job queue backed by Redis lists.

Key layout (``<name>`` is the queue name)::

    <name>:job:<id>     JSON payload; its existence is the dedup gate
    <name>:pending      ids waiting for a worker (LPUSH in, pop from the right)
    <name>:active       ids reserved by a worker
    <name>:lease:<id>   expiring lease held by the worker running <id>

A reservation moves the id from ``pending`` to ``active`` and takes its
lease in one script.  The running worker keeps the lease alive through
:meth:`RedisJobQueue.heartbeat`; :meth:`RedisJobQueue.recover` only
reclaims active ids whose lease has expired, so a job is never handed to a
second worker while the first one is still running it.
"""

from __future__ import annotations

import logging
import time

import redis

from doc_ingest.ingestion.models import IngestionJob
from doc_ingest.jobs.base import JobQueue

logger = logging.getLogger(__name__)

# SET NX + LPUSH in one step so a crash cannot leave a payload without a queue entry.
_ENQUEUE_SCRIPT = """
if redis.call('SET', KEYS[1], ARGV[1], 'NX') then
  redis.call('LPUSH', KEYS[2], ARGV[2])
  return 1
end
return 0
"""

# KEYS: pending, active.  ARGV: lease key prefix, lease ms.
_CLAIM_SCRIPT = """
local id = redis.call('LMOVE', KEYS[1], KEYS[2], 'RIGHT', 'LEFT')
if id then
  redis.call('SET', ARGV[1] .. id, '1', 'PX', ARGV[2])
end
return id
"""

# KEYS: active, pending.  ARGV: lease key prefix.
_RECOVER_SCRIPT = """
local ids = redis.call('LRANGE', KEYS[1], 0, -1)
local recovered = 0
for _, id in ipairs(ids) do
  if redis.call('EXISTS', ARGV[1] .. id) == 0 then
    redis.call('LREM', KEYS[1], 0, id)
    redis.call('RPUSH', KEYS[2], id)
    recovered = recovered + 1
  end
end
return recovered
"""


class RedisJobQueue(JobQueue):
    """At-least-once job queue stored in Redis.

    Parameters
    ----------
    client:
        ``redis.Redis`` created with ``decode_responses=True``.
    name:
        Queue name, used as key prefix.
    max_attempts:
        Deliveries allowed per job.
    lease_seconds:
        How long a reservation survives without a heartbeat.
    poll_interval:
        Seconds between claim attempts while :meth:`reserve` waits.
    """

    def __init__(
        self,
        client: redis.Redis,
        *,
        name: str = "document-ingestion",
        max_attempts: int = 3,
        lease_seconds: float = 30.0,
        poll_interval: float = 0.2,
    ) -> None:
        super().__init__(max_attempts)
        if lease_seconds <= 0:
            raise ValueError("lease_seconds must be > 0")
        self._client = client
        self.name = name
        self.pending_key = f"{name}:pending"
        self.active_key = f"{name}:active"
        self.lease_prefix = f"{name}:lease:"
        self.lease_seconds = lease_seconds
        self.poll_interval = poll_interval
        self.heartbeat_interval = lease_seconds / 3
        self._enqueue = client.register_script(_ENQUEUE_SCRIPT)
        self._claim = client.register_script(_CLAIM_SCRIPT)
        self._recover = client.register_script(_RECOVER_SCRIPT)

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        name: str = "document-ingestion",
        max_attempts: int = 3,
        socket_timeout: float | None = 60.0,
        lease_seconds: float = 30.0,
    ) -> RedisJobQueue:
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client, name=name, max_attempts=max_attempts, lease_seconds=lease_seconds)

    def job_key(self, job_id: str) -> str:
        return f"{self.name}:job:{job_id}"

    def lease_key(self, job_id: str) -> str:
        return f"{self.lease_prefix}{job_id}"

    @property
    def _lease_ms(self) -> int:
        return int(self.lease_seconds * 1000)

    # -- JobQueue overrides ---------------------------------------------------

    def enqueue(self, job: IngestionJob) -> bool:
        payload = job.model_copy(update={"attempts": 0}).model_dump_json()
        added = self._enqueue(keys=[self.job_key(job.job_id), self.pending_key], args=[payload, job.job_id])
        if not added:
            logger.info("Job %s already queued or active; ignoring duplicate", job.job_id)
        return bool(added)

    def contains(self, job_id: str) -> bool:
        return bool(self._client.exists(self.job_key(job_id)))

    def reserve(self, timeout: float | None = None) -> IngestionJob | None:
        deadline = None if timeout is None else time.monotonic() + max(timeout, 0)
        while True:
            job_id = self._claim(keys=[self.pending_key, self.active_key], args=[self.lease_prefix, self._lease_ms])
            if job_id is not None:
                return self._deliver(job_id)

            remaining = None if deadline is None else deadline - time.monotonic()
            if remaining is not None and remaining <= 0:
                return None
            time.sleep(self.poll_interval if remaining is None else min(self.poll_interval, remaining))

    def _deliver(self, job_id: str) -> IngestionJob | None:
        key = self.job_key(job_id)
        raw = self._client.get(key)
        if raw is None:
            logger.warning("Dropping queue entry %s with no payload", job_id)
            pipe = self._client.pipeline()
            pipe.lrem(self.active_key, 0, job_id)
            pipe.delete(self.lease_key(job_id))
            pipe.execute()
            return None

        job = IngestionJob.model_validate_json(raw)
        job.attempts += 1
        self._client.set(key, job.model_dump_json(), xx=True)
        return job

    def heartbeat(self, job_id: str) -> bool:
        alive = bool(self._client.pexpire(self.lease_key(job_id), self._lease_ms))
        if not alive:
            logger.warning("Lease on job %s was lost; it may be delivered again", job_id)
        return alive

    def complete(self, job_id: str) -> None:
        pipe = self._client.pipeline()
        pipe.lrem(self.active_key, 0, job_id)
        pipe.delete(self.job_key(job_id), self.lease_key(job_id))
        pipe.execute()

    def fail(self, job_id: str, reason: str = "") -> bool:
        raw = self._client.get(self.job_key(job_id))
        attempts = IngestionJob.model_validate_json(raw).attempts if raw is not None else self.max_attempts

        pipe = self._client.pipeline()
        pipe.lrem(self.active_key, 0, job_id)
        pipe.delete(self.lease_key(job_id))
        retry = attempts < self.max_attempts
        if retry:
            pipe.lpush(self.pending_key, job_id)
        else:
            pipe.delete(self.job_key(job_id))
        pipe.execute()
        return retry

    def recover(self) -> int:
        recovered = int(self._recover(keys=[self.active_key, self.pending_key], args=[self.lease_prefix]))
        if recovered:
            logger.warning("Recovered %d abandoned job(s) on queue %s", recovered, self.name)
        return recovered

    def __len__(self) -> int:
        return int(self._client.llen(self.pending_key)) + int(self._client.llen(self.active_key))

    def close(self) -> None:
        self._client.close()
