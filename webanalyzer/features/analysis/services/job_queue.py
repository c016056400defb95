"""
Job queues for the analysis pipeline.

Both variants expose the same interface:

    await queue.enqueue(job)
    job = await queue.dequeue()          # None when nothing is visible
    await queue.ack(job)                 # job reached a terminal outcome
    rescheduled = await queue.retry(job, error)

New jobs are served first-in-first-out. A job handed back through `retry`
becomes visible again only after an exponential backoff
(base, 2 * base, 4 * base, ...) and is abandoned once it has used up
`max_attempts`; the caller then marks the analysis failed.
"""
import asyncio
import heapq
import itertools
from abc import ABC, abstractmethod
from collections import deque
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from webanalyzer.features.analysis.schemas.analysis import Job
from webanalyzer.platform.exceptions import QueueError
from webanalyzer.platform.logger import get_logger

logger = get_logger(__name__)


class JobQueue(ABC):
    def __init__(
        self,
        max_attempts: int = 3,
        backoff_base: float = 5.0,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.clock = clock or datetime.utcnow

    def backoff_delay(self, attempt: int) -> float:
        """Delay before re-delivering a job that has failed `attempt` times."""
        return self.backoff_base * (2 ** max(attempt - 1, 0))

    def _prepare_retry(self, job: Job, error: str) -> Optional[Job]:
        """Bump the attempt counter; None means the job is exhausted."""
        attempts = job.attempt_count + 1
        if attempts >= self.max_attempts:
            logger.warning(
                f"[{job.analysis_id}] Job {job.id} abandoned after {attempts} attempt(s): {error}"
            )
            return None

        delay = self.backoff_delay(attempts)
        logger.info(
            f"[{job.analysis_id}] Job {job.id} failed (attempt {attempts}/{self.max_attempts}), "
            f"retrying in {delay:.0f}s: {error}"
        )
        return job.model_copy(update={
            "attempt_count": attempts,
            "last_error": error,
            "available_at": self.clock() + timedelta(seconds=delay),
        })

    @abstractmethod
    async def enqueue(self, job: Job) -> None: ...

    @abstractmethod
    async def dequeue(self) -> Optional[Job]: ...

    @abstractmethod
    async def ack(self, job: Job) -> None: ...

    @abstractmethod
    async def retry(self, job: Job, error: str) -> bool: ...

    @abstractmethod
    async def size(self) -> int: ...

    async def recover(self) -> int:
        """Re-deliver jobs abandoned by a crashed worker. Returns how many moved."""
        return 0

    async def close(self) -> None:
        return None


class InMemoryJobQueue(JobQueue):
    """
    Process-local queue for development and tests. Nothing survives a
    restart. With `max_attempts=1` it never retries.
    """

    def __init__(self, max_attempts: int = 1, backoff_base: float = 5.0, clock=None):
        super().__init__(max_attempts=max_attempts, backoff_base=backoff_base, clock=clock)
        self._ready: deque = deque()
        self._delayed: List = []
        self._seq = itertools.count()
        self._lock = asyncio.Lock()

    async def enqueue(self, job: Job) -> None:
        async with self._lock:
            self._ready.append(job)
        logger.info(f"[{job.analysis_id}] Job {job.id} queued ({len(self._ready)} ready)")

    def _promote_due(self) -> None:
        now = self.clock()
        while self._delayed and self._delayed[0][0] <= now:
            _, _, job = heapq.heappop(self._delayed)
            self._ready.append(job)

    async def dequeue(self) -> Optional[Job]:
        async with self._lock:
            self._promote_due()
            if not self._ready:
                return None
            return self._ready.popleft()

    async def ack(self, job: Job) -> None:
        return None

    async def retry(self, job: Job, error: str) -> bool:
        retried = self._prepare_retry(job, error)
        if retried is None:
            return False
        async with self._lock:
            heapq.heappush(self._delayed, (retried.available_at, next(self._seq), retried))
        return True

    async def size(self) -> int:
        return len(self._ready) + len(self._delayed)


class RedisJobQueue(JobQueue):
    """
    Durable queue on Redis.

    Keys (prefix = queue name):
      <name>:ready       list, FIFO of serialized jobs
      <name>:delayed     sorted set of retried jobs scored by visibility time
      <name>:processing  list of jobs claimed but not yet acked
      <name>:claims      sorted set of processing payloads scored by claim time

    A claimed job stays in `processing` until it is acked or retried, so a
    worker crash leaves it there. `recover()` puts it back on the ready list
    once its claim is older than `visibility_timeout` (at-least-once
    delivery); jobs still being worked on by a live worker are left alone.
    """

    def __init__(
        self,
        redis: Redis,
        name: str = "analysis",
        max_attempts: int = 3,
        backoff_base: float = 5.0,
        visibility_timeout: float = 900.0,
        io_retry_base: float = 0.5,
        clock=None,
    ):
        super().__init__(max_attempts=max_attempts, backoff_base=backoff_base, clock=clock)
        self.redis = redis
        self.name = name
        self.visibility_timeout = visibility_timeout
        self.io_retry_base = io_retry_base
        self.ready_key = f"{name}:ready"
        self.delayed_key = f"{name}:delayed"
        self.processing_key = f"{name}:processing"
        self.claims_key = f"{name}:claims"
        # job id -> exact payload claimed, needed to LREM it from processing
        self._claimed: Dict[str, str] = {}

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisJobQueue":
        return cls(Redis.from_url(url, encoding="utf-8", decode_responses=True), **kwargs)

    async def _call(self, description: str, operation):
        """Run a Redis operation, retrying transient failures with backoff."""
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation()
            except RedisError as e:
                if attempt == self.max_attempts:
                    raise QueueError(f"Queue {description} failed after {attempt} attempts: {e}") from e
                delay = self.io_retry_base * (2 ** (attempt - 1))
                logger.warning(f"Queue {description} failed ({e}), retry {attempt}/{self.max_attempts} in {delay}s")
                await asyncio.sleep(delay)

    async def enqueue(self, job: Job) -> None:
        payload = job.model_dump_json()
        await self._call("enqueue", lambda: self.redis.rpush(self.ready_key, payload))
        logger.info(f"[{job.analysis_id}] Job {job.id} queued on {self.ready_key}")

    async def _promote_due(self) -> None:
        now = self.clock().timestamp()
        due = await self.redis.zrangebyscore(self.delayed_key, "-inf", now)
        for payload in due:
            # Only the worker whose ZREM succeeds moves the job
            if await self.redis.zrem(self.delayed_key, payload):
                await self.redis.rpush(self.ready_key, payload)

    async def dequeue(self) -> Optional[Job]:
        async def _claim():
            await self._promote_due()
            return await self.redis.lmove(self.ready_key, self.processing_key, "LEFT", "RIGHT")

        payload = await self._call("dequeue", _claim)
        if payload is None:
            return None
        job = Job.model_validate_json(payload)
        self._claimed[job.id] = payload
        # An unstamped claim is stamped by the next recover() instead
        await self._call(
            "claim", lambda: self.redis.zadd(self.claims_key, {payload: self.clock().timestamp()})
        )
        return job

    async def _release(self, job: Job) -> None:
        payload = self._claimed.get(job.id)
        if payload is None:
            return
        await self.redis.lrem(self.processing_key, 1, payload)
        await self.redis.zrem(self.claims_key, payload)
        del self._claimed[job.id]

    async def ack(self, job: Job) -> None:
        await self._call("ack", lambda: self._release(job))

    async def retry(self, job: Job, error: str) -> bool:
        retried = self._prepare_retry(job, error)

        async def _reschedule():
            await self._release(job)
            if retried is not None:
                await self.redis.zadd(
                    self.delayed_key, {retried.model_dump_json(): retried.available_at.timestamp()}
                )

        await self._call("retry", _reschedule)
        return retried is not None

    async def recover(self) -> int:
        """Move jobs whose claim outlived the visibility timeout back to the ready list."""
        async def _recover():
            now = self.clock().timestamp()
            for payload in await self.redis.lrange(self.processing_key, 0, -1):
                await self.redis.zadd(self.claims_key, {payload: now}, nx=True)

            moved = 0
            stale = await self.redis.zrangebyscore(self.claims_key, "-inf", now - self.visibility_timeout)
            for payload in stale:
                # Only the caller whose ZREM succeeds moves the job
                if not await self.redis.zrem(self.claims_key, payload):
                    continue
                if await self.redis.lrem(self.processing_key, 1, payload):
                    await self.redis.lpush(self.ready_key, payload)
                    moved += 1
            return moved

        moved = await self._call("recover", _recover)
        if moved:
            logger.warning(f"Recovered {moved} stale job(s) onto {self.ready_key}")
        return moved

    async def size(self) -> int:
        async def _size():
            return await self.redis.llen(self.ready_key) + await self.redis.zcard(self.delayed_key)

        return await self._call("size", _size)

    async def close(self) -> None:
        await self.redis.aclose()
