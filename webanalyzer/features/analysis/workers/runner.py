"""
Queue-draining worker.

Run standalone with

    python -m webanalyzer.features.analysis.workers.runner

or embedded in the API process with RUN_EMBEDDED_WORKER=true.
Each tick claims up to WORKER_BATCH_SIZE jobs and processes them one after
another (or together when WORKER_CONCURRENT_BATCH is set), then sleeps for
WORKER_POLL_INTERVAL when the queue was empty.
"""
import asyncio
import logging
import signal
from typing import List, Optional

from webanalyzer.features.analysis.schemas.analysis import Job
from webanalyzer.features.analysis.services.job_queue import JobQueue
from webanalyzer.features.analysis.services.orchestrator import AnalysisOrchestrator
from webanalyzer.platform.config import settings
from webanalyzer.platform.exceptions import OrchestrationError, QueueError
from webanalyzer.platform.logger import LOG_FORMAT, get_logger

logger = get_logger(__name__)


class AnalysisWorker:
    def __init__(
        self,
        queue: JobQueue,
        orchestrator: AnalysisOrchestrator,
        poll_interval: Optional[float] = None,
        batch_size: Optional[int] = None,
        concurrent: Optional[bool] = None,
        recover_interval: Optional[float] = None,
    ):
        self.queue = queue
        self.orchestrator = orchestrator
        self.poll_interval = settings.WORKER_POLL_INTERVAL if poll_interval is None else poll_interval
        self.batch_size = max(1, batch_size or settings.WORKER_BATCH_SIZE)
        self.concurrent = settings.WORKER_CONCURRENT_BATCH if concurrent is None else concurrent
        self.recover_interval = (
            settings.QUEUE_RECOVER_INTERVAL if recover_interval is None else recover_interval
        )
        self._next_recover = 0.0
        self._stopping = asyncio.Event()

    async def tick(self) -> int:
        """Claim and handle one batch. Returns how many jobs were handled."""
        jobs: List[Job] = []
        for _ in range(self.batch_size):
            try:
                job = await self.queue.dequeue()
            except QueueError as e:
                logger.error(f"Could not dequeue: {e}")
                break
            if job is None:
                break
            jobs.append(job)

        if not jobs:
            return 0

        if self.concurrent:
            await asyncio.gather(*(self.handle(job) for job in jobs))
        else:
            for job in jobs:
                await self.handle(job)
        return len(jobs)

    async def handle(self, job: Job) -> None:
        """Process one job and settle it with the queue. Never raises."""
        try:
            await self.orchestrator.process(job)
        except OrchestrationError as e:
            await self._on_failure(job, str(e), e.retryable)
            return
        except Exception as e:
            logger.exception(f"[{job.analysis_id}] Unexpected error processing job {job.id}: {e}")
            await self._on_failure(job, str(e) or type(e).__name__, True)
            return

        try:
            await self.queue.ack(job)
        except QueueError as e:
            # Redelivery of a terminal record is a no-op
            logger.error(f"[{job.analysis_id}] Could not ack job {job.id}: {e}")

    async def _on_failure(self, job: Job, error: str, retryable: bool) -> None:
        if retryable:
            try:
                if await self.queue.retry(job, error):
                    return
            except QueueError as e:
                logger.error(f"[{job.analysis_id}] Could not reschedule job {job.id}: {e}")
        else:
            logger.warning(f"[{job.analysis_id}] Job {job.id} failed permanently: {error}")
            try:
                await self.queue.ack(job)
            except QueueError as e:
                logger.error(f"[{job.analysis_id}] Could not ack job {job.id}: {e}")

        try:
            await self.orchestrator.fail(job, error)
        except Exception as e:
            logger.exception(f"[{job.analysis_id}] Could not mark analysis failed: {e}")

    async def recover_stale(self) -> int:
        """Hand back jobs whose claim expired, at most once per `recover_interval`."""
        now = asyncio.get_running_loop().time()
        if now < self._next_recover:
            return 0
        self._next_recover = now + self.recover_interval
        try:
            return await self.queue.recover()
        except QueueError as e:
            logger.error(f"Could not recover stale jobs: {e}")
            return 0

    async def run_forever(self) -> None:
        logger.info(
            f"Analysis worker started (batch={self.batch_size}, "
            f"concurrent={self.concurrent}, poll={self.poll_interval}s)"
        )
        while not self._stopping.is_set():
            await self.recover_stale()
            handled = await self.tick()
            if handled:
                continue
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Analysis worker stopped")

    def stop(self) -> None:
        self._stopping.set()


async def main() -> None:
    from webanalyzer.features.analysis.dependencies import build_components

    if settings.QUEUE_BACKEND == "memory":
        logger.warning("QUEUE_BACKEND=memory: a standalone worker only sees jobs enqueued in its own process")

    components = await build_components()
    worker = components.worker

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, worker.stop)

    try:
        await worker.run_forever()
    finally:
        await components.close()


def run() -> None:
    logging.basicConfig(level=settings.LOG_LEVEL.upper(), format=LOG_FORMAT)
    asyncio.run(main())


if __name__ == "__main__":
    run()
