import asyncio
from unittest.mock import AsyncMock

import pytest
from selenium.common.exceptions import TimeoutException

from helpers import FakeDriver, StubCapability, mock_http_client_factory
from webanalyzer.features.analysis.models.analysis import AnalysisStatus
from webanalyzer.features.analysis.schemas.analysis import Job
from webanalyzer.features.analysis.services.browser_pool import BrowserPool
from webanalyzer.features.analysis.services.capabilities import build_registry
from webanalyzer.features.analysis.services.job_queue import InMemoryJobQueue
from webanalyzer.features.analysis.services.orchestrator import AnalysisOrchestrator
from webanalyzer.features.analysis.workers.runner import AnalysisWorker
from webanalyzer.platform.exceptions import QueueError


async def enqueue_analysis(store, queue, capabilities=None):
    record = await store.create("https://example.com", capabilities or [])
    job = Job(analysis_id=record.id, url=record.url, requested_capabilities=capabilities or [])
    await queue.enqueue(job)
    return job


def make_worker(store, queue, pool, publisher, registry, **kwargs):
    orchestrator = AnalysisOrchestrator(
        store,
        pool,
        publisher=publisher,
        registry=registry,
        http_client_factory=mock_http_client_factory(),
    )
    return AnalysisWorker(queue, orchestrator, poll_interval=0.01, **kwargs)


class TestAnalysisWorker:

    @pytest.mark.asyncio
    async def test_tick_processes_job(self, store, queue, browser_pool, publisher, stub_registry):
        worker = make_worker(store, queue, browser_pool, publisher, stub_registry)
        job = await enqueue_analysis(store, queue, ["tech"])

        assert await worker.tick() == 1
        assert await worker.tick() == 0

        record = await store.get(job.analysis_id)
        assert record.status == AnalysisStatus.completed
        assert record.attempt_count == 1

    @pytest.mark.asyncio
    async def test_page_load_failure_exhausts_three_attempts(self, store, publisher, stub_registry):
        driver = FakeDriver(fail_on_get=TimeoutException("timed out"))
        pool = BrowserPool(size=1, driver_factory=lambda: driver)
        queue = InMemoryJobQueue(max_attempts=3, backoff_base=0)
        worker = make_worker(store, queue, pool, publisher, stub_registry)
        job = await enqueue_analysis(store, queue, ["seo"])

        for attempt in (1, 2):
            assert await worker.tick() == 1
            record = await store.get(job.analysis_id)
            assert record.status == AnalysisStatus.in_progress
            assert record.attempt_count == attempt

        assert await worker.tick() == 1
        record = await store.get(job.analysis_id)
        assert record.status == AnalysisStatus.failed
        assert record.attempt_count == 3
        assert "Page load timeout" in record.error_message

        # Nothing left to retry
        assert await worker.tick() == 0
        assert await queue.size() == 0

        [summary] = await store.list_recent(10)
        assert summary.status == "failed"
        assert [e.event_kind for e in publisher.events] == ["failed"]

    @pytest.mark.asyncio
    async def test_non_retryable_failure_is_terminal_immediately(self, store, queue, browser_pool, publisher, stub_registry):
        worker = make_worker(store, queue, browser_pool, publisher, stub_registry)
        job = await enqueue_analysis(store, queue, ["no-such-capability"])

        await worker.tick()

        record = await store.get(job.analysis_id)
        assert record.status == AnalysisStatus.failed
        assert "no-such-capability" in record.error_message
        assert await queue.size() == 0

    @pytest.mark.asyncio
    async def test_unexpected_error_goes_through_retry_policy(self, store, queue, browser_pool, publisher, stub_registry):
        worker = make_worker(store, queue, browser_pool, publisher, stub_registry)
        job = await enqueue_analysis(store, queue, ["tech"])
        worker.orchestrator.process = AsyncMock(side_effect=RuntimeError("disk full"))
        queue.retry = AsyncMock(return_value=True)

        await worker.tick()

        queue.retry.assert_awaited_once()
        assert queue.retry.await_args.args[1] == "disk full"
        assert (await store.get(job.analysis_id)).status == AnalysisStatus.pending

    @pytest.mark.asyncio
    async def test_queue_error_on_retry_fails_the_record(self, store, queue, browser_pool, publisher, stub_registry):
        worker = make_worker(store, queue, browser_pool, publisher, stub_registry)
        job = await enqueue_analysis(store, queue, ["tech"])
        worker.orchestrator.process = AsyncMock(side_effect=RuntimeError("boom"))
        queue.retry = AsyncMock(side_effect=QueueError("redis down"))

        await worker.tick()

        assert (await store.get(job.analysis_id)).status == AnalysisStatus.failed

    @pytest.mark.asyncio
    async def test_batch_is_sequential_by_default(self, store, queue, browser_pool, publisher):
        order = []

        class Recording(StubCapability):
            async def run(self, context):
                order.append(("start", context.base_url))
                await asyncio.sleep(0)
                order.append(("end", context.base_url))
                return {}

        registry = build_registry([Recording("performance")])
        worker = make_worker(store, queue, browser_pool, publisher, registry, batch_size=2)
        for _ in range(2):
            await enqueue_analysis(store, queue)

        assert await worker.tick() == 2
        assert [kind for kind, _ in order] == ["start", "end", "start", "end"]

    @pytest.mark.asyncio
    async def test_concurrent_batch(self, store, queue, browser_pool, publisher):
        running = []
        peak = []

        class Overlapping(StubCapability):
            async def run(self, context):
                running.append(1)
                peak.append(len(running))
                await asyncio.sleep(0.01)
                running.pop()
                return {}

        registry = build_registry([Overlapping("performance")])
        worker = make_worker(store, queue, browser_pool, publisher, registry, batch_size=3, concurrent=True)
        for _ in range(3):
            await enqueue_analysis(store, queue)

        assert await worker.tick() == 3
        assert max(peak) == 3

    @pytest.mark.asyncio
    async def test_run_forever_stops(self, store, queue, browser_pool, publisher, stub_registry):
        worker = make_worker(store, queue, browser_pool, publisher, stub_registry)
        job = await enqueue_analysis(store, queue, ["performance"])

        task = asyncio.create_task(worker.run_forever())
        for _ in range(100):
            if (await store.get(job.analysis_id)).status.is_terminal:
                break
            await asyncio.sleep(0.01)
        worker.stop()
        await asyncio.wait_for(task, timeout=1)

        assert (await store.get(job.analysis_id)).status == AnalysisStatus.completed

    @pytest.mark.asyncio
    async def test_stale_job_recovery_is_throttled(self, store, queue, browser_pool, publisher, stub_registry):
        queue.recover = AsyncMock(return_value=2)
        worker = make_worker(store, queue, browser_pool, publisher, stub_registry, recover_interval=60)

        assert await worker.recover_stale() == 2
        assert await worker.recover_stale() == 0
        queue.recover.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_recovery_queue_error_is_logged(self, store, queue, browser_pool, publisher, stub_registry):
        queue.recover = AsyncMock(side_effect=QueueError("redis down"))
        worker = make_worker(store, queue, browser_pool, publisher, stub_registry, recover_interval=0)

        assert await worker.recover_stale() == 0
