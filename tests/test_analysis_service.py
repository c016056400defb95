from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from webanalyzer.features.analysis.models.analysis import AnalysisStatus
from webanalyzer.features.analysis.schemas.analysis import RecentResultSummary
from webanalyzer.features.analysis.services.analysis_service import AnalysisService
from webanalyzer.platform.exceptions import (
    AnalysisNotFoundError,
    AnalysisNotReadyError,
    HostNotAllowedError,
    QueueError,
    UrlValidationError,
)


@pytest.fixture
def service(store, queue, validator, stub_registry):
    return AnalysisService(store, queue, validator=validator, registry=stub_registry)


class TestStartAnalysis:

    @pytest.mark.asyncio
    async def test_creates_pending_record_and_job(self, service, store, queue):
        record = await service.start_analysis("https://example.com", ["seo", "tech"])

        assert record.status == AnalysisStatus.pending
        assert (await store.get(record.id)).requested_capabilities == ["seo", "tech"]

        job = await queue.dequeue()
        assert job.analysis_id == record.id
        assert job.url == "https://example.com"
        assert job.requested_capabilities == ["seo", "tech"]

    @pytest.mark.asyncio
    async def test_capabilities_deduplicated(self, service, store):
        record = await service.start_analysis("https://example.com", ["SEO", "seo", " tech "])
        assert record.requested_capabilities == ["seo", "tech"]

    @pytest.mark.asyncio
    async def test_empty_capabilities_means_all(self, service):
        record = await service.start_analysis("https://example.com")
        assert record.requested_capabilities == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("url", [
        "http://10.0.0.5",
        "http://127.0.0.1/",
        "http://192.168.0.10/router",
        "http://[::1]:8000/",
        "https://unresolvable.invalid/",
    ])
    async def test_disallowed_host_creates_nothing(self, service, store, queue, url):
        with pytest.raises(HostNotAllowedError):
            await service.start_analysis(url)

        assert store._records == {}
        assert await queue.size() == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("url", ["", "ftp://example.com", "not a url"])
    async def test_malformed_url(self, service, store, url):
        with pytest.raises(UrlValidationError):
            await service.start_analysis(url)
        assert store._records == {}

    @pytest.mark.asyncio
    async def test_unknown_capability(self, service, store):
        with pytest.raises(UrlValidationError) as exc_info:
            await service.start_analysis("https://example.com", ["seo", "mind-reading"])

        assert "mind-reading" in exc_info.value.message
        assert store._records == {}

    @pytest.mark.asyncio
    async def test_enqueue_failure_marks_record_failed(self, service, store, queue):
        queue.enqueue = AsyncMock(side_effect=QueueError("redis down"))

        with pytest.raises(QueueError):
            await service.start_analysis("https://example.com")

        [record] = store._records.values()
        assert record.status == AnalysisStatus.failed
        assert "redis down" in record.error_message


class TestReads:

    @pytest.mark.asyncio
    async def test_get_status(self, service):
        record = await service.start_analysis("https://example.com")

        status = await service.get_status(record.id)

        assert status.id == record.id
        assert status.status == AnalysisStatus.pending

    @pytest.mark.asyncio
    async def test_get_status_missing(self, service):
        with pytest.raises(AnalysisNotFoundError):
            await service.get_status("nope")

    @pytest.mark.asyncio
    async def test_get_result_not_ready(self, service, store):
        record = await service.start_analysis("https://example.com")

        with pytest.raises(AnalysisNotReadyError):
            await service.get_result(record.id)

        await store.transition(record.id, AnalysisStatus.in_progress)
        with pytest.raises(AnalysisNotReadyError):
            await service.get_result(record.id)

    @pytest.mark.asyncio
    async def test_get_result_completed_and_failed(self, service, store):
        done = await service.start_analysis("https://example.com")
        await store.transition(done.id, AnalysisStatus.in_progress)
        await store.transition(done.id, AnalysisStatus.completed, results={"seo": {"title": "x"}})

        broken = await service.start_analysis("https://example.com")
        await store.transition(broken.id, AnalysisStatus.failed, error_message="boom")

        assert (await service.get_result(done.id)).results == {"seo": {"title": "x"}}
        assert (await service.get_result(broken.id)).error_message == "boom"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("requested,expected", [(None, 20), (0, 1), (-5, 1), (7, 7), (500, 100)])
    async def test_list_recent_clamps_limit(self, service, store, requested, expected):
        store.list_recent = AsyncMock(return_value=[])

        await service.list_recent(requested)

        store.list_recent.assert_awaited_once_with(expected)


class TestPurge:

    @pytest.mark.asyncio
    async def test_purge_expired(self, service, store):
        now = datetime(2026, 6, 30)
        for analysis_id, age in (("fresh", 2), ("stale", 45)):
            await store.add_recent_result(RecentResultSummary(
                analysis_id=analysis_id,
                url="https://example.com",
                status="completed",
                recorded_at=now - timedelta(days=age),
            ))

        purged = await service.purge_expired(now)

        assert purged["recent_results"] == 1
        assert [row.analysis_id for row in await store.list_recent(10)] == ["fresh"]
