"""
Wiring for the analysis feature.

`build_components()` assembles the store, queue, publisher, browser pool,
orchestrator and worker from settings. The API keeps the result on
`app.state.components`; the standalone worker builds its own.
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from webanalyzer.features.analysis.services.analysis_service import AnalysisService
from webanalyzer.features.analysis.services.analysis_store import (
    AnalysisStore,
    InMemoryAnalysisStore,
    SqlAnalysisStore,
)
from webanalyzer.features.analysis.services.browser_pool import BrowserPool
from webanalyzer.features.analysis.services.job_queue import (
    InMemoryJobQueue,
    JobQueue,
    RedisJobQueue,
)
from webanalyzer.features.analysis.services.notifications import (
    NotificationPublisher,
    NullNotificationPublisher,
    RedisNotificationPublisher,
)
from webanalyzer.features.analysis.services.orchestrator import AnalysisOrchestrator
from webanalyzer.features.analysis.workers.runner import AnalysisWorker
from webanalyzer.platform.config import settings
from webanalyzer.platform.logger import get_logger
from webanalyzer.platform.utils.url_validator import HostValidator

logger = get_logger(__name__)


@dataclass
class Components:
    store: AnalysisStore
    queue: JobQueue
    publisher: NotificationPublisher
    browser_pool: BrowserPool
    orchestrator: AnalysisOrchestrator
    worker: AnalysisWorker
    service: AnalysisService

    async def close(self) -> None:
        self.worker.stop()
        await self.browser_pool.close()
        await self.queue.close()
        await self.publisher.close()


def build_store() -> AnalysisStore:
    if settings.SKIP_DB:
        logger.warning("SKIP_DB is set; analyses are kept in memory only")
        return InMemoryAnalysisStore()
    from webanalyzer.platform.db.session import SessionLocal

    return SqlAnalysisStore(SessionLocal)


async def build_queue() -> JobQueue:
    if settings.QUEUE_BACKEND == "redis":
        return RedisJobQueue.from_url(
            settings.REDIS_URL,
            name=settings.QUEUE_NAME,
            max_attempts=settings.QUEUE_MAX_ATTEMPTS,
            backoff_base=settings.QUEUE_BACKOFF_BASE_SECONDS,
            visibility_timeout=settings.QUEUE_VISIBILITY_TIMEOUT_SECONDS,
        )
    return InMemoryJobQueue()


def build_publisher() -> NotificationPublisher:
    if not settings.NOTIFICATIONS_ENABLED:
        return NullNotificationPublisher()
    return RedisNotificationPublisher.from_url(settings.REDIS_URL, channel=settings.NOTIFICATION_CHANNEL)


async def build_components(
    store: Optional[AnalysisStore] = None,
    queue: Optional[JobQueue] = None,
    publisher: Optional[NotificationPublisher] = None,
    browser_pool: Optional[BrowserPool] = None,
    validator: Optional[HostValidator] = None,
) -> Components:
    store = store or build_store()
    queue = queue or await build_queue()
    publisher = publisher or build_publisher()
    browser_pool = browser_pool or BrowserPool(size=settings.BROWSER_POOL_SIZE)

    orchestrator = AnalysisOrchestrator(store, browser_pool, publisher=publisher)
    return Components(
        store=store,
        queue=queue,
        publisher=publisher,
        browser_pool=browser_pool,
        orchestrator=orchestrator,
        worker=AnalysisWorker(queue, orchestrator),
        service=AnalysisService(store, queue, validator=validator),
    )


def get_analysis_service(request: Request) -> AnalysisService:
    return request.app.state.components.service
