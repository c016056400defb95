"""
Celery tasks for analysis housekeeping.

Run with a beat scheduler:

    celery -A webanalyzer.platform.celery_app worker -B -Q maintenance
"""
import asyncio
from datetime import datetime

from celery import shared_task

from webanalyzer.features.analysis.dependencies import build_store
from webanalyzer.features.analysis.services.analysis_service import AnalysisService
from webanalyzer.features.analysis.services.job_queue import InMemoryJobQueue
from webanalyzer.platform.config import settings
from webanalyzer.platform.logger import get_logger

logger = get_logger(__name__)


async def _purge(now: datetime) -> dict:
    # Purging never enqueues, so a throwaway queue is enough
    service = AnalysisService(build_store(), InMemoryJobQueue())
    try:
        return await service.purge_expired(now)
    finally:
        if not settings.SKIP_DB:
            # Every task run gets a fresh event loop; pooled connections must not outlive it
            from webanalyzer.platform.db.session import engine

            await engine.dispose()


@shared_task(bind=True, name="webanalyzer.features.analysis.workers.tasks.purge_expired_results")
def purge_expired_results(self):
    """Delete recent results and terminal analyses past their retention period."""
    now = datetime.utcnow()
    logger.info("Purging expired analysis data...")
    try:
        purged = asyncio.run(_purge(now))
    except Exception as e:
        logger.error(f"Error purging expired analysis data: {e}")
        raise
    return {"status": "success", **purged, "timestamp": now.isoformat()}
