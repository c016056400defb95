"""
Request-side operations on analyses.

These are what the HTTP routes call. Nothing here runs a capability; it
validates, records and enqueues, and reads back what the workers wrote.
"""
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from webanalyzer.features.analysis.models.analysis import AnalysisStatus
from webanalyzer.features.analysis.schemas.analysis import (
    AnalysisRecord,
    Job,
    RecentResultSummary,
)
from webanalyzer.features.analysis.services.analysis_store import AnalysisStore
from webanalyzer.features.analysis.services.capabilities import Capability, unknown_tags
from webanalyzer.features.analysis.services.job_queue import JobQueue
from webanalyzer.platform.config import settings
from webanalyzer.platform.exceptions import (
    AnalysisNotFoundError,
    AnalysisNotReadyError,
    HostNotAllowedError,
    QueueError,
    UrlValidationError,
)
from webanalyzer.platform.logger import get_logger
from webanalyzer.platform.utils.url_validator import HostValidator, validate_url

logger = get_logger(__name__)

DEFAULT_RECENT_LIMIT = 20
MAX_RECENT_LIMIT = 100


def _dedupe(tags: Iterable[str]) -> List[str]:
    seen = []
    for tag in tags:
        tag = tag.strip().lower()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


class AnalysisService:
    def __init__(
        self,
        store: AnalysisStore,
        queue: JobQueue,
        validator: Optional[HostValidator] = None,
        registry: Optional[Dict[str, Capability]] = None,
    ):
        self.store = store
        self.queue = queue
        self.validator = validator or HostValidator()
        self.registry = registry

    async def start_analysis(
        self,
        url: str,
        capabilities: Optional[Iterable[str]] = None,
        user_id: Optional[str] = None,
    ) -> AnalysisRecord:
        """
        Validate the target, create a pending record and enqueue its job.

        Raises:
            UrlValidationError: malformed URL or unknown capability tag
            HostNotAllowedError: host is private/reserved or cannot be resolved
            QueueError: the job could not be enqueued (the record is marked failed)
        """
        url = (url or "").strip()
        is_valid, error = validate_url(url, settings.MAX_URL_LENGTH)
        if not is_valid:
            raise UrlValidationError(error)

        tags = _dedupe(capabilities or [])
        unknown = unknown_tags(tags, self.registry)
        if unknown:
            raise UrlValidationError(f"Unknown capabilities: {', '.join(unknown)}")

        verdict = await self.validator.validate(url)
        if not verdict.allowed:
            logger.warning(f"Rejected analysis request for {url}: {verdict.reason}")
            raise HostNotAllowedError(verdict.reason or "URL host is not allowed.")

        record = await self.store.create(url, tags, user_id=user_id)
        job = Job(analysis_id=record.id, url=url, requested_capabilities=tags)
        try:
            await self.queue.enqueue(job)
        except QueueError as e:
            logger.error(f"[{record.id}] Could not enqueue analysis: {e}")
            await self.store.transition(
                record.id,
                AnalysisStatus.failed,
                error_message=f"Could not enqueue analysis: {e}",
                completed_at=datetime.utcnow(),
            )
            raise

        logger.info(f"[{record.id}] Analysis queued for {url} ({tags or 'all capabilities'})")
        return record

    async def get_status(self, analysis_id: str) -> AnalysisRecord:
        record = await self.store.get(analysis_id)
        if record is None:
            raise AnalysisNotFoundError(f"Analysis {analysis_id} not found")
        return record

    async def get_result(self, analysis_id: str) -> AnalysisRecord:
        """The full record once it is terminal. Failed records carry error_message."""
        record = await self.get_status(analysis_id)
        if not record.status.is_terminal:
            raise AnalysisNotReadyError(
                f"Analysis {analysis_id} is {record.status.value}; results are not available yet"
            )
        return record

    async def list_recent(self, limit: Optional[int] = None) -> List[RecentResultSummary]:
        limit = DEFAULT_RECENT_LIMIT if limit is None else min(max(limit, 1), MAX_RECENT_LIMIT)
        return await self.store.list_recent(limit)

    async def purge_expired(self, now: Optional[datetime] = None) -> Dict[str, int]:
        now = now or datetime.utcnow()
        recent = await self.store.purge_recent_results(
            now - timedelta(days=settings.RECENT_RESULT_RETENTION_DAYS)
        )
        analyses = await self.store.purge_analyses(now - timedelta(days=settings.ANALYSIS_RETENTION_DAYS))
        logger.info(f"Purged {recent} recent result(s) and {analyses} analysis record(s)")
        return {"recent_results": recent, "analyses": analyses}
