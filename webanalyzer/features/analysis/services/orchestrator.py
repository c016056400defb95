"""
Analysis orchestration.

One call to `AnalysisOrchestrator.process(job)` takes an analysis from
pending to completed:

1. load the record (missing -> non-retryable failure, terminal -> skip)
2. mark it in-progress
3. run the self-contained capabilities (performance, security)
4. if any page capability was requested, check out a browser, load the
   page once and run tech / seo / accessibility against it
5. write every result in one update that also flips the status to completed
6. record the recent-result summary and publish `completed`

A capability that raises or times out only produces an error entry under
its own key. Anything that stops the job as a whole is raised as an
OrchestrationError; the worker decides between retrying and `fail()`.
"""
import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

from webanalyzer.features.analysis.models.analysis import AnalysisStatus
from webanalyzer.features.analysis.schemas.analysis import AnalysisRecord, Job
from webanalyzer.features.analysis.services.analysis_store import AnalysisStore
from webanalyzer.features.analysis.services.browser_pool import BrowserPool
from webanalyzer.features.analysis.services.capabilities import (
    Capability,
    ScanContext,
    get_capabilities,
)
from webanalyzer.features.analysis.services.notifications import (
    NotificationPublisher,
    NullNotificationPublisher,
)
from webanalyzer.features.analysis.services.summary import build_summary, capability_error
from webanalyzer.platform.config import settings
from webanalyzer.platform.exceptions import (
    AnalysisNotFoundError,
    InvalidStatusTransition,
    OrchestrationError,
    RecordNotFoundError,
)
from webanalyzer.platform.logger import get_logger

logger = get_logger(__name__)


def _meta_description(html: Optional[str]) -> Optional[str]:
    if not html:
        return None
    tag = BeautifulSoup(html, "html.parser").find("meta", attrs={"name": "description"})
    content = (tag.get("content") or "").strip() if tag else ""
    return content or None


class AnalysisOrchestrator:
    def __init__(
        self,
        store: AnalysisStore,
        browser_pool: BrowserPool,
        publisher: Optional[NotificationPublisher] = None,
        registry: Optional[Dict[str, Capability]] = None,
        capability_timeout: Optional[float] = None,
        robots_timeout: Optional[float] = None,
        http_client_factory=None,
    ):
        self.store = store
        self.browser_pool = browser_pool
        self.publisher = publisher or NullNotificationPublisher()
        self.registry = registry
        self.capability_timeout = capability_timeout or settings.CAPABILITY_TIMEOUT
        self.robots_timeout = robots_timeout or settings.ROBOTS_TXT_TIMEOUT
        self.http_client_factory = http_client_factory or self._default_http_client

    @staticmethod
    def _default_http_client() -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(settings.PAGE_LOAD_TIMEOUT),
            follow_redirects=True,
            headers={
                "User-Agent": settings.USER_AGENT,
                "Accept-Language": "en-US,en;q=0.9",
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
            },
        )

    # ── Job lifecycle ───────────────────────────

    async def process(self, job: Job) -> AnalysisRecord:
        analysis_id = job.analysis_id
        record = await self.store.get(analysis_id)
        if record is None:
            raise RecordNotFoundError(f"Analysis {analysis_id} not found")

        if record.status.is_terminal:
            # Redelivered after the terminal write; only make sure the summary exists
            logger.info(f"[{analysis_id}] Already {record.status.value}, skipping redelivered job {job.id}")
            await self._record_summary(record)
            return record

        tags = job.requested_capabilities or record.requested_capabilities
        try:
            capabilities = get_capabilities(tags, self.registry)
        except KeyError as e:
            raise OrchestrationError(e.args[0], retryable=False) from e

        await self._claim(job, record)
        logger.info(
            f"[{analysis_id}] Processing {job.url} with capabilities "
            f"{[c.tag for c in capabilities]} (attempt {job.attempt_count + 1})"
        )

        results, context = await self._run_capabilities(job, capabilities)

        try:
            record = await self.store.transition(
                analysis_id,
                AnalysisStatus.completed,
                results=results,
                title=context.title,
                description=_meta_description(context.html),
                error_message=None,
                completed_at=datetime.utcnow(),
            )
        except AnalysisNotFoundError as e:
            raise RecordNotFoundError(str(e)) from e
        except InvalidStatusTransition as e:
            # Another delivery of this job already finished it
            logger.warning(f"[{analysis_id}] {e}")
            return await self.store.get(analysis_id)

        failed = sorted(tag for tag, result in results.items() if result.get("status") == "error")
        if failed:
            logger.warning(f"[{analysis_id}] Completed with capability errors: {failed}")
        else:
            logger.info(f"[{analysis_id}] Analysis completed")

        await self._record_summary(record)
        await self.publisher.publish(
            analysis_id,
            "completed",
            {"url": record.url, "result": record.results, "failedCapabilities": failed},
        )
        return record

    async def fail(self, job: Job, error: str) -> Optional[AnalysisRecord]:
        """Terminal failure: mark the record failed, summarize, notify."""
        analysis_id = job.analysis_id
        record = await self.store.get(analysis_id)
        if record is None:
            logger.error(f"[{analysis_id}] Cannot mark missing analysis as failed: {error}")
            return None
        if record.status.is_terminal:
            logger.info(f"[{analysis_id}] Already {record.status.value}, not marking failed")
            return record

        record = await self.store.transition(
            analysis_id,
            AnalysisStatus.failed,
            error_message=error,
            completed_at=datetime.utcnow(),
        )
        logger.error(f"[{analysis_id}] Analysis failed: {error}")

        await self._record_summary(record)
        await self.publisher.publish(analysis_id, "failed", {"url": record.url, "error": error})
        return record

    async def _claim(self, job: Job, record: AnalysisRecord) -> None:
        try:
            await self.store.transition(
                job.analysis_id,
                AnalysisStatus.in_progress,
                started_at=record.started_at or datetime.utcnow(),
                attempt_count=job.attempt_count + 1,
            )
        except AnalysisNotFoundError as e:
            raise RecordNotFoundError(str(e)) from e

    async def _record_summary(self, record: AnalysisRecord) -> None:
        created = await self.store.add_recent_result(build_summary(record))
        if not created:
            logger.info(f"[{record.id}] Recent result already recorded")

    # ── Capability execution ────────────────────

    async def _run_capabilities(
        self, job: Job, capabilities: List[Capability]
    ) -> Tuple[Dict[str, Any], ScanContext]:
        standalone = [c for c in capabilities if not c.needs_page]
        page_bound = [c for c in capabilities if c.needs_page]
        results: Dict[str, Any] = {}

        async with self.http_client_factory() as http:
            context = ScanContext(base_url=job.url, http=http)

            for capability in standalone:
                results[capability.tag] = await self._run_one(job, capability, context)

            if page_bound:
                # BrowserUnavailableError / PageLoadError fail the whole job
                async with self.browser_pool.session() as browser:
                    page = await browser.load(job.url)
                    context.browser = browser
                    context.html = page.html
                    context.title = page.title
                    context.final_url = page.final_url
                    context.headers = await self._fetch_headers(job, http)
                    if any(c.tag == "seo" for c in page_bound):
                        context.robots_txt = await self._fetch_robots(job, http)

                    for capability in page_bound:
                        results[capability.tag] = await self._run_one(job, capability, context)

        return results, context

    async def _run_one(self, job: Job, capability: Capability, context: ScanContext) -> Dict[str, Any]:
        timeout = capability.timeout or self.capability_timeout
        logger.info(f"[{job.analysis_id}] Running {capability.tag} analysis...")
        try:
            result = await asyncio.wait_for(capability.run(context), timeout=timeout)
        except OrchestrationError:
            raise
        except asyncio.TimeoutError:
            logger.error(f"[{job.analysis_id}] {capability.tag} analysis timed out after {timeout}s")
            return capability_error(f"Timed out after {timeout} seconds")
        except Exception as e:
            logger.exception(f"[{job.analysis_id}] Error in {capability.tag} analysis for {job.url}: {e}")
            return capability_error(str(e) or type(e).__name__)

        if not isinstance(result, dict):
            return capability_error(f"{capability.tag} returned {type(result).__name__}, expected a mapping")
        return result

    async def _fetch_headers(self, job: Job, http: httpx.AsyncClient) -> Dict[str, str]:
        try:
            response = await http.get(job.url)
            return {key.lower(): value for key, value in response.headers.items()}
        except httpx.HTTPError as e:
            logger.warning(f"[{job.analysis_id}] Could not fetch response headers: {e}")
            return {}

    async def _fetch_robots(self, job: Job, http: httpx.AsyncClient) -> Optional[str]:
        robots_url = urljoin(job.url, "/robots.txt")
        try:
            response = await http.get(robots_url, timeout=self.robots_timeout)
        except httpx.HTTPError as e:
            logger.info(f"[{job.analysis_id}] robots.txt not available: {e}")
            return None
        return response.text if response.status_code == 200 else None
