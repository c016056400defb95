"""
Persistence for analysis records and recent-result summaries.

`SqlAnalysisStore` is the production store (SQLAlchemy async sessions).
`InMemoryAnalysisStore` is the "skip persistence" stub: same interface, no
cross-process durability.

Both enforce the status state machine in `transition`: a record only moves
forward along pending -> in-progress -> completed | failed.
"""
import asyncio
import copy
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from webanalyzer.features.analysis.models.analysis import Analysis, AnalysisStatus
from webanalyzer.features.analysis.models.recent_result import RecentResult
from webanalyzer.features.analysis.schemas.analysis import AnalysisRecord, RecentResultSummary
from webanalyzer.platform.exceptions import AnalysisNotFoundError, InvalidStatusTransition
from webanalyzer.platform.logger import get_logger
from webanalyzer.platform.utils.ids import new_id

logger = get_logger(__name__)

# Fields the worker is allowed to write alongside a status change
WRITABLE_FIELDS = frozenset({
    "results",
    "title",
    "description",
    "error_message",
    "attempt_count",
    "started_at",
    "completed_at",
})


def _check_fields(fields: Dict) -> None:
    unknown = set(fields) - WRITABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown analysis fields: {sorted(unknown)}")


class AnalysisStore(ABC):

    @abstractmethod
    async def create(
        self, url: str, requested_capabilities: List[str], user_id: Optional[str] = None
    ) -> AnalysisRecord: ...

    @abstractmethod
    async def get(self, analysis_id: str) -> Optional[AnalysisRecord]: ...

    @abstractmethod
    async def transition(self, analysis_id: str, status: AnalysisStatus, **fields) -> AnalysisRecord:
        """Move a record to `status` and write `fields` in the same update."""

    @abstractmethod
    async def add_recent_result(self, summary: RecentResultSummary) -> bool:
        """Store a summary; False if one already exists for the analysis."""

    @abstractmethod
    async def list_recent(self, limit: int = 20) -> List[RecentResultSummary]: ...

    @abstractmethod
    async def purge_recent_results(self, older_than: datetime) -> int: ...

    @abstractmethod
    async def purge_analyses(self, older_than: datetime) -> int: ...


class SqlAnalysisStore(AnalysisStore):
    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def create(self, url, requested_capabilities, user_id=None) -> AnalysisRecord:
        async with self.session_factory() as db:
            analysis = Analysis(
                url=url,
                user_id=user_id,
                status=AnalysisStatus.pending,
                requested_capabilities=list(requested_capabilities),
                results={},
            )
            db.add(analysis)
            await db.commit()
            await db.refresh(analysis)
            return AnalysisRecord.model_validate(analysis)

    async def get(self, analysis_id) -> Optional[AnalysisRecord]:
        async with self.session_factory() as db:
            result = await db.execute(select(Analysis).where(Analysis.id == analysis_id))
            analysis = result.scalar_one_or_none()
            return AnalysisRecord.model_validate(analysis) if analysis else None

    async def transition(self, analysis_id, status, **fields) -> AnalysisRecord:
        _check_fields(fields)
        async with self.session_factory() as db:
            result = await db.execute(
                select(Analysis).where(Analysis.id == analysis_id).with_for_update()
            )
            analysis = result.scalar_one_or_none()
            if analysis is None:
                raise AnalysisNotFoundError(f"Analysis {analysis_id} not found")

            if not analysis.status.can_transition_to(status):
                raise InvalidStatusTransition(analysis_id, analysis.status, status)

            analysis.status = status
            for key, value in fields.items():
                setattr(analysis, key, value)
            await db.commit()
            await db.refresh(analysis)
            return AnalysisRecord.model_validate(analysis)

    async def add_recent_result(self, summary) -> bool:
        async with self.session_factory() as db:
            existing = await db.execute(
                select(RecentResult.id).where(RecentResult.analysis_id == summary.analysis_id)
            )
            if existing.scalar_one_or_none() is not None:
                return False

            db.add(RecentResult(**summary.model_dump()))
            try:
                await db.commit()
            except IntegrityError:
                # Lost a race with a redelivered copy of the same job
                await db.rollback()
                return False
            return True

    async def list_recent(self, limit=20) -> List[RecentResultSummary]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(RecentResult).order_by(RecentResult.recorded_at.desc()).limit(limit)
            )
            return [RecentResultSummary.model_validate(row) for row in result.scalars().all()]

    async def purge_recent_results(self, older_than) -> int:
        async with self.session_factory() as db:
            result = await db.execute(delete(RecentResult).where(RecentResult.recorded_at < older_than))
            await db.commit()
            return result.rowcount or 0

    async def purge_analyses(self, older_than) -> int:
        async with self.session_factory() as db:
            result = await db.execute(
                delete(Analysis).where(
                    Analysis.created_at < older_than,
                    Analysis.status.in_([AnalysisStatus.completed, AnalysisStatus.failed]),
                )
            )
            await db.commit()
            return result.rowcount or 0


class InMemoryAnalysisStore(AnalysisStore):
    """Ephemeral store used when SKIP_DB is set, and in tests."""

    def __init__(self, clock=None):
        self.clock = clock or datetime.utcnow
        self._records: Dict[str, AnalysisRecord] = {}
        self._recent: Dict[str, RecentResultSummary] = {}
        self._lock = asyncio.Lock()

    async def create(self, url, requested_capabilities, user_id=None) -> AnalysisRecord:
        now = self.clock()
        record = AnalysisRecord(
            id=new_id(),
            url=url,
            status=AnalysisStatus.pending,
            requested_capabilities=list(requested_capabilities),
            user_id=user_id,
            created_at=now,
            updated_at=now,
        )
        async with self._lock:
            self._records[record.id] = record
        return record.model_copy(deep=True)

    async def get(self, analysis_id) -> Optional[AnalysisRecord]:
        record = self._records.get(analysis_id)
        return record.model_copy(deep=True) if record else None

    async def transition(self, analysis_id, status, **fields) -> AnalysisRecord:
        _check_fields(fields)
        async with self._lock:
            record = self._records.get(analysis_id)
            if record is None:
                raise AnalysisNotFoundError(f"Analysis {analysis_id} not found")

            if not record.status.can_transition_to(status):
                raise InvalidStatusTransition(analysis_id, record.status, status)

            update = copy.deepcopy(fields)
            update["status"] = status
            update["updated_at"] = self.clock()
            self._records[analysis_id] = record.model_copy(update=update)
            return self._records[analysis_id].model_copy(deep=True)

    async def add_recent_result(self, summary) -> bool:
        async with self._lock:
            if summary.analysis_id in self._recent:
                return False
            self._recent[summary.analysis_id] = summary.model_copy(deep=True)
            return True

    async def list_recent(self, limit=20) -> List[RecentResultSummary]:
        rows = sorted(self._recent.values(), key=lambda s: s.recorded_at, reverse=True)
        return [row.model_copy(deep=True) for row in rows[:limit]]

    async def purge_recent_results(self, older_than) -> int:
        async with self._lock:
            expired = [key for key, row in self._recent.items() if row.recorded_at < older_than]
            for key in expired:
                del self._recent[key]
        return len(expired)

    async def purge_analyses(self, older_than) -> int:
        async with self._lock:
            expired = [
                key for key, record in self._records.items()
                if record.status.is_terminal and record.created_at and record.created_at < older_than
            ]
            for key in expired:
                del self._records[key]
        return len(expired)
