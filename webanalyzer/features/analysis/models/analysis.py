import enum

from sqlalchemy import JSON, Column, DateTime, Enum, Index, Integer, String, Text

from webanalyzer.platform.db.base import BaseModel


class AnalysisStatus(enum.Enum):
    """Analysis status state machine: pending -> in-progress -> completed | failed"""
    pending = "pending"
    in_progress = "in-progress"
    completed = "completed"
    failed = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    def can_transition_to(self, target: "AnalysisStatus") -> bool:
        # Same-state moves are allowed so that a redelivered job can re-claim
        # an in-progress record and replayed terminal writes are no-ops.
        if target == self:
            return True
        return target in _ALLOWED_TRANSITIONS[self]


TERMINAL_STATUSES = frozenset({AnalysisStatus.completed, AnalysisStatus.failed})

_ALLOWED_TRANSITIONS = {
    AnalysisStatus.pending: frozenset({AnalysisStatus.in_progress, AnalysisStatus.failed}),
    AnalysisStatus.in_progress: frozenset({AnalysisStatus.completed, AnalysisStatus.failed}),
    AnalysisStatus.completed: frozenset(),
    AnalysisStatus.failed: frozenset(),
}


class Analysis(BaseModel):

    __tablename__ = "analyses"

    url = Column(String(2048), nullable=False, index=True)

    status = Column(
        Enum(AnalysisStatus, values_callable=lambda e: [m.value for m in e], name="analysis_status"),
        default=AnalysisStatus.pending,
        nullable=False,
        index=True,
    )

    # Capability tags requested by the client; empty means "run everything"
    requested_capabilities = Column(JSON, nullable=False, default=list)

    # capability tag -> result dict, or {"status": "error", "error": "..."}
    results = Column(JSON, nullable=False, default=dict)

    # Headline fields from the shared page load
    title = Column(Text, nullable=True)
    description = Column(Text, nullable=True)

    error_message = Column(Text, nullable=True)
    attempt_count = Column(Integer, default=0, nullable=False)

    user_id = Column(String, nullable=True, index=True)

    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_analyses_url_created", "url", "created_at"),
    )
