"""
Analysis Schemas

Data carried through the pipeline (jobs, records, summaries, events) and the
request/response models of the analysis API.
"""
import enum
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from webanalyzer.features.analysis.models.analysis import AnalysisStatus
from webanalyzer.platform.utils.ids import new_id


class CapabilityTag(str, enum.Enum):
    tech = "tech"
    seo = "seo"
    performance = "performance"
    accessibility = "accessibility"
    security = "security"


ALL_CAPABILITIES = [tag.value for tag in CapabilityTag]


# ============================================================================
# Pipeline data
# ============================================================================

class Job(BaseModel):
    """A unit of queued work. Owned by the queue until a worker claims it."""
    id: str = Field(default_factory=new_id)
    analysis_id: str
    url: str
    requested_capabilities: List[str] = Field(default_factory=list)
    enqueued_at: datetime = Field(default_factory=datetime.utcnow)
    attempt_count: int = 0
    available_at: Optional[datetime] = None
    last_error: Optional[str] = None


class AnalysisRecord(BaseModel):
    id: str
    url: str
    status: AnalysisStatus
    requested_capabilities: List[str] = Field(default_factory=list)
    results: Dict[str, Any] = Field(default_factory=dict)
    title: Optional[str] = None
    description: Optional[str] = None
    error_message: Optional[str] = None
    attempt_count: int = 0
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RecentResultSummary(BaseModel):
    analysis_id: str
    url: str
    status: Literal["completed", "failed"]
    title: Optional[str] = None
    description: Optional[str] = None
    technologies: List[Dict[str, Any]] = Field(default_factory=list)
    performance_score: Optional[int] = None
    accessibility_score: Optional[int] = None
    seo_score: Optional[int] = None
    error: Optional[str] = None
    recorded_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        from_attributes = True


class NotificationEvent(BaseModel):
    analysis_id: str
    event_kind: Literal["completed", "failed"]
    payload: Dict[str, Any] = Field(default_factory=dict)


class HostValidationResult(BaseModel):
    allowed: bool
    reason: Optional[str] = None


# ============================================================================
# API schemas
# ============================================================================

class AnalysisStartRequest(BaseModel):
    """Request to start an analysis."""
    url: str
    capabilities: List[str] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "url": "https://example.com",
                "capabilities": ["tech", "seo"]
            }
        }


class AnalysisStartResponse(BaseModel):
    id: str
    status: str
    url: str


class AnalysisStatusResponse(BaseModel):
    id: str
    status: str
    url: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
