from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text

from webanalyzer.platform.db.base import BaseModel


class RecentResult(BaseModel):
    """
    Brief, append-only record of each finished analysis for the
    "Recent Results" listing. Rows older than the retention window are
    purged by the periodic maintenance task.
    """

    __tablename__ = "recent_results"

    # One summary per terminal analysis
    analysis_id = Column(String, nullable=False, unique=True, index=True)

    url = Column(String(2048), nullable=False, index=True)
    status = Column(String(16), nullable=False)

    title = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    technologies = Column(JSON, nullable=False, default=list)

    performance_score = Column(Integer, nullable=True)
    accessibility_score = Column(Integer, nullable=True)
    seo_score = Column(Integer, nullable=True)

    error = Column(Text, nullable=True)

    # Set explicitly so newest-first ordering does not depend on server clock resolution
    recorded_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
