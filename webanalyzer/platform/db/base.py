from sqlalchemy import Column, DateTime, String, func
from sqlalchemy.orm import declarative_base

from webanalyzer.platform.utils.ids import new_id

Base = declarative_base()


class BaseModel(Base):
    """uuid7 string primary key plus server-side created/updated timestamps."""

    __abstract__ = True

    id = Column(String, primary_key=True, default=new_id, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
