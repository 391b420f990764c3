"""Track chunked spreadsheet exports across stateless invocations."""

from sqlalchemy import Column, Integer, String, Text
from sqlalchemy.sql import func
from sqlalchemy.types import DateTime

from app.db.base import Base, JSONType


class ExportJob(Base):
    __tablename__ = "export_jobs"

    # Supplied by the caller on the first batch.
    id = Column(String(64), primary_key=True)
    status = Column(String(32), nullable=False, default="processing")
    progress = Column(Integer, nullable=False, default=0)
    total_rows = Column(Integer, nullable=False, default=0)
    # Sum of rows received across calls. A repeated batchIndex adds again even
    # though it overwrites rows already in the artifact.
    processed_rows = Column(Integer, nullable=False, default=0)
    errors = Column(JSONType, nullable=False, default=list)
    file_name = Column(Text, nullable=False)
    download_url = Column(Text)
    created_by = Column(String(255), nullable=False, default="system")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    completed_at = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
