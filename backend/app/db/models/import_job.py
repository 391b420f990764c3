"""Track spreadsheet import jobs and their live progress."""

import uuid

from sqlalchemy import Boolean, Column, Integer, String, Text
from sqlalchemy.sql import func
from sqlalchemy.types import DateTime

from app.db.base import Base, JSONType


class ImportJob(Base):
    __tablename__ = "import_jobs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    status = Column(String(32), nullable=False, default="waiting")
    progress = Column(Integer, nullable=False, default=0)
    total_rows = Column(Integer, nullable=False, default=0)
    processed_rows = Column(Integer, nullable=False, default=0)
    errors = Column(JSONType, nullable=False, default=list)
    file_name = Column(Text, nullable=False)
    table_name = Column(String(255), nullable=False)
    with_upsert = Column(Boolean, nullable=False, default=False)
    key_field = Column(String(255))
    created_by = Column(String(255), nullable=False, default="system")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    started_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
