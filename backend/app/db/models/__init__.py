"""Database models package."""
from app.db.models.export_job import ExportJob
from app.db.models.import_job import ImportJob

__all__ = ["ImportJob", "ExportJob"]

JOB_TABLES = frozenset({ImportJob.__tablename__, ExportJob.__tablename__})
