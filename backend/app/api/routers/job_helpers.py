"""Shared helpers for shaping job responses."""
from __future__ import annotations

from typing import Any

from app.api.schemas.job import ExportJobStatus, ImportJobStatus
from app.db.models.export_job import ExportJob
from app.db.models.import_job import ImportJob

TERMINAL_STATUSES = ("complete", "error")


def serialize_import_job(job: ImportJob) -> ImportJobStatus:
    return ImportJobStatus.model_validate(job)


def serialize_export_job(job: ExportJob) -> ExportJobStatus:
    return ExportJobStatus.model_validate(job)


def progress_event(job: ImportJob, snapshot: dict[str, Any] | None) -> ImportJobStatus:
    """Job row overlaid with a fresher progress snapshot while the job is still running."""
    job_status = serialize_import_job(job)
    snapshot = snapshot or {}
    if job_status.status not in TERMINAL_STATUSES and snapshot.get("progress") is not None:
        job_status.progress = max(job_status.progress, int(snapshot["progress"]))
    return job_status
