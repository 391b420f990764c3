"""Accumulate caller-supplied row batches into an export workbook across invocations.

Nothing is kept in memory between calls: the partially built workbook lives
in ``temp-exports`` and the counters live on the ``ExportJob`` row. Batch
``i`` is always written at artifact row ``1 + i * chunk_size`` so a repeated
index overwrites its earlier rows instead of appending.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from app.core.errors import (
    JobFailedError,
    JobNotFoundError,
    JobStateConflictError,
    MalformedRequestError,
)
from app.db.models.export_job import ExportJob
from app.services.progress_tracker import publish_progress
from app.services.spreadsheet_codec import (
    XLSX_CONTENT_TYPE,
    encode,
    load_export_workbook,
    new_workbook,
    project_rows,
    read_headers,
    write_block,
)
from app.storage.artifact_store import (
    EXPORTS,
    TEMP_EXPORTS,
    ArtifactStore,
    ArtifactStoreError,
    export_final_key,
    export_working_key,
)
from app.utils.batching import DEFAULT_CHUNK_SIZE, output_cursor, percent
from app.utils.sheet_validator import ValidationError, safe_segment, validate_headers

logger = logging.getLogger(__name__)


@dataclass
class ExportBatch:
    job_id: str
    rows: list[dict[str, Any]] = field(default_factory=list)
    batch_index: int = 0
    has_more_batches: bool = False
    headers: list[str] | None = None
    file_name: str | None = None
    total_rows: int | None = None
    created_by: str | None = None


class SheetExporter:
    def __init__(
        self,
        session: Session,
        store: ArtifactStore,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        default_owner: str = "system",
    ):
        self.session = session
        self.store = store
        self.chunk_size = chunk_size
        self.default_owner = default_owner

    def start(self, request: ExportBatch) -> dict[str, Any]:
        """First call of an export: declares headers, file name and total row count."""
        try:
            headers = validate_headers(request.headers)
            file_name = safe_segment(request.file_name, "fileName")
            owner = safe_segment(request.created_by or self.default_owner, "createdBy")
        except ValidationError as e:
            raise MalformedRequestError(str(e)) from e
        if request.total_rows is None or request.total_rows < 0:
            raise MalformedRequestError("'totalRows' must be a non-negative integer")

        job = self.session.get(ExportJob, request.job_id)
        if job is None:
            job = ExportJob(
                id=request.job_id,
                status="processing",
                progress=0,
                total_rows=request.total_rows,
                processed_rows=0,
                errors=[],
                file_name=file_name,
                created_by=owner,
            )
            self.session.add(job)
            self.session.commit()
            logger.info(
                f"Created export job {request.job_id}: {file_name}, {request.total_rows} rows"
            )
        return self._apply(job, request, headers)

    def append(self, request: ExportBatch) -> dict[str, Any]:
        """Subsequent batch; column order comes from the working artifact."""
        job = self.session.get(ExportJob, request.job_id)
        if job is None:
            raise JobNotFoundError(request.job_id)
        headers = None
        if request.headers:
            try:
                headers = validate_headers(request.headers)
            except ValidationError as e:
                raise MalformedRequestError(str(e)) from e
        return self._apply(job, request, headers)

    def _apply(
        self, job: ExportJob, request: ExportBatch, headers: list[str] | None
    ) -> dict[str, Any]:
        if job.status == "complete":
            raise JobStateConflictError(f"Export job {job.id} is already complete")

        job_id = job.id
        working_key = export_working_key(job_id, job.file_name)
        try:
            existing = self.store.get(TEMP_EXPORTS, working_key)
            if existing is not None:
                workbook = load_export_workbook(existing)
            elif headers:
                workbook = new_workbook(headers)
            else:
                raise ArtifactStoreError(
                    f"Working artifact {TEMP_EXPORTS}/{working_key} not found"
                )

            columns = read_headers(workbook)
            write_block(
                workbook,
                project_rows(request.rows, columns),
                output_cursor(request.batch_index, self.chunk_size),
            )
            content = encode(workbook)
            self.store.put(TEMP_EXPORTS, working_key, content, XLSX_CONTENT_TYPE)

            if job.status == "error":
                job.errors = []
            processed = job.processed_rows + len(request.rows)
            progress = percent(processed, job.total_rows)
            job.status = "processing"
            job.processed_rows = processed
            job.progress = progress
            self.session.commit()

            download_url = None
            if not request.has_more_batches:
                download_url = self._finalize(job, content)
                progress = 100
        except Exception as e:
            logger.error(f"Export job {job_id} failed: {e}", exc_info=True)
            message = str(e) or e.__class__.__name__
            self._mark_failed(job_id, message)
            raise JobFailedError(message) from e

        if download_url:
            try:
                self.store.delete(TEMP_EXPORTS, working_key)
            except ArtifactStoreError as e:
                logger.warning(f"Export job {job_id}: could not delete working artifact: {e}")

        publish_progress(
            job_id,
            progress,
            f"Exported {processed}/{job.total_rows} rows",
            kind="export",
            status="complete" if download_url else "processing",
            meta={"processed": processed, "total": job.total_rows},
        )
        response: dict[str, Any] = {
            "success": True,
            "processed": processed,
            "total": job.total_rows,
            "progress": progress,
            "is_complete": not request.has_more_batches,
        }
        if download_url:
            response["download_url"] = download_url
        return response

    def _finalize(self, job: ExportJob, content: bytes) -> str:
        """Promote the artifact to permanent storage and record its public link."""
        final_key = export_final_key(job.created_by, job.file_name)
        self.store.put(EXPORTS, final_key, content, XLSX_CONTENT_TYPE)
        download_url = self.store.public_url(EXPORTS, final_key)

        job.status = "complete"
        job.progress = 100
        job.download_url = download_url
        job.completed_at = datetime.now(timezone.utc)
        self.session.commit()
        logger.info(f"Export job {job.id} finalized at {EXPORTS}/{final_key}")
        return download_url

    def _mark_failed(self, job_id: str, message: str) -> None:
        """The working artifact stays in temp storage so the batch can be retried."""
        self.session.rollback()
        job = self.session.get(ExportJob, job_id)
        if job is None:
            return
        job.status = "error"
        job.errors = [{"message": message}]
        self.session.commit()
        publish_progress(job_id, job.progress or 0, message, kind="export", status="error")
