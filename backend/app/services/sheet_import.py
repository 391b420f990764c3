"""Chunked import of a staged spreadsheet into a destination table."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import (
    JobFailedError,
    JobNotFoundError,
    JobStateConflictError,
    SourceFileNotFoundError,
)
from app.db.models.import_job import ImportJob
from app.services.collection_writer import CollectionWriteError, CollectionWriter
from app.services.progress_tracker import publish_progress
from app.services.spreadsheet_codec import decode_rows
from app.storage.artifact_store import TEMP_IMPORTS, ArtifactStore, ArtifactStoreError, import_source_key
from app.utils.batching import DEFAULT_CHUNK_SIZE, ChunkPlan, percent
from app.utils.sheet_validator import ValidationError, validate_row

logger = logging.getLogger(__name__)

# Data row i (0-based) sits on sheet row i + 2: 1-based numbering plus the header row.
SOURCE_ROW_OFFSET = 2


@dataclass
class ImportOutcome:
    job_id: str
    total_rows: int
    processed_rows: int
    error_count: int

    def as_response(self) -> dict[str, Any]:
        return {
            "success": True,
            "processed": self.processed_rows,
            "errors": self.error_count,
            "total": self.total_rows,
            "progress": 100,
            "is_complete": True,
        }


def _db_message(exc: Exception) -> str:
    """Driver message without the SQL statement and bound parameters."""
    text = str(getattr(exc, "orig", None) or exc).strip()
    return text.splitlines()[0] if text else exc.__class__.__name__


class SheetImporter:
    """Run a whole import inside one invocation, committing progress after every chunk.

    ``resume`` is the same call as ``process``: the source is decoded again and
    every row is attempted again, so a resume after partial success duplicates
    rows unless the job writes with upsert.
    """

    def __init__(
        self,
        session: Session,
        store: ArtifactStore,
        writer: CollectionWriter,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.session = session
        self.store = store
        self.writer = writer
        self.chunk_size = chunk_size

    def run(self, job_id: str) -> ImportOutcome:
        job = self.session.get(ImportJob, job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if job.status == "complete":
            raise JobStateConflictError(f"Import job {job_id} is already complete")

        file_name = job.file_name
        table_name = job.table_name
        with_upsert = bool(job.with_upsert)
        key_field = job.key_field
        source_key = import_source_key(job_id, file_name)

        job.status = "processing"
        job.progress = 0
        job.processed_rows = 0
        job.errors = []
        job.started_at = datetime.now(timezone.utc)
        job.completed_at = None
        self.session.commit()
        publish_progress(job_id, 0, "Import started", kind="import", status="processing")
        logger.info(f"Import job {job_id}: {file_name} -> {table_name} (upsert={with_upsert})")

        try:
            data = self.store.get(TEMP_IMPORTS, source_key)
            if data is None:
                raise SourceFileNotFoundError(f"File not found: {TEMP_IMPORTS}/{source_key}")

            _, rows = decode_rows(data)
            plan = ChunkPlan(len(rows), self.chunk_size)
            job.total_rows = plan.total_rows
            self.session.commit()

            errors: list[dict[str, Any]] = []
            failed_rows = 0
            for chunk in plan:
                payload = []
                for index in range(chunk.start, chunk.stop):
                    row = rows[index]
                    try:
                        validate_row(row)
                    except ValidationError as e:
                        errors.append({"row": index + SOURCE_ROW_OFFSET, "message": str(e)})
                        failed_rows += 1
                        continue
                    payload.append(row)

                if payload:
                    try:
                        self.writer.write(
                            table_name, payload, with_upsert=with_upsert, key_field=key_field
                        )
                    except (SQLAlchemyError, CollectionWriteError) as e:
                        logger.warning(
                            f"Import job {job_id}: chunk {chunk.index + 1}/{plan.total_chunks} failed: {e}"
                        )
                        errors.append(
                            {
                                "row": chunk.start + SOURCE_ROW_OFFSET,
                                "message": f"Batch insert error: {_db_message(e)}",
                            }
                        )
                        failed_rows += len(payload)

                chunks_done = chunk.index + 1
                job.progress = percent(chunks_done, plan.total_chunks)
                job.processed_rows = plan.rows_attempted(chunks_done)
                job.errors = list(errors)
                self.session.commit()
                publish_progress(
                    job_id,
                    percent(chunks_done, plan.total_chunks),
                    f"Processed {plan.rows_attempted(chunks_done)}/{plan.total_rows} rows",
                    kind="import",
                    status="processing",
                    meta={"errors": len(errors)},
                )

            processed = plan.total_rows - failed_rows
            job.status = "complete"
            job.progress = 100
            job.processed_rows = processed
            job.errors = list(errors)
            job.completed_at = datetime.now(timezone.utc)
            self.session.commit()
        except SourceFileNotFoundError as e:
            self._mark_failed(job_id, e.message)
            raise
        except Exception as e:
            logger.error(f"Import job {job_id} failed: {e}", exc_info=True)
            message = str(e) or e.__class__.__name__
            self._mark_failed(job_id, message)
            raise JobFailedError(message) from e

        try:
            self.store.delete(TEMP_IMPORTS, source_key)
        except ArtifactStoreError as e:
            # Temp area expiry or a later cancel removes it.
            logger.warning(f"Import job {job_id}: could not delete staged file: {e}")

        publish_progress(
            job_id,
            100,
            "Import complete",
            kind="import",
            status="complete",
            meta={"processed": processed, "total": plan.total_rows, "errors": len(errors)},
        )
        logger.info(
            f"Import job {job_id} complete: {processed}/{plan.total_rows} rows, {len(errors)} error(s)"
        )
        return ImportOutcome(
            job_id=job_id,
            total_rows=plan.total_rows,
            processed_rows=processed,
            error_count=len(errors),
        )

    def _mark_failed(self, job_id: str, message: str) -> None:
        """Record a job-level failure; the staged source file is kept for diagnosis."""
        self.session.rollback()
        job = self.session.get(ImportJob, job_id)
        if job is None:
            return
        job.status = "error"
        job.errors = [{"message": message}]
        self.session.commit()
        publish_progress(job_id, job.progress or 0, message, kind="import", status="error")
