"""Single entry point of the processor: validate, dispatch, map results to responses."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from app.api.schemas.processor import ACTIONS, ProcessorRequest
from app.core.errors import JobNotFoundError, JobProcessorError, JobStateConflictError
from app.db.models.import_job import ImportJob
from app.services.collection_writer import CollectionWriter
from app.services.progress_tracker import publish_progress
from app.services.sheet_export import ExportBatch, SheetExporter
from app.services.sheet_import import SheetImporter
from app.storage.artifact_store import TEMP_EXPORTS, TEMP_IMPORTS, ArtifactStore
from app.utils.batching import DEFAULT_CHUNK_SIZE

logger = logging.getLogger(__name__)

CANCEL_MESSAGE = "Job canceled by user"


@dataclass(frozen=True)
class ProcessorResponse:
    status_code: int
    body: dict[str, Any]


def cancel_import(session: Session, store: ArtifactStore, job_id: str) -> dict[str, Any]:
    """Mark an import job canceled and drop its temporary artifacts.

    A data-level transition only: an import already running in another
    invocation is not interrupted and will overwrite this state when it ends.
    """
    job = session.get(ImportJob, job_id)
    if job is None:
        raise JobNotFoundError(job_id)
    if job.status == "complete":
        raise JobStateConflictError(f"Import job {job_id} is already complete")

    job.status = "error"
    job.errors = [{"message": CANCEL_MESSAGE}]
    session.commit()

    removed = store.delete_prefix(TEMP_IMPORTS, job_id)
    removed += store.delete_prefix(TEMP_EXPORTS, job_id)
    publish_progress(job_id, job.progress or 0, CANCEL_MESSAGE, kind="import", status="error")
    logger.info(f"Canceled import job {job_id}; removed {removed} temporary artifact(s)")
    return {"success": True}


def _describe(error: PydanticValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ()))
        parts.append(f"{location}: {item.get('msg')}" if location else str(item.get("msg")))
    return "; ".join(parts)


class JobController:
    """Stateless handler: ``handle(payload)`` reads and writes only the stores it is given."""

    def __init__(
        self,
        session: Session,
        store: ArtifactStore,
        writer: CollectionWriter,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        default_export_owner: str = "system",
    ):
        self.session = session
        self.store = store
        self.importer = SheetImporter(session, store, writer, chunk_size=chunk_size)
        self.exporter = SheetExporter(
            session, store, chunk_size=chunk_size, default_owner=default_export_owner
        )

    def handle(self, payload: Any) -> ProcessorResponse:
        if not isinstance(payload, Mapping):
            return ProcessorResponse(400, {"error": "Request body must be a JSON object"})
        if payload.get("action") not in ACTIONS:
            return ProcessorResponse(400, {"error": "Invalid action"})
        try:
            request = ProcessorRequest.model_validate(payload)
        except PydanticValidationError as e:
            return ProcessorResponse(400, {"error": f"Invalid request: {_describe(e)}"})

        logger.info(f"Handling {request.action} request for job {request.job_id}")
        try:
            body = self._dispatch(request)
        except JobProcessorError as e:
            if e.status_code >= 500:
                logger.error(f"{request.action} failed for job {request.job_id}: {e.message}")
            else:
                logger.info(
                    f"{request.action} rejected for job {request.job_id}: "
                    f"{e.status_code} {e.message}"
                )
            return ProcessorResponse(e.status_code, {"error": e.message})
        except Exception as e:
            logger.error(
                f"Unexpected error handling {request.action} for job {request.job_id}: {e}",
                exc_info=True,
            )
            self.session.rollback()
            return ProcessorResponse(500, {"error": str(e) or "Unknown error"})
        return ProcessorResponse(200, body)

    def _dispatch(self, request: ProcessorRequest) -> dict[str, Any]:
        if request.action in ("process", "resume"):
            return self.importer.run(request.job_id).as_response()
        if request.action == "cancel":
            return cancel_import(self.session, self.store, request.job_id)

        batch = ExportBatch(
            job_id=request.job_id,
            rows=request.data_batch,
            batch_index=request.batch_index,
            has_more_batches=request.has_more_batches,
            headers=request.headers,
            file_name=request.file_name,
            total_rows=request.total_rows,
            created_by=request.created_by,
        )
        if request.action == "export":
            return self.exporter.start(batch)
        return self.exporter.append(batch)
