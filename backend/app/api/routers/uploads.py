"""Stage spreadsheet uploads and create the import jobs that reference them."""

from __future__ import annotations

import logging

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    UploadFile,
    status,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.api.dependencies.db import get_session
from app.api.dependencies.processor import get_artifact_store
from app.api.routers.job_helpers import serialize_import_job
from app.api.schemas.job import ImportJobStatus
from app.db.models import JOB_TABLES
from app.db.models.import_job import ImportJob
from app.services.spreadsheet_codec import XLSX_CONTENT_TYPE
from app.storage.artifact_store import (
    TEMP_IMPORTS,
    ArtifactStore,
    ArtifactStoreError,
    import_source_key,
)
from app.utils.sheet_validator import ValidationError, safe_segment

logger = logging.getLogger(__name__)

router = APIRouter()

ALLOWED_SUFFIXES = (".xlsx", ".xlsm")


@router.post(
    "/",
    summary="Upload a spreadsheet and create a waiting import job",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=ImportJobStatus,
)
async def create_import(
    file: UploadFile = File(...),
    table_name: str = Form(...),
    with_upsert: bool = Form(False),
    key_field: str | None = Form(None),
    created_by: str = Form("system"),
    db: Session = Depends(get_session),
    store: ArtifactStore = Depends(get_artifact_store),
) -> ImportJobStatus:
    """Stage the file at temp-imports/{job_id}/{file_name}; processing starts with a `process` action."""
    try:
        file_name = safe_segment(file.filename, "file name")
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    if not file_name.lower().endswith(ALLOWED_SUFFIXES):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only .xlsx/.xlsm uploads are supported",
        )
    table_name = table_name.strip()
    if not table_name or table_name in JOB_TABLES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid destination table: {table_name!r}",
        )
    key_field = (key_field or "").strip() or None
    if with_upsert and not key_field:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="key_field is required when with_upsert is set",
        )

    await file.seek(0)
    content = await file.read()
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Uploaded file is empty")

    try:
        job = ImportJob(
            status="waiting",
            file_name=file_name,
            table_name=table_name,
            with_upsert=with_upsert,
            key_field=key_field,
            created_by=created_by.strip() or "system",
            errors=[],
        )
        db.add(job)
        db.flush()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(f"Database error creating import job: {exc}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create import job",
        ) from exc

    try:
        store.put(TEMP_IMPORTS, import_source_key(job.id, file_name), content, XLSX_CONTENT_TYPE)
    except ArtifactStoreError as exc:
        db.rollback()
        logger.error(f"Failed to stage upload for job {job.id}: {exc}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save uploaded file",
        ) from exc

    db.commit()
    logger.info(f"Created import job {job.id} for file {file_name} -> {table_name}")
    return serialize_import_job(job)
