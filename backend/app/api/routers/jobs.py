"""Job tracking endpoints for polling dashboards."""
from __future__ import annotations

import asyncio
from typing import AsyncGenerator

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from app.api.dependencies.db import get_session, get_session_factory
from app.api.routers.job_helpers import (
    TERMINAL_STATUSES,
    progress_event,
    serialize_export_job,
    serialize_import_job,
)
from app.api.schemas.job import ExportJobStatus, ImportJobStatus
from app.db.models.export_job import ExportJob
from app.db.models.import_job import ImportJob
from app.services.progress_tracker import fetch_progress

router = APIRouter()

STREAM_POLL_SECONDS = 2.0
# Close the stream after this many polls without any change.
STREAM_IDLE_POLLS = 150


@router.get(
    "/imports",
    summary="List import jobs",
    response_model=list[ImportJobStatus],
)
async def list_import_jobs(
    limit: int = Query(50, ge=1, le=500, description="Maximum number of jobs to return"),
    status: str | None = Query(
        None, description="Filter by status (waiting, processing, complete, error)"
    ),
    db: Session = Depends(get_session),
) -> list[ImportJobStatus]:
    """Newest first."""
    query = select(ImportJob)
    if status:
        query = query.where(ImportJob.status == status)
    query = query.order_by(ImportJob.created_at.desc()).limit(limit)
    return [serialize_import_job(job) for job in db.scalars(query).all()]


@router.get(
    "/imports/{job_id}",
    summary="Fetch an import job with its progress and row errors",
    response_model=ImportJobStatus,
)
async def get_import_job(
    job_id: str,
    db: Session = Depends(get_session),
) -> ImportJobStatus:
    job = db.get(ImportJob, job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return serialize_import_job(job)


@router.get(
    "/exports/{job_id}",
    summary="Fetch an export job and its download link once complete",
    response_model=ExportJobStatus,
)
async def get_export_job(
    job_id: str,
    db: Session = Depends(get_session),
) -> ExportJobStatus:
    job = db.get(ExportJob, job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return serialize_export_job(job)


@router.get(
    "/imports/{job_id}/stream",
    summary="Server-Sent Events stream for import progress",
)
async def stream_import_progress(
    job_id: str,
    db: Session = Depends(get_session),
    session_factory: sessionmaker = Depends(get_session_factory),
) -> StreamingResponse:
    """Stream job status as ``data:`` events until the job reaches a terminal status.

    ```javascript
    const source = new EventSource('/api/jobs/imports/{job_id}/stream');
    source.onmessage = (e) => console.log(JSON.parse(e.data).progress);
    ```
    """
    if not db.get(ImportJob, job_id):
        raise HTTPException(status_code=404, detail="Job not found")

    async def event_generator() -> AsyncGenerator[str, None]:
        last_payload = None
        idle_polls = 0
        # The request session closes when this function returns.
        session = session_factory()
        try:
            while True:
                session.expire_all()
                job = session.get(ImportJob, job_id)
                if not job:
                    yield 'event: error\ndata: {"error": "Job not found"}\n\n'
                    break

                job_status = progress_event(job, fetch_progress(job_id))
                payload = job_status.model_dump_json()
                if payload != last_payload:
                    last_payload = payload
                    idle_polls = 0
                    yield f"data: {payload}\n\n"
                else:
                    idle_polls += 1

                if job_status.status in TERMINAL_STATUSES:
                    yield "event: close\ndata: {}\n\n"
                    break
                if idle_polls > STREAM_IDLE_POLLS:
                    yield "event: timeout\ndata: {}\n\n"
                    break

                await asyncio.sleep(STREAM_POLL_SECONDS)
        finally:
            session.close()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
