"""Action endpoint driving import/export jobs one bounded invocation at a time."""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from app.api.dependencies.processor import get_job_controller
from app.services.job_controller import JobController

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "",
    summary="Run one processor action (process, resume, cancel, export, exportBatch)",
)
async def run_action(
    request: Request,
    controller: JobController = Depends(get_job_controller),
) -> JSONResponse:
    """Read the job state, do one bounded unit of work, persist it and answer."""
    try:
        payload: Any = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Request body must be valid JSON"},
        )

    result = controller.handle(payload)
    return JSONResponse(status_code=result.status_code, content=result.body)
