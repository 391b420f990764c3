"""Processor collaborators resolved per request."""

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from app.api.dependencies.db import get_session
from app.core.config import Settings, get_settings
from app.services.collection_writer import CollectionWriter
from app.services.job_controller import JobController
from app.storage.artifact_store import ArtifactStore, build_artifact_store


@lru_cache
def _artifact_store() -> ArtifactStore:
    return build_artifact_store(get_settings())


def get_artifact_store() -> ArtifactStore:
    return _artifact_store()


def get_job_controller(
    db: Session = Depends(get_session),
    store: ArtifactStore = Depends(get_artifact_store),
    settings: Settings = Depends(get_settings),
) -> JobController:
    return JobController(
        db,
        store,
        CollectionWriter(db.get_bind()),
        chunk_size=settings.chunk_size,
        default_export_owner=settings.default_export_owner,
    )
