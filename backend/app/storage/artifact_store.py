"""Artifact storage: bucket-scoped named objects (local fs implementation)."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Protocol
from urllib.parse import quote

logger = logging.getLogger(__name__)

TEMP_IMPORTS = "temp-imports"
TEMP_EXPORTS = "temp-exports"
EXPORTS = "exports"
TEMPORARY_BUCKETS = frozenset({TEMP_IMPORTS, TEMP_EXPORTS})


class ArtifactStoreError(RuntimeError):
    """Storage backend failed or a key escapes its bucket."""


class ArtifactStore(Protocol):
    def get(self, bucket: str, key: str) -> bytes | None: ...

    def put(self, bucket: str, key: str, data: bytes, content_type: str | None = None) -> None: ...

    def delete(self, bucket: str, key: str) -> None: ...

    def delete_prefix(self, bucket: str, prefix: str) -> int: ...

    def public_url(self, bucket: str, key: str) -> str: ...


def import_source_key(job_id: str, file_name: str) -> str:
    return f"{job_id}/{file_name}"


def export_working_key(job_id: str, file_name: str) -> str:
    return f"{job_id}/temp_{file_name}"


def export_final_key(created_by: str, file_name: str) -> str:
    return f"{created_by}/{file_name}"


class LocalArtifactStore:
    """Buckets are directories below ``root``; public links are ``{base_url}/{bucket}/{key}``."""

    def __init__(self, root: str | Path, public_base_url: str):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)
        self.public_base_url = public_base_url.rstrip("/")

    def _path(self, bucket: str, key: str) -> Path:
        bucket_dir = (self.root / bucket).resolve()
        path = (bucket_dir / key).resolve()
        if bucket_dir not in path.parents:
            raise ArtifactStoreError(f"Key {key!r} escapes bucket {bucket!r}")
        return path

    def get(self, bucket: str, key: str) -> bytes | None:
        path = self._path(bucket, key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise ArtifactStoreError(f"Failed to read {bucket}/{key}: {e}") from e

    def put(self, bucket: str, key: str, data: bytes, content_type: str | None = None) -> None:
        path = self._path(bucket, key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            # Write-then-rename so readers never see a half-written artifact.
            tmp_path = path.with_name(f".{path.name}.part")
            tmp_path.write_bytes(data)
            tmp_path.replace(path)
        except OSError as e:
            raise ArtifactStoreError(f"Failed to write {bucket}/{key}: {e}") from e
        logger.debug(f"Stored {bucket}/{key} ({len(data)} bytes)")

    def delete(self, bucket: str, key: str) -> None:
        path = self._path(bucket, key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise ArtifactStoreError(f"Failed to delete {bucket}/{key}: {e}") from e

    def delete_prefix(self, bucket: str, prefix: str) -> int:
        """Remove every object under ``prefix/``; returns how many were removed."""
        directory = self._path(bucket, prefix.rstrip("/"))
        if not directory.is_dir():
            return 0
        removed = sum(1 for item in directory.rglob("*") if item.is_file())
        try:
            shutil.rmtree(directory)
        except OSError as e:
            raise ArtifactStoreError(f"Failed to delete {bucket}/{prefix}: {e}") from e
        return removed

    def public_url(self, bucket: str, key: str) -> str:
        self._path(bucket, key)
        return f"{self.public_base_url}/{quote(bucket)}/{quote(key)}"


class RoutingArtifactStore:
    """Send temporary buckets to one backend and permanent buckets to another."""

    def __init__(self, temporary: ArtifactStore, permanent: ArtifactStore):
        self.temporary = temporary
        self.permanent = permanent

    def _backend(self, bucket: str) -> ArtifactStore:
        return self.temporary if bucket in TEMPORARY_BUCKETS else self.permanent

    def get(self, bucket: str, key: str) -> bytes | None:
        return self._backend(bucket).get(bucket, key)

    def put(self, bucket: str, key: str, data: bytes, content_type: str | None = None) -> None:
        self._backend(bucket).put(bucket, key, data, content_type)

    def delete(self, bucket: str, key: str) -> None:
        self._backend(bucket).delete(bucket, key)

    def delete_prefix(self, bucket: str, prefix: str) -> int:
        return self._backend(bucket).delete_prefix(bucket, prefix)

    def public_url(self, bucket: str, key: str) -> str:
        if bucket in TEMPORARY_BUCKETS:
            raise ArtifactStoreError(f"Bucket {bucket!r} is not publicly served")
        return self.permanent.public_url(bucket, key)


def build_artifact_store(settings) -> ArtifactStore:
    """Artifact store for the configured backends."""
    permanent = LocalArtifactStore(settings.storage_dir, settings.public_base_url)
    if settings.temp_storage_backend == "redis":
        from app.storage.file_storage import RedisArtifactStore
        from app.utils.redis_client import get_redis_client

        temporary: ArtifactStore = RedisArtifactStore(
            get_redis_client(settings.redis_url, binary=True),
            ttl_seconds=settings.temp_artifact_ttl_seconds,
        )
    else:
        temporary = permanent
    return RoutingArtifactStore(temporary=temporary, permanent=permanent)
