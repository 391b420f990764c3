"""Redis-backed artifact storage for the temporary areas shared between instances."""

from __future__ import annotations

import logging

from redis import Redis
from redis.exceptions import RedisError

from app.storage.artifact_store import ArtifactStoreError

logger = logging.getLogger(__name__)

# Redis key prefix for artifact storage
FILE_STORAGE_PREFIX = "files:artifact:"
# Default TTL for temporary artifacts (24 hours)
FILE_STORAGE_TTL = 86400  # seconds
# Upstash free tier caps values well below this; larger files belong on disk.
MAX_ARTIFACT_BYTES = 100 * 1024 * 1024


class RedisArtifactStore:
    """Keep in-flight artifacts in Redis with a TTL so abandoned jobs expire on their own."""

    def __init__(self, client: Redis, ttl_seconds: int = FILE_STORAGE_TTL):
        self.client = client
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def _key(bucket: str, key: str) -> str:
        return f"{FILE_STORAGE_PREFIX}{bucket}/{key}"

    def get(self, bucket: str, key: str) -> bytes | None:
        try:
            content = self.client.get(self._key(bucket, key))
        except RedisError as e:
            raise ArtifactStoreError(f"Failed to retrieve {bucket}/{key} from Redis: {e}") from e
        if content:
            logger.info(f"Retrieved {bucket}/{key} from Redis ({len(content)} bytes)")
        return content

    def put(self, bucket: str, key: str, data: bytes, content_type: str | None = None) -> None:
        if len(data) > MAX_ARTIFACT_BYTES:
            raise ArtifactStoreError(
                f"Artifact too large for Redis storage ({len(data)} bytes)"
            )
        try:
            self.client.set(self._key(bucket, key), data, ex=self.ttl_seconds)
        except RedisError as e:
            raise ArtifactStoreError(f"Failed to store {bucket}/{key} in Redis: {e}") from e
        logger.info(f"Stored {bucket}/{key} in Redis ({len(data)} bytes)")

    def delete(self, bucket: str, key: str) -> None:
        try:
            self.client.delete(self._key(bucket, key))
        except RedisError as e:
            raise ArtifactStoreError(f"Failed to delete {bucket}/{key} from Redis: {e}") from e

    def delete_prefix(self, bucket: str, prefix: str) -> int:
        pattern = f"{self._key(bucket, prefix.rstrip('/'))}/*"
        try:
            keys = list(self.client.scan_iter(match=pattern))
            if keys:
                self.client.delete(*keys)
        except RedisError as e:
            raise ArtifactStoreError(f"Failed to delete {bucket}/{prefix} from Redis: {e}") from e
        logger.info(f"Deleted {len(keys)} artifact(s) under {bucket}/{prefix} from Redis")
        return len(keys)

    def public_url(self, bucket: str, key: str) -> str:
        raise ArtifactStoreError("Redis-backed artifacts have no public URL")
