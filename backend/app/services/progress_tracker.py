"""Shared helpers for publishing job progress snapshots to Redis."""

from __future__ import annotations

import json
import logging
from datetime import timedelta
from typing import Any

from redis.exceptions import RedisError

from app.core.config import get_settings
from app.utils.redis_client import get_redis_client

logger = logging.getLogger(__name__)

PROGRESS_PREFIX = "jobs:progress:"
PROGRESS_TTL = timedelta(hours=24)


def _key(job_id: str) -> str:
    return f"{PROGRESS_PREFIX}{job_id}"


def publish_progress(
    job_id: str,
    progress: int,
    message: str | None = None,
    *,
    kind: str,
    status: str | None = None,
    meta: dict[str, Any] | None = None,
) -> None:
    """Persist a progress snapshot (0-100) so dashboards can poll without hitting the DB."""
    settings = get_settings()
    if not settings.progress_channel_enabled:
        return
    payload = {
        "job_id": job_id,
        "kind": kind,
        "progress": max(0, min(progress, 100)),
        "message": message,
        "status": status,
        "meta": meta or {},
    }
    try:
        get_redis_client(settings.redis_url).set(
            _key(job_id),
            json.dumps(payload),
            ex=int(PROGRESS_TTL.total_seconds()),
        )
    except RedisError as e:
        # The job record is authoritative; a missed snapshot is harmless.
        logger.debug(f"Skipped progress snapshot for job {job_id}: {e}")


def fetch_progress(job_id: str) -> dict[str, Any]:
    """Return the latest snapshot, or an empty dict when none is available."""
    settings = get_settings()
    if not settings.progress_channel_enabled:
        return {}
    try:
        raw = get_redis_client(settings.redis_url).get(_key(job_id))
    except RedisError:
        return {}
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return {}
