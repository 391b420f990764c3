"""Helpers to create Redis clients with SSL support for Upstash and other providers."""

from __future__ import annotations

import ssl
from functools import lru_cache
from typing import Any

from redis import Redis


def create_redis_client(url: str, **kwargs: Any) -> Redis:
    """Create a Redis client, enabling TLS without cert verification for Upstash-style URLs.

    Args:
        url: Redis connection URL (redis:// or rediss://)
        **kwargs: Additional arguments (decode_responses, socket_connect_timeout, etc.)
    """
    if ".upstash.io" in url and url.startswith("redis://"):
        url = url.replace("redis://", "rediss://", 1)

    client = Redis.from_url(url, **kwargs)

    if url.startswith("rediss://"):
        pool_kwargs = getattr(client.connection_pool, "connection_kwargs", None)
        if pool_kwargs is not None:
            pool_kwargs["ssl_cert_reqs"] = ssl.CERT_NONE

    return client


@lru_cache
def get_redis_client(url: str, binary: bool = False) -> Redis:
    """Shared client per URL; ``binary=True`` keeps values as raw bytes (artifacts)."""
    return create_redis_client(
        url,
        decode_responses=not binary,
        socket_connect_timeout=2,
        socket_timeout=5,
    )
