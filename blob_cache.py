"""
# Copyright (C) 2025 Qleric
# Licensed under AGPL-3.0 - see LICENSE file
"""

import logging
import os
from typing import Any, Dict, Optional, Union

import msgspec
import msgspec.json
import redis
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# Uploaded files only need to live long enough to be analyzed once
DEFAULT_BLOB_TTL_SECONDS = 3600

BlobValue = Union[bytes, Dict[str, Any]]


def get_blob_ttl_seconds() -> int:
    """Get the blob TTL from the environment."""
    try:
        return int(os.getenv("BLOB_TTL_SECONDS", DEFAULT_BLOB_TTL_SECONDS))
    except ValueError:
        logger.warning("Invalid BLOB_TTL_SECONDS, using default of %d", DEFAULT_BLOB_TTL_SECONDS)
        return DEFAULT_BLOB_TTL_SECONDS


class InMemoryBlobCache:
    """Process-local blob cache. Values are stored exactly as given."""

    def __init__(self):
        self._store: Dict[str, Any] = {}

    def put(self, key: str, data: Any, ttl: Optional[int] = None) -> None:
        # ttl is accepted for interface parity with RedisBlobCache
        self._store[key] = data

    def get(self, key: str) -> Optional[Any]:
        return self._store.get(key)

    def __contains__(self, key: str) -> bool:
        return key in self._store

    def __len__(self) -> int:
        return len(self._store)


class RedisBlobCache:
    """Blob cache backed by Redis.

    Some writers serialize buffers as JSON objects of the form
    ``{"type": "Buffer", "data": [...]}``. Those are decoded back into a
    mapping so the text extractor can recognise them; anything else is
    returned as the raw bytes Redis holds.
    """

    def __init__(self, client: redis.Redis, ttl: Optional[int] = None):
        self.client = client
        self.ttl = ttl if ttl is not None else get_blob_ttl_seconds()

    @classmethod
    def from_url(cls, url: str, ttl: Optional[int] = None) -> "RedisBlobCache":
        logger.info("Connecting blob cache to Redis")
        return cls(redis.Redis.from_url(url), ttl=ttl)

    def put(self, key: str, data: bytes, ttl: Optional[int] = None) -> None:
        self.client.set(key, data, ex=ttl or self.ttl)

    def get(self, key: str) -> Optional[BlobValue]:
        raw = self.client.get(key)
        if raw is None:
            return None

        if isinstance(raw, (bytes, bytearray)) and raw[:1] == b"{":
            try:
                decoded = msgspec.json.decode(raw)
            except msgspec.DecodeError:
                return raw
            if isinstance(decoded, dict):
                return decoded

        return raw


def create_blob_cache(url: Optional[str] = None):
    """Build the blob cache from REDIS_URL, falling back to memory."""
    url = url or os.getenv("REDIS_URL", "").strip()
    if url:
        return RedisBlobCache.from_url(url)

    logger.warning("No REDIS_URL configured, using in-memory blob cache")
    return InMemoryBlobCache()
