"""Score payload caching."""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Protocol

import diskcache

logger = logging.getLogger(__name__)


class CacheBackend(Protocol):
    """get/set/TTL contract the score tool depends on."""

    def get(self, key: str) -> dict[str, Any] | None: ...

    def set(self, key: str, value: dict[str, Any], ttl: int | None = None) -> None: ...


class ScoreCache:
    """
    Disk-backed cache of score payloads keyed by canonical URI (score://SYMBOL).

    Resources only serve cached payloads. Never fetch live.
    """

    def __init__(self, cache_dir: str | None = None, default_ttl: int | None = None):
        if cache_dir is None:
            cache_dir = os.environ.get("CACHE_DIR", ".cache/scores")
        if default_ttl is None:
            default_ttl = int(os.environ.get("SCORE_CACHE_TTL", "1800"))  # 30 minutes
        self.cache: diskcache.Cache = diskcache.Cache(cache_dir)
        self._default_ttl = default_ttl

    def set(self, key: str, value: dict[str, Any], ttl: int | None = None) -> None:
        entry = {
            "payload": value,
            "stored_at": datetime.now(timezone.utc).isoformat(),
        }
        expire = ttl if ttl is not None else self._default_ttl
        self.cache.set(key, entry, expire=expire)

    def get(self, key: str) -> dict[str, Any] | None:
        entry = self.cache.get(key)
        if entry is None:
            logger.debug(f"cache miss: {key}")
            return None
        logger.debug(f"cache hit: {key}")
        return entry["payload"]

    def stored_at(self, key: str) -> str | None:
        entry = self.cache.get(key)
        return entry["stored_at"] if entry else None

    def exists(self, key: str) -> bool:
        return key in self.cache

    def clear(self) -> None:
        self.cache.clear()

    def close(self) -> None:
        self.cache.close()
