"""Score payload resource handler."""

import json

from stock_score.data.cache import CacheBackend


class ResourceNotFoundError(Exception):
    """Resource not found in cache."""

    pass


def read_score_resource(uri: str, cache: CacheBackend) -> tuple[str, str]:
    """
    Serve a cached score payload only. No fetch, no recompute.

    Args:
        uri: Resource URI (e.g., score://NVDA)
        cache: Cache the score tool writes to

    Returns:
        Tuple of (json_text, mime_type)

    Raises:
        ResourceNotFoundError: If resource not in cache
    """
    payload = cache.get(uri)
    if payload is None:
        raise ResourceNotFoundError(f"Resource not cached. Call score first: {uri}")
    return json.dumps(payload, indent=2, default=str), "application/json"
