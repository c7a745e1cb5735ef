"""Simple in-memory TTL cache for upstream feed responses."""
import time
from typing import Any

_cache: dict[str, tuple[float, Any]] = {}
_MISS = object()

# Cache keys are prefixed with the feed they came from so a single feed
# can be invalidated without touching the others.
FEED_PREFIXES = ("products:", "shipments:", "sales_history:")


def get_cached(key: str):
    """Return cached value if still valid, else _MISS sentinel."""
    now = time.time()
    if key in _cache:
        expires, value = _cache[key]
        if now < expires:
            return value
        del _cache[key]
    return _MISS


def set_cached(key: str, value: Any, seconds: int = 60):
    """Store a value in cache with TTL. A non-positive TTL stores nothing."""
    if seconds <= 0:
        return
    _cache[key] = (time.time() + seconds, value)


def clear_cache():
    """Clear all cached values."""
    _cache.clear()


def clear_feed(feed: str):
    """Clear only the entries fetched from one feed."""
    prefix = f"{feed}:"
    for k in [k for k in _cache if k.startswith(prefix)]:
        del _cache[k]
