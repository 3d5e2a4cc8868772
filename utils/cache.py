"""In-memory LRU + TTL response cache for the Gatto API.

Each endpoint family (autocomplete, POI list, POI detail, collections) gets
its own ResponseCache with an independent size bound and time-to-live.  The
caches are ephemeral and best-effort: nothing is persisted and a restart
starts cold.
"""

import json
import threading
import time
from collections import OrderedDict
from typing import Any, Mapping

_MISSING = object()


class ResponseCache:
    """Thread-safe least-recently-used cache with time-to-live expiry.

    Entries expire ``ttl_seconds`` after they were stored.  Once ``maxsize``
    entries are held, storing a new key evicts the least recently used one.
    A successful ``get`` refreshes recency; reading an expired entry drops it
    and counts as a miss.

    Usage::

        cache = ResponseCache(maxsize=500, ttl_seconds=300)
        cache.set("pois:city=paris", body)
        body = cache.get("pois:city=paris")  # None if expired/missing
    """

    def __init__(self, maxsize: int = 128, ttl_seconds: float = 300.0,
                 name: str = "default") -> None:
        """Initialise the cache.

        Args:
            maxsize: Maximum number of entries to store (default 128).
            ttl_seconds: Seconds before a cached entry expires (default 300).
            name: Family name, reported in stats().
        """
        self.name = name
        self._maxsize = maxsize
        self._ttl = ttl_seconds
        # Maps key -> (value, expires_at), oldest use first
        self._store: OrderedDict[str, tuple[Any, float]] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @property
    def maxsize(self) -> int:
        return self._maxsize

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def get(self, key: str, default: Any = None) -> Any:
        """Return cached value for *key*, or *default* if absent or expired."""
        with self._lock:
            entry = self._store.get(key, _MISSING)
            if entry is _MISSING:
                self._misses += 1
                return default
            value, expires_at = entry
            if time.monotonic() >= expires_at:
                del self._store[key]
                self._misses += 1
                return default
            self._store.move_to_end(key)
            self._hits += 1
            return value

    def has(self, key: str) -> bool:
        """True when *key* holds a live entry.  Does not touch recency or stats."""
        with self._lock:
            entry = self._store.get(key, _MISSING)
            return entry is not _MISSING and time.monotonic() < entry[1]

    def set(self, key: str, value: Any) -> None:
        """Store *value* under *key*, evicting the least recently used entry if full."""
        expires_at = time.monotonic() + self._ttl
        with self._lock:
            if key in self._store:
                self._store.move_to_end(key)
            self._store[key] = (value, expires_at)
            while len(self._store) > self._maxsize:
                self._store.popitem(last=False)
                self._evictions += 1

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def clear(self) -> None:
        """Remove all entries and reset counters."""
        with self._lock:
            self._store.clear()
            self._hits = 0
            self._misses = 0
            self._evictions = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def stats(self) -> dict[str, Any]:
        """Return cache statistics.

        Returns:
            Dict with ``name``, ``hits``, ``misses``, ``evictions``, ``size``,
            ``maxsize`` and ``ttl_seconds``.
        """
        with self._lock:
            now = time.monotonic()
            expired = [k for k, (_, exp) in self._store.items() if now >= exp]
            for k in expired:
                del self._store[k]
            return {
                "name": self.name,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "size": len(self._store),
                "maxsize": self._maxsize,
                "ttl_seconds": self._ttl,
            }


# ── Cache keys ───────────────────────────────────────────────────────────────

def _canonical_value(value: Any) -> str:
    if isinstance(value, (list, tuple, set, frozenset)):
        items = sorted({_canonical_value(v) for v in value if v is not None})
        return ",".join(items)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, dict):
        return json.dumps(value, sort_keys=True, separators=(",", ":"))
    return str(value)


def make_cache_key(prefix: str, params: Mapping[str, Any]) -> str:
    """Build a deterministic cache key from significant request parameters.

    Parameter names are sorted, None values omitted and multi-value fields
    deduplicated, sorted and joined with ",", so two requests that differ
    only in query-string ordering map to the same key.

    Example:
        make_cache_key("pois", {"tags": ["b", "a"], "city": "paris", "x": None})
        -> "pois:city=paris&tags=a,b"
    """
    parts = []
    for name in sorted(params):
        value = params[name]
        if value is None:
            continue
        if isinstance(value, (list, tuple, set, frozenset)) and not value:
            continue
        parts.append(f"{name}={_canonical_value(value)}")
    return f"{prefix}:" + "&".join(parts)


# ── Per-family registry ──────────────────────────────────────────────────────

# family -> (ttl_seconds, maxsize)
DEFAULT_FAMILIES: dict[str, tuple[float, int]] = {
    "autocomplete": (60.0, 1000),
    "poi_list": (300.0, 500),
    "poi_detail": (600.0, 500),
    "collections": (600.0, 200),
}


class CacheRegistry:
    """The set of response caches owned by one application instance.

    Created once by the application factory; tests build their own isolated
    registries and call ``clear()`` to reset between cases.
    """

    def __init__(self, families: Mapping[str, tuple[float, int]] | None = None) -> None:
        self._caches: dict[str, ResponseCache] = {
            name: ResponseCache(maxsize=maxsize, ttl_seconds=ttl, name=name)
            for name, (ttl, maxsize) in (families or DEFAULT_FAMILIES).items()
        }

    @classmethod
    def from_config(cls, cfg) -> "CacheRegistry":
        return cls(cfg.cache_families)

    def __getitem__(self, family: str) -> ResponseCache:
        return self._caches[family]

    def __contains__(self, family: str) -> bool:
        return family in self._caches

    def clear(self) -> None:
        for cache in self._caches.values():
            cache.clear()

    def stats(self) -> dict[str, dict[str, Any]]:
        return {name: cache.stats() for name, cache in self._caches.items()}
