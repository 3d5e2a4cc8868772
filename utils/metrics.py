"""In-memory search metrics for autocomplete and POI search.

Counters reset on process restart.  Every update happens synchronously
under a lock, so no await ever sits between a counter read and its write.
"""

import threading
from collections import Counter, deque
from typing import Any

from utils.strings import normalize_query

CHANNELS = ("autocomplete", "search")
_RESPONSE_TIME_WINDOW = 100  # recent response times kept for the moving average
_MAX_POPULAR_QUERIES = 50    # distinct queries kept after a prune


class _ChannelStats:
    __slots__ = ("total_requests", "cache_hits", "cache_misses", "errors",
                 "response_times", "popular_queries")

    def __init__(self) -> None:
        self.total_requests = 0
        self.cache_hits = 0
        self.cache_misses = 0
        self.errors = 0
        self.response_times: deque[float] = deque(maxlen=_RESPONSE_TIME_WINDOW)
        self.popular_queries: Counter[str] = Counter()


def _rate(part: int, total: int) -> str:
    if not total:
        return "0.00%"
    return f"{part / total * 100:.2f}%"


class SearchMetrics:
    """Per-process counters for the autocomplete and search channels.

    One instance lives on ``app.state.metrics``; tests construct their own
    and call ``reset()``.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._channels = {name: _ChannelStats() for name in CHANNELS}

    def record(
        self,
        channel: str,
        query: str | None = None,
        cache_hit: bool = False,
        response_time_ms: float | None = None,
        error: bool = False,
    ) -> None:
        """Record one request on *channel* ("autocomplete" or "search")."""
        key = normalize_query(query) if query else ""
        with self._lock:
            stats = self._channels[channel]
            stats.total_requests += 1
            if cache_hit:
                stats.cache_hits += 1
            else:
                stats.cache_misses += 1
            if error:
                stats.errors += 1
            if response_time_ms is not None:
                stats.response_times.append(response_time_ms)
            if key:
                stats.popular_queries[key] += 1
                if len(stats.popular_queries) > _MAX_POPULAR_QUERIES * 2:
                    stats.popular_queries = Counter(
                        dict(stats.popular_queries.most_common(_MAX_POPULAR_QUERIES))
                    )

    def record_autocomplete(self, **kwargs) -> None:
        self.record("autocomplete", **kwargs)

    def record_search(self, **kwargs) -> None:
        self.record("search", **kwargs)

    def snapshot(self) -> dict[str, Any]:
        """Return a JSON-ready view of all channels.

        Rates are percentage strings ("12.50%"), the average response time
        is rounded to whole milliseconds and only the top 10 queries are
        listed.
        """
        with self._lock:
            out: dict[str, Any] = {}
            for name, s in self._channels.items():
                times = list(s.response_times)
                out[name] = {
                    "total_requests": s.total_requests,
                    "cache_hits": s.cache_hits,
                    "cache_misses": s.cache_misses,
                    "cache_hit_rate": _rate(s.cache_hits, s.total_requests),
                    "errors": s.errors,
                    "error_rate": _rate(s.errors, s.total_requests),
                    "avg_response_time_ms": round(sum(times) / len(times)) if times else 0,
                    "popular_queries": [
                        {"query": q, "count": c}
                        for q, c in s.popular_queries.most_common(10)
                    ],
                }
            return out

    def reset(self) -> None:
        with self._lock:
            self._channels = {name: _ChannelStats() for name in CHANNELS}
