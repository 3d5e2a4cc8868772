"""
FastAPI dependencies for per-application state.

The application factory creates the backend client, the response cache
registry and the search metrics once and stores them on ``app.state``.
Routes pull them in through these dependencies, so a test app built with
its own instances never shares state with another.
"""

from fastapi import Request

from api.database import get_backend  # noqa: F401  re-exported for routes
from utils.cache import CacheRegistry
from utils.metrics import SearchMetrics


def get_caches(request: Request) -> CacheRegistry:
    return request.app.state.caches


def get_metrics(request: Request) -> SearchMetrics:
    return request.app.state.metrics
