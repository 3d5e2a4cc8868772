"""
Service metadata endpoints.

GET /v1          → API index (status, version, endpoint list, uptime)
GET /v1/metrics  → search metrics snapshot and response-cache statistics
"""

import time

from fastapi import APIRouter, Depends, Request

from api.dependencies import get_caches, get_metrics
from api.responses import success_response

router = APIRouter(tags=["meta"])

API_VERSION = "1.0"
ENDPOINTS = [
    "/v1/pois",
    "/v1/pois/facets",
    "/v1/pois/{slug}",
    "/v1/autocomplete",
    "/v1/collections",
    "/v1/collections/{slug}",
    "/v1/sitemap/pois",
    "/v1/metrics",
]


@router.get("", summary="API index")
async def api_index(request: Request):
    started_at = getattr(request.app.state, "started_at", time.time())
    return success_response({
        "status": "ok",
        "version": API_VERSION,
        "endpoints": ENDPOINTS,
        "uptime": int(time.time() - started_at),
    })


@router.get("/metrics", summary="Search metrics")
async def search_metrics(metrics=Depends(get_metrics), caches=Depends(get_caches)):
    """Autocomplete and search counters plus per-family cache statistics.

    Counters live in process memory and reset on restart.
    """
    data = metrics.snapshot()
    data["caches"] = caches.stats()
    return success_response(data)
