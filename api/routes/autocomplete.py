"""
GET /v1/autocomplete endpoint.

Search-as-you-type suggestions (POIs, types, districts...) from the
``autocomplete_search`` procedure.  Strict query schema; responses cached
for one minute per (q, city, lang, limit).
"""

import logging
import time

from fastapi import APIRouter, Depends

from api.database import BackendError
from api.dependencies import get_backend, get_caches, get_metrics
from api.models import AutocompleteQuery, AutocompleteResponse, ErrorResponse, query_model
from api.responses import error_response, success_response
from utils.cache import make_cache_key

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/autocomplete", tags=["autocomplete"])

AUTOCOMPLETE_MAX_AGE = 60


def suggestion_from(row: dict) -> dict:
    """Shape one procedure row; POI rows link by slug and carry metadata."""
    if row.get("type") == "poi":
        return {
            "type": "poi",
            "value": row.get("poi_slug") or row.get("value"),
            "display": row.get("display"),
            "metadata": {
                "type_label": row.get("poi_type_label"),
                "district": row.get("poi_district"),
                "city": row.get("poi_city"),
            },
        }
    return {
        "type": row.get("type"),
        "value": row.get("value"),
        "display": row.get("display"),
        "metadata": None,
    }


@router.get(
    "",
    response_model=AutocompleteResponse,
    summary="Search suggestions",
    responses={
        400: {"model": ErrorResponse, "description": "Invalid query parameters"},
        500: {"model": ErrorResponse, "description": "Backend failure"},
    },
)
async def autocomplete(
    query: AutocompleteQuery = Depends(query_model(AutocompleteQuery)),
    backend=Depends(get_backend),
    caches=Depends(get_caches),
    metrics=Depends(get_metrics),
):
    """Return up to ``limit`` suggestions for the text typed so far."""
    started = time.monotonic()
    key = make_cache_key(
        "autocomplete",
        {"q": query.q, "city": query.city, "lang": query.lang, "limit": query.limit},
    )
    cache = caches["autocomplete"]

    cached = cache.get(key)
    if cached is not None:
        elapsed = (time.monotonic() - started) * 1000
        metrics.record_autocomplete(query=query.q, cache_hit=True, response_time_ms=elapsed)
        logger.info("cache HIT key=%s duration_ms=%.1f", key, elapsed)
        return success_response(cached, AUTOCOMPLETE_MAX_AGE, "HIT")
    logger.info("cache MISS key=%s", key)

    params = {
        "p_query": query.q,
        "p_city_slug": query.city,
        "p_lang": query.lang,
        "p_limit": query.limit,
    }
    try:
        rows = await backend.rpc("autocomplete_search", params)
    except BackendError as exc:
        metrics.record_autocomplete(
            query=query.q,
            response_time_ms=(time.monotonic() - started) * 1000,
            error=True,
        )
        logger.error("autocomplete_search failed params=%s error=%s", params, exc)
        return error_response(500, "Failed to fetch autocomplete suggestions")

    data = {"suggestions": [suggestion_from(row) for row in rows or []]}
    cache.set(key, data)
    metrics.record_autocomplete(query=query.q, response_time_ms=(time.monotonic() - started) * 1000)
    return success_response(data, AUTOCOMPLETE_MAX_AGE, "MISS")
