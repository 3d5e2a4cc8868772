"""
POI endpoints.

GET /v1/pois/facets  → filter-context facet counts (computed by the backend)
GET /v1/pois         → filtered, sorted POI list (keyset or offset pagination)
GET /v1/pois/{slug}  → single POI detail

The list and facets endpoints share one filter pipeline: the closed query
schema validates, normalize_filters() types the values and the search
request compiler builds the fixed procedure bundle.  Responses are cached
per canonical parameter set.
"""

import logging
import time

from fastapi import APIRouter, Depends, HTTPException, Path

from api.assembler import build_card_item, build_poi_detail
from api.database import BackendError
from api.dependencies import get_backend, get_caches, get_metrics
from api.enrichment import CARD_VARIANTS, DETAIL_VARIANTS, EnrichmentEngine
from api.models import (
    ErrorResponse,
    FacetsQuery,
    PoiDetailQuery,
    PoiListResponse,
    PoisQuery,
    query_model,
)
from api.responses import error_response, success_response
from utils.cache import make_cache_key
from utils.formatting import filter_fields, keyset_pagination, offset_pagination, parse_fields
from utils.query import build_facets_params, compile_search_request, resolve_sort
from utils.validation import normalize_filters

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pois", tags=["pois"])

LIST_MAX_AGE = 600
DETAIL_MAX_AGE = 600
FACETS_MAX_AGE = 600

_ERRORS = {
    400: {"model": ErrorResponse, "description": "Invalid query parameters"},
    500: {"model": ErrorResponse, "description": "Backend failure"},
}


def _elapsed_ms(started: float) -> float:
    return (time.monotonic() - started) * 1000


# Registered before /{slug} so "facets" is never taken for a slug.
@router.get("/facets", summary="Facet counts for the current filters", responses=_ERRORS)
async def poi_facets(
    query: FacetsQuery = Depends(query_model(FacetsQuery)),
    backend=Depends(get_backend),
    caches=Depends(get_caches),
):
    """Return ``{context, facets}`` for the filter context, verbatim from the backend."""
    filters = normalize_filters(query.model_dump())
    sort = resolve_sort(query.sort, query.segment)
    key = make_cache_key("facets", dict(filters.cache_params(), sort=sort.value, lang=query.lang))
    cache = caches["poi_list"]

    cached = cache.get(key)
    if cached is not None:
        logger.info("cache HIT key=%s", key)
        return success_response(cached, FACETS_MAX_AGE, "HIT")
    logger.info("cache MISS key=%s", key)

    params = build_facets_params(filters, sort)
    try:
        data = await backend.rpc("rpc_get_pois_facets", params)
    except BackendError as exc:
        logger.error("rpc_get_pois_facets failed params=%s error=%s", params, exc)
        return error_response(500, "Failed to fetch facets")

    if data is None:
        data = {"context": None, "facets": None}
    cache.set(key, data)
    return success_response(data, FACETS_MAX_AGE, "MISS")


@router.get(
    "",
    response_model=PoiListResponse,
    summary="List POIs",
    responses=_ERRORS,
)
async def list_pois(
    query: PoisQuery = Depends(query_model(PoisQuery)),
    backend=Depends(get_backend),
    caches=Depends(get_caches),
    metrics=Depends(get_metrics),
):
    """List POIs matching the filters.

    Keyset pagination by default: pass back ``next_cursor`` as ``cursor``.
    Supplying ``page`` switches to offset pagination with a full
    ``pagination`` block computed from the backend's ``total_count``.
    """
    started = time.monotonic()
    filters = normalize_filters(query.model_dump())
    search = compile_search_request(
        filters,
        sort=query.sort,
        segment=query.segment,
        limit=query.limit,
        cursor=query.cursor,
        page=query.page,
    )
    fields = parse_fields(query.fields)
    key = make_cache_key(
        "pois",
        dict(search.cache_params(), view=query.view, lang=query.lang, fields=fields),
    )
    cache = caches["poi_list"]

    cached = cache.get(key)
    if cached is not None:
        logger.info("cache HIT key=%s", key)
        metrics.record_search(cache_hit=True, response_time_ms=_elapsed_ms(started))
        return success_response(cached, LIST_MAX_AGE, "HIT")
    logger.info("cache MISS key=%s", key)

    params = search.to_rpc_params()
    try:
        rows = await backend.rpc("list_pois", params) or []
    except BackendError as exc:
        logger.error("list_pois failed params=%s error=%s", params, exc)
        metrics.record_search(response_time_ms=_elapsed_ms(started), error=True)
        return error_response(500, "Failed to fetch POIs")

    engine = EnrichmentEngine(backend)
    bundle = await engine.enrich(
        [row["id"] for row in rows],
        lang=query.lang,
        variant_prefixes=DETAIL_VARIANTS if query.view == "detail" else CARD_VARIANTS,
    )
    items = [
        filter_fields(build_card_item(row, bundle, query.lang, query.view), fields)
        for row in rows
    ]

    if search.page is not None:
        total = int(rows[0].get("total_count") or len(rows)) if rows else 0
        data = {
            "items": items,
            "pagination": offset_pagination(total, search.page, search.limit),
        }
    else:
        data = {"items": items, **keyset_pagination(rows, search.limit, search.next_cursor_from)}

    if not bundle.failed:
        cache.set(key, data)
    metrics.record_search(response_time_ms=_elapsed_ms(started))
    return success_response(data, LIST_MAX_AGE, "MISS")


@router.get(
    "/{slug}",
    summary="POI detail",
    responses={**_ERRORS, 404: {"model": ErrorResponse, "description": "No POI with this slug"}},
)
async def get_poi(
    slug: str = Path(..., max_length=200, pattern=r"^[a-z0-9-]+$", description="POI slug in any language"),
    query: PoiDetailQuery = Depends(query_model(PoiDetailQuery)),
    backend=Depends(get_backend),
    caches=Depends(get_caches),
):
    """Return one publishable POI matched on its French, English or requested-language slug."""
    lang = query.lang
    fields = parse_fields(query.fields)
    key = make_cache_key("poi", {"slug": slug, "lang": lang, "fields": fields})
    cache = caches["poi_detail"]

    cached = cache.get(key)
    if cached is not None:
        logger.info("cache HIT key=%s", key)
        return success_response(cached, DETAIL_MAX_AGE, "HIT")
    logger.info("cache MISS key=%s", key)

    try:
        rows = await backend.select(
            "poi",
            "*",
            eq={"publishable_status": "eligible"},
            any_eq={f"slug_{lang}": slug, "slug_en": slug, "slug_fr": slug},
            limit=1,
        )
    except BackendError as exc:
        logger.error("poi lookup failed slug=%s error=%s", slug, exc)
        return error_response(500, "Failed to fetch POI")
    if not rows:
        raise HTTPException(status_code=404, detail="POI not found")

    row = rows[0]
    bundle = await EnrichmentEngine(backend).enrich(
        [row["id"]],
        lang=lang,
        variant_prefixes=DETAIL_VARIANTS,
        mention_details=True,
        scores=True,
        tags=row.get("tags"),
    )
    data = filter_fields(build_poi_detail(row, bundle, lang), fields)
    if not bundle.failed:
        cache.set(key, data)
    return success_response(data, DETAIL_MAX_AGE, "MISS")
