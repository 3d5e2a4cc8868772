"""
Collections endpoints.

GET /v1/collections         → published collections, offset pagination
GET /v1/collections/{slug}  → one collection with its POIs as card items

A collection row lives in ``collections``; its members and their order in
``collection_pois``.  Covers are the card rendition of the cover POI's
primary photo.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Path

from api.assembler import build_card_item, build_collection_item
from api.database import BackendError
from api.dependencies import get_backend, get_caches
from api.enrichment import CARD_VARIANTS, DETAIL_VARIANTS, EnrichmentEngine, photo_block_from, primary_photo
from api.models import (
    CollectionDetailQuery,
    CollectionListResponse,
    CollectionsQuery,
    ErrorResponse,
    query_model,
)
from api.responses import error_response, success_response
from utils.cache import make_cache_key
from utils.formatting import offset_pagination, sort_by_segment
from utils.query import decode_offset_cursor, encode_offset_cursor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/collections", tags=["collections"])

COLLECTIONS_MAX_AGE = 600

_LIST_COLUMNS = (
    "id,slug_fr,slug_en,slug,title_fr,title_en,title,description_fr,description_en,"
    "description,city_slug,cover_poi_id,position,collection_pois(count)"
)


def _member_count(row: dict) -> int:
    embedded = row.get("collection_pois")
    if isinstance(embedded, list) and embedded and isinstance(embedded[0], dict):
        return int(embedded[0].get("count") or 0)
    return 0


def _cover_block(photos, poi_id) -> dict | None:
    if poi_id is None:
        return None
    photo = primary_photo(photos.for_poi(poi_id))
    if photo is None:
        return None
    return photo_block_from(photos.variants, photo, "card_sq")


@router.get(
    "",
    summary="List collections",
    response_model=CollectionListResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def list_collections(
    query: CollectionsQuery = Depends(query_model(CollectionsQuery)),
    backend=Depends(get_backend),
    caches=Depends(get_caches),
):
    """List published collections in editorial order.

    Page with ``page`` or with the opaque ``cursor`` tokens returned in
    ``pagination.next_cursor`` / ``pagination.previous_cursor``.
    """
    limit = query.limit
    if query.cursor is not None:
        offset = decode_offset_cursor(query.cursor)
    else:
        offset = ((query.page or 1) - 1) * limit
    page = offset // limit + 1

    key = make_cache_key(
        "collections",
        {"city": query.city, "lang": query.lang, "offset": offset, "limit": limit},
    )
    cache = caches["collections"]
    cached = cache.get(key)
    if cached is not None:
        logger.info("cache HIT key=%s", key)
        return success_response(cached, COLLECTIONS_MAX_AGE, "HIT")
    logger.info("cache MISS key=%s", key)

    eq = {"is_published": True}
    if query.city:
        eq["city_slug"] = query.city
    try:
        rows, total = await backend.select_with_count(
            "collections", _LIST_COLUMNS,
            eq=eq, order=["position.asc"], limit=limit, offset=offset,
        )
    except BackendError as exc:
        logger.error("collections list failed eq=%s offset=%d error=%s", eq, offset, exc)
        return error_response(500, "Failed to fetch collections")

    cover_ids = [r["cover_poi_id"] for r in rows if r.get("cover_poi_id") is not None]
    bundle = await EnrichmentEngine(backend).enrich(
        cover_ids, ratings=False, mentions=False, badges=False,
    )
    items = [
        build_collection_item(
            row, query.lang, _member_count(row), _cover_block(bundle.photos, row.get("cover_poi_id"))
        )
        for row in rows
    ]

    pagination = offset_pagination(total, page, limit)
    pagination["next_cursor"] = (
        encode_offset_cursor(offset + limit) if offset + limit < total else None
    )
    pagination["previous_cursor"] = (
        encode_offset_cursor(max(offset - limit, 0)) if offset > 0 else None
    )
    data = {"items": items, "pagination": pagination}
    if not bundle.failed:
        cache.set(key, data)
    return success_response(data, COLLECTIONS_MAX_AGE, "MISS")


@router.get(
    "/{slug}",
    summary="Collection detail",
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse, "description": "No published collection with this slug"},
        500: {"model": ErrorResponse},
    },
)
async def get_collection(
    slug: str = Path(..., max_length=200, pattern=r"^[a-z0-9-]+$"),
    query: CollectionDetailQuery = Depends(query_model(CollectionDetailQuery)),
    backend=Depends(get_backend),
    caches=Depends(get_caches),
):
    """Return a collection and its POIs.

    POIs keep the collection's editorial order unless ``segment`` asks for
    a ranking, in which case they are stably sorted by that segment score.
    """
    lang = query.lang
    key = make_cache_key(
        "collection",
        {"slug": slug, "lang": lang, "segment": query.segment, "view": query.view},
    )
    cache = caches["collections"]
    cached = cache.get(key)
    if cached is not None:
        logger.info("cache HIT key=%s", key)
        return success_response(cached, COLLECTIONS_MAX_AGE, "HIT")
    logger.info("cache MISS key=%s", key)

    try:
        found = await backend.select(
            "collections", "*",
            eq={"is_published": True},
            any_eq={"slug_fr": slug, "slug_en": slug},
            limit=1,
        )
        if not found:
            raise HTTPException(status_code=404, detail="Collection not found")
        collection = found[0]
        links = await backend.select(
            "collection_pois", "poi_id,position",
            eq={"collection_id": collection["id"]},
            order=["position.asc"],
        )
        member_ids = [link["poi_id"] for link in links]
        pois = []
        if member_ids:
            pois = await backend.select(
                "poi", "*",
                eq={"publishable_status": "eligible"},
                in_={"id": member_ids},
            )
    except BackendError as exc:
        logger.error("collection lookup failed slug=%s error=%s", slug, exc)
        return error_response(500, "Failed to fetch collection")

    by_id = {str(p["id"]): p for p in pois}
    ordered = [by_id[str(pid)] for pid in member_ids if str(pid) in by_id]
    bundle = await EnrichmentEngine(backend).enrich(
        [p["id"] for p in ordered],
        lang=lang,
        variant_prefixes=DETAIL_VARIANTS if query.view == "detail" else CARD_VARIANTS,
        scores=True,
    )
    items = [build_card_item(p, bundle, lang, query.view) for p in ordered]
    if query.segment:
        items = sort_by_segment(items, query.segment)

    cover_id = collection.get("cover_poi_id") or (ordered[0]["id"] if ordered else None)
    data = build_collection_item(collection, lang, len(items), _cover_block(bundle.photos, cover_id))
    data["pois"] = items
    if not bundle.failed:
        cache.set(key, data)
    return success_response(data, COLLECTIONS_MAX_AGE, "MISS")
