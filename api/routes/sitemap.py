"""
GET /v1/sitemap/pois endpoint.

Slug listing for sitemap generation.  Every publishable POI appears with
its last update and its gatto score on a 0-5 scale; newest updates first.
"""

import asyncio
import logging

from fastapi import APIRouter, Depends

from api.database import BackendError
from api.dependencies import get_backend
from api.enrichment import EnrichmentEngine
from api.models import ErrorResponse, SitemapQuery, SitemapResponse, query_model
from api.responses import error_response, success_response
from utils.formatting import offset_pagination, score_to_5_scale
from utils.patterns import INTEGER

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sitemap", tags=["sitemap"])

SITEMAP_MAX_AGE = 300
SITEMAP_DEFAULT_LIMIT = 500
SITEMAP_MAX_LIMIT = 1000
SCORE_BATCH_SIZE = 100


def _positive_int(value: str | None, default: int, maximum: int | None = None) -> int:
    if value is None or not INTEGER.match(value.strip()):
        return default
    number = int(value)
    if number < 1:
        return default
    if maximum is not None and number > maximum:
        return maximum
    return number


async def _scores_by_poi(backend, poi_ids: list) -> dict[str, float]:
    engine = EnrichmentEngine(backend)
    batches = [poi_ids[i:i + SCORE_BATCH_SIZE] for i in range(0, len(poi_ids), SCORE_BATCH_SIZE)]
    results = await asyncio.gather(
        *(engine.fetch_scores(batch) for batch in batches),
        return_exceptions=True,
    )
    scores: dict[str, float] = {}
    for batch, result in zip(batches, results):
        if isinstance(result, Exception):
            logger.warning("sitemap score batch of %d failed: %s", len(batch), result)
            continue
        if isinstance(result, BaseException):
            raise result
        for poi_id, row in result.items():
            scores[poi_id] = score_to_5_scale(row.get("gatto_score"))
    return scores


@router.get(
    "/pois",
    summary="POI slugs for the sitemap",
    response_model=SitemapResponse,
    responses={500: {"model": ErrorResponse}},
)
async def sitemap_pois(
    query: SitemapQuery = Depends(query_model(SitemapQuery)),
    backend=Depends(get_backend),
):
    page = _positive_int(query.page, 1)
    limit = _positive_int(query.limit, SITEMAP_DEFAULT_LIMIT, SITEMAP_MAX_LIMIT)
    try:
        rows, total = await backend.select_with_count(
            "poi",
            "id,slug_fr,slug_en,updated_at",
            eq={"publishable_status": "eligible"},
            order=["updated_at.desc"],
            limit=limit,
            offset=(page - 1) * limit,
        )
    except BackendError as exc:
        logger.error("sitemap listing failed page=%d limit=%d error=%s", page, limit, exc)
        return error_response(500, "Failed to build sitemap payload")

    scores = await _scores_by_poi(backend, [row["id"] for row in rows])
    items = [
        {
            "slug": row.get("slug_fr") or row.get("slug_en"),
            "updated_at": row.get("updated_at"),
            "score": scores.get(str(row["id"]), 0),
        }
        for row in rows
    ]
    data = {"items": items, "pagination": offset_pagination(total, page, limit)}
    return success_response(data, SITEMAP_MAX_AGE)
