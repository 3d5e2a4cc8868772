"""
Pydantic request/response models for the API.

Query schemas are closed (``extra="forbid"``): an unknown query parameter is
a validation error, never silently ignored.  They are applied through the
query_model() dependency, which feeds the raw query string to the schema
and turns failures into RequestValidationError (rendered as HTTP 400 by the
application's handler).

Response models document the envelope and item shapes for OpenAPI; routes
return JSONResponse bodies built by api/assembler.py.
"""

from __future__ import annotations

from typing import Any, Literal

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from utils.patterns import CSV_LIST, SLUG
from utils.validation import parse_bbox

Lang = Literal["fr", "en"]
View = Literal["card", "detail"]
Segment = Literal["digital", "awarded", "fresh"]


class _ClosedQuery(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


# ── Query schemas ─────────────────────────────────────────────────────────────

class PoiFilterQuery(_ClosedQuery):
    """Filter parameters shared by the POI list and facets endpoints."""
    bbox: str | None = Field(None, description="lat_min,lng_min,lat_max,lng_max", examples=["48.8,2.3,48.9,2.4"])
    city: str | None = Field(None, max_length=200, pattern=SLUG.pattern, description="City slug", examples=["paris"])
    primary_type: str | None = Field(None, max_length=200, pattern=CSV_LIST.pattern, description="CSV of primary types", examples=["restaurant,bar"])
    subcategory: str | None = Field(None, max_length=200, pattern=CSV_LIST.pattern, description="CSV of subcategories")
    neighbourhood_slug: str | None = Field(None, max_length=200, pattern=CSV_LIST.pattern, description="CSV of neighbourhood slugs")
    district_slug: str | None = Field(None, max_length=200, pattern=CSV_LIST.pattern, description="CSV of district slugs")
    tags: str | None = Field(None, max_length=200, pattern=CSV_LIST.pattern, description="CSV of tags, all required")
    tags_any: str | None = Field(None, max_length=200, pattern=CSV_LIST.pattern, description="CSV of tags, any matches")
    awards: str | None = Field(None, max_length=200, pattern=CSV_LIST.pattern, description="CSV of award providers")
    awarded: str | None = Field(None, description="true | false; anything else means no filter")
    fresh: str | None = Field(None, description="true | false; anything else means no filter")
    price: str | None = Field(None, max_length=8, description="Legacy single price: € to €€€€, or 1-4")
    price_min: str | None = Field(None, max_length=8, description="Minimum price level 1-4")
    price_max: str | None = Field(None, max_length=8, description="Maximum price level 1-4")
    rating_min: str | None = Field(None, max_length=8, description="Minimum rating 0-5")
    rating_max: str | None = Field(None, max_length=8, description="Maximum rating 0-5")
    sort: str | None = Field(None, max_length=32, description="gatto | price_desc | price_asc | mentions | rating | digital | awarded | fresh")
    segment: Segment | None = Field(None, description="Ranking segment applied when no explicit sort is given")
    lang: Lang = Field("fr", description="Response language")

    @field_validator("bbox")
    @classmethod
    def _bbox_well_formed(cls, value: str | None) -> str | None:
        if value is not None and parse_bbox(value) is None:
            raise ValueError(
                "bbox must be lat_min,lng_min,lat_max,lng_max with min < max "
                "and coordinates within range"
            )
        return value


class PoisQuery(PoiFilterQuery):
    """GET /v1/pois."""
    limit: int = Field(50, ge=1, le=80, description="Page size")
    cursor: str | None = Field(None, max_length=512, description="Keyset cursor from a previous page")
    page: int | None = Field(None, ge=1, description="1-based page number (offset pagination)")
    view: View = Field("card", description="Item shape")
    fields: str | None = Field(None, max_length=200, description="CSV allowlist of item fields")

    @model_validator(mode="after")
    def _one_pagination_mode(self) -> "PoisQuery":
        if self.page is not None and self.cursor is not None:
            raise ValueError("page and cursor cannot be combined")
        return self


class FacetsQuery(PoiFilterQuery):
    """GET /v1/pois/facets: list filters without pagination."""


class PoiDetailQuery(_ClosedQuery):
    lang: Lang = "fr"
    fields: str | None = Field(None, max_length=200)


class AutocompleteQuery(_ClosedQuery):
    q: str = Field(..., min_length=1, max_length=200, description="Text typed so far", examples=["cafe"])
    city: str = Field("paris", max_length=200, pattern=SLUG.pattern)
    lang: Lang = "fr"
    limit: int = Field(7, ge=1, le=50)


class CollectionsQuery(_ClosedQuery):
    city: str | None = Field(None, max_length=200, pattern=SLUG.pattern)
    lang: Lang = "fr"
    page: int | None = Field(None, ge=1)
    cursor: str | None = Field(None, max_length=128, description="Opaque offset cursor")
    limit: int = Field(12, ge=1, le=50)

    @model_validator(mode="after")
    def _one_pagination_mode(self) -> "CollectionsQuery":
        if self.page is not None and self.cursor is not None:
            raise ValueError("page and cursor cannot be combined")
        return self


class CollectionDetailQuery(_ClosedQuery):
    lang: Lang = "fr"
    segment: Segment | None = None
    view: View = "card"


class SitemapQuery(_ClosedQuery):
    """Malformed values fall back to defaults instead of failing."""
    page: str | None = None
    limit: str | None = None


def _raw_query(request: Request) -> dict[str, str]:
    raw: dict[str, str] = {}
    for key, value in request.query_params.multi_items():
        raw[key] = f"{raw[key]},{value}" if key in raw else value
    return raw


def query_model(model: type[BaseModel]):
    """FastAPI dependency factory validating the whole query string against *model*.

    Usage in a route::

        @router.get("")
        async def list_things(query: ThingQuery = Depends(query_model(ThingQuery))):
            ...
    """
    def dependency(request: Request):
        try:
            return model.model_validate(_raw_query(request))
        except ValidationError as exc:
            raise RequestValidationError(
                [{"loc": ("query",) + tuple(e["loc"]), "msg": e["msg"], "type": e["type"]}
                 for e in exc.errors()]
            ) from exc
    dependency.__name__ = f"validate_{model.__name__}"
    return dependency


# ── Response models ───────────────────────────────────────────────────────────

class PhotoVariantOut(BaseModel):
    variant_key: str | None = Field(None, examples=["card_sq@1x"])
    format: str | None = Field(None, description="avif | webp | jpg", examples=["avif"])
    url: str | None = None
    width: int | None = None
    height: int | None = None


class PhotoBlockOut(BaseModel):
    variants: list[PhotoVariantOut]
    dominant_color: str | None = None
    blurhash: str | None = None


class ScoresOut(BaseModel):
    gatto: float | None = Field(None, description="Composite score", examples=[78.5])
    digital: float | None = None
    awards_bonus: float | None = None
    freshness_bonus: float | None = None


class RatingOut(BaseModel):
    google: float | None = Field(None, examples=[4.6])
    reviews_count: int = Field(0, examples=[1280])


class MentionSourceOut(BaseModel):
    domain: str | None = Field(None, examples=["lefooding.com"])
    favicon: str | None = None
    title: str | None = None
    url: str | None = None


class BadgeOut(BaseModel):
    key: str = Field(..., examples=["reference"])
    label: str = Field(..., examples=["Référence"])
    tagline: str


class PoiCardOut(BaseModel):
    """One POI list item (card view; detail view adds coords, hours, price, gallery)."""
    id: Any
    slug: str | None = None
    name: str | None = None
    primary_type: str | None = None
    subcategories: list[str] = []
    district: str | None = None
    neighbourhood: str | None = None
    summary: str | None = None
    photo: PhotoBlockOut | None = None
    score: float | None = None
    scores: ScoresOut
    rating: RatingOut | None = None
    mentions_count: int = 0
    mentions_sample: list[MentionSourceOut] = []
    tags_flat: list[str] = []
    badge: BadgeOut | None = None


class OffsetPaginationOut(BaseModel):
    total: int = Field(..., examples=[101])
    page: int = Field(..., examples=[1])
    limit: int = Field(..., examples=[24])
    total_pages: int = Field(..., examples=[5])
    has_next: bool
    has_prev: bool
    next_cursor: str | None = None
    previous_cursor: str | None = None


class PoiListData(BaseModel):
    items: list[PoiCardOut]
    next_cursor: str | None = Field(None, description="Keyset mode: token for the next page")
    previous_cursor: str | None = Field(None, description="Always null in keyset mode")
    pagination: OffsetPaginationOut | None = Field(None, description="Offset mode only")


class SuggestionOut(BaseModel):
    type: str = Field(..., examples=["poi"])
    value: str = Field(..., examples=["cafe-de-flore"])
    display: str = Field(..., examples=["Café de Flore"])
    metadata: dict[str, Any] | None = None


class AutocompleteData(BaseModel):
    suggestions: list[SuggestionOut]


class CollectionOut(BaseModel):
    id: Any
    slug: str | None = None
    title: str | None = None
    description: str | None = None
    city: str | None = None
    poi_count: int = 0
    cover: PhotoBlockOut | None = None


class SitemapItemOut(BaseModel):
    slug: str | None = None
    updated_at: str | None = None
    score: float = Field(..., ge=0, le=5, examples=[4.12])


class CollectionListData(BaseModel):
    items: list[CollectionOut]
    pagination: OffsetPaginationOut


class SitemapData(BaseModel):
    items: list[SitemapItemOut]
    pagination: OffsetPaginationOut


class Envelope(BaseModel):
    """Uniform success envelope."""
    success: bool = True
    data: Any = None
    timestamp: str = Field(..., examples=["2026-01-01T12:00:00.000Z"])


class PoiListResponse(Envelope):
    data: PoiListData


class AutocompleteResponse(Envelope):
    data: AutocompleteData


class CollectionListResponse(Envelope):
    data: CollectionListData


class SitemapResponse(Envelope):
    data: SitemapData


# ── Error model ───────────────────────────────────────────────────────────────

class ErrorDetail(BaseModel):
    field: str = Field(..., examples=["limit"])
    message: str = Field(..., examples=["Input should be less than or equal to 80"])
    code: str = Field(..., examples=["less_than_equal"])


class ErrorResponse(BaseModel):
    """Standard error body."""
    success: bool = False
    error: str = Field(..., examples=["Invalid query parameters"])
    details: list[ErrorDetail] | None = None
    timestamp: str
