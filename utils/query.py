"""Search request compiler for the POI listing and facets procedures.

Combines a normalized FilterSet with sort, segment and pagination input
into the parameter bundle the backend ``list_pois`` / ``rpc_get_pois_facets``
procedures expect.  The bundle always carries every key (absent filters are
explicit None) because the procedure signatures are fixed.
"""

import base64
import binascii
import json
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from utils.validation import FilterSet

DEFAULT_LIMIT = 50
MAX_LIMIT = 80


class SortKey(str, Enum):
    GATTO = "gatto"
    PRICE_DESC = "price_desc"
    PRICE_ASC = "price_asc"
    MENTIONS = "mentions"
    RATING = "rating"
    DIGITAL = "digital"
    AWARDED = "awarded"
    FRESH = "fresh"


SEGMENTS = {SortKey.DIGITAL, SortKey.AWARDED, SortKey.FRESH}

# Row column carrying the value a keyset cursor resumes from
CURSOR_COLUMNS = {
    SortKey.GATTO: "gatto_score",
    SortKey.PRICE_DESC: "price_level",
    SortKey.PRICE_ASC: "price_level",
    SortKey.MENTIONS: "mentions_count",
    SortKey.RATING: "rating_value",
    SortKey.DIGITAL: "digital_score",
    SortKey.AWARDED: "awards_bonus",
    SortKey.FRESH: "freshness_bonus",
}


def resolve_sort(sort: str | None, segment: str | None = None) -> SortKey:
    """Resolve the requested sort, falling back to the default ordering.

    A segment (digital / awarded / fresh) only applies when no explicit
    non-default sort was requested.
    """
    try:
        key = SortKey(sort) if sort else SortKey.GATTO
    except ValueError:
        key = SortKey.GATTO
    if key is SortKey.GATTO and segment:
        try:
            seg = SortKey(segment)
        except ValueError:
            return key
        if seg in SEGMENTS:
            return seg
    return key


def clamp_limit(limit, default: int = DEFAULT_LIMIT, maximum: int = MAX_LIMIT) -> int:
    try:
        value = int(limit)
    except (TypeError, ValueError):
        return default
    return min(max(value, 1), maximum)


# ── Cursors ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class KeysetCursor:
    """Resume point for forward-only keyset pagination."""
    score: float | None
    id: str


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64decode(token: str) -> bytes:
    padded = token + "=" * (-len(token) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def encode_keyset_cursor(cursor: KeysetCursor) -> str:
    payload = json.dumps({"score": cursor.score, "id": cursor.id},
                         separators=(",", ":"))
    return _b64encode(payload.encode("utf-8"))


def decode_keyset_cursor(token: str | None) -> KeysetCursor | None:
    """Decode a keyset cursor token; garbage yields None (start of results)."""
    if not token or not isinstance(token, str):
        return None
    try:
        data = json.loads(_b64decode(token).decode("utf-8"))
    except (ValueError, binascii.Error, UnicodeError):
        return None
    if not isinstance(data, dict) or "id" not in data:
        return None
    score, ident = data.get("score"), data["id"]
    if isinstance(score, bool) or not (score is None or isinstance(score, (int, float))):
        return None
    if score is not None and not math.isfinite(score):
        return None
    if isinstance(ident, bool) or not isinstance(ident, (str, int)):
        return None
    return KeysetCursor(score=score, id=str(ident))


def encode_offset_cursor(offset: int) -> str:
    return _b64encode(str(int(offset)).encode("utf-8"))


def decode_offset_cursor(token: str | None) -> int:
    """Decode a legacy offset cursor; malformed input decodes to 0."""
    if not token or not isinstance(token, str):
        return 0
    try:
        offset = int(_b64decode(token).decode("utf-8"))
    except (ValueError, binascii.Error, UnicodeError):
        return 0
    return max(offset, 0)


# ── Canonical request ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SearchRequest:
    """Canonical POI search request.

    Exactly one pagination mode is active: keyset (``page`` is None,
    ``cursor`` optional) or offset (``page`` set, ``offset`` derived).
    """
    filters: FilterSet = field(default_factory=FilterSet)
    sort: SortKey = SortKey.GATTO
    limit: int = DEFAULT_LIMIT
    cursor: KeysetCursor | None = None
    page: int | None = None

    @property
    def offset(self) -> int | None:
        if self.page is None:
            return None
        return (self.page - 1) * self.limit

    @property
    def cursor_column(self) -> str:
        return CURSOR_COLUMNS[self.sort]

    def next_cursor_from(self, row: dict) -> str:
        """Keyset token resuming after *row* under the active sort."""
        return encode_keyset_cursor(
            KeysetCursor(score=row.get(self.cursor_column), id=str(row["id"]))
        )

    def to_rpc_params(self) -> dict[str, Any]:
        """Parameter bundle for the ``list_pois`` procedure."""
        params = build_facets_params(self.filters, self.sort)
        params["p_limit"] = self.limit
        params["p_offset"] = self.offset
        params["p_cursor_score"] = self.cursor.score if self.cursor else None
        params["p_cursor_id"] = self.cursor.id if self.cursor else None
        return params

    def cache_params(self) -> dict[str, Any]:
        """Significant parameters for cache-key composition."""
        params = self.filters.cache_params()
        params.update(
            sort=self.sort.value,
            limit=self.limit,
            page=self.page,
            cursor_score=self.cursor.score if self.cursor else None,
            cursor_id=self.cursor.id if self.cursor else None,
        )
        return params


def _as_list(value):
    return list(value) if value is not None else None


def build_facets_params(filters: FilterSet, sort: SortKey = SortKey.GATTO) -> dict[str, Any]:
    """Parameter bundle shared by the search and facets procedures.

    A bounding box takes priority over the city slug for geographic scope;
    the city then stays out of the backend call.
    """
    return {
        "p_bbox": _as_list(filters.bbox),
        "p_city_slug": None if filters.bbox else filters.city,
        "p_primary_types": _as_list(filters.primary_types),
        "p_subcategories": _as_list(filters.subcategories),
        "p_neighbourhood_slugs": _as_list(filters.neighbourhood_slugs),
        "p_district_slugs": _as_list(filters.district_slugs),
        "p_tags_all": _as_list(filters.tags_all),
        "p_tags_any": _as_list(filters.tags_any),
        "p_awards_providers": _as_list(filters.awards_providers),
        "p_price_min": filters.price_min,
        "p_price_max": filters.price_max,
        "p_rating_min": filters.rating_min,
        "p_rating_max": filters.rating_max,
        "p_awarded": filters.awarded,
        "p_fresh": filters.fresh,
        "p_sort": sort.value,
    }


def compile_search_request(
    filters: FilterSet,
    sort: str | None = None,
    segment: str | None = None,
    limit=None,
    cursor: str | None = None,
    page: int | None = None,
) -> SearchRequest:
    """Assemble a SearchRequest from normalized filters and raw paging input.

    Args:
        filters: Output of normalize_filters().
        sort: Requested sort key; unknown values fall back to "gatto".
        segment: Optional ranking segment (digital / awarded / fresh).
        limit: Page size, clamped to 1..80 (default 50).
        cursor: Opaque keyset token from a previous page.
        page: 1-based page number; switches to offset pagination.

    Returns:
        The canonical SearchRequest.
    """
    page_number = None
    if page is not None:
        try:
            page_number = max(int(page), 1)
        except (TypeError, ValueError):
            page_number = 1
    return SearchRequest(
        filters=filters,
        sort=resolve_sort(sort, segment),
        limit=clamp_limit(limit),
        cursor=None if page_number is not None else decode_keyset_cursor(cursor),
        page=page_number,
    )
