"""Query-parameter normalization for POI search endpoints.

Turns raw query-string values into typed filter primitives.  None of the
parse_* helpers raise on malformed input: a value that cannot be used
becomes None, meaning "no filter".  Request-level rejection (HTTP 400) is
the job of the pydantic schemas in api/models.py.

Every helper also accepts its own output, so normalizing twice gives the
same result as normalizing once.
"""

import math
from dataclasses import dataclass, fields
from typing import Any, Mapping

from utils.patterns import INTEGER, PRICE_SYMBOLS
from utils.strings import parse_csv

PRICE_MIN, PRICE_MAX = 1, 4
RATING_MIN, RATING_MAX = 0.0, 5.0

Bbox = tuple[float, float, float, float]


def parse_bool_tristate(value) -> bool | None:
    """Map "true"/"false" to a bool; anything else means "don't filter"."""
    if isinstance(value, bool):
        return value
    if value == "true":
        return True
    if value == "false":
        return False
    return None


def parse_price_bound(value) -> int | None:
    """Parse a price level bound (integer 1-4), None when unusable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str) and INTEGER.match(value):
        parsed = int(value)
    else:
        return None
    if parsed < PRICE_MIN or parsed > PRICE_MAX:
        return None
    return parsed


def parse_rating_bound(value) -> float | None:
    """Parse a rating bound (float 0-5), None when unusable."""
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(parsed) or parsed < RATING_MIN or parsed > RATING_MAX:
        return None
    return parsed


def parse_legacy_price(value) -> int | None:
    """Parse the legacy single ``price`` parameter.

    Accepts a symbol run ("€" through "€€€€") or a bare level ("1".."4").
    """
    if isinstance(value, str) and PRICE_SYMBOLS.match(value.strip()):
        return len(value.strip())
    return parse_price_bound(value)


def order_bounds(lo, hi):
    """Swap an inverted (min, max) pair instead of rejecting it."""
    if lo is not None and hi is not None and lo > hi:
        return hi, lo
    return lo, hi


def parse_bbox(value) -> Bbox | None:
    """Parse ``lat_min,lng_min,lat_max,lng_max`` into a 4-tuple of floats.

    Rejected (None) when the component count is not four, a component is
    not a number, the box is empty or inverted on either axis, or a
    coordinate falls outside [-90, 90] / [-180, 180].
    """
    if value is None:
        return None
    if isinstance(value, str):
        parts = value.split(",")
    else:
        try:
            parts = list(value)
        except TypeError:
            return None
    if len(parts) != 4:
        return None
    try:
        lat_min, lng_min, lat_max, lng_max = (float(p) for p in parts)
    except (TypeError, ValueError):
        return None
    coords = (lat_min, lng_min, lat_max, lng_max)
    if any(math.isnan(c) for c in coords):
        return None
    if lat_min >= lat_max or lng_min >= lng_max:
        return None
    if lat_min < -90 or lat_max > 90 or lng_min < -180 or lng_max > 180:
        return None
    return coords


@dataclass(frozen=True)
class FilterSet:
    """Normalized, typed search constraints.

    Multi-value fields keep the caller's order (the backend receives them
    as given); cache keys sort them separately.
    """
    bbox: Bbox | None = None
    city: str | None = None
    primary_types: tuple[str, ...] | None = None
    subcategories: tuple[str, ...] | None = None
    neighbourhood_slugs: tuple[str, ...] | None = None
    district_slugs: tuple[str, ...] | None = None
    tags_all: tuple[str, ...] | None = None
    tags_any: tuple[str, ...] | None = None
    awards_providers: tuple[str, ...] | None = None
    price_min: int | None = None
    price_max: int | None = None
    rating_min: float | None = None
    rating_max: float | None = None
    awarded: bool | None = None
    fresh: bool | None = None

    def to_query(self) -> dict[str, Any]:
        """Render back to raw query parameters (None values omitted)."""
        out: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            name = _QUERY_NAMES.get(f.name, f.name)
            if isinstance(value, tuple) and f.name != "bbox":
                value = ",".join(value)
            elif f.name == "bbox":
                value = ",".join(repr(c) for c in value)
            elif isinstance(value, bool):
                value = "true" if value else "false"
            out[name] = value
        return out

    def cache_params(self) -> dict[str, Any]:
        """Significant parameters for cache-key composition."""
        out = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == "bbox" and value is not None:
                # positional, never sorted like the CSV filters
                value = ",".join(repr(c) for c in value)
            out[f.name] = list(value) if isinstance(value, tuple) else value
        return out


# FilterSet field -> query-string parameter
_QUERY_NAMES = {
    "primary_types": "primary_type",
    "subcategories": "subcategory",
    "neighbourhood_slugs": "neighbourhood_slug",
    "district_slugs": "district_slug",
    "tags_all": "tags",
    "awards_providers": "awards",
}


def _csv_tuple(value) -> tuple[str, ...] | None:
    items = parse_csv(value)
    return tuple(items) if items else None


def normalize_filters(raw: Mapping[str, Any]) -> FilterSet:
    """Build a FilterSet from raw query parameters.

    Explicit ``price_min``/``price_max`` win over the legacy ``price``
    value, which only fills a missing side.  Inverted bounds are swapped.

    Args:
        raw: Mapping of query parameter name to raw value (str, list or
            an already-normalized value).

    Returns:
        A FilterSet; unusable values are simply absent.
    """
    price_min = parse_price_bound(raw.get("price_min"))
    price_max = parse_price_bound(raw.get("price_max"))
    legacy = parse_legacy_price(raw.get("price"))
    if legacy is not None:
        if price_min is None:
            price_min = legacy
        if price_max is None:
            price_max = legacy
    price_min, price_max = order_bounds(price_min, price_max)

    rating_min, rating_max = order_bounds(
        parse_rating_bound(raw.get("rating_min")),
        parse_rating_bound(raw.get("rating_max")),
    )

    city = raw.get("city")
    if isinstance(city, str):
        city = city.strip().lower() or None
    else:
        city = None

    return FilterSet(
        bbox=parse_bbox(raw.get("bbox")),
        city=city,
        primary_types=_csv_tuple(raw.get("primary_type")),
        subcategories=_csv_tuple(raw.get("subcategory")),
        neighbourhood_slugs=_csv_tuple(raw.get("neighbourhood_slug")),
        district_slugs=_csv_tuple(raw.get("district_slug")),
        tags_all=_csv_tuple(raw.get("tags")),
        tags_any=_csv_tuple(raw.get("tags_any")),
        awards_providers=_csv_tuple(raw.get("awards")),
        price_min=price_min,
        price_max=price_max,
        rating_min=rating_min,
        rating_max=rating_max,
        awarded=parse_bool_tristate(raw.get("awarded")),
        fresh=parse_bool_tristate(raw.get("fresh")),
    )
