"""Response formatting helpers for the Gatto API.

Provides reusable functions for:
- Multilingual field selection and field allowlists
- Favicon URLs for mention sources
- Breadcrumb trails and fallback segment sorting
- Pagination metadata for offset and keyset endpoints
"""

import math
from typing import Any, Callable, Dict, List, Optional

from utils.config import DEFAULT_CITY
from utils.strings import pluralize_category, slugify

FAVICON_TEMPLATE = "https://www.google.com/s2/favicons?domain={domain}&sz=64"
# Brand keywords never shown with their own favicon
FAVICON_BLACKLIST = ("michelin", "gaultmillau", "gault-millau")
FAVICON_PLACEHOLDER_DOMAIN = "gatto.city"

ALWAYS_INCLUDED_FIELDS = ("id", "slug", "name")


def pick_lang(obj: Dict[str, Any], lang: str, base: str) -> Any:
    """Pick a multilingual field with fallback.

    Precedence: ``<base>_<lang>``, then the other supported language, then
    the legacy unsuffixed ``<base>`` column, then None.  Empty values fall
    through to the next candidate.

    Examples:
        pick_lang({"name_fr": "Le Chat", "name": "Legacy"}, "en", "name") -> "Le Chat"
        pick_lang({"name": "Legacy"}, "en", "name") -> "Legacy"
    """
    other = "en" if lang == "fr" else "fr"
    for key in (f"{base}_{lang}", f"{base}_{other}", base):
        value = obj.get(key)
        if value:
            return value
    return None


def parse_fields(fields: Optional[str]) -> Optional[List[str]]:
    """Split a ``fields=`` selector into names; None when absent or empty."""
    if not fields:
        return None
    names = [f.strip() for f in fields.split(",") if f.strip()]
    return names or None


def filter_fields(item: Dict[str, Any], fields: Optional[List[str]]) -> Dict[str, Any]:
    """Apply a caller-supplied field allowlist to one response item.

    ``id``, ``slug`` and ``name`` are always kept.  Without an allowlist the
    item is returned unchanged.
    """
    if not fields:
        return item
    wanted = list(ALWAYS_INCLUDED_FIELDS) + [f for f in fields if f not in ALWAYS_INCLUDED_FIELDS]
    return {name: item[name] for name in wanted if name in item}


def favicon_url(domain: Optional[str]) -> Optional[str]:
    """Favicon URL for a mention domain.

    Domains matching a blacklisted brand keyword get the placeholder domain
    instead of their own.
    """
    if not domain:
        return None
    lowered = domain.lower()
    if any(word in lowered for word in FAVICON_BLACKLIST):
        lowered = FAVICON_PLACEHOLDER_DOMAIN
    return FAVICON_TEMPLATE.format(domain=lowered)


def score_to_5_scale(score: Optional[float]) -> float:
    """Rescale a 0-100 score to 0-5 with two decimals (None -> 0)."""
    if score is None:
        return 0.0
    try:
        value = float(score) / 20.0
    except (TypeError, ValueError):
        return 0.0
    return round(min(max(value, 0.0), 5.0), 2)


def build_breadcrumb(row: Dict[str, Any], lang: str) -> List[Dict[str, str]]:
    """Breadcrumb trail city -> category -> district for a detail page."""
    city_slug = row.get("city_slug") or DEFAULT_CITY
    crumbs = [{
        "label": row.get("city") or city_slug.capitalize(),
        "href": f"/{city_slug}",
    }]

    category = row.get("primary_type")
    if not category:
        return crumbs
    plural = pluralize_category(category, lang)
    category_path = f"/{city_slug}/{slugify(category)}s"
    crumbs.append({
        "label": plural[:1].upper() + plural[1:],
        "href": category_path,
    })

    district = row.get("district_name") or row.get("district_slug")
    if district:
        crumbs.append({
            "label": district,
            "href": f"{category_path}/{slugify(district)}",
        })
    return crumbs


# segment -> scores field ranked first
_SEGMENT_FIELDS = {
    "digital": "digital",
    "awarded": "awards_bonus",
    "fresh": "freshness_bonus",
}


def _score(item: Dict[str, Any], name: str) -> float:
    value = (item.get("scores") or {}).get(name)
    if value is None:
        return -math.inf
    return float(value)


def sort_by_segment(items: List[Dict[str, Any]], segment: Optional[str]) -> List[Dict[str, Any]]:
    """Stable descending sort of assembled items by a segment score.

    Ties fall back to the gatto score; missing values rank lowest.  Without
    a known segment the gatto score alone is used.
    """
    field = _SEGMENT_FIELDS.get(segment or "", "gatto")
    return sorted(
        items,
        key=lambda it: (_score(it, field), _score(it, "gatto")),
        reverse=True,
    )


def offset_pagination(total: int, page: int, limit: int) -> Dict[str, Any]:
    """Pagination block for offset endpoints.

    Example:
        offset_pagination(101, 5, 24)["total_pages"] -> 5
    """
    total_pages = math.ceil(total / limit) if limit > 0 else 0
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }


def keyset_pagination(
    rows: List[Dict[str, Any]],
    limit: int,
    cursor_for: Callable[[Dict[str, Any]], str],
) -> Dict[str, Any]:
    """Cursor block for keyset endpoints.

    A ``next_cursor`` is only emitted when the page came back full; keyset
    paging is forward-only so ``previous_cursor`` is always None.
    """
    next_cursor = cursor_for(rows[-1]) if rows and len(rows) == limit else None
    return {"next_cursor": next_cursor, "previous_cursor": None}
