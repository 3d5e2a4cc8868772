"""
Response assembly: primary rows + enrichment maps -> response items.

One builder per shape (card, detail card, single-POI detail, collection).
Each builder reads the backend row and the EnrichmentBundle and returns a
fresh dict; rows are never mutated.
"""

import json
import logging
from typing import Any

from api.enrichment import EnrichmentBundle, photo_block_from, primary_photo
from utils.formatting import build_breadcrumb, favicon_url, pick_lang

logger = logging.getLogger(__name__)

GALLERY_LIMIT = 5
SCORE_FIELDS = (
    ("gatto", "gatto_score"),
    ("digital", "digital_score"),
    ("awards_bonus", "awards_bonus"),
    ("freshness_bonus", "freshness_bonus"),
)


def _number(value) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def scores_for(row: dict, bundle: EnrichmentBundle) -> dict[str, float | None]:
    """Score breakdown from the score lookup, else from columns on the row."""
    source = bundle.scores.get(str(row["id"])) or row
    return {name: _number(source.get(column)) for name, column in SCORE_FIELDS}


def rating_for(row: dict, bundle: EnrichmentBundle) -> dict | None:
    """Google rating from the rating lookup, else embedded columns, else None."""
    looked_up = bundle.ratings.get(str(row["id"]))
    if looked_up is not None:
        value, count = looked_up.get("rating_value"), looked_up.get("reviews_count")
    elif row.get("rating_value") is not None:
        value, count = row.get("rating_value"), row.get("rating_reviews_count")
    else:
        return None
    return {"google": _number(value), "reviews_count": int(count or 0)}


def _embedded_mentions(row: dict) -> list[dict]:
    raw = row.get("mentions_sample")
    if not raw:
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning("unparseable mentions_sample on POI %s", row.get("id"))
            return []
    return [
        {
            "domain": m.get("domain"),
            "favicon": favicon_url(m.get("domain")),
            "title": m.get("title"),
            "url": m.get("url"),
        }
        for m in raw if isinstance(m, dict)
    ]


def mentions_for(row: dict, bundle: EnrichmentBundle) -> tuple[int, list[dict]]:
    summary = bundle.mentions.get(str(row["id"]))
    if summary is not None:
        return summary.count, summary.sample
    sample = _embedded_mentions(row)
    return int(row.get("mentions_count") or len(sample)), sample


def coords_for(row: dict) -> dict | None:
    lat, lng = _number(row.get("lat")), _number(row.get("lng"))
    if lat is None or lng is None:
        return None
    return {"lat": lat, "lng": lng}


def _block_summary(block: dict | None) -> dict | None:
    if block is None:
        return None
    return {
        "variants": block["variants"],
        "dominant_color": block["dominant_color"],
        "blurhash": block["blurhash"],
    }


def _gallery(bundle: EnrichmentBundle, photos: list[dict], primary: dict | None) -> list[dict]:
    others = [p for p in photos if primary is None or p.get("id") != primary.get("id")]
    blocks = (photo_block_from(bundle.photos.variants, p, "detail") for p in others[:GALLERY_LIMIT])
    return [b for b in blocks if b is not None]


def _common_fields(row: dict, bundle: EnrichmentBundle, lang: str) -> dict[str, Any]:
    scores = scores_for(row, bundle)
    mentions_count, mentions_sample = mentions_for(row, bundle)
    badge = bundle.badges.get(str(row["id"]))
    return {
        "id": row["id"],
        "slug": pick_lang(row, lang, "slug"),
        "name": pick_lang(row, lang, "name"),
        "primary_type": row.get("primary_type"),
        "subcategories": row.get("subcategories") or [],
        "district": row.get("district_slug"),
        "neighbourhood": row.get("neighbourhood_slug"),
        "summary": pick_lang(row, lang, "ai_summary"),
        "score": scores["gatto"],
        "scores": scores,
        "rating": rating_for(row, bundle),
        "mentions_count": mentions_count,
        "mentions_sample": mentions_sample,
        "badge": badge.to_dict() if badge else None,
    }


def build_card_item(row: dict, bundle: EnrichmentBundle, lang: str, view: str = "card") -> dict:
    """List item for the ``card`` or ``detail`` view.

    ``card`` carries one primary photo block and the score / rating /
    mention summary.  ``detail`` adds coordinates, opening hours, price
    level and a gallery of up to five non-primary photos.
    """
    photos = bundle.photos.for_poi(row["id"])
    primary = primary_photo(photos)
    photo = photo_block_from(bundle.photos.variants, primary, "card_sq") if primary else None

    item = _common_fields(row, bundle, lang)
    item["photo"] = _block_summary(photo)
    item["tags_flat"] = row.get("tags_flat") or []
    if view == "detail":
        item["coords"] = coords_for(row)
        item["opening_hours"] = row.get("opening_hours")
        item["price_level"] = row.get("price_level")
        item["gallery"] = _gallery(bundle, photos, primary)
    return item


def build_poi_detail(row: dict, bundle: EnrichmentBundle, lang: str) -> dict:
    """Single-POI detail page: detail view plus tags, recent mentions and breadcrumb."""
    photos = bundle.photos.for_poi(row["id"])
    primary = primary_photo(photos)
    primary_block = None
    if primary:
        detail_block = photo_block_from(bundle.photos.variants, primary, "detail")
        card_block = photo_block_from(bundle.photos.variants, primary, "card_sq")
        if detail_block:
            primary_block = dict(_block_summary(detail_block), card=_block_summary(card_block))

    item = _common_fields(row, bundle, lang)
    summary = bundle.mentions.get(str(row["id"]))
    scores_row = bundle.scores.get(str(row["id"])) or {}
    item["scores"] = dict(item["scores"], calculated_at=scores_row.get("calculated_at"))
    item.update(
        city=row.get("city"),
        coords=coords_for(row),
        price_level=row.get("price_level"),
        opening_hours=row.get("opening_hours"),
        address=row.get("address_street"),
        website=row.get("website"),
        phone=row.get("phone"),
        google_place_id=row.get("google_place_id"),
        tags_keys=row.get("tags") or [],
        tags=bundle.tag_labels,
        photos={"primary": primary_block, "gallery": _gallery(bundle, photos, primary)},
        mentions=summary.details if summary else [],
        breadcrumb=build_breadcrumb(row, lang),
    )
    return item


def build_collection_item(row: dict, lang: str, poi_count: int, cover: dict | None) -> dict:
    return {
        "id": row["id"],
        "slug": pick_lang(row, lang, "slug"),
        "title": pick_lang(row, lang, "title"),
        "description": pick_lang(row, lang, "description"),
        "city": row.get("city_slug"),
        "poi_count": poi_count,
        "cover": _block_summary(cover),
    }
