"""
Result enrichment for POI responses.

Given the ordered POI ids returned by a primary backend call, fetch the
auxiliary data each response needs (photos + variants, ratings, mention
sources, scores, category percentiles, tag labels) and index it by POI id
so the assembler can join in O(1).

All fetches for one request start together and are awaited together.  A
failing branch is logged and contributes nothing; it never fails the
request.  Only the primary call (in the route) is fatal.
"""

import asyncio
import logging
import zlib
from dataclasses import dataclass, field
from typing import Any, Iterable

from utils.formatting import favicon_url

logger = logging.getLogger(__name__)

MENTION_DETAILS_LIMIT = 6
BADGE_MIN_CATEGORY_SIZE = 5
FRESHNESS_BADGE_THRESHOLD = 5.0
FORMAT_RANK = {"avif": 0, "webp": 1, "jpg": 2}

CARD_VARIANTS = ("card_sq",)
DETAIL_VARIANTS = ("card_sq", "detail", "thumb_small")

_PHOTO_COLUMNS = (
    "id,poi_id,dominant_color,blurhash,is_primary,width,height,cdn_url,format,"
    "poi_photo_variants(photo_id,variant_key,cdn_url,format,width,height)"
)


# ── Enrichment records ────────────────────────────────────────────────────────

@dataclass
class PhotoIndex:
    """Photos grouped by POI (primary first) and variants grouped by photo."""
    photos: dict[str, list[dict]] = field(default_factory=dict)
    variants: dict[str, list[dict]] = field(default_factory=dict)

    def for_poi(self, poi_id) -> list[dict]:
        return self.photos.get(str(poi_id), [])


@dataclass
class MentionSummary:
    count: int
    sample: list[dict]
    details: list[dict] = field(default_factory=list)


@dataclass(frozen=True)
class Badge:
    key: str
    label: str
    tagline: str

    def to_dict(self) -> dict[str, str]:
        return {"key": self.key, "label": self.label, "tagline": self.tagline}


@dataclass
class EnrichmentBundle:
    """Per-request enrichment maps keyed by POI id (as str).

    An id missing from a map means "no data"; ``failed`` names the branches
    that errored and were degraded to empty.
    """
    photos: PhotoIndex = field(default_factory=PhotoIndex)
    ratings: dict[str, dict] = field(default_factory=dict)
    mentions: dict[str, MentionSummary] = field(default_factory=dict)
    scores: dict[str, dict] = field(default_factory=dict)
    badges: dict[str, Badge] = field(default_factory=dict)
    tag_labels: list = field(default_factory=list)
    failed: set[str] = field(default_factory=set)


# ── Photo variant selection ───────────────────────────────────────────────────

def expand_variant_keys(prefixes: Iterable[str]) -> list[str]:
    """``card_sq`` -> ``card_sq@1x, card_sq@2x``; explicit densities kept."""
    keys: list[str] = []
    for prefix in prefixes:
        if "@" in prefix:
            keys.append(prefix)
        else:
            keys.extend((f"{prefix}@1x", f"{prefix}@2x"))
    return keys


def photo_block_from(variants_index: dict[str, list[dict]], photo: dict, prefix: str) -> dict | None:
    """Build the renderable block for one photo and variant key prefix.

    Variants matching *prefix* are ordered by variant key, then by format
    preference (avif, webp, jpg).  With no matching variant the photo's own
    master URL becomes a single-variant block; with neither, None.
    """
    matching = [
        v for v in variants_index.get(str(photo.get("id")), [])
        if (v.get("variant_key") or "").startswith(prefix)
    ]
    matching.sort(key=lambda v: (v["variant_key"], FORMAT_RANK.get(v.get("format"), len(FORMAT_RANK))))
    variants = [
        {
            "variant_key": v["variant_key"],
            "format": v.get("format"),
            "url": v.get("cdn_url"),
            "width": v.get("width"),
            "height": v.get("height"),
        }
        for v in matching
    ]
    if variants:
        return {
            "variants": variants,
            "width": photo.get("width") or variants[0]["width"] or None,
            "height": photo.get("height") or variants[0]["height"] or None,
            "dominant_color": photo.get("dominant_color") or None,
            "blurhash": photo.get("blurhash") or None,
        }
    if photo.get("cdn_url"):
        return {
            "variants": [{
                "variant_key": None,
                "format": photo.get("format") or "jpg",
                "url": photo["cdn_url"],
                "width": photo.get("width") or None,
                "height": photo.get("height") or None,
            }],
            "width": photo.get("width") or None,
            "height": photo.get("height") or None,
            "dominant_color": photo.get("dominant_color") or None,
            "blurhash": photo.get("blurhash") or None,
        }
    return None


def primary_photo(photos: list[dict]) -> dict | None:
    for photo in photos:
        if photo.get("is_primary"):
            return photo
    return photos[0] if photos else None


# ── Percentile badges ─────────────────────────────────────────────────────────

_BADGE_LABELS = {
    "reference": {"fr": "Référence", "en": "Reference"},
    "excellent": {"fr": "Excellent", "en": "Excellent"},
    "solid": {"fr": "Solide", "en": "Solid"},
    "good_choice": {"fr": "Bon choix", "en": "Good choice"},
    "up_and_coming": {"fr": "Étoile montante", "en": "Up & coming"},
}

_TAGLINES = {
    "reference": {
        "fr": ["Parmi les meilleures adresses de sa catégorie",
               "Une valeur sûre, unanimement saluée",
               "Le haut du panier"],
        "en": ["Among the very best in its category",
               "A sure bet, praised across the board",
               "Top of the class"],
    },
    "excellent": {
        "fr": ["Une adresse qui se démarque",
               "Très bien notée par la critique",
               "Un cran au-dessus"],
        "en": ["A standout address",
               "Highly rated by critics",
               "A notch above the rest"],
    },
    "solid": {
        "fr": ["Une adresse fiable",
               "Régulièrement recommandée",
               "Du sérieux, sans surprise"],
        "en": ["A reliable address",
               "Consistently recommended",
               "Dependable, no surprises"],
    },
    "good_choice": {
        "fr": ["Un bon plan du quartier",
               "Une adresse qui fait le job",
               "À garder en tête"],
        "en": ["A good neighbourhood pick",
               "Does the job well",
               "Worth keeping in mind"],
    },
    "up_and_coming": {
        "fr": ["On en parle de plus en plus",
               "Une adresse qui monte",
               "La nouveauté à surveiller"],
        "en": ["Getting talked about more and more",
               "On the rise",
               "One to watch"],
    },
}

# (upper percentile bound, tier); percentile is "top N %" so lower is better
_LADDER = ((10, "reference"), (25, "excellent"), (40, "solid"), (60, "good_choice"))


def pick_tagline(poi_id, tier: str, lang: str) -> str:
    """Deterministic tagline for a POI: a CRC32 of the id selects from the pool."""
    pool = _TAGLINES[tier].get(lang) or _TAGLINES[tier]["fr"]
    return pool[zlib.crc32(str(poi_id).encode("utf-8")) % len(pool)]


def badge_for(
    poi_id,
    percentile: float | None,
    category_size: int | None,
    freshness_bonus: float | None = None,
    lang: str = "fr",
) -> Badge | None:
    """Map a within-category percentile to a badge, or None.

    Categories smaller than five POIs never get a badge.
    """
    if category_size is None or category_size < BADGE_MIN_CATEGORY_SIZE:
        return None
    tier = None
    if percentile is not None:
        for bound, name in _LADDER:
            if percentile <= bound:
                tier = name
                break
    if tier is None and freshness_bonus is not None and freshness_bonus > FRESHNESS_BADGE_THRESHOLD:
        tier = "up_and_coming"
    if tier is None:
        return None
    label = _BADGE_LABELS[tier].get(lang) or _BADGE_LABELS[tier]["fr"]
    return Badge(key=tier, label=label, tagline=pick_tagline(poi_id, tier, lang))


# ── Engine ────────────────────────────────────────────────────────────────────

class EnrichmentEngine:
    """Parallel auxiliary lookups for a batch of POI ids."""

    def __init__(self, backend) -> None:
        self._backend = backend

    async def fetch_photos(self, poi_ids: list, variant_prefixes: Iterable[str] = CARD_VARIANTS) -> PhotoIndex:
        """Active photos and their requested variants, in one combined query."""
        if not poi_ids:
            return PhotoIndex()
        rows = await self._backend.select(
            "poi_photos",
            _PHOTO_COLUMNS,
            eq={"status": "active"},
            in_={
                "poi_id": poi_ids,
                "poi_photo_variants.variant_key": expand_variant_keys(variant_prefixes),
            },
            order=["is_primary.desc", "position.asc"],
        )
        index = PhotoIndex()
        seen_photos: set[str] = set()
        for row in rows:
            photo_id = str(row["id"])
            if photo_id in seen_photos:
                continue
            seen_photos.add(photo_id)
            photo = {k: v for k, v in row.items() if k != "poi_photo_variants"}
            index.photos.setdefault(str(row["poi_id"]), []).append(photo)
            for variant in row.get("poi_photo_variants") or []:
                index.variants.setdefault(photo_id, []).append(variant)
        return index

    async def fetch_ratings(self, poi_ids: list) -> dict[str, dict]:
        if not poi_ids:
            return {}
        rows = await self._backend.select(
            "latest_google_rating",
            "poi_id,rating_value,reviews_count",
            in_={"poi_id": poi_ids},
        )
        ratings: dict[str, dict] = {}
        for row in rows:
            ratings.setdefault(str(row["poi_id"]), row)
        return ratings

    async def fetch_scores(self, poi_ids: list) -> dict[str, dict]:
        if not poi_ids:
            return {}
        rows = await self._backend.select(
            "latest_gatto_scores",
            "poi_id,gatto_score,digital_score,awards_bonus,freshness_bonus,calculated_at",
            in_={"poi_id": poi_ids},
        )
        scores: dict[str, dict] = {}
        for row in rows:
            scores.setdefault(str(row["poi_id"]), row)
        return scores

    async def fetch_mentions(self, poi_ids: list, include_details: bool = False) -> dict[str, MentionSummary]:
        """Distinct accepted mention sources per POI, one sample per domain.

        With *include_details* and a single id, also fetch the most recent
        accepted mentions (publish guess first, then last seen).
        """
        if not poi_ids:
            return {}
        want_details = include_details and len(poi_ids) == 1
        queries = [self._backend.select(
            "ai_mention",
            "poi_id,domain,title,url",
            eq={"ai_decision": "ACCEPT"},
            in_={"poi_id": poi_ids},
        )]
        if want_details:
            queries.append(self._backend.select(
                "ai_mention",
                "domain,title,excerpt,url,published_at_guess,last_seen_at",
                eq={"poi_id": poi_ids[0], "ai_decision": "ACCEPT"},
                order=["published_at_guess.desc.nullslast", "last_seen_at.desc"],
                limit=MENTION_DETAILS_LIMIT,
            ))
        results = await asyncio.gather(*queries, return_exceptions=True)
        if isinstance(results[0], BaseException):
            raise results[0]
        details = results[1] if want_details else None
        if isinstance(details, Exception):
            logger.warning("mention details for poi %s failed: %s", poi_ids[0], details)
            details = None
        elif isinstance(details, BaseException):
            raise details

        by_poi: dict[str, dict[str, dict]] = {}
        for row in results[0]:
            domain = row.get("domain")
            if not domain:
                continue
            domains = by_poi.setdefault(str(row["poi_id"]), {})
            if domain not in domains:
                domains[domain] = {
                    "domain": domain,
                    "favicon": favicon_url(domain),
                    "title": row.get("title"),
                    "url": row.get("url"),
                }
        summaries = {
            poi_id: MentionSummary(count=len(domains), sample=list(domains.values()))
            for poi_id, domains in by_poi.items()
        }
        if details:
            key = str(poi_ids[0])
            summary = summaries.setdefault(key, MentionSummary(count=0, sample=[]))
            summary.details = [
                {
                    "domain": m.get("domain"),
                    "favicon": favicon_url(m.get("domain")),
                    "title": m.get("title"),
                    "excerpt": m.get("excerpt"),
                    "url": m.get("url"),
                    "published_at": m.get("published_at_guess"),
                }
                for m in details[:MENTION_DETAILS_LIMIT]
            ]
        return summaries

    async def fetch_badges(self, poi_ids: list, lang: str = "fr") -> dict[str, Badge]:
        """Percentile-within-category badges via ``get_category_percentiles``."""
        if not poi_ids:
            return {}
        rows = await self._backend.rpc("get_category_percentiles", {"p_poi_ids": poi_ids})
        badges: dict[str, Badge] = {}
        for row in rows or []:
            badge = badge_for(
                row["poi_id"],
                row.get("percentile"),
                row.get("category_size"),
                row.get("freshness_bonus"),
                lang,
            )
            if badge is not None:
                badges[str(row["poi_id"])] = badge
        return badges

    async def fetch_tag_labels(self, tags: list | None, lang: str = "fr") -> list:
        if not tags:
            return []
        labels = await self._backend.rpc("enrich_tags_with_labels", {"p_tags": tags, "p_lang": lang})
        return labels or []

    async def enrich(
        self,
        poi_ids: list,
        *,
        lang: str = "fr",
        variant_prefixes: Iterable[str] = CARD_VARIANTS,
        photos: bool = True,
        ratings: bool = True,
        mentions: bool = True,
        mention_details: bool = False,
        scores: bool = False,
        badges: bool = True,
        tags: list | None = None,
    ) -> EnrichmentBundle:
        """Run every requested lookup concurrently and collect the maps.

        Args:
            poi_ids: POI ids in primary-result order.
            lang: Language for badge labels and tag labels.
            variant_prefixes: Photo variant families to load.
            photos, ratings, mentions, scores, badges: Branch switches.
            mention_details: Also load the recent-mention list (single id).
            tags: Tag keys to resolve into labels (detail pages).

        Returns:
            EnrichmentBundle; failed branches are empty and listed in
            ``failed``.
        """
        bundle = EnrichmentBundle()
        if not poi_ids:
            return bundle

        branches: dict[str, Any] = {}
        if photos:
            branches["photos"] = self.fetch_photos(poi_ids, variant_prefixes)
        if ratings:
            branches["ratings"] = self.fetch_ratings(poi_ids)
        if mentions:
            branches["mentions"] = self.fetch_mentions(poi_ids, include_details=mention_details)
        if scores:
            branches["scores"] = self.fetch_scores(poi_ids)
        if badges:
            branches["badges"] = self.fetch_badges(poi_ids, lang)
        if tags:
            branches["tag_labels"] = self.fetch_tag_labels(tags, lang)

        results = await asyncio.gather(*branches.values(), return_exceptions=True)
        for name, result in zip(branches, results):
            if isinstance(result, Exception):
                logger.warning(
                    "enrichment branch %s failed for %d POIs: %s",
                    name, len(poi_ids), result,
                    exc_info=result,
                )
                bundle.failed.add(name)
                continue
            if isinstance(result, BaseException):
                raise result
            setattr(bundle, name, result)
        return bundle
