"""String processing utilities for the Gatto API.

CSV filter parsing, slug generation and search-query normalization.  These
run on every request, so all regexes come pre-compiled from utils.patterns.
"""

import unicodedata
from typing import Iterable

from utils.patterns import APOSTROPHES, DASH_RUNS, NON_SLUG_CHARS, WHITESPACE


def parse_csv(value, lowercase: bool = True) -> list[str] | None:
    """Parse a comma-separated query value into a deduplicated list.

    Splits on commas, trims each piece, drops empties and (optionally)
    lowercases.  Duplicates are removed keeping first-seen order, so the
    list passed to the backend preserves what the caller asked for.

    A list input (repeated query keys, or an already-parsed value) is
    flattened the same way, which makes the function idempotent.

    Example:
        " Bar, restaurant,,bar " -> ["bar", "restaurant"]

    Args:
        value: Raw string, iterable of strings, or None.
        lowercase: Lowercase each item (categories, tags and slugs are
            case-insensitive).

    Returns:
        Non-empty list of items, or None when nothing remains.
    """
    if value is None:
        return None
    if isinstance(value, str):
        pieces: Iterable[str] = value.split(",")
    else:
        pieces = [p for v in value if v is not None for p in str(v).split(",")]

    seen: set[str] = set()
    items: list[str] = []
    for piece in pieces:
        item = piece.strip()
        if lowercase:
            item = item.lower()
        if item and item not in seen:
            seen.add(item)
            items.append(item)
    return items or None


def strip_accents(s: str) -> str:
    """Remove combining diacritics: "Café" -> "Cafe"."""
    decomposed = unicodedata.normalize("NFD", s)
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def slugify(s: str | None) -> str:
    """Convert a display name into a URL path segment.

    Example:
        "Le Marais (4e)" -> "le-marais-4e"
    """
    if not s:
        return ""
    out = strip_accents(s.lower())
    out = NON_SLUG_CHARS.sub("", out)
    out = WHITESPACE.sub("-", out)
    out = DASH_RUNS.sub("-", out)
    return out.strip("-")


def normalize_query(q: str | None) -> str:
    """Normalize a free-text search query for matching and metrics.

    Lowercases, folds French ligatures, unifies apostrophes, strips
    accents and collapses whitespace.
    """
    if not q:
        return ""
    s = q.lower().replace("œ", "oe").replace("æ", "ae")
    s = APOSTROPHES.sub("'", s)
    s = strip_accents(s)
    return WHITESPACE.sub(" ", s).strip()


_FR_PLURALS = {
    "bar": "bars",
    "café": "cafés",
    "restaurant": "restaurants",
    "boulangerie": "boulangeries",
    "patisserie": "patisseries",
    "hotel": "hotels",
}


def pluralize_category(category: str | None, lang: str = "fr") -> str | None:
    """Plural label for a category, used in breadcrumbs."""
    if not category:
        return category
    if lang == "fr":
        return _FR_PLURALS.get(category.lower(), category + "s")
    return category + "s"
