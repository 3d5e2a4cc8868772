"""
Unit tests for utils/formatting.py and utils/strings.py

Language fallback, field allowlists, favicons, breadcrumbs, segment
sorting and pagination blocks.  No app, backend or network required.
"""
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from utils.formatting import (
    build_breadcrumb,
    favicon_url,
    filter_fields,
    keyset_pagination,
    offset_pagination,
    parse_fields,
    pick_lang,
    score_to_5_scale,
    sort_by_segment,
)
from utils.strings import normalize_query, parse_csv, pluralize_category, slugify


# ── pick_lang ─────────────────────────────────────────────────────────────────

class TestPickLang:
    def test_requested_language_first(self):
        row = {"name_fr": "Le Chat", "name_en": "The Cat", "name": "Legacy"}
        assert pick_lang(row, "en", "name") == "The Cat"
        assert pick_lang(row, "fr", "name") == "Le Chat"

    def test_falls_back_to_other_language(self):
        assert pick_lang({"name_fr": "Le Chat", "name_en": None}, "en", "name") == "Le Chat"

    def test_falls_back_to_legacy_column(self):
        assert pick_lang({"name": "Legacy"}, "en", "name") == "Legacy"

    def test_empty_string_falls_through(self):
        assert pick_lang({"name_en": "", "name_fr": "Le Chat"}, "en", "name") == "Le Chat"

    def test_nothing(self):
        assert pick_lang({}, "fr", "name") is None


# ── fields ────────────────────────────────────────────────────────────────────

def test_parse_fields():
    assert parse_fields(None) is None
    assert parse_fields(" , ") is None
    assert parse_fields("score, photo") == ["score", "photo"]


def test_filter_fields_keeps_identity():
    item = {"id": 1, "slug": "s", "name": "n", "score": 80, "photo": None, "rating": None}
    assert filter_fields(item, ["score"]) == {"id": 1, "slug": "s", "name": "n", "score": 80}
    assert filter_fields(item, None) is item


# ── favicons / scores ─────────────────────────────────────────────────────────

class TestFavicon:
    def test_regular_domain(self):
        assert favicon_url("LeFigaro.fr") == (
            "https://www.google.com/s2/favicons?domain=lefigaro.fr&sz=64"
        )

    @pytest.mark.parametrize("domain", ["guide.michelin.com", "gaultmillau.com", "fr.gault-millau.com"])
    def test_blacklisted_brand_uses_placeholder(self, domain):
        assert "domain=gatto.city" in favicon_url(domain)

    def test_no_domain(self):
        assert favicon_url(None) is None


def test_score_to_5_scale():
    assert score_to_5_scale(80) == 4.0
    assert score_to_5_scale(73) == 3.65
    assert score_to_5_scale(None) == 0.0
    assert score_to_5_scale(150) == 5.0
    assert score_to_5_scale(-10) == 0.0


# ── breadcrumb ────────────────────────────────────────────────────────────────

class TestBreadcrumb:
    def test_full_trail(self):
        row = {"city": "Paris", "city_slug": "paris", "primary_type": "restaurant",
               "district_name": "Le Marais"}
        crumbs = build_breadcrumb(row, "fr")
        assert crumbs == [
            {"label": "Paris", "href": "/paris"},
            {"label": "Restaurants", "href": "/paris/restaurants"},
            {"label": "Le Marais", "href": "/paris/restaurants/le-marais"},
        ]

    def test_city_only(self):
        assert build_breadcrumb({}, "fr") == [{"label": "Paris", "href": "/paris"}]


# ── segment sort ──────────────────────────────────────────────────────────────

class TestSortBySegment:
    def _item(self, name, gatto, digital=None):
        return {"name": name, "scores": {"gatto": gatto, "digital": digital}}

    def test_sorted_by_segment_then_gatto(self):
        items = [self._item("a", 50, 10), self._item("b", 90, 30), self._item("c", 70, 30)]
        assert [i["name"] for i in sort_by_segment(items, "digital")] == ["b", "c", "a"]

    def test_missing_values_rank_last(self):
        items = [self._item("a", 50, None), self._item("b", 10, 5)]
        assert [i["name"] for i in sort_by_segment(items, "digital")] == ["b", "a"]

    def test_ties_keep_input_order(self):
        items = [self._item("a", 50, 10), self._item("b", 50, 10)]
        assert [i["name"] for i in sort_by_segment(items, "digital")] == ["a", "b"]


# ── pagination ────────────────────────────────────────────────────────────────

def test_offset_pagination():
    block = offset_pagination(101, 5, 24)
    assert block == {"total": 101, "page": 5, "limit": 24, "total_pages": 5,
                     "has_next": False, "has_prev": True}
    assert offset_pagination(0, 1, 24)["total_pages"] == 0


def test_keyset_pagination_only_on_full_page():
    rows = [{"id": 1}, {"id": 2}]
    assert keyset_pagination(rows, 2, lambda r: f"after-{r['id']}") == {
        "next_cursor": "after-2", "previous_cursor": None,
    }
    assert keyset_pagination(rows, 3, lambda r: "x")["next_cursor"] is None


# ── strings ───────────────────────────────────────────────────────────────────

class TestStrings:
    def test_parse_csv(self):
        assert parse_csv(" Bar, restaurant,,bar ") == ["bar", "restaurant"]
        assert parse_csv(["a,b", "a"]) == ["a", "b"]
        assert parse_csv(",,") is None
        assert parse_csv(None) is None
        assert parse_csv("A", lowercase=False) == ["A"]

    def test_slugify(self):
        assert slugify("Le Marais (4e)") == "le-marais-4e"
        assert slugify("Café  des   Arts") == "cafe-des-arts"
        assert slugify(None) == ""

    def test_normalize_query(self):
        assert normalize_query("  Œufs  Brouillés ") == "oeufs brouilles"
        assert normalize_query("l’ami") == "l'ami"

    def test_pluralize_category(self):
        assert pluralize_category("café", "fr") == "cafés"
        assert pluralize_category("bistrot", "fr") == "bistrots"
        assert pluralize_category("bar", "en") == "bars"
