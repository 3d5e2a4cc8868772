"""
Tests for utils/query.py: sort resolution, cursors and procedure bundles.
"""
import base64
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from utils.query import (
    KeysetCursor,
    SortKey,
    build_facets_params,
    clamp_limit,
    compile_search_request,
    decode_keyset_cursor,
    decode_offset_cursor,
    encode_keyset_cursor,
    encode_offset_cursor,
    resolve_sort,
)
from utils.validation import normalize_filters

FACET_KEYS = {
    "p_bbox", "p_city_slug", "p_primary_types", "p_subcategories",
    "p_neighbourhood_slugs", "p_district_slugs", "p_tags_all", "p_tags_any",
    "p_awards_providers", "p_price_min", "p_price_max", "p_rating_min",
    "p_rating_max", "p_awarded", "p_fresh", "p_sort",
}


class TestResolveSort:
    def test_default_is_gatto(self):
        assert resolve_sort(None) is SortKey.GATTO

    def test_unknown_falls_back(self):
        assert resolve_sort("nonsense") is SortKey.GATTO

    def test_segment_applies_without_explicit_sort(self):
        assert resolve_sort(None, "digital") is SortKey.DIGITAL
        assert resolve_sort("gatto", "fresh") is SortKey.FRESH

    def test_explicit_sort_wins_over_segment(self):
        assert resolve_sort("price_asc", "awarded") is SortKey.PRICE_ASC


def test_clamp_limit():
    assert clamp_limit(None) == 50
    assert clamp_limit("abc") == 50
    assert clamp_limit(0) == 1
    assert clamp_limit(500) == 80
    assert clamp_limit("24") == 24


class TestCursors:
    def test_keyset_round_trip(self):
        token = encode_keyset_cursor(KeysetCursor(score=82.5, id="p1"))
        assert "=" not in token
        assert decode_keyset_cursor(token) == KeysetCursor(score=82.5, id="p1")

    def test_keyset_garbage_decodes_to_none(self):
        assert decode_keyset_cursor("!!!not-base64") is None
        assert decode_keyset_cursor(encode_offset_cursor(10)) is None
        assert decode_keyset_cursor("") is None

    @pytest.mark.parametrize("payload", [
        b'{"score":Infinity,"id":"p1"}',
        b'{"score":-Infinity,"id":"p1"}',
        b'{"score":NaN,"id":"p1"}',
    ])
    def test_keyset_non_finite_score_decodes_to_none(self, payload):
        token = base64.urlsafe_b64encode(payload).decode().rstrip("=")
        assert decode_keyset_cursor(token) is None

    def test_offset_cursor(self):
        assert decode_offset_cursor(encode_offset_cursor(24)) == 24
        assert decode_offset_cursor("garbage") == 0
        assert decode_offset_cursor(None) == 0


class TestBundles:
    def test_facets_bundle_has_every_key(self):
        params = build_facets_params(normalize_filters({}))
        assert set(params) == FACET_KEYS
        assert params["p_sort"] == "gatto"
        assert all(v is None for k, v in params.items() if k != "p_sort")

    def test_bbox_takes_priority_over_city(self):
        f = normalize_filters({"bbox": "48.8,2.3,48.9,2.4", "city": "paris"})
        params = build_facets_params(f)
        assert params["p_bbox"] == [48.8, 2.3, 48.9, 2.4]
        assert params["p_city_slug"] is None

    def test_city_without_bbox(self):
        params = build_facets_params(normalize_filters({"city": "lyon"}))
        assert params["p_city_slug"] == "lyon"

    def test_multi_values_keep_caller_order(self):
        params = build_facets_params(normalize_filters({"primary_type": "restaurant,bar"}))
        assert params["p_primary_types"] == ["restaurant", "bar"]

    def test_search_bundle_keyset(self):
        token = encode_keyset_cursor(KeysetCursor(score=61.0, id="p2"))
        req = compile_search_request(normalize_filters({}), limit=10, cursor=token)
        params = req.to_rpc_params()
        assert set(params) == FACET_KEYS | {"p_limit", "p_offset", "p_cursor_score", "p_cursor_id"}
        assert params["p_limit"] == 10
        assert params["p_offset"] is None
        assert (params["p_cursor_score"], params["p_cursor_id"]) == (61.0, "p2")

    def test_page_switches_to_offset_mode(self):
        req = compile_search_request(normalize_filters({}), limit=20, page=3)
        params = req.to_rpc_params()
        assert params["p_offset"] == 40
        assert params["p_cursor_id"] is None

    def test_next_cursor_uses_sort_column(self):
        req = compile_search_request(normalize_filters({}), sort="rating")
        token = req.next_cursor_from({"id": "p9", "rating_value": 4.2})
        assert decode_keyset_cursor(token) == KeysetCursor(score=4.2, id="p9")
