"""Shared utilities for the Gatto API.

Pure helpers with no web-framework dependency: query normalization, the
search request compiler, response caches, search metrics, configuration and
response formatting.
"""

# Pattern definitions
from utils.patterns import SLUG, CSV_LIST, PRICE_SYMBOLS

# String utilities
from utils.strings import parse_csv, slugify, normalize_query, pluralize_category

# Parameter normalization
from utils.validation import (
    FilterSet,
    normalize_filters,
    parse_bbox,
    parse_bool_tristate,
    parse_legacy_price,
    parse_price_bound,
    parse_rating_bound,
    order_bounds,
)

# Search request compiler
from utils.query import (
    SortKey,
    KeysetCursor,
    SearchRequest,
    compile_search_request,
    build_facets_params,
    encode_keyset_cursor,
    decode_keyset_cursor,
    encode_offset_cursor,
    decode_offset_cursor,
)

# Response cache
from utils.cache import ResponseCache, CacheRegistry, make_cache_key

# Search metrics
from utils.metrics import SearchMetrics

# Output formatting
from utils.formatting import (
    pick_lang,
    filter_fields,
    favicon_url,
    score_to_5_scale,
    build_breadcrumb,
    sort_by_segment,
    offset_pagination,
    keyset_pagination,
)

# Configuration
from utils.config import AppConfig

__all__ = [
    # Patterns
    "SLUG",
    "CSV_LIST",
    "PRICE_SYMBOLS",
    # Strings
    "parse_csv",
    "slugify",
    "normalize_query",
    "pluralize_category",
    # Validation
    "FilterSet",
    "normalize_filters",
    "parse_bbox",
    "parse_bool_tristate",
    "parse_legacy_price",
    "parse_price_bound",
    "parse_rating_bound",
    "order_bounds",
    # Query
    "SortKey",
    "KeysetCursor",
    "SearchRequest",
    "compile_search_request",
    "build_facets_params",
    "encode_keyset_cursor",
    "decode_keyset_cursor",
    "encode_offset_cursor",
    "decode_offset_cursor",
    # Cache
    "ResponseCache",
    "CacheRegistry",
    "make_cache_key",
    # Metrics
    "SearchMetrics",
    # Formatting
    "pick_lang",
    "filter_fields",
    "favicon_url",
    "score_to_5_scale",
    "build_breadcrumb",
    "sort_by_segment",
    "offset_pagination",
    "keyset_pagination",
    # Config
    "AppConfig",
]
