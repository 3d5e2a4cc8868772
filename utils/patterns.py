"""Pre-compiled regex patterns for the Gatto API.

All patterns are compiled once at module import so request-path parsing
never recompiles them.

Usage:
    from utils.patterns import SLUG, CSV_LIST

    if SLUG.match(value):
        ...
"""

import re

# City / POI / collection slugs: lowercase ascii, digits and dashes
SLUG = re.compile(r'^[a-z0-9-]+$')

# Raw CSV filter values accepted at the boundary (categories, tags, slugs)
# Examples: "restaurant,bar", "michelin,gault_millau"
CSV_LIST = re.compile(r'^[a-zA-Z0-9_,\- ]+$')

# Legacy single-value price: "€" through "€€€€"
PRICE_SYMBOLS = re.compile(r'^€{1,4}$')

# Bare integer (price levels, page numbers)
INTEGER = re.compile(r'^\s*\d+\s*$')

# Characters collapsed to a dash when slugifying display names
NON_SLUG_CHARS = re.compile(r'[^a-z0-9\s-]')

# Whitespace / dash runs
WHITESPACE = re.compile(r'\s+')
DASH_RUNS = re.compile(r'-+')

# Apostrophe variants normalized in search queries
APOSTROPHES = re.compile(r"[‘’ʼ`´]")
