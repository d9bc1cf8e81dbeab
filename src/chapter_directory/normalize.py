"""Normalization functions for member roster ingestion and directory search.

All functions accept str | None and return the appropriate type or None.
"""

from __future__ import annotations

import re
import unicodedata
from datetime import date, datetime

_DATE_FORMATS = ("%Y-%m-%d", "%Y/%m/%d", "%Y.%m.%d")


# ---------------------------------------------------------------------------
# Rule 1: trim
# ---------------------------------------------------------------------------

def trim(value: str | None) -> str | None:
    """Strip leading/trailing whitespace; treat empty string as None."""
    if value is None:
        return None
    v = value.strip()
    return v if v else None


# ---------------------------------------------------------------------------
# Rule 2: normalize_space
# ---------------------------------------------------------------------------

def normalize_space(value: str | None) -> str | None:
    """Collapse internal runs of whitespace to single spaces, then trim."""
    v = trim(value)
    if v is None:
        return None
    return re.sub(r"\s+", " ", v)


# ---------------------------------------------------------------------------
# Rule 3: search_text  (for free-text directory search)
# ---------------------------------------------------------------------------

def search_text(value: str | None) -> str | None:
    """Casefold and strip accents so search terms match stored names."""
    v = normalize_space(value)
    if v is None:
        return None
    v = unicodedata.normalize("NFKD", v)
    v = "".join(c for c in v if not unicodedata.combining(c))
    return v.casefold()


# ---------------------------------------------------------------------------
# Rule 4: parse_date
# ---------------------------------------------------------------------------

def parse_date(value: str | None) -> date | None:
    """Parse an ISO-like calendar date ('2015-01-01', '2015/01/01').

    Returns None for blank or unparsable values; callers decide whether a
    missing date is a reject.
    """
    v = trim(value)
    if v is None:
        return None
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(v, fmt).date()
        except ValueError:
            continue
    return None


# ---------------------------------------------------------------------------
# Rule 5: parse_int
# ---------------------------------------------------------------------------

def parse_int(value: str | None) -> int | None:
    """Parse a whole number, returning None on failure."""
    v = trim(value)
    if v is None:
        return None
    try:
        return int(v)
    except ValueError:
        return None
