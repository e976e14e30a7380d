"""
Text utilities for comparing free-text product names.

Spreadsheet exports from the warehouse system spell the same product in
many ways (case, quotes, dashes, vendor prefixes, pack-size annotations).
These helpers reduce names to a comparable form.
"""

import re

# Quote and dash variants produced by office software
_QUOTES_RE = re.compile(r"[«»“”„‟\"'‘’‚‛‹›`]")
_DASHES_RE = re.compile(r"[‐‑‒–—―−]")
_WHITESPACE_RE = re.compile(r"\s+")
# \w is unicode-aware, so Cyrillic letters and digits survive
_DISALLOWED_RE = re.compile(r"[^\w\s\-]")

# Vendor prefixes seen in warehouse exports ("АВ Дрожжи ...")
COMMON_PREFIXES = ("ав", "av")
_PREFIX_RE = re.compile(
    r"^(?:" + "|".join(COMMON_PREFIXES) + r")[\s\-]+",
    re.IGNORECASE
)

_UNITS = r"(?:гр|г|кг|мг|мл|л|шт|pcs|pc|ml|kg|g)\.?"
_NUMBER = r"\d+(?:[.,]\d+)?"
_COMMA_AMOUNT_RE = re.compile(r",\s*" + _NUMBER + r"\s*" + _UNITS + r"(?!\w)", re.IGNORECASE)
_AMOUNT_RE = re.compile(_NUMBER + r"\s*" + _UNITS + r"(?!\w)", re.IGNORECASE)
_N_IN_M_RE = re.compile(r"\d+\s+в\s+\d+", re.IGNORECASE)
_PAREN_NUMBER_RE = re.compile(r"\(\s*\d+\s*\)")
_REPEATED_COMMA_RE = re.compile(r",\s*,")


def normalize_product_name(name) -> str:
    """
    Normalize a product name for comparison.

    Steps:
    - lowercase
    - collapse whitespace
    - curly/angled quotes → '"', en/em dashes → '-'
    - anything except word characters, whitespace and hyphens → space
    - collapse whitespace again and trim

    Examples:
    - "Хмель «Cascade» 100г" → "хмель cascade 100г"
    - "Дрожжи — Турбо, 24ч" → "дрожжи - турбо 24ч"

    Never raises: None and non-strings are coerced.

    Args:
        name: Raw product name from the spreadsheet or catalog

    Returns:
        Normalized name ("" for empty input)
    """
    if name is None:
        return ""

    text = str(name).lower()
    text = _WHITESPACE_RE.sub(" ", text)
    text = _QUOTES_RE.sub('"', text)
    text = _DASHES_RE.sub("-", text)
    text = _DISALLOWED_RE.sub(" ", text)
    text = _WHITESPACE_RE.sub(" ", text)

    return text.strip()


def strip_common_prefixes(normalized: str) -> str:
    """
    Remove a leading vendor prefix token.

    "ав дрожжи турбо" → "дрожжи турбо". Names without a prefix are
    returned unchanged.
    """
    return _PREFIX_RE.sub("", normalized).strip()


def extract_keywords(normalized: str) -> str:
    """
    Drop pack-size annotations, keeping only the descriptive words.

    Removes number+unit tokens (optionally after a comma), "N в M" patterns
    and parenthesized numbers. The matcher passes normalized names, which
    carry no commas or parentheses; raw names are accepted as well:
    - "пробка корковая 100 шт" → "пробка корковая"
    - "сахар, 1 кг" → "сахар"
    - "кофе 3 в 1 (12)" → "кофе"
    """
    cleaned = _COMMA_AMOUNT_RE.sub("", normalized)
    cleaned = _AMOUNT_RE.sub("", cleaned)
    cleaned = _N_IN_M_RE.sub("", cleaned)
    cleaned = _PAREN_NUMBER_RE.sub("", cleaned)
    cleaned = _REPEATED_COMMA_RE.sub(",", cleaned)
    cleaned = _WHITESPACE_RE.sub(" ", cleaned)

    return cleaned.strip()


def contains_any(text: str, markers) -> bool:
    """True if text contains any of the marker substrings."""
    return any(marker in text for marker in markers)
