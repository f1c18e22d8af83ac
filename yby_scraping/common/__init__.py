"""
Utilitários comuns para scrapers e normalização.
"""

from .parsing import (
    BR_TZ,
    clean_text,
    contains_word,
    fold_text,
    parse_br_date,
    parse_mileage,
    parse_price,
    parse_year_pair,
    slugify,
    strip_accents,
)
from .url_resolution import (
    normalize_base_url,
    resolve_absolute_url,
    strip_tracking,
)

__all__ = [
    "BR_TZ",
    "clean_text",
    "contains_word",
    "fold_text",
    "parse_br_date",
    "parse_mileage",
    "parse_price",
    "parse_year_pair",
    "slugify",
    "strip_accents",
    "normalize_base_url",
    "resolve_absolute_url",
    "strip_tracking",
]
