"""Key normalization for serial numbers, site names and human identifiers."""

from __future__ import annotations

import math
import re

# Known site-name misspellings found in the field spreadsheets
SITE_NAME_CORRECTIONS = {
    "Gurjrat": "Gujarat",
    "Ghandhinagar": "Gandhinagar",
}

_EMPTY_IDENTIFIERS = {"-", '"-"', "—", "–"}

_WHITESPACE = re.compile(r"\s+")
_CORRECTION_PATTERNS = [
    (re.compile(re.escape(typo), re.IGNORECASE), correct)
    for typo, correct in SITE_NAME_CORRECTIONS.items()
]


def cell_text(value: object) -> str:
    """Render a spreadsheet cell as trimmed text.

    Excel hands numbers back as floats, so integral values lose their
    trailing ``.0`` (serial ``12345.0`` -> ``"12345"``).
    """
    if value is None:
        return ""
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value).strip()


def normalize_serial(value: object) -> str:
    """Canonical serial number: trimmed and upper-cased, '' when missing."""
    return cell_text(value).upper()


def correct_site_name(value: object) -> str:
    """Apply known typo fixes, collapsing whitespace but keeping case."""
    name = _WHITESPACE.sub(" ", cell_text(value))
    for pattern, correct in _CORRECTION_PATTERNS:
        name = pattern.sub(correct, name)
    return name


def normalize_site_name(value: object) -> str:
    """Site name matching key (lower-cased, typo-corrected)."""
    return correct_site_name(value).lower()


def normalize_identifier(value: object) -> str | None:
    """Human-facing case identifier, or None for blanks and dash placeholders."""
    text = cell_text(value)
    if not text or text in _EMPTY_IDENTIFIERS:
        return None
    return text
