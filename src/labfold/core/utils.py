"""Shared text and date helpers."""

from __future__ import annotations

import re
import unicodedata
from datetime import date

_MONTHS = {
    "january": "01",
    "february": "02",
    "march": "03",
    "april": "04",
    "may": "05",
    "june": "06",
    "july": "07",
    "august": "08",
    "september": "09",
    "october": "10",
    "november": "11",
    "december": "12",
    "jan": "01",
    "feb": "02",
    "mar": "03",
    "apr": "04",
    "jun": "06",
    "jul": "07",
    "aug": "08",
    "sep": "09",
    "sept": "09",
    "oct": "10",
    "nov": "11",
    "dec": "12",
}


def strip_accents(text: str) -> str:
    """Remove combining diacritics: 'Hôpital Québec' -> 'Hopital Quebec'."""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def collapse_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def fold_text(text: str) -> str:
    """Case-, accent- and whitespace-insensitive form used for comparisons."""
    if not text:
        return ""
    return collapse_whitespace(strip_accents(text).lower())


def normalize_date_to_iso(dt_str: str) -> str:
    """Convert a common report date format to ISO 8601 YYYY-MM-DD.

    Supported formats:
    - YYYY-MM-DD (optionally followed by a time): "2025-06-30T13:25:00Z"
    - YYYYMMDD: "20211123"
    - MM/DD/YYYY: "01/15/2026"
    - Month DD, YYYY: "November 23rd, 2021", "Nov 23 2021"
    - DD Month YYYY: "23 November 2021"

    Returns empty string for empty, unparseable or non-string input.
    """
    if not isinstance(dt_str, str) or not dt_str.strip():
        return ""
    s = dt_str.strip()

    m = re.match(r"(\d{4})-(\d{1,2})-(\d{1,2})", s)
    if m:
        return f"{m.group(1)}-{int(m.group(2)):02d}-{int(m.group(3)):02d}"

    m = re.match(r"(\d{1,2})/(\d{1,2})/(\d{4})", s)
    if m:
        return f"{m.group(3)}-{int(m.group(1)):02d}-{int(m.group(2)):02d}"

    m = re.match(r"(\d{4})(\d{2})(\d{2})\b", s)
    if m:
        return f"{m.group(1)}-{m.group(2)}-{m.group(3)}"

    return parse_narrative_date(s)


def parse_narrative_date(text: str) -> str:
    """Parse dates like 'November 23rd, 2021 2:37pm' or '23 Nov 2021' -> '2021-11-23'."""
    s = text.strip()
    m = re.match(r"([A-Za-z]+)\.?\s+(\d{1,2})(?:st|nd|rd|th)?,?\s*(\d{4})", s)
    if m:
        month = _MONTHS.get(m.group(1).lower())
        if month:
            return f"{m.group(3)}-{month}-{int(m.group(2)):02d}"

    m = re.match(r"(\d{1,2})(?:st|nd|rd|th)?\s+([A-Za-z]+)\.?,?\s+(\d{4})", s)
    if m:
        month = _MONTHS.get(m.group(2).lower())
        if month:
            return f"{m.group(3)}-{month}-{int(m.group(1)):02d}"
    return ""


def parse_date(value: object) -> date | None:
    """Parse a calendar date, returning None when absent, unparseable or not a string."""
    if value is None:
        return None
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    iso = normalize_date_to_iso(value)
    if not iso:
        return None
    try:
        return date.fromisoformat(iso)
    except ValueError:
        return None
