"""Canonical test names, result statuses and panel labels.

Labs print the same test many ways ("HIV 1/2 Ag/Ab Combo Screen",
"HIV-1/2 AG/AB"). These helpers map what the document parser read to the
vocabulary the rest of labfold works in.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from labfold.models import INCONCLUSIVE, NEGATIVE, PENDING, POSITIVE

# Uppercased lab spelling -> canonical name. Tried exactly, then as a
# substring in table order.
TEST_MAP: dict[str, str] = {
    "HIV 1/2 AG/AB COMBO SCREEN": "HIV-1/2",
    "HIV1/2 AG/AB COMBO SCREEN": "HIV-1/2",
    "HIV 1/2 ANTIBODY": "HIV-1/2",
    "HIV FINAL INTERPRETATION": "HIV-1/2",
    "HIV-1/2 AG/AB": "HIV-1/2",
    "HEPATITIS B SURFACE ANTIGEN": "Hepatitis B",
    "HEPATITIS B SURFACE AG": "Hepatitis B",
    "HBSAG": "Hepatitis B",
    "HEPATITIS B CORE": "Hepatitis B Core",
    "HEPATITIS C ANTIBODY": "Hepatitis C",
    "HEPATITIS C AB": "Hepatitis C",
    "HCV ANTIBODY": "Hepatitis C",
    "HEPATITIS A": "Hepatitis A",
    "SYPHILIS ANTIBODY SCREEN": "Syphilis",
    "SYPHILIS SEROLOGY": "Syphilis",
    "RPR": "Syphilis",
    "NEISSERIA GONORRHOEAE": "Gonorrhea",
    "N. GONORRHOEAE": "Gonorrhea",
    "CHLAMYDIA TRACHOMATIS": "Chlamydia",
    "C. TRACHOMATIS": "Chlamydia",
    "TRICHOMONAS VAGINALIS": "Trichomonas",
    "HERPES SIMPLEX VIRUS 1": "HSV-1",
    "HSV-1": "HSV-1",
    "HERPES SIMPLEX VIRUS 2": "HSV-2",
    "HSV-2": "HSV-2",
}

_NEGATIVE = re.compile(
    r"^negative$|non[-\s]?reactive|not detected|^absent$|no evidence"
    r"|no antibodies detected|no hiv.*detected|evidence of immunity",
    re.I,
)
_POSITIVE = re.compile(r"^positive$|^reactive$|^detected$|antibodies detected|hiv.*detected", re.I)
_INCONCLUSIVE = re.compile(r"borderline|unclear|equivocal|indeterminate|inconclusive", re.I)

# Panel categories in reporting order; first match per test name
PANEL_CATEGORIES: tuple[tuple[str, re.Pattern], ...] = (
    ("HIV", re.compile(r"hiv", re.I)),
    ("Hepatitis A", re.compile(r"hepatitis a\b|\bhep a\b|^hav$", re.I)),
    ("Hepatitis B", re.compile(r"hepatitis b\b|\bhep b\b|^hbv$|hbsag", re.I)),
    ("Hepatitis C", re.compile(r"hepatitis c\b|\bhep c\b|^hcv$", re.I)),
    ("Syphilis", re.compile(r"syphilis|\brpr\b|\bvdrl\b", re.I)),
    ("Gonorrhea", re.compile(r"gonorrh|\bgc\b|neisseria", re.I)),
    ("Chlamydia", re.compile(r"chlamydia|\bct\b", re.I)),
    ("Herpes", re.compile(r"herpes|hsv", re.I)),
)

FULL_PANEL = "Full STI Panel"
GENERIC_PANEL = "STI Panel"


def normalize_test_name(name: str) -> str:
    """Canonical name for a test as printed by a lab.

    >>> normalize_test_name('HIV1/2 Ag/Ab Combo Screen')
    'HIV-1/2'
    >>> normalize_test_name('urine culture')
    'Urine Culture'
    """
    if not name or not name.strip():
        return "Unknown"
    upper = name.strip().upper()
    if upper in TEST_MAP:
        return TEST_MAP[upper]
    for key, canonical in TEST_MAP.items():
        if key in upper:
            return canonical
    return " ".join(w[:1].upper() + w[1:].lower() for w in name.split())


def standardize_result(text: str) -> str:
    """Map free result text to a status.

    Non-reactive/not detected is negative, reactive/detected is positive,
    equivocal/indeterminate is inconclusive. Numeric values and anything
    unrecognized stay pending for review.
    """
    if not text or not text.strip():
        return PENDING
    clean = text.strip().lower()
    if _NEGATIVE.search(clean):
        return NEGATIVE
    if _POSITIVE.search(clean):
        return POSITIVE
    if _INCONCLUSIVE.search(clean):
        return INCONCLUSIVE
    return PENDING


def panel_categories(test_names: Iterable[str]) -> list[str]:
    """Distinct panel categories covered by the names, in first-seen order."""
    seen: list[str] = []
    for name in test_names:
        for category, pattern in PANEL_CATEGORIES:
            if category not in seen and pattern.search(name):
                seen.append(category)
    return seen


def determine_test_type(test_names: Iterable[str], fallback: str = "") -> str:
    """Human label for the set of tests on a record.

    Four or more categories make a full panel; two or three are joined
    ("HIV & Syphilis Panel"); one is "<category> Test". Names in no known
    category fall back to ``fallback`` or the generic panel label.
    """
    categories = panel_categories(test_names)
    if len(categories) >= 4:
        return FULL_PANEL
    if len(categories) >= 2:
        return " & ".join(categories[:3]) + " Panel"
    if len(categories) == 1:
        return f"{categories[0]} Test"
    return fallback or GENERIC_PANEL
