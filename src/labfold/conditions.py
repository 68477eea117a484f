"""Match test names against a user's declared chronic conditions.

The vocabulary is small and closed, so matching is a rule table with one
pattern per condition family rather than a general fuzzy matcher. A test name
matches a declared condition when it carries the pattern of the condition's
family (so a combined "HSV-1/HSV-2 IgG" matches a declared HSV-2), or when
they are equal ignoring case, accents and spacing.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

from labfold.core.utils import fold_text
from labfold.models import KnownCondition


@dataclass(frozen=True)
class ConditionFamily:
    label: str
    pattern: re.Pattern


CONDITION_FAMILIES: tuple[ConditionFamily, ...] = (
    ConditionFamily(
        "HSV-1",
        re.compile(r"hsv[-\s]?1|herpes\s*simplex\s*(virus\s*)?(type\s*)?1|simplex\s*1|oral\s*herpes", re.I),
    ),
    ConditionFamily(
        "HSV-2",
        re.compile(r"hsv[-\s]?2|herpes\s*simplex\s*(virus\s*)?(type\s*)?2|simplex\s*2|genital\s*herpes", re.I),
    ),
    ConditionFamily("HIV", re.compile(r"hiv|human\s*immunodeficiency", re.I)),
    ConditionFamily("Hepatitis B", re.compile(r"\bhep(atitis)?\s*b\b|hbv|hbsag", re.I)),
    ConditionFamily("Hepatitis C", re.compile(r"\bhep(atitis)?\s*c\b|hcv", re.I)),
    ConditionFamily("HPV", re.compile(r"hpv|human\s*papilloma|papilloma", re.I)),
)

ALL_CONDITIONS = "all"


@dataclass(frozen=True)
class ManagementMethod:
    id: str
    label: str
    applicable_to: tuple[str, ...]  # family labels, or ("all",)


MANAGEMENT_METHODS: tuple[ManagementMethod, ...] = (
    ManagementMethod("daily_antivirals", "Daily antivirals", ("HSV-1", "HSV-2")),
    ManagementMethod("antiviral_as_needed", "Antivirals as needed", ("HSV-1", "HSV-2")),
    ManagementMethod("supplements", "Supplements", ("HSV-1", "HSV-2")),
    ManagementMethod("prep", "PrEP", ("HIV",)),
    ManagementMethod("art_treatment", "ART treatment", ("HIV",)),
    ManagementMethod("undetectable", "Undetectable viral load", ("HIV",)),
    ManagementMethod("antiviral_treatment", "Antiviral treatment", ("Hepatitis B", "Hepatitis C")),
    ManagementMethod("liver_monitoring", "Liver function monitoring", ("Hepatitis B", "Hepatitis C")),
    ManagementMethod("vaccinated", "Vaccinated", ("Hepatitis B", "HPV")),
    ManagementMethod("cured", "Completed treatment / cured", ("Hepatitis C",)),
    ManagementMethod("regular_screening", "Regular screening", ("HPV",)),
    ManagementMethod("barriers", "Barrier use", (ALL_CONDITIONS,)),
    ManagementMethod("regular_monitoring", "Regular monitoring", (ALL_CONDITIONS,)),
)


def _find_family(name: str) -> ConditionFamily | None:
    if not name:
        return None
    for family in CONDITION_FAMILIES:
        if family.pattern.search(name):
            return family
    return None


def condition_family(name: str) -> str | None:
    """Family label for a test or condition name, e.g. 'Herpes Simplex Virus 2' -> 'HSV-2'."""
    family = _find_family(name)
    return family.label if family else None


def is_chronic_condition(test_name: str) -> bool:
    """Whether a test belongs to a family that is usually managed long-term."""
    return condition_family(test_name) is not None


def matches(test_name: str, condition_name: str) -> bool:
    """Alias-aware, case-insensitive match of a test name to a declared condition.

    >>> matches('Herpes Simplex Virus 1 IgG', 'HSV-1')
    True
    >>> matches('HSV-1/HSV-2 IgG', 'HSV-2')
    True
    >>> matches('HSV-2', 'HSV-1')
    False
    """
    if not test_name or not condition_name:
        return False
    if fold_text(test_name) == fold_text(condition_name):
        return True
    family = _find_family(condition_name)
    return family is not None and family.pattern.search(test_name) is not None


def find_matching_condition(
    test_name: str, conditions: Iterable[KnownCondition]
) -> KnownCondition | None:
    """First declared condition the test name matches, in declaration order."""
    for condition in conditions:
        if matches(test_name, condition.condition_name):
            return condition
    return None


def matches_known_condition(test_name: str, conditions: Iterable[KnownCondition]) -> bool:
    return find_matching_condition(test_name, conditions) is not None


def methods_for_condition(condition_name: str) -> list[ManagementMethod]:
    """Management methods offered for a condition, universal ones last."""
    family = condition_family(condition_name)
    return [
        m
        for m in MANAGEMENT_METHODS
        if ALL_CONDITIONS in m.applicable_to or (family is not None and family in m.applicable_to)
    ]


def method_label(method_id: str) -> str:
    """Display label for a management method id; unknown ids are returned as-is."""
    for m in MANAGEMENT_METHODS:
        if m.id == method_id:
            return m.label
    return method_id
