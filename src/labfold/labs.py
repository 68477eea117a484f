"""Directory of recognized laboratories with fuzzy name lookup.

The reference table lives in ``data/labs.yaml`` and is loaded once into
frozen RecognizedLab entries. Lookup indexes are built at load time, so
exact lookups are dictionary hits and only the fuzzy tiers scan entries.

Lookup order (first hit wins, entries tried in table order):

1. exact abbreviation ("PHO")
2. exact canonical name or variant, raw or suffix-normalized
3. substring containment, in either direction
4. word overlap, guarded against short common words ("labs", "life")

Names made only of institutional words ("Medical Laboratory", "Hospital")
normalize to "" and never match.
"""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from labfold.core.utils import collapse_whitespace, fold_text
from labfold.models import RecognizedLab

DEFAULT_DATA_PATH = Path(__file__).parent / "data" / "labs.yaml"

# Institutional suffixes stripped from the end of a name, longest first.
# "laboratories" is handled separately (rewritten to "labs").
LAB_SUFFIXES = (
    "medical laboratories",
    "medical laboratory",
    "medical lab",
    "laboratory",
    "lab",
    "incorporated",
    "inc",
    "limited",
    "ltd",
)

_SUFFIX_PATTERNS = [re.compile(rf"(?:^|[\s,]+){re.escape(s)}\.?$") for s in LAB_SUFFIXES]
_LABORATORIES = re.compile(r"(?:^|\s+)laboratories\.?$")
_WORD_SPLIT = re.compile(r"[\s\-]+")

# Words that on their own never identify a laboratory
GENERIC_LAB_WORDS = frozenset(
    {
        "lab",
        "labs",
        "laboratory",
        "laboratories",
        "laboratoire",
        "medical",
        "clinical",
        "clinic",
        "hospital",
        "diagnostic",
        "diagnostics",
        "health",
        "healthcare",
        "service",
        "services",
        "centre",
        "center",
        "sciences",
        "reference",
        "provincial",
        "public",
        "general",
        "regional",
        "university",
        "inc",
        "ltd",
        "llc",
        "the",
        "of",
        "and",
        "de",
        "du",
    }
)

# Single-word fuzzy matches shorter than this are too generic ("life", "labs")
MIN_SINGLE_WORD_LENGTH = 6
# Multi-word fuzzy matches must cover this share of the lab's words
MIN_WORD_OVERLAP = 0.8
# Input contained in a longer name must cover this share of its characters
MIN_FRAGMENT_COVERAGE = 0.8


def _strip_suffixes(name: str) -> str:
    """Lowercase/fold a name and strip trailing institutional suffixes.

    Returns "" when nothing but generic words remain.
    """
    normalized = fold_text(name)
    normalized = _LABORATORIES.sub(" labs", normalized).strip()

    previous = None
    while previous != normalized:
        previous = normalized
        for pattern in _SUFFIX_PATTERNS:
            normalized = pattern.sub("", normalized).strip()
    if all(w in GENERIC_LAB_WORDS for w in _words(normalized)):
        return ""
    return normalized


def _compact(text: str) -> str:
    """Drop spaces and hyphens: 'Life-Labs' and 'Life Labs' -> 'lifelabs'."""
    return _WORD_SPLIT.sub("", text)


def _words(text: str) -> list[str]:
    return [w for w in _WORD_SPLIT.split(text) if w]


def _contains_phrase(haystack: str, needle: str) -> bool:
    return re.search(rf"(?<![a-z0-9]){re.escape(needle)}(?![a-z0-9])", haystack) is not None


@dataclass(frozen=True)
class _Candidate:
    """One searchable name form of a lab, precomputed for the fuzzy tiers."""

    lab: RecognizedLab
    form: str
    compact: str
    words: tuple[str, ...]


@dataclass
class LabDirectory:
    """Read-only lookup over a table of RecognizedLab entries."""

    labs: tuple[RecognizedLab, ...]
    _by_id: dict[str, RecognizedLab] = field(init=False, repr=False)
    _by_abbreviation: dict[str, RecognizedLab] = field(init=False, repr=False)
    _by_name: dict[str, RecognizedLab] = field(init=False, repr=False)
    _expansions: dict[str, str] = field(init=False, repr=False)
    _candidates: tuple[_Candidate, ...] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._by_id = {}
        self._by_abbreviation = {}
        self._by_name = {}
        self._expansions = {}
        candidates: list[_Candidate] = []

        for lab in self.labs:
            self._by_id.setdefault(lab.id, lab)
            expanded = _strip_suffixes(lab.canonical_name)
            for abbr in sorted(lab.abbreviations):
                key = fold_text(abbr)
                # Earlier entries win shared abbreviations
                self._by_abbreviation.setdefault(key, lab)
                self._expansions.setdefault(key, expanded)

            seen_forms: set[str] = set()
            for name in [lab.canonical_name, *sorted(lab.variants)]:
                stripped = _strip_suffixes(name)
                for form in (fold_text(name), stripped):
                    if form:
                        self._by_name.setdefault(form, lab)
                # Fuzzy tiers only see suffix-stripped forms
                if stripped and stripped not in seen_forms:
                    seen_forms.add(stripped)
                    candidates.append(
                        _Candidate(lab, stripped, _compact(stripped), tuple(_words(stripped)))
                    )
        self._candidates = tuple(candidates)

    @classmethod
    def load(cls, path: str | Path = DEFAULT_DATA_PATH) -> LabDirectory:
        """Load a directory from a YAML table (see data/labs.yaml for the format)."""
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or []
        return cls(labs=tuple(_lab_from_entry(entry) for entry in raw))

    def __len__(self) -> int:
        return len(self.labs)

    # -- normalization -----------------------------------------------------

    def normalize_lab_name(self, raw: str) -> str:
        """Normalize a lab name for comparison.

        Lowercases, folds accents, collapses whitespace, rewrites a trailing
        "laboratories" to "labs", strips institutional suffixes until none
        remain, then expands a known abbreviation to its full name.

        >>> directory.normalize_lab_name('LifeLabs Medical Laboratory Inc')
        'lifelabs'
        >>> directory.normalize_lab_name('PHO Laboratory')
        'public health ontario'
        """
        if not raw:
            return ""
        normalized = _strip_suffixes(raw)
        return self._expansions.get(normalized, normalized)

    # -- lookup ------------------------------------------------------------

    def find_lab(self, raw: str) -> RecognizedLab | None:
        """Resolve a raw (OCR/LLM extracted) lab name to a directory entry."""
        if not raw or not raw.strip():
            return None
        folded = fold_text(raw)
        normalized = self.normalize_lab_name(raw)

        # Tier 1: exact abbreviation
        lab = self._by_abbreviation.get(folded) or self._by_abbreviation.get(
            _strip_suffixes(raw)
        )
        if lab:
            return lab

        # Tier 2: exact canonical name / variant
        lab = self._by_name.get(folded) or self._by_name.get(normalized)
        if lab:
            return lab

        if not normalized:
            return None

        # Tier 3: substring containment
        lab = self._match_substring(normalized)
        if lab:
            return lab

        # Tier 4: word overlap
        return self._match_word_overlap(normalized)

    def matches_recognized_lab(self, raw: str) -> bool:
        return self.find_lab(raw) is not None

    def _match_substring(self, normalized: str) -> RecognizedLab | None:
        compact = _compact(normalized)
        for c in self._candidates:
            # Input contains a known name as a whole phrase
            if _contains_phrase(normalized, c.form):
                return c.lab
            # Same check ignoring spaces and hyphens, for long names only
            if len(c.compact) >= MIN_SINGLE_WORD_LENGTH and c.compact in compact:
                return c.lab
            # Input is a near-complete fragment of a known name
            if (
                len(compact) >= MIN_SINGLE_WORD_LENGTH
                and compact in c.compact
                and len(compact) / len(c.compact) >= MIN_FRAGMENT_COVERAGE
            ):
                return c.lab
        return None

    def _match_word_overlap(self, normalized: str) -> RecognizedLab | None:
        words = _words(normalized)
        if not words:
            return None
        for c in self._candidates:
            if len(words) == 1:
                word = words[0]
                if len(word) < MIN_SINGLE_WORD_LENGTH:
                    return None
                if word in c.words:
                    return c.lab
                continue

            if not all(w in c.words for w in words):
                continue
            covered = [w for w in c.words if w in words]
            if c.words and len(covered) / len(c.words) >= MIN_WORD_OVERLAP:
                return c.lab
        return None

    # -- reference lookups -------------------------------------------------

    def get_lab_by_id(self, lab_id: str) -> RecognizedLab | None:
        return self._by_id.get(lab_id)

    def labs_by_region(self, region: str) -> list[RecognizedLab]:
        return [lab for lab in self.labs if lab.region == region.upper()]

    def health_card_name(self, region: str) -> str | None:
        """Health card shown on requisitions in a region, if known."""
        for lab in self.labs_by_region(region):
            if lab.health_card_name:
                return lab.health_card_name
        return None


def accession_matches(lab: RecognizedLab, number: str) -> bool | None:
    """Whether an accession number fits the lab's known format.

    None when the lab has no known format or no number was given.
    """
    if lab.accession_format is None or not number:
        return None
    return lab.accession_format.fullmatch(collapse_whitespace(number).upper()) is not None


def _lab_from_entry(entry: dict) -> RecognizedLab:
    fmt = entry.get("accession_format")
    return RecognizedLab(
        id=entry["id"],
        canonical_name=entry["canonical_name"],
        region=str(entry.get("region", "")).upper(),
        country=str(entry.get("country", "CA")).upper(),
        variants=frozenset(entry.get("variants") or ()),
        abbreviations=frozenset(entry.get("abbreviations") or ()),
        accession_format=re.compile(fmt) if fmt else None,
        health_card_name=entry.get("health_card_name"),
    )


@functools.cache
def default_directory() -> LabDirectory:
    """The bundled lab table, loaded once per process."""
    return LabDirectory.load(DEFAULT_DATA_PATH)


def normalize_lab_name(raw: str) -> str:
    return default_directory().normalize_lab_name(raw)


def find_lab(raw: str) -> RecognizedLab | None:
    return default_directory().find_lab(raw)


def matches_recognized_lab(raw: str) -> bool:
    return default_directory().matches_recognized_lab(raw)
