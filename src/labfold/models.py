"""Data model for extracted lab documents, verification, and date groups.

Extraction-side records (RawExtraction, TestOutcome, VerificationEvidence) are
produced by the external document parser and never mutated here. Everything
else is derived: fingerprints, verification results, deduplicated groups and
aggregated status are recomputed from their inputs on demand.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date

# Test status values. Order of clinical significance lives in core.status.
NEGATIVE = "negative"
POSITIVE = "positive"
PENDING = "pending"
INCONCLUSIVE = "inconclusive"

TEST_STATUSES = (NEGATIVE, POSITIVE, PENDING, INCONCLUSIVE)

# Verification levels
LEVEL_NONE = "none"
LEVEL_LOW = "low"
LEVEL_MEDIUM = "medium"
LEVEL_HIGH = "high"


@dataclass(frozen=True)
class TestOutcome:
    """One line item on a lab report."""

    __test__ = False  # keep pytest from collecting this class

    name: str
    result_text: str = ""
    status: str = PENDING  # negative, positive, pending, inconclusive


@dataclass(frozen=True)
class VerificationEvidence:
    """Authenticity signals the parser detected on a document."""

    lab_name: str = ""
    patient_name: str = ""
    has_health_card: bool = False
    has_accession_number: bool = False
    accession_number: str = ""  # Raw number when the parser captured it


@dataclass(frozen=True)
class RawExtraction:
    """The document parser's output for one uploaded file."""

    collection_date: date | None = None
    panel_label: str = ""
    tests: tuple[TestOutcome, ...] = ()
    notes: str = ""
    evidence: VerificationEvidence | None = None
    raw_text: str = ""  # OCR text, input to fingerprinting
    file_label: str = ""  # e.g. "File 2 of 3"


@dataclass(frozen=True)
class ContentFingerprint:
    """Exact and locality-sensitive hashes of normalized document text."""

    exact_hash: str  # SHA-256, 64 lowercase hex chars
    simhash: str  # 64-bit SimHash, 16 lowercase hex chars


@dataclass(frozen=True)
class RecognizedLab:
    """One entry of the lab reference table."""

    id: str
    canonical_name: str
    region: str
    country: str = "CA"
    variants: frozenset[str] = frozenset()
    abbreviations: frozenset[str] = frozenset()
    accession_format: re.Pattern | None = None
    health_card_name: str | None = None


@dataclass(frozen=True)
class VerificationCheck:
    """One named verification check and the points it earned."""

    name: str  # recognized_lab, health_card, accession_number, name_match, collection_date
    passed: bool
    details: str = ""
    points: int = 0
    max_points: int = 0


@dataclass(frozen=True)
class VerificationResult:
    """Authenticity estimate for a document (or a merged date group)."""

    score: int  # 0-100
    level: str  # none, low, medium, high
    is_verified: bool
    has_future_date: bool = False
    is_older_than_two_years: bool = False
    checks: tuple[VerificationCheck, ...] = ()

    def check(self, name: str) -> VerificationCheck | None:
        """Return the check with the given name, if it was evaluated."""
        for c in self.checks:
            if c.name == name:
                return c
        return None


@dataclass(frozen=True)
class TestConflict:
    """The same test reported with different statuses across sources."""

    __test__ = False

    test_name: str
    occurrences: tuple[TestOutcome, ...]
    suggested: TestOutcome


@dataclass(frozen=True)
class DeduplicationStats:
    total_input: int = 0
    unique_tests: int = 0
    duplicates_removed: int = 0
    conflicts_detected: int = 0


@dataclass(frozen=True)
class DeduplicationResult:
    tests: tuple[TestOutcome, ...] = ()
    conflicts: tuple[TestConflict, ...] = ()
    stats: DeduplicationStats = field(default_factory=DeduplicationStats)


@dataclass(frozen=True)
class DateGroup:
    """All deduplicated outcomes from one collection date; one saved record."""

    date: date | None
    tests: tuple[TestOutcome, ...] = ()
    test_type: str = ""
    overall_status: str = PENDING
    notes: str = ""
    is_verified: bool = False
    verification_result: VerificationResult | None = None
    conflicts: tuple[TestConflict, ...] = ()
    content_hashes: tuple[str, ...] = ()
    content_simhashes: tuple[str, ...] = ()
    source_indices: tuple[int, ...] = ()  # Positions in the input batch
    patient_name: str = ""  # First patient name detected in the group

    @property
    def date_key(self) -> str:
        """ISO date, or "unknown" for the undated group."""
        return self.date.isoformat() if self.date else "unknown"


@dataclass(frozen=True)
class KnownCondition:
    """A chronic condition the user has declared on their profile."""

    condition_name: str
    declared_at: date | None = None
    management_methods: tuple[str, ...] = ()


@dataclass(frozen=True)
class UserProfile:
    """The parts of a user profile this library reads."""

    first_name: str = ""
    last_name: str = ""
    known_conditions: tuple[KnownCondition, ...] = ()

    @property
    def has_name(self) -> bool:
        return bool(self.first_name.strip() or self.last_name.strip())


@dataclass(frozen=True)
class StoredRecord:
    """A previously saved date group, as read back from storage."""

    id: int
    test_date: date | None
    tests: tuple[TestOutcome, ...] = ()
    test_type: str = ""
    overall_status: str = PENDING
    is_verified: bool = False
    verification_score: int = 0
    verification_level: str = LEVEL_NONE
    content_hash: str = ""
    content_simhash: str = ""


@dataclass(frozen=True)
class AggregatedTest:
    """The current status of one test name across a user's history."""

    name: str
    status: str
    result_text: str
    test_date: date | None
    is_verified: bool = False
    verification_level: str | None = None
    is_known_condition: bool = False
    has_test_data: bool = True
    management_methods: tuple[str, ...] = ()


@dataclass(frozen=True)
class StatusSummary:
    """Headline status split into routine results and known conditions."""

    routine: tuple[AggregatedTest, ...] = ()
    known: tuple[AggregatedTest, ...] = ()
    overall: str = PENDING  # Computed from routine only
    new_status_positives: tuple[AggregatedTest, ...] = ()
    last_tested_date: date | None = None
