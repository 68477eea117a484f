"""Estimate the authenticity of an uploaded lab document.

A document earns points for each piece of evidence the parser detected on it:
a recognized laboratory, a health card number, an accession number, the
patient's name matching the profile, and a plausible collection date. The
score is the share of available points earned, on a 0-100 scale.

Verification is stricter than the score. A document is verified only when
it comes from a recognized lab and carries at least one identifier, and
never when its collection date is in the future.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from datetime import date

from labfold.core.utils import fold_text, parse_date
from labfold.labs import LabDirectory, accession_matches, default_directory
from labfold.models import (
    LEVEL_HIGH,
    LEVEL_LOW,
    LEVEL_MEDIUM,
    LEVEL_NONE,
    RawExtraction,
    UserProfile,
    VerificationCheck,
    VerificationEvidence,
    VerificationResult,
)

module_logger = logging.getLogger(__name__)

# Check names, in evaluation order
RECOGNIZED_LAB = "recognized_lab"
HEALTH_CARD = "health_card"
ACCESSION_NUMBER = "accession_number"
NAME_MATCH = "name_match"
COLLECTION_DATE = "collection_date"

CHECK_ORDER = (RECOGNIZED_LAB, HEALTH_CARD, ACCESSION_NUMBER, NAME_MATCH, COLLECTION_DATE)

DEFAULT_WEIGHTS: dict[str, int] = {
    RECOGNIZED_LAB: 35,
    HEALTH_CARD: 20,
    ACCESSION_NUMBER: 20,
    NAME_MATCH: 15,
    COLLECTION_DATE: 10,
}

MAX_AGE_DAYS = 730
LOW_SCORE = 25
HIGH_SCORE = 75
# Name tokens shorter than this must match exactly ("A." is not "Adams")
MIN_PARTIAL_TOKEN = 3

UNRECOGNIZED_LAB_DETAIL = "cannot verify identifiers (unrecognized lab)"
FUTURE_DATE_DETAIL = "Collection date is in the future"


@dataclass(frozen=True)
class DateValidation:
    """Outcome of checking a collection date against today."""

    is_valid: bool
    is_future: bool = False
    is_older_than_two_years: bool = False
    parsed_date: date | None = None
    details: str = ""


def validate_collection_date(
    value: str | date | None,
    today: date | None = None,
    max_age_days: int = MAX_AGE_DAYS,
) -> DateValidation:
    """Check that a collection date is present, parseable and not in the future.

    Dates older than ``max_age_days`` are flagged but remain valid.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return DateValidation(is_valid=False, details="No collection date provided")

    parsed = parse_date(value)
    if parsed is None:
        return DateValidation(is_valid=False, details=f"Unable to parse collection date {value!r}")

    today = today or date.today()
    if parsed > today:
        return DateValidation(
            is_valid=False, is_future=True, parsed_date=parsed, details=FUTURE_DATE_DETAIL
        )
    if (today - parsed).days > max_age_days:
        return DateValidation(
            is_valid=True,
            is_older_than_two_years=True,
            parsed_date=parsed,
            details="Collection date is more than 2 years old",
        )
    return DateValidation(is_valid=True, parsed_date=parsed, details="Collection date is valid")


def score_to_level(score: int) -> str:
    if score <= 0:
        return LEVEL_NONE
    if score < LOW_SCORE:
        return LEVEL_LOW
    if score < HIGH_SCORE:
        return LEVEL_MEDIUM
    return LEVEL_HIGH


def _name_tokens(name: str) -> list[str]:
    return [t for t in fold_text(name).replace(",", " ").replace(".", " ").split(" ") if t]


def _tokens_match(wanted: str, extracted: str) -> bool:
    if wanted == extracted:
        return True
    if min(len(wanted), len(extracted)) < MIN_PARTIAL_TOKEN:
        return False
    return wanted in extracted or extracted in wanted


def names_match(extracted_name: str, profile: UserProfile | None) -> bool:
    """Order-insensitive, accent-insensitive patient name comparison.

    At least two profile name tokens (or all of them, if fewer) must appear
    in the extracted name, so "SMITH, John A." matches John Smith.
    """
    if not extracted_name or profile is None or not profile.has_name:
        return False
    extracted = _name_tokens(extracted_name)
    wanted = _name_tokens(profile.first_name) + _name_tokens(profile.last_name)
    if not extracted or not wanted:
        return False

    matched = [part for part in wanted if any(_tokens_match(part, e) for e in extracted)]
    return len(matched) >= min(2, len(wanted))


def _finalize(
    checks: Sequence[VerificationCheck],
    has_future_date: bool,
    is_older_than_two_years: bool,
) -> VerificationResult:
    """Score, level and verdict from a finished list of checks."""
    possible = sum(c.max_points for c in checks)
    earned = sum(c.points for c in checks)
    score = round(100 * earned / possible) if possible else 0

    by_name = {c.name: c for c in checks}
    lab = by_name.get(RECOGNIZED_LAB)
    identifier = any(
        by_name[n].passed for n in (HEALTH_CARD, ACCESSION_NUMBER) if n in by_name
    )
    is_verified = (not has_future_date) and lab is not None and lab.passed and identifier

    return VerificationResult(
        score=score,
        level=score_to_level(score),
        is_verified=is_verified,
        has_future_date=has_future_date,
        is_older_than_two_years=is_older_than_two_years,
        checks=tuple(checks),
    )


class VerificationScorer:
    """Turns a document's evidence into a VerificationResult.

    Args:
        directory: Lab table used for the recognized_lab check.
        weights: Points per check name; missing names use DEFAULT_WEIGHTS.
        max_age_days: Age beyond which a collection date is flagged as old.
        logger: Receives one debug line per scored document.
    """

    def __init__(
        self,
        directory: LabDirectory | None = None,
        weights: Mapping[str, int] | None = None,
        max_age_days: int = MAX_AGE_DAYS,
        logger: logging.Logger | None = None,
    ):
        self.directory = directory or default_directory()
        self.weights = {**DEFAULT_WEIGHTS, **(weights or {})}
        self.max_age_days = max_age_days
        self.logger = logger or module_logger

    def _check(self, name: str, passed: bool, details: str) -> VerificationCheck:
        max_points = self.weights[name]
        return VerificationCheck(
            name=name,
            passed=passed,
            details=details,
            points=max_points if passed else 0,
            max_points=max_points,
        )

    def score(
        self,
        evidence: VerificationEvidence | None,
        collection_date: date | None = None,
        profile: UserProfile | None = None,
        today: date | None = None,
    ) -> VerificationResult:
        evidence = evidence or VerificationEvidence()
        checks: list[VerificationCheck] = []

        lab = self.directory.find_lab(evidence.lab_name)
        if lab:
            checks.append(self._check(RECOGNIZED_LAB, True, f"Recognized lab: {lab.canonical_name}"))
        elif evidence.lab_name:
            checks.append(self._check(RECOGNIZED_LAB, False, f"Unrecognized lab: {evidence.lab_name}"))
        else:
            checks.append(self._check(RECOGNIZED_LAB, False, "No lab name detected"))

        if lab is None:
            checks.append(self._check(HEALTH_CARD, False, UNRECOGNIZED_LAB_DETAIL))
            checks.append(self._check(ACCESSION_NUMBER, False, UNRECOGNIZED_LAB_DETAIL))
        else:
            card = lab.health_card_name or "Health card"
            checks.append(
                self._check(
                    HEALTH_CARD,
                    evidence.has_health_card,
                    f"{card} number present" if evidence.has_health_card else f"No {card} number detected",
                )
            )
            has_accession = evidence.has_accession_number or bool(evidence.accession_number)
            if has_accession:
                details = "Accession number present"
                fits = accession_matches(lab, evidence.accession_number)
                if fits is True:
                    details += f" (matches {lab.canonical_name} format)"
                elif fits is False:
                    details += f" (does not match {lab.canonical_name} format)"
            else:
                details = "No accession number detected"
            checks.append(self._check(ACCESSION_NUMBER, has_accession, details))

        if profile is not None and profile.has_name:
            matched = names_match(evidence.patient_name, profile)
            if matched:
                details = "Patient name matches profile"
            elif evidence.patient_name:
                details = "Patient name does not match profile"
            else:
                details = "No patient name detected"
            checks.append(self._check(NAME_MATCH, matched, details))

        dated = validate_collection_date(collection_date, today, self.max_age_days)
        checks.append(self._check(COLLECTION_DATE, dated.is_valid, dated.details))

        result = _finalize(checks, dated.is_future, dated.is_older_than_two_years)
        self.logger.debug(
            "Verification: score=%d level=%s verified=%s lab=%r",
            result.score,
            result.level,
            result.is_verified,
            evidence.lab_name,
        )
        return result

    def score_extraction(
        self,
        extraction: RawExtraction,
        profile: UserProfile | None = None,
        today: date | None = None,
    ) -> VerificationResult:
        return self.score(extraction.evidence, extraction.collection_date, profile, today)

    def reverify_name_match(
        self,
        result: VerificationResult,
        patient_name: str,
        profile: UserProfile | None,
    ) -> VerificationResult:
        """Re-run the name check after a profile rename and rescore.

        A profile without a name drops the check; otherwise it is replaced
        in place or inserted before the collection date check.
        """
        checks = [c for c in result.checks if c.name != NAME_MATCH]
        if profile is not None and profile.has_name:
            matched = names_match(patient_name, profile)
            check = self._check(
                NAME_MATCH,
                matched,
                "Patient name matches profile" if matched else "Patient name does not match profile",
            )
            names = [c.name for c in checks]
            position = names.index(COLLECTION_DATE) if COLLECTION_DATE in names else len(checks)
            checks.insert(position, check)
        return _finalize(checks, result.has_future_date, result.is_older_than_two_years)


def merge_verification_results(
    results: Sequence[VerificationResult],
) -> VerificationResult | None:
    """Combine per-document results for documents of one date group.

    Each check keeps its best outcome across the documents, in the check
    order of the first result. A future date on any document marks the group.
    The group is verified when any member is and no member has a future date.
    """
    if not results:
        return None
    if len(results) == 1:
        return results[0]

    best: dict[str, VerificationCheck] = {}
    order: list[str] = []
    for result in results:
        for check in result.checks:
            existing = best.get(check.name)
            if existing is None:
                order.append(check.name)
                best[check.name] = check
            elif (check.points, check.passed) > (existing.points, existing.passed):
                best[check.name] = check

    has_future_date = any(r.has_future_date for r in results)
    merged = _finalize(
        [best[name] for name in order],
        has_future_date,
        any(r.is_older_than_two_years for r in results),
    )
    is_verified = any(r.is_verified for r in results) and not has_future_date
    return replace(merged, is_verified=is_verified)


def soft_warnings(result: VerificationResult) -> list[str]:
    """Human-readable warnings a caller may show before letting the user save.

    These never block persistence; only a future date does.
    """
    warnings = []
    if result.score == 0:
        warnings.append("No verification signals were detected on this document")
    elif result.score < LOW_SCORE:
        warnings.append(f"Low verification score ({result.score}/100)")
    for check in result.checks:
        if not check.passed:
            warnings.append(f"{check.name}: {check.details}")
    return warnings


def score_document(
    evidence: VerificationEvidence | None,
    collection_date: date | None = None,
    profile: UserProfile | None = None,
    today: date | None = None,
) -> VerificationResult:
    """Score with the bundled lab table and default weights."""
    return VerificationScorer().score(evidence, collection_date, profile, today)
