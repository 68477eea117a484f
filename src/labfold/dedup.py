"""Collapse repeated test outcomes into one authoritative result per test.

The same test can appear several times: twice on one report (a summary table
and a detail page), or on two reports from the same visit. Repeats that agree
collapse to their first occurrence. Repeats that disagree become a
TestConflict, resolved to the most clinically significant status.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from labfold.core.status import status_rank
from labfold.models import (
    DeduplicationResult,
    DeduplicationStats,
    TestConflict,
    TestOutcome,
)

module_logger = logging.getLogger(__name__)

_SEPARATORS = re.compile(r"[-_/]")
_WHITESPACE = re.compile(r"\s+")


def dedup_key(name: str) -> str:
    """Grouping key for a test name: 'HIV-1/2 Ab' and 'hiv 1 2  ab' share one."""
    lowered = _SEPARATORS.sub(" ", name.lower())
    return _WHITESPACE.sub(" ", lowered).strip()


class ResultDeduplicator:
    """Merges TestOutcome lists; holds no state between calls."""

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or module_logger

    def deduplicate(self, outcomes: Iterable[TestOutcome]) -> DeduplicationResult:
        outcomes = list(outcomes)
        if not outcomes:
            return DeduplicationResult()

        groups: dict[str, list[TestOutcome]] = {}
        for i, outcome in enumerate(outcomes):
            # Nameless rows are never merged with one another
            key = dedup_key(outcome.name) or f"__unnamed_{i}"
            groups.setdefault(key, []).append(outcome)

        self.logger.info(
            "Deduplicating %d outcomes across %d test names", len(outcomes), len(groups)
        )

        tests: list[TestOutcome] = []
        conflicts: list[TestConflict] = []
        for key, members in groups.items():
            statuses = {m.status for m in members}
            if len(statuses) == 1:
                if len(members) > 1:
                    self.logger.debug("Collapsed %d copies of %r", len(members), members[0].name)
                tests.append(members[0])
                continue

            suggested = resolve_conflict(members)
            conflicts.append(
                TestConflict(
                    test_name=members[0].name,
                    occurrences=tuple(members),
                    suggested=suggested,
                )
            )
            tests.append(suggested)
            self.logger.warning(
                "Conflicting results for %r (%s); using %s",
                members[0].name,
                ", ".join(m.status for m in members),
                suggested.status,
            )

        stats = DeduplicationStats(
            total_input=len(outcomes),
            unique_tests=len(tests),
            duplicates_removed=len(outcomes) - len(tests),
            conflicts_detected=len(conflicts),
        )
        self.logger.info(
            "Deduplication complete: %d unique, %d removed, %d conflicts",
            stats.unique_tests,
            stats.duplicates_removed,
            stats.conflicts_detected,
        )
        return DeduplicationResult(tests=tuple(tests), conflicts=tuple(conflicts), stats=stats)


def resolve_conflict(occurrences: Iterable[TestOutcome]) -> TestOutcome:
    """Earliest occurrence with the most clinically significant status."""
    best: TestOutcome | None = None
    for outcome in occurrences:
        if best is None or status_rank(outcome.status) > status_rank(best.status):
            best = outcome
    if best is None:
        raise ValueError("resolve_conflict() needs at least one outcome")
    return best


def deduplicate(outcomes: Iterable[TestOutcome]) -> DeduplicationResult:
    return ResultDeduplicator().deduplicate(outcomes)
