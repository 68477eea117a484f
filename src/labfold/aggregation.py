"""Current status per test across a user's whole result history.

For every test name the most recent result wins. Results are then split into
routine screening and declared ("known") chronic conditions, and the headline
status is computed from routine results only, so a managed condition never
makes an otherwise clear history look positive.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date

from labfold.conditions import find_matching_condition, is_chronic_condition, matches
from labfold.core.status import overall_status
from labfold.dedup import dedup_key
from labfold.models import (
    PENDING,
    POSITIVE,
    AggregatedTest,
    KnownCondition,
    StatusSummary,
    StoredRecord,
)

module_logger = logging.getLogger(__name__)

NOT_RECENTLY_TESTED = "Not recently tested"


def _sort_date(d: date | None) -> date:
    return d or date.min


class StatusAggregator:
    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or module_logger

    def aggregate(
        self,
        history: Iterable[StoredRecord],
        conditions: Iterable[KnownCondition] = (),
    ) -> StatusSummary:
        conditions = list(conditions)
        latest: dict[str, AggregatedTest] = {}

        for record in history:
            for test in record.tests:
                if not test.name:
                    continue
                key = dedup_key(test.name)
                existing = latest.get(key)
                # Ties keep the first record seen
                if existing is not None and _sort_date(record.test_date) <= _sort_date(existing.test_date):
                    continue
                matched = find_matching_condition(test.name, conditions)
                latest[key] = AggregatedTest(
                    name=test.name,
                    status=test.status,
                    result_text=test.result_text or test.status.capitalize(),
                    test_date=record.test_date,
                    is_verified=record.is_verified,
                    verification_level=record.verification_level,
                    is_known_condition=matched is not None,
                    has_test_data=True,
                    management_methods=matched.management_methods if matched else (),
                )

        entries = list(latest.values())
        for condition in conditions:
            if any(matches(e.name, condition.condition_name) for e in entries):
                continue
            entries.append(
                AggregatedTest(
                    name=condition.condition_name,
                    status=PENDING,
                    result_text=NOT_RECENTLY_TESTED,
                    test_date=condition.declared_at,
                    is_known_condition=True,
                    has_test_data=False,
                    management_methods=condition.management_methods,
                )
            )

        entries.sort(key=lambda e: e.name.lower())
        routine = tuple(e for e in entries if not e.is_known_condition)
        known = tuple(e for e in entries if e.is_known_condition)
        new_positives = tuple(
            e for e in routine if e.status == POSITIVE and is_chronic_condition(e.name)
        )
        tested = [e.test_date for e in entries if e.has_test_data and e.test_date]

        summary = StatusSummary(
            routine=routine,
            known=known,
            overall=overall_status(e.status for e in routine),
            new_status_positives=new_positives,
            last_tested_date=max(tested) if tested else None,
        )
        self.logger.info(
            "Aggregated %d tests (%d routine, %d known); overall %s",
            len(entries),
            len(routine),
            len(known),
            summary.overall,
        )
        return summary


def aggregate(
    history: Iterable[StoredRecord], conditions: Iterable[KnownCondition] = ()
) -> StatusSummary:
    return StatusAggregator().aggregate(history, conditions)
