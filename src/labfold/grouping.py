"""Partition an upload batch into one record per collection date.

A batch may mix reports from several visits. Documents are bucketed by
collection date, outcomes within a bucket are deduplicated, and each bucket
carries merged verification evidence and every member's content fingerprint.
Undated documents share a single "unknown" bucket, ordered last.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date

from labfold.core.status import overall_status
from labfold.dedup import ResultDeduplicator
from labfold.fingerprint import fingerprint
from labfold.models import DateGroup, RawExtraction, UserProfile
from labfold.normalize import determine_test_type
from labfold.verification import VerificationScorer, merge_verification_results

module_logger = logging.getLogger(__name__)

NOTES_SEPARATOR = "\n\n"


class DateGrouper:
    """Groups parsed documents by collection date.

    Args:
        scorer: Scores each member document before merging per group.
        deduplicator: Collapses repeated outcomes within a group.
        logger: Receives a summary line per call.
    """

    def __init__(
        self,
        scorer: VerificationScorer | None = None,
        deduplicator: ResultDeduplicator | None = None,
        logger: logging.Logger | None = None,
    ):
        self.logger = logger or module_logger
        self.scorer = scorer or VerificationScorer(logger=self.logger)
        self.deduplicator = deduplicator or ResultDeduplicator(logger=self.logger)

    def group(
        self,
        documents: Iterable[RawExtraction],
        profile: UserProfile | None = None,
        today: date | None = None,
    ) -> list[DateGroup]:
        buckets: dict[date | None, list[int]] = {}
        documents = list(documents)
        for i, doc in enumerate(documents):
            buckets.setdefault(doc.collection_date, []).append(i)

        ordered = sorted(
            buckets.items(), key=lambda item: (item[0] is None, item[0] or date.min)
        )
        groups = [
            self._build_group(d, [documents[i] for i in indices], indices, profile, today)
            for d, indices in ordered
        ]
        self.logger.info(
            "Grouped %d documents into %d date groups: %s",
            len(documents),
            len(groups),
            ", ".join(g.date_key for g in groups),
        )
        return groups

    def _build_group(
        self,
        collection_date: date | None,
        members: list[RawExtraction],
        indices: list[int],
        profile: UserProfile | None,
        today: date | None,
    ) -> DateGroup:
        outcomes = [t for doc in members for t in doc.tests]
        dedup = self.deduplicator.deduplicate(outcomes)

        results = [self.scorer.score_extraction(doc, profile, today) for doc in members]
        verification = merge_verification_results(results)

        hashes: list[str] = []
        simhashes: list[str] = []
        for doc in members:
            if doc.raw_text:
                fp = fingerprint(doc.raw_text)
                hashes.append(fp.exact_hash)
                simhashes.append(fp.simhash)

        panel = next((doc.panel_label for doc in members if doc.panel_label), "")
        patient = next(
            (doc.evidence.patient_name for doc in members if doc.evidence and doc.evidence.patient_name),
            "",
        )

        return DateGroup(
            date=collection_date,
            tests=dedup.tests,
            test_type=determine_test_type((t.name for t in dedup.tests), fallback=panel),
            overall_status=overall_status(t.status for t in dedup.tests),
            notes=NOTES_SEPARATOR.join(doc.notes.strip() for doc in members if doc.notes.strip()),
            is_verified=verification.is_verified if verification else False,
            verification_result=verification,
            conflicts=dedup.conflicts,
            content_hashes=tuple(hashes),
            content_simhashes=tuple(simhashes),
            source_indices=tuple(indices),
            patient_name=patient,
        )


def group_by_date(
    documents: Iterable[RawExtraction],
    profile: UserProfile | None = None,
    today: date | None = None,
) -> list[DateGroup]:
    return DateGrouper().group(documents, profile, today)
