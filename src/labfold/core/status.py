"""Clinical precedence of test statuses.

One ordering shared by deduplication, date grouping and status aggregation:
positive outranks pending and inconclusive (which rank equally), and both
outrank negative.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from labfold.models import INCONCLUSIVE, NEGATIVE, PENDING, POSITIVE

logger = logging.getLogger(__name__)

STATUS_PRECEDENCE: dict[str, int] = {
    POSITIVE: 3,
    PENDING: 2,
    INCONCLUSIVE: 2,
    NEGATIVE: 1,
}


def status_rank(status: str) -> int:
    """Precedence of a status; unknown values rank with pending."""
    rank = STATUS_PRECEDENCE.get(status)
    if rank is None:
        logger.warning("Unknown test status %r ranked as pending", status)
        return STATUS_PRECEDENCE[PENDING]
    return rank


def overall_status(statuses: Iterable[str]) -> str:
    """Fold statuses into one headline status.

    positive if any is positive, else pending if any is pending/inconclusive,
    else negative. An empty input is pending: no results is not a clear result.
    """
    best = 0
    for status in statuses:
        best = max(best, status_rank(status))
    if best == 0:
        return PENDING
    if best == STATUS_PRECEDENCE[POSITIVE]:
        return POSITIVE
    if best == STATUS_PRECEDENCE[PENDING]:
        return PENDING
    return NEGATIVE
