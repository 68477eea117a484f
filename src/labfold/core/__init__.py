"""Core helpers shared across labfold modules."""

from labfold.core.status import STATUS_PRECEDENCE, overall_status, status_rank
from labfold.core.utils import collapse_whitespace, fold_text, parse_date, strip_accents
