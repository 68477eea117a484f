"""labfold: verify and deduplicate lab results extracted from uploaded reports.

Fingerprints documents for duplicate-upload detection, scores authenticity
against a directory of recognized laboratories, and folds multi-file uploads
into one record per collection date.
"""

import logging

__version__ = "1.0.0"

logging.getLogger("labfold").addHandler(logging.NullHandler())
