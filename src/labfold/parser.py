"""Boundary with the external document parser (OCR + LLM field extraction).

labfold never calls OCR or a language model itself. A caller supplies a
``parse`` callable per file; this module turns its JSON payload into a
RawExtraction and its failures into per-file ParseFailure values, so one bad
photo never aborts the rest of an upload batch.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from labfold.core.utils import parse_date
from labfold.models import TEST_STATUSES, RawExtraction, TestOutcome, VerificationEvidence
from labfold.normalize import normalize_test_name, standardize_result

logger = logging.getLogger(__name__)


class ParsingStage:
    NETWORK = "network"
    OCR = "ocr"
    LLM_PARSING = "llm_parsing"
    UNKNOWN = "unknown"

    ALL = (NETWORK, OCR, LLM_PARSING, UNKNOWN)


_USER_MESSAGES = {
    ParsingStage.NETWORK: "Network error. Please check your connection and try again.",
    ParsingStage.OCR: "Failed to extract text from the image. Please ensure the image is clear and readable.",
    ParsingStage.LLM_PARSING: "Failed to parse the test results. Please ensure the document contains valid test results.",
    ParsingStage.UNKNOWN: "Failed to process the document. Please try again.",
}


class DocumentParsingError(Exception):
    """Raised by a document parser when one file cannot be read.

    Args:
        stage: Where it failed; one of ParsingStage.ALL. Other values are
            recorded as "unknown".
        message: Technical description for logs.
        file_label: Which file of the batch failed, e.g. "File 2 of 3".
        details: Extra structured context (HTTP status, model name, ...).
    """

    def __init__(
        self,
        stage: str,
        message: str,
        file_label: str = "",
        details: Mapping[str, Any] | None = None,
    ):
        super().__init__(message)
        self.stage = stage if stage in ParsingStage.ALL else ParsingStage.UNKNOWN
        self.message = message
        self.file_label = file_label
        self.details = dict(details or {})

    def user_message(self) -> str:
        return _USER_MESSAGES[self.stage]

    def to_dict(self) -> dict:
        return {
            "name": type(self).__name__,
            "stage": self.stage,
            "message": self.message,
            "user_message": self.user_message(),
            "file_label": self.file_label,
            "details": self.details,
        }


@dataclass(frozen=True)
class ParseFailure:
    """A file of the batch that produced no extraction."""

    file_label: str
    stage: str
    message: str

    def user_message(self) -> str:
        return _USER_MESSAGES.get(self.stage, _USER_MESSAGES[ParsingStage.UNKNOWN])


@dataclass
class BatchParseResult:
    extractions: list[RawExtraction] = field(default_factory=list)
    failures: list[ParseFailure] = field(default_factory=list)

    @property
    def all_failed(self) -> bool:
        return not self.extractions and bool(self.failures)


def parse_batch(
    files: Iterable[Any],
    parse: Callable[[Any], RawExtraction | Mapping[str, Any]],
) -> BatchParseResult:
    """Run the document parser over every file, collecting failures per file.

    ``parse`` may return a RawExtraction or a raw payload dict (see
    extraction_from_payload). Each extraction is labelled "File i of n".
    """
    files = list(files)
    total = len(files)
    result = BatchParseResult()

    for i, f in enumerate(files, start=1):
        label = f"File {i} of {total}"
        try:
            parsed = parse(f)
        except DocumentParsingError as e:
            logger.warning("%s failed at %s stage: %s", label, e.stage, e.message)
            result.failures.append(ParseFailure(e.file_label or label, e.stage, e.message))
            continue
        except Exception as e:
            logger.warning("%s failed unexpectedly: %s", label, e)
            result.failures.append(ParseFailure(label, ParsingStage.UNKNOWN, str(e)))
            continue

        if isinstance(parsed, Mapping):
            parsed = extraction_from_payload(parsed, file_label=label)
        elif not parsed.file_label:
            parsed = replace(parsed, file_label=label)
        result.extractions.append(parsed)

    logger.info(
        "Parsed %d of %d files (%d failed)", len(result.extractions), total, len(result.failures)
    )
    return result


def _outcome_from_payload(item: Mapping[str, Any]) -> TestOutcome:
    name = normalize_test_name(str(item.get("name") or ""))
    result_text = str(item.get("result") or item.get("result_text") or "")
    status = item.get("status")
    if status not in TEST_STATUSES:
        status = standardize_result(result_text)
    return TestOutcome(name=name, result_text=result_text, status=status)


def extraction_from_payload(payload: Mapping[str, Any], file_label: str = "") -> RawExtraction:
    """Build a RawExtraction from the document parser's JSON fields.

    Test names are normalized and statuses derived from result text unless
    the payload already carries a valid status. Unparseable dates become None.
    """
    evidence = VerificationEvidence(
        lab_name=str(payload.get("lab_name") or ""),
        patient_name=str(payload.get("patient_name") or ""),
        has_health_card=payload.get("health_card_present") is True,
        has_accession_number=bool(payload.get("accession_number")),
        accession_number=str(payload.get("accession_number") or ""),
    )
    raw_date = payload.get("collection_date")
    collection_date = parse_date(raw_date) if raw_date else None
    if raw_date and collection_date is None:
        logger.warning("Ignoring unparseable collection date %r", raw_date)

    return RawExtraction(
        collection_date=collection_date,
        panel_label=str(payload.get("test_type") or ""),
        tests=tuple(_outcome_from_payload(t) for t in payload.get("tests") or ()),
        notes=str(payload.get("notes") or ""),
        evidence=evidence,
        raw_text=str(payload.get("raw_text") or ""),
        file_label=file_label or str(payload.get("file_label") or ""),
    )
