"""MCP server for labfold: fingerprinting, lab lookup, verification and grouping tools.

Run with: python -m labfold.mcp.server
Configure env: LABFOLD_DB=/path/to/labfold.db
"""

from __future__ import annotations

import os
from dataclasses import asdict

from mcp.server.fastmcp import FastMCP

from labfold.aggregation import aggregate
from labfold.core.log import setup_logging
from labfold.db import LabfoldDB
from labfold.fingerprint import DEFAULT_NEAR_DUPLICATE_THRESHOLD, fingerprint, hamming_distance
from labfold.grouping import DateGrouper
from labfold.labs import default_directory
from labfold.models import DateGroup, KnownCondition, UserProfile
from labfold.parser import extraction_from_payload, parse_batch
from labfold.verification import VerificationScorer, soft_warnings

DB_PATH = os.environ.get("LABFOLD_DB", "labfold.db")

mcp = FastMCP(
    "labfold",
    instructions=(
        "Lab report verification and deduplication server.\n\n"
        "Key capabilities:\n"
        "- fingerprint_text / compare_simhashes: Exact and near-duplicate content hashes\n"
        "- find_lab: Resolve a lab name to a recognized laboratory\n"
        "- verify_document: Authenticity score for one parsed document\n"
        "- group_documents: Group parsed documents by collection date with deduplication\n"
        "- check_duplicate_upload: Compare OCR text against saved records\n"
        "- get_status_summary: Current status per test from saved records\n\n"
        "Documents are passed as the document parser's JSON payload: collection_date, "
        "test_type, tests [{name, result}], notes, lab_name, patient_name, "
        "health_card_present, accession_number, raw_text."
    ),
)


def _get_db() -> LabfoldDB:
    db = LabfoldDB(DB_PATH)
    db.init_schema()
    return db


def _profile(first_name: str, last_name: str) -> UserProfile | None:
    profile = UserProfile(first_name=first_name, last_name=last_name)
    return profile if profile.has_name else None


def _group_to_dict(group: DateGroup) -> dict:
    v = group.verification_result
    return {
        "date": group.date_key,
        "test_type": group.test_type,
        "overall_status": group.overall_status,
        "tests": [asdict(t) for t in group.tests],
        "conflicts": [
            {
                "test_name": c.test_name,
                "statuses": [o.status for o in c.occurrences],
                "suggested": c.suggested.status,
            }
            for c in group.conflicts
        ],
        "notes": group.notes,
        "is_verified": group.is_verified,
        "verification_score": v.score if v else 0,
        "verification_level": v.level if v else "none",
        "content_hashes": list(group.content_hashes),
        "content_simhashes": list(group.content_simhashes),
    }


@mcp.tool()
def fingerprint_text(text: str) -> dict:
    """Compute the SHA-256 exact hash and 64-bit SimHash of normalized text."""
    fp = fingerprint(text)
    return {"exact_hash": fp.exact_hash, "simhash": fp.simhash}


@mcp.tool()
def compare_simhashes(a: str, b: str, threshold: int = DEFAULT_NEAR_DUPLICATE_THRESHOLD) -> dict:
    """Hamming distance between two SimHashes (16 hex chars each).

    Malformed input gives the maximal distance of 64.
    """
    distance = hamming_distance(a, b)
    return {"distance": distance, "near_duplicate": distance < threshold}


@mcp.tool()
def find_lab(name: str) -> dict | str:
    """Resolve a lab name as printed on a report to a recognized laboratory."""
    directory = default_directory()
    lab = directory.find_lab(name)
    if lab is None:
        return f"No recognized lab matches '{name}'."
    return {
        "id": lab.id,
        "canonical_name": lab.canonical_name,
        "region": lab.region,
        "country": lab.country,
        "health_card_name": lab.health_card_name,
        "normalized_input": directory.normalize_lab_name(name),
    }


@mcp.tool()
def verify_document(document: dict, first_name: str = "", last_name: str = "") -> dict:
    """Score one parsed document's authenticity evidence.

    Returns score (0-100), level, is_verified, each check, and soft warnings.
    """
    extraction = extraction_from_payload(document)
    result = VerificationScorer().score_extraction(extraction, _profile(first_name, last_name))
    return {
        "score": result.score,
        "level": result.level,
        "is_verified": result.is_verified,
        "has_future_date": result.has_future_date,
        "checks": [asdict(c) for c in result.checks],
        "warnings": soft_warnings(result),
    }


@mcp.tool()
def group_documents(documents: list[dict], first_name: str = "", last_name: str = "") -> dict:
    """Group parsed documents by collection date, deduplicating results per group.

    Documents that cannot be read are listed under "failures" and do not
    stop the rest of the batch.
    """
    parsed = parse_batch(documents, extraction_from_payload)
    groups = DateGrouper().group(parsed.extractions, _profile(first_name, last_name))
    return {
        "groups": [_group_to_dict(g) for g in groups],
        "failures": [
            {"file_label": f.file_label, "stage": f.stage, "message": f.user_message()}
            for f in parsed.failures
        ],
    }


@mcp.tool()
def check_duplicate_upload(text: str, threshold: int = DEFAULT_NEAR_DUPLICATE_THRESHOLD) -> dict:
    """Check OCR text against saved records for exact and near duplicates.

    An exact match means the document was already saved; near matches are advisory.
    """
    fp = fingerprint(text)
    with _get_db() as db:
        result = db.check_duplicate_upload(fp, threshold)
    return {
        "exact_hash": fp.exact_hash,
        "simhash": fp.simhash,
        "exact_duplicate_of": result.exact,
        "near_duplicates": [{"record_id": rid, "distance": d} for rid, d in result.near],
    }


@mcp.tool()
def get_status_summary(known_conditions: list[str] | None = None) -> dict:
    """Current status per test across all saved records.

    Declared known conditions are reported separately and excluded from the
    overall status.
    """
    conditions = [KnownCondition(condition_name=c) for c in known_conditions or []]
    with _get_db() as db:
        history = db.load_history()
    summary = aggregate(history, conditions)

    def entry(e):
        return {
            "name": e.name,
            "status": e.status,
            "result": e.result_text,
            "test_date": e.test_date.isoformat() if e.test_date else None,
            "is_verified": e.is_verified,
            "has_test_data": e.has_test_data,
        }

    return {
        "overall": summary.overall,
        "last_tested_date": summary.last_tested_date.isoformat() if summary.last_tested_date else None,
        "routine": [entry(e) for e in summary.routine],
        "known": [entry(e) for e in summary.known],
        "new_status_positives": [e.name for e in summary.new_status_positives],
    }


def main():
    setup_logging()
    mcp.run()


if __name__ == "__main__":
    main()
