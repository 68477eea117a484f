"""SQLite persistence boundary for labfold.

LabfoldDB stores one row per date group and answers the duplicate-upload
questions asked before a save:
- exact: has this document's content hash been saved before?
- near: is a saved document's SimHash within the advisory threshold?

Verification booleans and scores are flattened into columns; outcomes and
checks are stored as JSON.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path

from labfold.core.utils import parse_date
from labfold.fingerprint import DEFAULT_NEAR_DUPLICATE_THRESHOLD, ZERO_SIMHASH, hamming_distance
from labfold.models import LEVEL_NONE, PENDING, ContentFingerprint, DateGroup, StoredRecord, TestOutcome

logger = logging.getLogger(__name__)


class FutureDateError(ValueError):
    """A group dated in the future cannot be saved, with or without override."""


@dataclass
class DuplicateCheck:
    """Result of comparing a new document against saved records."""

    exact: int | None = None  # id of a record with the same content hash
    near: list[tuple[int, int]] = field(default_factory=list)  # (id, distance), closest first

    @property
    def is_duplicate(self) -> bool:
        return self.exact is not None


def _get_schema_sql() -> str:
    """Read the schema.sql file bundled with the package."""
    schema_path = Path(__file__).parent / "schema.sql"
    return schema_path.read_text()


def _is_future(group: DateGroup, today: date | None) -> bool:
    if group.verification_result and group.verification_result.has_future_date:
        return True
    return group.date is not None and group.date > (today or date.today())


class LabfoldDB:
    """SQLite-backed store of saved date groups."""

    def __init__(self, db_path: str = "labfold.db"):
        self.db_path = db_path
        self.conn = sqlite3.connect(db_path)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")

    def init_schema(self) -> None:
        """Create all tables from schema.sql (IF NOT EXISTS)."""
        self.conn.executescript(_get_schema_sql())

    def save_group(self, group: DateGroup, today: date | None = None) -> int:
        """Persist one date group and return its record id.

        Raises FutureDateError for a group whose collection date is in the
        future. Low verification scores are saved as-is.
        """
        if _is_future(group, today):
            raise FutureDateError(
                f"Refusing to save results dated {group.date_key}: collection date is in the future"
            )

        v = group.verification_result
        with self.conn:
            cursor = self.conn.execute(
                """INSERT INTO test_records (
                    test_date, test_type, overall_status, tests, notes,
                    is_verified, verification_score, verification_level, verification_checks,
                    extracted_patient_name, content_hash, content_simhash, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    group.date.isoformat() if group.date else None,
                    group.test_type,
                    group.overall_status,
                    json.dumps([asdict(t) for t in group.tests]),
                    group.notes,
                    int(group.is_verified),
                    v.score if v else 0,
                    v.level if v else LEVEL_NONE,
                    json.dumps([asdict(c) for c in v.checks] if v else []),
                    group.patient_name,
                    group.content_hashes[0] if group.content_hashes else "",
                    group.content_simhashes[0] if group.content_simhashes else "",
                    datetime.now(timezone.utc).isoformat(),
                ),
            )
        record_id = cursor.lastrowid
        logger.info("Saved %s group as record %d (%d tests)", group.date_key, record_id, len(group.tests))
        return record_id

    def find_exact_duplicate(self, content_hash: str) -> int | None:
        """Id of the first saved record with this content hash, if any."""
        if not content_hash:
            return None
        row = self.conn.execute(
            "SELECT id FROM test_records WHERE content_hash = ? ORDER BY id LIMIT 1",
            (content_hash,),
        ).fetchone()
        return row["id"] if row else None

    def find_near_duplicates(
        self, simhash: str, threshold: int = DEFAULT_NEAR_DUPLICATE_THRESHOLD
    ) -> list[tuple[int, int]]:
        """Saved records whose SimHash is fewer than ``threshold`` bits away."""
        if not simhash or simhash == ZERO_SIMHASH:
            return []
        rows = self.conn.execute(
            "SELECT id, content_simhash FROM test_records WHERE content_simhash != '' AND content_simhash != ?",
            (ZERO_SIMHASH,),
        ).fetchall()
        matches = []
        for row in rows:
            distance = hamming_distance(simhash, row["content_simhash"])
            if distance < threshold:
                matches.append((row["id"], distance))
        return sorted(matches, key=lambda m: (m[1], m[0]))

    def check_duplicate_upload(
        self,
        fp: ContentFingerprint,
        threshold: int = DEFAULT_NEAR_DUPLICATE_THRESHOLD,
    ) -> DuplicateCheck:
        """Compare a new document's fingerprint against everything saved.

        An exact match means the same document was already saved and the
        caller should ask before saving again. Near matches are advisory.
        """
        result = DuplicateCheck(
            exact=self.find_exact_duplicate(fp.exact_hash),
            near=self.find_near_duplicates(fp.simhash, threshold),
        )
        if result.exact is not None:
            logger.info("Upload matches saved record %d exactly", result.exact)
        elif result.near:
            logger.info("Upload is a near duplicate of %d saved record(s)", len(result.near))
        return result

    def load_history(self) -> list[StoredRecord]:
        """All saved records, oldest test date first (undated first)."""
        rows = self.conn.execute(
            "SELECT * FROM test_records ORDER BY test_date IS NOT NULL, test_date, id"
        ).fetchall()
        return [_row_to_record(row) for row in rows]

    def query(self, sql: str, params: tuple = ()) -> list[dict]:
        """Execute a read-only SQL query and return results as list of dicts."""
        cursor = self.conn.execute(sql, params)
        columns = [desc[0] for desc in cursor.description] if cursor.description else []
        return [dict(zip(columns, row, strict=False)) for row in cursor.fetchall()]

    def summary(self) -> dict[str, int]:
        """Row counts for the record table, split by verification and status."""
        rows = self.query(
            "SELECT COUNT(*) AS records, "
            "COALESCE(SUM(is_verified), 0) AS verified, "
            "COALESCE(SUM(overall_status = 'positive'), 0) AS positive "
            "FROM test_records"
        )
        return rows[0]

    def close(self) -> None:
        self.conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def _row_to_record(row: sqlite3.Row) -> StoredRecord:
    tests = tuple(
        TestOutcome(
            name=t.get("name", ""),
            result_text=t.get("result_text", ""),
            status=t.get("status", PENDING),
        )
        for t in json.loads(row["tests"] or "[]")
    )
    return StoredRecord(
        id=row["id"],
        test_date=parse_date(row["test_date"]),
        tests=tests,
        test_type=row["test_type"],
        overall_status=row["overall_status"],
        is_verified=bool(row["is_verified"]),
        verification_score=row["verification_score"],
        verification_level=row["verification_level"],
        content_hash=row["content_hash"],
        content_simhash=row["content_simhash"],
    )
