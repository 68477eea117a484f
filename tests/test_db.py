"""Tests for labfold.db SQLite persistence."""

from datetime import date

import pytest

from labfold.db import FutureDateError, LabfoldDB
from labfold.fingerprint import ZERO_SIMHASH, fingerprint
from labfold.models import (
    NEGATIVE,
    POSITIVE,
    ContentFingerprint,
    DateGroup,
    TestOutcome,
    VerificationCheck,
    VerificationResult,
)

REPORT = "LifeLabs\nPatient: SMITH, JOHN\nHIV 1/2 Ag/Ab Combo Screen: Non-Reactive\nSyphilis: Non-Reactive"
# One OCR misread apart
SCAN = "hiv negative syphilis negative chlamydia negative"
SCAN_TYPO = "hiv negitive syphilis negative chlamydia negative"


def make_group(d=date(2025, 6, 15), text=REPORT, status=NEGATIVE, verified=True, future=False):
    fp = fingerprint(text)
    v = VerificationResult(
        score=90 if verified else 20,
        level="high" if verified else "none",
        is_verified=verified,
        has_future_date=future,
        checks=(VerificationCheck("recognized_lab", verified, "LifeLabs", 35 if verified else 0, 35),),
    )
    return DateGroup(
        date=d,
        tests=(TestOutcome("HIV-1/2", "Non-Reactive", status), TestOutcome("Syphilis", "Non-Reactive", NEGATIVE)),
        test_type="HIV & Syphilis Panel",
        overall_status=status,
        notes="Fasting",
        is_verified=verified,
        verification_result=v,
        content_hashes=(fp.exact_hash,),
        content_simhashes=(fp.simhash,),
        patient_name="SMITH, JOHN",
    )


class TestSchema:
    def test_init_schema_idempotent(self, tmp_db):
        tmp_db.init_schema()
        tables = tmp_db.query("SELECT name FROM sqlite_master WHERE type='table' AND name='test_records'")
        assert len(tables) == 1

    def test_context_manager(self, tmp_path):
        with LabfoldDB(str(tmp_path / "ctx.db")) as db:
            db.init_schema()
            assert db.summary() == {"records": 0, "verified": 0, "positive": 0}


class TestSaveGroup:
    def test_round_trip(self, tmp_db, today):
        group = make_group()
        record_id = tmp_db.save_group(group, today=today)
        [record] = tmp_db.load_history()
        assert record.id == record_id
        assert record.test_date == date(2025, 6, 15)
        assert record.tests == group.tests
        assert record.test_type == "HIV & Syphilis Panel"
        assert record.is_verified
        assert record.verification_score == 90
        assert record.verification_level == "high"
        assert record.content_hash == group.content_hashes[0]
        assert record.content_simhash == group.content_simhashes[0]

    def test_checks_and_patient_stored(self, tmp_db, today):
        tmp_db.save_group(make_group(), today=today)
        [row] = tmp_db.query("SELECT extracted_patient_name, verification_checks, created_at FROM test_records")
        assert row["extracted_patient_name"] == "SMITH, JOHN"
        assert '"recognized_lab"' in row["verification_checks"]
        assert row["created_at"]

    def test_future_date_refused(self, tmp_db, today):
        with pytest.raises(FutureDateError):
            tmp_db.save_group(make_group(d=date(2025, 8, 1)), today=today)
        assert tmp_db.load_history() == []

    def test_future_flag_refused(self, tmp_db, today):
        with pytest.raises(FutureDateError):
            tmp_db.save_group(make_group(future=True), today=today)

    def test_low_score_saved(self, tmp_db, today):
        tmp_db.save_group(make_group(verified=False), today=today)
        [record] = tmp_db.load_history()
        assert not record.is_verified
        assert record.verification_score == 20

    def test_undated_group(self, tmp_db, today):
        tmp_db.save_group(make_group(d=None), today=today)
        assert tmp_db.load_history()[0].test_date is None

    def test_history_order(self, tmp_db, today):
        tmp_db.save_group(make_group(d=date(2025, 6, 1), text="b"), today=today)
        tmp_db.save_group(make_group(d=None, text="c"), today=today)
        tmp_db.save_group(make_group(d=date(2024, 1, 1), text="a"), today=today)
        dates = [r.test_date for r in tmp_db.load_history()]
        assert dates == [None, date(2024, 1, 1), date(2025, 6, 1)]

    def test_summary(self, tmp_db, today):
        tmp_db.save_group(make_group(), today=today)
        tmp_db.save_group(make_group(text="other", status=POSITIVE, verified=False), today=today)
        assert tmp_db.summary() == {"records": 2, "verified": 1, "positive": 1}


class TestDuplicates:
    def test_exact(self, tmp_db, today):
        record_id = tmp_db.save_group(make_group(), today=today)
        assert tmp_db.find_exact_duplicate(fingerprint(REPORT).exact_hash) == record_id
        assert tmp_db.find_exact_duplicate(fingerprint(SCAN_TYPO).exact_hash) is None
        assert tmp_db.find_exact_duplicate("") is None

    def test_whitespace_and_case_do_not_defeat_exact(self, tmp_db, today):
        record_id = tmp_db.save_group(make_group(), today=today)
        rescan = "  " + REPORT.upper().replace("\n", "\n\n") + "  "
        assert tmp_db.find_exact_duplicate(fingerprint(rescan).exact_hash) == record_id

    def test_near(self, tmp_db, today):
        record_id = tmp_db.save_group(make_group(text=SCAN), today=today)
        matches = tmp_db.find_near_duplicates(fingerprint(SCAN_TYPO).simhash)
        assert [m[0] for m in matches] == [record_id]
        assert matches[0][1] < 5

    def test_near_ignores_zero_simhash(self, tmp_db, today):
        tmp_db.save_group(make_group(text=""), today=today)
        assert tmp_db.find_near_duplicates(ZERO_SIMHASH) == []

    def test_check_duplicate_upload(self, tmp_db, today):
        record_id = tmp_db.save_group(make_group(), today=today)
        result = tmp_db.check_duplicate_upload(fingerprint(REPORT))
        assert result.is_duplicate
        assert result.exact == record_id
        assert result.near[0] == (record_id, 0)

    def test_check_unrelated(self, tmp_db, today):
        tmp_db.save_group(make_group(), today=today)
        fp = ContentFingerprint(exact_hash="0" * 64, simhash="ffffffffffffffff")
        result = tmp_db.check_duplicate_upload(fp, threshold=1)
        assert not result.is_duplicate
        assert result.near == []
