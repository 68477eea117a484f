"""Shared test fixtures for labfold tests."""

from datetime import date

import pytest

from labfold.db import LabfoldDB
from labfold.models import (
    NEGATIVE,
    POSITIVE,
    RawExtraction,
    TestOutcome,
    UserProfile,
    VerificationEvidence,
)

TODAY = date(2025, 7, 1)


@pytest.fixture
def tmp_db(tmp_path):
    """Create a temporary SQLite database with schema initialized."""
    db_path = str(tmp_path / "test.db")
    db = LabfoldDB(db_path)
    db.init_schema()
    yield db
    db.close()


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def profile():
    return UserProfile(first_name="John", last_name="Smith")


@pytest.fixture
def lifelabs_evidence():
    """Evidence from a fully identified LifeLabs report."""
    return VerificationEvidence(
        lab_name="LifeLabs Medical Laboratory",
        patient_name="SMITH, JOHN",
        has_health_card=True,
        has_accession_number=True,
        accession_number="L1234567",
    )


@pytest.fixture
def make_doc():
    """Factory for RawExtraction with (name, status) test pairs."""

    def _make(collection_date=None, tests=(), evidence=None, notes="", raw_text="", panel_label=""):
        return RawExtraction(
            collection_date=collection_date,
            panel_label=panel_label,
            tests=tuple(TestOutcome(name, status.capitalize(), status) for name, status in tests),
            notes=notes,
            evidence=evidence,
            raw_text=raw_text,
        )

    return _make


@pytest.fixture
def hiv_conflict_docs(make_doc, lifelabs_evidence):
    """Two same-day reports that disagree on HIV."""
    d = date(2025, 6, 15)
    return [
        make_doc(d, [("HIV", NEGATIVE)], evidence=lifelabs_evidence, raw_text="HIV: Negative"),
        make_doc(
            d,
            [("HIV", POSITIVE), ("Chlamydia", NEGATIVE)],
            raw_text="HIV: Positive\nChlamydia: Negative",
        ),
    ]
