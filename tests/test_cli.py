"""Tests for the labfold command line."""

import hashlib
import json
import logging

import pytest

from labfold.cli import main
from labfold.db import LabfoldDB


@pytest.fixture(autouse=True)
def restore_logging():
    """main() configures the package logger; undo it between tests."""
    logger = logging.getLogger("labfold")
    saved = (logger.level, list(logger.handlers))
    yield
    logger.setLevel(saved[0])
    logger.handlers[:] = saved[1]


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def extractions(workdir):
    payloads = [
        {
            "collection_date": "2025-06-15",
            "tests": [{"name": "HIV 1/2 Ag/Ab Combo Screen", "result": "Non-Reactive"}],
            "lab_name": "LifeLabs",
            "patient_name": "SMITH, JOHN",
            "health_card_present": True,
            "accession_number": "L1234567",
            "raw_text": "hiv negative syphilis negative chlamydia negative",
        },
        {
            "collection_date": "2025-06-15",
            "tests": [{"name": "Syphilis Antibody Screen", "result": "Non-Reactive"}],
            "lab_name": "LifeLabs",
            "raw_text": "syphilis nonreactive page two",
        },
    ]
    path = workdir / "extractions.json"
    path.write_text(json.dumps(payloads))
    return path


class TestNoCommand:
    def test_prints_help_and_exits(self, workdir, capsys):
        with pytest.raises(SystemExit) as exc:
            main([])
        assert exc.value.code == 1
        assert "usage: labfold" in capsys.readouterr().out


class TestFindLab:
    def test_abbreviation(self, workdir, capsys):
        main(["find-lab", "PHO"])
        out = capsys.readouterr().out
        assert "Public Health Ontario [pho] (ON, CA)" in out
        assert "health card: OHIP" in out

    def test_no_match_exits_nonzero(self, workdir, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["find-lab", "Unknown Lab Inc"])
        assert exc.value.code == 1
        assert "No recognized lab" in capsys.readouterr().out


class TestFingerprintAndCompare:
    def test_fingerprint(self, workdir, capsys):
        (workdir / "scan.txt").write_text("HIV: Negative")
        main(["fingerprint", str(workdir / "scan.txt")])
        out = capsys.readouterr().out
        assert f"exact_hash: {hashlib.sha256(b'hiv negative').hexdigest()}" in out
        assert "simhash:" in out

    def test_compare_near(self, workdir, capsys):
        main(["compare", "ffffffffffffffff", "fffffffffffffffe"])
        assert "distance: 1/64 (near duplicate)" in capsys.readouterr().out

    def test_compare_threshold_flag(self, workdir, capsys):
        main(["compare", "ffffffffffffffff", "fffffffffffffffe", "--threshold", "1"])
        assert "(different)" in capsys.readouterr().out

    def test_compare_uses_config_in_cwd(self, workdir, capsys):
        (workdir / "labfold.toml").write_text("[fingerprint]\nnear_duplicate_threshold = 1\n")
        main(["compare", "ffffffffffffffff", "fffffffffffffffe"])
        assert "(different)" in capsys.readouterr().out

    def test_malformed_simhash(self, workdir, capsys):
        main(["compare", "nothex", "ffffffffffffffff"])
        assert "distance: 64/64" in capsys.readouterr().out


class TestInitConfig:
    def test_writes_file(self, workdir, capsys):
        main(["init-config", "--output", str(workdir / "custom.toml")])
        assert (workdir / "custom.toml").exists()
        assert "Config generated" in capsys.readouterr().out


class TestGroup:
    def test_prints_groups(self, extractions, capsys):
        main(["group", str(extractions), "--first-name", "John", "--last-name", "Smith"])
        out = capsys.readouterr().out
        assert "2025-06-15  HIV & Syphilis Panel  overall: negative" in out
        assert "HIV-1/2" in out
        assert "Syphilis" in out
        assert "verified=True" in out

    def test_save_then_skip_duplicate(self, extractions, workdir, capsys):
        db_path = str(workdir / "labfold.db")
        main(["group", str(extractions), "--db", db_path, "--save"])
        assert "Saved 2025-06-15 as record 1" in capsys.readouterr().out

        main(["group", str(extractions), "--db", db_path, "--save"])
        assert "Skipped 2025-06-15: identical document already saved as record 1" in capsys.readouterr().out

        with LabfoldDB(db_path) as db:
            assert db.summary()["records"] == 1

    def test_allow_duplicates(self, extractions, workdir, capsys):
        db_path = str(workdir / "labfold.db")
        main(["group", str(extractions), "--db", db_path, "--save"])
        main(["group", str(extractions), "--db", db_path, "--save", "--allow-duplicates"])
        out = capsys.readouterr().out
        assert "looks like record 1 (distance 0)" in out
        assert "Saved 2025-06-15 as record 2" in out

    def test_future_date_not_saved(self, workdir, capsys):
        path = workdir / "future.json"
        path.write_text(json.dumps({"collection_date": "2999-01-01", "tests": [{"name": "HIV", "result": "Negative"}]}))
        db_path = str(workdir / "labfold.db")
        with pytest.raises(SystemExit) as exc:
            main(["group", str(path), "--db", db_path, "--save"])
        assert exc.value.code == 1
        assert "future" in capsys.readouterr().err
        with LabfoldDB(db_path) as db:
            assert db.summary()["records"] == 0

    def test_bad_entries_reported_and_skipped(self, workdir, capsys):
        path = workdir / "mixed.json"
        hiv = {"collection_date": "2025-06-15", "tests": [{"name": "HIV", "result": "Negative"}]}
        syphilis = {"collection_date": 20250501, "tests": [{"name": "Syphilis", "result": "Non-Reactive"}]}
        path.write_text(json.dumps([hiv, "not a document", syphilis]))
        main(["group", str(path)])
        captured = capsys.readouterr()
        assert "Skipped File 2 of 3" in captured.err
        assert "2025-06-15" in captured.out
        assert "unknown" in captured.out

    def test_all_entries_bad_exits_nonzero(self, workdir, capsys):
        path = workdir / "bad.json"
        path.write_text(json.dumps([1, "two"]))
        with pytest.raises(SystemExit) as exc:
            main(["group", str(path)])
        assert exc.value.code == 1
        err = capsys.readouterr().err
        assert "Skipped File 1 of 2" in err
        assert "Skipped File 2 of 2" in err

    def test_unreadable_file(self, workdir, capsys):
        with pytest.raises(SystemExit):
            main(["group", str(workdir / "missing.json")])
        assert "cannot read" in capsys.readouterr().err


class TestStatus:
    def test_status_after_save(self, extractions, workdir, capsys):
        db_path = str(workdir / "labfold.db")
        main(["group", str(extractions), "--db", db_path, "--save"])
        capsys.readouterr()
        main(["status", "--db", db_path, "--condition", "HSV-2"])
        out = capsys.readouterr().out
        assert "Overall status: negative" in out
        assert "Last tested:    2025-06-15" in out
        assert "Known conditions:" in out
        assert "HSV-2" in out

    def test_empty_database(self, workdir, capsys):
        main(["status", "--db", str(workdir / "empty.db")])
        assert "Overall status: pending" in capsys.readouterr().out
