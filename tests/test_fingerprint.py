"""Tests for labfold.fingerprint."""

import hashlib

import pytest

from labfold.fingerprint import (
    ZERO_SIMHASH,
    compute_simhash,
    fingerprint,
    hamming_distance,
    is_exact_duplicate,
    is_near_duplicate,
    normalize_text,
)

REPORT = "hiv negative syphilis negative chlamydia negative"
REPORT_TYPO = "hiv negitive syphilis negative chlamydia negative"
UNRELATED = "this is a completely different document about cooking recipes"


class TestNormalizeText:
    def test_lowercases_and_strips_punctuation(self):
        assert normalize_text("HIV-1/2 Antigen: Non-Reactive") == "hiv12 antigen nonreactive"

    def test_collapses_whitespace(self):
        assert normalize_text("  Test\n\nResult:\t POSITIVE  ") == "test result positive"

    def test_empty(self):
        assert normalize_text("") == ""

    def test_idempotent(self):
        once = normalize_text("LifeLabs:  HIV  Non-Reactive!")
        assert normalize_text(once) == once


class TestSimHash:
    def test_known_value(self):
        assert compute_simhash("hello world") == "cfb000005ded4c00"

    def test_format(self):
        value = fingerprint("Chlamydia trachomatis: not detected").simhash
        assert len(value) == 16
        assert value == value.lower()
        int(value, 16)

    @pytest.mark.parametrize("text", ["", "a", "!", " ? "])
    def test_short_input_is_zero(self, text):
        assert fingerprint(text).simhash == ZERO_SIMHASH

    def test_two_characters_is_not_zero(self):
        assert compute_simhash("ab") != ZERO_SIMHASH

    def test_fingerprinting_normalized_text_is_stable(self):
        normalized = normalize_text("HIV: Non-Reactive\nSyphilis: Non-Reactive")
        assert fingerprint(normalized) == fingerprint(normalized)
        assert fingerprint(normalized) == fingerprint(normalize_text(normalized))

    def test_punctuation_and_case_do_not_matter(self):
        a = fingerprint("HIV-1/2 Antigen: Non-Reactive\nSyphilis: Non-Reactive")
        b = fingerprint("hiv12 antigen nonreactive syphilis nonreactive")
        assert a == b


class TestHammingDistance:
    def test_identical(self):
        s = fingerprint(REPORT).simhash
        assert hamming_distance(s, s) == 0

    def test_one_bit(self):
        assert hamming_distance("ffffffffffffffff", "fffffffffffffffe") == 1

    def test_all_bits(self):
        assert hamming_distance("0000000000000000", "ffffffffffffffff") == 64

    def test_symmetric(self):
        a = fingerprint(REPORT).simhash
        b = fingerprint(UNRELATED).simhash
        assert hamming_distance(a, b) == hamming_distance(b, a)

    @pytest.mark.parametrize(
        "a, b",
        [
            ("", "ffffffffffffffff"),
            ("short", "ffffffffffffffff"),
            ("ffffffffffffffff", "ffffffffffffffff0"),
            ("gggggggggggggggg", "ffffffffffffffff"),
            (None, "ffffffffffffffff"),
        ],
    )
    def test_malformed_is_maximal(self, a, b):
        assert hamming_distance(a, b) == 64

    def test_uppercase_hex_accepted(self):
        assert hamming_distance("FFFFFFFFFFFFFFFF", "ffffffffffffffff") == 0


class TestDuplicates:
    def test_exact_hash_is_sha256_of_normalized_text(self):
        fp = fingerprint("HIV: Negative")
        assert fp.exact_hash == hashlib.sha256(b"hiv negative").hexdigest()

    def test_exact_duplicate_ignores_formatting(self):
        assert is_exact_duplicate(fingerprint("HIV: Negative"), fingerprint("hiv   negative"))
        assert not is_exact_duplicate(fingerprint("HIV: Negative"), fingerprint("HIV: Positive"))

    def test_single_typo_is_close(self):
        distance = hamming_distance(fingerprint(REPORT).simhash, fingerprint(REPORT_TYPO).simhash)
        assert distance <= 10

    def test_single_typo_is_near_duplicate(self):
        assert is_near_duplicate(fingerprint(REPORT), fingerprint(REPORT_TYPO))

    def test_unrelated_text_is_far(self):
        distance = hamming_distance(fingerprint(REPORT).simhash, fingerprint(UNRELATED).simhash)
        assert distance > 10
        assert not is_near_duplicate(fingerprint(REPORT), fingerprint(UNRELATED))

    def test_ocr_spacing_variant_is_near_duplicate(self):
        a = fingerprint("LifeLabs Medical Laboratory HIV 1/2 Antigen: Nonreactive Syphilis: Nonreactive")
        b = fingerprint("LifeLabs Medical Laboratory HIV 1/2 Antigen: Non reactive Syphilis: Non reactive")
        assert is_near_duplicate(a, b)

    def test_empty_texts_are_not_near_duplicates(self):
        assert not is_near_duplicate(fingerprint(""), fingerprint("a"))
