"""Tests for labfold.conditions known-condition matching."""

from datetime import date

import pytest

from labfold.conditions import (
    condition_family,
    find_matching_condition,
    is_chronic_condition,
    matches,
    matches_known_condition,
    method_label,
    methods_for_condition,
)
from labfold.models import KnownCondition


class TestMatches:
    @pytest.mark.parametrize(
        "test_name, condition",
        [
            ("HSV-1", "HSV-1"),
            ("Herpes Simplex Virus 1 IgG", "HSV-1"),
            ("Herpes (HSV-1)", "hsv1"),
            ("HSV2 IgG", "Herpes Simplex Virus 2"),
            ("HIV-1/2 Ag/Ab Combo", "HIV"),
            ("Hepatitis B Surface Antigen", "Hep B"),
            ("HBsAg", "Hepatitis B"),
            ("HCV Antibody", "Hepatitis C"),
            ("Human Papillomavirus (HPV) DNA", "HPV"),
            ("Chlamydia", "chlamydia "),
            ("HSV-1 and HSV-2 IgG", "HSV-2"),
            ("HSV-1/HSV-2 IgG", "HSV-1"),
        ],
    )
    def test_aliases(self, test_name, condition):
        assert matches(test_name, condition)

    @pytest.mark.parametrize(
        "test_name, condition",
        [
            ("HSV-2", "HSV-1"),
            ("Hepatitis C Antibody", "Hepatitis B"),
            ("Hepatitis B Core", "Hepatitis C"),
            ("Gonorrhea", "Chlamydia"),
            ("Syphilis", "HIV"),
            ("", "HIV"),
            ("HIV", ""),
        ],
    )
    def test_non_matches(self, test_name, condition):
        assert not matches(test_name, condition)

    def test_case_insensitive(self):
        assert matches("herpes simplex virus 2", "HSV-2")


class TestFindMatchingCondition:
    def test_returns_declaration(self):
        hsv = KnownCondition("HSV-2", date(2024, 1, 1), ("daily_antivirals",))
        found = find_matching_condition("Herpes Simplex Virus 2 IgG", [KnownCondition("HIV"), hsv])
        assert found is hsv

    def test_none(self):
        assert find_matching_condition("Syphilis", [KnownCondition("HSV-2")]) is None
        assert not matches_known_condition("Syphilis", [])


class TestFamilies:
    def test_condition_family(self):
        assert condition_family("Genital herpes") == "HSV-2"
        assert condition_family("Syphilis") is None

    def test_is_chronic(self):
        assert is_chronic_condition("HIV-1/2")
        assert not is_chronic_condition("Chlamydia")


class TestManagementMethods:
    def test_hsv_methods(self):
        ids = [m.id for m in methods_for_condition("HSV-2")]
        assert ids == ["daily_antivirals", "antiviral_as_needed", "supplements", "barriers", "regular_monitoring"]

    def test_shared_hepatitis_methods(self):
        ids = {m.id for m in methods_for_condition("Hepatitis C")}
        assert {"antiviral_treatment", "liver_monitoring", "cured"} <= ids
        assert "vaccinated" not in ids

    def test_unknown_condition_gets_universal_only(self):
        assert [m.id for m in methods_for_condition("Chlamydia")] == ["barriers", "regular_monitoring"]

    def test_method_label(self):
        assert method_label("prep") == "PrEP"
        assert method_label("custom_thing") == "custom_thing"
