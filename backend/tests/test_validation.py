"""
Tests for the field validation and normalization engine
"""
from datetime import date

import pytest

from tests.conftest import TODAY
from validation import (
    ACCEPT,
    ADVISORY,
    REJECT,
    age_on,
    compose_name,
    format_phone,
    normalize_age,
    normalize_date_of_birth,
    normalize_patient,
    normalize_phone,
    photo_size,
    split_honorific,
)


def base_fields(**overrides):
    fields = {"hn": "HN1", "fullName": "Somchai Jaidee", "gender": "male", "age": 35}
    fields.update(overrides)
    return fields


def run(fields, **kwargs):
    kwargs.setdefault("today", TODAY)
    return normalize_patient(fields, **kwargs)


# =============================================================================
# Age
# =============================================================================
class TestAge:
    """Age bounds: 1..150 valid, >100 advisory"""

    def test_age_zero_rejected(self):
        outcome = normalize_age(0)
        assert outcome.status == REJECT
        assert outcome.code == "out_of_range"

    def test_age_150_accepted(self):
        outcome = normalize_age(150)
        assert outcome.status == ADVISORY  # >100 still flagged
        assert outcome.value == 150

    def test_age_151_rejected(self):
        assert normalize_age(151).status == REJECT

    def test_age_120_advisory(self):
        outcome = normalize_age(120)
        assert outcome.status == ADVISORY
        assert outcome.code == "unusually_high"
        assert outcome.value == 120

    def test_age_100_plain_accept(self):
        assert normalize_age(100).status == ACCEPT

    def test_negative_rejected(self):
        assert normalize_age(-3).code == "out_of_range"

    def test_numeric_string_parsed(self):
        outcome = normalize_age(" 42 ")
        assert outcome.status == ACCEPT
        assert outcome.value == 42

    def test_non_integer_rejected(self):
        assert normalize_age("35.5").code == "invalid_type"
        assert normalize_age("abc").code == "invalid_type"
        assert normalize_age(35.5).code == "invalid_type"
        assert normalize_age(True).code == "invalid_type"

    def test_blank_is_absent(self):
        assert normalize_age(None) is None
        assert normalize_age("") is None

    def test_advisory_does_not_block(self):
        report = run(base_fields(age=120))
        assert report.ok
        assert report.values["age"] == 120
        assert report.advisories()["age"]["code"] == "unusually_high"


# =============================================================================
# Phone
# =============================================================================
class TestPhone:
    """Phone normalization to grouped display form"""

    def test_mobile_ten_digits(self):
        outcome = normalize_phone("0812345678")
        assert outcome.status == ACCEPT
        assert outcome.value == "081-234-5678"

    def test_landline_nine_digits(self):
        outcome = normalize_phone("021234567")
        assert outcome.status == ACCEPT
        assert outcome.value == "021-234-567"

    def test_too_short_rejected(self):
        outcome = normalize_phone("1234567")
        assert outcome.status == REJECT
        assert outcome.code == "invalid_length"

    def test_too_long_rejected(self):
        assert normalize_phone("0812345678901").code == "invalid_length"

    def test_punctuation_stripped(self):
        assert normalize_phone("(081) 234 5678").value == "081-234-5678"
        assert normalize_phone("081-234-5678").value == "081-234-5678"

    def test_ten_digit_needs_mobile_prefix(self):
        assert normalize_phone("0212345678").code == "invalid_prefix"
        assert normalize_phone("0612345678").status == ACCEPT
        assert normalize_phone("0912345678").status == ACCEPT

    def test_nine_digit_needs_leading_zero(self):
        assert normalize_phone("212345678").code == "invalid_prefix"

    def test_international_forms(self):
        assert normalize_phone("+66 81 234 5678").value == "66-812-345-678"
        assert format_phone("066812345678") == "066-812-345-678"

    def test_blank_is_absent(self):
        assert normalize_phone(None) is None
        assert normalize_phone("  ") is None

    def test_phone_optional_in_record(self):
        report = run(base_fields())
        assert report.ok
        assert report.values["phone"] is None


# =============================================================================
# Honorifics and gender
# =============================================================================
class TestHonorificGender:
    """Title prefix drives gender"""

    def test_split_thai_honorifics_longest_first(self):
        assert split_honorific("นางสาวสมหญิง รักเรียน") == ("นางสาว", "สมหญิง รักเรียน")
        assert split_honorific("นางสมศรี มีสุข") == ("นาง", "สมศรี มีสุข")
        assert split_honorific("นายสมชาย ใจดี") == ("นาย", "สมชาย ใจดี")

    def test_split_latin_honorifics(self):
        assert split_honorific("Mr. John Doe") == ("Mr.", "John Doe")
        assert split_honorific("mrs Jane Doe") == ("Mrs.", "Jane Doe")
        assert split_honorific("Miss Ann") == ("Miss", "Ann")
        assert split_honorific("Mrinal Sen") == (None, "Mrinal Sen")

    def test_compose(self):
        assert compose_name("นาย", "สมชาย") == "นายสมชาย"
        assert compose_name("Mr.", "John") == "Mr. John"
        assert compose_name(None, "John") == "John"

    def test_male_honorific_overrides_female(self):
        report = run(base_fields(fullName="Mr. John Doe", gender="female"))
        assert report.ok
        assert report.values["gender"] == "male"
        assert report.outcomes["gender"].status == ADVISORY
        assert report.outcomes["gender"].code == "overridden_by_honorific"

    def test_title_prefix_field_overrides_gender(self):
        report = run(base_fields(titlePrefix="นาย", fullName="สมชาย ใจดี", gender="หญิง"))
        assert report.ok
        assert report.values["fullName"] == "นายสมชาย ใจดี"
        assert report.values["gender"] == "male"

    def test_female_honorifics(self):
        for prefix in ["นาง", "นางสาว", "Mrs.", "Ms.", "Miss"]:
            report = run(base_fields(titlePrefix=prefix, gender=None))
            assert report.ok, prefix
            assert report.values["gender"] == "female"

    def test_clearing_honorific_reverts_to_supplied_gender(self):
        with_prefix = run(base_fields(fullName="Mr. Alex Doe", gender="female"))
        assert with_prefix.values["gender"] == "male"

        cleared = run(base_fields(titlePrefix="", fullName="Mr. Alex Doe", gender="female"))
        assert cleared.ok
        assert cleared.values["gender"] == "female"
        assert cleared.values["fullName"] == "Alex Doe"

    def test_title_prefix_replaces_name_honorific(self):
        report = run(base_fields(titlePrefix="นางสาว", fullName="นางสมศรี มีสุข", gender=None))
        assert report.values["fullName"] == "นางสาวสมศรี มีสุข"

    def test_matching_gender_is_plain_accept(self):
        report = run(base_fields(fullName="นายสมชาย ใจดี", gender="ชาย"))
        assert report.outcomes["gender"].status == ACCEPT
        assert report.values["gender"] == "male"

    def test_gender_required_without_honorific(self):
        report = run(base_fields(gender=None))
        assert not report.ok
        assert report.errors()["gender"]["code"] == "required"

    def test_unknown_gender_rejected(self):
        report = run(base_fields(gender="robot"))
        assert report.errors()["gender"]["code"] == "invalid_choice"

    def test_unknown_title_prefix_rejected(self):
        report = run(base_fields(titlePrefix="Sir"))
        assert report.errors()["titlePrefix"]["code"] == "unknown_honorific"


# =============================================================================
# Full name
# =============================================================================
class TestFullName:

    def test_trimmed_and_collapsed(self):
        report = run(base_fields(fullName="  Somchai   Jaidee "))
        assert report.values["fullName"] == "Somchai Jaidee"

    def test_thai_name_accepted(self):
        assert run(base_fields(fullName="สมชาย ใจดี")).ok

    def test_period_allowed(self):
        assert run(base_fields(fullName="J. R. Tolkien")).ok

    @pytest.mark.parametrize("name,code", [
        ("", "required"),
        ("   ", "required"),
        ("A", "too_short"),
        ("A" * 101, "too_long"),
        ("John3 Doe", "invalid_characters"),
        ("John_Doe", "invalid_characters"),
        ("นาย", "required"),
    ])
    def test_rejections(self, name, code):
        report = run(base_fields(fullName=name))
        assert report.errors()["fullName"]["code"] == code

    def test_non_text_rejected(self):
        assert run(base_fields(fullName=123)).errors()["fullName"]["code"] == "invalid_type"


# =============================================================================
# Date of birth and cross-field
# =============================================================================
class TestDateOfBirth:

    def test_age_on_month_day_adjustment(self):
        assert age_on(date(1990, 10, 18), TODAY) == 36
        assert age_on(date(1990, 10, 19), TODAY) == 35
        assert age_on(date(1990, 11, 1), TODAY) == 35
        assert age_on(date(1990, 1, 1), TODAY) == 36

    def test_iso_string_parsed(self):
        outcome = normalize_date_of_birth("1990-01-15", TODAY)
        assert outcome.status == ACCEPT
        assert outcome.value == date(1990, 1, 15)

    def test_invalid_date(self):
        assert normalize_date_of_birth("1990-02-30", TODAY).code == "invalid_date"
        assert normalize_date_of_birth("yesterday", TODAY).code == "invalid_date"

    def test_future_date_rejected(self):
        assert normalize_date_of_birth("2026-10-19", TODAY).code == "future_date"

    def test_implied_age_over_150_rejected(self):
        assert normalize_date_of_birth("1870-01-01", TODAY).code == "out_of_range"

    def test_age_derived_when_only_birth_date(self):
        report = run(base_fields(age=None, dateOfBirth="1990-01-15"))
        assert report.ok
        assert report.values["age"] == 36
        assert report.values["dateOfBirth"] == date(1990, 1, 15)

    def test_infant_derived_age_zero_is_valid(self):
        report = run(base_fields(age=None, dateOfBirth="2026-05-01"))
        assert report.ok
        assert report.values["age"] == 0

    def test_birth_date_derived_when_only_age(self):
        """Age 35 on 2026-10-18 suggests January 1st, 1991"""
        report = run(base_fields(age=35))
        assert report.ok
        assert report.values["dateOfBirth"] == date(1991, 1, 1)
        assert report.outcomes["dateOfBirth"].status == ACCEPT
        assert age_on(report.values["dateOfBirth"], TODAY) == 35

    def test_advisory_age_still_derives_birth_date(self):
        report = run(base_fields(age=120))
        assert report.values["dateOfBirth"] == date(1906, 1, 1)

    def test_rejected_age_derives_nothing(self):
        report = run(base_fields(age=151))
        assert report.values["dateOfBirth"] is None
        assert "dateOfBirth" not in report.outcomes

    def test_age_or_birth_date_required(self):
        report = run(base_fields(age=None))
        assert report.errors()["age"]["code"] == "required"

    def test_consistent_pair_accepted(self):
        report = run(base_fields(age=36, dateOfBirth="1990-01-15"))
        assert report.ok
        assert report.advisories() == {}

    def test_mismatch_is_advisory_by_default(self):
        report = run(base_fields(age=35, dateOfBirth="1990-01-15"))
        assert report.ok
        assert report.values["age"] == 35
        assert report.advisories()["dateOfBirth"]["code"] == "age_mismatch"

    def test_mismatch_rejected_under_reject_policy(self):
        report = run(base_fields(age=35, dateOfBirth="1990-01-15"), age_mismatch_policy="reject")
        assert not report.ok
        assert report.errors()["dateOfBirth"]["code"] == "age_mismatch"

    def test_tolerance_absorbs_small_mismatch(self):
        report = run(base_fields(age=35, dateOfBirth="1990-01-15"), age_tolerance_years=1)
        assert report.advisories() == {}


# =============================================================================
# Pipeline
# =============================================================================
class TestPipeline:

    def test_hn_normalized(self):
        report = run(base_fields(hn="hn-1"))
        assert report.values["hn"] == "HN000001"

    def test_hn_optional_unless_required(self):
        assert run(base_fields(hn=None)).ok
        report = run(base_fields(hn=None), require_hn=True)
        assert report.errors()["hn"]["code"] == "required"

    def test_invalid_hn_reason(self):
        report = run(base_fields(hn="HN1234567"))
        assert report.errors()["hn"]["code"] == "too_many_digits"

    def test_all_rejections_reported_together(self):
        report = run({
            "hn": "XX1",
            "fullName": "J0hn",
            "gender": "robot",
            "phone": "123",
            "age": 151,
            "dateOfBirth": "not-a-date",
        })
        assert not report.ok
        assert set(report.errors()) == {"hn", "fullName", "gender", "phone", "age", "dateOfBirth"}

    def test_to_record(self):
        report = run(base_fields(nickname="  Chai ", phone="0812345678"))
        record = report.to_record()
        assert record.hn == "HN000001"
        assert record.nickname == "Chai"
        assert record.phone == "081-234-5678"
        assert record.createdAt is None

    def test_to_record_refuses_rejected_report(self):
        with pytest.raises(ValueError):
            run(base_fields(age=0)).to_record()

    def test_pure_and_repeatable(self):
        fields = base_fields(fullName="Mr. John Doe", gender="female", dateOfBirth="1990-01-15", age=30)
        assert run(fields) == run(fields)

    def test_photo_size_bound(self):
        payload = "A" * 400  # 300 decoded bytes
        assert photo_size(payload) == 300
        assert photo_size("data:image/png;base64," + payload) == 300
        assert run(base_fields(photo=payload), max_photo_bytes=300).ok
        report = run(base_fields(photo=payload), max_photo_bytes=299)
        assert report.errors()["photo"]["code"] == "too_large"

    def test_nickname_too_long(self):
        report = run(base_fields(nickname="n" * 101))
        assert report.errors()["nickname"]["code"] == "too_long"
