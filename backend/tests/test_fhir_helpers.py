"""Tests for shared FHIR parsing helpers."""

from datetime import date, datetime, timezone

from labstore.utils.fhir_helpers import (
    extract_first_category_code,
    extract_first_coding,
    extract_reference_id,
    get_reference,
    lower_or_none,
    parse_fhir_date,
    parse_fhir_datetime,
    split_reference,
    upper_or_none,
)


class TestSplitReference:
    """Tests for split_reference()."""

    def test_typed_reference(self):
        assert split_reference("Patient/abc-123") == ("Patient", "abc-123")

    def test_bare_id(self):
        assert split_reference("abc-123") == (None, "abc-123")

    def test_urn_uuid(self):
        assert split_reference("urn:uuid:abc-123") == (None, "abc-123")

    def test_absolute_url_uses_last_segments(self):
        assert split_reference("http://host/fhir/Patient/abc") == ("Patient", "abc")

    def test_versioned_reference_drops_history(self):
        assert split_reference("Patient/abc/_history/2") == ("Patient", "abc")
        assert split_reference("http://host/fhir/Patient/abc/_history/2") == ("Patient", "abc")
        assert split_reference("Observation/_history") == ("Observation", "_history")

    def test_empty_and_none(self):
        assert split_reference(None) == (None, None)
        assert split_reference("") == (None, None)

    def test_extract_reference_id(self):
        assert extract_reference_id("Observation/o-1") == "o-1"
        assert extract_reference_id(None) is None


class TestGetReference:
    """Tests for get_reference()."""

    def test_present(self):
        assert get_reference({"subject": {"reference": "Patient/p1"}}, "subject") == "Patient/p1"

    def test_missing_or_malformed(self):
        assert get_reference({}, "subject") is None
        assert get_reference({"subject": "Patient/p1"}, "subject") is None
        assert get_reference({"subject": {"reference": ""}}, "subject") is None
        assert get_reference({"subject": {"display": "John"}}, "subject") is None


class TestCodings:
    """Tests for CodeableConcept helpers."""

    def test_first_coding(self):
        concept = {"coding": [{"code": "a"}, {"code": "b"}]}
        assert extract_first_coding(concept) == {"code": "a"}

    def test_first_coding_missing(self):
        assert extract_first_coding(None) == {}
        assert extract_first_coding({"text": "free text"}) == {}

    def test_first_category_code(self):
        resource = {"category": [{"coding": [{"code": "laboratory"}]}, {"coding": [{"code": "x"}]}]}
        assert extract_first_category_code(resource) == "laboratory"
        assert extract_first_category_code({}) is None

    def test_case_helpers(self):
        assert lower_or_none("FINAL") == "final"
        assert upper_or_none("lab") == "LAB"
        assert lower_or_none(None) is None
        assert upper_or_none(42) is None


class TestParseFhirDatetime:
    """Tests for parse_fhir_datetime() and parse_fhir_date()."""

    def test_instant_with_z(self):
        assert parse_fhir_datetime("2024-05-01T10:30:00Z") == datetime(
            2024, 5, 1, 10, 30, tzinfo=timezone.utc
        )

    def test_offset_converted_to_utc(self):
        parsed = parse_fhir_datetime("2024-05-01T10:30:00+02:00")
        assert parsed == datetime(2024, 5, 1, 8, 30, tzinfo=timezone.utc)
        assert parsed.tzinfo == timezone.utc

    def test_date_only_is_midnight_utc(self):
        assert parse_fhir_datetime("2024-05-01") == datetime(2024, 5, 1, tzinfo=timezone.utc)

    def test_naive_is_utc(self):
        assert parse_fhir_datetime("2024-05-01T10:30:00") == datetime(
            2024, 5, 1, 10, 30, tzinfo=timezone.utc
        )

    def test_invalid_returns_none(self):
        assert parse_fhir_datetime("yesterday") is None
        assert parse_fhir_datetime("2024") is None
        assert parse_fhir_datetime(None) is None

    def test_out_of_range_after_utc_conversion_returns_none(self):
        assert parse_fhir_datetime("9999-12-31T23:00:00-05:00") is None
        assert parse_fhir_datetime("0001-01-01T00:00:00+05:00") is None

    def test_calendar_limits_in_utc(self):
        assert parse_fhir_datetime("9999-12-31T23:00:00Z") == datetime(
            9999, 12, 31, 23, tzinfo=timezone.utc
        )
        assert parse_fhir_datetime("0001-01-01") == datetime(1, 1, 1, tzinfo=timezone.utc)

    def test_parse_date(self):
        assert parse_fhir_date("1980-01-15") == date(1980, 1, 15)
        assert parse_fhir_date("1980-01-15T00:00:00Z") == date(1980, 1, 15)
        assert parse_fhir_date("15/01/1980") is None
