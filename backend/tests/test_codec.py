"""Tests for the FHIR JSON codec."""

import pytest

from labstore.codec import codec
from labstore.exceptions import ParseError


class TestParse:
    """Tests for FhirJsonCodec.parse()."""

    def test_parses_resource(self):
        data = codec.parse('{"resourceType": "Patient", "id": "p1"}')
        assert data == {"resourceType": "Patient", "id": "p1"}

    def test_parses_bytes(self):
        assert codec.parse(b'{"resourceType": "Patient"}')["resourceType"] == "Patient"

    @pytest.mark.parametrize("body", ["", "   ", b""])
    def test_empty_body(self, body):
        with pytest.raises(ParseError, match="empty"):
            codec.parse(body)

    def test_invalid_json(self):
        with pytest.raises(ParseError, match="Invalid FHIR JSON"):
            codec.parse('{"resourceType": "Patient",')

    def test_not_an_object(self):
        with pytest.raises(ParseError, match="expected a JSON object"):
            codec.parse('["Patient"]')

    def test_missing_resource_type(self):
        with pytest.raises(ParseError) as exc_info:
            codec.parse('{"id": "p1"}')
        assert exc_info.value.field == "resourceType"


class TestSerialize:
    """Tests for FhirJsonCodec.serialize()."""

    def test_compact_and_order_preserving(self):
        text = codec.serialize({"resourceType": "Patient", "id": "p1", "active": True})
        assert text == '{"resourceType":"Patient","id":"p1","active":true}'

    def test_non_ascii_kept(self):
        text = codec.serialize({"resourceType": "Patient", "name": [{"family": "Müller"}]})
        assert "Müller" in text

    def test_serialize_is_stable(self):
        resource = codec.parse('{"resourceType":"Observation","status":"final","code":{"text":"x"}}')
        assert codec.serialize(resource) == codec.serialize(codec.parse(codec.serialize(resource)))
