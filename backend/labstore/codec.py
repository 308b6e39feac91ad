"""FHIR JSON codec.

Converts between the wire text of a FHIR resource and the parsed dict the
rest of the application works with. Only the envelope is checked here (a
JSON object carrying a resourceType); per-field rules belong to the
projection validators.
"""

import json
from typing import Any

from labstore.exceptions import ParseError


class FhirJsonCodec:
    """Parse and serialize FHIR resources in JSON format."""

    def parse(self, text: str | bytes) -> dict[str, Any]:
        """Parse FHIR JSON text into a resource dict.

        Args:
            text: Request body.

        Returns:
            Parsed resource.

        Raises:
            ParseError: If the body is empty, not JSON, not an object or has no resourceType.
        """
        if isinstance(text, bytes):
            try:
                text = text.decode("utf-8")
            except UnicodeDecodeError as e:
                raise ParseError(f"Request body is not valid UTF-8: {e}") from e

        if not text or not text.strip():
            raise ParseError("Request body is empty")

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ParseError(f"Invalid FHIR JSON: {e.msg} (line {e.lineno}, column {e.colno})") from e

        if not isinstance(data, dict):
            raise ParseError("Invalid FHIR JSON: expected a JSON object")
        if not isinstance(data.get("resourceType"), str) or not data["resourceType"]:
            raise ParseError("Invalid FHIR JSON: missing resourceType", field="resourceType")
        return data

    def serialize(self, resource: dict[str, Any]) -> str:
        """Serialize a resource dict to compact FHIR JSON.

        Key order is preserved so repeated serialization of the same
        resource yields identical text.
        """
        return json.dumps(resource, ensure_ascii=False, separators=(",", ":"))


codec = FhirJsonCodec()
