"""Shared FHIR resource parsing utilities.

Consolidates common FHIR extraction patterns used by the projection
extractors, the reference validator and the search engine.
All functions are pure and handle missing/malformed data gracefully.
"""

from datetime import date, datetime, timezone
from typing import Any


def split_reference(reference: str | None) -> tuple[str | None, str | None]:
    """Split a FHIR reference string into (type prefix, bare id).

    Handles these formats:
    - "Patient/abc-123" -> ("Patient", "abc-123")
    - "abc-123" -> (None, "abc-123")
    - "urn:uuid:abc-123" -> (None, "abc-123")
    - "Patient/abc-123/_history/2" -> ("Patient", "abc-123")

    Only the last path segment pair is used, so absolute URLs such as
    "http://host/fhir/Patient/abc-123" resolve to ("Patient", "abc-123").

    Args:
        reference: FHIR reference string

    Returns:
        Tuple of (type prefix or None, id or None)
    """
    if not reference:
        return None, None

    reference = reference.strip()
    if reference.startswith("urn:uuid:"):
        return None, reference[9:] or None  # len("urn:uuid:")

    if "/" in reference:
        parts = reference.rstrip("/").split("/")
        if len(parts) >= 4 and parts[-2] == "_history":
            parts = parts[:-2]
        if len(parts) >= 2:
            return parts[-2] or None, parts[-1] or None
        return None, parts[-1] or None
    return None, reference


def extract_reference_id(reference: str | None) -> str | None:
    """Extract FHIR ID from a reference string.

    Args:
        reference: FHIR reference string ("Patient/abc-123", "abc-123", "urn:uuid:abc-123")

    Returns:
        Extracted ID or None if reference is empty/None
    """
    return split_reference(reference)[1]


def get_reference(resource: dict[str, Any], key: str) -> str | None:
    """Get the reference string of a single Reference-typed element.

    Args:
        resource: FHIR resource
        key: Element name holding a Reference (e.g. "subject")

    Returns:
        The ``reference`` string or None if absent
    """
    element = resource.get(key)
    if not isinstance(element, dict):
        return None
    reference = element.get("reference")
    return reference if isinstance(reference, str) and reference else None


def extract_first_coding(codeable_concept: dict[str, Any] | None) -> dict[str, Any]:
    """Extract first coding from a FHIR CodeableConcept.

    Args:
        codeable_concept: FHIR CodeableConcept structure

    Returns:
        First coding dict or empty dict if none
    """
    if not isinstance(codeable_concept, dict):
        return {}
    codings = codeable_concept.get("coding") or []
    return codings[0] if codings and isinstance(codings[0], dict) else {}


def extract_first_category_code(resource: dict[str, Any]) -> str | None:
    """Extract the first coding code of the first category CodeableConcept.

    Args:
        resource: FHIR resource with a ``category`` array

    Returns:
        Category code or None
    """
    categories = resource.get("category") or []
    if not isinstance(categories, list) or not categories:
        return None
    return extract_first_coding(categories[0]).get("code")


def lower_or_none(value: Any) -> str | None:
    """Lower-case a string value; anything else becomes None."""
    return value.lower() if isinstance(value, str) and value else None


def upper_or_none(value: Any) -> str | None:
    """Upper-case a string value; anything else becomes None."""
    return value.upper() if isinstance(value, str) and value else None


def parse_fhir_datetime(value: Any) -> datetime | None:
    """Parse a FHIR date or dateTime string into an aware UTC datetime.

    Date-only values ("2024-05-01") become midnight UTC. Naive datetimes
    are taken as UTC. Partial dates ("2024", "2024-05") and anything that
    does not parse return None.

    Args:
        value: FHIR date/dateTime/instant string

    Returns:
        Aware UTC datetime or None
    """
    if not isinstance(value, str) or not value:
        return None
    try:
        if "T" not in value:
            parsed_date = date.fromisoformat(value)
            return datetime(parsed_date.year, parsed_date.month, parsed_date.day, tzinfo=timezone.utc)
        parsed = datetime.fromisoformat(value)
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    except (ValueError, OverflowError):
        return None


def parse_fhir_date(value: Any) -> date | None:
    """Parse a FHIR date (or the date part of a dateTime).

    Args:
        value: FHIR date string

    Returns:
        date or None if absent/unparsable
    """
    if not isinstance(value, str) or not value:
        return None
    try:
        return date.fromisoformat(value.split("T")[0])
    except ValueError:
        return None
