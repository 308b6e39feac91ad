"""Patient-specific extractors for FHIR Patient resources.

Pure functions that extract fields from FHIR Patient JSON for the
patient_projections table.
"""

from datetime import date

from labstore.exceptions import ValidationFailureError
from labstore.projections.registry import FieldExtractor, ProjectionConfig, ProjectionRegistry
from labstore.projections.validation import require_resource_type
from labstore.utils.fhir_helpers import lower_or_none, parse_fhir_date


def _first_name(data: dict) -> dict:
    names = data.get("name") or []
    if isinstance(names, list) and names and isinstance(names[0], dict):
        return names[0]
    return {}


def extract_family_name(data: dict) -> str | None:
    """Extract family name from the first HumanName.

    Args:
        data: FHIR Patient JSON.

    Returns:
        Family name or None.
    """
    family = _first_name(data).get("family")
    return family if isinstance(family, str) and family else None


def extract_given_name(data: dict) -> str | None:
    """Extract the first given name from the first HumanName.

    Args:
        data: FHIR Patient JSON.

    Returns:
        Given name or None.
    """
    given = _first_name(data).get("given") or []
    if isinstance(given, list) and given and isinstance(given[0], str):
        return given[0]
    return None


def extract_identifier(data: dict) -> str | None:
    """Extract the value of the first identifier (e.g. MRN).

    Args:
        data: FHIR Patient JSON.

    Returns:
        Identifier value or None.
    """
    identifiers = data.get("identifier") or []
    if isinstance(identifiers, list) and identifiers and isinstance(identifiers[0], dict):
        value = identifiers[0].get("value")
        return value if isinstance(value, str) and value else None
    return None


def extract_birth_date(data: dict) -> date | None:
    return parse_fhir_date(data.get("birthDate"))


def extract_gender(data: dict) -> str | None:
    return lower_or_none(data.get("gender"))


def validate_patient(data: dict) -> None:
    """Check the fields a Patient needs to be stored.

    Raises:
        ValidationFailureError: If there is neither a name nor an identifier,
            or birthDate is present but not a valid date.
    """
    require_resource_type(data, "Patient")
    if not data.get("name") and not data.get("identifier"):
        raise ValidationFailureError(
            "Patient must have at least one name or identifier",
            field="name",
        )
    birth_date = data.get("birthDate")
    if birth_date is not None and parse_fhir_date(birth_date) is None:
        raise ValidationFailureError(
            f"Invalid birthDate format: '{birth_date}'. Expected format: YYYY-MM-DD",
            field="birthDate",
        )


def register_patient_projection() -> None:
    """Register the Patient projection configuration with the registry."""
    from labstore.models.projections.patient import PatientProjection

    config = ProjectionConfig(
        resource_type="Patient",
        table_name="patient_projections",
        model_class=PatientProjection,
        extractors=[
            FieldExtractor("family_name", extract_family_name),
            FieldExtractor("given_name", extract_given_name),
            FieldExtractor("identifier", extract_identifier),
            FieldExtractor("birth_date", extract_birth_date),
            FieldExtractor("gender", extract_gender),
        ],
        validator=validate_patient,
    )
    ProjectionRegistry.register(config)
