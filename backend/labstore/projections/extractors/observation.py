"""Observation-specific extractors for FHIR Observation resources.

Pure functions that extract fields from FHIR Observation JSON for the
observation_projections table.
"""

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation

from labstore.projections.registry import (
    FieldExtractor,
    ProjectionConfig,
    ProjectionRegistry,
    ReferenceRule,
)
from labstore.projections.validation import (
    require_code,
    require_resource_type,
    require_status,
    require_subject,
)
from labstore.utils.fhir_helpers import (
    extract_first_category_code,
    extract_first_coding,
    extract_reference_id,
    get_reference,
    lower_or_none,
    parse_fhir_datetime,
)

logger = logging.getLogger(__name__)


def extract_code(data: dict) -> str | None:
    """Extract the test code (first coding of Observation.code).

    Args:
        data: FHIR Observation JSON.

    Returns:
        Code value (e.g. LOINC "2345-7") or None.
    """
    return extract_first_coding(data.get("code")).get("code")


def extract_code_display(data: dict) -> str | None:
    return extract_first_coding(data.get("code")).get("display")


def extract_status(data: dict) -> str | None:
    return lower_or_none(data.get("status"))


def extract_category(data: dict) -> str | None:
    """Extract the first category code, lower-cased (e.g. "laboratory")."""
    return lower_or_none(extract_first_category_code(data))


def extract_effective_at(data: dict) -> datetime | None:
    """Extract effectiveDateTime, falling back to effectivePeriod.start.

    Args:
        data: FHIR Observation JSON.

    Returns:
        Aware UTC datetime or None.
    """
    if "effectiveDateTime" in data:
        return parse_fhir_datetime(data["effectiveDateTime"])
    period = data.get("effectivePeriod")
    if isinstance(period, dict):
        return parse_fhir_datetime(period.get("start"))
    return None


def extract_value_quantity(data: dict) -> Decimal | None:
    """Extract valueQuantity.value as a Decimal.

    Args:
        data: FHIR Observation JSON.

    Returns:
        Numeric value or None when the value is not a quantity.
    """
    quantity = data.get("valueQuantity")
    if not isinstance(quantity, dict) or quantity.get("value") is None:
        return None
    try:
        return Decimal(str(quantity["value"]))
    except InvalidOperation:
        logger.warning("Ignoring non-numeric valueQuantity.value: %r", quantity["value"])
        return None


def extract_value_unit(data: dict) -> str | None:
    quantity = data.get("valueQuantity")
    if isinstance(quantity, dict):
        return quantity.get("unit") or quantity.get("code")
    return None


def extract_value_code(data: dict) -> str | None:
    return extract_first_coding(data.get("valueCodeableConcept")).get("code")


def extract_patient_id(data: dict) -> str | None:
    """Extract the bare Patient id from subject.reference."""
    return extract_reference_id(get_reference(data, "subject"))


def validate_observation(data: dict) -> None:
    """Check the fields an Observation needs to be stored.

    Raises:
        ValidationFailureError: If status, code or subject is missing.
    """
    require_resource_type(data, "Observation")
    require_status(data, "Observation", "registered, preliminary, final, amended, etc.")
    require_code(data, "Observation", "e.g., LOINC code")
    require_subject(data, "Observation")


def register_observation_projection() -> None:
    """Register the Observation projection configuration with the registry."""
    from labstore.models.projections.observation import ObservationProjection

    config = ProjectionConfig(
        resource_type="Observation",
        table_name="observation_projections",
        model_class=ObservationProjection,
        extractors=[
            FieldExtractor("code", extract_code),
            FieldExtractor("code_display", extract_code_display),
            FieldExtractor("status", extract_status),
            FieldExtractor("category", extract_category),
            FieldExtractor("effective_at", extract_effective_at),
            FieldExtractor("value_quantity", extract_value_quantity),
            FieldExtractor("value_unit", extract_value_unit),
            FieldExtractor("value_code", extract_value_code),
            FieldExtractor("patient_id", extract_patient_id),
        ],
        validator=validate_observation,
        references=[ReferenceRule("subject", "Patient")],
    )
    ProjectionRegistry.register(config)
