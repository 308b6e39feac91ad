"""ServiceRequest-specific extractors for FHIR ServiceRequest (lab order) resources.

Pure functions that extract fields from FHIR ServiceRequest JSON for the
service_request_projections table.
"""

from datetime import datetime

from labstore.exceptions import ValidationFailureError
from labstore.projections.registry import (
    FieldExtractor,
    ProjectionConfig,
    ProjectionRegistry,
    ReferenceRule,
)
from labstore.projections.validation import require_resource_type, require_status, require_subject
from labstore.utils.fhir_helpers import (
    extract_first_category_code,
    extract_first_coding,
    extract_reference_id,
    get_reference,
    lower_or_none,
    parse_fhir_datetime,
)


def extract_code(data: dict) -> str | None:
    """Extract the ordered test code (first coding of ServiceRequest.code)."""
    return extract_first_coding(data.get("code")).get("code")


def extract_status(data: dict) -> str | None:
    return lower_or_none(data.get("status"))


def extract_intent(data: dict) -> str | None:
    return lower_or_none(data.get("intent"))


def extract_category(data: dict) -> str | None:
    return extract_first_category_code(data)


def extract_priority(data: dict) -> str | None:
    return lower_or_none(data.get("priority"))


def extract_authored_at(data: dict) -> datetime | None:
    return parse_fhir_datetime(data.get("authoredOn"))


def extract_occurrence_at(data: dict) -> datetime | None:
    """Extract occurrenceDateTime, falling back to occurrencePeriod.start."""
    if "occurrenceDateTime" in data:
        return parse_fhir_datetime(data["occurrenceDateTime"])
    period = data.get("occurrencePeriod")
    if isinstance(period, dict):
        return parse_fhir_datetime(period.get("start"))
    return None


def extract_requester(data: dict) -> str | None:
    return get_reference(data, "requester")


def extract_performer(data: dict) -> str | None:
    """Extract the first performer reference, verbatim.

    Args:
        data: FHIR ServiceRequest JSON.

    Returns:
        Reference string (e.g. "Organization/lab-1") or None.
    """
    performers = data.get("performer") or []
    if isinstance(performers, list) and performers and isinstance(performers[0], dict):
        reference = performers[0].get("reference")
        return reference if isinstance(reference, str) and reference else None
    return None


def extract_patient_id(data: dict) -> str | None:
    return extract_reference_id(get_reference(data, "subject"))


def validate_service_request(data: dict) -> None:
    """Check the fields a ServiceRequest needs to be stored.

    Raises:
        ValidationFailureError: If status, intent or subject is missing.
    """
    require_resource_type(data, "ServiceRequest")
    require_status(
        data,
        "ServiceRequest",
        "draft, active, on-hold, revoked, completed, entered-in-error, unknown",
    )
    if not isinstance(data.get("intent"), str) or not data["intent"]:
        raise ValidationFailureError(
            "ServiceRequest must have an intent (proposal, plan, directive, order, "
            "original-order, reflex-order, filler-order, instance-order, option)",
            field="intent",
        )
    require_subject(data, "ServiceRequest")


def register_service_request_projection() -> None:
    """Register the ServiceRequest projection configuration with the registry."""
    from labstore.models.projections.service_request import ServiceRequestProjection

    config = ProjectionConfig(
        resource_type="ServiceRequest",
        table_name="service_request_projections",
        model_class=ServiceRequestProjection,
        extractors=[
            FieldExtractor("code", extract_code),
            FieldExtractor("status", extract_status),
            FieldExtractor("intent", extract_intent),
            FieldExtractor("category", extract_category),
            FieldExtractor("priority", extract_priority),
            FieldExtractor("authored_at", extract_authored_at),
            FieldExtractor("occurrence_at", extract_occurrence_at),
            FieldExtractor("requester", extract_requester),
            FieldExtractor("performer", extract_performer),
            FieldExtractor("patient_id", extract_patient_id),
        ],
        validator=validate_service_request,
        references=[ReferenceRule("subject", "Patient")],
    )
    ProjectionRegistry.register(config)
