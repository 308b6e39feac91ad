"""DiagnosticReport-specific extractors for FHIR DiagnosticReport resources.

Pure functions that extract fields from FHIR DiagnosticReport JSON for the
diagnostic_report_projections table.
"""

from datetime import datetime

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
    upper_or_none,
)


def extract_code(data: dict) -> str | None:
    """Extract the panel code (first coding of DiagnosticReport.code)."""
    return extract_first_coding(data.get("code")).get("code")


def extract_code_display(data: dict) -> str | None:
    return extract_first_coding(data.get("code")).get("display")


def extract_status(data: dict) -> str | None:
    return lower_or_none(data.get("status"))


def extract_category(data: dict) -> str | None:
    """Extract the first category code, upper-cased (v2-0074 codes such as "LAB")."""
    return upper_or_none(extract_first_category_code(data))


def extract_effective_at(data: dict) -> datetime | None:
    """Extract effectiveDateTime, falling back to effectivePeriod.start.

    Args:
        data: FHIR DiagnosticReport JSON.

    Returns:
        Aware UTC datetime or None.
    """
    if "effectiveDateTime" in data:
        return parse_fhir_datetime(data["effectiveDateTime"])
    period = data.get("effectivePeriod")
    if isinstance(period, dict):
        return parse_fhir_datetime(period.get("start"))
    return None


def extract_issued_at(data: dict) -> datetime | None:
    return parse_fhir_datetime(data.get("issued"))


def extract_result_ids(data: dict) -> list[str] | None:
    """Extract bare Observation ids from result[], preserving order.

    Args:
        data: FHIR DiagnosticReport JSON.

    Returns:
        List of ids or None when the report has no results.
    """
    results = data.get("result") or []
    if not isinstance(results, list):
        return None
    ids = [
        extract_reference_id(ref.get("reference"))
        for ref in results
        if isinstance(ref, dict) and ref.get("reference")
    ]
    ids = [id_ for id_ in ids if id_ is not None]
    return ids or None


def extract_conclusion(data: dict) -> str | None:
    conclusion = data.get("conclusion")
    return conclusion if isinstance(conclusion, str) and conclusion else None


def extract_patient_id(data: dict) -> str | None:
    return extract_reference_id(get_reference(data, "subject"))


def validate_diagnostic_report(data: dict) -> None:
    """Check the fields a DiagnosticReport needs to be stored.

    Raises:
        ValidationFailureError: If status, code or subject is missing.
    """
    require_resource_type(data, "DiagnosticReport")
    require_status(data, "DiagnosticReport", "registered, partial, preliminary, final, etc.")
    require_code(data, "DiagnosticReport", "e.g., LOINC code for panel type")
    require_subject(data, "DiagnosticReport")


def register_diagnostic_report_projection() -> None:
    """Register the DiagnosticReport projection configuration with the registry."""
    from labstore.models.projections.diagnostic_report import DiagnosticReportProjection

    config = ProjectionConfig(
        resource_type="DiagnosticReport",
        table_name="diagnostic_report_projections",
        model_class=DiagnosticReportProjection,
        extractors=[
            FieldExtractor("code", extract_code),
            FieldExtractor("code_display", extract_code_display),
            FieldExtractor("status", extract_status),
            FieldExtractor("category", extract_category),
            FieldExtractor("effective_at", extract_effective_at),
            FieldExtractor("issued_at", extract_issued_at),
            FieldExtractor("result_ids", extract_result_ids),
            FieldExtractor("conclusion", extract_conclusion),
            FieldExtractor("patient_id", extract_patient_id),
        ],
        validator=validate_diagnostic_report,
        references=[
            ReferenceRule("subject", "Patient"),
            ReferenceRule("result", "Observation", many=True, require_prefix=True),
        ],
    )
    ProjectionRegistry.register(config)
