"""Required-field checks shared by the resource-type validators.

Structural and type correctness is the codec's concern; these checks only
enforce the handful of fields the store needs to index and link a resource.
"""

from labstore.exceptions import ValidationFailureError
from labstore.utils.fhir_helpers import get_reference


def require_resource_type(data: dict, resource_type: str) -> None:
    """Reject a payload whose resourceType differs from the target type."""
    actual = data.get("resourceType")
    if actual != resource_type:
        raise ValidationFailureError(
            f"Expected resourceType '{resource_type}', got '{actual}'",
            field="resourceType",
        )


def require_status(data: dict, resource_type: str, allowed: str) -> None:
    if not isinstance(data.get("status"), str) or not data["status"]:
        raise ValidationFailureError(
            f"{resource_type} must have a status ({allowed})",
            field="status",
        )


def require_code(data: dict, resource_type: str, example: str) -> None:
    code = data.get("code")
    codings = code.get("coding") if isinstance(code, dict) else None
    if not isinstance(codings, list) or not codings:
        raise ValidationFailureError(
            f"{resource_type} must have a code ({example})",
            field="code",
        )


def require_subject(data: dict, resource_type: str) -> None:
    if get_reference(data, "subject") is None:
        raise ValidationFailureError(
            f"{resource_type} must have a subject reference (patient)",
            field="subject",
        )
