"""SQLAlchemy models."""

from labstore.models.fhir import FhirResource
from labstore.models.projections import (
    DiagnosticReportProjection,
    ObservationProjection,
    PatientProjection,
    ServiceRequestProjection,
)

__all__ = [
    "DiagnosticReportProjection",
    "FhirResource",
    "ObservationProjection",
    "PatientProjection",
    "ServiceRequestProjection",
]
