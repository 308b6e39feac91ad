"""Projection models for FHIR resources.

Projection tables provide fast indexed queries over extracted FHIR fields
while keeping the canonical FHIR JSON as the source of truth.
"""

from labstore.models.projections.diagnostic_report import DiagnosticReportProjection
from labstore.models.projections.observation import ObservationProjection
from labstore.models.projections.patient import PatientProjection
from labstore.models.projections.service_request import ServiceRequestProjection

__all__ = [
    "DiagnosticReportProjection",
    "ObservationProjection",
    "PatientProjection",
    "ServiceRequestProjection",
]
