"""FHIR field extractors.

Extractors are pure functions that pull specific fields from FHIR JSON
for projection tables.
"""

from labstore.projections.extractors.diagnostic_report import register_diagnostic_report_projection
from labstore.projections.extractors.observation import register_observation_projection
from labstore.projections.extractors.patient import register_patient_projection
from labstore.projections.extractors.service_request import register_service_request_projection


def register_all_projections() -> None:
    """Register every supported resource type's projection.

    Called at application startup; safe to call more than once.
    """
    register_patient_projection()
    register_observation_projection()
    register_diagnostic_report_projection()
    register_service_request_projection()


__all__ = [
    "register_all_projections",
    "register_diagnostic_report_projection",
    "register_observation_projection",
    "register_patient_projection",
    "register_service_request_projection",
]
