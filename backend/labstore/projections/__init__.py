"""FHIR projection system.

Projections extract indexed fields from FHIR JSON into separate tables
for fast queries while keeping the canonical FHIR data as the source of truth.
"""

from labstore.projections.registry import (
    FieldExtractor,
    ProjectionConfig,
    ProjectionRegistry,
    ReferenceRule,
)

# Resource types served by the store, in dependency order
SUPPORTED_RESOURCE_TYPES = ("Patient", "Observation", "DiagnosticReport", "ServiceRequest")


def get_projection_config(resource_type: str) -> ProjectionConfig:
    """Get the registered projection for a resource type.

    Raises:
        RuntimeError: If the projection has not been registered.
    """
    config = ProjectionRegistry.get(resource_type)
    if config is None:
        raise RuntimeError(
            f"{resource_type} projection not registered. "
            "Call register_all_projections() at startup."
        )
    return config


def extract_index_fields(resource_type: str, fhir_data: dict) -> dict:
    """Derive the indexable scalar fields of a structured resource.

    Pure and deterministic; absent optional structure leaves the
    corresponding field as None.

    Args:
        resource_type: FHIR resource type.
        fhir_data: Parsed FHIR resource.

    Returns:
        Mapping of projection column name to value.
    """
    return get_projection_config(resource_type).extract(fhir_data)


__all__ = [
    "SUPPORTED_RESOURCE_TYPES",
    "FieldExtractor",
    "ProjectionConfig",
    "ProjectionRegistry",
    "ReferenceRule",
    "extract_index_fields",
    "get_projection_config",
]
