"""Projection registry and configuration.

The projection system maps FHIR resource types to projection tables,
extracting specific fields for indexed queries while keeping the canonical
FHIR JSON as the source of truth. Each configuration also declares the
required-field checks and the outgoing references a resource type carries.
"""

from dataclasses import dataclass, field
from typing import Any, Callable


@dataclass
class FieldExtractor:
    """Maps a FHIR field to a projection column.

    Args:
        target_column: Name of the column in the projection table.
        extractor: Function that extracts the value from FHIR JSON.
    """

    target_column: str
    extractor: Callable[[dict], Any]


@dataclass(frozen=True)
class ReferenceRule:
    """An outgoing reference that must resolve before a write.

    Args:
        element: FHIR element holding the Reference (e.g. "subject", "result").
        target_type: Resource type the reference must resolve under.
        many: Element is an array of References.
        require_prefix: The reference must carry an explicit "Type/" prefix.
    """

    element: str
    target_type: str
    many: bool = False
    require_prefix: bool = False


@dataclass
class ProjectionConfig:
    """Configuration for a resource type's projection.

    Defines how to validate a FHIR resource and extract fields from it into
    a projection table.
    """

    resource_type: str
    table_name: str
    model_class: type
    extractors: list[FieldExtractor] = field(default_factory=list)
    validator: Callable[[dict], None] | None = None
    references: list[ReferenceRule] = field(default_factory=list)

    def extract(self, fhir_data: dict) -> dict:
        """Extract all projection fields from FHIR data.

        Args:
            fhir_data: Raw FHIR resource JSON.

        Returns:
            Dictionary mapping column names to extracted values.
        """
        return {e.target_column: e.extractor(fhir_data) for e in self.extractors}

    def validate(self, fhir_data: dict) -> None:
        """Run the resource-type-specific required-field checks.

        Raises:
            ValidationFailureError: If a required field is absent or malformed.
        """
        if self.validator is not None:
            self.validator(fhir_data)


# Module-level storage (not class-level to avoid shared mutable state)
_registry_configs: dict[str, ProjectionConfig] = {}


class ProjectionRegistry:
    """Registry of projection configurations by resource type.

    Maintains a mapping of FHIR resource types to their projection
    configurations, enabling automatic projection sync when resources
    are saved.
    """

    @classmethod
    def register(cls, config: ProjectionConfig) -> None:
        """Register a projection configuration.

        Args:
            config: The projection configuration to register.
        """
        _registry_configs[config.resource_type] = config

    @classmethod
    def get(cls, resource_type: str) -> ProjectionConfig | None:
        """Get projection configuration for a resource type.

        Args:
            resource_type: FHIR resource type (e.g., 'Observation').

        Returns:
            ProjectionConfig if registered, None otherwise.
        """
        return _registry_configs.get(resource_type)

    @classmethod
    def all_configs(cls) -> dict[str, ProjectionConfig]:
        """Get all registered projection configurations.

        Returns:
            Dictionary mapping resource types to configs.
        """
        return _registry_configs.copy()

    @classmethod
    def _clear_for_testing(cls) -> None:
        """Clear all registered configurations. Internal use in tests only."""
        _registry_configs.clear()
