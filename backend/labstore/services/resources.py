"""Resource service: the write and read paths for one resource type.

Write path: required-field validation -> reference validation -> store.
All steps share the caller's session, so reference checks and the write
happen in one transaction and a failure anywhere leaves nothing behind.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from labstore.models.fhir import FhirResource
from labstore.projections import get_projection_config
from labstore.repositories.fhir import FhirRepository, utc_now
from labstore.services.references import ReferenceValidator
from labstore.services.search import SearchEngine, SearchResult


class ResourceService:
    """CRUD and search for one FHIR resource type."""

    def __init__(
        self,
        db: AsyncSession,
        resource_type: str,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.resource_type = resource_type
        self.config = get_projection_config(resource_type)
        self.repository = FhirRepository(db, resource_type, clock=clock)
        self.references = ReferenceValidator(db)
        self.search_engine = SearchEngine(db, resource_type)

    async def create(self, fhir_data: dict[str, Any]) -> FhirResource:
        """Validate and store a new resource.

        Raises:
            ValidationFailureError, MissingReferenceError,
            WrongReferenceTypeError, ResourceConflictError
        """
        self.config.validate(fhir_data)
        await self.references.validate_resource(self.config, fhir_data)
        return await self.repository.create(fhir_data)

    async def read(self, fhir_id: str) -> FhirResource:
        return await self.repository.read(fhir_id)

    async def update(
        self,
        fhir_id: str,
        fhir_data: dict[str, Any],
        expected_version: int | None = None,
    ) -> FhirResource:
        """Validate and replace a resource.

        Args:
            fhir_id: FHIR id from the request path.
            fhir_data: Full replacement payload.
            expected_version: When given, the write only succeeds against this
                version (If-Match); otherwise the store retries on conflicts.

        Raises:
            ResourceNotFoundError, ValidationFailureError, MissingReferenceError,
            WrongReferenceTypeError, IdMismatchError, VersionConflictError
        """
        await self.repository.read(fhir_id)
        self.config.validate(fhir_data)
        await self.references.validate_resource(self.config, fhir_data)
        if expected_version is None:
            return await self.repository.update(fhir_id, fhir_data)
        return await self.repository.update_if_version(fhir_id, expected_version, fhir_data)

    async def delete(self, fhir_id: str) -> FhirResource:
        return await self.repository.soft_delete(fhir_id)

    async def search(
        self,
        filters: Mapping[str, str] | Iterable[tuple[str, str]],
        page_size: int | str | None = None,
        offset: int | str | None = None,
    ) -> SearchResult:
        return await self.search_engine.search(filters, page_size=page_size, offset=offset)

    def render(self, resource: FhirResource) -> dict[str, Any]:
        """FHIR JSON of a stored record with authoritative meta."""
        return self.repository.to_fhir(resource)
