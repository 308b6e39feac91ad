"""FHIR Resource repository.

Single entry point for FHIR resource persistence with automatic projection sync.
Each repository instance serves one resource type: it stores the canonical
payload, keeps the projection row in step with it and owns the version and
soft-delete lifecycle.

Writes are guarded twice. The target row is locked (FOR UPDATE) for the
rest of the transaction, and the write itself is a compare-and-swap on
version_id, so two concurrent updates can never both produce version N+1.
Creates rely on the (resource_type, fhir_id) unique constraint.
"""

from __future__ import annotations

import copy
import json
import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Callable

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from labstore.codec import codec
from labstore.config import settings
from labstore.exceptions import (
    IdMismatchError,
    ResourceConflictError,
    ResourceNotFoundError,
    ValidationFailureError,
    VersionConflictError,
)
from labstore.models.fhir import FhirResource
from labstore.projections import get_projection_config

logger = logging.getLogger(__name__)

# FHIR id datatype
_FHIR_ID_PATTERN = re.compile(r"^[A-Za-z0-9\-.]{1,64}$")

_MAX_ID_DRAWS = 5


def utc_now() -> datetime:
    """Current wall-clock time in UTC."""
    return datetime.now(timezone.utc)


def format_instant(value: datetime) -> str:
    """Format a datetime as a FHIR instant in UTC ("...Z")."""
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def strip_meta_stamps(fhir_data: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of a resource without meta.versionId / meta.lastUpdated.

    Those two fields are owned by the store and regenerated on every read;
    whatever the client sent is discarded.
    """
    data = copy.deepcopy(fhir_data)
    meta = data.get("meta")
    if isinstance(meta, dict):
        meta.pop("versionId", None)
        meta.pop("lastUpdated", None)
        if not meta:
            data.pop("meta")
    return data


def _with_id(fhir_data: dict[str, Any], fhir_id: str) -> dict[str, Any]:
    """Place the id right after resourceType when the payload lacks one."""
    if fhir_data.get("id") == fhir_id:
        return fhir_data
    data = {"resourceType": fhir_data.get("resourceType"), "id": fhir_id}
    data.update((k, v) for k, v in fhir_data.items() if k not in ("resourceType", "id"))
    return data


class FhirRepository:
    """Repository for one FHIR resource type.

    Handles create/read/update/soft delete on FhirResource with automatic
    projection sync. Every read path filters out soft-deleted rows.
    """

    def __init__(
        self,
        db: AsyncSession,
        resource_type: str,
        clock: Callable[[], datetime] = utc_now,
        retry_limit: int | None = None,
    ):
        """Initialize repository with database session.

        Args:
            db: Async SQLAlchemy session.
            resource_type: FHIR resource type served by this repository.
            clock: Source of wall-clock time (injectable for tests).
            retry_limit: Attempts made by update() on version conflicts.

        Raises:
            RuntimeError: If the resource type's projection is not registered.
        """
        self.db = db
        self.resource_type = resource_type
        self.config = get_projection_config(resource_type)
        self.clock = clock
        self.retry_limit = retry_limit or settings.update_retry_limit

    async def create(self, fhir_data: dict[str, Any]) -> FhirResource:
        """Store a new resource at version 1.

        Assigns a random id when the payload has none. An id that was ever
        used for this type, including by a soft-deleted record, is rejected.

        Args:
            fhir_data: Parsed and validated FHIR resource.

        Returns:
            The stored FhirResource.

        Raises:
            ValidationFailureError: If the supplied id is not a valid FHIR id.
            ResourceConflictError: If the id is already taken.
        """
        data = strip_meta_stamps(fhir_data)
        fhir_id = data.get("id")
        if fhir_id:
            self._check_id_format(fhir_id)
            if await self._id_used(fhir_id):
                raise ResourceConflictError(
                    f"{self.resource_type} with ID '{fhir_id}' already exists",
                    field="id",
                )
        else:
            fhir_id = await self._new_id()
            data = _with_id(data, fhir_id)

        now = self.clock()
        resource = FhirResource(
            fhir_id=fhir_id,
            resource_type=self.resource_type,
            canonical_payload=codec.serialize(data),
            version_id=1,
            created_at=now,
            last_updated=now,
            is_deleted=False,
        )
        self.db.add(resource)
        try:
            await self.db.flush()
        except IntegrityError as e:
            # Lost a race with a concurrent create of the same id
            raise ResourceConflictError(
                f"{self.resource_type} with ID '{fhir_id}' already exists",
                field="id",
            ) from e

        await self._sync_projection(resource, data)
        logger.info("Created %s/%s", self.resource_type, fhir_id)
        return resource

    async def read(self, fhir_id: str) -> FhirResource:
        """Get a live resource by FHIR id.

        Raises:
            ResourceNotFoundError: If absent or soft-deleted.
        """
        return await self._get_live(fhir_id)

    async def update(self, fhir_id: str, fhir_data: dict[str, Any]) -> FhirResource:
        """Replace a resource's payload, bumping its version by one.

        Reads the current version and writes through update_if_version,
        retrying a bounded number of times if a concurrent writer gets in
        between.

        Raises:
            ResourceNotFoundError: If absent or soft-deleted.
            IdMismatchError: If the payload id differs from fhir_id.
            VersionConflictError: If every attempt lost a race.
        """
        for attempt in range(1, self.retry_limit + 1):
            current = await self._get_live(fhir_id)
            try:
                return await self.update_if_version(fhir_id, current.version_id, fhir_data)
            except VersionConflictError:
                if attempt == self.retry_limit:
                    raise
                logger.info(
                    "Version conflict updating %s/%s (attempt %d), retrying",
                    self.resource_type,
                    fhir_id,
                    attempt,
                )
        raise AssertionError("unreachable")

    async def update_if_version(
        self,
        fhir_id: str,
        expected_version: int,
        fhir_data: dict[str, Any],
    ) -> FhirResource:
        """Compare-and-swap write: apply only if the stored version matches.

        Args:
            fhir_id: FHIR id of the record to update.
            expected_version: Version the caller based its change on.
            fhir_data: Full replacement payload.

        Returns:
            The updated FhirResource at expected_version + 1.

        Raises:
            ResourceNotFoundError: If absent or soft-deleted.
            IdMismatchError: If the payload id differs from fhir_id.
            VersionConflictError: If the stored version is not expected_version.
        """
        current = await self._get_live(fhir_id, for_update=True)

        payload_id = fhir_data.get("id")
        if payload_id and payload_id != fhir_id:
            raise IdMismatchError(
                f"Resource ID '{payload_id}' does not match URL ID '{fhir_id}'",
                field="id",
            )

        if current.version_id != expected_version:
            raise VersionConflictError(
                f"{self.resource_type}/{fhir_id} is at version {current.version_id}, "
                f"expected {expected_version}",
                expected_version=expected_version,
                current_version=current.version_id,
            )

        data = _with_id(strip_meta_stamps(fhir_data), fhir_id)
        now = max(self.clock(), current.last_updated)

        result = await self.db.execute(
            update(FhirResource)
            .where(
                FhirResource.id == current.id,
                FhirResource.version_id == expected_version,
                FhirResource.is_deleted.is_(False),
            )
            .values(
                canonical_payload=codec.serialize(data),
                version_id=expected_version + 1,
                last_updated=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.refresh(current)
            if current.is_deleted:
                raise ResourceNotFoundError(
                    f"{self.resource_type} with ID '{fhir_id}' not found",
                    field="id",
                )
            raise VersionConflictError(
                f"{self.resource_type}/{fhir_id} was modified concurrently",
                expected_version=expected_version,
                current_version=current.version_id,
            )

        await self.db.refresh(current)
        await self._sync_projection(current, data)
        logger.info("Updated %s/%s to version %d", self.resource_type, fhir_id, current.version_id)
        return current

    async def soft_delete(self, fhir_id: str) -> FhirResource:
        """Mark a live resource as deleted.

        The payload and projection stay in place; the record simply stops
        being visible. Deleting an already deleted record is NotFound.

        Raises:
            ResourceNotFoundError: If absent or already soft-deleted.
        """
        current = await self._get_live(fhir_id, for_update=True)
        now = max(self.clock(), current.last_updated)

        result = await self.db.execute(
            update(FhirResource)
            .where(FhirResource.id == current.id, FhirResource.is_deleted.is_(False))
            .values(is_deleted=True, last_updated=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ResourceNotFoundError(
                f"{self.resource_type} with ID '{fhir_id}' not found",
                field="id",
            )

        await self.db.refresh(current)
        logger.info("Soft deleted %s/%s", self.resource_type, fhir_id)
        return current

    async def get_index_fields(self, resource: FhirResource) -> dict[str, Any]:
        """Load the projection row of a resource as a column -> value dict."""
        projection = await self.db.get(self.config.model_class, resource.id)
        if projection is None:
            return {}
        return {
            column.key: getattr(projection, column.key)
            for column in projection.__table__.columns
            if column.key not in ("fhir_resource_id", "projected_at")
        }

    def to_fhir(self, resource: FhirResource) -> dict[str, Any]:
        """Render the stored payload with meta regenerated from the record.

        Args:
            resource: Stored FhirResource.

        Returns:
            FHIR resource dict whose meta.versionId / meta.lastUpdated come
            from the authoritative record, never from the stored text.
        """
        data = json.loads(resource.canonical_payload)
        meta = dict(data.get("meta") or {})
        meta["versionId"] = str(resource.version_id)
        meta["lastUpdated"] = format_instant(resource.last_updated)
        data["meta"] = meta
        return data

    async def _get_live(self, fhir_id: str, for_update: bool = False) -> FhirResource:
        # populate_existing: a row already in the identity map must reflect
        # the database, not what this session saw earlier
        query = (
            select(FhirResource)
            .where(
                FhirResource.resource_type == self.resource_type,
                FhirResource.fhir_id == fhir_id,
                FhirResource.is_deleted.is_(False),
            )
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        resource = result.scalar_one_or_none()
        if resource is None:
            logger.warning("%s %s not found", self.resource_type, fhir_id)
            raise ResourceNotFoundError(
                f"{self.resource_type} with ID '{fhir_id}' not found",
                field="id",
            )
        return resource

    async def _id_used(self, fhir_id: str) -> bool:
        """Whether an id was ever used for this type, deleted or not."""
        result = await self.db.execute(
            select(FhirResource.id).where(
                FhirResource.resource_type == self.resource_type,
                FhirResource.fhir_id == fhir_id,
            )
        )
        return result.scalar_one_or_none() is not None

    async def _new_id(self) -> str:
        for _ in range(_MAX_ID_DRAWS):
            candidate = str(uuid.uuid4())
            if not await self._id_used(candidate):
                return candidate
        raise RuntimeError(f"Could not allocate a free {self.resource_type} id")

    def _check_id_format(self, fhir_id: Any) -> None:
        if not isinstance(fhir_id, str) or not _FHIR_ID_PATTERN.match(fhir_id):
            raise ValidationFailureError(
                f"Invalid resource id '{fhir_id}': 1-64 characters of A-Z, a-z, 0-9, '-' or '.'",
                field="id",
            )

    async def _sync_projection(self, resource: FhirResource, fhir_data: dict[str, Any]) -> None:
        """Upsert the projection row from the resource's FHIR data.

        Args:
            resource: The stored FhirResource.
            fhir_data: The payload that was just persisted.
        """
        extracted = self.config.extract(fhir_data)
        extracted["projected_at"] = resource.last_updated

        projection = self.config.model_class(
            fhir_resource_id=resource.id,
            **extracted,
        )

        # Use merge to handle both insert and update
        await self.db.merge(projection)
        await self.db.flush()
