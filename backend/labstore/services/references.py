"""Cross-resource reference validation.

A reference resolves when a non-deleted record of the expected type exists
under its bare id. The type prefix, when present, is checked textually
before any lookup: "Practitioner/123" is never a valid subject, whether or
not a Patient with id 123 happens to exist.
"""

from __future__ import annotations

import logging
from enum import Enum

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from labstore.exceptions import MissingReferenceError, WrongReferenceTypeError
from labstore.models.fhir import FhirResource
from labstore.projections.registry import ProjectionConfig
from labstore.utils.fhir_helpers import split_reference

logger = logging.getLogger(__name__)


class ReferenceCheck(str, Enum):
    """Outcome of resolving a single reference."""

    OK = "ok"
    MISSING_REFERENCE = "missing-reference"
    WRONG_REFERENCE_TYPE = "wrong-reference-type"


class ReferenceValidator:
    """Resolve references against live records in the store.

    Lookups take a shared row lock on the target (FOR SHARE on PostgreSQL),
    so a concurrent soft delete of the target waits for the dependent write's
    transaction to finish.
    """

    def __init__(self, db: AsyncSession):
        """Initialize validator with database session.

        Args:
            db: Async SQLAlchemy session; must be the session the dependent write uses.
        """
        self.db = db

    async def check(
        self,
        reference: str | None,
        expected_type: str,
        require_prefix: bool = False,
    ) -> ReferenceCheck:
        """Classify a reference without raising.

        Args:
            reference: Bare id or "Type/id" reference string.
            expected_type: Resource type the reference must resolve under.
            require_prefix: Reject references lacking an explicit "Type/" prefix.

        Returns:
            ReferenceCheck outcome.
        """
        prefix, bare_id = split_reference(reference)
        if prefix is not None and prefix != expected_type:
            return ReferenceCheck.WRONG_REFERENCE_TYPE
        if prefix is None and require_prefix:
            return ReferenceCheck.WRONG_REFERENCE_TYPE
        if bare_id is None:
            return ReferenceCheck.MISSING_REFERENCE
        if not await self._exists(expected_type, bare_id):
            return ReferenceCheck.MISSING_REFERENCE
        return ReferenceCheck.OK

    async def require(
        self,
        reference: str | None,
        expected_type: str,
        field: str,
        require_prefix: bool = False,
    ) -> None:
        """Resolve a reference or raise the matching taxonomy error.

        Args:
            reference: Bare id or "Type/id" reference string.
            expected_type: Resource type the reference must resolve under.
            field: Element path reported on failure (e.g. "result[2]").
            require_prefix: Reject references lacking an explicit "Type/" prefix.

        Raises:
            WrongReferenceTypeError: Prefix does not name expected_type.
            MissingReferenceError: No live record of expected_type with that id.
        """
        outcome = await self.check(reference, expected_type, require_prefix)
        if outcome is ReferenceCheck.WRONG_REFERENCE_TYPE:
            logger.warning("Reference %s at %s is not a %s reference", reference, field, expected_type)
            raise WrongReferenceTypeError(
                f"Reference '{reference}' must be a {expected_type} resource",
                field=field,
            )
        if outcome is ReferenceCheck.MISSING_REFERENCE:
            logger.warning("Reference %s at %s does not resolve", reference, field)
            raise MissingReferenceError(
                f"Referenced {expected_type} '{reference}' does not exist",
                field=field,
            )

    async def validate_resource(self, config: ProjectionConfig, fhir_data: dict) -> None:
        """Check every outgoing reference a resource type declares.

        Array elements are checked in order and the first failure is raised.

        Args:
            config: Projection configuration listing the reference rules.
            fhir_data: Parsed FHIR resource.
        """
        for rule in config.references:
            element = fhir_data.get(rule.element)
            if rule.many:
                for index, item in enumerate(element or []):
                    reference = item.get("reference") if isinstance(item, dict) else None
                    if not reference:
                        continue
                    await self.require(
                        reference,
                        rule.target_type,
                        field=f"{rule.element}[{index}]",
                        require_prefix=rule.require_prefix,
                    )
            else:
                reference = element.get("reference") if isinstance(element, dict) else None
                await self.require(
                    reference,
                    rule.target_type,
                    field=rule.element,
                    require_prefix=rule.require_prefix,
                )

    async def _exists(self, resource_type: str, fhir_id: str) -> bool:
        result = await self.db.execute(
            select(FhirResource.id)
            .where(
                FhirResource.resource_type == resource_type,
                FhirResource.fhir_id == fhir_id,
                FhirResource.is_deleted.is_(False),
            )
            .with_for_update(read=True)
        )
        return result.scalar_one_or_none() is not None
