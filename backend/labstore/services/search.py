"""Search over stored FHIR resources.

Filters are AND-ed together and evaluated against the projection tables;
the canonical payload is never inspected. Every parameter is validated
before a single query runs, so a bad request never touches the database.

Match semantics by parameter kind:
- token: exact match (codes, statuses, identifiers)
- string: case-insensitive substring match (names)
- date: same calendar day (UTC), time of day ignored
- reference: exact match on the bare id; "Type/id" and "id" are both accepted

Results are ordered by (last_updated, fhir_id) so pages are stable.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Any, Callable

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from labstore.config import settings
from labstore.exceptions import InvalidParameterError, SearchTimeoutError
from labstore.models.fhir import FhirResource
from labstore.projections import get_projection_config
from labstore.utils.fhir_helpers import split_reference

logger = logging.getLogger(__name__)

COUNT_PARAM = "_count"
OFFSET_PARAM = "_offset"


class ParamKind(str, Enum):
    """FHIR search parameter types supported by the store."""

    TOKEN = "token"
    STRING = "string"
    DATE = "date"
    REFERENCE = "reference"


@dataclass(frozen=True)
class SearchParam:
    """A search parameter bound to one or more projection columns.

    Args:
        name: Query parameter name.
        kind: Match semantics.
        columns: Projection columns searched; a string parameter matches if any does.
        normalize: Applied to token values before comparison.
        target_type: Resource type a reference parameter points at.
        allowed: Closed set of accepted token values.
        date_only: Column holds a date rather than a datetime.
        description: Human-readable description for the CapabilityStatement.
    """

    name: str
    kind: ParamKind
    columns: tuple[str, ...]
    normalize: Callable[[str], str] | None = None
    target_type: str | None = None
    allowed: frozenset[str] | None = None
    date_only: bool = False
    description: str = ""


def _lower(value: str) -> str:
    return value.lower()


def _upper(value: str) -> str:
    return value.upper()


def _patient_params() -> tuple[SearchParam, ...]:
    return (
        SearchParam("patient", ParamKind.REFERENCE, ("patient_id",), target_type="Patient",
                    description="Subject patient (Patient/[id] or [id])"),
        SearchParam("subject", ParamKind.REFERENCE, ("patient_id",), target_type="Patient",
                    description="Subject patient (Patient/[id] or [id])"),
    )


SEARCH_PARAMS: dict[str, tuple[SearchParam, ...]] = {
    "Patient": (
        SearchParam("name", ParamKind.STRING, ("family_name", "given_name"),
                    description="Family or given name, case-insensitive partial match"),
        SearchParam("family", ParamKind.STRING, ("family_name",),
                    description="Family name, case-insensitive partial match"),
        SearchParam("given", ParamKind.STRING, ("given_name",),
                    description="Given name, case-insensitive partial match"),
        SearchParam("identifier", ParamKind.TOKEN, ("identifier",),
                    description="Identifier value (e.g. MRN), exact match"),
        SearchParam("birthdate", ParamKind.DATE, ("birth_date",), date_only=True,
                    description="Birth date, format YYYY-MM-DD"),
        SearchParam("gender", ParamKind.TOKEN, ("gender",), normalize=_lower,
                    allowed=frozenset({"male", "female", "other", "unknown"}),
                    description="Administrative gender: male, female, other, unknown"),
    ),
    "Observation": (
        *_patient_params(),
        SearchParam("code", ParamKind.TOKEN, ("code",), description="Test code (LOINC), exact match"),
        SearchParam("category", ParamKind.TOKEN, ("category",), normalize=_lower,
                    description="Category code (e.g. laboratory, vital-signs)"),
        SearchParam("status", ParamKind.TOKEN, ("status",), normalize=_lower,
                    description="Status (registered, preliminary, final, amended, ...)"),
        SearchParam("date", ParamKind.DATE, ("effective_at",),
                    description="Effective date, format YYYY-MM-DD"),
        SearchParam("value-concept", ParamKind.TOKEN, ("value_code",),
                    description="Coded value, exact match"),
    ),
    "DiagnosticReport": (
        *_patient_params(),
        SearchParam("code", ParamKind.TOKEN, ("code",), description="Panel code (LOINC), exact match"),
        SearchParam("category", ParamKind.TOKEN, ("category",), normalize=_upper,
                    description="Category code (e.g. LAB)"),
        SearchParam("status", ParamKind.TOKEN, ("status",), normalize=_lower,
                    description="Status (registered, partial, preliminary, final, ...)"),
        SearchParam("date", ParamKind.DATE, ("effective_at",),
                    description="Effective date, format YYYY-MM-DD"),
        SearchParam("issued", ParamKind.DATE, ("issued_at",),
                    description="Issued date, format YYYY-MM-DD"),
    ),
    "ServiceRequest": (
        *_patient_params(),
        SearchParam("code", ParamKind.TOKEN, ("code",), description="Ordered test code, exact match"),
        SearchParam("status", ParamKind.TOKEN, ("status",), normalize=_lower,
                    description="Status (draft, active, on-hold, revoked, completed, ...)"),
        SearchParam("intent", ParamKind.TOKEN, ("intent",), normalize=_lower,
                    description="Intent (proposal, plan, order, ...)"),
        SearchParam("category", ParamKind.TOKEN, ("category",), description="Category code, exact match"),
        SearchParam("priority", ParamKind.TOKEN, ("priority",), normalize=_lower,
                    description="Priority (routine, urgent, asap, stat)"),
        SearchParam("authored", ParamKind.DATE, ("authored_at",),
                    description="Authored date, format YYYY-MM-DD"),
        SearchParam("occurrence", ParamKind.DATE, ("occurrence_at",),
                    description="Occurrence date, format YYYY-MM-DD"),
        SearchParam("requester", ParamKind.TOKEN, ("requester",),
                    description="Requester reference (e.g. Practitioner/123), exact match"),
        SearchParam("performer", ParamKind.TOKEN, ("performer",),
                    description="Performer reference (e.g. Organization/lab), exact match"),
    ),
}


def get_search_params(resource_type: str) -> dict[str, SearchParam]:
    """Search parameters of a resource type keyed by name."""
    return {param.name: param for param in SEARCH_PARAMS.get(resource_type, ())}


@dataclass
class SearchResult:
    """One page of search results.

    Args:
        resources: Matching records on this page, in search order.
        total: Number of matching records across all pages.
        filters: The non-empty filters applied, in the order supplied.
        page_size: Page size used.
        offset: Offset of the first record on this page.
    """

    resources: list[FhirResource]
    total: int
    filters: list[tuple[str, str]] = field(default_factory=list)
    page_size: int = 20
    offset: int = 0


def split_paging_params(
    params: Iterable[tuple[str, str]],
) -> tuple[list[tuple[str, str]], str | None, str | None]:
    """Separate _count / _offset from the filter parameters of a query string.

    Args:
        params: Query parameters as (name, value) pairs, in request order.

    Returns:
        Tuple of (filter pairs, raw _count or None, raw _offset or None).
    """
    filters: list[tuple[str, str]] = []
    count: str | None = None
    offset: str | None = None
    for name, value in params:
        if name == COUNT_PARAM:
            count = value
        elif name == OFFSET_PARAM:
            offset = value
        else:
            filters.append((name, value))
    return filters, count, offset


def parse_search_date(name: str, value: str) -> date:
    """Parse a date filter literal ("YYYY-MM-DD" or a full dateTime).

    Raises:
        InvalidParameterError: If the literal does not parse.
    """
    try:
        if "T" in value:
            return datetime.fromisoformat(value).date()
        return date.fromisoformat(value)
    except ValueError as e:
        raise InvalidParameterError(
            f"Invalid {name} format: '{value}'. Expected format: YYYY-MM-DD",
            field=name,
        ) from e


def _parse_int(name: str, raw: Any, default: int, minimum: int, maximum: int | None) -> int:
    if raw is None or raw == "":
        return default
    if isinstance(raw, bool):
        raise InvalidParameterError(f"{name} must be an integer", field=name)
    if isinstance(raw, int):
        value = raw
    else:
        try:
            value = int(str(raw).strip())
        except ValueError as e:
            raise InvalidParameterError(f"{name} must be an integer, got '{raw}'", field=name) from e
    if value < minimum or (maximum is not None and value > maximum):
        bound = f"between {minimum} and {maximum}" if maximum is not None else f"at least {minimum}"
        raise InvalidParameterError(f"{name} must be {bound}, got {value}", field=name)
    return value


class SearchEngine:
    """Filter, count and page live resources of one type."""

    def __init__(
        self,
        db: AsyncSession,
        resource_type: str,
        timeout_seconds: float | None = None,
    ):
        """Initialize search engine with database session.

        Args:
            db: Async SQLAlchemy session.
            resource_type: FHIR resource type searched.
            timeout_seconds: Budget for the whole search; settings default when None.
        """
        self.db = db
        self.resource_type = resource_type
        self.config = get_projection_config(resource_type)
        self.params = get_search_params(resource_type)
        self.timeout_seconds = timeout_seconds or settings.search_timeout_seconds

    async def search(
        self,
        filters: Mapping[str, str] | Iterable[tuple[str, str]],
        page_size: int | str | None = None,
        offset: int | str | None = None,
    ) -> SearchResult:
        """Run a filtered, paginated search.

        Args:
            filters: Filter values by parameter name; pairs may repeat a name.
            page_size: 1..max_page_size, default_page_size when absent.
            offset: Zero-based index of the first record, 0 when absent.

        Returns:
            SearchResult with the page and the total match count.

        Raises:
            InvalidParameterError: Unknown parameter, bad value or out-of-range paging.
            SearchTimeoutError: The search exceeded its time budget.
        """
        page_size = _parse_int(COUNT_PARAM, page_size, settings.default_page_size, 1, settings.max_page_size)
        offset = _parse_int(OFFSET_PARAM, offset, 0, 0, None)

        pairs = list(filters.items()) if isinstance(filters, Mapping) else list(filters)
        applied: list[tuple[str, str]] = []
        conditions = []
        for name, value in pairs:
            if value is None or value == "":
                continue
            conditions.append(self._build_condition(name, value))
            applied.append((name, value))

        logger.info(
            "Searching %s with %s (count=%d, offset=%d)",
            self.resource_type,
            applied,
            page_size,
            offset,
        )

        try:
            async with asyncio.timeout(self.timeout_seconds):
                total, resources = await self._execute(conditions, page_size, offset)
        except TimeoutError as e:
            logger.warning("Search on %s timed out after %ss", self.resource_type, self.timeout_seconds)
            raise SearchTimeoutError(
                f"Search on {self.resource_type} did not complete within {self.timeout_seconds}s"
            ) from e

        logger.info("Found %d %s resources matching search criteria", total, self.resource_type)
        return SearchResult(
            resources=resources,
            total=total,
            filters=applied,
            page_size=page_size,
            offset=offset,
        )

    async def _execute(self, conditions: list, page_size: int, offset: int) -> tuple[int, list[FhirResource]]:
        model = self.config.model_class
        where = [
            FhirResource.resource_type == self.resource_type,
            FhirResource.is_deleted.is_(False),
            *conditions,
        ]

        count_query = (
            select(func.count(FhirResource.id))
            .join(model, model.fhir_resource_id == FhirResource.id)
            .where(*where)
        )
        total_result = await self.db.execute(count_query)
        total = total_result.scalar() or 0

        page_query = (
            select(FhirResource)
            .join(model, model.fhir_resource_id == FhirResource.id)
            .where(*where)
            .order_by(FhirResource.last_updated.asc(), FhirResource.fhir_id.asc())
            .offset(offset)
            .limit(page_size)
        )
        result = await self.db.execute(page_query)
        return total, list(result.scalars().all())

    def _build_condition(self, name: str, value: str):
        param = self.params.get(name)
        if param is None:
            supported = ", ".join(sorted(self.params))
            raise InvalidParameterError(
                f"Unknown search parameter '{name}' for {self.resource_type}. Supported: {supported}",
                field=name,
            )

        model = self.config.model_class
        columns = [getattr(model, column) for column in param.columns]

        if param.kind is ParamKind.STRING:
            needle = value.lower()
            return or_(*(func.lower(column).contains(needle, autoescape=True) for column in columns))

        if param.kind is ParamKind.DATE:
            day = parse_search_date(name, value)
            if param.date_only:
                return or_(*(column == day for column in columns))
            start = datetime.combine(day, time.min, tzinfo=timezone.utc)
            if day == date.max:
                return or_(*(column >= start for column in columns))
            end = start + timedelta(days=1)
            return or_(*(and_(column >= start, column < end) for column in columns))

        if param.kind is ParamKind.REFERENCE:
            prefix, bare_id = split_reference(value)
            if prefix is not None and prefix != param.target_type:
                raise InvalidParameterError(
                    f"Parameter {name} must reference a {param.target_type}, got '{value}'",
                    field=name,
                )
            return or_(*(column == bare_id for column in columns))

        token = param.normalize(value) if param.normalize else value
        if param.allowed is not None and token not in param.allowed:
            raise InvalidParameterError(
                f"Invalid {name} value: '{value}'. Valid values: {', '.join(sorted(param.allowed))}",
                field=name,
            )
        return or_(*(column == token for column in columns))
