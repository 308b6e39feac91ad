"""FHIR REST routes: create, read, update, delete and search per resource type.

One router per supported type is built from the same factory, so every
type gets identical HTTP semantics:

    POST   /{type}        -> 201 + Location + ETag
    GET    /{type}/{id}   -> 200 + ETag + Last-Modified
    PUT    /{type}/{id}   -> 200 (If-Match honoured, 412 on mismatch)
    DELETE /{type}/{id}   -> 204
    GET    /{type}?...    -> 200 searchset Bundle
"""

import logging
import re
from email.utils import format_datetime
from typing import Any

from fastapi import APIRouter, Depends, Header, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from labstore.auth import verify_api_key
from labstore.codec import codec
from labstore.config import settings
from labstore.database import get_db
from labstore.exceptions import ParseError, PreconditionFailedError, VersionConflictError
from labstore.models.fhir import FhirResource
from labstore.projections import SUPPORTED_RESOURCE_TYPES
from labstore.routes.errors import FHIR_MEDIA_TYPE, FhirJSONResponse
from labstore.services.bundle import build_searchset
from labstore.services.resources import ResourceService
from labstore.services.search import split_paging_params

logger = logging.getLogger(__name__)

_ACCEPTED_CONTENT_TYPES = {"application/json", FHIR_MEDIA_TYPE}
_ETAG_PATTERN = re.compile(r'^(?:W/)?"?(\d+)"?$')


def fhir_base_url(request: Request) -> str:
    """Absolute FHIR base URL used for Location, fullUrl and Bundle links."""
    if settings.public_base_url:
        return settings.public_base_url.rstrip("/")
    return str(request.base_url).rstrip("/") + settings.fhir_base_path.rstrip("/")


def etag(resource: FhirResource) -> str:
    return f'W/"{resource.version_id}"'


def parse_if_match(value: str) -> int:
    """Version number from an If-Match header (``W/"3"``, ``"3"`` or ``3``).

    Raises:
        PreconditionFailedError: If the header does not name a version.
    """
    match = _ETAG_PATTERN.match(value.strip())
    if match is None:
        raise PreconditionFailedError(f"Invalid If-Match header: '{value}'")
    return int(match.group(1))


async def read_resource_body(request: Request) -> dict[str, Any]:
    """Parse the request body as a FHIR JSON resource.

    Raises:
        ParseError: Unsupported Content-Type, empty body or invalid JSON.
    """
    content_type = request.headers.get("content-type", "")
    media_type = content_type.split(";", 1)[0].strip().lower()
    if media_type and media_type not in _ACCEPTED_CONTENT_TYPES:
        raise ParseError(
            f"Unsupported Content-Type '{media_type}'. Expected application/fhir+json or application/json"
        )
    return codec.parse(await request.body())


def resource_response(
    service: ResourceService,
    resource: FhirResource,
    status_code: int = status.HTTP_200_OK,
    headers: dict[str, str] | None = None,
) -> Response:
    """Serialize a stored record with version headers."""
    response_headers = {
        "ETag": etag(resource),
        "Last-Modified": format_datetime(resource.last_updated, usegmt=True),
    }
    response_headers.update(headers or {})
    return Response(
        content=codec.serialize(service.render(resource)),
        status_code=status_code,
        media_type=FHIR_MEDIA_TYPE,
        headers=response_headers,
    )


def build_resource_router(resource_type: str) -> APIRouter:
    """Build the CRUD and search router for one resource type."""
    router = APIRouter(prefix=f"/{resource_type}", tags=[resource_type])

    @router.get("", response_class=FhirJSONResponse)
    async def search_resources(
        request: Request,
        db: AsyncSession = Depends(get_db),
        _api_key: str = Depends(verify_api_key),
    ) -> FhirJSONResponse:
        """Search resources; query parameters are AND-ed filters plus _count/_offset."""
        filters, count, offset = split_paging_params(request.query_params.multi_items())
        service = ResourceService(db, resource_type)
        result = await service.search(filters, page_size=count, offset=offset)
        bundle = build_searchset(result, resource_type, fhir_base_url(request), service.render)
        return FhirJSONResponse(content=bundle.model_dump(by_alias=True, exclude_none=True))

    @router.post("", status_code=status.HTTP_201_CREATED)
    async def create_resource(
        request: Request,
        db: AsyncSession = Depends(get_db),
        _api_key: str = Depends(verify_api_key),
    ) -> Response:
        """Create a resource; a supplied id is kept, otherwise one is assigned."""
        fhir_data = await read_resource_body(request)
        service = ResourceService(db, resource_type)
        resource = await service.create(fhir_data)
        await db.commit()
        location = f"{fhir_base_url(request)}/{resource_type}/{resource.fhir_id}/_history/{resource.version_id}"
        return resource_response(
            service,
            resource,
            status_code=status.HTTP_201_CREATED,
            headers={"Location": location},
        )

    @router.get("/{fhir_id}")
    async def read_resource(
        fhir_id: str,
        db: AsyncSession = Depends(get_db),
        _api_key: str = Depends(verify_api_key),
    ) -> Response:
        """Read the current version of a live resource."""
        service = ResourceService(db, resource_type)
        resource = await service.read(fhir_id)
        return resource_response(service, resource)

    @router.put("/{fhir_id}")
    async def update_resource(
        fhir_id: str,
        request: Request,
        if_match: str | None = Header(default=None, alias="If-Match"),
        db: AsyncSession = Depends(get_db),
        _api_key: str = Depends(verify_api_key),
    ) -> Response:
        """Replace a resource; with If-Match the write only succeeds against that version."""
        expected_version = parse_if_match(if_match) if if_match else None
        fhir_data = await read_resource_body(request)
        service = ResourceService(db, resource_type)
        try:
            resource = await service.update(fhir_id, fhir_data, expected_version=expected_version)
        except VersionConflictError as e:
            if expected_version is None:
                raise
            raise PreconditionFailedError(
                e.message,
                expected_version=e.expected_version,
                current_version=e.current_version,
            ) from e
        await db.commit()
        return resource_response(service, resource)

    @router.delete("/{fhir_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_resource(
        fhir_id: str,
        db: AsyncSession = Depends(get_db),
        _api_key: str = Depends(verify_api_key),
    ) -> Response:
        """Soft-delete a resource; its id stays retired."""
        service = ResourceService(db, resource_type)
        await service.delete(fhir_id)
        await db.commit()
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return router


routers = [build_resource_router(resource_type) for resource_type in SUPPORTED_RESOURCE_TYPES]
