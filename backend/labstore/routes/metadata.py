"""CapabilityStatement describing what the server supports."""

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter

from labstore.config import settings
from labstore.projections import SUPPORTED_RESOURCE_TYPES
from labstore.routes.errors import FhirJSONResponse
from labstore.services.search import COUNT_PARAM, OFFSET_PARAM, get_search_params

router = APIRouter(tags=["metadata"])

SERVER_NAME = "labstore"
SERVER_VERSION = "0.1.0"
FHIR_VERSION = "4.0.1"

_INTERACTIONS = ("read", "create", "update", "delete", "search-type")


def _resource_capability(resource_type: str) -> dict[str, Any]:
    search_params = [
        {
            "name": param.name,
            "type": param.kind.value,
            "documentation": param.description,
        }
        for param in get_search_params(resource_type).values()
    ]
    search_params.append(
        {
            "name": COUNT_PARAM,
            "type": "number",
            "documentation": f"Page size (1-{settings.max_page_size}, default {settings.default_page_size})",
        }
    )
    search_params.append(
        {"name": OFFSET_PARAM, "type": "number", "documentation": "Zero-based index of the first result"}
    )
    return {
        "type": resource_type,
        "interaction": [{"code": code} for code in _INTERACTIONS],
        "versioning": "versioned-update",
        "readHistory": False,
        "updateCreate": False,
        "conditionalDelete": "not-supported",
        "searchParam": search_params,
    }


def build_capability_statement() -> dict[str, Any]:
    """Build the CapabilityStatement from the registered types and search parameters."""
    return {
        "resourceType": "CapabilityStatement",
        "status": "active",
        "date": datetime.now(timezone.utc).date().isoformat(),
        "kind": "instance",
        "software": {"name": SERVER_NAME, "version": SERVER_VERSION},
        "fhirVersion": FHIR_VERSION,
        "format": ["application/fhir+json", "json"],
        "rest": [
            {
                "mode": "server",
                "resource": [_resource_capability(rt) for rt in SUPPORTED_RESOURCE_TYPES],
            }
        ],
    }


@router.get("/metadata", response_class=FhirJSONResponse)
async def capability_statement() -> FhirJSONResponse:
    """Server capabilities. Unauthenticated, as FHIR clients expect."""
    return FhirJSONResponse(content=build_capability_statement())
