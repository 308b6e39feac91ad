"""Error responses as FHIR OperationOutcome documents."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from labstore.exceptions import ResourceError
from labstore.schemas.fhir import OperationOutcome, OperationOutcomeIssue

logger = logging.getLogger(__name__)

FHIR_MEDIA_TYPE = "application/fhir+json"

# OperationOutcome issue codes for errors raised by the framework itself
_HTTP_ISSUE_CODES = {
    401: "login",
    403: "forbidden",
    404: "not-found",
    405: "not-supported",
}


class FhirJSONResponse(JSONResponse):
    """JSON response served as application/fhir+json."""

    media_type = FHIR_MEDIA_TYPE


def operation_outcome(exc: ResourceError) -> OperationOutcome:
    """Build an OperationOutcome carrying the error's code and offending field."""
    return OperationOutcome(
        issue=[
            OperationOutcomeIssue(
                severity="error",
                code=exc.issue_code,
                diagnostics=exc.message,
                expression=[exc.field] if exc.field else None,
            )
        ]
    )


async def resource_error_handler(request: Request, exc: ResourceError) -> FhirJSONResponse:
    """Render a ResourceError with its own HTTP status."""
    logger.info(
        "%s %s -> %d %s: %s",
        request.method,
        request.url.path,
        exc.status_code,
        type(exc).__name__,
        exc.message,
    )
    return FhirJSONResponse(
        status_code=exc.status_code,
        content=operation_outcome(exc).model_dump(by_alias=True, exclude_none=True),
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> FhirJSONResponse:
    """Render framework HTTP errors (authentication, unknown routes) as OperationOutcome."""
    logger.info("%s %s -> %d: %s", request.method, request.url.path, exc.status_code, exc.detail)
    outcome = OperationOutcome(
        issue=[
            OperationOutcomeIssue(
                severity="error",
                code=_HTTP_ISSUE_CODES.get(exc.status_code, "exception"),
                diagnostics=str(exc.detail),
            )
        ]
    )
    return FhirJSONResponse(
        status_code=exc.status_code,
        content=outcome.model_dump(by_alias=True, exclude_none=True),
        headers=exc.headers,
    )


def install_exception_handlers(app: FastAPI) -> None:
    """Register OperationOutcome rendering for every ResourceError and HTTP error."""
    app.add_exception_handler(ResourceError, resource_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
