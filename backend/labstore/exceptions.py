"""Error taxonomy for resource operations.

Every failure a store, validator or search operation can report is a
``ResourceError`` subclass. Each carries a FHIR OperationOutcome issue code,
an HTTP status and, where one applies, the offending field or parameter so
the caller can tell exactly what was rejected.
"""

from __future__ import annotations


class ResourceError(Exception):
    """Base class for recoverable resource operation failures."""

    issue_code = "processing"
    status_code = 400

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.message = message
        self.field = field


class ParseError(ResourceError):
    """Request body is not a parsable FHIR JSON resource."""

    issue_code = "structure"


class ResourceNotFoundError(ResourceError):
    """Unknown or soft-deleted id."""

    issue_code = "not-found"
    status_code = 404


class ResourceConflictError(ResourceError):
    """Create with an id that has already been used."""

    issue_code = "duplicate"
    status_code = 409


class IdMismatchError(ResourceError):
    """Path id and payload id disagree on update."""

    issue_code = "invalid"


class MissingReferenceError(ResourceError):
    """Reference target does not exist or has been soft-deleted."""

    issue_code = "invalid"


class WrongReferenceTypeError(ResourceError):
    """Reference carries a type prefix other than the expected one."""

    issue_code = "invalid"


class InvalidParameterError(ResourceError):
    """Malformed search filter or out-of-range paging parameter."""

    issue_code = "invalid"


class ValidationFailureError(ResourceError):
    """A resource-type-specific required field is absent or malformed."""

    issue_code = "required"


class VersionConflictError(ResourceError):
    """Compare-and-swap write lost against a concurrent update."""

    issue_code = "conflict"
    status_code = 409

    def __init__(
        self,
        message: str,
        expected_version: int | None = None,
        current_version: int | None = None,
    ):
        super().__init__(message, field="meta.versionId")
        self.expected_version = expected_version
        self.current_version = current_version


class SearchTimeoutError(ResourceError):
    """Search did not complete within the configured time budget."""

    issue_code = "timeout"
    status_code = 503


class PreconditionFailedError(VersionConflictError):
    """If-Match version does not match the stored version."""

    issue_code = "conflict"
    status_code = 412
