"""Pydantic schemas."""

from labstore.schemas.fhir import (
    Bundle,
    BundleEntry,
    BundleEntrySearch,
    BundleLink,
    OperationOutcome,
    OperationOutcomeIssue,
)

__all__ = [
    "Bundle",
    "BundleEntry",
    "BundleEntrySearch",
    "BundleLink",
    "OperationOutcome",
    "OperationOutcomeIssue",
]
