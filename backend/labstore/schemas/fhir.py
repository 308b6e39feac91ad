"""Pydantic schemas for FHIR envelopes produced by the API.

Resources themselves travel as plain dicts (canonical FHIR JSON); only the
Bundle and OperationOutcome wrappers are modelled here.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class BundleLink(BaseModel):
    """Navigation link of a searchset Bundle."""

    relation: Literal["self", "next", "previous"]
    url: str


class BundleEntrySearch(BaseModel):
    """Search metadata of a Bundle entry."""

    mode: Literal["match", "include"] = "match"


class BundleEntry(BaseModel):
    """One matched resource in a searchset Bundle."""

    model_config = ConfigDict(populate_by_name=True)

    full_url: str = Field(alias="fullUrl")
    resource: dict[str, Any]
    search: BundleEntrySearch = Field(default_factory=BundleEntrySearch)


class Bundle(BaseModel):
    """FHIR searchset Bundle."""

    model_config = ConfigDict(populate_by_name=True)

    resource_type: Literal["Bundle"] = Field(default="Bundle", alias="resourceType")
    type: Literal["searchset"] = "searchset"
    total: int = Field(ge=0)
    link: list[BundleLink] = Field(default_factory=list)
    entry: list[BundleEntry] = Field(default_factory=list)


class OperationOutcomeIssue(BaseModel):
    """Single issue of an OperationOutcome."""

    severity: Literal["fatal", "error", "warning", "information"] = "error"
    code: str
    diagnostics: str
    expression: list[str] | None = None


class OperationOutcome(BaseModel):
    """FHIR OperationOutcome returned for every error response."""

    model_config = ConfigDict(populate_by_name=True)

    resource_type: Literal["OperationOutcome"] = Field(default="OperationOutcome", alias="resourceType")
    issue: list[OperationOutcomeIssue]
