"""Searchset Bundle assembly.

Wraps a page of search results in a FHIR Bundle with self / next / previous
links. Every link repeats all applied filters so following it can never
widen the result set.
"""

from collections.abc import Sequence
from typing import Any, Callable
from urllib.parse import urlencode

from labstore.models.fhir import FhirResource
from labstore.schemas.fhir import Bundle, BundleEntry, BundleLink
from labstore.services.search import COUNT_PARAM, OFFSET_PARAM, SearchResult


def page_url(
    base_url: str,
    resource_type: str,
    filters: Sequence[tuple[str, str]],
    page_size: int,
    offset: int,
) -> str:
    """Build the search URL for one page.

    Args:
        base_url: FHIR base URL (no trailing slash).
        resource_type: FHIR resource type searched.
        filters: Applied filters in request order.
        page_size: Page size.
        offset: Offset of the page.

    Returns:
        Absolute URL with every filter and both paging parameters, URL-escaped.
    """
    query = urlencode([*filters, (COUNT_PARAM, page_size), (OFFSET_PARAM, offset)])
    return f"{base_url}/{resource_type}?{query}"


def build_links(
    base_url: str,
    resource_type: str,
    filters: Sequence[tuple[str, str]],
    page_size: int,
    offset: int,
    total: int,
) -> list[BundleLink]:
    """Build self, next and previous links for a page.

    next is present iff offset + page_size < total; previous iff offset > 0.
    """
    links = [BundleLink(relation="self", url=page_url(base_url, resource_type, filters, page_size, offset))]
    if offset + page_size < total:
        links.append(
            BundleLink(
                relation="next",
                url=page_url(base_url, resource_type, filters, page_size, offset + page_size),
            )
        )
    if offset > 0:
        links.append(
            BundleLink(
                relation="previous",
                url=page_url(base_url, resource_type, filters, page_size, max(0, offset - page_size)),
            )
        )
    return links


def build_searchset(
    result: SearchResult,
    resource_type: str,
    base_url: str,
    render: Callable[[FhirResource], dict[str, Any]],
) -> Bundle:
    """Wrap a search page in a searchset Bundle.

    Args:
        result: Page and total from the search engine.
        resource_type: FHIR resource type searched.
        base_url: FHIR base URL used for fullUrl and links.
        render: Turns a stored record into its FHIR JSON.

    Returns:
        Bundle ready to serialize with ``by_alias=True``.
    """
    base_url = base_url.rstrip("/")
    entries = [
        BundleEntry(
            full_url=f"{base_url}/{resource_type}/{resource.fhir_id}",
            resource=render(resource),
        )
        for resource in result.resources
    ]
    return Bundle(
        total=result.total,
        link=build_links(base_url, resource_type, result.filters, result.page_size, result.offset, result.total),
        entry=entries,
    )
