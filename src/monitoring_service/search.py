"""
Criteria query builder for document-request search.

Turns a :class:`DocumentRequestSearchRequest` into a list of filter clauses
plus an ordering, validates paging and sorting against :class:`SearchLimits`,
and assembles the paginated response envelope.

Filter semantics:

- membership lists (source systems, document types, document names, statuses,
  request ids) only apply when non-empty
- batch ids match when *any* batch of the request has one of the ids
- each metadata chip needs its own matching metadata row; chips are ANDed and
  may be satisfied by different rows
- ``fromDate``/``toDate`` are inclusive bounds on ``createdAt``
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .exceptions import InvalidSearchRequestError
from .models import DocumentRequestSearchRequest, Links, SortSpec
from .query import Clause, CorrelatedExists, DateRange, Equals, Membership, SortOrder
from .utils import to_utc

DOCUMENT_REQUESTS_TABLE = "document_requests"
BATCHES_TABLE = "batches"
METADATA_TABLE = "request_metadata_values"

# API property name -> column
DEFAULT_SORT_PROPERTIES: Dict[str, str] = {
    "id": "id",
    "createdAt": "created_at",
    "lastUpdatedAt": "last_updated_at",
}

SORT_DIRECTIONS = ("ASC", "DESC")


@dataclass(frozen=True)
class SearchLimits:
    max_id_list_size: int = 100
    max_page_size: int = 1000
    default_page_size: int = 10
    sort_properties: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_SORT_PROPERTIES))
    default_sort: SortOrder = SortOrder("id", descending=True)


@dataclass(frozen=True)
class PageRequest:
    """0-based page index as used by the data-access layer."""

    index: int
    size: int

    @property
    def offset(self) -> int:
        return self.index * self.size


class CriteriaQueryBuilder:
    def __init__(self, limits: Optional[SearchLimits] = None) -> None:
        self.limits = limits or SearchLimits()

    def validate(self, criteria: DocumentRequestSearchRequest, page: Optional[int], size: Optional[int]) -> None:
        """Fail fast on the first violated constraint."""
        limits = self.limits
        if page is None or page < 1:
            raise InvalidSearchRequestError("Page number must be >= 1")
        if size is None or size < 1:
            raise InvalidSearchRequestError("Page size must be >= 1")
        if size > limits.max_page_size:
            raise InvalidSearchRequestError(
                f"Page size must not exceed {limits.max_page_size} (requested: {size})"
            )

        for name, ids in (("requestIds", criteria.request_ids), ("batchIds", criteria.batch_ids)):
            if ids is not None and len(ids) > limits.max_id_list_size:
                raise InvalidSearchRequestError(
                    f"{name} list size must not exceed {limits.max_id_list_size} (provided: {len(ids)})"
                )

        for sort in criteria.sorts or []:
            self._validate_sort(sort)

        if criteria.from_date is not None and criteria.to_date is not None:
            if to_utc(criteria.from_date) > to_utc(criteria.to_date):
                raise InvalidSearchRequestError("fromDate must not be after toDate")

    def _validate_sort(self, sort: SortSpec) -> None:
        allowed = self.limits.sort_properties
        if sort.property is None or not sort.property.strip():
            raise InvalidSearchRequestError("Sort property cannot be null or blank")
        if sort.property not in allowed:
            raise InvalidSearchRequestError(
                f"Invalid sort property: {sort.property}. Valid properties are: {sorted(allowed)}"
            )
        if sort.direction is None or not sort.direction.strip():
            raise InvalidSearchRequestError("Sort direction cannot be null or blank")
        if sort.direction.upper() not in SORT_DIRECTIONS:
            raise InvalidSearchRequestError(f"Invalid sort direction: {sort.direction}. Must be ASC or DESC")

    def build(self, criteria: DocumentRequestSearchRequest) -> List[Clause]:
        clauses: List[Clause] = []

        for column, values in (
            ("source_system_id", criteria.source_systems),
            ("document_type_id", criteria.document_types),
            ("document_name_id", criteria.document_names),
            ("status_id", criteria.document_statuses),
            ("id", criteria.request_ids),
        ):
            if values:
                clauses.append(Membership(column, tuple(values)))

        if criteria.batch_ids:
            clauses.append(
                CorrelatedExists(
                    BATCHES_TABLE,
                    "request_id",
                    (Membership("id", tuple(criteria.batch_ids)),),
                )
            )

        if criteria.from_date is not None or criteria.to_date is not None:
            clauses.append(DateRange("created_at", criteria.from_date, criteria.to_date))

        for chip in criteria.metadata_chips or []:
            clauses.append(
                CorrelatedExists(
                    METADATA_TABLE,
                    "request_id",
                    (Equals("key_id", chip.key_id), Equals("metadata_value", chip.value)),
                )
            )

        return clauses

    def build_sort(self, sorts: Optional[Sequence[SortSpec]]) -> List[SortOrder]:
        """Sorts apply in the order given; none means the default ordering."""
        if not sorts:
            return [self.limits.default_sort]
        return [
            SortOrder(self.limits.sort_properties[sort.property], sort.direction.upper() == "DESC")
            for sort in sorts
        ]

    @staticmethod
    def page_request(page: int, size: int) -> PageRequest:
        return PageRequest(index=page - 1, size=size)

    @staticmethod
    def total_pages(total_elements: int, size: int) -> int:
        return math.ceil(total_elements / size) if total_elements else 0

    @staticmethod
    def build_links(base_url: str, page: int, size: int, total_pages: int) -> Links:
        """Navigation links with 1-based page numbers."""

        def link(target: int) -> str:
            return f"{base_url}?page={target}&size={size}"

        return Links(
            self_link=link(page),
            first=link(1),
            previous=link(page - 1) if page > 1 else None,
            next=link(page + 1) if page < total_pages else None,
            last=link(max(total_pages, 1)),
        )
