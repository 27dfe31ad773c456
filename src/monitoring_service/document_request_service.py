"""
Read side of document requests: criteria search, status summary, and the
per-request detail views (metadata, content blobs, batches).

Document requests themselves are written by the upstream document pipeline;
this service only queries them.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from .database import Database, Session
from .exceptions import InvalidSearchRequestError, ResourceNotFoundError
from .models import (
    Batch,
    DocumentContent,
    DocumentRequest,
    DocumentRequestSearchRequest,
    DocumentRequestSearchResponse,
    DocumentRequestSummary,
    MetadataValue,
    StatusCount,
)
from .query import DateRange, Equals, Query, SortOrder
from .search import BATCHES_TABLE, DOCUMENT_REQUESTS_TABLE, METADATA_TABLE, CriteriaQueryBuilder
from .temporal_store import REFERENCE_DATA
from .utils import to_utc

logger = logging.getLogger(__name__)

BLOBS_TABLE = "document_request_blobs"
SEARCH_PATH = "/api/v1/document-requests/search"


class DocumentRequestService:
    def __init__(
        self,
        database: Database,
        builder: Optional[CriteriaQueryBuilder] = None,
        search_path: str = SEARCH_PATH,
    ) -> None:
        self.database = database
        self.builder = builder or CriteriaQueryBuilder()
        self.search_path = search_path

    def search(
        self,
        criteria: DocumentRequestSearchRequest,
        page: Optional[int],
        size: Optional[int],
    ) -> DocumentRequestSearchResponse:
        """
        Paginated criteria search.

        Args:
            criteria: Filters and sorts, ANDed together
            page: 1-based page number
            size: Page size

        Raises:
            InvalidSearchRequestError: Before any query runs, if paging,
                id-list sizes, sorts or the date range are invalid
        """
        logger.info("Searching document requests - page: %s, size: %s", page, size)
        self.builder.validate(criteria, page, size)

        page_request = self.builder.page_request(page, size)
        query = Query(
            table=DOCUMENT_REQUESTS_TABLE,
            clauses=self.builder.build(criteria),
            order_by=self.builder.build_sort(criteria.sorts),
            limit=page_request.size,
            offset=page_request.offset,
            distinct=True,
        )

        with self.database.session() as session:
            total_elements = session.count(query)
            rows = session.select(query)

        total_pages = self.builder.total_pages(total_elements, size)
        logger.info("Found %d document requests (page %d/%d)", total_elements, page, total_pages)

        return DocumentRequestSearchResponse(
            content=[DocumentRequest.model_validate(row) for row in rows],
            page=page,
            size=size,
            total_elements=total_elements,
            total_pages=total_pages,
            first=page == 1,
            last=page >= total_pages,
            sorts=criteria.sorts,
            links=self.builder.build_links(self.search_path, page, size, total_pages),
        )

    def get_summary(
        self, from_date: Optional[datetime] = None, to_date: Optional[datetime] = None
    ) -> DocumentRequestSummary:
        """Count requests per status within an optional inclusive date range."""
        logger.info("Fetching document request summary from %s to %s", from_date, to_date)
        if from_date is not None and to_date is not None and to_utc(from_date) > to_utc(to_date):
            raise InvalidSearchRequestError("fromDate must not be after toDate")

        query = Query(table=DOCUMENT_REQUESTS_TABLE, clauses=[DateRange("created_at", from_date, to_date)])
        with self.database.session() as session:
            counts = session.group_count(query, "status_id")
            status_counts = []
            for status_id, count in counts:
                status = session.get_by_id(REFERENCE_DATA.table, status_id) if status_id is not None else None
                status_counts.append(
                    StatusCount(
                        status_id=status_id,
                        status_name=status["ref_data_value"] if status else None,
                        status_description=status["description"] if status else None,
                        count=count,
                    )
                )

        status_counts.sort(key=lambda item: (item.status_name is None, item.status_name or ""))
        total_count = sum(count for _, count in counts)
        logger.info("Summary calculated: %d total requests, %d unique statuses", total_count, len(status_counts))

        return DocumentRequestSummary(
            from_date=from_date,
            to_date=to_date,
            total_count=total_count,
            status_counts=status_counts,
        )

    def get_metadata(self, request_id: int) -> List[MetadataValue]:
        logger.info("Fetching metadata for document request ID: %s", request_id)
        query = Query(
            table=METADATA_TABLE,
            clauses=[Equals("request_id", request_id)],
            order_by=[SortOrder("id")],
        )
        with self.database.session() as session:
            self._require_request(session, request_id)
            rows = session.select(query)

        logger.info("Found %d metadata values for request ID: %s", len(rows), request_id)
        return [
            MetadataValue(
                id=row["id"],
                request_id=row["request_id"],
                key_id=row["key_id"],
                value=row["metadata_value"],
                created_at=row["created_at"],
            )
            for row in rows
        ]

    def get_json_content(self, request_id: int) -> DocumentContent:
        return self._get_content(request_id, "JSON", "json_content")

    def get_xml_content(self, request_id: int) -> DocumentContent:
        return self._get_content(request_id, "XML", "xml_content")

    def get_batches(self, request_id: int) -> List[Batch]:
        """Batches of a request, newest first."""
        logger.info("Fetching batches for document request ID: %s", request_id)
        query = Query(
            table=BATCHES_TABLE,
            clauses=[Equals("request_id", request_id)],
            order_by=[SortOrder("created_at", descending=True), SortOrder("id", descending=True)],
        )
        with self.database.session() as session:
            self._require_request(session, request_id)
            rows = session.select(query)

        logger.info("Found %d batches for request ID: %s", len(rows), request_id)
        return [Batch.model_validate(row) for row in rows]

    def _get_content(self, request_id: int, content_type: str, column: str) -> DocumentContent:
        logger.info("Fetching %s content for document request ID: %s", content_type, request_id)
        with self.database.session() as session:
            self._require_request(session, request_id)
            blob = session.get_by_id(BLOBS_TABLE, request_id, key="request_id")

        if blob is None:
            raise ResourceNotFoundError(f"No content available for document request ID: {request_id}", request_id)
        if blob[column] is None:
            raise ResourceNotFoundError(
                f"{content_type} content not available for document request ID: {request_id}", request_id
            )

        logger.info("Successfully retrieved %s content for request ID: %s", content_type, request_id)
        return DocumentContent(request_id=request_id, content_type=content_type, content=blob[column])

    @staticmethod
    def _require_request(session: Session, request_id: int) -> None:
        if not session.exists(DOCUMENT_REQUESTS_TABLE, request_id):
            raise ResourceNotFoundError(f"Document request not found with ID: {request_id}", request_id)
