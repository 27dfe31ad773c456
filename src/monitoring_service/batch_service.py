from __future__ import annotations

import logging
from typing import List

from .database import Database
from .exceptions import ResourceNotFoundError
from .models import ErrorDetail
from .query import Equals, Query, SortOrder
from .search import BATCHES_TABLE

logger = logging.getLogger(__name__)

ERROR_DETAILS_TABLE = "error_details"


class BatchService:
    def __init__(self, database: Database) -> None:
        self.database = database

    def get_errors(self, batch_id: int) -> List[ErrorDetail]:
        """Error details of a batch; an empty list when the batch has none."""
        logger.info("Fetching error details for batch ID: %s", batch_id)
        query = Query(
            table=ERROR_DETAILS_TABLE,
            clauses=[Equals("batch_id", batch_id)],
            order_by=[SortOrder("id")],
        )
        with self.database.session() as session:
            if not session.exists(BATCHES_TABLE, batch_id):
                raise ResourceNotFoundError(f"Batch not found with ID: {batch_id}", batch_id)
            rows = session.select(query)

        logger.info("Found %d error details for batch ID: %s", len(rows), batch_id)
        return [ErrorDetail.model_validate(row) for row in rows]
