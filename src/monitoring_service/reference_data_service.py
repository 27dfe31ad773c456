from __future__ import annotations

import logging
from typing import List

from .exceptions import ResourceNotFoundError
from .models import ReferenceData, ReferenceDataIn
from .temporal_store import TemporalRecordStore

logger = logging.getLogger(__name__)


class ReferenceDataService:
    """CRUD over effective-dated reference data."""

    def __init__(self, store: TemporalRecordStore) -> None:
        self.store = store

    def create(self, data: ReferenceDataIn) -> ReferenceData:
        logger.info("Creating reference data with type: %s, value: %s", data.ref_data_type, data.ref_data_value)
        record = self.store.create(data.model_dump())
        logger.info("Successfully created reference data with ID: %s", record["id"])
        return ReferenceData.model_validate(record)

    def update(self, record_id: int, data: ReferenceDataIn) -> ReferenceData:
        """Returns the new active version, which carries a new id."""
        logger.info("Updating reference data with ID: %s", record_id)
        return ReferenceData.model_validate(self.store.update(record_id, data.model_dump()))

    def delete(self, record_id: int) -> None:
        logger.info("Deleting reference data with ID: %s (logical delete)", record_id)
        self.store.delete(record_id)
        logger.info("Successfully performed logical delete for reference data with ID: %s", record_id)

    def get_by_id(self, record_id: int) -> ReferenceData:
        logger.info("Fetching reference data with ID: %s", record_id)
        return ReferenceData.model_validate(self.store.get_by_id(record_id))

    def list_all(self, historic: bool = False) -> List[ReferenceData]:
        logger.info("Fetching all reference data (historic=%s)", historic)
        records = self.store.list(include_historic=historic)
        logger.info("Found %d %sreference data records", len(records), "" if historic else "active ")
        return [ReferenceData.model_validate(record) for record in records]

    def list_by_type(self, ref_data_type: str, historic: bool = False) -> List[ReferenceData]:
        """Unlike document configuration search, an empty result is a NotFound."""
        logger.info("Fetching reference data by type: %s (historic=%s)", ref_data_type, historic)
        records = self.store.list_by_business_key({"ref_data_type": ref_data_type}, include_historic=historic)
        if not records:
            raise ResourceNotFoundError(
                f"{'No' if historic else 'No active'} reference data found for type: {ref_data_type}"
            )
        logger.info("Found %d reference data records for type: %s", len(records), ref_data_type)
        return [ReferenceData.model_validate(record) for record in records]
