from __future__ import annotations

import logging
from typing import List

from .exceptions import ResourceNotFoundError
from .models import DocumentConfiguration, DocumentConfigurationIn
from .query import MatchesRelated
from .temporal_store import REFERENCE_DATA, TemporalRecordStore

logger = logging.getLogger(__name__)

REFERENCE_COLUMNS = ("footer_id", "app_doc_spec_id", "code_id")


class DocumentConfigurationService:
    """CRUD and lookup over effective-dated document configuration."""

    def __init__(self, store: TemporalRecordStore) -> None:
        self.store = store

    def create(self, data: DocumentConfigurationIn) -> DocumentConfiguration:
        logger.info(
            "Creating document configuration: footerId=%s, appDocSpecId=%s, codeId=%s, value=%s",
            data.footer_id,
            data.app_doc_spec_id,
            data.code_id,
            data.value,
        )
        self._check_references(data)
        record = self.store.create(data.model_dump())
        logger.info("Successfully created document configuration with ID: %s", record["id"])
        return DocumentConfiguration.model_validate(record)

    def update(self, record_id: int, data: DocumentConfigurationIn) -> DocumentConfiguration:
        logger.info("Updating document configuration with ID: %s", record_id)
        self.store.get_by_id(record_id)
        self._check_references(data)
        return DocumentConfiguration.model_validate(self.store.update(record_id, data.model_dump()))

    def delete(self, record_id: int) -> None:
        logger.info("Deleting document configuration with ID: %s (logical delete)", record_id)
        self.store.delete(record_id)
        logger.info("Successfully performed logical delete for document configuration with ID: %s", record_id)

    def get_by_id(self, record_id: int) -> DocumentConfiguration:
        logger.info("Fetching document configuration with ID: %s", record_id)
        return DocumentConfiguration.model_validate(self.store.get_by_id(record_id))

    def list_all(self, historic: bool = False) -> List[DocumentConfiguration]:
        logger.info("Fetching all document configurations (historic=%s)", historic)
        records = self.store.list(include_historic=historic)
        logger.info("Found %d %sdocument configuration records", len(records), "" if historic else "active ")
        return [DocumentConfiguration.model_validate(record) for record in records]

    def search(
        self, footer: str, document_name: str, code: str, historic: bool = False
    ) -> List[DocumentConfiguration]:
        """
        Find configurations by the reference-data values of their footer,
        document name and code.

        An empty result is returned as an empty list, not a NotFound.
        """
        logger.info(
            "Searching document configurations: footer=%s, documentName=%s, code=%s (historic=%s)",
            footer,
            document_name,
            code,
            historic,
        )
        clauses = [
            MatchesRelated("footer_id", REFERENCE_DATA.table, "ref_data_value", footer),
            MatchesRelated("app_doc_spec_id", REFERENCE_DATA.table, "ref_data_value", document_name),
            MatchesRelated("code_id", REFERENCE_DATA.table, "ref_data_value", code),
        ]
        records = self.store.list_where(clauses, include_historic=historic)
        if not records:
            logger.warning(
                "No %sdocument configurations found for: footer=%s, documentName=%s, code=%s",
                "" if historic else "active ",
                footer,
                document_name,
                code,
            )
        else:
            logger.info("Found %d %sdocument configuration(s)", len(records), "" if historic else "active ")
        return [DocumentConfiguration.model_validate(record) for record in records]

    def _check_references(self, data: DocumentConfigurationIn) -> None:
        with self.store.database.session() as session:
            for column in REFERENCE_COLUMNS:
                ref_id = getattr(data, column)
                if not session.exists(REFERENCE_DATA.table, ref_id):
                    raise ResourceNotFoundError.for_id(REFERENCE_DATA.label, ref_id)
