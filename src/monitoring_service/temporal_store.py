"""
Effective-dated record storage.

Reference data and document configuration rows are never physically updated
or removed. Each logical record (identified by its business key) is a chain
of versions whose ``[effective_from, effective_to)`` windows do not overlap:

- create inserts a version open until infinity (``effective_to`` NULL)
- update closes the current version one second in the past and appends a
  new version starting now
- delete closes the version without a successor

The one-second backdating keeps the closed version and its successor from
both matching an "active at now" query issued in the same instant.

The store is the only component that writes the effective window columns.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Sequence, Tuple

from .database import Database, Session
from .exceptions import ResourceNotFoundError
from .query import ActiveAt, Clause, Equals, Query, SortOrder
from .utils import utc_now

logger = logging.getLogger(__name__)

CLOSE_OFFSET = timedelta(seconds=1)

Record = Dict[str, Any]


@dataclass(frozen=True)
class RecordKind:
    """Describes one versioned table."""

    table: str
    label: str
    business_key: Tuple[str, ...]
    payload_fields: Tuple[str, ...]

    @property
    def fields(self) -> Tuple[str, ...]:
        return self.business_key + self.payload_fields


REFERENCE_DATA = RecordKind(
    table="reference_data",
    label="Reference data",
    business_key=("ref_data_type", "ref_data_value"),
    payload_fields=("description", "editable"),
)

DOCUMENT_CONFIGURATION = RecordKind(
    table="document_configurations",
    label="Document configuration",
    business_key=("footer_id", "app_doc_spec_id", "code_id", "value"),
    payload_fields=("description",),
)


class TemporalRecordStore:
    """Versioned CRUD over one :class:`RecordKind`."""

    def __init__(
        self,
        database: Database,
        kind: RecordKind,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.database = database
        self.kind = kind
        self._clock = clock

    def create(self, payload: Mapping[str, Any]) -> Record:
        """
        Insert a first version open until infinity.

        No check is made against existing active versions with the same
        business key; callers that need uniqueness must look first.
        """
        now = self._clock()
        data = {name: payload.get(name) for name in self.kind.fields if name in payload}
        with self.database.session() as session:
            record_id = session.insert(self.kind.table, self._new_version(data, now))
            return self._fetch(session, record_id)

    def update(self, record_id: int, payload: Mapping[str, Any]) -> Record:
        """
        Close the active version of ``record_id``'s business key and append
        its successor.

        ``record_id`` may name any version of the chain. A version that is
        already closed keeps its end, so the chain never overlaps and at most
        one version stays open. Returns the new active version (which has a
        different id). The close, the insert and the read-back share one
        transaction.
        """
        now = self._clock()
        with self.database.session() as session:
            existing = self._fetch(session, record_id)

            merged = {name: existing.get(name) for name in self.kind.fields}
            merged.update({name: value for name, value in payload.items() if name in self.kind.fields})

            # record_id may be a stale version; close whatever is active for its key
            old_key = {name: existing[name] for name in self.kind.business_key}
            for version in self._active_for_key(session, old_key, now):
                session.update(
                    self.kind.table,
                    version["id"],
                    {"effective_to": now - CLOSE_OFFSET, "last_updated_at": now},
                )
            session.insert(self.kind.table, self._new_version(merged, now))

            key = {name: merged[name] for name in self.kind.business_key}
            active = self._active_for_key(session, key, now)
            if not active:
                logger.warning(
                    "No active %s version visible after update of ID %s, retrying read",
                    self.kind.label.lower(),
                    record_id,
                )
                active = self._active_for_key(session, key, self._clock())

            if active:
                logger.info(
                    "Successfully updated %s. Old ID: %s, New ID: %s",
                    self.kind.label.lower(),
                    record_id,
                    active[0]["id"],
                )
                return active[0]

            logger.warning("No active version found after update. Returning closed version.")
            return self._fetch(session, record_id)

    def delete(self, record_id: int) -> None:
        """
        Logical delete: close the version one second in the past.

        A version that is already closed keeps its earlier end so that it can
        never overlap a successor.
        """
        now = self._clock()
        with self.database.session() as session:
            existing = self._fetch(session, record_id)
            end = now - CLOSE_OFFSET
            if existing["effective_to"] is not None and existing["effective_to"] < end:
                end = existing["effective_to"]
            session.update(
                self.kind.table,
                record_id,
                {"effective_to": end, "last_updated_at": now},
            )

    def get_by_id(self, record_id: int) -> Record:
        """Return any version, active or not."""
        with self.database.session() as session:
            return self._fetch(session, record_id)

    def list(self, include_historic: bool = False) -> List[Record]:
        return self.list_where([], include_historic)

    def list_by_business_key(
        self, partial_key: Mapping[str, Any], include_historic: bool = False
    ) -> List[Record]:
        """Equality match on the supplied business-key fields; may be empty."""
        unknown = set(partial_key) - set(self.kind.business_key)
        if unknown:
            raise ValueError(f"Not part of the {self.kind.label.lower()} business key: {sorted(unknown)}")
        clauses = [Equals(name, value) for name, value in partial_key.items()]
        return self.list_where(clauses, include_historic)

    def list_where(self, clauses: Sequence[Clause], include_historic: bool = False) -> List[Record]:
        filters = list(clauses)
        if not include_historic:
            filters.append(ActiveAt(self._clock()))
        query = Query(
            table=self.kind.table,
            clauses=filters,
            order_by=[SortOrder("id")],
        )
        with self.database.session() as session:
            return session.select(query)

    def _fetch(self, session: Session, record_id: int) -> Record:
        record = session.get_by_id(self.kind.table, record_id)
        if record is None:
            raise ResourceNotFoundError.for_id(self.kind.label, record_id)
        return record

    def _active_for_key(self, session: Session, key: Mapping[str, Any], moment: datetime) -> List[Record]:
        query = Query(
            table=self.kind.table,
            clauses=[*(Equals(name, value) for name, value in key.items()), ActiveAt(moment)],
            order_by=[SortOrder("effective_from", descending=True), SortOrder("id", descending=True)],
        )
        return session.select(query)

    @staticmethod
    def _new_version(data: Mapping[str, Any], now: datetime) -> Record:
        return {
            **data,
            "effective_from": now,
            "effective_to": None,
            "created_at": now,
            "last_updated_at": now,
        }
