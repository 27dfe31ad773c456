"""
Filter expression tree and its SQL translation.

Services describe what they want as a list of typed clauses; this module turns
that list into a parameterised SQLite statement. Column and table names only
ever come from code (allow-lists and record-kind definitions), user input is
always bound as a parameter.

A clause renders to ``None`` when it does not restrict anything (for example a
membership test against an empty list), so composing an empty filter is a
no-op rather than a "match nothing".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional, Sequence, Tuple, Union

from .utils import serialize_datetime

Fragment = Optional[Tuple[str, List[Any]]]


def _bind(value: Any) -> Any:
    if isinstance(value, datetime):
        return serialize_datetime(value)
    if isinstance(value, bool):
        return int(value)
    return value


@dataclass(frozen=True)
class Equals:
    column: str
    value: Any

    def to_sql(self, alias: str) -> Fragment:
        if self.value is None:
            return f"{alias}.{self.column} IS NULL", []
        return f"{alias}.{self.column} = ?", [_bind(self.value)]


@dataclass(frozen=True)
class Membership:
    """``column IN (...)``; an empty value list matches everything."""

    column: str
    values: Tuple[Any, ...]

    def to_sql(self, alias: str) -> Fragment:
        if not self.values:
            return None
        placeholders = ", ".join("?" for _ in self.values)
        return f"{alias}.{self.column} IN ({placeholders})", [_bind(v) for v in self.values]


@dataclass(frozen=True)
class DateRange:
    """Inclusive on both ends; a missing bound is open."""

    column: str
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def to_sql(self, alias: str) -> Fragment:
        parts: List[str] = []
        params: List[Any] = []
        if self.start is not None:
            parts.append(f"{alias}.{self.column} >= ?")
            params.append(_bind(self.start))
        if self.end is not None:
            parts.append(f"{alias}.{self.column} <= ?")
            params.append(_bind(self.end))
        if not parts:
            return None
        return " AND ".join(parts), params


@dataclass(frozen=True)
class ActiveAt:
    """Half-open effective window: ``effective_from <= t < effective_to``."""

    moment: datetime
    start_column: str = "effective_from"
    end_column: str = "effective_to"

    def to_sql(self, alias: str) -> Fragment:
        stamp = _bind(self.moment)
        return (
            f"{alias}.{self.start_column} <= ? AND "
            f"({alias}.{self.end_column} IS NULL OR {alias}.{self.end_column} > ?)",
            [stamp, stamp],
        )


@dataclass(frozen=True)
class CorrelatedExists:
    """
    At least one row of a related table points back at the outer row and
    satisfies every condition.

    Each instance is its own subquery, so two instances ANDed together may be
    satisfied by two different related rows.
    """

    table: str
    foreign_key: str
    conditions: Tuple["Clause", ...] = ()
    outer_key: str = "id"

    def to_sql(self, alias: str) -> Fragment:
        inner = f"{self.table}_x"
        where, params = render_where(self.conditions, inner)
        predicate = f"{inner}.{self.foreign_key} = {alias}.{self.outer_key}"
        if where:
            predicate = f"{predicate} AND {where}"
        return f"EXISTS (SELECT 1 FROM {self.table} {inner} WHERE {predicate})", params


@dataclass(frozen=True)
class MatchesRelated:
    """``column`` references a row of ``table`` whose ``related_column`` equals ``value``."""

    column: str
    table: str
    related_column: str
    value: Any

    def to_sql(self, alias: str) -> Fragment:
        return (
            f"{alias}.{self.column} IN (SELECT id FROM {self.table} WHERE {self.related_column} = ?)",
            [_bind(self.value)],
        )


Clause = Union[Equals, Membership, DateRange, ActiveAt, CorrelatedExists, MatchesRelated]


@dataclass(frozen=True)
class SortOrder:
    column: str
    descending: bool = False

    def to_sql(self, alias: str) -> str:
        return f"{alias}.{self.column} {'DESC' if self.descending else 'ASC'}"


@dataclass
class Query:
    """A single-table select with optional filters, ordering and paging."""

    table: str
    clauses: Sequence[Clause] = field(default_factory=list)
    order_by: Sequence[SortOrder] = field(default_factory=list)
    limit: Optional[int] = None
    offset: int = 0
    distinct: bool = False
    alias: str = "t"


def render_where(clauses: Sequence[Clause], alias: str) -> Tuple[str, List[Any]]:
    """AND together every clause that restricts something."""
    parts: List[str] = []
    params: List[Any] = []
    for clause in clauses:
        fragment = clause.to_sql(alias)
        if fragment is None:
            continue
        sql, clause_params = fragment
        parts.append(f"({sql})")
        params.extend(clause_params)
    return " AND ".join(parts), params


def render_select(query: Query) -> Tuple[str, List[Any]]:
    alias = query.alias
    select = "SELECT DISTINCT" if query.distinct else "SELECT"
    sql = f"{select} {alias}.* FROM {query.table} {alias}"
    where, params = render_where(query.clauses, alias)
    if where:
        sql += f" WHERE {where}"
    if query.order_by:
        sql += " ORDER BY " + ", ".join(order.to_sql(alias) for order in query.order_by)
    if query.limit is not None:
        sql += " LIMIT ? OFFSET ?"
        params = [*params, query.limit, query.offset]
    return sql, params


def render_count(query: Query) -> Tuple[str, List[Any]]:
    alias = query.alias
    target = f"DISTINCT {alias}.id" if query.distinct else "*"
    sql = f"SELECT COUNT({target}) FROM {query.table} {alias}"
    where, params = render_where(query.clauses, alias)
    if where:
        sql += f" WHERE {where}"
    return sql, params


def render_group_count(query: Query, column: str) -> Tuple[str, List[Any]]:
    """Row count per distinct value of ``column``."""
    alias = query.alias
    sql = f"SELECT {alias}.{column} AS group_key, COUNT(*) AS total FROM {query.table} {alias}"
    where, params = render_where(query.clauses, alias)
    if where:
        sql += f" WHERE {where}"
    sql += f" GROUP BY {alias}.{column}"
    return sql, params
