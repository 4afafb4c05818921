"""Composable SQL building blocks shared by every entity query.

A list query is described by a :class:`SelectQuery`: a base table, its
joins (including named derived tables), a list of :class:`Predicate`
nodes and a :class:`SortConfig`. The same object renders both the
row-fetch statement and the count statement, so the two always share one
FROM/WHERE section and one parameter list.

Column names and sort expressions are never taken from caller input:
callers pick keys out of fixed mappings, and only values travel as
``?`` parameters.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import structlog

logger = structlog.get_logger(__name__)


class PredicateKind(str, Enum):
    """Kinds of filter node understood by :func:`render_predicates`."""

    EQUALS = "equals"
    IN = "in"
    LIKE = "like"
    RANGE = "range"
    DERIVED = "derived"


@dataclass(frozen=True)
class Predicate:
    """
    One filter node.

    A node whose value is absent renders to nothing rather than to a
    tautology: ``EQUALS`` with ``None``, ``IN`` with no candidates,
    ``LIKE`` with a blank term, ``RANGE`` with neither bound.
    """

    kind: PredicateKind
    columns: Tuple[str, ...] = ()
    values: Tuple[Any, ...] = ()
    lower: Optional[str] = None
    upper: Optional[str] = None
    sql: str = ""


def equals(column: str, value: Any) -> Predicate:
    """``column = ?``; omitted when ``value`` is None."""
    return Predicate(PredicateKind.EQUALS, columns=(column,), values=(value,))


def one_of(column: str, values: Optional[Sequence[Any]]) -> Predicate:
    """``column IN (?, ...)``; omitted when there are no candidates."""
    return Predicate(PredicateKind.IN, columns=(column,), values=tuple(values or ()))


def search(columns: Sequence[str], term: Optional[str]) -> Predicate:
    """Case-insensitive substring match on any of ``columns``."""
    return Predicate(PredicateKind.LIKE, columns=tuple(columns), values=(term,))


def date_range(
    fields: Mapping[str, str],
    field_name: Optional[str],
    start: Optional[str] = None,
    end: Optional[str] = None,
) -> Predicate:
    """
    Inclusive date-truncated bounds on the column selected by ``field_name``.

    Args:
        fields: Allow-list mapping selector names to column expressions
        field_name: Selector picked by the caller
        start: Inclusive lower bound (``YYYY-MM-DD`` or ISO timestamp)
        end: Inclusive upper bound

    Raises:
        ValueError: If bounds are given for a selector outside ``fields``
    """
    if start is None and end is None:
        return Predicate(PredicateKind.RANGE)
    if field_name not in fields:
        raise ValueError(f"Unknown date field: {field_name!r}")
    return Predicate(
        PredicateKind.RANGE,
        columns=(fields[field_name],),
        lower=start,
        upper=end,
    )


def derived(sql: str, *params: Any) -> Predicate:
    """Boolean expression over a joined aggregate or a LEFT JOIN's nullability."""
    return Predicate(PredicateKind.DERIVED, values=params, sql=sql)


def _render(predicate: Predicate) -> List[Tuple[str, List[Any]]]:
    kind = predicate.kind

    if kind is PredicateKind.EQUALS:
        value = predicate.values[0]
        if value is None:
            return []
        return [(f"{predicate.columns[0]} = ?", [value])]

    if kind is PredicateKind.IN:
        if not predicate.values:
            return []
        placeholders = ", ".join("?" * len(predicate.values))
        return [(f"{predicate.columns[0]} IN ({placeholders})", list(predicate.values))]

    if kind is PredicateKind.LIKE:
        term = predicate.values[0]
        if term is None or not term.strip():
            return []
        pattern = f"%{term.strip().lower()}%"
        clause = " OR ".join(f"LOWER({column}) LIKE ?" for column in predicate.columns)
        return [(f"({clause})", [pattern] * len(predicate.columns))]

    if kind is PredicateKind.RANGE:
        fragments = []
        if predicate.lower is not None:
            fragments.append((f"DATE({predicate.columns[0]}) >= DATE(?)", [predicate.lower]))
        if predicate.upper is not None:
            fragments.append((f"DATE({predicate.columns[0]}) <= DATE(?)", [predicate.upper]))
        return fragments

    if kind is PredicateKind.DERIVED:
        return [(f"({predicate.sql})", list(predicate.values))]

    raise ValueError(f"Unsupported predicate kind: {kind}")


def render_predicates(predicates: Sequence[Predicate]) -> Tuple[List[str], List[Any]]:
    """
    Render predicate nodes to SQL conditions and positional parameters.

    Conditions are emitted in the order the nodes were given, and
    ``params`` lines up with the ``?`` placeholders across all of them.

    Example:
        >>> render_predicates([equals("vs.state", "inbox"), search(["v.title"], "cat")])
        (['vs.state = ?', '(LOWER(v.title) LIKE ?)'], ['inbox', '%cat%'])
    """
    conditions: List[str] = []
    params: List[Any] = []
    for predicate in predicates:
        for sql, values in _render(predicate):
            conditions.append(sql)
            params.extend(values)
    return conditions, params


# ==================== Ordering ====================


@dataclass(frozen=True)
class SortKey:
    """
    Sort target for one allowed key.

    ``kind`` selects how the expression is compared: ``"datetime"`` parses
    the stored text as a timestamp, ``"text"`` compares case-insensitively
    and ``"value"`` uses the stored value as is.
    """

    expression: str
    kind: str = "value"

    @property
    def comparable(self) -> str:
        if self.kind == "datetime":
            return f"datetime({self.expression})"
        if self.kind == "text":
            return f"{self.expression} COLLATE NOCASE"
        return self.expression

    @property
    def null_test(self) -> str:
        if self.kind == "datetime":
            return f"datetime({self.expression})"
        return self.expression


@dataclass(frozen=True)
class SortConfig:
    """Per-entity ordering contract: allowed keys and the fallback."""

    keys: Mapping[str, SortKey]
    default_key: str
    default_order: str = "asc"
    tie_breaker: Optional[str] = None

    def __post_init__(self) -> None:
        if self.default_key not in self.keys:
            raise ValueError(f"Default sort key {self.default_key!r} is not an allowed key")

    @property
    def allowed_keys(self) -> frozenset:
        return frozenset(self.keys)


def resolve_order(
    config: SortConfig,
    sort_by: Optional[str] = None,
    sort_order: Optional[str] = None,
) -> str:
    """
    Build the ``ORDER BY`` clause for a sort request.

    Unknown or absent keys fall back to the entity default key; a missing
    direction falls back to the entity default direction. NULLs sort after
    every non-NULL value in both directions.
    """
    if sort_by is not None and sort_by not in config.keys:
        logger.debug("sort_key_fallback", requested=sort_by, default=config.default_key)
    key = config.keys.get(sort_by or config.default_key, config.keys[config.default_key])
    order = sort_order or config.default_order

    direction = "DESC" if order.lower() == "desc" else "ASC"
    parts = [
        f"CASE WHEN {key.null_test} IS NULL THEN 1 ELSE 0 END",
        f"{key.comparable} {direction}",
    ]
    if config.tie_breaker:
        parts.append(config.tie_breaker)
    return "ORDER BY " + ", ".join(parts)


# ==================== Pagination ====================


@dataclass(frozen=True)
class Pagination:
    """``LIMIT``/``OFFSET`` window; ``limit=None`` means unbounded."""

    limit: Optional[int] = None
    offset: int = 0

    @classmethod
    def from_page(cls, page: Optional[int], limit: Optional[int]) -> "Pagination":
        """Window for a 1-indexed ``page`` of ``limit`` rows."""
        if limit is None:
            return cls()
        return cls(limit=limit, offset=((page or 1) - 1) * limit)

    def render(self) -> Tuple[str, List[Any]]:
        if self.limit is None:
            return "", []
        return "LIMIT ? OFFSET ?", [self.limit, self.offset]


def build_pagination(
    page: Optional[int] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> Pagination:
    """
    Normalize ``(page, limit)`` or ``(limit, offset)`` into a window.

    Inputs are expected to be validated positive integers already.
    """
    if page is not None:
        return Pagination.from_page(page, limit)
    if limit is None:
        return Pagination()
    return Pagination(limit=limit, offset=offset or 0)


# ==================== Statement assembly ====================


@dataclass(frozen=True)
class Join:
    sql: str
    params: Tuple[Any, ...] = ()


@dataclass
class SelectQuery:
    """
    Fluent description of one entity list query.

    Example:
        query = (
            SelectQuery("videos v", ["v.*", "vs.state"], VIDEO_SORT)
            .join("LEFT JOIN video_states vs ON vs.video_id = v.id")
            .where(equals("vs.state", "inbox"))
        )
        sql, params = query.build(sort_by="published_at", pagination=Pagination(20))
        count_sql, count_params = query.build_count()
    """

    table: str
    columns: Sequence[str]
    sort: SortConfig
    joins: List[Join] = field(default_factory=list)
    predicates: List[Predicate] = field(default_factory=list)

    def join(self, sql: str, *params: Any) -> "SelectQuery":
        """Add a join clause; its parameters precede all WHERE parameters."""
        self.joins.append(Join(sql, params))
        return self

    def join_derived(self, alias: str, subquery: str, on: str, *params: Any) -> "SelectQuery":
        """LEFT JOIN a named derived table computed once for the whole query."""
        self.joins.append(Join(f"LEFT JOIN ({subquery}) {alias} ON {on}", params))
        return self

    def where(self, *predicates: Optional[Predicate]) -> "SelectQuery":
        """Append predicates in order; ``None`` entries are skipped."""
        self.predicates.extend(p for p in predicates if p is not None)
        return self

    def from_where(self) -> Tuple[str, List[Any]]:
        """Shared ``FROM ... JOIN ... WHERE ...`` section and its parameters."""
        params: List[Any] = []
        parts = [f"FROM {self.table}"]
        for join in self.joins:
            parts.append(join.sql)
            params.extend(join.params)

        conditions, where_params = render_predicates(self.predicates)
        if conditions:
            parts.append("WHERE " + " AND ".join(conditions))
            params.extend(where_params)
        return "\n".join(parts), params

    def build(
        self,
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = None,
        pagination: Optional[Pagination] = None,
    ) -> Tuple[str, List[Any]]:
        """Render the row-fetch statement."""
        body, params = self.from_where()
        parts = ["SELECT " + ", ".join(self.columns), body, resolve_order(self.sort, sort_by, sort_order)]

        limit_sql, limit_params = (pagination or Pagination()).render()
        if limit_sql:
            parts.append(limit_sql)
            params.extend(limit_params)

        return "\n".join(parts), params

    def build_count(self) -> Tuple[str, List[Any]]:
        """Render the count statement over the same FROM/WHERE section."""
        body, params = self.from_where()
        return f"SELECT COUNT(*)\n{body}", params


@dataclass
class ListResult:
    """One page of rows plus the total number of matching rows."""

    rows: List[Dict[str, Any]]
    total: int

    @classmethod
    def empty(cls) -> "ListResult":
        return cls(rows=[], total=0)

    def __len__(self) -> int:
        return len(self.rows)
