"""Column-scoped state mutation for the one-to-one state tables."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, FrozenSet, List, Mapping, Optional, Sequence, Tuple


@dataclass(frozen=True)
class StateTable:
    """
    A state table keyed one-to-one by its parent item's id.

    Attributes:
        table: State table name
        key_column: Column holding the parent id (the upsert conflict key)
        parent_table: Item table the key refers to
        columns: Columns a caller may touch
    """

    table: str
    key_column: str
    parent_table: str
    columns: FrozenSet[str]


VIDEO_STATE = StateTable(
    table="video_states",
    key_column="video_id",
    parent_table="videos",
    columns=frozenset({"state"}),
)

MOVIE_STATE = StateTable(
    table="movie_states",
    key_column="movie_id",
    parent_table="movies",
    columns=frozenset({"is_archived", "is_starred", "is_watched", "watched_at"}),
)

TV_SHOW_STATE = StateTable(
    table="tv_show_states",
    key_column="tv_show_id",
    parent_table="tv_shows",
    columns=frozenset({"is_archived", "is_started"}),
)

EPISODE_WATCH_COLUMNS = frozenset({"is_watched", "watched_at"})


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _touched_values(
    allowed: FrozenSet[str],
    values: Mapping[str, Any],
    touched: Sequence[str],
    target: str,
) -> List[Any]:
    if not touched:
        raise ValueError(f"No columns to update on {target}")
    result = []
    for column in touched:
        if column not in allowed:
            raise ValueError(f"Column {column!r} is not a state column of {target}")
        if column not in values:
            raise ValueError(f"Missing value for touched column {column!r}")
        result.append(values[column])
    return result


def build_state_upsert(
    state: StateTable,
    item_id: int,
    values: Mapping[str, Any],
    touched: Sequence[str],
    now: Optional[str] = None,
) -> Tuple[str, List[Any]]:
    """
    Build an upsert that writes only the touched state columns.

    A new row takes the touched values and column defaults for the rest.
    An existing row has only the touched columns and ``updated_at``
    overwritten, so sibling flags survive. Nothing is written when the
    parent item does not exist, which surfaces as zero rows affected.

    Args:
        state: Target state table
        item_id: Parent item id (conflict key)
        values: Column values; must contain every touched column
        touched: Columns to write, in order
        now: Timestamp for ``updated_at`` (defaults to current UTC time)

    Returns:
        Tuple of (sql, params)

    Raises:
        ValueError: If a touched column is undeclared or has no value

    Example:
        >>> sql, params = build_state_upsert(MOVIE_STATE, 7, {"is_starred": 1}, ["is_starred"])
    """
    touched_values = _touched_values(state.columns, values, touched, state.table)
    columns = [state.key_column, *touched, "updated_at"]
    placeholders = ", ".join("?" * len(columns))
    assignments = ", ".join(f"{column} = excluded.{column}" for column in [*touched, "updated_at"])

    sql = (
        f"INSERT INTO {state.table} ({', '.join(columns)}) "
        f"SELECT {placeholders} "
        f"WHERE EXISTS (SELECT 1 FROM {state.parent_table} WHERE id = ?) "
        f"ON CONFLICT({state.key_column}) DO UPDATE SET {assignments}"
    )
    params = [item_id, *touched_values, now or utc_now(), item_id]
    return sql, params


def build_scoped_update(
    table: str,
    allowed: FrozenSet[str],
    values: Mapping[str, Any],
    touched: Sequence[str],
    where: str,
    where_params: Sequence[Any] = (),
    now: Optional[str] = None,
) -> Tuple[str, List[Any]]:
    """
    Build an UPDATE that sets only the touched columns plus ``updated_at``.

    Used for flags stored on the item row itself (episode watch flags),
    where the row always exists and no insert branch is needed.
    """
    touched_values = _touched_values(allowed, values, touched, table)
    assignments = ", ".join(f"{column} = ?" for column in [*touched, "updated_at"])
    sql = f"UPDATE {table} SET {assignments} WHERE {where}"
    return sql, [*touched_values, now or utc_now(), *where_params]
