"""Database module for watch-later media tracking."""

from .connection import DatabaseConnection
from .exceptions import (
    DatabaseConnectionError,
    DatabaseError,
    MigrationError,
    QueryError,
    TransactionError,
)
from .membership import CHANNEL_LIST_ITEMS, MOVIE_PLAYLIST_ITEMS, MembershipManager, MembershipTable
from .migrator import Migrator
from .query import (
    ListResult,
    Pagination,
    Predicate,
    PredicateKind,
    SelectQuery,
    SortConfig,
    SortKey,
    build_pagination,
    render_predicates,
    resolve_order,
)
from .repository import MediaRepository
from .state import MOVIE_STATE, TV_SHOW_STATE, VIDEO_STATE, StateTable, build_state_upsert

__all__ = [
    "MediaRepository",
    "DatabaseConnection",
    "Migrator",
    "MembershipManager",
    "MembershipTable",
    "CHANNEL_LIST_ITEMS",
    "MOVIE_PLAYLIST_ITEMS",
    "ListResult",
    "Pagination",
    "Predicate",
    "PredicateKind",
    "SelectQuery",
    "SortConfig",
    "SortKey",
    "build_pagination",
    "render_predicates",
    "resolve_order",
    "StateTable",
    "VIDEO_STATE",
    "MOVIE_STATE",
    "TV_SHOW_STATE",
    "build_state_upsert",
    "DatabaseError",
    "DatabaseConnectionError",
    "MigrationError",
    "QueryError",
    "TransactionError",
]
