"""Ordered many-to-many membership for channel lists and movie playlists."""

from dataclasses import dataclass
from typing import Any, Dict, List, Sequence

import structlog

from .connection import DatabaseConnection
from .state import utc_now

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class MembershipTable:
    table: str
    list_column: str
    member_column: str


CHANNEL_LIST_ITEMS = MembershipTable(
    table="channel_list_items",
    list_column="list_id",
    member_column="youtube_channel_id",
)

MOVIE_PLAYLIST_ITEMS = MembershipTable(
    table="movie_playlist_items",
    list_column="playlist_id",
    member_column="movie_id",
)


class MembershipManager:
    """
    Position-assigning membership operations for one junction table.

    Positions within a list are dense and 0-based. Adding an existing
    member is a silent no-op and does not consume a position. Every
    multi-statement operation runs in one transaction.
    """

    def __init__(self, db: DatabaseConnection, spec: MembershipTable):
        self._db = db
        self.spec = spec

    async def next_position(self, list_id: int) -> int:
        cursor = await self._db.connection.execute(
            f"SELECT MAX(position) FROM {self.spec.table} WHERE {self.spec.list_column} = ?",
            (list_id,),
        )
        row = await cursor.fetchone()
        return 0 if row[0] is None else row[0] + 1

    async def _insert(self, list_id: int, member_id: Any, position: int, added_at: str) -> int:
        cursor = await self._db.connection.execute(
            f"""
            INSERT OR IGNORE INTO {self.spec.table}
                ({self.spec.list_column}, {self.spec.member_column}, position, added_at)
            VALUES (?, ?, ?, ?)
            """,
            (list_id, member_id, position, added_at),
        )
        return cursor.rowcount

    async def add(self, list_id: int, member_id: Any) -> int:
        """
        Append a member at the end of the list.

        Returns:
            1 if added, 0 if it was already a member
        """
        async with self._db.transaction(f"add_to_{self.spec.table}"):
            position = await self.next_position(list_id)
            added = await self._insert(list_id, member_id, position, utc_now())

        logger.debug(
            "membership_added" if added else "membership_exists",
            table=self.spec.table,
            list_id=list_id,
            member_id=member_id,
            position=position,
        )
        return added

    async def add_many(self, list_id: int, member_ids: Sequence[Any]) -> int:
        """
        Append several members in order; skipped duplicates take no slot.

        Returns:
            Number of members actually added
        """
        added = 0
        async with self._db.transaction(f"bulk_add_to_{self.spec.table}"):
            position = await self.next_position(list_id)
            now = utc_now()
            for member_id in member_ids:
                if await self._insert(list_id, member_id, position, now):
                    position += 1
                    added += 1

        logger.info(
            "membership_bulk_added",
            table=self.spec.table,
            list_id=list_id,
            requested=len(member_ids),
            added=added,
        )
        return added

    async def remove(self, list_id: int, member_id: Any) -> int:
        cursor = await self._db.connection.execute(
            f"DELETE FROM {self.spec.table} WHERE {self.spec.list_column} = ? AND {self.spec.member_column} = ?",
            (list_id, member_id),
        )
        await self._db.commit_if_idle()
        return cursor.rowcount

    async def remove_many(self, list_id: int, member_ids: Sequence[Any]) -> int:
        if not member_ids:
            return 0
        placeholders = ", ".join("?" * len(member_ids))
        async with self._db.transaction(f"bulk_remove_from_{self.spec.table}") as conn:
            cursor = await conn.execute(
                f"DELETE FROM {self.spec.table} "
                f"WHERE {self.spec.list_column} = ? AND {self.spec.member_column} IN ({placeholders})",
                (list_id, *member_ids),
            )
            removed = cursor.rowcount
        return removed

    async def reorder(self, list_id: int, member_ids: Sequence[Any]) -> None:
        """
        Replace the list's membership with ``member_ids`` at positions 0..n-1.

        Existing members keep their ``added_at``. Any failure rolls the whole
        replacement back and raises TransactionError.
        """
        async with self._db.transaction(f"reorder_{self.spec.table}") as conn:
            cursor = await conn.execute(
                f"SELECT {self.spec.member_column}, added_at FROM {self.spec.table} "
                f"WHERE {self.spec.list_column} = ?",
                (list_id,),
            )
            added_at: Dict[Any, str] = {row[0]: row[1] for row in await cursor.fetchall()}

            await conn.execute(
                f"DELETE FROM {self.spec.table} WHERE {self.spec.list_column} = ?",
                (list_id,),
            )

            now = utc_now()
            for position, member_id in enumerate(member_ids):
                await conn.execute(
                    f"""
                    INSERT INTO {self.spec.table}
                        ({self.spec.list_column}, {self.spec.member_column}, position, added_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (list_id, member_id, position, added_at.get(member_id, now)),
                )

        logger.info("membership_reordered", table=self.spec.table, list_id=list_id, count=len(member_ids))

    async def member_ids(self, list_id: int) -> List[Any]:
        """Member ids in position order."""
        cursor = await self._db.connection.execute(
            f"SELECT {self.spec.member_column} FROM {self.spec.table} "
            f"WHERE {self.spec.list_column} = ? ORDER BY position ASC",
            (list_id,),
        )
        return [row[0] for row in await cursor.fetchall()]
