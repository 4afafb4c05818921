"""Media repository: every read and write against the watch-later database."""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple

import aiosqlite
import structlog

from ...schemas import (
    ChannelFilters,
    ChannelListVideoFilters,
    EpisodeRangeFilters,
    LatestVideoFilters,
    MovieFilters,
    PageParams,
    PlaylistMovieFilters,
    TVShowFilters,
    VideoFilters,
    VideoStatsFilters,
)
from .assemblers import (
    CHANNEL_LISTS,
    DEFAULT_SHORTS_MAX_DURATION,
    MOVIE_FLAG_COLUMNS,
    MOVIE_PLAYLISTS,
    VIDEO_DATE_FIELDS,
    CollectionTable,
    build_channel_query,
    build_channel_videos_query,
    build_collection_query,
    build_episode_query,
    build_latest_videos_query,
    build_movie_query,
    build_playlist_movies_query,
    build_tv_show_query,
    build_video_query,
    build_video_stats_query,
    tv_show_base,
)
from .connection import DatabaseConnection
from .membership import MembershipManager
from .migrator import Migrator
from .query import ListResult, Pagination, SelectQuery, build_pagination, equals
from .state import (
    EPISODE_WATCH_COLUMNS,
    MOVIE_STATE,
    TV_SHOW_STATE,
    VIDEO_STATE,
    StateTable,
    build_scoped_update,
    build_state_upsert,
    utc_now,
)

logger = structlog.get_logger(__name__)

DEFAULT_PLACEHOLDER_TITLE = "Untitled Video"

VIDEO_COLUMNS: FrozenSet[str] = frozenset(
    {
        "title",
        "description",
        "thumbnail_url",
        "duration",
        "published_at",
        "added_to_playlist_at",
        "added_to_latest_at",
        "fetch_status",
        "channel_title",
        "youtube_channel_id",
        "youtube_url",
    }
)

TV_SHOW_COLUMNS: FrozenSet[str] = frozenset(
    {"title", "overview", "poster_path", "backdrop_path", "first_air_date", "last_air_date", "status", "saved_at"}
)

MOVIE_COLUMNS: FrozenSet[str] = frozenset(
    {"imdb_id", "title", "overview", "poster_path", "backdrop_path", "release_date", "runtime", "saved_at"}
)

COLLECTION_COLUMNS: FrozenSet[str] = frozenset({"name", "description", "color", "display_on_home"})

EPISODE_METADATA_COLUMNS = ("name", "overview", "air_date", "runtime", "still_path")


def _pagination(params: PageParams) -> Pagination:
    return build_pagination(page=params.page, limit=params.limit, offset=params.offset)


class MediaRepository:
    """
    Repository over videos, channels, lists, TV shows, episodes and movies.

    Not-found is reported as ``None`` or ``0`` rows affected, never raised.
    Storage errors propagate unchanged; batches run in one transaction and
    surface as :class:`TransactionError` after rolling back.

    Example:
        repo = await MediaRepository.from_config(config.database, config_dir)
        page = await repo.list_videos(VideoFilters(state="inbox", page=1, limit=20))
        print(page.total, [v["title"] for v in page.rows])
    """

    def __init__(
        self,
        db_path: Path,
        enable_wal: bool = True,
        timeout: int = 30,
        shorts_max_duration: int = DEFAULT_SHORTS_MAX_DURATION,
        placeholder_title: str = DEFAULT_PLACEHOLDER_TITLE,
    ):
        """
        Initialize media repository.

        Args:
            db_path: Path to SQLite database file
            enable_wal: Enable Write-Ahead Logging mode
            timeout: Connection timeout in seconds
            shorts_max_duration: Longest duration (seconds) counted as a short
            placeholder_title: Title given to videos whose metadata is unknown
        """
        self.db_path = db_path
        self.shorts_max_duration = shorts_max_duration
        self.placeholder_title = placeholder_title
        self._db = DatabaseConnection(db_path, enable_wal, timeout)
        self.channel_list_items = MembershipManager(self._db, CHANNEL_LISTS.items)
        self.playlist_items = MembershipManager(self._db, MOVIE_PLAYLISTS.items)

    @classmethod
    async def from_config(
        cls,
        config: Any,
        config_dir: Optional[Path] = None,
        library: Any = None,
    ) -> "MediaRepository":
        """
        Create a connected, migrated repository from DatabaseConfig.

        Args:
            config: DatabaseConfig instance
            config_dir: Directory that a relative ``database_path`` resolves against
            library: Optional LibraryConfig supplying shorts/placeholder settings

        Returns:
            Initialized MediaRepository
        """
        db_path = Path(config.database_path)
        if config_dir and not db_path.is_absolute():
            db_path = config_dir / db_path

        kwargs: Dict[str, Any] = {}
        if library is not None:
            kwargs["shorts_max_duration"] = library.shorts_max_duration
            kwargs["placeholder_title"] = library.placeholder_title

        repo = cls(
            db_path=db_path,
            enable_wal=config.enable_wal_mode,
            timeout=config.connection_timeout,
            **kwargs,
        )
        await repo.connect()

        # Migrate through the open connection to avoid WAL lock contention
        migrator = Migrator(db_path, enable_wal=config.enable_wal_mode)
        await migrator.run_migrations(connection=repo._db.connection)

        logger.info("repository_initialized", db_path=str(db_path))
        return repo

    async def connect(self) -> None:
        """Establish database connection."""
        await self._db.connect()

    async def close(self) -> None:
        """Close database connection."""
        await self._db.close()

    async def __aenter__(self) -> "MediaRepository":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    @asynccontextmanager
    async def transaction(self, operation: str = "transaction") -> AsyncIterator[aiosqlite.Connection]:
        """
        Explicit transaction context manager.

        Example:
            async with repository.transaction("import"):
                await repository.create_video("abc123")
                await repository.set_video_state(video_id, "feed")
        """
        async with self._db.transaction(operation) as conn:
            yield conn

    # ==================== Execution Helpers ====================

    async def _fetch_all(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        cursor = await self._db.connection.execute(sql, params)
        return [dict(row) for row in await cursor.fetchall()]

    async def _fetch_one(self, sql: str, params: Sequence[Any] = ()) -> Optional[Dict[str, Any]]:
        cursor = await self._db.connection.execute(sql, params)
        row = await cursor.fetchone()
        return dict(row) if row else None

    async def _fetch_scalar(self, sql: str, params: Sequence[Any] = ()) -> Any:
        cursor = await self._db.connection.execute(sql, params)
        row = await cursor.fetchone()
        return row[0] if row else None

    async def _write(self, sql: str, params: Sequence[Any] = ()) -> aiosqlite.Cursor:
        cursor = await self._db.connection.execute(sql, params)
        await self._db.commit_if_idle()
        return cursor

    async def _fetch_list(
        self,
        query: SelectQuery,
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = None,
        pagination: Optional[Pagination] = None,
    ) -> ListResult:
        """Run a query's row-fetch and count statements against one snapshot."""
        sql, params = query.build(sort_by, sort_order, pagination)
        count_sql, count_params = query.build_count()
        logger.debug("list_query", sql=sql, params=params)

        async with self._db.snapshot() as conn:
            cursor = await conn.execute(sql, params)
            rows = [dict(row) for row in await cursor.fetchall()]
            cursor = await conn.execute(count_sql, count_params)
            total = (await cursor.fetchone())[0]

        return ListResult(rows=rows, total=total)

    async def _set_state(
        self,
        state: StateTable,
        item_id: int,
        values: Mapping[str, Any],
        touched: Sequence[str],
    ) -> int:
        sql, params = build_state_upsert(state, item_id, values, touched)
        cursor = await self._write(sql, params)
        logger.debug("state_upserted", table=state.table, item_id=item_id, columns=list(touched))
        return cursor.rowcount

    async def _update_columns(
        self,
        table: str,
        allowed: FrozenSet[str],
        item_id: int,
        updates: Mapping[str, Any],
    ) -> int:
        unknown = set(updates) - allowed
        if unknown:
            raise ValueError(f"Cannot update {table} columns: {sorted(unknown)}")
        if not updates:
            return 0

        fields = dict(updates)
        fields["updated_at"] = utc_now()
        set_clause = ", ".join(f"{key} = ?" for key in fields)
        cursor = await self._write(
            f"UPDATE {table} SET {set_clause} WHERE id = ?",
            [*fields.values(), item_id],
        )
        logger.info(f"{table}_updated", id=item_id, fields=sorted(updates))
        return cursor.rowcount

    # ==================== Video CRUD Methods ====================

    async def create_video(
        self,
        youtube_id: str,
        title: Optional[str] = None,
        description: Optional[str] = None,
        thumbnail_url: Optional[str] = None,
        duration: Optional[int] = None,
        published_at: Optional[str] = None,
        added_to_playlist_at: Optional[str] = None,
        added_to_latest_at: Optional[str] = None,
        fetch_status: str = "pending",
        channel_title: Optional[str] = None,
        youtube_channel_id: Optional[str] = None,
        youtube_url: Optional[str] = None,
    ) -> int:
        """
        Create a new video record.

        Args:
            youtube_id: YouTube video ID (unique)
            title: Video title; the placeholder title when unknown
            fetch_status: Enrichment status (default: pending)

        Returns:
            ID of created video record
        """
        now = utc_now()
        cursor = await self._write(
            """
            INSERT INTO videos (
                youtube_id, title, description, thumbnail_url, duration,
                published_at, added_to_playlist_at, added_to_latest_at,
                fetch_status, channel_title, youtube_channel_id, youtube_url,
                created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                youtube_id,
                title or self.placeholder_title,
                description,
                thumbnail_url,
                duration,
                published_at,
                added_to_playlist_at,
                added_to_latest_at,
                fetch_status,
                channel_title,
                youtube_channel_id,
                youtube_url or f"https://www.youtube.com/watch?v={youtube_id}",
                now,
                now,
            ),
        )
        video_id = cursor.lastrowid
        logger.info("video_created", video_id=video_id, youtube_id=youtube_id, fetch_status=fetch_status)
        return video_id

    async def get_video_by_id(self, video_id: int) -> Optional[Dict[str, Any]]:
        """Get a video with its triage state (``None`` when never triaged)."""
        return await self._fetch_one(
            """
            SELECT v.*, vs.state
            FROM videos v
            LEFT JOIN video_states vs ON vs.video_id = v.id
            WHERE v.id = ?
            """,
            (video_id,),
        )

    async def get_video_by_youtube_id(self, youtube_id: str) -> Optional[Dict[str, Any]]:
        return await self._fetch_one(
            """
            SELECT v.*, vs.state
            FROM videos v
            LEFT JOIN video_states vs ON vs.video_id = v.id
            WHERE v.youtube_id = ?
            """,
            (youtube_id,),
        )

    async def update_video(self, video_id: int, **updates: Any) -> Optional[Dict[str, Any]]:
        """
        Update video columns.

        Args:
            video_id: Video ID
            **updates: Columns to set; only metadata columns are accepted

        Returns:
            Updated video, or None if it does not exist

        Raises:
            ValueError: If an unknown column is given
        """
        changed = await self._update_columns("videos", VIDEO_COLUMNS, video_id, updates)
        if not changed and updates:
            return None
        return await self.get_video_by_id(video_id)

    async def delete_video(self, video_id: int) -> int:
        """Delete a video; its state, tags and comments cascade."""
        cursor = await self._write("DELETE FROM videos WHERE id = ?", (video_id,))
        if cursor.rowcount:
            logger.info("video_deleted", video_id=video_id)
        return cursor.rowcount

    async def delete_all_videos(self) -> int:
        cursor = await self._write("DELETE FROM videos")
        logger.warning("all_videos_deleted", count=cursor.rowcount)
        return cursor.rowcount

    async def list_videos(self, filters: Optional[VideoFilters] = None) -> ListResult:
        """
        List videos matching the filters, with the matching total.

        Args:
            filters: Validated filters; defaults to every video

        Returns:
            ListResult with the requested page and total match count
        """
        filters = filters or VideoFilters()
        query = build_video_query(filters, self.shorts_max_duration)
        return await self._fetch_list(query, filters.sort_by, filters.sort_order, _pagination(filters))

    async def get_unique_channels(self) -> List[str]:
        """Distinct non-empty channel titles, alphabetically."""
        cursor = await self._db.connection.execute(
            """
            SELECT DISTINCT channel_title FROM videos
            WHERE channel_title IS NOT NULL AND channel_title != ''
            ORDER BY channel_title COLLATE NOCASE
            """
        )
        return [row[0] for row in await cursor.fetchall()]

    # ==================== Enrichment Queue Methods ====================

    _NEEDS_FETCH = """
        (fetch_status = 'pending' OR fetch_status IS NULL
         OR (fetch_status = 'completed' AND (title = ? OR youtube_channel_id IS NULL)))
    """

    async def get_videos_needing_fetch(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Videos whose metadata still has to be fetched, oldest first.

        A completed video still qualifies while it carries the placeholder
        title or lacks a channel id.
        """
        sql = f"SELECT * FROM videos WHERE {self._NEEDS_FETCH} ORDER BY created_at ASC, id ASC"
        params: List[Any] = [self.placeholder_title]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        return await self._fetch_all(sql, params)

    async def count_videos_needing_fetch(self) -> int:
        return await self._fetch_scalar(
            f"SELECT COUNT(*) FROM videos WHERE {self._NEEDS_FETCH}",
            (self.placeholder_title,),
        )

    # ==================== Video State Methods ====================

    async def set_video_state(self, video_id: int, state: str) -> int:
        """
        Move a video to ``feed``, ``inbox`` or ``archive``.

        Any state is reachable from any other.

        Returns:
            1 if applied, 0 if the video does not exist
        """
        changed = await self._set_state(VIDEO_STATE, video_id, {"state": state}, ["state"])
        if changed:
            logger.info("video_state_set", video_id=video_id, state=state)
        return changed

    async def bulk_set_video_state(self, updates: Iterable[Tuple[int, str]]) -> int:
        """
        Apply several ``(video_id, state)`` assignments in one transaction.

        Returns:
            Number of videos updated

        Raises:
            TransactionError: If any assignment fails; none are applied
        """
        changed = 0
        async with self._db.transaction("bulk_set_video_state"):
            for video_id, state in updates:
                changed += await self._set_state(VIDEO_STATE, video_id, {"state": state}, ["state"])

        logger.info("video_states_bulk_set", count=changed)
        return changed

    # ==================== Tag Methods ====================

    async def add_tag(self, video_id: int, name: str) -> Optional[int]:
        """
        Add a tag to a video.

        Returns:
            New tag ID, or None if the video already has this tag
        """
        try:
            cursor = await self._write(
                "INSERT INTO tags (video_id, name, created_at) VALUES (?, ?, ?)",
                (video_id, name.strip(), utc_now()),
            )
        except aiosqlite.IntegrityError as e:
            if "UNIQUE" not in str(e):
                raise
            logger.debug("tag_exists", video_id=video_id, name=name)
            return None

        logger.info("tag_added", video_id=video_id, name=name, tag_id=cursor.lastrowid)
        return cursor.lastrowid

    async def get_video_tags(self, video_id: int) -> List[Dict[str, Any]]:
        return await self._fetch_all(
            "SELECT * FROM tags WHERE video_id = ? ORDER BY name",
            (video_id,),
        )

    async def delete_tag(self, tag_id: int) -> int:
        cursor = await self._write("DELETE FROM tags WHERE id = ?", (tag_id,))
        return cursor.rowcount

    async def get_unique_tag_names(self) -> List[str]:
        cursor = await self._db.connection.execute("SELECT DISTINCT name FROM tags ORDER BY name")
        return [row[0] for row in await cursor.fetchall()]

    # ==================== Comment Methods ====================

    async def add_comment(self, video_id: int, content: str) -> int:
        now = utc_now()
        cursor = await self._write(
            "INSERT INTO comments (video_id, content, created_at, updated_at) VALUES (?, ?, ?, ?)",
            (video_id, content, now, now),
        )
        logger.info("comment_added", video_id=video_id, comment_id=cursor.lastrowid)
        return cursor.lastrowid

    async def get_video_comments(self, video_id: int) -> List[Dict[str, Any]]:
        """Comments on a video, newest first."""
        return await self._fetch_all(
            "SELECT * FROM comments WHERE video_id = ? ORDER BY created_at DESC, id DESC",
            (video_id,),
        )

    async def update_comment(self, comment_id: int, content: str) -> int:
        cursor = await self._write(
            "UPDATE comments SET content = ?, updated_at = ? WHERE id = ?",
            (content, utc_now(), comment_id),
        )
        return cursor.rowcount

    async def delete_comment(self, comment_id: int) -> int:
        cursor = await self._write("DELETE FROM comments WHERE id = ?", (comment_id,))
        return cursor.rowcount

    async def attach_video_details(self, videos: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Add ``tags`` and ``comments`` lists to each video row.

        Loads both for the whole page in two queries rather than two per video.
        """
        if not videos:
            return videos

        ids = [video["id"] for video in videos]
        placeholders = ", ".join("?" * len(ids))
        tags = await self._fetch_all(
            f"SELECT * FROM tags WHERE video_id IN ({placeholders}) ORDER BY name",
            ids,
        )
        comments = await self._fetch_all(
            f"SELECT * FROM comments WHERE video_id IN ({placeholders}) ORDER BY created_at DESC, id DESC",
            ids,
        )

        by_video: Dict[int, Dict[str, List[Dict[str, Any]]]] = {
            video_id: {"tags": [], "comments": []} for video_id in ids
        }
        for tag in tags:
            by_video[tag["video_id"]]["tags"].append(tag)
        for comment in comments:
            by_video[comment["video_id"]]["comments"].append(comment)

        return [{**video, **by_video[video["id"]]} for video in videos]

    # ==================== Statistics Methods ====================

    async def _video_stats(
        self,
        select: str,
        filters: Optional[VideoStatsFilters],
        tail: str = "",
        extra_params: Sequence[Any] = (),
        extra_where: str = "",
    ) -> List[Dict[str, Any]]:
        body, params = build_video_stats_query(filters or VideoStatsFilters()).from_where()
        if extra_where:
            body += (" AND " if "\nWHERE " in body else "\nWHERE ") + extra_where
        return await self._fetch_all(f"SELECT {select}\n{body}\n{tail}", [*params, *extra_params])

    async def get_channel_rankings(
        self,
        filters: Optional[VideoStatsFilters] = None,
        limit: int = 10,
    ) -> List[Dict[str, Any]]:
        """Channels with the most videos in the filtered set."""
        return await self._video_stats(
            "v.channel_title, COUNT(*) AS video_count, COALESCE(SUM(v.duration), 0) AS total_duration",
            filters,
            "GROUP BY v.channel_title ORDER BY video_count DESC, v.channel_title COLLATE NOCASE ASC LIMIT ?",
            (limit,),
            extra_where="v.channel_title IS NOT NULL",
        )

    async def _count_by(self, pattern: str, filters: Optional[VideoStatsFilters]) -> Dict[str, int]:
        filters = filters or VideoStatsFilters()
        column = VIDEO_DATE_FIELDS[filters.date_field]
        rows = await self._video_stats(
            f"strftime('{pattern}', {column}) AS bucket, COUNT(*) AS count",
            filters,
            "GROUP BY bucket ORDER BY bucket",
            extra_where=f"strftime('{pattern}', {column}) IS NOT NULL",
        )
        return {row["bucket"]: row["count"] for row in rows}

    async def get_video_counts_by_hour(self, filters: Optional[VideoStatsFilters] = None) -> Dict[str, int]:
        """Video counts keyed by ``"00"``..``"23"`` (UTC hour of the date field)."""
        return await self._count_by("%H", filters)

    async def get_video_counts_by_day_of_week(self, filters: Optional[VideoStatsFilters] = None) -> Dict[str, int]:
        """Video counts keyed by ``"0"`` (Sunday) .. ``"6"``."""
        return await self._count_by("%w", filters)

    async def get_video_counts_by_month(self, filters: Optional[VideoStatsFilters] = None) -> Dict[str, int]:
        """Video counts keyed by ``"YYYY-MM"``."""
        return await self._count_by("%Y-%m", filters)

    async def get_total_duration(self, filters: Optional[VideoStatsFilters] = None) -> int:
        rows = await self._video_stats("COALESCE(SUM(v.duration), 0) AS total", filters)
        return rows[0]["total"]

    # ==================== Channel Methods ====================

    async def upsert_channel(
        self,
        youtube_channel_id: str,
        channel_title: Optional[str] = None,
        description: Optional[str] = None,
        thumbnail_url: Optional[str] = None,
        subscriber_count: Optional[int] = None,
    ) -> int:
        """
        Insert a channel or refresh its metadata.

        Known values are never overwritten with NULL.

        Returns:
            Channel row ID
        """
        now = utc_now()
        await self._write(
            """
            INSERT INTO channels (
                youtube_channel_id, channel_title, description, thumbnail_url,
                subscriber_count, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(youtube_channel_id) DO UPDATE SET
                channel_title = COALESCE(excluded.channel_title, channels.channel_title),
                description = COALESCE(excluded.description, channels.description),
                thumbnail_url = COALESCE(excluded.thumbnail_url, channels.thumbnail_url),
                subscriber_count = COALESCE(excluded.subscriber_count, channels.subscriber_count),
                updated_at = excluded.updated_at
            """,
            (youtube_channel_id, channel_title, description, thumbnail_url, subscriber_count, now, now),
        )
        channel_id = await self._fetch_scalar(
            "SELECT id FROM channels WHERE youtube_channel_id = ?",
            (youtube_channel_id,),
        )
        logger.debug("channel_upserted", youtube_channel_id=youtube_channel_id, channel_id=channel_id)
        return channel_id

    async def get_channel(self, youtube_channel_id: str) -> Optional[Dict[str, Any]]:
        return await self._fetch_one(
            "SELECT * FROM channels WHERE youtube_channel_id = ?",
            (youtube_channel_id,),
        )

    async def set_channel_subscribed(self, youtube_channel_id: str, subscribed: bool) -> int:
        cursor = await self._write(
            "UPDATE channels SET is_subscribed = ?, updated_at = ? WHERE youtube_channel_id = ?",
            (int(subscribed), utc_now(), youtube_channel_id),
        )
        return cursor.rowcount

    async def list_channels(self, filters: Optional[ChannelFilters] = None) -> ListResult:
        filters = filters or ChannelFilters()
        query = build_channel_query(filters)
        return await self._fetch_list(query, filters.sort_by, filters.sort_order, _pagination(filters))

    async def get_channel_videos(
        self,
        youtube_channel_id: str,
        filters: Optional[ChannelListVideoFilters] = None,
    ) -> ListResult:
        """A channel's watch-later videos (archived excluded by default)."""
        filters = filters or ChannelListVideoFilters()
        query = build_channel_videos_query([youtube_channel_id], filters, self.shorts_max_duration)
        return await self._fetch_list(query, filters.sort_by, filters.sort_order, _pagination(filters))

    # ==================== Collection Helpers ====================

    async def _create_collection(
        self,
        collection: CollectionTable,
        name: str,
        description: Optional[str],
        color: Optional[str],
        display_on_home: bool,
    ) -> int:
        now = utc_now()
        async with self._db.transaction(f"create_{collection.table}") as conn:
            cursor = await conn.execute(
                f"""
                INSERT INTO {collection.table} (
                    name, description, color, sort_order, display_on_home, created_at, updated_at
                )
                SELECT ?, ?, ?, COALESCE(MAX(sort_order) + 1, 0), ?, ?, ?
                FROM {collection.table}
                """,
                (name, description, color, int(display_on_home), now, now),
            )
            collection_id = cursor.lastrowid

        logger.info(f"{collection.table}_created", id=collection_id, name=name)
        return collection_id

    async def _get_collection(self, collection: CollectionTable, collection_id: int) -> Optional[Dict[str, Any]]:
        items = collection.items
        async with self._db.snapshot():
            result = await self._fetch_one(
                f"SELECT * FROM {collection.table} WHERE id = ?",
                (collection_id,),
            )
            if result is None:
                return None
            result["members"] = await self._fetch_all(
                f"""
                SELECT m.*, i.position, i.added_at
                FROM {items.table} i
                JOIN {collection.member_table} m ON m.{collection.member_key} = i.{items.member_column}
                WHERE i.{items.list_column} = ?
                ORDER BY i.position ASC
                """,
                (collection_id,),
            )
        result[collection.count_alias] = len(result["members"])
        return result

    async def _update_collection(self, collection: CollectionTable, collection_id: int, updates: Dict[str, Any]) -> int:
        if "display_on_home" in updates:
            updates["display_on_home"] = int(updates["display_on_home"])
        return await self._update_columns(collection.table, COLLECTION_COLUMNS, collection_id, updates)

    async def _delete_collection(self, collection: CollectionTable, collection_id: int) -> int:
        cursor = await self._write(f"DELETE FROM {collection.table} WHERE id = ?", (collection_id,))
        if cursor.rowcount:
            logger.info(f"{collection.table}_deleted", id=collection_id)
        return cursor.rowcount

    async def _reorder_collections(self, collection: CollectionTable, collection_ids: Sequence[int]) -> None:
        now = utc_now()
        async with self._db.transaction(f"reorder_{collection.table}") as conn:
            for index, collection_id in enumerate(collection_ids):
                await conn.execute(
                    f"UPDATE {collection.table} SET sort_order = ?, updated_at = ? WHERE id = ?",
                    (index, now, collection_id),
                )
        logger.info(f"{collection.table}_reordered", count=len(collection_ids))

    async def _list_collections(
        self,
        collection: CollectionTable,
        display_on_home: Optional[bool],
    ) -> List[Dict[str, Any]]:
        result = await self._fetch_list(build_collection_query(collection, display_on_home))
        return result.rows

    # ==================== Channel List Methods ====================

    async def create_channel_list(
        self,
        name: str,
        description: Optional[str] = None,
        color: Optional[str] = None,
        display_on_home: bool = False,
    ) -> int:
        """Create a channel list appended after the existing ones."""
        return await self._create_collection(CHANNEL_LISTS, name, description, color, display_on_home)

    async def get_channel_list(self, list_id: int) -> Optional[Dict[str, Any]]:
        """Get a channel list with its channels in position order."""
        return await self._get_collection(CHANNEL_LISTS, list_id)

    async def list_channel_lists(self, display_on_home: Optional[bool] = None) -> List[Dict[str, Any]]:
        return await self._list_collections(CHANNEL_LISTS, display_on_home)

    async def update_channel_list(self, list_id: int, **updates: Any) -> int:
        return await self._update_collection(CHANNEL_LISTS, list_id, updates)

    async def delete_channel_list(self, list_id: int) -> int:
        return await self._delete_collection(CHANNEL_LISTS, list_id)

    async def reorder_channel_lists(self, list_ids: Sequence[int]) -> None:
        await self._reorder_collections(CHANNEL_LISTS, list_ids)

    async def add_channel_to_list(self, list_id: int, youtube_channel_id: str) -> int:
        """Returns 1 if added, 0 if the channel was already in the list."""
        return await self.channel_list_items.add(list_id, youtube_channel_id)

    async def add_channels_to_list(self, list_id: int, youtube_channel_ids: Sequence[str]) -> int:
        return await self.channel_list_items.add_many(list_id, youtube_channel_ids)

    async def remove_channel_from_list(self, list_id: int, youtube_channel_id: str) -> int:
        return await self.channel_list_items.remove(list_id, youtube_channel_id)

    async def remove_channels_from_list(self, list_id: int, youtube_channel_ids: Sequence[str]) -> int:
        return await self.channel_list_items.remove_many(list_id, youtube_channel_ids)

    async def reorder_channel_list(self, list_id: int, youtube_channel_ids: Sequence[str]) -> None:
        await self.channel_list_items.reorder(list_id, youtube_channel_ids)

    async def get_channel_list_videos(
        self,
        list_id: int,
        filters: Optional[ChannelListVideoFilters] = None,
    ) -> ListResult:
        """
        Watch-later videos from every channel in a list.

        Returns an empty result without querying videos when the list has
        no channels.
        """
        filters = filters or ChannelListVideoFilters()
        channel_ids = await self.channel_list_items.member_ids(list_id)
        if not channel_ids:
            return ListResult.empty()
        query = build_channel_videos_query(channel_ids, filters, self.shorts_max_duration)
        return await self._fetch_list(query, filters.sort_by, filters.sort_order, _pagination(filters))

    async def get_channel_list_latest_videos(
        self,
        list_id: int,
        filters: Optional[LatestVideoFilters] = None,
    ) -> ListResult:
        """Recently fetched, untriaged uploads from every channel in a list."""
        filters = filters or LatestVideoFilters()
        channel_ids = await self.channel_list_items.member_ids(list_id)
        if not channel_ids:
            return ListResult.empty()
        query = build_latest_videos_query(channel_ids, filters, self.shorts_max_duration)
        return await self._fetch_list(query, filters.sort_by, filters.sort_order, _pagination(filters))

    # ==================== TV Show Methods ====================

    async def upsert_tv_show(
        self,
        tmdb_id: int,
        title: str,
        overview: Optional[str] = None,
        poster_path: Optional[str] = None,
        backdrop_path: Optional[str] = None,
        first_air_date: Optional[str] = None,
        last_air_date: Optional[str] = None,
        status: Optional[str] = None,
        saved_at: Optional[str] = None,
    ) -> int:
        """
        Insert a TV show or refresh its metadata by ``tmdb_id``.

        Returns:
            TV show ID
        """
        now = utc_now()
        await self._write(
            """
            INSERT INTO tv_shows (
                tmdb_id, title, overview, poster_path, backdrop_path,
                first_air_date, last_air_date, status, saved_at, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(tmdb_id) DO UPDATE SET
                title = excluded.title,
                overview = excluded.overview,
                poster_path = excluded.poster_path,
                backdrop_path = excluded.backdrop_path,
                first_air_date = excluded.first_air_date,
                last_air_date = excluded.last_air_date,
                status = excluded.status,
                saved_at = COALESCE(tv_shows.saved_at, excluded.saved_at),
                updated_at = excluded.updated_at
            """,
            (
                tmdb_id,
                title,
                overview,
                poster_path,
                backdrop_path,
                first_air_date,
                last_air_date,
                status,
                saved_at or now,
                now,
                now,
            ),
        )
        show_id = await self._fetch_scalar("SELECT id FROM tv_shows WHERE tmdb_id = ?", (tmdb_id,))
        logger.info("tv_show_upserted", tv_show_id=show_id, tmdb_id=tmdb_id, title=title)
        return show_id

    async def get_tv_show(self, tv_show_id: int, today: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Get a TV show with its flags and episode aggregates."""
        result = await self._fetch_list(tv_show_base(today).where(equals("t.id", tv_show_id)))
        return result.rows[0] if result.rows else None

    async def update_tv_show(self, tv_show_id: int, **updates: Any) -> Optional[Dict[str, Any]]:
        changed = await self._update_columns("tv_shows", TV_SHOW_COLUMNS, tv_show_id, updates)
        if not changed and updates:
            return None
        return await self.get_tv_show(tv_show_id)

    async def delete_tv_show(self, tv_show_id: int) -> int:
        cursor = await self._write("DELETE FROM tv_shows WHERE id = ?", (tv_show_id,))
        return cursor.rowcount

    async def delete_all_tv_shows(self) -> int:
        cursor = await self._write("DELETE FROM tv_shows")
        logger.warning("all_tv_shows_deleted", count=cursor.rowcount)
        return cursor.rowcount

    async def get_tv_show_statuses(self) -> List[str]:
        cursor = await self._db.connection.execute(
            "SELECT DISTINCT status FROM tv_shows WHERE status IS NOT NULL ORDER BY status"
        )
        return [row[0] for row in await cursor.fetchall()]

    async def list_tv_shows(self, filters: Optional[TVShowFilters] = None, today: Optional[str] = None) -> ListResult:
        """
        List TV shows with archive, status, search and completion filters.

        Args:
            filters: Validated filters (archived shows hidden by default)
            today: Reference date for next/last episode derivation
        """
        filters = filters or TVShowFilters()
        query = build_tv_show_query(filters, today)
        return await self._fetch_list(query, filters.sort_by, filters.sort_order, _pagination(filters))

    async def set_tv_show_archived(self, tv_show_id: int, archived: bool) -> int:
        """
        Archive or unarchive a show.

        Archiving also marks every episode watched, in the same transaction.
        """
        async with self._db.transaction("set_tv_show_archived"):
            changed = await self._set_state(TV_SHOW_STATE, tv_show_id, {"is_archived": int(archived)}, ["is_archived"])
            if changed and archived:
                await self.mark_all_episodes_watched(tv_show_id)

        logger.info("tv_show_archive_set", tv_show_id=tv_show_id, archived=archived, changed=changed)
        return changed

    async def set_tv_show_started(self, tv_show_id: int, started: bool) -> int:
        return await self._set_state(TV_SHOW_STATE, tv_show_id, {"is_started": int(started)}, ["is_started"])

    # ==================== Episode Methods ====================

    async def upsert_episode(
        self,
        tv_show_id: int,
        season_number: int,
        episode_number: int,
        name: Optional[str] = None,
        overview: Optional[str] = None,
        air_date: Optional[str] = None,
        runtime: Optional[int] = None,
        still_path: Optional[str] = None,
    ) -> int:
        """
        Insert or refresh an episode by ``(tv_show_id, season, episode)``.

        Watch flags of an existing episode are left untouched.

        Returns:
            Episode ID
        """
        now = utc_now()
        assignments = ", ".join(f"{column} = excluded.{column}" for column in EPISODE_METADATA_COLUMNS)
        await self._write(
            f"""
            INSERT INTO episodes (
                tv_show_id, season_number, episode_number,
                name, overview, air_date, runtime, still_path, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(tv_show_id, season_number, episode_number) DO UPDATE SET
                {assignments}, updated_at = excluded.updated_at
            """,
            (tv_show_id, season_number, episode_number, name, overview, air_date, runtime, still_path, now, now),
        )
        return await self._fetch_scalar(
            "SELECT id FROM episodes WHERE tv_show_id = ? AND season_number = ? AND episode_number = ?",
            (tv_show_id, season_number, episode_number),
        )

    async def upsert_episodes(self, tv_show_id: int, episodes: Sequence[Mapping[str, Any]]) -> int:
        """Upsert a show's episodes in one transaction; returns how many were written."""
        async with self._db.transaction("upsert_episodes"):
            for episode in episodes:
                await self.upsert_episode(
                    tv_show_id,
                    episode["season_number"],
                    episode["episode_number"],
                    **{key: episode.get(key) for key in EPISODE_METADATA_COLUMNS},
                )
        logger.info("episodes_upserted", tv_show_id=tv_show_id, count=len(episodes))
        return len(episodes)

    async def get_episode(self, episode_id: int) -> Optional[Dict[str, Any]]:
        return await self._fetch_one("SELECT * FROM episodes WHERE id = ?", (episode_id,))

    async def get_episodes(self, tv_show_id: int) -> List[Dict[str, Any]]:
        """A show's episodes ordered by season, then episode number."""
        result = await self._fetch_list(build_episode_query(tv_show_id=tv_show_id))
        return result.rows

    async def get_episodes_in_range(self, filters: EpisodeRangeFilters) -> List[Dict[str, Any]]:
        """Episodes of every show airing in a window, by air date, with show title and poster."""
        result = await self._fetch_list(build_episode_query(filters=filters), sort_by="air_date")
        return result.rows

    async def _set_episodes_watched(self, where: str, where_params: Sequence[Any], watched: bool) -> int:
        values = {"is_watched": int(watched), "watched_at": utc_now() if watched else None}
        sql, params = build_scoped_update(
            "episodes",
            EPISODE_WATCH_COLUMNS,
            values,
            ["is_watched", "watched_at"],
            where,
            where_params,
        )
        cursor = await self._write(sql, params)
        return cursor.rowcount

    async def set_episode_watched(self, episode_id: int, watched: bool = True) -> int:
        return await self._set_episodes_watched("id = ?", (episode_id,), watched)

    async def mark_season_watched(self, tv_show_id: int, season_number: int, watched: bool = True) -> int:
        changed = await self._set_episodes_watched(
            "tv_show_id = ? AND season_number = ?",
            (tv_show_id, season_number),
            watched,
        )
        logger.info("season_watched_set", tv_show_id=tv_show_id, season=season_number, count=changed)
        return changed

    async def mark_all_episodes_watched(self, tv_show_id: Optional[int] = None, watched: bool = True) -> int:
        """Mark one show's episodes, or every episode when no show is given."""
        if tv_show_id is None:
            return await self._set_episodes_watched("1 = 1", (), watched)
        return await self._set_episodes_watched("tv_show_id = ?", (tv_show_id,), watched)

    # ==================== Movie Methods ====================

    async def upsert_movie(
        self,
        tmdb_id: int,
        title: str,
        imdb_id: Optional[str] = None,
        overview: Optional[str] = None,
        poster_path: Optional[str] = None,
        backdrop_path: Optional[str] = None,
        release_date: Optional[str] = None,
        runtime: Optional[int] = None,
        saved_at: Optional[str] = None,
    ) -> int:
        """
        Insert a movie or refresh its metadata by ``tmdb_id``.

        Returns:
            Movie ID
        """
        now = utc_now()
        await self._write(
            """
            INSERT INTO movies (
                tmdb_id, imdb_id, title, overview, poster_path, backdrop_path,
                release_date, runtime, saved_at, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(tmdb_id) DO UPDATE SET
                imdb_id = COALESCE(excluded.imdb_id, movies.imdb_id),
                title = excluded.title,
                overview = excluded.overview,
                poster_path = excluded.poster_path,
                backdrop_path = excluded.backdrop_path,
                release_date = excluded.release_date,
                runtime = excluded.runtime,
                saved_at = COALESCE(movies.saved_at, excluded.saved_at),
                updated_at = excluded.updated_at
            """,
            (
                tmdb_id,
                imdb_id,
                title,
                overview,
                poster_path,
                backdrop_path,
                release_date,
                runtime,
                saved_at or now,
                now,
                now,
            ),
        )
        movie_id = await self._fetch_scalar("SELECT id FROM movies WHERE tmdb_id = ?", (tmdb_id,))
        logger.info("movie_upserted", movie_id=movie_id, tmdb_id=tmdb_id, title=title)
        return movie_id

    async def _get_movie_where(self, column: str, value: Any) -> Optional[Dict[str, Any]]:
        return await self._fetch_one(
            f"""
            SELECT m.*, {", ".join(MOVIE_FLAG_COLUMNS)}
            FROM movies m
            LEFT JOIN movie_states ms ON ms.movie_id = m.id
            WHERE m.{column} = ?
            """,
            (value,),
        )

    async def get_movie(self, movie_id: int) -> Optional[Dict[str, Any]]:
        """Get a movie with its archived/starred/watched flags."""
        return await self._get_movie_where("id", movie_id)

    async def get_movie_by_tmdb_id(self, tmdb_id: int) -> Optional[Dict[str, Any]]:
        return await self._get_movie_where("tmdb_id", tmdb_id)

    async def update_movie(self, movie_id: int, **updates: Any) -> Optional[Dict[str, Any]]:
        changed = await self._update_columns("movies", MOVIE_COLUMNS, movie_id, updates)
        if not changed and updates:
            return None
        return await self.get_movie(movie_id)

    async def delete_movie(self, movie_id: int) -> int:
        cursor = await self._write("DELETE FROM movies WHERE id = ?", (movie_id,))
        return cursor.rowcount

    async def delete_all_movies(self) -> int:
        cursor = await self._write("DELETE FROM movies")
        logger.warning("all_movies_deleted", count=cursor.rowcount)
        return cursor.rowcount

    async def list_movies(self, filters: Optional[MovieFilters] = None) -> ListResult:
        filters = filters or MovieFilters()
        query = build_movie_query(filters)
        return await self._fetch_list(query, filters.sort_by, filters.sort_order, _pagination(filters))

    async def set_movie_archived(self, movie_id: int, archived: bool) -> int:
        return await self._set_state(MOVIE_STATE, movie_id, {"is_archived": int(archived)}, ["is_archived"])

    async def set_movie_starred(self, movie_id: int, starred: bool) -> int:
        return await self._set_state(MOVIE_STATE, movie_id, {"is_starred": int(starred)}, ["is_starred"])

    async def set_movie_watched(self, movie_id: int, watched: bool) -> int:
        """Set the watched flag; ``watched_at`` is stamped on watch and cleared on unwatch."""
        return await self._set_state(
            MOVIE_STATE,
            movie_id,
            {"is_watched": int(watched), "watched_at": utc_now() if watched else None},
            ["is_watched", "watched_at"],
        )

    async def bulk_set_movies_watched(self, movie_ids: Sequence[int], watched: bool) -> int:
        changed = 0
        async with self._db.transaction("bulk_set_movies_watched"):
            for movie_id in movie_ids:
                changed += await self.set_movie_watched(movie_id, watched)
        logger.info("movies_bulk_watched", count=changed, watched=watched)
        return changed

    # ==================== Movie Playlist Methods ====================

    async def create_movie_playlist(
        self,
        name: str,
        description: Optional[str] = None,
        color: Optional[str] = None,
        display_on_home: bool = False,
    ) -> int:
        return await self._create_collection(MOVIE_PLAYLISTS, name, description, color, display_on_home)

    async def get_movie_playlist(self, playlist_id: int) -> Optional[Dict[str, Any]]:
        """Get a playlist with its movies in position order."""
        return await self._get_collection(MOVIE_PLAYLISTS, playlist_id)

    async def list_movie_playlists(self, display_on_home: Optional[bool] = None) -> List[Dict[str, Any]]:
        return await self._list_collections(MOVIE_PLAYLISTS, display_on_home)

    async def update_movie_playlist(self, playlist_id: int, **updates: Any) -> int:
        return await self._update_collection(MOVIE_PLAYLISTS, playlist_id, updates)

    async def delete_movie_playlist(self, playlist_id: int) -> int:
        return await self._delete_collection(MOVIE_PLAYLISTS, playlist_id)

    async def reorder_movie_playlists(self, playlist_ids: Sequence[int]) -> None:
        await self._reorder_collections(MOVIE_PLAYLISTS, playlist_ids)

    async def add_movie_to_playlist(self, playlist_id: int, movie_id: int) -> int:
        return await self.playlist_items.add(playlist_id, movie_id)

    async def add_movies_to_playlist(self, playlist_id: int, movie_ids: Sequence[int]) -> int:
        return await self.playlist_items.add_many(playlist_id, movie_ids)

    async def remove_movie_from_playlist(self, playlist_id: int, movie_id: int) -> int:
        return await self.playlist_items.remove(playlist_id, movie_id)

    async def remove_movies_from_playlist(self, playlist_id: int, movie_ids: Sequence[int]) -> int:
        return await self.playlist_items.remove_many(playlist_id, movie_ids)

    async def reorder_movie_playlist(self, playlist_id: int, movie_ids: Sequence[int]) -> None:
        await self.playlist_items.reorder(playlist_id, movie_ids)

    async def get_playlist_movies(
        self,
        playlist_id: int,
        filters: Optional[PlaylistMovieFilters] = None,
    ) -> ListResult:
        """Movies in a playlist; empty without querying when the playlist has none."""
        filters = filters or PlaylistMovieFilters()
        if not await self.playlist_items.member_ids(playlist_id):
            return ListResult.empty()
        query = build_playlist_movies_query(playlist_id, filters)
        return await self._fetch_list(query, filters.sort_by, filters.sort_order, _pagination(filters))

    async def get_movie_playlist_ids(self, movie_id: int) -> List[int]:
        """IDs of the playlists containing a movie."""
        cursor = await self._db.connection.execute(
            "SELECT playlist_id FROM movie_playlist_items WHERE movie_id = ? ORDER BY playlist_id",
            (movie_id,),
        )
        return [row[0] for row in await cursor.fetchall()]

    # ==================== Settings Methods ====================

    async def get_setting(self, key: str) -> Optional[str]:
        return await self._fetch_scalar("SELECT value FROM settings WHERE key = ?", (key,))

    async def set_setting(self, key: str, value: Optional[str]) -> None:
        await self._write(
            """
            INSERT INTO settings (key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
            """,
            (key, value, utc_now()),
        )
        logger.info("setting_updated", key=key)

    async def get_all_settings(self) -> Dict[str, Optional[str]]:
        cursor = await self._db.connection.execute("SELECT key, value FROM settings ORDER BY key")
        return {row[0]: row[1] for row in await cursor.fetchall()}
