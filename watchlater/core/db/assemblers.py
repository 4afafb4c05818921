"""Per-entity list query assemblers.

Each ``build_*`` function turns a validated filter model into a
:class:`~watchlater.core.db.query.SelectQuery`. Conditions are added in a
fixed order (state, search, membership, date range, derived status) so
the generated SQL is deterministic.
"""

from dataclasses import dataclass
from datetime import date
from typing import Any, List, Optional, Sequence

from ...schemas import (
    ChannelFilters,
    ChannelListVideoFilters,
    EpisodeRangeFilters,
    LatestVideoFilters,
    MovieFilters,
    PlaylistMovieFilters,
    TVShowFilters,
    VideoFilters,
    VideoStatsFilters,
)
from .membership import CHANNEL_LIST_ITEMS, MOVIE_PLAYLIST_ITEMS, MembershipTable
from .query import (
    Predicate,
    SelectQuery,
    SortConfig,
    SortKey,
    date_range,
    derived,
    equals,
    one_of,
    search,
)

DEFAULT_SHORTS_MAX_DURATION = 60


def flag_filter(column: str, choice: str, set_value: str) -> Optional[Predicate]:
    """
    Three-way filter over a 0/1 flag that may be NULL (no state row).

    ``choice == set_value`` keeps rows with the flag set, ``"all"`` keeps
    everything, any other choice keeps rows where it is unset or absent.
    """
    if choice == "all":
        return None
    if choice == set_value:
        return derived(f"{column} = 1")
    return derived(f"{column} IS NULL OR {column} = 0")


def shorts_filter(choice: str, max_duration: int) -> Optional[Predicate]:
    """A short has a known, positive duration no longer than ``max_duration`` seconds."""
    if choice == "exclude":
        return derived("v.duration IS NULL OR v.duration <= 0 OR v.duration > ?", max_duration)
    if choice == "only":
        return derived("v.duration > 0 AND v.duration <= ?", max_duration)
    return None


# ==================== Videos ====================

ARCHIVED_AT_SQL = "SELECT video_id, updated_at AS archived_at FROM video_states WHERE state = 'archive'"

VIDEO_COLUMNS = ["v.*", "vs.state", "va.archived_at"]

VIDEO_DATE_FIELDS = {
    "added_to_playlist_at": "v.added_to_playlist_at",
    "published_at": "v.published_at",
}

VIDEO_SORT = SortConfig(
    keys={
        "published_at": SortKey("v.published_at", "datetime"),
        "added_to_playlist_at": SortKey("v.added_to_playlist_at", "datetime"),
        "archived_at": SortKey("va.archived_at", "datetime"),
    },
    default_key="added_to_playlist_at",
    default_order="asc",
    tie_breaker="v.id ASC",
)


def _video_base(sort: SortConfig) -> SelectQuery:
    return (
        SelectQuery("videos v", VIDEO_COLUMNS, sort)
        .join("LEFT JOIN video_states vs ON vs.video_id = v.id")
        .join_derived("va", ARCHIVED_AT_SQL, "va.video_id = v.id")
    )


def build_video_query(
    filters: VideoFilters,
    shorts_max_duration: int = DEFAULT_SHORTS_MAX_DURATION,
) -> SelectQuery:
    """
    Assemble the main video list.

    Videos without a state row are included with ``state`` NULL unless a
    state filter is given.
    """
    return _video_base(VIDEO_SORT).where(
        equals("vs.state", filters.state),
        search(["v.title", "v.description"], filters.search),
        one_of("v.channel_title", filters.channels),
        date_range(VIDEO_DATE_FIELDS, filters.date_field, filters.start_date, filters.end_date),
        shorts_filter(filters.shorts, shorts_max_duration),
    )


CHANNEL_LIST_VIDEO_SORT = SortConfig(
    keys={
        "title": SortKey("v.title", "text"),
        "added_to_playlist_at": SortKey("v.added_to_playlist_at", "datetime"),
        "published_at": SortKey("v.published_at", "datetime"),
    },
    default_key="added_to_playlist_at",
    default_order="desc",
    tie_breaker="v.id ASC",
)


def _watch_later_state(choice: str) -> Optional[Predicate]:
    if choice == "all":
        return None
    if choice == "exclude_archived":
        return derived("vs.state IS NULL OR vs.state != 'archive'")
    return equals("vs.state", choice)


def build_channel_videos_query(
    channel_ids: Sequence[str],
    filters: ChannelListVideoFilters,
    shorts_max_duration: int = DEFAULT_SHORTS_MAX_DURATION,
) -> SelectQuery:
    """
    Watch-later videos from a set of channels (a channel list or one channel).

    Only videos that were actually saved to the watch-later playlist
    qualify; archived ones are excluded unless the state filter says
    otherwise.
    """
    return _video_base(CHANNEL_LIST_VIDEO_SORT).where(
        _watch_later_state(filters.state),
        search(["v.title", "v.description"], filters.search),
        one_of("v.youtube_channel_id", channel_ids),
        derived("v.added_to_playlist_at IS NOT NULL"),
        shorts_filter(filters.shorts, shorts_max_duration),
    )


LATEST_VIDEO_SORT = SortConfig(
    keys={
        "title": SortKey("v.title", "text"),
        "added_to_latest_at": SortKey("v.added_to_latest_at", "datetime"),
        "published_at": SortKey("v.published_at", "datetime"),
    },
    default_key="added_to_latest_at",
    default_order="desc",
    tie_breaker="v.id ASC",
)


def build_latest_videos_query(
    channel_ids: Sequence[str],
    filters: LatestVideoFilters,
    shorts_max_duration: int = DEFAULT_SHORTS_MAX_DURATION,
) -> SelectQuery:
    """
    Recently fetched uploads from a set of channels.

    "Latest" is not a stored state: a video qualifies when it has an
    ``added_to_latest_at`` stamp and has not been triaged past the feed.
    """
    return _video_base(LATEST_VIDEO_SORT).where(
        derived("vs.state IS NULL OR vs.state = 'feed'"),
        search(["v.title", "v.description"], filters.search),
        one_of("v.youtube_channel_id", channel_ids),
        derived("v.added_to_latest_at IS NOT NULL"),
        shorts_filter(filters.shorts, shorts_max_duration),
    )


def build_video_stats_query(filters: VideoStatsFilters) -> SelectQuery:
    """Filtered video set for aggregate statistics; callers supply the SELECT."""
    return (
        SelectQuery("videos v", ["v.id"], VIDEO_SORT)
        .join("LEFT JOIN video_states vs ON vs.video_id = v.id")
        .where(
            equals("vs.state", filters.state),
            date_range(VIDEO_DATE_FIELDS, filters.date_field, filters.start_date, filters.end_date),
        )
    )


# ==================== Channels ====================

CHANNEL_WATCH_LATER_SQL = """
    SELECT v.youtube_channel_id,
           COUNT(*) AS watch_later_count,
           MAX(v.added_to_playlist_at) AS last_video_date
    FROM videos v
    LEFT JOIN video_states vs ON vs.video_id = v.id
    WHERE v.added_to_playlist_at IS NOT NULL
      AND v.youtube_channel_id IS NOT NULL
      AND (vs.state IS NULL OR vs.state != 'archive')
    GROUP BY v.youtube_channel_id
"""

CHANNEL_SORT = SortConfig(
    keys={
        "channel_title": SortKey("c.channel_title", "text"),
        "subscriber_count": SortKey("c.subscriber_count"),
        "watch_later_count": SortKey("COALESCE(cw.watch_later_count, 0)"),
        "last_video_date": SortKey("cw.last_video_date", "datetime"),
        "created_at": SortKey("c.created_at", "datetime"),
    },
    default_key="channel_title",
    default_order="asc",
    tie_breaker="c.id ASC",
)


def build_channel_query(filters: ChannelFilters) -> SelectQuery:
    subscribed = None if filters.subscribed is None else int(filters.subscribed)
    if filters.watch_later is None:
        watch_later = None
    elif filters.watch_later:
        watch_later = derived("cw.watch_later_count > 0")
    else:
        watch_later = derived("cw.youtube_channel_id IS NULL")

    return (
        SelectQuery(
            "channels c",
            ["c.*", "COALESCE(cw.watch_later_count, 0) AS watch_later_count", "cw.last_video_date"],
            CHANNEL_SORT,
        )
        .join_derived("cw", CHANNEL_WATCH_LATER_SQL, "cw.youtube_channel_id = c.youtube_channel_id")
        .where(
            equals("c.is_subscribed", subscribed),
            search(["c.channel_title", "c.description"], filters.search),
            watch_later,
        )
    )


# ==================== Channel lists and movie playlists ====================


@dataclass(frozen=True)
class CollectionTable:
    """A named, ordered container table and its membership junction."""

    table: str
    items: MembershipTable
    count_alias: str
    member_table: str
    member_key: str


CHANNEL_LISTS = CollectionTable(
    table="channel_lists",
    items=CHANNEL_LIST_ITEMS,
    count_alias="channel_count",
    member_table="channels",
    member_key="youtube_channel_id",
)

MOVIE_PLAYLISTS = CollectionTable(
    table="movie_playlists",
    items=MOVIE_PLAYLIST_ITEMS,
    count_alias="movie_count",
    member_table="movies",
    member_key="id",
)

COLLECTION_SORT = SortConfig(
    keys={
        "sort_order": SortKey("l.sort_order"),
        "name": SortKey("l.name", "text"),
        "created_at": SortKey("l.created_at", "datetime"),
    },
    default_key="sort_order",
    default_order="asc",
    tie_breaker="l.id ASC",
)


def build_collection_query(
    collection: CollectionTable,
    display_on_home: Optional[bool] = None,
) -> SelectQuery:
    counts = (
        f"SELECT {collection.items.list_column} AS list_id, COUNT(*) AS member_count "
        f"FROM {collection.items.table} GROUP BY {collection.items.list_column}"
    )
    return (
        SelectQuery(
            f"{collection.table} l",
            ["l.*", f"COALESCE(lc.member_count, 0) AS {collection.count_alias}"],
            COLLECTION_SORT,
        )
        .join_derived("lc", counts, "lc.list_id = l.id")
        .where(equals("l.display_on_home", None if display_on_home is None else int(display_on_home)))
    )


# ==================== TV shows and episodes ====================

EPISODE_STATS_SQL = """
    SELECT tv_show_id,
           COUNT(*) AS total_episodes,
           SUM(CASE WHEN is_watched = 1 THEN 1 ELSE 0 END) AS watched_count,
           MIN(CASE WHEN is_watched = 0 AND DATE(air_date) > DATE(?) THEN air_date END) AS next_episode_date,
           MAX(CASE WHEN DATE(air_date) <= DATE(?) THEN air_date END) AS last_episode_date
    FROM episodes
    GROUP BY tv_show_id
"""

TV_SHOW_COLUMNS = [
    "t.*",
    "COALESCE(ts.is_archived, 0) AS is_archived",
    "COALESCE(ts.is_started, 0) AS is_started",
    "COALESCE(es.total_episodes, 0) AS total_episodes",
    "COALESCE(es.watched_count, 0) AS watched_count",
    "es.next_episode_date",
    "es.last_episode_date",
]

TV_SHOW_SORT = SortConfig(
    keys={
        "title": SortKey("t.title", "text"),
        "first_air_date": SortKey("t.first_air_date", "datetime"),
        "created_at": SortKey("t.created_at", "datetime"),
        "next_episode_date": SortKey("es.next_episode_date", "datetime"),
        "last_episode_date": SortKey("es.last_episode_date", "datetime"),
    },
    default_key="title",
    default_order="asc",
    tie_breaker="t.id ASC",
)

SHOW_STARTED = "COALESCE(ts.is_started, 0) = 1 OR COALESCE(es.watched_count, 0) > 0"
SHOW_COMPLETED = "COALESCE(es.total_episodes, 0) > 0 AND es.watched_count = es.total_episodes"


def _completion_filter(choice: str) -> Optional[Predicate]:
    if choice == "hideCompleted":
        return derived(f"NOT ({SHOW_COMPLETED})")
    if choice == "startedOnly":
        return derived(SHOW_STARTED)
    if choice == "newOnly":
        return derived(f"NOT ({SHOW_STARTED})")
    return None


def tv_show_base(today: Optional[str] = None) -> SelectQuery:
    """TV shows joined with their state row and per-show episode aggregate."""
    reference = today or date.today().isoformat()
    return (
        SelectQuery("tv_shows t", TV_SHOW_COLUMNS, TV_SHOW_SORT)
        .join("LEFT JOIN tv_show_states ts ON ts.tv_show_id = t.id")
        .join_derived("es", EPISODE_STATS_SQL, "es.tv_show_id = t.id", reference, reference)
    )


def build_tv_show_query(filters: TVShowFilters, today: Optional[str] = None) -> SelectQuery:
    """
    Assemble the TV show list.

    Args:
        filters: Validated filters
        today: Reference date for next/last episode (defaults to today)
    """
    return tv_show_base(today).where(
        flag_filter("ts.is_archived", filters.archive, "archived"),
        search(["t.title", "t.overview"], filters.search),
        equals("t.status", filters.status),
        _completion_filter(filters.completion),
    )


EPISODE_SORT = SortConfig(
    keys={
        "season_number": SortKey("e.season_number"),
        "air_date": SortKey("e.air_date", "datetime"),
    },
    default_key="season_number",
    default_order="asc",
    tie_breaker="e.episode_number ASC, e.id ASC",
)

EPISODE_COLUMNS = ["e.*", "t.title AS show_title", "t.poster_path AS show_poster_path"]


def build_episode_query(
    tv_show_id: Optional[int] = None,
    filters: Optional[EpisodeRangeFilters] = None,
) -> SelectQuery:
    """Episodes of one show, or of every show airing within a date window."""
    filters = filters or EpisodeRangeFilters()
    return (
        SelectQuery("episodes e", EPISODE_COLUMNS, EPISODE_SORT)
        .join("JOIN tv_shows t ON t.id = e.tv_show_id")
        .join("LEFT JOIN tv_show_states ts ON ts.tv_show_id = e.tv_show_id")
        .where(
            flag_filter("ts.is_archived", "unarchived" if filters.hide_archived else "all", "archived"),
            equals("e.tv_show_id", tv_show_id),
            date_range({"air_date": "e.air_date"}, "air_date", filters.start_date, filters.end_date),
        )
    )


# ==================== Movies ====================

PLAYLIST_COUNT_SQL = "SELECT movie_id, COUNT(*) AS playlist_count FROM movie_playlist_items GROUP BY movie_id"

MOVIE_FLAG_COLUMNS = [
    "COALESCE(ms.is_archived, 0) AS is_archived",
    "COALESCE(ms.is_starred, 0) AS is_starred",
    "COALESCE(ms.is_watched, 0) AS is_watched",
    "ms.watched_at",
]

MOVIE_SORT = SortConfig(
    keys={
        "title": SortKey("m.title", "text"),
        "release_date": SortKey("m.release_date", "datetime"),
        "created_at": SortKey("m.created_at", "datetime"),
        "saved_at": SortKey("m.saved_at", "datetime"),
    },
    default_key="created_at",
    default_order="desc",
    tie_breaker="m.id ASC",
)


def _playlist_filter(choice: str) -> Optional[Predicate]:
    if choice == "in_playlist":
        return derived("mp.movie_id IS NOT NULL")
    if choice == "not_in_playlist":
        return derived("mp.movie_id IS NULL")
    return None


def build_movie_query(filters: MovieFilters) -> SelectQuery:
    return (
        SelectQuery(
            "movies m",
            ["m.*", *MOVIE_FLAG_COLUMNS, "COALESCE(mp.playlist_count, 0) AS playlist_count"],
            MOVIE_SORT,
        )
        .join("LEFT JOIN movie_states ms ON ms.movie_id = m.id")
        .join_derived("mp", PLAYLIST_COUNT_SQL, "mp.movie_id = m.id")
        .where(
            flag_filter("ms.is_archived", filters.archive, "archived"),
            flag_filter("ms.is_starred", filters.starred, "starred"),
            flag_filter("ms.is_watched", filters.watched, "watched"),
            search(["m.title", "m.overview"], filters.search),
            date_range({"release_date": "m.release_date"}, "release_date", filters.start_date, filters.end_date),
            _playlist_filter(filters.playlist),
        )
    )


PLAYLIST_MOVIE_SORT = SortConfig(
    keys={
        "position": SortKey("pi.position"),
        "title": SortKey("m.title", "text"),
        "release_date": SortKey("m.release_date", "datetime"),
        "created_at": SortKey("m.created_at", "datetime"),
    },
    default_key="position",
    default_order="asc",
    tie_breaker="m.id ASC",
)


def build_playlist_movies_query(playlist_id: int, filters: PlaylistMovieFilters) -> SelectQuery:
    columns: List[Any] = ["m.*", *MOVIE_FLAG_COLUMNS, "pi.position", "pi.added_at AS playlist_added_at"]
    return (
        SelectQuery("movie_playlist_items pi", columns, PLAYLIST_MOVIE_SORT)
        .join("JOIN movies m ON m.id = pi.movie_id")
        .join("LEFT JOIN movie_states ms ON ms.movie_id = m.id")
        .where(
            flag_filter("ms.is_archived", filters.archive, "archived"),
            flag_filter("ms.is_watched", filters.watched, "watched"),
            equals("pi.playlist_id", playlist_id),
        )
    )
