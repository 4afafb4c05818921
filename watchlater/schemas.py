"""Validated filter, sort and pagination parameters for list queries.

Every enum-valued field is a ``Literal`` allow-list, so a bad sort key or
state never reaches SQL assembly: constructing the model raises
``pydantic.ValidationError`` first.
"""

from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

SortOrder = Literal["asc", "desc"]
VideoState = Literal["feed", "inbox", "archive"]
ShortsFilter = Literal["all", "exclude", "only"]
ArchiveFilter = Literal["all", "archived", "unarchived"]


class PageParams(BaseModel):
    """
    Pagination parameters shared by every list query.

    Either ``page`` + ``limit`` (1-indexed pages) or ``limit`` + ``offset``.
    Omitting ``limit`` fetches every matching row.
    """

    page: Optional[int] = Field(default=None, ge=1, description="Page number (1-indexed)")
    limit: Optional[int] = Field(default=None, ge=1, le=1000, description="Rows per page")
    offset: Optional[int] = Field(default=None, ge=0, description="Rows to skip when no page is given")


class DateRangeMixin(BaseModel):
    start_date: Optional[str] = Field(default=None, description="Inclusive start (YYYY-MM-DD)")
    end_date: Optional[str] = Field(default=None, description="Inclusive end (YYYY-MM-DD)")

    @field_validator("start_date", "end_date")
    @classmethod
    def validate_date(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        try:
            date.fromisoformat(v.strip()[:10])
        except ValueError as e:
            raise ValueError(f"Invalid date: {v!r}") from e
        return v.strip()


# ==================== Videos ====================


class VideoFilters(PageParams, DateRangeMixin):
    """Filters for the main video list."""

    state: Optional[VideoState] = Field(default=None, description="Triage state; omitted means any")
    search: Optional[str] = Field(default=None, description="Substring of title or description")
    channels: Optional[List[str]] = Field(default=None, description="Channel titles to include")
    date_field: Literal["added_to_playlist_at", "published_at"] = Field(
        default="added_to_playlist_at",
        description="Column the date range applies to",
    )
    shorts: ShortsFilter = "all"
    sort_by: Optional[Literal["published_at", "added_to_playlist_at", "archived_at"]] = None
    sort_order: Optional[SortOrder] = None


class VideoStatsFilters(DateRangeMixin):
    """Optional date window for statistics queries."""

    state: Optional[VideoState] = None
    date_field: Literal["added_to_playlist_at", "published_at"] = "added_to_playlist_at"


class ChannelListVideoFilters(PageParams):
    """Filters for a channel list's watch-later videos."""

    state: Literal["all", "exclude_archived", "feed", "inbox", "archive"] = "exclude_archived"
    search: Optional[str] = None
    shorts: ShortsFilter = "all"
    sort_by: Optional[Literal["title", "added_to_playlist_at", "published_at"]] = None
    sort_order: Optional[SortOrder] = None


class LatestVideoFilters(PageParams):
    """Filters for a channel list's latest uploads."""

    search: Optional[str] = None
    shorts: ShortsFilter = "exclude"
    sort_by: Optional[Literal["title", "added_to_latest_at", "published_at"]] = None
    sort_order: Optional[SortOrder] = None


# ==================== Channels ====================


class ChannelFilters(PageParams):
    subscribed: Optional[bool] = Field(default=None, description="Only (un)subscribed channels")
    watch_later: Optional[bool] = Field(
        default=None,
        description="Only channels with (or without) non-archived watch-later videos",
    )
    search: Optional[str] = None
    sort_by: Optional[
        Literal["channel_title", "subscriber_count", "watch_later_count", "last_video_date", "created_at"]
    ] = None
    sort_order: Optional[SortOrder] = None


# ==================== TV shows ====================


class TVShowFilters(PageParams):
    """
    Filters for the TV show list.

    ``include_archived`` is the older boolean form of ``archive`` and is
    only consulted when ``archive`` is not given.
    """

    archive: Optional[ArchiveFilter] = None
    include_archived: Optional[bool] = None
    status: Optional[str] = None
    search: Optional[str] = None
    completion: Literal["all", "hideCompleted", "startedOnly", "newOnly"] = "all"
    sort_by: Optional[
        Literal["title", "first_air_date", "created_at", "next_episode_date", "last_episode_date"]
    ] = None
    sort_order: Optional[SortOrder] = None

    @model_validator(mode="after")
    def resolve_archive(self) -> "TVShowFilters":
        if self.archive is None:
            self.archive = "all" if self.include_archived else "unarchived"
        return self


class EpisodeRangeFilters(DateRangeMixin):
    """Episodes airing within a window, across all shows."""

    hide_archived: bool = False


# ==================== Movies ====================


class MovieFilters(PageParams, DateRangeMixin):
    """Filters for the movie list; the date range applies to release date."""

    search: Optional[str] = None
    archive: ArchiveFilter = "all"
    starred: Literal["all", "starred", "unstarred"] = "all"
    watched: Literal["all", "watched", "unwatched"] = "all"
    playlist: Literal["all", "in_playlist", "not_in_playlist"] = "all"
    sort_by: Optional[Literal["title", "release_date", "created_at", "saved_at"]] = None
    sort_order: Optional[SortOrder] = None


class PlaylistMovieFilters(PageParams):
    archive: ArchiveFilter = "all"
    watched: Literal["all", "watched", "unwatched"] = "all"
    sort_by: Optional[Literal["position", "title", "release_date", "created_at"]] = None
    sort_order: Optional[SortOrder] = None
