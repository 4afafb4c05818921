"""Unit tests for the column-scoped state upsert."""

import pytest

from watchlater.core.db import MediaRepository
from watchlater.core.db.state import (
    EPISODE_WATCH_COLUMNS,
    MOVIE_STATE,
    VIDEO_STATE,
    build_scoped_update,
    build_state_upsert,
)

NOW = "2024-06-01T00:00:00+00:00"


class TestBuildStateUpsert:
    """Tests for generated upsert SQL."""

    def test_conflict_branch_touches_only_given_columns(self):
        sql, params = build_state_upsert(MOVIE_STATE, 7, {"is_starred": 1}, ["is_starred"], now=NOW)

        assert sql == (
            "INSERT INTO movie_states (movie_id, is_starred, updated_at) "
            "SELECT ?, ?, ? "
            "WHERE EXISTS (SELECT 1 FROM movies WHERE id = ?) "
            "ON CONFLICT(movie_id) DO UPDATE SET is_starred = excluded.is_starred, updated_at = excluded.updated_at"
        )
        assert params == [7, 1, NOW, 7]
        assert "is_watched" not in sql
        assert "is_archived" not in sql

    def test_multiple_columns_in_order(self):
        sql, params = build_state_upsert(
            MOVIE_STATE,
            3,
            {"is_watched": 1, "watched_at": NOW, "is_starred": 0},
            ["is_watched", "watched_at"],
            now=NOW,
        )
        assert "(movie_id, is_watched, watched_at, updated_at)" in sql
        assert params == [3, 1, NOW, NOW, 3]

    def test_undeclared_column_rejected(self):
        with pytest.raises(ValueError, match="not a state column"):
            build_state_upsert(VIDEO_STATE, 1, {"is_starred": 1}, ["is_starred"])

    def test_missing_value_rejected(self):
        with pytest.raises(ValueError, match="Missing value"):
            build_state_upsert(VIDEO_STATE, 1, {}, ["state"])

    def test_nothing_touched_rejected(self):
        with pytest.raises(ValueError):
            build_state_upsert(VIDEO_STATE, 1, {"state": "feed"}, [])

    def test_scoped_update(self):
        sql, params = build_scoped_update(
            "episodes",
            EPISODE_WATCH_COLUMNS,
            {"is_watched": 1, "watched_at": NOW},
            ["is_watched", "watched_at"],
            "tv_show_id = ? AND season_number = ?",
            (4, 2),
            now=NOW,
        )
        assert sql == (
            "UPDATE episodes SET is_watched = ?, watched_at = ?, updated_at = ? "
            "WHERE tv_show_id = ? AND season_number = ?"
        )
        assert params == [1, NOW, NOW, 4, 2]


@pytest.mark.asyncio
class TestStateIsolation:
    """State writes against a real database."""

    async def test_setting_watched_keeps_starred(self, test_repository: MediaRepository, sample_movie_metadata):
        """Setting one flag must not reset a sibling flag."""
        movie_id = await test_repository.upsert_movie(**sample_movie_metadata)

        assert await test_repository.set_movie_starred(movie_id, True) == 1
        assert await test_repository.set_movie_watched(movie_id, True) == 1

        movie = await test_repository.get_movie(movie_id)
        assert movie["is_starred"] == 1
        assert movie["is_watched"] == 1
        assert movie["is_archived"] == 0
        assert movie["watched_at"] is not None

    async def test_unwatch_clears_timestamp_keeps_other_flags(
        self, test_repository: MediaRepository, sample_movie_metadata
    ):
        movie_id = await test_repository.upsert_movie(**sample_movie_metadata)
        await test_repository.set_movie_archived(movie_id, True)
        await test_repository.set_movie_watched(movie_id, True)
        await test_repository.set_movie_watched(movie_id, False)

        movie = await test_repository.get_movie(movie_id)
        assert movie["is_watched"] == 0
        assert movie["watched_at"] is None
        assert movie["is_archived"] == 1

    async def test_new_row_takes_defaults(self, test_repository: MediaRepository, sample_movie_metadata):
        movie_id = await test_repository.upsert_movie(**sample_movie_metadata)
        await test_repository.set_movie_archived(movie_id, True)

        movie = await test_repository.get_movie(movie_id)
        assert movie["is_archived"] == 1
        assert movie["is_starred"] == 0
        assert movie["is_watched"] == 0

    async def test_missing_item_affects_no_rows(self, test_repository: MediaRepository):
        """Not-found is reported as zero rows, not an error."""
        assert await test_repository.set_movie_starred(9999, True) == 0
        assert await test_repository.set_video_state(9999, "inbox") == 0
        assert await test_repository.set_tv_show_started(9999, True) == 0

    async def test_any_video_state_reachable(self, test_repository: MediaRepository):
        video_id = await test_repository.create_video("abcdefghijk")

        for state in ["archive", "feed", "inbox", "archive", "inbox", "feed"]:
            assert await test_repository.set_video_state(video_id, state) == 1
            video = await test_repository.get_video_by_id(video_id)
            assert video["state"] == state
