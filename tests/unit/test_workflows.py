"""Tests for the enrichment and Takeout import workflows."""

import json
from pathlib import Path

import pytest

from watchlater.core.db import MediaRepository
from watchlater.parsers import TakeoutEntry, VideoMetadata
from watchlater.workflows import MetadataEnricher, WatchHistoryImporter
from watchlater.workflows.watch_history_importer import thumbnail_url

CHANNEL_ID = "UCchannel000000000000001"


class FailingProvider:
    async def get_videos(self, youtube_ids):
        raise ConnectionError("quota exceeded")

    async def get_channels(self, channel_ids):
        return {}


@pytest.mark.asyncio
class TestMetadataEnricher:
    """Test the metadata enrichment workflow."""

    async def test_batch_size_validated(self, test_repository: MediaRepository, metadata_provider):
        with pytest.raises(ValueError):
            MetadataEnricher(test_repository, metadata_provider, batch_size=0)

    async def test_process_batch(self, test_repository: MediaRepository, metadata_provider):
        """Found videos are completed with their channel; missing ones become unavailable."""
        first = await test_repository.create_video("aaaaaaaaaaa", thumbnail_url=thumbnail_url("aaaaaaaaaaa"))
        second = await test_repository.create_video("bbbbbbbbbbb", thumbnail_url=thumbnail_url("bbbbbbbbbbb"))
        gone = await test_repository.create_video("ccccccccccc")

        enricher = MetadataEnricher(test_repository, metadata_provider)
        result = await enricher.process_batch()

        assert result.processed == 2
        assert result.unavailable == 1
        assert result.remaining == 0
        assert result.batches == 1
        assert metadata_provider.video_requests == [["aaaaaaaaaaa", "bbbbbbbbbbb", "ccccccccccc"]]
        assert metadata_provider.channel_requests == [[CHANNEL_ID]]

        video = await test_repository.get_video_by_id(first)
        assert video["fetch_status"] == "completed"
        assert video["title"] == "First Upload"
        assert video["duration"] == 242
        assert video["youtube_channel_id"] == CHANNEL_ID

        # provider had no thumbnail: the default one is kept
        video = await test_repository.get_video_by_id(second)
        assert video["thumbnail_url"] == thumbnail_url("bbbbbbbbbbb")
        assert video["duration"] == 45

        video = await test_repository.get_video_by_id(gone)
        assert video["fetch_status"] == "unavailable"
        assert video["title"] == "Untitled Video"

        channel = await test_repository.get_channel(CHANNEL_ID)
        assert channel["channel_title"] == "Test Channel"
        assert channel["subscriber_count"] == 1200

    async def test_batches_oldest_first(self, test_repository: MediaRepository, metadata_provider):
        await test_repository.create_video("aaaaaaaaaaa")
        await test_repository.create_video("bbbbbbbbbbb")

        enricher = MetadataEnricher(test_repository, metadata_provider, batch_size=1)
        result = await enricher.process_batch()

        assert metadata_provider.video_requests == [["aaaaaaaaaaa"]]
        assert result.processed == 1
        assert result.remaining == 1

    async def test_empty_queue(self, test_repository: MediaRepository, metadata_provider):
        result = await MetadataEnricher(test_repository, metadata_provider).process_batch()
        assert result.processed == 0
        assert result.batches == 0
        assert result.remaining == 0
        assert metadata_provider.video_requests == []

    async def test_process_all(self, test_repository: MediaRepository, metadata_provider):
        for youtube_id in ("aaaaaaaaaaa", "bbbbbbbbbbb", "ccccccccccc"):
            await test_repository.create_video(youtube_id)

        result = await MetadataEnricher(test_repository, metadata_provider, batch_size=1).process_all()
        assert result.batches == 3
        assert result.processed == 2
        assert result.unavailable == 1
        assert result.remaining == 0

    async def test_process_all_respects_max_batches(self, test_repository: MediaRepository, metadata_provider):
        for youtube_id in ("aaaaaaaaaaa", "bbbbbbbbbbb", "ccccccccccc"):
            await test_repository.create_video(youtube_id)

        result = await MetadataEnricher(test_repository, metadata_provider, batch_size=1).process_all(max_batches=2)
        assert result.batches == 2
        assert result.remaining == 1

    async def test_process_all_stops_without_progress(self, test_repository: MediaRepository, metadata_provider):
        """A video returned without a channel stays queued; the run ends instead of looping."""
        metadata_provider.videos["ddddddddddd"] = VideoMetadata(youtube_id="ddddddddddd", title="Orphan")
        await test_repository.create_video("ddddddddddd")

        result = await MetadataEnricher(test_repository, metadata_provider).process_all()
        assert result.batches == 1
        assert result.processed == 1
        assert result.remaining == 1

    async def test_provider_error_writes_nothing(self, test_repository: MediaRepository):
        video_id = await test_repository.create_video("aaaaaaaaaaa")

        with pytest.raises(ConnectionError):
            await MetadataEnricher(test_repository, FailingProvider()).process_batch()

        video = await test_repository.get_video_by_id(video_id)
        assert video["fetch_status"] == "pending"


@pytest.mark.asyncio
class TestWatchHistoryImporter:
    """Test the Takeout import workflow."""

    async def test_import_entries(self, test_repository: MediaRepository, sample_video_metadata):
        """New videos are created pending in the feed; completed ones are left alone."""
        await test_repository.create_video(**sample_video_metadata)
        stale = await test_repository.create_video("bbbbbbbbbbb", added_to_playlist_at="2020-01-01")

        entries = [
            TakeoutEntry(youtube_id="aaaaaaaaaaa", added_at="2024-01-01T00:00:00Z"),
            TakeoutEntry(youtube_id="bbbbbbbbbbb", added_at="2024-01-02T00:00:00Z"),
            TakeoutEntry(youtube_id="dQw4w9WgXcQ", added_at="2024-01-03T00:00:00Z"),
        ]
        result = await WatchHistoryImporter(test_repository).import_entries(entries)

        assert result.total_entries == 3
        assert result.imported_count == 1
        assert result.updated_count == 1
        assert result.skipped_count == 1

        created = await test_repository.get_video_by_youtube_id("aaaaaaaaaaa")
        assert created["fetch_status"] == "pending"
        assert created["state"] == "feed"
        assert created["thumbnail_url"] == "https://i.ytimg.com/vi/aaaaaaaaaaa/mqdefault.jpg"
        assert created["added_to_playlist_at"] == "2024-01-01T00:00:00Z"

        refreshed = await test_repository.get_video_by_id(stale)
        assert refreshed["added_to_playlist_at"] == "2024-01-02T00:00:00Z"

        untouched = await test_repository.get_video_by_youtube_id("dQw4w9WgXcQ")
        assert untouched["added_to_playlist_at"] == sample_video_metadata["added_to_playlist_at"]

    async def test_unavailable_video_keeps_status(self, test_repository: MediaRepository):
        video_id = await test_repository.create_video("aaaaaaaaaaa", fetch_status="unavailable")

        await WatchHistoryImporter(test_repository).import_entries([TakeoutEntry(youtube_id="aaaaaaaaaaa")])
        assert (await test_repository.get_video_by_id(video_id))["fetch_status"] == "unavailable"

    async def test_initial_state(self, test_repository: MediaRepository):
        importer = WatchHistoryImporter(test_repository, initial_state="inbox")
        await importer.import_entries([TakeoutEntry(youtube_id="aaaaaaaaaaa")])
        assert (await test_repository.get_video_by_youtube_id("aaaaaaaaaaa"))["state"] == "inbox"

    async def test_import_csv_file(self, test_repository: MediaRepository, tmp_path: Path):
        path = tmp_path / "Watch later-videos.csv"
        path.write_text(
            "Video ID,Playlist Video Creation Timestamp\n"
            "aaaaaaaaaaa,2024-01-15T20:00:00+00:00\n"
            "bbbbbbbbbbb,2024-01-16T20:00:00+00:00\n",
            encoding="utf-8",
        )

        result = await WatchHistoryImporter(test_repository).import_file(path)
        assert result.imported_count == 2
        assert await test_repository.count_videos_needing_fetch() == 2

    async def test_import_json_file(self, test_repository: MediaRepository, tmp_path: Path):
        path = tmp_path / "watch-history.json"
        path.write_text(
            json.dumps([{"title": "Watched X", "titleUrl": "https://www.youtube.com/watch?v=aaaaaaaaaaa"}]),
            encoding="utf-8",
        )

        result = await WatchHistoryImporter(test_repository).import_file(path)
        assert result.imported_count == 1

    async def test_import_then_enrich(self, test_repository: MediaRepository, metadata_provider):
        await WatchHistoryImporter(test_repository).import_entries(
            [TakeoutEntry(youtube_id="aaaaaaaaaaa"), TakeoutEntry(youtube_id="bbbbbbbbbbb")]
        )
        result = await MetadataEnricher(test_repository, metadata_provider).process_all()

        assert result.processed == 2
        video = await test_repository.get_video_by_youtube_id("aaaaaaaaaaa")
        assert video["title"] == "First Upload"
        assert video["state"] == "feed"


@pytest.mark.asyncio
class TestRecordLatestVideos:
    """Test storing a channel's latest uploads."""

    async def test_new_and_existing(self, test_repository: MediaRepository):
        existing = await test_repository.create_video("bbbbbbbbbbb", fetch_status="pending")
        await test_repository.set_video_state(existing, "inbox")

        importer = WatchHistoryImporter(test_repository)
        result = await importer.record_latest_videos(
            CHANNEL_ID,
            [
                VideoMetadata(youtube_id="aaaaaaaaaaa", title="New", duration="PT10M"),
                {"youtube_id": "bbbbbbbbbbb", "title": "Known", "channel_title": "Test Channel"},
            ],
            fetched_at="2024-05-01T00:00:00+00:00",
        )

        assert result.new_count == 1
        assert result.existing_count == 1
        assert await test_repository.get_channel(CHANNEL_ID) is not None

        new = await test_repository.get_video_by_youtube_id("aaaaaaaaaaa")
        assert new["fetch_status"] == "completed"
        assert new["youtube_channel_id"] == CHANNEL_ID
        assert new["added_to_latest_at"] == "2024-05-01T00:00:00+00:00"
        assert new["duration"] == 600
        assert new["state"] is None

        known = await test_repository.get_video_by_id(existing)
        assert known["title"] == "Known"
        assert known["added_to_latest_at"] == "2024-05-01T00:00:00+00:00"
        assert known["state"] == "inbox"

    async def test_latest_view_after_recording(self, test_repository: MediaRepository):
        importer = WatchHistoryImporter(test_repository)
        await importer.record_latest_videos(
            CHANNEL_ID,
            [VideoMetadata(youtube_id="aaaaaaaaaaa", title="Long", duration=900)],
        )
        list_id = await test_repository.create_channel_list("Subscriptions")
        await test_repository.add_channel_to_list(list_id, CHANNEL_ID)

        latest = await test_repository.get_channel_list_latest_videos(list_id)
        assert [v["youtube_id"] for v in latest.rows] == ["aaaaaaaaaaa"]
