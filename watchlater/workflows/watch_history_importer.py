"""Google Takeout importer workflow for seeding the watch-later library."""

import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Union

import structlog

from ..core.db.repository import MediaRepository
from ..core.db.state import utc_now
from ..parsers.takeout_parser import TakeoutParser
from ..parsers.youtube_models import TakeoutEntry, VideoMetadata


def thumbnail_url(youtube_id: str) -> str:
    """Default thumbnail URL, used until real metadata is fetched."""
    return f"https://i.ytimg.com/vi/{youtube_id}/mqdefault.jpg"


@dataclass
class ImportResult:
    """Result of a Takeout import."""

    total_entries: int
    imported_count: int = 0
    updated_count: int = 0
    skipped_count: int = 0
    duration_seconds: float = 0.0


@dataclass
class LatestVideosResult:
    """Result of recording a channel's latest uploads."""

    channel_id: str
    new_count: int = 0
    existing_count: int = 0


class WatchHistoryImporter:
    """
    Import a Google Takeout watch-later export into the video library.

    This workflow:
    1. Parses the export (JSON activity list or playlist/history CSV)
    2. Creates unseen videos as ``pending`` with triage state ``feed``
    3. Refreshes ``added_to_playlist_at`` on videos not yet enriched
    4. Skips videos whose metadata is already ``completed``
    5. Reports import statistics

    Example:
        >>> importer = WatchHistoryImporter(repository)
        >>> result = await importer.import_file(Path("Watch later-videos.csv"))
        >>> print(f"Imported {result.imported_count}, updated {result.updated_count}")
    """

    def __init__(self, repository: MediaRepository, initial_state: str = "feed"):
        """
        Initialize importer.

        Args:
            repository: Connected media repository
            initial_state: Triage state for newly created videos (default: "feed")
        """
        self.repository = repository
        self.initial_state = initial_state
        self.logger = structlog.get_logger(__name__)

    async def import_file(self, path: Path) -> ImportResult:
        """
        Import a Takeout file, choosing the parser from its extension.

        Raises:
            TakeoutFormatError: If the file content is not a Takeout export
            json.JSONDecodeError: If a ``.json`` file is malformed
        """
        content = path.read_text(encoding="utf-8")
        if path.suffix.lower() == ".csv":
            return await self.import_csv(content)
        return await self.import_json(json.loads(content))

    async def import_json(self, data: Any) -> ImportResult:
        return await self.import_entries(TakeoutParser.parse_json(data))

    async def import_csv(self, content: str) -> ImportResult:
        return await self.import_entries(TakeoutParser.parse_csv(content))

    async def import_entries(self, entries: Sequence[TakeoutEntry]) -> ImportResult:
        """
        Import already-parsed entries in one transaction.

        Args:
            entries: Unique Takeout entries

        Returns:
            ImportResult with per-outcome counts
        """
        start_time = time.time()
        result = ImportResult(total_entries=len(entries))
        self.logger.info("takeout_import_start", total=len(entries))

        async with self.repository.transaction("takeout_import"):
            for entry in entries:
                existing = await self.repository.get_video_by_youtube_id(entry.youtube_id)

                if existing is None:
                    video_id = await self.repository.create_video(
                        youtube_id=entry.youtube_id,
                        thumbnail_url=thumbnail_url(entry.youtube_id),
                        added_to_playlist_at=entry.added_at,
                        fetch_status="pending",
                    )
                    await self.repository.set_video_state(video_id, self.initial_state)
                    result.imported_count += 1
                    continue

                if existing["fetch_status"] == "completed":
                    self.logger.debug("takeout_video_skipped", youtube_id=entry.youtube_id)
                    result.skipped_count += 1
                    continue

                updates: Dict[str, Any] = {"added_to_playlist_at": entry.added_at}
                if existing["fetch_status"] in (None, "pending"):
                    updates["fetch_status"] = "pending"
                await self.repository.update_video(existing["id"], **updates)
                result.updated_count += 1

        result.duration_seconds = time.time() - start_time
        self.logger.info(
            "takeout_import_complete",
            imported=result.imported_count,
            updated=result.updated_count,
            skipped=result.skipped_count,
            duration=result.duration_seconds,
        )
        return result

    async def record_latest_videos(
        self,
        channel_id: str,
        videos: Sequence[Union[VideoMetadata, Dict[str, Any]]],
        fetched_at: Optional[str] = None,
    ) -> LatestVideosResult:
        """
        Store a channel's freshly fetched uploads for the "latest" view.

        New videos are created ``completed`` with no triage state; existing
        ones get ``added_to_latest_at`` refreshed and keep their state.

        Args:
            channel_id: External ID of the channel the uploads belong to
            videos: Upload metadata, newest first
            fetched_at: Timestamp recorded as ``added_to_latest_at`` (default: now)

        Returns:
            LatestVideosResult with new/existing counts
        """
        stamp = fetched_at or utc_now()
        result = LatestVideosResult(channel_id=channel_id)

        async with self.repository.transaction("record_latest_videos"):
            await self.repository.upsert_channel(channel_id)
            for item in videos:
                metadata = item if isinstance(item, VideoMetadata) else VideoMetadata.model_validate(item)
                fields = metadata.to_video_fields()
                fields["youtube_channel_id"] = metadata.youtube_channel_id or channel_id

                existing = await self.repository.get_video_by_youtube_id(metadata.youtube_id)
                if existing is None:
                    await self.repository.create_video(
                        youtube_id=metadata.youtube_id,
                        added_to_latest_at=stamp,
                        fetch_status="completed",
                        **fields,
                    )
                    result.new_count += 1
                else:
                    await self.repository.update_video(
                        existing["id"],
                        added_to_latest_at=stamp,
                        fetch_status="completed",
                        **fields,
                    )
                    result.existing_count += 1

        self.logger.info(
            "latest_videos_recorded",
            channel_id=channel_id,
            new=result.new_count,
            existing=result.existing_count,
        )
        return result
