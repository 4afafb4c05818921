"""Metadata enrichment workflow: fill in pending videos from a metadata provider."""

import time
from dataclasses import dataclass
from typing import Dict, Optional, Protocol, Sequence

import structlog

from ..core.db.repository import MediaRepository
from ..parsers.youtube_models import ChannelMetadata, VideoMetadata


class VideoMetadataProvider(Protocol):
    """
    Source of video and channel metadata (YouTube Data API, oEmbed, ...).

    Both methods return only the items that were found; IDs missing from
    the result are treated as unavailable (private or deleted).
    """

    async def get_videos(self, youtube_ids: Sequence[str]) -> Dict[str, VideoMetadata]:
        ...

    async def get_channels(self, channel_ids: Sequence[str]) -> Dict[str, ChannelMetadata]:
        ...


@dataclass
class EnrichmentResult:
    """Result of one or more enrichment batches."""

    processed: int = 0
    unavailable: int = 0
    remaining: int = 0
    batches: int = 0
    duration_seconds: float = 0.0


class MetadataEnricher:
    """
    Enrich videos whose metadata has not been fetched yet.

    Each batch:
    1. Takes the oldest N videos still needing metadata
    2. Asks the provider for those videos and their channels
    3. Upserts each uploading channel and marks found videos ``completed``
    4. Marks videos the provider did not return ``unavailable``
    5. Reports how many videos still need metadata

    Database writes for a batch happen in one transaction; provider calls
    happen before it opens.

    Example:
        >>> enricher = MetadataEnricher(repository, provider, batch_size=50)
        >>> result = await enricher.process_batch()
        >>> while result.remaining:
        ...     result = await enricher.process_batch()
    """

    def __init__(
        self,
        repository: MediaRepository,
        provider: VideoMetadataProvider,
        batch_size: int = 50,
    ):
        """
        Initialize enricher.

        Args:
            repository: Connected media repository
            provider: Metadata source
            batch_size: Default number of videos per batch
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.repository = repository
        self.provider = provider
        self.batch_size = batch_size
        self.logger = structlog.get_logger(__name__)

    async def process_batch(self, batch_size: Optional[int] = None) -> EnrichmentResult:
        """
        Enrich the next batch of videos.

        Args:
            batch_size: Override the default batch size

        Returns:
            EnrichmentResult for this batch, with the remaining count

        Raises:
            Exception: Provider errors propagate; nothing is written for the batch
        """
        start_time = time.time()
        limit = batch_size or self.batch_size
        videos = await self.repository.get_videos_needing_fetch(limit)

        if not videos:
            remaining = await self.repository.count_videos_needing_fetch()
            return EnrichmentResult(remaining=remaining)

        youtube_ids = [video["youtube_id"] for video in videos]
        self.logger.info("enrichment_batch_start", count=len(youtube_ids))

        found = await self.provider.get_videos(youtube_ids)
        channel_ids = sorted({meta.youtube_channel_id for meta in found.values() if meta.youtube_channel_id})
        channels: Dict[str, ChannelMetadata] = {}
        if channel_ids:
            channels = await self.provider.get_channels(channel_ids)

        result = EnrichmentResult(batches=1)
        async with self.repository.transaction("enrich_videos"):
            for video in videos:
                metadata = found.get(video["youtube_id"])
                if metadata is None:
                    await self.repository.update_video(
                        video["id"],
                        fetch_status="unavailable",
                        title=self.repository.placeholder_title,
                    )
                    result.unavailable += 1
                    continue

                if metadata.youtube_channel_id:
                    await self._upsert_channel(metadata, channels.get(metadata.youtube_channel_id))

                await self.repository.update_video(
                    video["id"],
                    fetch_status="completed",
                    youtube_url=f"https://www.youtube.com/watch?v={video['youtube_id']}",
                    **metadata.to_video_fields(),
                )
                result.processed += 1

        result.remaining = await self.repository.count_videos_needing_fetch()
        result.duration_seconds = time.time() - start_time

        self.logger.info(
            "enrichment_batch_complete",
            processed=result.processed,
            unavailable=result.unavailable,
            remaining=result.remaining,
            duration=result.duration_seconds,
        )
        return result

    async def process_all(self, batch_size: Optional[int] = None, max_batches: Optional[int] = None) -> EnrichmentResult:
        """
        Run batches until nothing remains or a batch makes no progress.

        A completed video the provider returns without a channel ID stays in
        the queue, so a batch that only sees such videos ends the run.

        Args:
            batch_size: Override the default batch size
            max_batches: Stop after this many batches

        Returns:
            Totals across all batches
        """
        total = EnrichmentResult()
        start_time = time.time()

        while max_batches is None or total.batches < max_batches:
            before = await self.repository.count_videos_needing_fetch()
            batch = await self.process_batch(batch_size)
            total.processed += batch.processed
            total.unavailable += batch.unavailable
            total.batches += batch.batches
            total.remaining = batch.remaining

            if batch.remaining == 0 or batch.remaining >= before:
                break

        total.duration_seconds = time.time() - start_time
        self.logger.info(
            "enrichment_complete",
            processed=total.processed,
            unavailable=total.unavailable,
            remaining=total.remaining,
            batches=total.batches,
        )
        return total

    async def _upsert_channel(self, video: VideoMetadata, channel: Optional[ChannelMetadata]) -> int:
        if channel is None:
            return await self.repository.upsert_channel(video.youtube_channel_id, channel_title=video.channel_title)
        return await self.repository.upsert_channel(
            video.youtube_channel_id,
            channel_title=channel.channel_title or video.channel_title,
            description=channel.description,
            thumbnail_url=channel.thumbnail_url,
            subscriber_count=channel.subscriber_count,
        )
