"""Fixtures specific to unit tests."""

from typing import Dict, Sequence

import pytest

from watchlater.parsers import ChannelMetadata, VideoMetadata


class FakeMetadataProvider:
    """In-memory VideoMetadataProvider that records what it was asked for."""

    def __init__(self, videos: Dict[str, VideoMetadata], channels: Dict[str, ChannelMetadata]):
        self.videos = videos
        self.channels = channels
        self.video_requests: list = []
        self.channel_requests: list = []

    async def get_videos(self, youtube_ids: Sequence[str]) -> Dict[str, VideoMetadata]:
        self.video_requests.append(list(youtube_ids))
        return {vid: self.videos[vid] for vid in youtube_ids if vid in self.videos}

    async def get_channels(self, channel_ids: Sequence[str]) -> Dict[str, ChannelMetadata]:
        self.channel_requests.append(list(channel_ids))
        return {cid: self.channels[cid] for cid in channel_ids if cid in self.channels}


@pytest.fixture
def metadata_provider() -> FakeMetadataProvider:
    """Provider that knows two videos on one channel."""
    channel_id = "UCchannel000000000000001"
    return FakeMetadataProvider(
        videos={
            "aaaaaaaaaaa": VideoMetadata(
                youtube_id="aaaaaaaaaaa",
                title="First Upload",
                description="hello",
                duration="PT4M2S",
                published_at="2023-05-01T12:00:00+00:00",
                youtube_channel_id=channel_id,
                channel_title="Test Channel",
                thumbnail_url="https://i.ytimg.com/vi/aaaaaaaaaaa/mqdefault.jpg",
            ),
            "bbbbbbbbbbb": VideoMetadata(
                youtube_id="bbbbbbbbbbb",
                title="Second Upload",
                duration=45,
                youtube_channel_id=channel_id,
                channel_title="Test Channel",
            ),
        },
        channels={
            channel_id: ChannelMetadata(
                youtube_channel_id=channel_id,
                channel_title="Test Channel",
                description="A channel",
                subscriber_count=1200,
            )
        },
    )
