"""Parsers for YouTube metadata and Google Takeout exports."""

from .takeout_parser import TakeoutFormatError, TakeoutParser, extract_video_id
from .youtube_models import ChannelMetadata, TakeoutEntry, VideoMetadata, parse_duration

__all__ = [
    "ChannelMetadata",
    "TakeoutEntry",
    "VideoMetadata",
    "TakeoutParser",
    "TakeoutFormatError",
    "extract_video_id",
    "parse_duration",
]
