"""Pydantic models for YouTube metadata and Google Takeout entries."""

import re
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

ISO8601_DURATION = re.compile(r"^P(?:(\d+)D)?T?(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?$")


def parse_duration(value: Any) -> Optional[int]:
    """
    Convert a YouTube duration to seconds.

    Accepts integer seconds or an ISO 8601 duration such as ``PT1H23M45S``.
    Unparseable strings and live streams (``P0D``) yield ``None``.

    Example:
        >>> parse_duration("PT1M30S")
        90
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError("duration must be seconds or an ISO 8601 string")
    if isinstance(value, (int, float)):
        return int(value)

    match = ISO8601_DURATION.match(str(value).strip().upper())
    if not match or not any(match.groups()):
        return None

    days, hours, minutes, seconds = (int(part or 0) for part in match.groups())
    total = days * 86400 + hours * 3600 + minutes * 60 + seconds
    return total or None


class ChannelMetadata(BaseModel):
    """Channel details returned by a metadata provider."""

    youtube_channel_id: str = Field(description="External channel ID")
    channel_title: Optional[str] = Field(default=None, description="Channel display name")
    description: Optional[str] = Field(default=None, description="Channel description")
    thumbnail_url: Optional[str] = Field(default=None, description="Channel avatar URL")
    subscriber_count: Optional[int] = Field(default=None, ge=0, description="Subscriber count, if public")

    model_config = ConfigDict(extra="ignore")


class VideoMetadata(BaseModel):
    """Video details returned by a metadata provider."""

    youtube_id: str = Field(description="External video ID")
    title: str = Field(description="Video title")
    description: Optional[str] = Field(default=None, description="Video description")
    thumbnail_url: Optional[str] = Field(default=None, description="Best available thumbnail URL")
    duration: Optional[int] = Field(default=None, description="Duration in seconds")
    published_at: Optional[str] = Field(default=None, description="Upload timestamp (ISO 8601)")
    youtube_channel_id: Optional[str] = Field(default=None, description="Uploading channel ID")
    channel_title: Optional[str] = Field(default=None, description="Uploading channel name")

    model_config = ConfigDict(extra="ignore")

    @field_validator("duration", mode="before")
    @classmethod
    def coerce_duration(cls, v: Any) -> Optional[int]:
        return parse_duration(v)

    def to_video_fields(self) -> dict:
        """Columns written to the ``videos`` table for this metadata."""
        fields = self.model_dump(exclude={"youtube_id"})
        if fields["thumbnail_url"] is None:
            del fields["thumbnail_url"]
        return fields


class TakeoutEntry(BaseModel):
    """One video parsed from a Google Takeout export."""

    youtube_id: str = Field(min_length=11, max_length=11, description="External video ID")
    title: Optional[str] = Field(default=None, description="Title as listed in the export")
    added_at: Optional[str] = Field(default=None, description="Export timestamp (watched or added)")
