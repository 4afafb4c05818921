"""Parser for Google Takeout watch-later and watch-history exports."""

import csv
import io
import re
from typing import Any, Dict, Iterable, List, Optional

import structlog
from pydantic import ValidationError

from .youtube_models import TakeoutEntry

logger = structlog.get_logger(__name__)

VIDEO_ID_PATTERNS = (
    re.compile(r"[?&]v=([a-zA-Z0-9_-]{11})"),
    re.compile(r"youtu\.be/([a-zA-Z0-9_-]{11})"),
    re.compile(r"/embed/([a-zA-Z0-9_-]{11})"),
    re.compile(r"/shorts/([a-zA-Z0-9_-]{11})"),
)

# Header spellings seen across Takeout playlist and history exports
CSV_ID_COLUMNS = ("video id", "videoid", "video_id")
CSV_URL_COLUMNS = ("url", "video url", "link")
CSV_TITLE_COLUMNS = ("title", "video title")
CSV_TIME_COLUMNS = ("time", "timestamp", "date", "playlist video creation timestamp")


class TakeoutFormatError(ValueError):
    """Raised when an export is not in a recognized Takeout layout."""


def extract_video_id(url: Optional[str]) -> Optional[str]:
    """
    Pull the 11-character video ID out of a YouTube URL.

    Example:
        >>> extract_video_id("https://youtu.be/dQw4w9WgXcQ")
        'dQw4w9WgXcQ'
    """
    if not url:
        return None
    for pattern in VIDEO_ID_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def _first(row: Dict[str, str], names: Iterable[str]) -> Optional[str]:
    for name in names:
        value = row.get(name)
        if value and value.strip():
            return value.strip()
    return None


class TakeoutParser:
    """Turn Takeout exports into de-duplicated :class:`TakeoutEntry` lists."""

    @staticmethod
    def parse_json(data: Any) -> List[TakeoutEntry]:
        """
        Parse a ``watch-history.json`` style export.

        Entries without a YouTube video URL (ads, posts, music searches) are
        skipped. The first occurrence of a video wins.

        Args:
            data: Decoded JSON document (a list of activity entries)

        Returns:
            Unique entries in export order

        Raises:
            TakeoutFormatError: If the document is not a list
        """
        if not isinstance(data, list):
            raise TakeoutFormatError("Expected a list of watch history entries")

        entries: Dict[str, TakeoutEntry] = {}
        for item in data:
            if not isinstance(item, dict):
                continue
            video_id = extract_video_id(item.get("titleUrl"))
            if not video_id or video_id in entries:
                continue
            title = item.get("title")
            # History titles read "Watched <title>"
            if title and title.startswith("Watched "):
                title = title[len("Watched "):]
            entries[video_id] = TakeoutEntry(youtube_id=video_id, title=title, added_at=item.get("time"))

        logger.info("takeout_json_parsed", entries=len(data), unique_videos=len(entries))
        return list(entries.values())

    @staticmethod
    def parse_csv(content: str) -> List[TakeoutEntry]:
        """
        Parse a Takeout playlist CSV (``Video ID``, ``Playlist Video Creation
        Timestamp``) or a history CSV (``Title``, ``URL``, ``Time``).

        Header names are matched case-insensitively after trimming.

        Raises:
            TakeoutFormatError: If no video ID or URL column is present
        """
        reader = csv.DictReader(io.StringIO(content.lstrip("\ufeff")))
        if reader.fieldnames is None:
            return []

        headers = {name.strip().lower() for name in reader.fieldnames if name}
        if not headers & set(CSV_ID_COLUMNS + CSV_URL_COLUMNS):
            raise TakeoutFormatError(f"No video ID or URL column in CSV headers: {sorted(headers)}")

        entries: Dict[str, TakeoutEntry] = {}
        skipped = 0
        for raw_row in reader:
            row = {key.strip().lower(): value for key, value in raw_row.items() if key and isinstance(value, str)}

            video_id = _first(row, CSV_ID_COLUMNS)
            if not video_id or len(video_id) != 11:
                video_id = extract_video_id(_first(row, CSV_URL_COLUMNS))
            if not video_id or video_id in entries:
                skipped += 1
                continue

            try:
                entries[video_id] = TakeoutEntry(
                    youtube_id=video_id,
                    title=_first(row, CSV_TITLE_COLUMNS),
                    added_at=_first(row, CSV_TIME_COLUMNS),
                )
            except ValidationError as e:
                logger.warning("takeout_row_invalid", video_id=video_id, error=str(e))
                skipped += 1

        logger.info("takeout_csv_parsed", unique_videos=len(entries), skipped=skipped)
        return list(entries.values())
