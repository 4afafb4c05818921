"""Workflow modules for WatchLater."""

from .enrichment import EnrichmentResult, MetadataEnricher, VideoMetadataProvider
from .watch_history_importer import ImportResult, LatestVideosResult, WatchHistoryImporter

__all__ = [
    "EnrichmentResult",
    "ImportResult",
    "LatestVideosResult",
    "MetadataEnricher",
    "VideoMetadataProvider",
    "WatchHistoryImporter",
]
