"""Core data access for WatchLater.

This package holds the SQLite repository, the query builders it is
assembled from, and the schema migrations.
"""

from .db import MediaRepository

__all__ = ["MediaRepository"]
