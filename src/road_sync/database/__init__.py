"""Database package for the road sync system."""

from .db_init import DatabaseInitializer
from .services.asset_store import PostgisAssetStore, RoadAssetStore
from .services.sync_log_service import PostgisSyncLogStore, SyncLogStore


__all__ = [
    "DatabaseInitializer",
    "PostgisAssetStore",
    "PostgisSyncLogStore",
    "RoadAssetStore",
    "SyncLogStore",
]
