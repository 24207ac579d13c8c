"""discsync storage layer: record stores and cover-art asset stores."""

from discsync.storage.assets import LocalAssetStore, SupabaseAssetStore, normalize_extension
from discsync.storage.base import AssetStore, RecordStore
from discsync.storage.database import Database
from discsync.storage.models import LocalRecordSummary, PersistedRecord, SyncRun
from discsync.storage.supabase import SupabaseRecordStore

__all__ = [
    "AssetStore",
    "Database",
    "LocalAssetStore",
    "LocalRecordSummary",
    "PersistedRecord",
    "RecordStore",
    "SupabaseAssetStore",
    "SupabaseRecordStore",
    "SyncRun",
    "normalize_extension",
]
