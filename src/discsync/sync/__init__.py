"""Sync module: Discogs client, diffing, cover backfill, and the reconciliation engine."""

from discsync.sync.backfill import AssetBackfill
from discsync.sync.differ import RemoteItem, compute_plan
from discsync.sync.discogs import DiscogsClient
from discsync.sync.engine import ReconcileEngine, SyncState, SyncStats

__all__ = [
    "AssetBackfill",
    "DiscogsClient",
    "ReconcileEngine",
    "RemoteItem",
    "SyncState",
    "SyncStats",
    "compute_plan",
]
