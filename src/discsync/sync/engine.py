"""Reconciliation engine: Discogs collection → records store."""

from __future__ import annotations

import asyncio
import json
from dataclasses import asdict, dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

import structlog

from discsync.errors import ValidationError
from discsync.sync.backfill import AssetBackfill
from discsync.sync.differ import build_records, compute_plan

if TYPE_CHECKING:
    from discsync.storage.base import AssetStore, RecordStore
    from discsync.storage.database import Database
    from discsync.storage.models import LocalRecordSummary
    from discsync.sync.differ import RemoteItem
    from discsync.sync.discogs import DiscogsClient

log = structlog.get_logger(__name__)


class SyncState(StrEnum):
    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"


@dataclass
class SyncStats:
    remote_items: int = 0
    new_records: int = 0
    covers_uploaded: int = 0
    covers_repaired: int = 0
    cover_failures: int = 0
    skipped: int = 0
    errors: int = 0

    def to_json(self) -> str:
        return json.dumps(asdict(self))


class ReconcileEngine:
    """Runs one reconciliation of the remote collection into the record store.

    All collaborators are passed in; the engine never builds clients itself.
    *history*, when given, gets a ``sync_runs`` row per run.
    """

    def __init__(
        self,
        catalog: DiscogsClient,
        records: RecordStore,
        assets: AssetStore,
        *,
        history: Database | None = None,
    ) -> None:
        self._catalog = catalog
        self._records = records
        self._assets = assets
        self._history = history
        self._backfill = AssetBackfill(assets)
        self._state = SyncState.IDLE
        self._lock = asyncio.Lock()
        self._last_stats: SyncStats | None = None

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def last_stats(self) -> SyncStats | None:
        return self._last_stats

    async def run(self) -> list[RemoteItem]:
        """Reconcile once and return the full remote inventory. Raises if already running."""
        if self._lock.locked():
            raise RuntimeError("Sync already in progress")

        async with self._lock:
            self._state = SyncState.SYNCING
            run_id = None
            stats = SyncStats()
            try:
                if self._history is not None:
                    run_id = (await self._history.start_sync_run()).id
                remote = await self._reconcile(stats)
            except Exception as exc:
                self._state = SyncState.ERROR
                log.error("sync_failed", error=str(exc))
                if run_id is not None:
                    try:
                        await self._history.finish_sync_run(run_id, status="failed", error_message=str(exc))
                    except Exception as history_exc:
                        log.error("sync_history_failed", run_id=run_id, error=str(history_exc))
                raise

            self._state = SyncState.IDLE
            self._last_stats = stats
            if run_id is not None:
                await self._history.finish_sync_run(run_id, status="completed", stats_json=stats.to_json())
            log.info("sync_completed", stats=stats.to_json())
            return remote

    async def _reconcile(self, stats: SyncStats) -> list[RemoteItem]:
        # Remote inventory; any failure here aborts before writing
        remote = await self._catalog.fetch_all()
        if not isinstance(remote, list):
            raise ValidationError(f"Remote inventory is not a list: {type(remote).__name__}")
        stats.remote_items = len(remote)
        log.info("sync_start", remote_items=len(remote))

        # Local snapshot and diff
        summaries = await self._records.list_summaries()
        plan = compute_plan(remote, summaries)
        log.info(
            "sync_plan",
            existing=len(plan.existing_ids),
            new=len(plan.new_items),
            missing_covers=len(plan.missing_assets),
        )

        # Nothing to do
        if plan.is_empty:
            log.info("sync_up_to_date")
            return remote

        # Covers for new releases
        self._backfill.reset()
        stored = await self._backfill.backfill(plan.new_items)
        stats.covers_uploaded += self._backfill.uploaded
        stats.cover_failures += self._backfill.failed
        stats.skipped += self._backfill.skipped

        # Covers for existing records that never got one
        if plan.missing_assets:
            by_id = {item.external_id: item for item in remote}
            for summary in plan.missing_assets:
                await self._repair_missing(summary, by_id, stats)

        # Insert new releases
        to_insert = build_records(plan.new_items, stored)
        if to_insert:
            await self._records.upsert_records(to_insert)
            stats.new_records = len(to_insert)
            log.info("records_upserted", count=len(to_insert))

        # Callers report on the whole inventory, not the delta
        return remote

    async def _repair_missing(
        self,
        summary: LocalRecordSummary,
        by_id: dict[int, RemoteItem],
        stats: SyncStats,
    ) -> None:
        item = by_id.get(summary.external_id)
        if item is None:
            # gone upstream; records are never deleted here
            return
        if not item.cover_image_url:
            stats.skipped += 1
            return

        try:
            url = await self._assets.upload(item.cover_image_url, item.external_id)
            if not url:
                stats.cover_failures += 1
                log.warning("cover_repair_failed", release_id=item.external_id, title=item.title)
                return
            await self._records.update_asset_url(item.external_id, url)
        except Exception as exc:
            stats.errors += 1
            log.error("cover_repair_error", release_id=item.external_id, error=str(exc))
            return

        stats.covers_repaired += 1
        log.info("cover_repaired", release_id=item.external_id, title=item.title, url=url)
