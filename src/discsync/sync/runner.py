"""Build the sync components from configuration and run one reconciliation."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager
from typing import TYPE_CHECKING

import structlog

from discsync.config import missing_fields, validate_config
from discsync.errors import ConfigError
from discsync.storage.assets import LocalAssetStore, SupabaseAssetStore
from discsync.storage.database import Database
from discsync.storage.supabase import SupabaseRecordStore
from discsync.sync.discogs import DiscogsClient
from discsync.sync.engine import ReconcileEngine, SyncStats

if TYPE_CHECKING:
    from discsync.config import AppConfig
    from discsync.storage.base import RecordStore
    from discsync.sync.differ import RemoteItem

log = structlog.get_logger(__name__)


@asynccontextmanager
async def open_record_store(config: AppConfig) -> AsyncIterator[RecordStore]:
    """Open the configured record store for reading (used by ``discsync records``)."""
    if config.store.backend == "supabase":
        missing = [name for name in missing_fields(config) if name.startswith("supabase.")]
        if missing:
            raise ConfigError(f"Missing required configuration: {', '.join(missing)}")
        async with SupabaseRecordStore(config.supabase, timeout=config.general.http_timeout_seconds) as store:
            yield store
    else:
        async with Database(config.db_path) as db:
            yield db


async def run_sync(config: AppConfig) -> tuple[list[RemoteItem], SyncStats | None]:
    """Validate *config*, open every client, and reconcile once.

    The local SQLite database always holds the sync history; with the
    ``sqlite`` backend it is also the record store.
    """
    validate_config(config)
    timeout = config.general.http_timeout_seconds

    async with AsyncExitStack() as stack:
        history = await stack.enter_async_context(Database(config.db_path))
        catalog = await stack.enter_async_context(DiscogsClient(config.discogs, timeout=timeout))

        if config.store.backend == "supabase":
            records = await stack.enter_async_context(SupabaseRecordStore(config.supabase, timeout=timeout))
            assets = await stack.enter_async_context(SupabaseAssetStore(config.supabase, timeout=timeout))
        else:
            records = history
            assets = await stack.enter_async_context(
                LocalAssetStore(
                    config.assets_dir,
                    base_url=config.store.covers_base_url,
                    timeout=timeout,
                )
            )

        log.info("components_ready", backend=config.store.backend, user=config.discogs.user)
        engine = ReconcileEngine(catalog, records, assets, history=history)
        remote = await engine.run()
        return remote, engine.last_stats
