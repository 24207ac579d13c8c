"""Cover-art backfill for a batch of remote items."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from discsync.storage.assets import normalize_extension

if TYPE_CHECKING:
    from discsync.storage.base import AssetStore
    from discsync.sync.differ import RemoteItem

log = structlog.get_logger(__name__)


class AssetBackfill:
    """Make sure every item in a batch has its cover in the asset store.

    Items are handled one at a time.  A failure on one item is logged and the
    batch carries on; the next sync run retries whatever is still missing.
    """

    def __init__(self, assets: AssetStore) -> None:
        self._assets = assets
        self._handled: dict[int, str | None] = {}
        self.uploaded = 0
        self.failed = 0
        self.skipped = 0

    def reset(self) -> None:
        self._handled.clear()
        self.uploaded = self.failed = self.skipped = 0

    async def backfill(self, items: list[RemoteItem]) -> dict[int, str]:
        """Store covers for *items*; return ``{release_id: stored_url}`` for successes."""
        stored: dict[int, str] = {}
        log.info("backfill_start", count=len(items))

        for item in items:
            if item.external_id in self._handled:
                url = self._handled[item.external_id]
                if url:
                    stored[item.external_id] = url
                continue

            if not item.cover_image_url:
                log.warning("cover_missing", release_id=item.external_id, title=item.title)
                self.skipped += 1
                continue

            try:
                url = await self._backfill_one(item)
            except Exception as exc:
                log.error("backfill_item_error", release_id=item.external_id, error=str(exc))
                url = None

            self._handled[item.external_id] = url
            if url:
                stored[item.external_id] = url
            else:
                self.failed += 1
                log.warning("cover_upload_skipped", release_id=item.external_id, title=item.title)

        log.info("backfill_done", stored=len(stored), failed=self.failed, skipped=self.skipped)
        return stored

    async def _backfill_one(self, item: RemoteItem) -> str | None:
        extension = normalize_extension(item.cover_image_url)
        if await self._assets.exists(item.external_id, extension):
            log.info("cover_exists_skip", release_id=item.external_id, title=item.title)
            return self._assets.public_url(item.external_id, extension)

        url = await self._assets.upload(item.cover_image_url, item.external_id)
        if url:
            self.uploaded += 1
        return url
