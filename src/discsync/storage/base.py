"""Interfaces the reconciliation engine depends on."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from discsync.storage.models import LocalRecordSummary, PersistedRecord


class RecordStore(Protocol):
    """Durable records table keyed on ``release_id``."""

    async def list_summaries(self) -> list[LocalRecordSummary]: ...

    async def upsert_records(self, records: Iterable[PersistedRecord]) -> None: ...

    async def update_asset_url(self, release_id: int, asset_url: str) -> None: ...

    async def list_records(self, *, limit: int | None = None) -> list[PersistedRecord]: ...


class AssetStore(Protocol):
    """Cover-art storage addressed by ``covers/{release_id}{extension}``."""

    async def exists(self, external_id: int, extension: str) -> bool: ...

    def public_url(self, external_id: int, extension: str) -> str: ...

    async def upload(self, source_url: str, external_id: int) -> str | None: ...
