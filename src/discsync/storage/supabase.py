"""Supabase (PostgREST) record store using httpx.

Endpoints:
- GET   /rest/v1/{table}?select=...      (read, paged with limit/offset)
- POST  /rest/v1/{table}?on_conflict=release_id   (upsert)
- PATCH /rest/v1/{table}?release_id=eq.{id}       (single-record update)
"""

from __future__ import annotations

from collections.abc import Iterable

import httpx
import structlog

from discsync.config import SupabaseConfig
from discsync.errors import PersistenceError
from discsync.storage.models import LocalRecordSummary, PersistedRecord

log = structlog.get_logger(__name__)

_PAGE_SIZE = 1000


class SupabaseRecordStore:
    """Record store backed by a Supabase table."""

    def __init__(
        self,
        config: SupabaseConfig,
        *,
        timeout: float = 30.0,
        _transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._timeout = timeout
        self._transport = _transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> SupabaseRecordStore:
        kw: dict = {"timeout": self._timeout}
        if self._transport is not None:
            kw["transport"] = self._transport
        self._client = httpx.AsyncClient(**kw)
        return self

    async def __aexit__(self, *exc: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def table_url(self) -> str:
        return f"{self._config.url.rstrip('/')}/rest/v1/{self._config.table}"

    def _headers(self, **extra: str) -> dict[str, str]:
        key = self._config.service_role_key.get_secret_value()
        return {"apikey": key, "Authorization": f"Bearer {key}", **extra}

    async def _request(
        self,
        method: str,
        *,
        params: dict | None = None,
        json: dict | list | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        assert self._client is not None  # noqa: S101
        try:
            resp = await self._client.request(
                method,
                self.table_url,
                params=params,
                json=json,
                headers=headers or self._headers(),
            )
        except httpx.HTTPError as exc:
            raise PersistenceError(f"Supabase {method} failed: {exc}") from exc
        if not resp.is_success:
            raise PersistenceError(f"Supabase {method} rejected: {resp.status_code} {resp.text}")
        return resp

    async def _select_all(self, columns: str) -> list[dict]:
        rows: list[dict] = []
        offset = 0
        while True:
            resp = await self._request(
                "GET",
                params={
                    "select": columns,
                    "order": "release_id",
                    "limit": _PAGE_SIZE,
                    "offset": offset,
                },
            )
            page = resp.json()
            rows.extend(page)
            if len(page) < _PAGE_SIZE:
                return rows
            offset += _PAGE_SIZE

    # -- RecordStore ------------------------------------------------------------

    async def list_summaries(self) -> list[LocalRecordSummary]:
        column = self._config.asset_url_column
        rows = await self._select_all(f"release_id,{column}")
        return [
            LocalRecordSummary(external_id=row["release_id"], stored_asset_url=row.get(column) or None)
            for row in rows
        ]

    async def upsert_records(self, records: Iterable[PersistedRecord]) -> None:
        column = self._config.asset_url_column
        with_asset: list[dict] = []
        without_asset: list[dict] = []
        for r in records:
            row = {"release_id": r.release_id, "title": r.title, "artist": r.artist, "image_url": r.image_url}
            if r.asset_url:
                row[column] = r.asset_url
                with_asset.append(row)
            else:
                # asset column omitted; a merge keeps any stored URL
                without_asset.append(row)

        # PostgREST bulk inserts need identical keys on every row of a batch
        for payload in (with_asset, without_asset):
            if not payload:
                continue
            await self._request(
                "POST",
                params={"on_conflict": "release_id"},
                json=payload,
                headers=self._headers(Prefer="resolution=merge-duplicates,return=minimal"),
            )
            log.debug("supabase_upserted", count=len(payload))

    async def update_asset_url(self, release_id: int, asset_url: str) -> None:
        await self._request(
            "PATCH",
            params={"release_id": f"eq.{release_id}"},
            json={self._config.asset_url_column: asset_url, "image_url": asset_url},
            headers=self._headers(Prefer="return=minimal"),
        )

    async def list_records(self, *, limit: int | None = None) -> list[PersistedRecord]:
        column = self._config.asset_url_column
        rows = await self._select_all(f"release_id,title,artist,image_url,{column}")
        if limit is not None:
            rows = rows[:limit]
        return [
            PersistedRecord(
                release_id=row["release_id"],
                title=row.get("title") or "",
                artist=row.get("artist") or "",
                image_url=row.get("image_url") or "",
                asset_url=row.get(column) or None,
            )
            for row in rows
        ]
