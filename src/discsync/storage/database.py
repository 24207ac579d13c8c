"""Async SQLite record store."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from discsync.errors import PersistenceError
from discsync.storage.models import LocalRecordSummary, PersistedRecord, SyncRun

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS records (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    release_id INTEGER NOT NULL UNIQUE,
    title TEXT NOT NULL,
    artist TEXT NOT NULL,
    image_url TEXT NOT NULL DEFAULT '',
    asset_url TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS sync_runs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    started_at TEXT NOT NULL,
    finished_at TEXT,
    status TEXT NOT NULL CHECK(status IN ('running', 'completed', 'failed')),
    stats_json TEXT,
    error_message TEXT
);
"""


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Database:
    """Async SQLite database holding the ``records`` table and sync history."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._conn: aiosqlite.Connection | None = None

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            msg = "Database not connected. Call connect() first."
            raise RuntimeError(msg)
        return self._conn

    async def connect(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(self.path)
        self._conn.row_factory = aiosqlite.Row
        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.executescript(_SCHEMA)
        await self._conn.commit()

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    async def __aenter__(self) -> Database:
        await self.connect()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # -- records --------------------------------------------------------------

    async def list_summaries(self) -> list[LocalRecordSummary]:
        try:
            cur = await self.conn.execute("SELECT release_id, asset_url FROM records ORDER BY release_id")
            rows = await cur.fetchall()
        except aiosqlite.Error as exc:
            raise PersistenceError(f"Could not read records: {exc}") from exc
        return [LocalRecordSummary(external_id=r["release_id"], stored_asset_url=r["asset_url"]) for r in rows]

    async def upsert_records(self, records: Iterable[PersistedRecord]) -> None:
        """Insert or replace rows keyed on ``release_id`` in one transaction."""
        now = _now_iso()
        params = [
            (r.release_id, r.title, r.artist, r.image_url, r.asset_url, now, now)
            for r in records
        ]
        if not params:
            return
        try:
            await self.conn.executemany(
                """
                INSERT INTO records (release_id, title, artist, image_url, asset_url, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (release_id) DO UPDATE SET
                    title = excluded.title,
                    artist = excluded.artist,
                    image_url = excluded.image_url,
                    asset_url = COALESCE(excluded.asset_url, records.asset_url),
                    updated_at = excluded.updated_at
                """,
                params,
            )
            await self.conn.commit()
        except aiosqlite.Error as exc:
            await self.conn.rollback()
            raise PersistenceError(f"Records upsert rejected: {exc}") from exc

    async def update_asset_url(self, release_id: int, asset_url: str) -> None:
        try:
            await self.conn.execute(
                "UPDATE records SET asset_url = ?, image_url = ?, updated_at = ? WHERE release_id = ?",
                (asset_url, asset_url, _now_iso(), release_id),
            )
            await self.conn.commit()
        except aiosqlite.Error as exc:
            await self.conn.rollback()
            raise PersistenceError(f"Asset URL update rejected for {release_id}: {exc}") from exc

    async def list_records(self, *, limit: int | None = None) -> list[PersistedRecord]:
        if limit is not None:
            cur = await self.conn.execute("SELECT * FROM records ORDER BY release_id LIMIT ?", (limit,))
        else:
            cur = await self.conn.execute("SELECT * FROM records ORDER BY release_id")
        rows = await cur.fetchall()
        return [self._row_to_record(r) for r in rows]

    async def count_records(self) -> int:
        cur = await self.conn.execute("SELECT COUNT(*) AS cnt FROM records")
        row = await cur.fetchone()
        return row["cnt"]

    # -- sync_runs ------------------------------------------------------------

    async def start_sync_run(self) -> SyncRun:
        cur = await self.conn.execute(
            """
            INSERT INTO sync_runs (started_at, status)
            VALUES (?, 'running')
            RETURNING *
            """,
            (_now_iso(),),
        )
        row = await cur.fetchone()
        await self.conn.commit()
        return self._row_to_sync_run(row)

    async def finish_sync_run(
        self,
        run_id: int,
        *,
        status: str,
        stats_json: str | None = None,
        error_message: str | None = None,
    ) -> SyncRun:
        cur = await self.conn.execute(
            """
            UPDATE sync_runs SET finished_at = ?, status = ?, stats_json = ?, error_message = ?
            WHERE id = ?
            RETURNING *
            """,
            (_now_iso(), status, stats_json, error_message, run_id),
        )
        row = await cur.fetchone()
        await self.conn.commit()
        return self._row_to_sync_run(row)

    async def list_sync_runs(self, *, limit: int = 20) -> list[SyncRun]:
        cur = await self.conn.execute("SELECT * FROM sync_runs ORDER BY id DESC LIMIT ?", (limit,))
        rows = await cur.fetchall()
        return [self._row_to_sync_run(r) for r in rows]

    # -- row → model helpers --------------------------------------------------

    @staticmethod
    def _row_to_record(row: aiosqlite.Row) -> PersistedRecord:
        return PersistedRecord(
            release_id=row["release_id"],
            title=row["title"],
            artist=row["artist"],
            image_url=row["image_url"],
            asset_url=row["asset_url"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_sync_run(row: aiosqlite.Row) -> SyncRun:
        return SyncRun(
            id=row["id"],
            started_at=row["started_at"],
            finished_at=row["finished_at"],
            status=row["status"],
            stats_json=row["stats_json"],
            error_message=row["error_message"],
        )
