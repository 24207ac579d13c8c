"""Tests for discsync.cli module."""

from __future__ import annotations

import asyncio
import json
import tomllib
from pathlib import Path

import pytest
from typer.testing import CliRunner

from discsync.cli import app
from discsync.errors import TransportError
from discsync.storage.database import Database
from discsync.storage.models import PersistedRecord
from discsync.sync.differ import RemoteItem
from discsync.sync.engine import SyncStats

runner = CliRunner()


@pytest.fixture()
def sqlite_config(base_dir: Path) -> Path:
    """Write a config using the sqlite backend; returns the database path."""
    db_path = base_dir / "records.db"
    (base_dir / "config.toml").write_text(
        "[discogs]\n"
        'token = "tok"\n'
        'user = "digger"\n'
        "\n"
        "[store]\n"
        'backend = "sqlite"\n'
        f'db_path = "{db_path}"\n',
        encoding="utf-8",
    )
    return db_path


@pytest.fixture()
def quiet_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("discsync.cli.setup_logging", lambda *a, **kw: None)


def _seed(db_path: Path, records=(), runs=()) -> None:
    async def _go():
        async with Database(db_path) as db:
            await db.upsert_records(list(records))
            for status, stats, error in runs:
                run = await db.start_sync_run()
                await db.finish_sync_run(run.id, status=status, stats_json=stats, error_message=error)

    asyncio.run(_go())


# ---------------------------------------------------------------------------
# 1. --help
# ---------------------------------------------------------------------------


def test_help():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "discogs" in result.output.lower()


# ---------------------------------------------------------------------------
# 2. sync
# ---------------------------------------------------------------------------


def test_sync_missing_config_fails(base_dir: Path):
    result = runner.invoke(app, ["sync"])
    assert result.exit_code == 1
    assert "discogs.token" in result.output


def test_sync_invalid_toml_fails(base_dir: Path):
    (base_dir / "config.toml").write_text("not = [valid", encoding="utf-8")
    result = runner.invoke(app, ["sync"])
    assert result.exit_code == 1
    assert "configuration error" in result.output.lower()


def test_sync_success(sqlite_config: Path, quiet_logging, monkeypatch: pytest.MonkeyPatch):
    async def fake_run_sync(cfg):
        assert cfg.discogs.user == "digger"
        return [RemoteItem(1), RemoteItem(2)], SyncStats(new_records=2, covers_uploaded=1)

    monkeypatch.setattr("discsync.sync.runner.run_sync", fake_run_sync)
    result = runner.invoke(app, ["sync"])

    assert result.exit_code == 0, result.output
    assert "Sync complete" in result.output
    assert "2 releases" in result.output
    assert "new records: 2" in result.output


def test_sync_failure_exits_nonzero(sqlite_config: Path, quiet_logging, monkeypatch: pytest.MonkeyPatch):
    async def fake_run_sync(cfg):
        raise TransportError("Discogs returned 503")

    monkeypatch.setattr("discsync.sync.runner.run_sync", fake_run_sync)
    result = runner.invoke(app, ["sync"])

    assert result.exit_code == 1
    assert "Sync failed" in result.output
    assert "503" in result.output


def test_sync_uses_env_credentials(base_dir: Path, quiet_logging, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("PUBLIC_DISCOGS_API_TOKEN", "tok")
    monkeypatch.setenv("DISCOGS_USER", "env-user")
    monkeypatch.setenv("SUPABASE_URL", "https://p.supabase.co")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "k")
    seen = {}

    async def fake_run_sync(cfg):
        seen["user"] = cfg.discogs.user
        return [], None

    monkeypatch.setattr("discsync.sync.runner.run_sync", fake_run_sync)
    result = runner.invoke(app, ["sync"])

    assert result.exit_code == 0, result.output
    assert seen["user"] == "env-user"


# ---------------------------------------------------------------------------
# 3. records
# ---------------------------------------------------------------------------


def test_records_lists_rows(sqlite_config: Path):
    _seed(sqlite_config, records=[
        PersistedRecord(release_id=1, title="Blue", artist="Miles", asset_url="u"),
        PersistedRecord(release_id=2, title="Kind", artist="Bill"),
    ])
    result = runner.invoke(app, ["records"])
    assert result.exit_code == 0, result.output
    assert "Blue" in result.output
    assert "Kind" in result.output


def test_records_empty(sqlite_config: Path):
    result = runner.invoke(app, ["records"])
    assert result.exit_code == 0
    assert "No records" in result.output


def test_records_supabase_without_credentials(base_dir: Path):
    result = runner.invoke(app, ["records"])
    assert result.exit_code == 1
    assert "supabase.url" in result.output


# ---------------------------------------------------------------------------
# 4. status
# ---------------------------------------------------------------------------


def test_status_without_history(sqlite_config: Path):
    result = runner.invoke(app, ["status"])
    assert result.exit_code == 1
    assert "No sync history" in result.output


def test_status_shows_runs(sqlite_config: Path):
    _seed(sqlite_config, runs=[
        ("completed", json.dumps({"new_records": 4}), None),
        ("failed", None, "Discogs down"),
    ])
    result = runner.invoke(app, ["status"])
    assert result.exit_code == 0, result.output
    assert "completed" in result.output
    assert "new_records: 4" in result.output
    assert "Discogs down" in result.output


# ---------------------------------------------------------------------------
# 5. config
# ---------------------------------------------------------------------------


def test_config_set_and_show(base_dir: Path):
    result = runner.invoke(app, ["config", "set", "discogs.user", "digger"])
    assert result.exit_code == 0, result.output

    result = runner.invoke(app, ["config", "set", "discogs.token", "secret-token"])
    assert result.exit_code == 0
    assert "secret-token" not in result.output

    result = runner.invoke(app, ["config", "show"])
    assert result.exit_code == 0
    assert "digger" in result.output
    assert "secret-token" not in result.output
    assert "***" in result.output


def test_config_set_coerces_types(base_dir: Path):
    result = runner.invoke(app, ["config", "set", "discogs.per_page", "50"])
    assert result.exit_code == 0
    with open(base_dir / "config.toml", "rb") as f:
        assert tomllib.load(f)["discogs"]["per_page"] == 50


def test_config_set_invalid_value(base_dir: Path):
    result = runner.invoke(app, ["config", "set", "store.backend", "postgres"])
    assert result.exit_code == 1
    assert "Invalid value" in result.output


def test_config_set_unknown_key(base_dir: Path):
    assert runner.invoke(app, ["config", "set", "nope", "x"]).exit_code == 1
    assert runner.invoke(app, ["config", "set", "discogs.nope", "x"]).exit_code == 1
    assert runner.invoke(app, ["config", "set", "nope.user", "x"]).exit_code == 1


def test_config_set_does_not_persist_env_secrets(base_dir: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "from-env")
    runner.invoke(app, ["config", "set", "discogs.user", "digger"])
    assert "from-env" not in (base_dir / "config.toml").read_text()
