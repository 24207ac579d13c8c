"""Shared fixtures for discsync tests."""

from __future__ import annotations

from pathlib import Path

import pytest

_ENV_VARS = (
    "DISCSYNC_HOME",
    "PUBLIC_DISCOGS_API_TOKEN",
    "DISCOGS_TOKEN",
    "DISCOGS_USER",
    "SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
    "SUPABASE_BUCKET",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's real credentials out of every test."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def base_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Redirect all discsync runtime files to a temporary directory.

    Patches ``discsync.config.get_base_dir`` so that nothing touches the real
    ``~/.discsync/``.
    """
    fake_base = tmp_path / ".discsync"
    fake_base.mkdir()
    (fake_base / "logs").mkdir()

    monkeypatch.setattr("discsync.config.get_base_dir", lambda: fake_base)

    return fake_base
