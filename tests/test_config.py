"""Tests for discsync.config module."""

from __future__ import annotations

import os
import stat
import tomllib
from pathlib import Path

import pytest
from pydantic import SecretStr

from discsync.config import (
    AppConfig,
    DiscogsConfig,
    StoreConfig,
    SupabaseConfig,
    _dump_toml,
    _format_toml_value,
    config_exists,
    ensure_dirs,
    get_base_dir,
    load_config,
    missing_fields,
    save_config,
    validate_config,
)
from discsync.errors import ConfigError

# ---------------------------------------------------------------------------
# 1. Default values
# ---------------------------------------------------------------------------


def test_discogs_config_defaults():
    cfg = DiscogsConfig()
    assert cfg.token.get_secret_value() == ""
    assert cfg.folder_id == 0
    assert cfg.per_page == 100
    assert cfg.api_base == "https://api.discogs.com"


def test_supabase_config_defaults():
    cfg = SupabaseConfig()
    assert cfg.bucket == "record-images"
    assert cfg.table == "records"
    assert cfg.asset_url_column == "supabase_image_url"


def test_store_config_defaults():
    assert StoreConfig().backend == "supabase"


def test_per_page_bounds():
    with pytest.raises(ValueError):
        DiscogsConfig(per_page=0)
    with pytest.raises(ValueError):
        DiscogsConfig(per_page=101)


# ---------------------------------------------------------------------------
# 2. Paths
# ---------------------------------------------------------------------------


def test_home_env_override(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("DISCSYNC_HOME", str(tmp_path / "elsewhere"))
    assert get_base_dir() == tmp_path / "elsewhere"


def test_derived_paths(base_dir: Path):
    cfg = AppConfig()
    assert cfg.base_dir == base_dir
    assert cfg.log_dir == base_dir / "logs"
    assert cfg.db_path == base_dir / "discsync.db"
    assert cfg.assets_dir == base_dir


def test_explicit_paths_win(base_dir: Path, tmp_path: Path):
    cfg = AppConfig(store=StoreConfig(db_path=str(tmp_path / "r.db"), assets_dir=str(tmp_path / "art")))
    assert cfg.db_path == tmp_path / "r.db"
    assert cfg.assets_dir == tmp_path / "art"


def test_ensure_dirs(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    target = tmp_path / "fresh"
    monkeypatch.setattr("discsync.config.get_base_dir", lambda: target)
    ensure_dirs()
    assert target.is_dir()
    assert (target / "logs").is_dir()


# ---------------------------------------------------------------------------
# 3. Load / save
# ---------------------------------------------------------------------------


def test_load_without_file_returns_defaults(base_dir: Path):
    assert not config_exists()
    cfg = load_config()
    assert cfg == AppConfig()


def test_save_and_load_round_trip(base_dir: Path):
    cfg = AppConfig(
        discogs=DiscogsConfig(token=SecretStr("tok"), user="digger", per_page=50),
        supabase=SupabaseConfig(url="https://p.supabase.co", service_role_key=SecretStr("k")),
    )
    save_config(cfg)

    assert config_exists()
    loaded = load_config()
    assert loaded.discogs.token.get_secret_value() == "tok"
    assert loaded.discogs.user == "digger"
    assert loaded.discogs.per_page == 50
    assert loaded.supabase.service_role_key.get_secret_value() == "k"


def test_saved_file_is_owner_only(base_dir: Path):
    save_config(AppConfig())
    mode = os.stat(base_dir / "config.toml").st_mode
    assert stat.S_IMODE(mode) == 0o600


def test_dump_toml_is_valid_toml():
    cfg = AppConfig(discogs=DiscogsConfig(user='quote"d'))
    data = tomllib.loads(_dump_toml(cfg))
    assert set(data) == {"general", "discogs", "store", "supabase"}
    assert data["discogs"]["user"] == 'quote"d'


def test_format_toml_value():
    assert _format_toml_value(True) == "true"
    assert _format_toml_value(3) == "3"
    assert _format_toml_value(SecretStr("s")) == '"s"'
    with pytest.raises(TypeError):
        _format_toml_value([1, 2])


def test_invalid_toml_raises_config_error(base_dir: Path):
    (base_dir / "config.toml").write_text("[discogs\nuser = ", encoding="utf-8")
    with pytest.raises(ConfigError, match="Invalid TOML"):
        load_config()


def test_wrong_type_raises_config_error(base_dir: Path):
    (base_dir / "config.toml").write_text('[discogs]\nper_page = "many"\n', encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config()


# ---------------------------------------------------------------------------
# 4. Environment overrides
# ---------------------------------------------------------------------------


def test_env_overrides_file(base_dir: Path, monkeypatch: pytest.MonkeyPatch):
    (base_dir / "config.toml").write_text('[discogs]\nuser = "from-file"\n', encoding="utf-8")
    monkeypatch.setenv("DISCOGS_USER", "from-env")
    monkeypatch.setenv("SUPABASE_URL", "https://env.supabase.co")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "env-key")

    cfg = load_config()
    assert cfg.discogs.user == "from-env"
    assert cfg.supabase.url == "https://env.supabase.co"
    assert cfg.supabase.service_role_key.get_secret_value() == "env-key"


def test_public_token_takes_precedence(base_dir: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("DISCOGS_TOKEN", "plain")
    monkeypatch.setenv("PUBLIC_DISCOGS_API_TOKEN", "public")
    assert load_config().discogs.token.get_secret_value() == "public"


def test_fallback_token_used_when_public_unset(base_dir: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("DISCOGS_TOKEN", "plain")
    assert load_config().discogs.token.get_secret_value() == "plain"


def test_env_ignored_when_disabled(base_dir: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("DISCOGS_USER", "from-env")
    assert load_config(env=False).discogs.user == ""


# ---------------------------------------------------------------------------
# 5. Validation
# ---------------------------------------------------------------------------


def test_validate_lists_every_missing_field():
    with pytest.raises(ConfigError) as exc_info:
        validate_config(AppConfig())
    message = str(exc_info.value)
    for name in ("discogs.token", "discogs.user", "supabase.url", "supabase.service_role_key"):
        assert name in message


def test_sqlite_backend_does_not_need_supabase():
    cfg = AppConfig(
        discogs=DiscogsConfig(token=SecretStr("t"), user="u"),
        store=StoreConfig(backend="sqlite"),
    )
    assert missing_fields(cfg) == []
    assert validate_config(cfg) is cfg


def test_empty_bucket_is_missing():
    cfg = AppConfig(
        discogs=DiscogsConfig(token=SecretStr("t"), user="u"),
        supabase=SupabaseConfig(url="https://p.supabase.co", service_role_key=SecretStr("k"), bucket=""),
    )
    assert missing_fields(cfg) == ["supabase.bucket"]
