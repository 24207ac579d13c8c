"""Configuration management for discsync."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Literal

import pydantic
from pydantic import BaseModel, Field, SecretStr

from discsync.errors import ConfigError

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

_BASE_DIR_NAME = ".discsync"
_CONFIG_FILE = "config.toml"
_DB_FILE = "discsync.db"
_LOG_DIR = "logs"

_HOME_ENV = "DISCSYNC_HOME"


def get_base_dir() -> Path:
    """Return the base directory for all discsync runtime files (~/.discsync/)."""
    override = os.environ.get(_HOME_ENV)
    if override:
        return Path(override)
    return Path.home() / _BASE_DIR_NAME


# ---------------------------------------------------------------------------
# Config models
# ---------------------------------------------------------------------------


class GeneralConfig(BaseModel):
    """Process-wide settings."""

    log_level: str = Field(default="info", description="Logging level")
    http_timeout_seconds: float = Field(default=30.0, gt=0, description="Deadline for each external call")


class DiscogsConfig(BaseModel):
    """Discogs API credentials and collection location."""

    token: SecretStr = Field(default=SecretStr(""), description="Discogs personal access token")
    user: str = Field(default="", description="Discogs username owning the collection")
    folder_id: int = Field(default=0, description="Collection folder (0 = all)")
    per_page: int = Field(default=100, ge=1, le=100, description="Releases per page")
    api_base: str = Field(default="https://api.discogs.com", description="Discogs API base URL")
    user_agent: str = Field(default="discsync/0.1", description="User-Agent sent to Discogs")


class StoreConfig(BaseModel):
    """Where records and cover art are persisted."""

    backend: Literal["supabase", "sqlite"] = Field(default="supabase", description="Record/asset backend")
    db_path: str = Field(default="", description="SQLite file for sync history and the sqlite backend records")
    assets_dir: str = Field(default="", description="Asset root for the sqlite backend; covers go to <assets_dir>/covers")
    covers_base_url: str = Field(default="", description="Public URL prefix for local covers")


class SupabaseConfig(BaseModel):
    """Supabase project credentials, table, and storage bucket."""

    url: str = Field(default="", description="Supabase project URL")
    service_role_key: SecretStr = Field(default=SecretStr(""), description="Supabase service role key")
    bucket: str = Field(default="record-images", description="Storage bucket for covers")
    table: str = Field(default="records", description="Records table")
    asset_url_column: str = Field(default="supabase_image_url", description="Column holding the stored cover URL")


class AppConfig(BaseModel):
    """Top-level application configuration."""

    general: GeneralConfig = Field(default_factory=GeneralConfig)
    discogs: DiscogsConfig = Field(default_factory=DiscogsConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    supabase: SupabaseConfig = Field(default_factory=SupabaseConfig)

    # -- derived paths (not stored in TOML) --------------------------------

    @property
    def base_dir(self) -> Path:
        return get_base_dir()

    @property
    def log_dir(self) -> Path:
        return self.base_dir / _LOG_DIR

    @property
    def db_path(self) -> Path:
        if self.store.db_path:
            return Path(self.store.db_path).expanduser()
        return self.base_dir / _DB_FILE

    @property
    def assets_dir(self) -> Path:
        if self.store.assets_dir:
            return Path(self.store.assets_dir).expanduser()
        return self.base_dir


# ---------------------------------------------------------------------------
# Filesystem helpers
# ---------------------------------------------------------------------------


def ensure_dirs() -> None:
    """Create the base directory and log directory if they don't already exist."""
    base = get_base_dir()
    base.mkdir(mode=0o700, parents=True, exist_ok=True)
    (base / _LOG_DIR).mkdir(mode=0o700, parents=True, exist_ok=True)


def config_exists() -> bool:
    """Return True if a config file is present on disk."""
    return (get_base_dir() / _CONFIG_FILE).is_file()


# ---------------------------------------------------------------------------
# Load / validate / save
# ---------------------------------------------------------------------------

# env var -> (section, field); the first name listed wins when several are set
_ENV_OVERRIDES: list[tuple[str, str, str]] = [
    ("PUBLIC_DISCOGS_API_TOKEN", "discogs", "token"),
    ("DISCOGS_TOKEN", "discogs", "token"),
    ("DISCOGS_USER", "discogs", "user"),
    ("SUPABASE_URL", "supabase", "url"),
    ("SUPABASE_SERVICE_ROLE_KEY", "supabase", "service_role_key"),
    ("SUPABASE_BUCKET", "supabase", "bucket"),
]


def _apply_env(raw: dict) -> dict:
    applied: set[tuple[str, str]] = set()
    for env_name, section, key in _ENV_OVERRIDES:
        value = os.environ.get(env_name)
        if not value or (section, key) in applied:
            continue
        raw.setdefault(section, {})[key] = value
        applied.add((section, key))
    return raw


def load_config(*, env: bool = True) -> AppConfig:
    """Load configuration from TOML plus (unless *env* is False) environment overrides.

    A missing file falls back to defaults.  Unreadable TOML or values of the
    wrong type raise :class:`ConfigError`.
    """
    path = get_base_dir() / _CONFIG_FILE
    raw: dict = {}
    if path.is_file():
        try:
            with open(path, "rb") as f:
                raw = tomllib.load(f)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc

    try:
        return AppConfig.model_validate(_apply_env(raw) if env else raw)
    except pydantic.ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


def missing_fields(config: AppConfig) -> list[str]:
    """Return the dotted names of required settings that are unset."""
    missing: list[str] = []
    if not config.discogs.token.get_secret_value():
        missing.append("discogs.token")
    if not config.discogs.user:
        missing.append("discogs.user")
    if config.store.backend == "supabase":
        if not config.supabase.url:
            missing.append("supabase.url")
        if not config.supabase.service_role_key.get_secret_value():
            missing.append("supabase.service_role_key")
        if not config.supabase.bucket:
            missing.append("supabase.bucket")
    return missing


def validate_config(config: AppConfig) -> AppConfig:
    """Raise a single :class:`ConfigError` listing every missing required field."""
    missing = missing_fields(config)
    if missing:
        raise ConfigError(f"Missing required configuration: {', '.join(missing)}")
    return config


def _format_toml_value(value: object) -> str:
    """Format a single Python value as a TOML literal."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, SecretStr):
        value = value.get_secret_value()
    if isinstance(value, str):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    msg = f"Unsupported TOML value type: {type(value)}"
    raise TypeError(msg)


def _dump_toml(config: AppConfig) -> str:
    """Serialize an AppConfig to a minimal TOML string (tables of scalars only)."""
    lines: list[str] = []
    for section_name in AppConfig.model_fields:
        section_model = getattr(config, section_name)
        lines.append(f"[{section_name}]")
        for key, value in section_model.model_dump(mode="python").items():
            lines.append(f"{key} = {_format_toml_value(value)}")
        lines.append("")
    return "\n".join(lines)


def save_config(config: AppConfig) -> None:
    """Save configuration to TOML and restrict file permissions to owner-only."""
    ensure_dirs()
    path = get_base_dir() / _CONFIG_FILE
    path.write_text(_dump_toml(config), encoding="utf-8")
    os.chmod(path, 0o600)
