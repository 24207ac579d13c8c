"""Pydantic models for the discsync storage layer."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict

SyncStatus = Literal["running", "completed", "failed"]


class LocalRecordSummary(BaseModel):
    """Id and stored-asset state of a persisted record, read at sync start."""

    model_config = ConfigDict(frozen=True)

    external_id: int
    stored_asset_url: str | None = None


class PersistedRecord(BaseModel):
    """A collection release as stored in the records table."""

    release_id: int
    title: str
    artist: str
    image_url: str = ""
    asset_url: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class SyncRun(BaseModel):
    """Record of a single sync run."""

    id: int | None = None
    started_at: datetime
    finished_at: datetime | None = None
    status: SyncStatus
    stats_json: str | None = None
    error_message: str | None = None
