"""Remote item type and diff computation between remote and local records."""

from __future__ import annotations

from dataclasses import dataclass, field

from discsync.storage.models import LocalRecordSummary, PersistedRecord

UNKNOWN_TITLE = "Unknown Title"
UNKNOWN_ARTIST = "Unknown Artist"


@dataclass(frozen=True)
class RemoteItem:
    """A release as fetched from the Discogs collection API."""

    external_id: int  # Discogs release id
    title: str = ""
    primary_artist: str = ""
    cover_image_url: str = ""  # empty when Discogs has no cover


@dataclass
class ReconcilePlan:
    """What a sync run has to do, computed from both inventories."""

    existing_ids: set[int] = field(default_factory=set)
    new_items: list[RemoteItem] = field(default_factory=list)
    missing_assets: list[LocalRecordSummary] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.new_items and not self.missing_assets


def compute_plan(
    remote: list[RemoteItem],
    summaries: list[LocalRecordSummary],
) -> ReconcilePlan:
    """Split the remote inventory into new items and records missing covers.

    New items are de-duplicated by id, keeping the first occurrence, so a
    repeated release in the remote listing never produces two inserts.
    """
    existing_ids = {s.external_id for s in summaries}
    missing = [s for s in summaries if not s.stored_asset_url]

    seen: set[int] = set()
    new_items: list[RemoteItem] = []
    for item in remote:
        if item.external_id in existing_ids or item.external_id in seen:
            continue
        seen.add(item.external_id)
        new_items.append(item)

    return ReconcilePlan(existing_ids=existing_ids, new_items=new_items, missing_assets=missing)


def build_records(
    new_items: list[RemoteItem],
    stored_urls: dict[int, str],
) -> list[PersistedRecord]:
    """Build the rows to insert for *new_items*.

    ``image_url`` prefers the cover stored during this run and falls back to
    the remote cover URL.  ``asset_url`` is only set for confirmed uploads.
    """
    records: list[PersistedRecord] = []
    for item in new_items:
        stored = stored_urls.get(item.external_id)
        records.append(
            PersistedRecord(
                release_id=item.external_id,
                title=item.title or UNKNOWN_TITLE,
                artist=item.primary_artist or UNKNOWN_ARTIST,
                image_url=stored or item.cover_image_url or "",
                asset_url=stored,
            )
        )
    return records
