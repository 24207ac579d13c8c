"""Async Discogs collection client using httpx.

Endpoint:
- GET /users/{user}/collection/folders/{folder}/releases (per_page, page)

Page 1 tells us ``pagination.items``; the remaining pages are then fetched
one at a time, in order.
"""

from __future__ import annotations

import math

import httpx
import structlog

from discsync.config import DiscogsConfig
from discsync.errors import TransportError, ValidationError
from discsync.sync.differ import RemoteItem

log = structlog.get_logger(__name__)


def parse_release(entry: dict) -> RemoteItem:
    """Turn one ``releases[]`` entry of a collection page into a RemoteItem."""
    if not isinstance(entry, dict) or "id" not in entry:
        raise ValidationError(f"Release entry without id: {entry!r}")
    try:
        release_id = int(entry["id"])
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Release id is not an integer: {entry['id']!r}") from exc

    info = entry.get("basic_information") or {}
    artists = info.get("artists") or []
    artist_name = artists[0].get("name", "") if artists and isinstance(artists[0], dict) else ""

    return RemoteItem(
        external_id=release_id,
        title=info.get("title") or "",
        primary_artist=artist_name or "",
        cover_image_url=info.get("cover_image") or "",
    )


class DiscogsClient:
    """Async Discogs collection client."""

    def __init__(
        self,
        config: DiscogsConfig,
        *,
        timeout: float = 30.0,
        _transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._timeout = timeout
        self._transport = _transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> DiscogsClient:
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
    def collection_url(self) -> str:
        base = self._config.api_base.rstrip("/")
        return f"{base}/users/{self._config.user}/collection/folders/{self._config.folder_id}/releases"

    # -- request helper --

    async def _get_page(self, page: int) -> dict:
        assert self._client is not None  # noqa: S101

        headers = {
            "Authorization": f"Discogs token={self._config.token.get_secret_value()}",
            "User-Agent": self._config.user_agent,
        }
        try:
            resp = await self._client.get(
                self.collection_url,
                headers=headers,
                params={"per_page": self._config.per_page, "page": page},
            )
        except httpx.TimeoutException as exc:
            raise TransportError(f"Discogs request timed out on page {page}") from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"Discogs network error on page {page}: {exc}") from exc

        if not resp.is_success:
            raise TransportError(f"Failed to fetch Discogs data: {resp.status_code} {resp.reason_phrase}")

        try:
            data = resp.json()
        except ValueError as exc:
            raise ValidationError(f"Discogs page {page} is not JSON") from exc

        if not isinstance(data, dict) or not isinstance(data.get("releases"), list):
            raise ValidationError(f"Discogs page {page} has no releases list")
        return data

    def _page_size(self, first: dict) -> int:
        """Page size the server actually used; Discogs caps ``per_page`` at 100."""
        try:
            size = int(first["pagination"]["per_page"])
        except (KeyError, TypeError, ValueError):
            return self._config.per_page
        return size if size > 0 else self._config.per_page

    # -- public API --

    async def fetch_all(self) -> list[RemoteItem]:
        """Fetch the whole collection, page by page, in arrival order."""
        log.info("discogs_fetch_start", user=self._config.user)

        first = await self._get_page(1)
        try:
            total_items = int(first["pagination"]["items"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ValidationError("Discogs response has no pagination.items") from exc

        page_size = self._page_size(first)
        items = [parse_release(entry) for entry in first["releases"]]
        total_pages = math.ceil(total_items / page_size)
        log.info("discogs_pages", total_items=total_items, page_size=page_size, total_pages=total_pages)

        for page in range(2, total_pages + 1):
            log.debug("discogs_fetch_page", page=page, total_pages=total_pages)
            data = await self._get_page(page)
            items.extend(parse_release(entry) for entry in data["releases"])

        log.info("discogs_fetch_done", count=len(items))
        return items
