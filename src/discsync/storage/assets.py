"""Cover-art asset stores.

Covers live at ``covers/{release_id}{extension}``.  Existence is checked by
listing the ``covers`` folder and matching the file name.

Two backends share the fetch/check/store flow in :class:`_CoverStore`:

- :class:`SupabaseAssetStore`: a Supabase storage bucket (REST API via httpx)
- :class:`LocalAssetStore`: a directory on disk
"""

from __future__ import annotations

import asyncio
import os
import posixpath
from pathlib import Path
from urllib.parse import quote, urlparse

import httpx
import structlog

from discsync.config import SupabaseConfig
from discsync.errors import FetchError, PersistenceError

log = structlog.get_logger(__name__)

COVERS_FOLDER = "covers"
CANONICAL_EXTENSION = ".jpeg"
_DEFAULT_CONTENT_TYPE = "image/jpeg"
_LIST_PAGE_SIZE = 1000


def normalize_extension(source_url: str) -> str:
    """Return the stored extension for a cover fetched from *source_url*.

    A missing extension and ``.jpg`` both become ``.jpeg`` so one cover never
    ends up under two names.  Anything else (``.png``, ``.gif``) is kept.
    """
    path = urlparse(source_url).path
    extension = posixpath.splitext(path)[1]
    if not extension or extension == ".jpg":
        return CANONICAL_EXTENSION
    return extension


def cover_filename(external_id: int, extension: str) -> str:
    return f"{external_id}{extension}"


def cover_path(external_id: int, extension: str) -> str:
    """Storage path of a cover, e.g. ``covers/123.jpeg``."""
    return f"{COVERS_FOLDER}/{cover_filename(external_id, extension)}"


class _CoverStore:
    """Shared upload flow; subclasses provide listing, writing and URLs."""

    def __init__(
        self,
        *,
        timeout: float = 30.0,
        _transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout
        self._transport = _transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self):
        kw: dict = {"timeout": self._timeout, "follow_redirects": True}
        if self._transport is not None:
            kw["transport"] = self._transport
        self._client = httpx.AsyncClient(**kw)
        return self

    async def __aexit__(self, *exc: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    # -- backend hooks --

    async def _list_names(self) -> set[str]:
        raise NotImplementedError

    async def _store(self, path: str, content: bytes, content_type: str) -> None:
        raise NotImplementedError

    def public_url(self, external_id: int, extension: str) -> str:
        raise NotImplementedError

    # -- public API --

    async def exists(self, external_id: int, extension: str) -> bool:
        names = await self._list_names()
        return cover_filename(external_id, extension) in names

    async def _fetch(self, source_url: str) -> tuple[bytes, str]:
        assert self._client is not None  # noqa: S101
        try:
            resp = await self._client.get(source_url)
        except httpx.TimeoutException as exc:
            raise FetchError(f"Timed out fetching {source_url}") from exc
        except httpx.HTTPError as exc:
            raise FetchError(f"Network error fetching {source_url}: {exc}") from exc
        if not resp.is_success:
            raise FetchError(f"Failed to fetch image: {resp.status_code} {resp.reason_phrase}")
        return resp.content, resp.headers.get("content-type") or _DEFAULT_CONTENT_TYPE

    async def upload(self, source_url: str, external_id: int) -> str | None:
        """Store the cover at *source_url* for *external_id*.

        Returns the public URL, or ``None`` when anything fails.  Never raises.
        Only the exact derived path is written; a cover already stored for the
        same release under another extension is left alone.
        """
        try:
            extension = normalize_extension(source_url)
            url = self.public_url(external_id, extension)

            if await self.exists(external_id, extension):
                log.info("cover_exists", release_id=external_id, url=url)
                return url

            log.info("cover_download", release_id=external_id, source=source_url)
            content, content_type = await self._fetch(source_url)
            await self._store(cover_path(external_id, extension), content, content_type)
        except Exception as exc:
            log.error("cover_upload_failed", release_id=external_id, error=str(exc))
            return None

        log.info("cover_uploaded", release_id=external_id, url=url)
        return url


class SupabaseAssetStore(_CoverStore):
    """Covers stored in a Supabase storage bucket.

    Endpoints:
    - POST /storage/v1/object/list/{bucket}   (body: prefix, limit, offset)
    - POST /storage/v1/object/{bucket}/{path} (x-upsert: true)
    """

    def __init__(
        self,
        config: SupabaseConfig,
        *,
        timeout: float = 30.0,
        _transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(timeout=timeout, _transport=_transport)
        self._config = config

    async def __aenter__(self) -> SupabaseAssetStore:
        return await super().__aenter__()

    @property
    def _storage_base(self) -> str:
        return f"{self._config.url.rstrip('/')}/storage/v1"

    def _headers(self, **extra: str) -> dict[str, str]:
        key = self._config.service_role_key.get_secret_value()
        return {"apikey": key, "Authorization": f"Bearer {key}", **extra}

    def public_url(self, external_id: int, extension: str) -> str:
        return (
            f"{self._storage_base}/object/public/{self._config.bucket}/"
            f"{cover_path(external_id, extension)}"
        )

    async def _list_names(self) -> set[str]:
        assert self._client is not None  # noqa: S101
        names: set[str] = set()
        offset = 0
        while True:
            try:
                resp = await self._client.post(
                    f"{self._storage_base}/object/list/{self._config.bucket}",
                    headers=self._headers(),
                    json={"prefix": COVERS_FOLDER, "limit": _LIST_PAGE_SIZE, "offset": offset},
                )
            except httpx.HTTPError as exc:
                raise PersistenceError(f"Listing {COVERS_FOLDER}/ failed: {exc}") from exc
            if not resp.is_success:
                raise PersistenceError(f"Listing {COVERS_FOLDER}/ failed: {resp.status_code} {resp.text}")
            entries = resp.json()
            names.update(entry["name"] for entry in entries if entry.get("name"))
            if len(entries) < _LIST_PAGE_SIZE:
                return names
            offset += _LIST_PAGE_SIZE

    async def _store(self, path: str, content: bytes, content_type: str) -> None:
        assert self._client is not None  # noqa: S101
        try:
            resp = await self._client.post(
                f"{self._storage_base}/object/{self._config.bucket}/{quote(path)}",
                headers=self._headers(**{"Content-Type": content_type, "x-upsert": "true"}),
                content=content,
            )
        except httpx.HTTPError as exc:
            raise PersistenceError(f"Storage upload of {path} failed: {exc}") from exc
        if not resp.is_success:
            raise PersistenceError(f"Storage upload rejected: {resp.status_code} {resp.text}")


class LocalAssetStore(_CoverStore):
    """Covers stored under ``{root}/covers`` on the local filesystem."""

    def __init__(
        self,
        root: Path,
        *,
        base_url: str = "",
        timeout: float = 30.0,
        _transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(timeout=timeout, _transport=_transport)
        self.root = root
        self._base_url = base_url.rstrip("/")

    async def __aenter__(self) -> LocalAssetStore:
        return await super().__aenter__()

    @property
    def covers_dir(self) -> Path:
        return self.root / COVERS_FOLDER

    def public_url(self, external_id: int, extension: str) -> str:
        if self._base_url:
            return f"{self._base_url}/{cover_path(external_id, extension)}"
        return (self.covers_dir / cover_filename(external_id, extension)).resolve().as_uri()

    async def _list_names(self) -> set[str]:
        def _list() -> set[str]:
            if not self.covers_dir.is_dir():
                return set()
            return set(os.listdir(self.covers_dir))

        return await asyncio.to_thread(_list)

    async def _store(self, path: str, content: bytes, content_type: str) -> None:
        target = self.root / path

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            tmp = target.with_suffix(target.suffix + ".part")
            tmp.write_bytes(content)
            os.replace(tmp, target)

        await asyncio.to_thread(_write)
