"""Asset downloading and on-disk placement."""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Mapping, Optional, Tuple

import requests
from filetype import guess

from .config import CloneConfig
from .errors import AssetFetchFailure
from .models import AssetCatalog, AssetRecord
from .utils import classify_asset, get_extension, hash_url, is_data_url, truncate

logger = logging.getLogger("page_cloner")

ASSETS_DIRNAME = "assets"


@dataclass
class FetchedAsset:
    """Result of one successful download."""

    url: str
    local_path: str
    full_path: Path
    content_type: str
    bucket: str
    byte_size: int


def sniff_extension(data: bytes) -> str:
    """Guess an extension from the file signature; returns ``""`` when unknown."""
    kind = guess(data)
    if not kind:
        return ""
    ext = kind.extension.lower()
    if ext == "jpeg":
        ext = "jpg"
    return f".{ext}"


class AssetFetcher:
    """Downloads assets into ``<output_dir>/assets/<bucket>/<hash><ext>``.

    Requests are plain blocking ``requests`` calls executed in worker threads,
    at most ``config.max_concurrent_downloads`` at a time. A session is not
    shared across threads: each worker thread gets its own from
    *session_factory*, and :meth:`close` closes them all.
    """

    def __init__(
        self,
        output_dir: Path,
        config: CloneConfig,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ) -> None:
        self.output_dir = output_dir
        self.config = config
        self.session_factory = session_factory
        self._local = threading.local()
        self._sessions: List[requests.Session] = []
        self._sessions_lock = threading.Lock()
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._closed = False

    @property
    def session(self) -> requests.Session:
        """The calling thread's session, created on first use."""
        session = getattr(self._local, "session", None)
        if session is None:
            session = self.session_factory()
            session.headers.update({"User-Agent": self.config.user_agent})
            self._local.session = session
            with self._sessions_lock:
                self._sessions.append(session)
        return session

    def close(self) -> None:
        self._closed = True
        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()

    def fetch(self, url: str, content_type_hint: Optional[str] = None) -> FetchedAsset:
        """Download a single URL. Raises :class:`AssetFetchFailure` on any problem."""
        if is_data_url(url):
            raise AssetFetchFailure(url, "data URLs are not fetched")
        try:
            resp = self.session.get(url, timeout=self.config.asset_timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise AssetFetchFailure(url, str(exc)) from exc

        content_type = resp.headers.get("Content-Type") or content_type_hint or ""
        data = resp.content
        extension = get_extension(url, content_type) or sniff_extension(data)
        bucket = classify_asset(extension, content_type)
        filename = hash_url(url) + extension
        local_path = f"{ASSETS_DIRNAME}/{bucket}/{filename}"
        destination = self.output_dir / ASSETS_DIRNAME / bucket / filename

        if self._closed:
            # The run was aborted while this download was in flight.
            raise AssetFetchFailure(url, "fetcher closed")
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            destination.write_bytes(data)
        except OSError as exc:
            raise AssetFetchFailure(url, f"write failed: {exc}") from exc

        return FetchedAsset(
            url=url,
            local_path=local_path,
            full_path=destination,
            content_type=content_type,
            bucket=bucket,
            byte_size=len(data),
        )

    async def fetch_async(
        self, url: str, content_type_hint: Optional[str] = None
    ) -> Optional[FetchedAsset]:
        """Download in a worker thread; returns ``None`` instead of raising."""
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(max(1, self.config.max_concurrent_downloads))
        async with self._semaphore:
            try:
                return await asyncio.to_thread(self.fetch, url, content_type_hint)
            except AssetFetchFailure as exc:
                logger.warning("Failed to download %s: %s", truncate(url, 60), exc.reason)
                return None

    async def fetch_records(
        self,
        records: Iterable[AssetRecord],
        hints: Optional[Mapping[str, str]] = None,
    ) -> Tuple[int, int]:
        """Download every record concurrently and fill in the successful ones.

        Returns ``(downloaded, failed)`` once every download has finished.
        """
        hints = hints or {}
        pending: List[AssetRecord] = [record for record in records if not record.downloaded]
        results = await asyncio.gather(
            *(self.fetch_async(record.source_url, hints.get(record.source_url)) for record in pending)
        )
        downloaded = 0
        for record, fetched in zip(pending, results):
            if fetched is None:
                continue
            apply_fetch(record, fetched)
            downloaded += 1
        return downloaded, len(pending) - downloaded

    async def fetch_catalog(
        self,
        catalog: AssetCatalog,
        hints: Optional[Mapping[str, str]] = None,
    ) -> Tuple[int, int]:
        return await self.fetch_records(catalog, hints)


def apply_fetch(record: AssetRecord, fetched: FetchedAsset) -> None:
    record.local_path = fetched.local_path
    record.content_type = fetched.content_type
    record.bucket = fetched.bucket
    record.byte_size = fetched.byte_size
