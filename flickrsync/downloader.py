"""Batched photo download pipeline."""

# pylint: disable=line-too-long

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from aiohttp import ClientResponse, ClientSession, client_exceptions
from tqdm import tqdm

from flickrsync import store
from flickrsync.config import BATCH_SIZE
from flickrsync.errors import ConfigurationError, StorageError, TransportError
from flickrsync.identity import ClientProfile, HttpClientConfig, IdentityPool
from flickrsync.retry import CDN_RETRY, RetryPolicy
from flickrsync.storage import FileInTransit, StorageProvider
from flickrsync.store import PhotoRecord
from flickrsync.utils import dbg, format_size

CHUNK_SIZE = 64 * 1024
UNKNOWN_SIZE = -1


def _ignore_status(_status: "DownloadJobStatus") -> None:
    return None


@dataclass
class DownloadJobStatus:
    """
    Progress of one file download.

    `bytes_total` is UNKNOWN_SIZE (-1) when the server did not declare a
    Content-Length; it never means zero.
    """

    job_id: str
    reportee: Callable[["DownloadJobStatus"], Any] = field(default=_ignore_status, repr=False)
    bytes_downloaded: int = UNKNOWN_SIZE
    bytes_total: int = UNKNOWN_SIZE
    completed: bool = False
    error: Optional[str] = None

    def report(self) -> None:
        self.reportee(self)

    def finish(self) -> None:
        self.completed = True
        self.report()

    def fail(self, error: str) -> None:
        self.completed = True
        self.error = error
        self.report()


ProgressObserver = Callable[[DownloadJobStatus], Any]


class TqdmProgressObserver:
    """Renders one tqdm bar per running download, keyed by job id."""

    def __init__(self, position: int = 1) -> None:
        self.position = position
        self._bars: dict[str, tqdm] = {}

    def __call__(self, status: DownloadJobStatus) -> None:
        bar = self._bars.get(status.job_id)
        if bar is None:
            bar = tqdm(
                desc=f"Photo {status.job_id}",
                total=status.bytes_total if status.bytes_total >= 0 else None,
                unit="B",
                unit_scale=True,
                unit_divisor=1024,
                leave=False,
                position=self.position,
            )
            self._bars[status.job_id] = bar

        if status.bytes_total >= 0 and bar.total != status.bytes_total:
            bar.total = status.bytes_total
        if status.bytes_downloaded > bar.n:
            bar.update(status.bytes_downloaded - bar.n)

        if status.completed:
            if status.error:
                tqdm.write(f"[!] Photo {status.job_id}: {status.error}")
            bar.close()
            del self._bars[status.job_id]

    def close(self) -> None:
        for bar in self._bars.values():
            bar.close()
        self._bars.clear()


async def _stream_response_to_file(
    response: ClientResponse,
    file_path: str,
    status: DownloadJobStatus,
    chunk_size: int = CHUNK_SIZE,
) -> int:
    """Stream response content to disk, reporting progress on every chunk."""
    declared = response.headers.get("Content-Length", "")
    status.bytes_total = int(declared) if declared.isdigit() else UNKNOWN_SIZE
    status.bytes_downloaded = 0
    status.report()
    dbg(f"Saving to '{file_path}' size={format_size(status.bytes_total)}")

    with open(file_path, "wb") as file:
        while chunk := await response.content.read(chunk_size):
            file.write(chunk)
            status.bytes_downloaded += len(chunk)
            status.report()

    if status.bytes_total >= 0 and status.bytes_downloaded != status.bytes_total:
        raise TransportError(
            f"Truncated download: got {status.bytes_downloaded} of {status.bytes_total} bytes"
        )
    return status.bytes_downloaded


class FetchPhotoToDisk:
    """
    Sink downloading photo files from the CDN into storage.

    With a batch size of 1 every call downloads immediately and returns the
    real outcome. With larger batches photo ids are queued and fetched
    concurrently once the queue is full; queued calls return True and the
    outcome of each file is persisted on its record instead. Collection syncs
    await flush_all() before completing, so the last partial batch counts
    toward their result.
    """

    def __init__(
        self,
        session: ClientSession,
        pool: IdentityPool,
        storage: StorageProvider,
        batch_size: int = BATCH_SIZE,
        switch_identities: bool = False,
        observer: Optional[ProgressObserver] = None,
        db_path: Optional[str] = None,
        retry: RetryPolicy = CDN_RETRY,
        rng: Optional[random.Random] = None,
    ) -> None:
        if batch_size < 1:
            raise ConfigurationError(
                f"A download batch must have a size of at least one (got {batch_size})"
            )
        self.session = session
        self.pool = pool
        self.storage = storage
        self.batch_size = batch_size
        self.switch_identities = switch_identities
        self.observer = observer
        self.db_path = db_path
        self.retry = retry
        self._rng = rng or random.Random()
        self._http: Optional[HttpClientConfig] = None
        self._enqueued: list[str] = []
        self.downloaded = 0
        self.skipped = 0
        self.failed = 0

    async def __call__(self, photo: PhotoRecord) -> bool:
        # Unit mode; the queue may still hold ids if the batch size was changed
        if self.batch_size == 1 and not self._enqueued:
            return await self.fetch(photo.id)

        # Only ids are queued; the record is re-read when the batch runs
        self._enqueued.append(photo.id)
        if len(self._enqueued) >= self.batch_size:
            return await self._fetch_enqueued()
        return True

    async def flush_all(self) -> bool:
        """Download whatever is still queued. Returns False if any file failed."""
        if not self._enqueued:
            return True
        return await self._fetch_enqueued()

    async def _fetch_enqueued(self) -> bool:
        photo_ids, self._enqueued = self._enqueued, []
        dbg(f"Fetching {len(photo_ids)} awaiting photo(s)")
        results = await asyncio.gather(
            *(self.fetch(photo_id) for photo_id in photo_ids), return_exceptions=True
        )

        overall = True
        for photo_id, result in zip(photo_ids, results):
            if isinstance(result, Exception):
                self.failed += 1
                tqdm.write(f"[!] Error downloading photo {photo_id}: {result}")
                overall = False
            elif not result:
                overall = False
        return overall

    def _http_config(self) -> HttpClientConfig:
        # Identity may change between files of one batch, not only per batch
        if self._http is None:
            profile = ClientProfile.RANDOM_BROWSER if self.switch_identities else ClientProfile.COMMON_CLI
            self._http = self.pool.http_config(profile)
        elif self.switch_identities and self._rng.random() < 0.5:
            self._http = self.pool.http_config(ClientProfile.RANDOM_BROWSER)
        return self._http

    async def fetch(self, photo_id: str) -> bool:
        """
        Download one photo to storage.

        Args:
            photo_id (str): Id of a photo already saved in the index.

        Returns:
            bool: True when the file is in place (downloaded now or before).

        Raises:
            AlreadyLockedError: Another operation holds the photo's write lock.
        """
        photo = store.get_photo(photo_id, self.db_path)
        if photo is None:
            tqdm.write(f"[!] Photo id={photo_id} was enqueued but does not exist in the index")
            self.failed += 1
            return False

        if photo.filesystem_in_sync and self.storage.exists(photo):
            dbg(f"Photo id={photo_id} already exists locally - skipping download")
            self.skipped += 1
            return True

        if not photo.cdn_url:
            tqdm.write(f"[!] Photo id={photo_id} has no known CDN URL - cannot download")
            self.failed += 1
            return False

        photo = store.lock_photo_for_write(photo_id, self.db_path)
        status = DownloadJobStatus(photo_id, self.observer or _ignore_status)
        handle: Optional[FileInTransit] = None
        try:
            handle = self.storage.open_for_write(photo, photo.size)
            await self._download(photo, handle, status)
            final_path = self.storage.commit(handle)
        except (
            TransportError,
            StorageError,
            OSError,
            client_exceptions.ClientError,
            asyncio.TimeoutError,
        ) as e:
            error = f"{type(e).__name__}: {e}"
            tqdm.write(f"[!] Download of {photo.cdn_url} failed due to {error}")
            if handle is not None:
                self._abort_quietly(handle)
            store.unlock_photo(photo_id, False, db_path=self.db_path)
            status.fail(error)
            self.failed += 1
            return False

        store.unlock_photo(photo_id, True, final_path, self.db_path)
        status.finish()
        self.downloaded += 1
        dbg(f"Fetching {photo.cdn_url} to {final_path} finished successfully")
        return True

    async def _download(
        self, photo: PhotoRecord, handle: FileInTransit, status: DownloadJobStatus
    ) -> None:
        http = self._http_config()
        dbg(f"Requesting {photo.cdn_url} via ua='{http.agent.user_agent}' prx={http.proxy or '-'}")
        response = await self.retry.request(
            self.session, "GET", photo.cdn_url, **http.as_request_kwargs()
        )
        async with response:
            if response.status not in (200, 206):
                raise TransportError(f"HTTP {response.status} at {photo.cdn_url}")
            ctype = response.headers.get("Content-Type", "")
            if ctype.lower().startswith("text/"):
                raise TransportError(f"Expected media but got {ctype} at {photo.cdn_url}")
            await _stream_response_to_file(response, handle.temp_path, status)

    def _abort_quietly(self, handle: FileInTransit) -> None:
        try:
            self.storage.abort(handle)
        except StorageError as e:
            tqdm.write(f"[!] {e}")
