"""Shared collection sync algorithm; one subclass per collection kind."""

# pylint: disable=line-too-long

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Awaitable, Callable, ClassVar, Mapping, Optional

from tqdm import tqdm

from flickrsync import store
from flickrsync.dto import BaseDto, PhotoDto
from flickrsync.errors import (
    AlreadyLockedError,
    ApiError,
    ConfigurationError,
    ResolutionError,
    StorageError,
)
from flickrsync.identity import ClientProfile
from flickrsync.owner import ResolveOwner
from flickrsync.refs import CollectionKind, CollectionRef
from flickrsync.sizes import PhotoSize
from flickrsync.source import CollectionSource
from flickrsync.store import CollectionRecord, PhotoRecord
from flickrsync.url_parser import get_static_filename
from flickrsync.utils import dbg

PhotoSink = Callable[[PhotoRecord], Awaitable[bool]]

# Logical collection field -> DTO field, for strategies whose DTO uses the same names
DEFAULT_METADATA_FIELDS = {
    "title": "title",
    "description": "description",
    "date_created": "date_created",
    "date_updated": "date_updated",
    "views": "views",
    "comments_count": "comments_count",
    "photos_count": "photos_count",
    "videos_count": "videos_count",
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SyncOptions:
    """
    Knobs of one sync run.

    Attributes:
        ignore_completed: Skip collections that finished a full sync before.
        distrust_timestamps: Re-list collections and compare CDN filenames even
            when update dates say nothing changed.
        trust_photo_records: When False every photo is handed to the sink again.
        switch_identities: Rotate API/HTTP identities while syncing.
        index_only: Only update the index; nothing is downloaded.
    """

    ignore_completed: bool = False
    distrust_timestamps: bool = False
    trust_photo_records: bool = True
    switch_identities: bool = False
    index_only: bool = False

    def __post_init__(self) -> None:
        if self.index_only and not self.trust_photo_records:
            raise ConfigurationError(
                "Repairing files cannot be combined with index-only mode: nothing would be repaired"
            )


async def index_only_sink(photo: PhotoRecord) -> bool:
    dbg(f"Photo id={photo.id} indexed - download skipped")
    return True


async def flush_sink(sink: PhotoSink) -> bool:
    """Drain a batching sink. Plain callables queue nothing and always succeed."""
    flush = getattr(sink, "flush_all", None)
    if flush is None:
        return True
    return await flush()


def merge_collection_metadata(
    local: CollectionRecord,
    dto: BaseDto,
    fields: Mapping[str, str] = DEFAULT_METADATA_FIELDS,
    now: Optional[datetime] = None,
) -> CollectionRecord:
    """
    Apply remote collection metadata on top of the local record.

    Title, description and counters always follow the remote. The creation
    date is only filled when unknown and the update date only moves forward.
    """

    def has(name: str) -> bool:
        wire = fields.get(name)
        return wire is not None and dto.has(wire)

    def value(name: str) -> Any:
        return dto.get(fields[name]) if has(name) else None

    changes: dict[str, Any] = {"date_last_retrieved": now or _utc_now()}
    if has("title"):
        changes["title"] = value("title")
    if has("description"):
        changes["description"] = value("description")
    if local.date_created is None and value("date_created") is not None:
        changes["date_created"] = value("date_created")

    remote_updated = value("date_updated")
    if remote_updated is not None and (
        local.date_last_updated is None or remote_updated > local.date_last_updated
    ):
        changes["date_last_updated"] = remote_updated

    for name, column in (
        ("views", "remote_views"),
        ("comments_count", "remote_comments"),
        ("photos_count", "remote_photos"),
        ("videos_count", "remote_videos"),
    ):
        if value(name) is not None:
            changes[column] = value(name)
    return replace(local, **changes)


def merge_photo_metadata(
    local: PhotoRecord, dto: PhotoDto, now: Optional[datetime] = None
) -> PhotoRecord:
    """
    Apply remote photo metadata on top of the local record.

    Size and CDN URL are left alone; whether they change depends on the
    download decision.
    """
    changes: dict[str, Any] = {"date_last_retrieved": now or _utc_now()}
    if dto.has("title"):
        changes["title"] = dto.title
    if dto.has("description"):
        changes["description"] = dto.description
    if dto.safety_level is not None:
        changes["safety_level"] = dto.safety_level
    if local.date_taken is None and dto.date_taken is not None:
        changes["date_taken"] = dto.date_taken
    if local.date_uploaded is None and dto.date_uploaded is not None:
        changes["date_uploaded"] = dto.date_uploaded
    if dto.date_updated is not None and (
        local.date_last_updated is None or dto.date_updated > local.date_last_updated
    ):
        changes["date_last_updated"] = dto.date_updated
    if dto.views is not None:
        changes["remote_views"] = dto.views
    if dto.faves_count is not None:
        changes["remote_faves"] = dto.faves_count
    if dto.comments_count is not None:
        changes["remote_comments"] = dto.comments_count
    return replace(local, **changes)


def adopt_remote_file(local: PhotoRecord, dto: PhotoDto, remote_size: PhotoSize) -> PhotoRecord:
    """
    Point the record at the remote file it should be downloaded from.

    The size never goes down: a smaller remote variant keeps the local one.
    A changed CDN URL means the file on disk no longer matches the record.
    """
    if local.size is not None and remote_size < local.size:
        return local
    remote_url = dto.url_for(remote_size)
    in_sync = local.filesystem_in_sync and remote_url == local.cdn_url
    return replace(local, size=remote_size, cdn_url=remote_url, filesystem_in_sync=in_sync)


class SyncCollectionStrategy:
    """
    Template of the sync algorithm shared by every collection kind.

    Subclasses provide the collection kind, how remote metadata is fetched
    and merged, and how items are listed. Everything else (state checks,
    the decision to re-list, per-photo reconciliation and write locks)
    lives here.
    """

    KIND: ClassVar[CollectionKind]
    # Whether the API reports a last update date for this kind of collection
    HAS_UPDATE_DATE: ClassVar[bool] = True

    def __init__(
        self,
        source: CollectionSource,
        owners: ResolveOwner,
        options: Optional[SyncOptions] = None,
        db_path: Optional[str] = None,
    ) -> None:
        self.source = source
        self.owners = owners
        self.options = options or SyncOptions()
        self.db_path = db_path

    @classmethod
    def supports(cls, ref: CollectionRef) -> bool:
        return ref.kind is cls.KIND

    # ----- hooks --------------------------------------------------------

    async def collection_key(self, ref: CollectionRef) -> str:
        """Local id of the collection; resolves the owner when the id depends on it."""
        if not ref.has_local_id():
            await self.owners.ensure_canonical(ref.owner)
        return ref.collection_id

    async def refresh_metadata(
        self, ref: CollectionRef, key: str, local: Optional[CollectionRecord]
    ) -> CollectionRecord:
        """Fetch remote metadata, merge it into (or create) the local record and save it."""
        raise NotImplementedError

    def list_items(self, ref: CollectionRef) -> AsyncIterator[PhotoDto]:
        return self.source.iterate_collection(ref, self._page_finished_callback())

    # ----- algorithm ----------------------------------------------------

    async def sync_collection(self, ref: CollectionRef, sink: PhotoSink) -> bool:
        """
        Bring one collection up to date and feed photos needing a download to `sink`.

        Args:
            ref (CollectionRef): Collection to sync.
            sink (PhotoSink): Called with every photo whose file should be fetched.

        Returns:
            bool: False when anything went wrong; the collection is then never
            marked as completed.

        Raises:
            OwnerResolutionError: The owner alias cannot be resolved.
        """
        if not self.supports(ref):
            raise ValueError(
                f"{type(self).__name__} does not support {type(ref).__name__} - wrong strategy picked?"
            )

        try:
            return await self._sync(ref, sink)
        except ApiError as e:
            tqdm.write(f"[!] {ref.describe()} sync failed: API failure ({e})")
            return False

    async def _sync(self, ref: CollectionRef, sink: PhotoSink) -> bool:
        key = await self.collection_key(ref)
        local = store.get_collection(self.KIND, key, self.db_path)
        local_last_updated: Optional[datetime] = None

        if local is not None:
            verdict = self.verify_collection_state(local)
            if verdict is not None:
                return verdict
            # Captured before the metadata refresh overwrites it
            local_last_updated = local.date_last_updated

        if ref.owner is not None:
            await self.owners.ensure_canonical(ref.owner, local.owner_nsid if local else None)

        collection = await self.refresh_metadata(ref, key, local)

        if not self.should_sync_items(collection, local_last_updated):
            return True

        return await self.sync_items(collection, self.list_items(ref), sink)

    def verify_collection_state(self, collection: CollectionRecord) -> Optional[bool]:
        """Returns the sync result when the collection state decides it, else None."""
        cid = collection.readable_id
        if collection.blacklisted:
            tqdm.write(f"[~] {cid} sync skipped: collection explicitly blacklisted")
            return True
        if collection.deleted:
            tqdm.write(f"[*] {cid} sync skipped: collection previously deleted")
            return True
        if collection.is_locked:
            tqdm.write(f"[!] {cid} sync cannot complete: collection is write-locked")
            return False
        return None

    def should_sync_items(
        self, collection: CollectionRecord, local_last_updated: Optional[datetime]
    ) -> bool:
        cid = collection.readable_id
        if self.options.ignore_completed and collection.is_sync_completed:
            dbg(f"{cid} sync skipped: completed before and completed collections are ignored")
            return False

        if not collection.is_sync_completed:
            tqdm.write(f"[*] {cid} will sync: local copy was never fully synced")
            return True

        if self.options.distrust_timestamps:
            tqdm.write(f"[*] {cid} will forcefully sync: timestamps are ignored by setting")
            return True

        if not self.HAS_UPDATE_DATE:
            tqdm.write(f"[*] {cid} will attempt sync: update status is impossible to determine without re-iteration")
            return True

        remote_updated = collection.date_last_updated
        if remote_updated is None or (
            local_last_updated is not None and remote_updated <= local_last_updated
        ):
            dbg(f"{cid} sync skipped: synced at least once before and never updated since")
            return False

        tqdm.write(
            f"[*] {cid} will sync: local copy outdated ({local_last_updated or 'never updated'}) vs. remote ({remote_updated})"
        )
        return True

    async def sync_items(
        self,
        collection: CollectionRecord,
        photos: AsyncIterator[PhotoDto],
        sink: PhotoSink,
    ) -> bool:
        """
        Reconcile every listed photo while holding the collection's write lock.

        A failing photo does not stop the others, but any failure leaves the
        collection marked as not fully synced. A failing page aborts at once.
        """
        cid = collection.readable_id
        try:
            store.lock_collection_for_write(collection.kind, collection.id, self.db_path)
        except AlreadyLockedError as e:
            tqdm.write(f"[!] {cid} sync cannot complete: {e}")
            return False

        dbg(f"Locked {cid} for write")
        tqdm.write(f"[*] {cid} photos syncing started")
        result = True
        completed = False
        try:
            try:
                async for dto in photos:
                    if not await self._sync_photo_isolated(dto, collection, sink):
                        result = False
            except ApiError as e:
                tqdm.write(f"[!] {cid} listing failed: {e}")
                result = False
            # Queued downloads belong to this collection's outcome
            if not await flush_sink(sink):
                tqdm.write(f"[!] {cid} some queued downloads failed")
                result = False
            completed = result
        finally:
            store.unlock_collection(
                collection.kind,
                collection.id,
                _utc_now() if completed else None,
                self.db_path,
            )
            dbg(f"Unlocked {cid} for write")

        if not result:
            tqdm.write(f"[!] {cid} sync failed: see previous messages for details")
        return result

    async def _sync_photo_isolated(
        self, dto: PhotoDto, collection: CollectionRecord, sink: PhotoSink
    ) -> bool:
        try:
            return await self.sync_photo(dto, collection, sink)
        except (AlreadyLockedError, ApiError, ResolutionError, StorageError) as e:
            tqdm.write(f"[!] Photo id={dto.id} sync failed: {e}")
            return False

    async def sync_photo(
        self, dto: PhotoDto, collection: CollectionRecord, sink: PhotoSink
    ) -> bool:
        """
        Reconcile one listed photo with the index.

        Args:
            dto (PhotoDto): Photo as listed by the API.
            collection (CollectionRecord): Collection being synced.
            sink (PhotoSink): Receives the photo when its file should be fetched.

        Returns:
            bool: Outcome of this item; skips count as success.
        """
        photo_id = dto.id
        remote_size = dto.largest_size()
        if remote_size is None:
            tqdm.write(f"[~] Photo id={photo_id} no available sizes from API - skipping")
            return True

        local = store.get_photo(photo_id, self.db_path)
        is_new = local is None
        if local is None:
            dbg(f"{collection.readable_id} new photo id={photo_id} size={remote_size.name}")
            owner = await self.owners.resolve_photo_owner(dto, collection)
            local = PhotoRecord(
                id=photo_id,
                owner_nsid=owner.nsid,
                size=remote_size,
                cdn_url=dto.url_for(remote_size),
            )
        else:
            verdict = self.verify_photo_state(local)
            if verdict is not None:
                return verdict

        local_last_updated = local.date_last_updated
        photo = merge_photo_metadata(local, dto)
        download = self.should_download(photo, is_new, local_last_updated, dto, remote_size)
        if download and not is_new:
            photo = adopt_remote_file(photo, dto, remote_size)

        store.save_photo(photo, self.db_path)
        if store.link_photo_to_collection(collection.kind, collection.id, photo_id, self.db_path):
            dbg(f"{collection.readable_id}: linked photo id={photo_id}")

        if not download:
            return True
        return await sink(photo)

    def verify_photo_state(self, photo: PhotoRecord) -> Optional[bool]:
        if photo.blacklisted:
            tqdm.write(f"[~] Photo {photo.id} sync skipped: photo explicitly blacklisted")
            return True
        if photo.deleted:
            dbg(f"Photo {photo.id} sync skipped: photo previously deleted")
            return True
        if photo.is_locked:
            tqdm.write(f"[!] Photo {photo.id} sync cannot complete: photo is write-locked")
            return False
        if not photo.filesystem_in_sync:
            tqdm.write(f"[~] Photo {photo.id} metadata is not in sync with filesystem")
        return None

    def should_download(
        self,
        photo: PhotoRecord,
        is_new: bool,
        local_last_updated: Optional[datetime],
        dto: PhotoDto,
        remote_size: PhotoSize,
    ) -> bool:
        """Decide whether the photo's file must be (re)fetched. Order of checks matters."""
        pid = photo.id
        if is_new:
            dbg(f"Syncing photo id={pid}: new photo not yet synced")
            return True

        if not self.options.trust_photo_records:
            dbg(f"Syncing photo id={pid}: setting enforces re-verification of photo records")
            return True

        # Most likely a download crashed
        if photo.local_path is None and photo.cdn_url is not None:
            dbg(f"Syncing photo id={pid}: remote URL is known but no local file was ever fetched")
            return True

        # Bigger variants can appear without the update date changing
        if photo.size is not None:
            order = photo.size.compare_with(remote_size)
            if order < 0:
                tqdm.write(
                    f"[*] Syncing photo id={pid}: remote size ({remote_size.name}) is larger than local ({photo.size.name})"
                )
                return True
            if order > 0:
                tqdm.write(
                    f"[~] Skip sync of photo id={pid}: remote size ({remote_size.name}) is SMALLER than local ({photo.size.name})"
                )
                return False

        # A replaced photo keeps its size but gets a new CDN filename
        if self.options.distrust_timestamps:
            local_name = get_static_filename(photo.cdn_url) if photo.cdn_url else None
            remote_url = dto.url_for(remote_size)
            remote_name = get_static_filename(remote_url) if remote_url else None
            if local_name != remote_name:
                dbg(f"Syncing photo id={pid}: remote CDN file ({remote_name}) differs from local ({local_name})")
                return True

        if (
            local_last_updated is not None
            and dto.date_updated is not None
            and dto.date_updated > local_last_updated
        ):
            dbg(f"Syncing photo id={pid}: remote record is newer ({dto.date_updated}) than local ({local_last_updated})")
            return True

        dbg(f"Skip sync of photo id={pid}: remote and local records appear the same")
        return False

    # ----- identity -----------------------------------------------------

    def ensure_identity(self) -> None:
        if not self.options.switch_identities:
            return
        dbg("Switching API identity during sync")
        self.source.api.switch_identity(ClientProfile.RANDOM_CLI)

    def _page_finished_callback(self) -> Optional[Callable[[int], Any]]:
        if not self.options.switch_identities:
            return None
        self.ensure_identity()

        def on_page_finished(page: int) -> None:
            dbg(f"Page {page} finished")
            self.ensure_identity()

        return on_page_finished

    async def _new_collection(self, key: str, owner_nsid: Optional[str]) -> CollectionRecord:
        if owner_nsid:
            # The owner row must exist before the collection can reference it
            await self.owners.get_owner_user(owner_nsid)
        return CollectionRecord(kind=self.KIND, id=key, owner_nsid=owner_nsid)
