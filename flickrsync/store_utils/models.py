"""Data models for the local SQLite index."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from flickrsync.refs import CollectionKind
from flickrsync.sizes import PhotoSize


@dataclass(frozen=True)
class UserRecord:
    """One known remote user."""

    nsid: str
    username: str
    screen_name: str | None = None


@dataclass(frozen=True)
class PhotoRecord:
    """
    Local view of one remote photo.

    `write_locked_at` set means another operation owns the record; it is
    never cleared by age, only by the owner or the unlock tool.
    """

    id: str
    owner_nsid: str
    size: PhotoSize | None = None
    cdn_url: str | None = None
    local_path: str | None = None
    title: str | None = None
    description: str | None = None
    safety_level: int | None = None
    date_taken: datetime | None = None
    date_uploaded: datetime | None = None
    date_last_updated: datetime | None = None
    date_last_retrieved: datetime | None = None
    remote_views: int | None = None
    remote_faves: int | None = None
    remote_comments: int | None = None
    local_views: int = 0
    blacklisted: bool = False
    deleted: bool = False
    write_locked_at: datetime | None = None
    filesystem_in_sync: bool = False

    @property
    def is_locked(self) -> bool:
        return self.write_locked_at is not None


@dataclass(frozen=True)
class CollectionRecord:
    """Local view of a photoset, gallery, favorites list, photostream or pool."""

    kind: CollectionKind
    id: str
    owner_nsid: str | None
    title: str | None = None
    description: str | None = None
    date_created: datetime | None = None
    date_last_updated: datetime | None = None
    date_last_retrieved: datetime | None = None
    date_sync_completed: datetime | None = None
    remote_views: int | None = None
    remote_comments: int | None = None
    remote_photos: int | None = None
    remote_videos: int | None = None
    blacklisted: bool = False
    deleted: bool = False
    write_locked_at: datetime | None = None

    @property
    def is_locked(self) -> bool:
        return self.write_locked_at is not None

    @property
    def is_sync_completed(self) -> bool:
        return self.date_sync_completed is not None

    @property
    def readable_id(self) -> str:
        return f"{self.kind.value} {self.id}"


@dataclass(frozen=True)
class LockedRecord:
    """Row reported by the unlock tool."""

    scope: str
    id: str
    locked_at: str
    label: str


@dataclass(frozen=True)
class UnlockSummary:
    """Counts of records released by the unlock tool."""

    db_path: str
    photos: int
    albums: int
    galleries: int
    favorites: int
    other: int

    @property
    def total(self) -> int:
        return self.photos + self.albums + self.galleries + self.favorites + self.other
