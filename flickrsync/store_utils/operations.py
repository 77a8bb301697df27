"""High-level local index operations."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from flickrsync.errors import AlreadyLockedError
from flickrsync.refs import CollectionKind

from .db import (
    COLLECTION_COLUMNS,
    PHOTO_COLUMNS,
    _collection_values,
    _open_db,
    _photo_values,
    _to_collection,
    _to_photo,
    _to_ts,
    _to_user,
    _upsert_sql,
    _utc_now,
)
from .models import (
    CollectionRecord,
    LockedRecord,
    PhotoRecord,
    UnlockSummary,
    UserRecord,
)

LOCK_SCOPES = ("all", "photos", "albums", "galleries", "favorites")
_SCOPE_KINDS = {
    "albums": (CollectionKind.ALBUM,),
    "galleries": (CollectionKind.GALLERY,),
    "favorites": (CollectionKind.FAVORITES,),
}


# ===== users =====


def get_user(nsid: str, db_path: str | None = None) -> UserRecord | None:
    """Return the user with the given NSID, if known."""
    conn, _ = _open_db(db_path)
    try:
        row = conn.execute("SELECT * FROM users WHERE nsid = ?", (nsid,)).fetchone()
        return _to_user(row) if row else None
    finally:
        conn.close()


def find_user_by_identifier(
    identifier: str, db_path: str | None = None
) -> UserRecord | None:
    """
    Find a user by NSID or screen name.

    NSID matches win over screen name matches so that an alias colliding with
    someone else's NSID cannot shadow that user.
    """
    conn, _ = _open_db(db_path)
    try:
        row = conn.execute("SELECT * FROM users WHERE nsid = ?", (identifier,)).fetchone()
        if row is None:
            row = conn.execute(
                "SELECT * FROM users WHERE screen_name = ?", (identifier,)
            ).fetchone()
        return _to_user(row) if row else None
    finally:
        conn.close()


def save_user(user: UserRecord, db_path: str | None = None) -> UserRecord:
    """Insert or update a user. An empty screen name never erases a known one."""
    conn, _ = _open_db(db_path)
    try:
        with conn:
            if user.screen_name:
                # Screen names are reassignable; release it from any previous holder.
                conn.execute(
                    "UPDATE users SET screen_name = NULL WHERE screen_name = ? AND nsid <> ?",
                    (user.screen_name, user.nsid),
                )
            conn.execute(
                """
                INSERT INTO users (nsid, username, screen_name) VALUES (?, ?, ?)
                ON CONFLICT(nsid) DO UPDATE SET
                    username = excluded.username,
                    screen_name = COALESCE(excluded.screen_name, users.screen_name)
                """,
                (user.nsid, user.username, user.screen_name),
            )
        row = conn.execute("SELECT * FROM users WHERE nsid = ?", (user.nsid,)).fetchone()
        return _to_user(row)
    finally:
        conn.close()


# ===== photos =====


def get_photo(photo_id: str, db_path: str | None = None) -> PhotoRecord | None:
    conn, _ = _open_db(db_path)
    try:
        row = conn.execute("SELECT * FROM photos WHERE id = ?", (photo_id,)).fetchone()
        return _to_photo(row) if row else None
    finally:
        conn.close()


def save_photo(photo: PhotoRecord, db_path: str | None = None) -> None:
    """
    Persist photo metadata.

    The lock column is managed only by lock_photo_for_write/unlock_photo, and
    a row locked by another operation is never overwritten.

    Raises:
        AlreadyLockedError: The stored row is write-locked.
    """
    sql = _upsert_sql(
        "photos",
        PHOTO_COLUMNS,
        ("id",),
        preserve=("write_locked_at",),
        guard="photos.write_locked_at IS NULL",
    )
    values = list(_photo_values(photo))
    values[PHOTO_COLUMNS.index("write_locked_at")] = None
    conn, _ = _open_db(db_path)
    try:
        with conn:
            cur = conn.execute(sql, values)
        if cur.rowcount == 0:
            raise AlreadyLockedError(f"Photo {photo.id} is locked for write")
    finally:
        conn.close()


def lock_photo_for_write(photo_id: str, db_path: str | None = None) -> PhotoRecord:
    """
    Atomically acquire the write lock of a photo.

    Raises:
        AlreadyLockedError: The photo is already locked (or does not exist).
    """
    conn, _ = _open_db(db_path)
    try:
        with conn:
            cur = conn.execute(
                "UPDATE photos SET write_locked_at = ? WHERE id = ? AND write_locked_at IS NULL",
                (_to_ts(_utc_now()), photo_id),
            )
        if cur.rowcount != 1:
            raise AlreadyLockedError(f"Photo {photo_id} is already locked for write")
        row = conn.execute("SELECT * FROM photos WHERE id = ?", (photo_id,)).fetchone()
        return _to_photo(row)
    finally:
        conn.close()


def unlock_photo(
    photo_id: str,
    filesystem_in_sync: bool,
    local_path: str | None = None,
    db_path: str | None = None,
) -> None:
    """
    Release a photo lock, recording whether the file on disk is trustworthy.

    Args:
        photo_id (str): Photo to release.
        filesystem_in_sync (bool): Whether the local file matches the record.
        local_path (str | None): New local path; None keeps the stored one.
        db_path (str | None): Optional path override for SQLite DB.
    """
    conn, _ = _open_db(db_path)
    try:
        with conn:
            conn.execute(
                """
                UPDATE photos
                SET write_locked_at = NULL, filesystem_in_sync = ?,
                    local_path = COALESCE(?, local_path)
                WHERE id = ?
                """,
                (int(filesystem_in_sync), local_path, photo_id),
            )
    finally:
        conn.close()


# ===== collections =====


def get_collection(
    kind: CollectionKind, collection_id: str, db_path: str | None = None
) -> CollectionRecord | None:
    conn, _ = _open_db(db_path)
    try:
        row = conn.execute(
            "SELECT * FROM collections WHERE kind = ? AND id = ?",
            (kind.value, collection_id),
        ).fetchone()
        return _to_collection(row) if row else None
    finally:
        conn.close()


def save_collection(collection: CollectionRecord, db_path: str | None = None) -> None:
    """Persist collection metadata; the lock column is left untouched."""
    sql = _upsert_sql(
        "collections",
        COLLECTION_COLUMNS,
        ("kind", "id"),
        preserve=("write_locked_at",),
    )
    values = list(_collection_values(collection))
    values[COLLECTION_COLUMNS.index("write_locked_at")] = None
    conn, _ = _open_db(db_path)
    try:
        with conn:
            conn.execute(sql, values)
    finally:
        conn.close()


def lock_collection_for_write(
    kind: CollectionKind, collection_id: str, db_path: str | None = None
) -> CollectionRecord:
    """
    Atomically acquire the write lock of a collection.

    Raises:
        AlreadyLockedError: The collection is already locked (or does not exist).
    """
    conn, _ = _open_db(db_path)
    try:
        with conn:
            cur = conn.execute(
                """
                UPDATE collections SET write_locked_at = ?
                WHERE kind = ? AND id = ? AND write_locked_at IS NULL
                """,
                (_to_ts(_utc_now()), kind.value, collection_id),
            )
        if cur.rowcount != 1:
            raise AlreadyLockedError(
                f"{kind.value} {collection_id} is already locked for write"
            )
        row = conn.execute(
            "SELECT * FROM collections WHERE kind = ? AND id = ?",
            (kind.value, collection_id),
        ).fetchone()
        return _to_collection(row)
    finally:
        conn.close()


def unlock_collection(
    kind: CollectionKind,
    collection_id: str,
    sync_completed_at: datetime | None,
    db_path: str | None = None,
) -> None:
    """
    Release a collection lock and record the outcome of its item sync.

    Args:
        sync_completed_at (datetime | None): Completion time, or None to mark
            the collection as not fully synced.
    """
    conn, _ = _open_db(db_path)
    try:
        with conn:
            conn.execute(
                """
                UPDATE collections
                SET write_locked_at = NULL, date_sync_completed = ?
                WHERE kind = ? AND id = ?
                """,
                (_to_ts(sync_completed_at), kind.value, collection_id),
            )
    finally:
        conn.close()


def link_photo_to_collection(
    kind: CollectionKind,
    collection_id: str,
    photo_id: str,
    db_path: str | None = None,
) -> bool:
    """Add a photo to a collection's membership. Returns True when newly linked."""
    conn, _ = _open_db(db_path)
    try:
        with conn:
            row = conn.execute(
                """
                SELECT COALESCE(MAX(position), -1) + 1 AS next_pos
                FROM collection_photos WHERE kind = ? AND collection_id = ?
                """,
                (kind.value, collection_id),
            ).fetchone()
            cur = conn.execute(
                """
                INSERT OR IGNORE INTO collection_photos (kind, collection_id, photo_id, position)
                VALUES (?, ?, ?, ?)
                """,
                (kind.value, collection_id, photo_id, int(row["next_pos"])),
            )
        return cur.rowcount == 1
    finally:
        conn.close()


def collection_photo_ids(
    kind: CollectionKind, collection_id: str, db_path: str | None = None
) -> list[str]:
    """Return member photo ids in the order they were first linked."""
    conn, _ = _open_db(db_path)
    try:
        rows = conn.execute(
            """
            SELECT photo_id FROM collection_photos
            WHERE kind = ? AND collection_id = ?
            ORDER BY position
            """,
            (kind.value, collection_id),
        ).fetchall()
        return [str(row["photo_id"]) for row in rows]
    finally:
        conn.close()


# ===== locks =====


def _scope_kinds(scope: str) -> Iterable[CollectionKind]:
    if scope == "all":
        return tuple(CollectionKind)
    return _SCOPE_KINDS.get(scope, ())


def _check_scope(scope: str) -> None:
    if scope not in LOCK_SCOPES:
        raise ValueError(f"Unknown lock scope '{scope}' (expected one of {', '.join(LOCK_SCOPES)})")


def find_locked(scope: str = "all", db_path: str | None = None) -> list[LockedRecord]:
    """List every record holding a write lock within `scope`."""
    _check_scope(scope)
    out: list[LockedRecord] = []
    conn, _ = _open_db(db_path)
    try:
        if scope in ("all", "photos"):
            for row in conn.execute(
                "SELECT id, title, write_locked_at FROM photos "
                "WHERE write_locked_at IS NOT NULL ORDER BY write_locked_at"
            ):
                out.append(
                    LockedRecord(
                        scope="photo",
                        id=str(row["id"]),
                        locked_at=str(row["write_locked_at"]),
                        label=row["title"] or "",
                    )
                )
        for kind in _scope_kinds(scope):
            for row in conn.execute(
                "SELECT id, title, write_locked_at FROM collections "
                "WHERE kind = ? AND write_locked_at IS NOT NULL ORDER BY write_locked_at",
                (kind.value,),
            ):
                out.append(
                    LockedRecord(
                        scope=kind.value,
                        id=str(row["id"]),
                        locked_at=str(row["write_locked_at"]),
                        label=row["title"] or "",
                    )
                )
        return out
    finally:
        conn.close()


def unlock_all(scope: str = "all", db_path: str | None = None) -> UnlockSummary:
    """
    Clear every write lock within `scope` unconditionally.

    Released photos are marked as not in sync with the filesystem since the
    operation that held the lock may have left a partial file behind.
    """
    _check_scope(scope)
    counts = {kind: 0 for kind in CollectionKind}
    photos = 0
    conn, resolved_db = _open_db(db_path)
    try:
        with conn:
            if scope in ("all", "photos"):
                photos = conn.execute(
                    """
                    UPDATE photos SET write_locked_at = NULL, filesystem_in_sync = 0
                    WHERE write_locked_at IS NOT NULL
                    """
                ).rowcount
            for kind in _scope_kinds(scope):
                counts[kind] = conn.execute(
                    """
                    UPDATE collections SET write_locked_at = NULL
                    WHERE kind = ? AND write_locked_at IS NOT NULL
                    """,
                    (kind.value,),
                ).rowcount
        return UnlockSummary(
            db_path=resolved_db,
            photos=photos,
            albums=counts[CollectionKind.ALBUM],
            galleries=counts[CollectionKind.GALLERY],
            favorites=counts[CollectionKind.FAVORITES],
            other=counts[CollectionKind.PHOTOSTREAM] + counts[CollectionKind.POOL],
        )
    finally:
        conn.close()
