"""Low-level DB and row helpers for the local SQLite index."""

from __future__ import annotations

import os
import sqlite3
from datetime import datetime, timezone
from typing import Any, Mapping

from flickrsync.config import default_db_path
from flickrsync.refs import CollectionKind
from flickrsync.sizes import PhotoSize

from .models import CollectionRecord, PhotoRecord, UserRecord

PHOTO_COLUMNS = (
    "id",
    "owner_nsid",
    "size",
    "cdn_url",
    "local_path",
    "title",
    "description",
    "safety_level",
    "date_taken",
    "date_uploaded",
    "date_last_updated",
    "date_last_retrieved",
    "remote_views",
    "remote_faves",
    "remote_comments",
    "local_views",
    "blacklisted",
    "deleted",
    "write_locked_at",
    "filesystem_in_sync",
)

COLLECTION_COLUMNS = (
    "kind",
    "id",
    "owner_nsid",
    "title",
    "description",
    "date_created",
    "date_last_updated",
    "date_last_retrieved",
    "date_sync_completed",
    "remote_views",
    "remote_comments",
    "remote_photos",
    "remote_videos",
    "blacklisted",
    "deleted",
    "write_locked_at",
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _to_ts(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _from_ts(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    try:
        parsed = datetime.fromisoformat(str(value))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _resolve_db_path(db_path: str | None) -> str:
    resolved = os.path.abspath(db_path) if db_path else default_db_path()
    db_dir = os.path.dirname(resolved)
    if db_dir:
        os.makedirs(db_dir, exist_ok=True)
    return resolved


def _connect(db_path: str) -> sqlite3.Connection:
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL")
    conn.execute("PRAGMA synchronous = NORMAL")
    conn.execute("PRAGMA busy_timeout = 5000")
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def _table_columns(conn: sqlite3.Connection, table: str) -> set[str]:
    rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
    return {str(row["name"]) for row in rows}


def _ensure_columns(
    conn: sqlite3.Connection, table: str, columns: Mapping[str, str]
) -> None:
    existing = _table_columns(conn, table)
    for col, sql_type in columns.items():
        if col not in existing:
            conn.execute(f"ALTER TABLE {table} ADD COLUMN {col} {sql_type}")


def _ensure_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS users (
            nsid TEXT PRIMARY KEY,
            username TEXT NOT NULL,
            screen_name TEXT UNIQUE
        );

        CREATE TABLE IF NOT EXISTS photos (
            id TEXT PRIMARY KEY,
            owner_nsid TEXT NOT NULL,
            size TEXT,
            cdn_url TEXT,
            local_path TEXT,
            title TEXT,
            description TEXT,
            safety_level INTEGER,
            date_taken TEXT,
            date_uploaded TEXT,
            date_last_updated TEXT,
            date_last_retrieved TEXT,
            remote_views INTEGER,
            remote_faves INTEGER,
            remote_comments INTEGER,
            local_views INTEGER NOT NULL DEFAULT 0,
            blacklisted INTEGER NOT NULL DEFAULT 0,
            deleted INTEGER NOT NULL DEFAULT 0,
            write_locked_at TEXT,
            filesystem_in_sync INTEGER NOT NULL DEFAULT 0,
            FOREIGN KEY(owner_nsid) REFERENCES users(nsid)
        );

        CREATE TABLE IF NOT EXISTS collections (
            kind TEXT NOT NULL,
            id TEXT NOT NULL,
            owner_nsid TEXT,
            title TEXT,
            description TEXT,
            date_created TEXT,
            date_last_updated TEXT,
            date_last_retrieved TEXT,
            date_sync_completed TEXT,
            remote_views INTEGER,
            remote_comments INTEGER,
            remote_photos INTEGER,
            remote_videos INTEGER,
            blacklisted INTEGER NOT NULL DEFAULT 0,
            deleted INTEGER NOT NULL DEFAULT 0,
            write_locked_at TEXT,
            PRIMARY KEY(kind, id),
            FOREIGN KEY(owner_nsid) REFERENCES users(nsid)
        );

        CREATE TABLE IF NOT EXISTS collection_photos (
            kind TEXT NOT NULL,
            collection_id TEXT NOT NULL,
            photo_id TEXT NOT NULL,
            position INTEGER NOT NULL,
            PRIMARY KEY(kind, collection_id, photo_id),
            FOREIGN KEY(kind, collection_id) REFERENCES collections(kind, id) ON DELETE CASCADE,
            FOREIGN KEY(photo_id) REFERENCES photos(id) ON DELETE CASCADE
        );

        CREATE INDEX IF NOT EXISTS idx_photos_locked
            ON photos(write_locked_at);
        CREATE INDEX IF NOT EXISTS idx_collections_locked
            ON collections(write_locked_at);
        CREATE INDEX IF NOT EXISTS idx_collection_photos_photo
            ON collection_photos(photo_id);
        """
    )

    # Columns added after the first schema revision.
    _ensure_columns(
        conn,
        "photos",
        {
            "remote_faves": "INTEGER",
            "remote_comments": "INTEGER",
            "local_views": "INTEGER NOT NULL DEFAULT 0",
        },
    )


def _open_db(db_path: str | None = None) -> tuple[sqlite3.Connection, str]:
    resolved = _resolve_db_path(db_path)
    conn = _connect(resolved)
    _ensure_schema(conn)
    return conn, resolved


def _coerce_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _coerce_int(value: Any) -> int | None:
    try:
        if value is None or value == "":
            return None
        return int(value)
    except (TypeError, ValueError):
        return None


def _to_user(row: sqlite3.Row) -> UserRecord:
    return UserRecord(
        nsid=str(row["nsid"]),
        username=str(row["username"]),
        screen_name=_coerce_text(row["screen_name"]),
    )


def _to_photo(row: sqlite3.Row) -> PhotoRecord:
    size = row["size"]
    return PhotoRecord(
        id=str(row["id"]),
        owner_nsid=str(row["owner_nsid"]),
        size=PhotoSize.from_value(size) if size is not None else None,
        cdn_url=_coerce_text(row["cdn_url"]),
        local_path=_coerce_text(row["local_path"]),
        title=row["title"],
        description=row["description"],
        safety_level=_coerce_int(row["safety_level"]),
        date_taken=_from_ts(row["date_taken"]),
        date_uploaded=_from_ts(row["date_uploaded"]),
        date_last_updated=_from_ts(row["date_last_updated"]),
        date_last_retrieved=_from_ts(row["date_last_retrieved"]),
        remote_views=_coerce_int(row["remote_views"]),
        remote_faves=_coerce_int(row["remote_faves"]),
        remote_comments=_coerce_int(row["remote_comments"]),
        local_views=int(row["local_views"] or 0),
        blacklisted=bool(int(row["blacklisted"])),
        deleted=bool(int(row["deleted"])),
        write_locked_at=_from_ts(row["write_locked_at"]),
        filesystem_in_sync=bool(int(row["filesystem_in_sync"])),
    )


def _photo_values(photo: PhotoRecord) -> tuple[Any, ...]:
    return (
        photo.id,
        photo.owner_nsid,
        photo.size.value if photo.size is not None else None,
        photo.cdn_url,
        photo.local_path,
        photo.title,
        photo.description,
        photo.safety_level,
        _to_ts(photo.date_taken),
        _to_ts(photo.date_uploaded),
        _to_ts(photo.date_last_updated),
        _to_ts(photo.date_last_retrieved),
        photo.remote_views,
        photo.remote_faves,
        photo.remote_comments,
        photo.local_views,
        int(photo.blacklisted),
        int(photo.deleted),
        _to_ts(photo.write_locked_at),
        int(photo.filesystem_in_sync),
    )


def _to_collection(row: sqlite3.Row) -> CollectionRecord:
    return CollectionRecord(
        kind=CollectionKind(row["kind"]),
        id=str(row["id"]),
        owner_nsid=_coerce_text(row["owner_nsid"]),
        title=row["title"],
        description=row["description"],
        date_created=_from_ts(row["date_created"]),
        date_last_updated=_from_ts(row["date_last_updated"]),
        date_last_retrieved=_from_ts(row["date_last_retrieved"]),
        date_sync_completed=_from_ts(row["date_sync_completed"]),
        remote_views=_coerce_int(row["remote_views"]),
        remote_comments=_coerce_int(row["remote_comments"]),
        remote_photos=_coerce_int(row["remote_photos"]),
        remote_videos=_coerce_int(row["remote_videos"]),
        blacklisted=bool(int(row["blacklisted"])),
        deleted=bool(int(row["deleted"])),
        write_locked_at=_from_ts(row["write_locked_at"]),
    )


def _collection_values(collection: CollectionRecord) -> tuple[Any, ...]:
    return (
        collection.kind.value,
        collection.id,
        collection.owner_nsid,
        collection.title,
        collection.description,
        _to_ts(collection.date_created),
        _to_ts(collection.date_last_updated),
        _to_ts(collection.date_last_retrieved),
        _to_ts(collection.date_sync_completed),
        collection.remote_views,
        collection.remote_comments,
        collection.remote_photos,
        collection.remote_videos,
        int(collection.blacklisted),
        int(collection.deleted),
        _to_ts(collection.write_locked_at),
    )


def _upsert_sql(
    table: str,
    columns: tuple[str, ...],
    keys: tuple[str, ...],
    preserve: tuple[str, ...] = (),
    guard: str | None = None,
) -> str:
    """Build an INSERT .. ON CONFLICT DO UPDATE leaving `preserve` columns untouched."""
    placeholders = ", ".join("?" for _ in columns)
    updates = ", ".join(
        f"{col} = excluded.{col}"
        for col in columns
        if col not in keys and col not in preserve
    )
    sql = (
        f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders}) "
        f"ON CONFLICT({', '.join(keys)}) DO UPDATE SET {updates}"
    )
    if guard:
        sql += f" WHERE {guard}"
    return sql
