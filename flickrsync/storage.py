"""Filesystem store for mirrored photos."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from flickrsync.config import default_storage_root
from flickrsync.errors import StorageError
from flickrsync.sizes import PhotoSize
from flickrsync.store import PhotoRecord
from flickrsync.utils import dbg, sanitize

FILES_FOLDER = "files"
TEMP_MARKER = ".inprg"


@dataclass(frozen=True)
class FileInTransit:
    """Temp file being written plus the path it is renamed to on commit."""

    photo_id: str
    temp_path: str
    final_path: str


def _photo_date(photo: PhotoRecord) -> datetime:
    return (
        photo.date_taken
        or photo.date_uploaded
        or photo.date_last_retrieved
        or datetime.now(timezone.utc)
    )


class StorageProvider:
    """
    Lays out photos as files/<nsid prefix>/<nsid>/<YYYY>/<mm>/<id>.jpg under a root.

    Files are written to a temp name first and only renamed into place once
    complete, so a crash never leaves a truncated file at the final path.
    """

    def __init__(self, root: Optional[str] = None) -> None:
        self.root = os.path.abspath(root) if root else default_storage_root()

    def path_for(self, photo: PhotoRecord) -> str:
        """
        Final path of a photo's file.

        Args:
            photo (PhotoRecord): Photo to place.

        Returns:
            str: Absolute path; parent folders may not exist yet.
        """
        owner = photo.owner_nsid or "unknown"
        when = _photo_date(photo)
        return os.path.join(
            self.root,
            FILES_FOLDER,
            sanitize(owner[:2]),
            sanitize(owner),
            f"{when:%Y}",
            f"{when:%m}",
            f"{photo.id}.jpg",
        )

    def exists(self, photo: PhotoRecord) -> bool:
        """True when the photo's recorded local file is present on disk."""
        if not photo.local_path:
            return False
        return os.path.isfile(photo.local_path)

    def open_for_write(self, photo: PhotoRecord, size: Optional[PhotoSize]) -> FileInTransit:
        """
        Reserve a temp file next to the final location.

        Raises:
            StorageError: Destination folder could not be created.
        """
        final_path = self.path_for(photo)
        folder = os.path.dirname(final_path)
        try:
            os.makedirs(folder, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Unable to create folder '{folder}': {e}") from e
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
        suffix = size.name.lower() if size is not None else "unknown"
        temp_path = os.path.join(folder, f"{photo.id}-{suffix}{TEMP_MARKER}{stamp}")
        dbg(f"Temp file for photo {photo.id}: {temp_path}")
        return FileInTransit(photo.id, temp_path, final_path)

    def commit(self, handle: FileInTransit) -> str:
        """Atomically move a finished temp file into place; returns the final path."""
        try:
            os.replace(handle.temp_path, handle.final_path)
        except OSError as e:
            raise StorageError(
                f"Unable to move '{handle.temp_path}' to '{handle.final_path}': {e}"
            ) from e
        return handle.final_path

    def abort(self, handle: FileInTransit) -> None:
        """Remove a partial temp file; a missing file is fine."""
        try:
            os.remove(handle.temp_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageError(f"Unable to remove '{handle.temp_path}': {e}") from e
