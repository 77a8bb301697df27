"""Public local index facade built from smaller store utility modules."""

from __future__ import annotations

from flickrsync.store_utils.models import (
    CollectionRecord,
    LockedRecord,
    PhotoRecord,
    UnlockSummary,
    UserRecord,
)
from flickrsync.store_utils.operations import (
    LOCK_SCOPES,
    collection_photo_ids,
    find_locked,
    find_user_by_identifier,
    get_collection,
    get_photo,
    get_user,
    link_photo_to_collection,
    lock_collection_for_write,
    lock_photo_for_write,
    save_collection,
    save_photo,
    save_user,
    unlock_all,
    unlock_collection,
    unlock_photo,
)

__all__ = [
    "LOCK_SCOPES",
    "CollectionRecord",
    "LockedRecord",
    "PhotoRecord",
    "UnlockSummary",
    "UserRecord",
    "collection_photo_ids",
    "find_locked",
    "find_user_by_identifier",
    "get_collection",
    "get_photo",
    "get_user",
    "link_photo_to_collection",
    "lock_collection_for_write",
    "lock_photo_for_write",
    "save_collection",
    "save_photo",
    "save_user",
    "unlock_all",
    "unlock_collection",
    "unlock_photo",
]
