"""Gallery sync."""

from __future__ import annotations

from typing import Optional

from flickrsync import store
from flickrsync.refs import CollectionKind, CollectionRef, Gallery
from flickrsync.store import CollectionRecord

from .base import SyncCollectionStrategy, merge_collection_metadata


class SyncGalleryStrategy(SyncCollectionStrategy):
    """
    Galleries collect photos of other users, so photo owners always come
    from the listing rather than from the gallery.
    """

    KIND = CollectionKind.GALLERY

    async def refresh_metadata(
        self, ref: CollectionRef, key: str, local: Optional[CollectionRecord]
    ) -> CollectionRecord:
        assert isinstance(ref, Gallery)
        owner_nsid = ref.user.nsid
        remote = await self.source.gallery_info(owner_nsid, ref.set_id)

        collection = local or await self._new_collection(key, owner_nsid)
        collection = merge_collection_metadata(collection, remote)
        store.save_collection(collection, self.db_path)
        return collection
