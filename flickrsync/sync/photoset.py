"""Album (photoset) sync."""

from __future__ import annotations

from typing import Optional

from flickrsync import store
from flickrsync.refs import Album, CollectionKind, CollectionRef
from flickrsync.store import CollectionRecord

from .base import SyncCollectionStrategy, merge_collection_metadata


class SyncPhotosetStrategy(SyncCollectionStrategy):
    KIND = CollectionKind.ALBUM

    async def refresh_metadata(
        self, ref: CollectionRef, key: str, local: Optional[CollectionRecord]
    ) -> CollectionRecord:
        assert isinstance(ref, Album)
        owner_nsid = ref.user.nsid
        remote = await self.source.photoset_info(owner_nsid, ref.set_id)

        collection = local or await self._new_collection(key, owner_nsid)
        # Some properties are updated regardless of whether the contents changed
        collection = merge_collection_metadata(collection, remote)
        store.save_collection(collection, self.db_path)
        return collection
