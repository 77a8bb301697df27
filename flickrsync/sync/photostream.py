"""User photostream sync."""

from __future__ import annotations

from typing import Optional

from flickrsync import store
from flickrsync.refs import CollectionKind, CollectionRef
from flickrsync.store import CollectionRecord

from .base import SyncCollectionStrategy, merge_collection_metadata

PHOTOSTREAM_FIELDS = {"title": "username", "photos_count": "photos_count"}


class SyncPhotostreamStrategy(SyncCollectionStrategy):
    KIND = CollectionKind.PHOTOSTREAM
    HAS_UPDATE_DATE = False

    async def refresh_metadata(
        self, ref: CollectionRef, key: str, local: Optional[CollectionRecord]
    ) -> CollectionRecord:
        owner_nsid = ref.owner.nsid
        person = await self.source.person_info(owner_nsid)

        collection = local or await self._new_collection(key, owner_nsid)
        collection = merge_collection_metadata(collection, person, PHOTOSTREAM_FIELDS)
        store.save_collection(collection, self.db_path)
        return collection
