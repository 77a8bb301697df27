"""Group pool sync."""

from __future__ import annotations

from typing import Optional

from flickrsync import store
from flickrsync.dto import GroupDto
from flickrsync.refs import CollectionKind, CollectionRef, Pool
from flickrsync.store import CollectionRecord

from .base import SyncCollectionStrategy, merge_collection_metadata

POOL_FIELDS = {"title": "name", "description": "description", "photos_count": "pool_count"}


class SyncPoolStrategy(SyncCollectionStrategy):
    """
    Pools belong to groups, not users: the collection has no owner and the
    owner of every photo comes from the listing.

    Group URLs may carry a path alias instead of the group id; the alias is
    resolved first so both forms map to the same local collection.
    """

    KIND = CollectionKind.POOL
    HAS_UPDATE_DATE = False

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._groups: dict[str, GroupDto] = {}

    async def _group(self, ref: Pool) -> GroupDto:
        if ref.pool_id not in self._groups:
            self._groups[ref.pool_id] = await self.source.group_info(ref.pool_id)
        return self._groups[ref.pool_id]

    async def collection_key(self, ref: CollectionRef) -> str:
        assert isinstance(ref, Pool)
        if "@" in ref.pool_id:
            return ref.pool_id
        group = await self._group(ref)
        if group.id:
            ref.pool_id = group.id
        return ref.pool_id

    async def refresh_metadata(
        self, ref: CollectionRef, key: str, local: Optional[CollectionRecord]
    ) -> CollectionRecord:
        assert isinstance(ref, Pool)
        group = await self._group(ref)

        collection = local or await self._new_collection(key, None)
        collection = merge_collection_metadata(collection, group, POOL_FIELDS)
        store.save_collection(collection, self.db_path)
        return collection
