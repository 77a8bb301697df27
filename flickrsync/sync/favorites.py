"""User favorites sync."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional

from flickrsync import store
from flickrsync.refs import CollectionKind, CollectionRef
from flickrsync.store import CollectionRecord

from .base import SyncCollectionStrategy


class SyncUserFavoritesStrategy(SyncCollectionStrategy):
    """Favorites have no metadata endpoint and no update date."""

    KIND = CollectionKind.FAVORITES
    HAS_UPDATE_DATE = False

    async def refresh_metadata(
        self, ref: CollectionRef, key: str, local: Optional[CollectionRecord]
    ) -> CollectionRecord:
        collection = local or await self._new_collection(key, ref.owner.nsid)
        collection = replace(collection, date_last_retrieved=datetime.now(timezone.utc))
        store.save_collection(collection, self.db_path)
        return collection
