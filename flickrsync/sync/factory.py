"""Pick the sync strategy matching a collection reference."""

from __future__ import annotations

from typing import Optional

from flickrsync.owner import ResolveOwner
from flickrsync.refs import CollectionRef
from flickrsync.source import CollectionSource

from .base import PhotoSink, SyncCollectionStrategy, SyncOptions
from .favorites import SyncUserFavoritesStrategy
from .gallery import SyncGalleryStrategy
from .photoset import SyncPhotosetStrategy
from .photostream import SyncPhotostreamStrategy
from .pool import SyncPoolStrategy

STRATEGIES: tuple[type[SyncCollectionStrategy], ...] = (
    SyncPhotosetStrategy,
    SyncGalleryStrategy,
    SyncUserFavoritesStrategy,
    SyncPhotostreamStrategy,
    SyncPoolStrategy,
)


class SyncStrategyFactory:
    """Builds strategies sharing one source, owner resolver and index."""

    def __init__(
        self,
        source: CollectionSource,
        owners: Optional[ResolveOwner] = None,
        options: Optional[SyncOptions] = None,
        db_path: Optional[str] = None,
    ) -> None:
        self.source = source
        self.db_path = db_path
        self.owners = owners or ResolveOwner(source, db_path)
        self.options = options or SyncOptions()

    def for_ref(
        self, ref: CollectionRef, options: Optional[SyncOptions] = None
    ) -> SyncCollectionStrategy:
        for strategy in STRATEGIES:
            if strategy.supports(ref):
                return strategy(self.source, self.owners, options or self.options, self.db_path)
        raise NotImplementedError(f"Not implemented yet: sync of {type(ref).__name__}")

    async def sync_collection(
        self,
        ref: CollectionRef,
        sink: PhotoSink,
        options: Optional[SyncOptions] = None,
    ) -> bool:
        """Sync one collection with the matching strategy; see SyncCollectionStrategy.sync_collection()."""
        return await self.for_ref(ref, options).sync_collection(ref, sink)
