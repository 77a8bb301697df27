"""Typed references to remote collections and their owners."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class CollectionKind(Enum):
    """Kinds of photo collections the mirror knows how to sync."""

    PHOTOSTREAM = "photostream"
    FAVORITES = "favorites"
    ALBUM = "album"
    GALLERY = "gallery"
    POOL = "pool"

    @property
    def plural_segment(self) -> Optional[str]:
        """URL path segment listing collections of this kind under a user."""
        return _KIND_TABLE[self][0]

    @property
    def owner_owns_photos(self) -> bool:
        """Whether every photo in such a collection belongs to the collection owner."""
        return _KIND_TABLE[self][1]

    @classmethod
    def from_plural(cls, segment: str) -> Optional["CollectionKind"]:
        for kind, (plural, _) in _KIND_TABLE.items():
            if plural is not None and plural == segment:
                return kind
        return None


# kind -> (plural URL segment, owner owns photos)
_KIND_TABLE: dict[CollectionKind, tuple[Optional[str], bool]] = {
    CollectionKind.PHOTOSTREAM: ("", True),
    CollectionKind.FAVORITES: ("favorites", False),
    CollectionKind.ALBUM: ("albums", True),
    CollectionKind.GALLERY: ("galleries", False),
    CollectionKind.POOL: (None, False),
}


class OwnerRef:
    """
    Owner of a collection, either a human alias or a canonical NSID.

    An alias is never promoted implicitly: even "12345@N02" given as an alias
    may be someone's screen name. Only set_canonical_id() after a lookup makes
    has_canonical_id() true.
    """

    __slots__ = ("_alias", "_nsid")

    def __init__(self, alias: Optional[str] = None, nsid: Optional[str] = None) -> None:
        if not alias and not nsid:
            raise ValueError("Owner needs an alias or an NSID")
        self._alias = alias
        self._nsid = nsid

    @classmethod
    def alias(cls, value: str) -> "OwnerRef":
        return cls(alias=value)

    @classmethod
    def canonical(cls, nsid: str) -> "OwnerRef":
        return cls(nsid=nsid)

    @property
    def identifier(self) -> str:
        """Best identifier to show to a human."""
        return self._alias or self._nsid or ""

    @property
    def alias_value(self) -> Optional[str]:
        return self._alias

    @property
    def nsid(self) -> str:
        if self._nsid is None:
            raise LookupError(f"Owner '{self._alias}' was not resolved to an NSID")
        return self._nsid

    def has_canonical_id(self) -> bool:
        return self._nsid is not None

    def set_canonical_id(self, nsid: str) -> None:
        self._nsid = nsid

    def same_as(self, other: "OwnerRef") -> bool:
        """Identity check that never equates an alias with an NSID."""
        if self.has_canonical_id() and other.has_canonical_id():
            return self._nsid == other._nsid
        if not self.has_canonical_id() and not other.has_canonical_id():
            return self._alias == other._alias
        return False

    def __repr__(self) -> str:
        if self._nsid is None:
            return f"OwnerRef(alias={self._alias!r})"
        return f"OwnerRef(alias={self._alias!r}, nsid={self._nsid!r})"


@dataclass
class CollectionRef:
    """Base for every collection reference."""

    @property
    def kind(self) -> CollectionKind:
        raise NotImplementedError

    @property
    def owner(self) -> Optional[OwnerRef]:
        return None

    @property
    def collection_id(self) -> str:
        raise NotImplementedError

    def describe(self) -> str:
        owner = self.owner
        who = owner.identifier if owner else "-"
        return f"{self.kind.value}:{who}/{self.collection_id if self.has_local_id() else '?'}"

    def has_local_id(self) -> bool:
        return True


@dataclass
class UserPhotostream(CollectionRef):
    user: OwnerRef

    @property
    def kind(self) -> CollectionKind:
        return CollectionKind.PHOTOSTREAM

    @property
    def owner(self) -> OwnerRef:
        return self.user

    @property
    def collection_id(self) -> str:
        return self.user.nsid

    def has_local_id(self) -> bool:
        return self.user.has_canonical_id()


@dataclass
class UserFaves(CollectionRef):
    user: OwnerRef

    @property
    def kind(self) -> CollectionKind:
        return CollectionKind.FAVORITES

    @property
    def owner(self) -> OwnerRef:
        return self.user

    @property
    def collection_id(self) -> str:
        return self.user.nsid

    def has_local_id(self) -> bool:
        return self.user.has_canonical_id()


@dataclass
class Album(CollectionRef):
    user: OwnerRef
    set_id: str

    @property
    def kind(self) -> CollectionKind:
        return CollectionKind.ALBUM

    @property
    def owner(self) -> OwnerRef:
        return self.user

    @property
    def collection_id(self) -> str:
        return self.set_id


@dataclass
class Gallery(CollectionRef):
    user: OwnerRef
    set_id: str

    @property
    def kind(self) -> CollectionKind:
        return CollectionKind.GALLERY

    @property
    def owner(self) -> OwnerRef:
        return self.user

    @property
    def collection_id(self) -> str:
        return self.set_id


@dataclass
class Pool(CollectionRef):
    pool_id: str

    @property
    def kind(self) -> CollectionKind:
        return CollectionKind.POOL

    @property
    def collection_id(self) -> str:
        return self.pool_id
