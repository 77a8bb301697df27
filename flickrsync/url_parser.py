"""Turn user supplied URLs or ids into typed collection references."""

from __future__ import annotations

import re
from typing import Optional

from flickrsync.errors import AmbiguousCollectionError, UnrecognizedUrlError
from flickrsync.refs import (
    Album,
    CollectionKind,
    CollectionRef,
    Gallery,
    OwnerRef,
    Pool,
    UserFaves,
    UserPhotostream,
)
from flickrsync.utils import url_basename

_HOST_RE = r"https?://(?:[\w\-]+\.)?flickr\.com"


def _plural_alternation() -> str:
    plurals = [
        re.escape(kind.plural_segment)
        for kind in CollectionKind
        if kind.plural_segment
    ]
    return "|".join(plurals)


# /photos/<user>/<mediaId>[/in/<context>]
PHOTO_VIEW_RE = re.compile(
    "^" + _HOST_RE + r"/photos/(?P<user>[^/]+)/(?P<media_id>\d+)"
    r"(?:/in/(?P<context>[^/]+))?/?$",
    re.I,
)

# /photos/<user>[/<plural>[/<id>][/page<n>]]
COLLECTION_VIEW_RE = re.compile(
    "^" + _HOST_RE + r"/photos/(?P<user>[^/]+)"
    r"(?:/(?P<plural>" + _plural_alternation() + r")"
    r"(?:/(?P<col_id>\d+))?"
    r"(?:/page(?P<page>\d+))?)?/?$",
    re.I,
)

# /groups/<group>[/pool][/page<n>]
GROUP_VIEW_RE = re.compile(
    "^" + _HOST_RE + r"/groups/(?P<group>[^/]+)(?:/pool)?(?:/page\d+)?/?$",
    re.I,
)

# Context part of a photo URL, e.g. "album-123", "gallery-owner-456", "faves-bob"
_CONTEXT_RES = (
    (CollectionKind.GALLERY, re.compile(r"^gallery(?:-(?P<owner>[^-]+))?-(?P<id>[^/]+)$")),
    (CollectionKind.ALBUM, re.compile(r"^album-(?P<id>[^/]+)$")),
    (CollectionKind.FAVORITES, re.compile(r"^faves-(?P<owner>[^/]+)$")),
    (CollectionKind.POOL, re.compile(r"^pool-(?P<owner>[^/]+)$")),
)


def _normalize(raw: str) -> str:
    url = raw.strip()
    return url.split("?", 1)[0].split("#", 1)[0]


def _from_context(user: str, context: str) -> CollectionRef:
    for kind, regex in _CONTEXT_RES:
        match = regex.match(context)
        if not match:
            continue
        groups = match.groupdict()
        if kind is CollectionKind.GALLERY:
            return Gallery(OwnerRef.alias(groups.get("owner") or user), groups["id"])
        if kind is CollectionKind.ALBUM:
            return Album(OwnerRef.alias(user), groups["id"])
        if kind is CollectionKind.FAVORITES:
            return UserFaves(OwnerRef.alias(groups.get("owner") or user))
        return Pool(groups["owner"])
    raise UnrecognizedUrlError(f"Unknown collection context '{context}'")


def resolve(raw: str) -> CollectionRef:
    """
    Parse a vendor URL into a collection reference.

    Photo URLs carrying an "/in/<context>" part resolve to that context;
    bare photo URLs resolve to the owner's photostream. Owners are always
    returned as aliases since URLs mix screen names and NSIDs.

    Args:
        raw (str): URL as typed by the user.

    Returns:
        CollectionRef: The referenced collection.

    Raises:
        AmbiguousCollectionError: URL lists many albums/galleries.
        UnrecognizedUrlError: URL matches no known shape.
    """
    url = _normalize(raw)

    match = PHOTO_VIEW_RE.match(url)
    if match:
        user = match.group("user")
        context = match.group("context")
        if context:
            return _from_context(user, context)
        return UserPhotostream(OwnerRef.alias(user))

    match = COLLECTION_VIEW_RE.match(url)
    if match:
        user = match.group("user")
        plural = match.group("plural")
        if plural is None:
            return UserPhotostream(OwnerRef.alias(user))

        kind = CollectionKind.from_plural(plural.lower())
        col_id = match.group("col_id")
        if kind is CollectionKind.FAVORITES:
            return UserFaves(OwnerRef.alias(user))
        if col_id is None:
            raise AmbiguousCollectionError(
                f"'{raw}' points to a list of {plural}, not a single collection"
            )
        if kind is CollectionKind.ALBUM:
            return Album(OwnerRef.alias(user), col_id)
        if kind is CollectionKind.GALLERY:
            return Gallery(OwnerRef.alias(user), col_id)

    match = GROUP_VIEW_RE.match(url)
    if match:
        return Pool(match.group("group"))

    raise UnrecognizedUrlError(f"Unrecognized collection URL '{raw}'")


def resolve_id(value: str, kind: CollectionKind, owner: Optional[str]) -> CollectionRef:
    """
    Build a reference from a bare id, an explicit type and an owner hint.

    Args:
        value (str): Collection id (ignored for photostream/favorites).
        kind (CollectionKind): Collection type.
        owner (Optional[str]): Owner alias or NSID; required except for pools.
    """
    if kind is CollectionKind.POOL:
        return Pool(value)
    user = owner or (value if kind in (CollectionKind.PHOTOSTREAM, CollectionKind.FAVORITES) else None)
    if not user:
        raise UnrecognizedUrlError(f"{kind.value} '{value}' needs an owner (--user-id)")
    if kind is CollectionKind.PHOTOSTREAM:
        return UserPhotostream(OwnerRef.alias(user))
    if kind is CollectionKind.FAVORITES:
        return UserFaves(OwnerRef.alias(user))
    if kind is CollectionKind.ALBUM:
        return Album(OwnerRef.alias(user), value)
    return Gallery(OwnerRef.alias(user), value)


def resolve_user(raw: str) -> OwnerRef:
    """Extract the owner alias from a user-level URL such as /photos/<user>/albums."""
    url = _normalize(raw)
    match = COLLECTION_VIEW_RE.match(url) or PHOTO_VIEW_RE.match(url)
    if match:
        return OwnerRef.alias(match.group("user"))
    if "/" in raw:
        raise UnrecognizedUrlError(f"Unrecognized user URL '{raw}'")
    return OwnerRef.alias(raw.strip())


def get_static_filename(url: str) -> Optional[str]:
    """
    Return the filename part of a CDN URL.

    CDN hostnames rotate between farms, so only the filename is meaningful
    when checking whether the remote file was replaced.
    """
    return url_basename(url)
