"""Read-only views over raw API payloads."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, ClassVar, Iterator, Mapping

from flickrsync.sizes import PhotoSize

_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _unwrap(value: Any) -> Any:
    # Some fields come wrapped as {"_content": ...}
    if isinstance(value, Mapping):
        return value.get("_content")
    return value


def parse_text(value: Any) -> str | None:
    value = _unwrap(value)
    if value is None:
        return None
    return str(value)


def parse_int(value: Any) -> int | None:
    value = _unwrap(value)
    try:
        if value is None or value == "":
            return None
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_date(value: Any) -> datetime | None:
    """
    Parse a vendor date into an aware UTC datetime.

    The API mixes unix timestamps (int or numeric string) with
    "YYYY-mm-dd HH:MM:SS" strings depending on the field.
    """
    value = _unwrap(value)
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)) or (isinstance(value, str) and value.isdigit()):
        ts = int(value)
        if ts <= 0:
            return None
        return datetime.fromtimestamp(ts, tz=timezone.utc)
    text = str(value).strip()
    if text.startswith("0000-00-00"):
        return None
    try:
        return datetime.strptime(text, _DATE_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def _parse_nested_count(value: Any) -> int | None:
    # people.getInfo: {"photos": {"count": {"_content": 12}}}
    if isinstance(value, Mapping):
        return parse_int(value.get("count"))
    return parse_int(value)


def _field(name: str) -> property:
    return property(lambda self: self.get(name), doc=f"Parsed '{name}' field.")


class BaseDto:
    """
    Immutable wrapper around one API object.

    FIELDS maps a logical name to (wire name, parser). Values are parsed on
    first access and cached; a missing wire field yields None.
    """

    FIELDS: ClassVar[Mapping[str, tuple[str, Callable[[Any], Any]]]] = {}

    __slots__ = ("_data", "_cache")

    def __init__(self, data: Mapping[str, Any]) -> None:
        object.__setattr__(self, "_data", dict(data))
        object.__setattr__(self, "_cache", {})

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(f"{type(self).__name__} is immutable")

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._data!r})"

    @property
    def api_data(self) -> dict[str, Any]:
        return dict(self._data)

    def has(self, name: str) -> bool:
        wire = self.FIELDS[name][0] if name in self.FIELDS else name
        return self._data.get(wire) is not None

    def get(self, name: str) -> Any:
        if name in self._cache:
            return self._cache[name]
        if name not in self.FIELDS:
            raise KeyError(f"{type(self).__name__} has no field '{name}'")
        wire, parser = self.FIELDS[name]
        raw = self._data.get(wire)
        value = parser(raw) if raw is not None else None
        self._cache[name] = value
        return value

    def raw(self, wire: str) -> Any:
        return self._data.get(wire)


class PhotoDto(BaseDto):
    """One photo as returned by listing endpoints with extras."""

    FIELDS = {
        "id": ("id", parse_text),
        "title": ("title", parse_text),
        "description": ("description", parse_text),
        "owner_nsid": ("owner", parse_text),
        "owner_username": ("ownername", parse_text),
        "owner_screen_name": ("pathalias", parse_text),
        "date_uploaded": ("dateupload", parse_date),
        "date_updated": ("lastupdate", parse_date),
        "date_taken": ("datetaken", parse_date),
        "views": ("views", parse_int),
        "faves_count": ("count_faves", parse_int),
        "comments_count": ("count_comments", parse_int),
        "safety_level": ("safety_level", parse_int),
        "media": ("media", parse_text),
    }

    id = _field("id")
    title = _field("title")
    description = _field("description")
    owner_nsid = _field("owner_nsid")
    owner_username = _field("owner_username")
    owner_screen_name = _field("owner_screen_name")
    date_uploaded = _field("date_uploaded")
    date_updated = _field("date_updated")
    date_taken = _field("date_taken")
    views = _field("views")
    faves_count = _field("faves_count")
    comments_count = _field("comments_count")
    safety_level = _field("safety_level")
    media = _field("media")

    def available_sizes(self) -> Iterator[PhotoSize]:
        """Yield sizes that carry a URL, largest first."""
        for size in PhotoSize.descending():
            if self.url_for(size):
                yield size

    def largest_size(self) -> PhotoSize | None:
        return next(self.available_sizes(), None)

    def url_for(self, size: PhotoSize) -> str | None:
        field = size.api_field
        if field is None:
            return None
        return parse_text(self._data.get(field)) or None


class PhotosetDto(BaseDto):
    """Album metadata from photosets.getInfo / photosets.getList."""

    FIELDS = {
        "id": ("id", parse_text),
        "owner_nsid": ("owner", parse_text),
        "owner_username": ("username", parse_text),
        "title": ("title", parse_text),
        "description": ("description", parse_text),
        "date_created": ("date_create", parse_date),
        "date_updated": ("date_update", parse_date),
        "views": ("count_views", parse_int),
        "comments_count": ("count_comments", parse_int),
        "photos_count": ("count_photos", parse_int),
        "videos_count": ("count_videos", parse_int),
    }

    id = _field("id")
    owner_nsid = _field("owner_nsid")
    owner_username = _field("owner_username")
    title = _field("title")
    description = _field("description")
    date_created = _field("date_created")
    date_updated = _field("date_updated")
    views = _field("views")
    comments_count = _field("comments_count")
    photos_count = _field("photos_count")
    videos_count = _field("videos_count")


class GalleryDto(BaseDto):
    """
    Gallery metadata from galleries.getInfo / galleries.getList.

    Galleries have two ids: the public one used in URLs ("gallery_id") and an
    internal compound one ("id") the API accepts in getPhotos.
    """

    FIELDS = {
        "gallery_id": ("gallery_id", parse_text),
        "id": ("id", parse_text),
        "owner_nsid": ("owner", parse_text),
        "owner_username": ("username", parse_text),
        "title": ("title", parse_text),
        "description": ("description", parse_text),
        "date_created": ("date_create", parse_date),
        "date_updated": ("date_update", parse_date),
        "views": ("count_views", parse_int),
        "comments_count": ("count_comments", parse_int),
        "photos_count": ("count_photos", parse_int),
        "videos_count": ("count_videos", parse_int),
        "total_count": ("count_total", parse_int),
    }

    gallery_id = _field("gallery_id")
    id = _field("id")
    owner_nsid = _field("owner_nsid")
    owner_username = _field("owner_username")
    title = _field("title")
    description = _field("description")
    date_created = _field("date_created")
    date_updated = _field("date_updated")
    views = _field("views")
    comments_count = _field("comments_count")
    photos_count = _field("photos_count")
    videos_count = _field("videos_count")
    total_count = _field("total_count")


class PersonDto(BaseDto):
    """User from people.getInfo or urls.lookupUser."""

    FIELDS = {
        "id": ("id", parse_text),
        "nsid": ("nsid", parse_text),
        "username": ("username", parse_text),
        "screen_name": ("path_alias", parse_text),
        "photos_count": ("photos", _parse_nested_count),
    }

    username = _field("username")
    screen_name = _field("screen_name")
    photos_count = _field("photos_count")

    @property
    def nsid(self) -> str | None:
        # urls.lookupUser only returns "id"
        return self.get("nsid") or self.get("id")


class GroupDto(BaseDto):
    """Group metadata from groups.getInfo; used for pool collections."""

    FIELDS = {
        "id": ("id", parse_text),
        "name": ("name", parse_text),
        "description": ("description", parse_text),
        "members": ("members", parse_int),
        "pool_count": ("pool_count", parse_int),
    }

    id = _field("id")
    name = _field("name")
    description = _field("description")
    members = _field("members")
    pool_count = _field("pool_count")
