"""Paginated listing of remote collections."""

# pylint: disable=line-too-long

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from flickrsync.api import ApiClient
from flickrsync.dto import GalleryDto, GroupDto, PersonDto, PhotoDto, PhotosetDto
from flickrsync.errors import InvalidParameterCombination, UnexpectedResponseShape
from flickrsync.refs import Album, CollectionRef, Gallery, Pool, UserFaves, UserPhotostream
from flickrsync.sizes import PhotoSize

MAX_PER_PAGE = 500

# Well-known tokens for continuation based pagination (e.g. galleries.getList)
CONTINUATION_START_TOKEN = "0"
CONTINUATION_LAST_TOKEN = "-1"

PHOTO_EXTRAS = (
    "description",
    "date_upload",
    "date_taken",
    "last_update",
    "views",
    "media",
    "path_alias",
    "owner_name",
    # Undocumented, may or may not be returned
    "count_faves",
    "count_comments",
    "safety_level",
) + tuple(size.api_field for size in PhotoSize.descending() if size.api_field)

PageCallback = Callable[[int], Any]


@dataclass(frozen=True)
class Page:
    """One page of a listing."""

    number: int
    items: list[dict[str, Any]]
    total_pages: Optional[int] = None
    continuation: Optional[str] = None


def validate_regular_pagination(page: int, per_page: int) -> None:
    if page < 1:
        raise InvalidParameterCombination(f"Page must be positive (got {page})")
    if per_page < 1 or per_page > MAX_PER_PAGE:
        raise InvalidParameterCombination(
            f"Per page must be between 1 and {MAX_PER_PAGE} (got {per_page})"
        )


def validate_token_pagination(
    page: Optional[int], per_page: int, continuation: Optional[str]
) -> None:
    """
    Validate arguments of an endpoint that supports both pagination styles.

    Exactly one of `page` and `continuation` must be given; the API silently
    misbehaves when both or neither are sent.
    """
    if page is None and continuation is None:
        raise InvalidParameterCombination(
            "Either page # must be set OR continuation token must be non-empty. "
            "Use the start token to begin token based iteration."
        )
    if continuation is None:
        validate_regular_pagination(page, per_page)
        return
    if continuation == "":
        raise InvalidParameterCombination(
            "Continuation token cannot be empty; use the start token to begin iteration"
        )
    if page is not None:
        raise InvalidParameterCombination(
            f"Page # ({page}) cannot be combined with continuation token ({continuation})"
        )
    if per_page < 1 or per_page > MAX_PER_PAGE:
        raise InvalidParameterCombination(
            f"Per page must be between 1 and {MAX_PER_PAGE} (got {per_page})"
        )


async def iterate_pages(
    fetch: Callable[[int], Awaitable[dict[str, Any]]],
    container: str,
    on_page_finished: Optional[PageCallback] = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Flatten a page/perPage listing into a lazy stream of items.

    The first response must declare "pages"; every response must carry the
    container. A malformed page stops the iteration with
    UnexpectedResponseShape; items already yielded stay yielded.

    Args:
        fetch: Coroutine returning the envelope content of page N.
        container (str): Key holding the item list inside the envelope.
        on_page_finished: Called with the page number after its items were consumed.
    """
    page = 1
    total_pages: Optional[int] = None
    while True:
        rsp = await fetch(page)
        if total_pages is None:
            if rsp.get("pages") is None:
                raise UnexpectedResponseShape("API did not return number of pages", rsp)
            total_pages = int(rsp["pages"])

        if container not in rsp or rsp[container] is None:
            raise UnexpectedResponseShape(
                f"API did not return container '{container}' for page {page}", rsp
            )

        for item in rsp[container]:
            yield item
        if on_page_finished is not None:
            on_page_finished(page)

        page += 1
        if page > total_pages:
            break


async def iterate_tokens(
    fetch: Callable[[str], Awaitable[dict[str, Any]]],
    container: str,
    on_page_finished: Optional[PageCallback] = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Flatten a continuation-token listing into a lazy stream of items.

    Page numbers passed to `on_page_finished` are emulated.
    """
    virtual_page = 1
    token = CONTINUATION_START_TOKEN
    while True:
        rsp = await fetch(token)
        if rsp.get("continuation") is None:
            raise UnexpectedResponseShape("API did not return the continuation token", rsp)
        # The last token sometimes comes back as an int
        token = str(rsp["continuation"])

        if container not in rsp or rsp[container] is None:
            raise UnexpectedResponseShape(
                f"API did not return container '{container}' for page {virtual_page}", rsp
            )

        for item in rsp[container]:
            yield item
        if on_page_finished is not None:
            on_page_finished(virtual_page)

        virtual_page += 1
        if token == CONTINUATION_LAST_TOKEN:
            break


class CollectionSource:
    """Endpoint wrappers plus lazy iteration over collection contents."""

    def __init__(self, api: ApiClient, per_page: int = MAX_PER_PAGE) -> None:
        validate_regular_pagination(1, per_page)
        self.api = api
        self.per_page = per_page

    @staticmethod
    def _extras() -> str:
        return ",".join(PHOTO_EXTRAS)

    # ----- single calls -------------------------------------------------

    async def photoset_info(self, owner_nsid: str, set_id: str) -> PhotosetDto:
        data = await self.api.call(
            "flickr.photosets.getInfo",
            {"user_id": owner_nsid, "photoset_id": set_id},
            "photoset",
        )
        return PhotosetDto(data)

    async def photoset_photos(self, owner_nsid: str, set_id: str, page: int = 1) -> dict[str, Any]:
        validate_regular_pagination(page, self.per_page)
        return await self.api.call(
            "flickr.photosets.getPhotos",
            {
                "user_id": owner_nsid,
                "photoset_id": set_id,
                "page": page,
                "per_page": self.per_page,
                "extras": self._extras(),
            },
            "photoset",
        )

    async def photoset_list(self, owner_nsid: str, page: int = 1) -> dict[str, Any]:
        validate_regular_pagination(page, self.per_page)
        return await self.api.call(
            "flickr.photosets.getList",
            {"user_id": owner_nsid, "page": page, "per_page": self.per_page},
            "photosets",
        )

    async def gallery_info(self, owner_nsid: str, gallery_id: str) -> GalleryDto:
        data = await self.api.call(
            "flickr.galleries.getInfo",
            {"user_id": owner_nsid, "gallery_id": gallery_id},
            "gallery",
        )
        return GalleryDto(data)

    async def gallery_photos(self, owner_nsid: str, gallery_id: str, page: int = 1) -> dict[str, Any]:
        # galleries.getPhotos claims to support continuation tokens but does not
        validate_regular_pagination(page, self.per_page)
        return await self.api.call(
            "flickr.galleries.getPhotos",
            {
                "user_id": owner_nsid,
                "gallery_id": gallery_id,
                "page": page,
                "per_page": self.per_page,
                "extras": self._extras(),
            },
            "photos",
        )

    async def gallery_list(
        self,
        owner_nsid: str,
        page: Optional[int] = None,
        continuation: Optional[str] = CONTINUATION_START_TOKEN,
    ) -> dict[str, Any]:
        """
        List galleries of a user with either pagination style.

        Args:
            owner_nsid (str): Gallery owner.
            page (Optional[int]): Page number; None to use the continuation token.
            continuation (Optional[str]): Token; None to use page numbers.
        """
        validate_token_pagination(page, self.per_page, continuation)
        params: dict[str, Any] = {"user_id": owner_nsid, "per_page": self.per_page}
        if continuation is None:
            params["page"] = page
        else:
            params["continuation"] = continuation
        return await self.api.call("flickr.galleries.getList", params, "galleries")

    async def favorites(self, owner_nsid: str, page: int = 1) -> dict[str, Any]:
        validate_regular_pagination(page, self.per_page)
        return await self.api.call(
            "flickr.favorites.getList",
            {
                "user_id": owner_nsid,
                "page": page,
                "per_page": self.per_page,
                "extras": self._extras(),
            },
            "photos",
        )

    async def person_info(self, nsid: str) -> PersonDto:
        data = await self.api.call("flickr.people.getInfo", {"user_id": nsid}, "person")
        return PersonDto(data)

    async def user_photos(self, owner_nsid: str, page: int = 1) -> dict[str, Any]:
        validate_regular_pagination(page, self.per_page)
        return await self.api.call(
            "flickr.people.getPhotos",
            {
                "user_id": owner_nsid,
                "page": page,
                "per_page": self.per_page,
                "extras": self._extras(),
            },
            "photos",
        )

    async def group_info(self, group: str) -> GroupDto:
        # NSID-like ids contain "@", anything else is a path alias
        key = "group_id" if "@" in group else "group_path_alias"
        data = await self.api.call("flickr.groups.getInfo", {key: group}, "group")
        return GroupDto(data)

    async def pool_photos(self, group_id: str, page: int = 1) -> dict[str, Any]:
        validate_regular_pagination(page, self.per_page)
        return await self.api.call(
            "flickr.groups.pools.getPhotos",
            {
                "group_id": group_id,
                "page": page,
                "per_page": self.per_page,
                "extras": self._extras(),
            },
            "photos",
        )

    async def lookup_user(self, profile_url: str) -> PersonDto:
        data = await self.api.call("flickr.urls.lookupUser", {"url": profile_url}, "user")
        return PersonDto(data)

    async def find_by_username(self, username: str) -> PersonDto:
        data = await self.api.call("flickr.people.findByUsername", {"username": username}, "user")
        return PersonDto(data)

    # ----- iteration ----------------------------------------------------

    def _page_fetcher(self, ref: CollectionRef) -> tuple[Callable[[int], Awaitable[dict[str, Any]]], str]:
        if isinstance(ref, Album):
            return (lambda page: self.photoset_photos(ref.user.nsid, ref.set_id, page)), "photo"
        if isinstance(ref, Gallery):
            return (lambda page: self.gallery_photos(ref.user.nsid, ref.set_id, page)), "photo"
        if isinstance(ref, UserFaves):
            return (lambda page: self.favorites(ref.user.nsid, page)), "photo"
        if isinstance(ref, UserPhotostream):
            return (lambda page: self.user_photos(ref.user.nsid, page)), "photo"
        if isinstance(ref, Pool):
            return (lambda page: self.pool_photos(ref.pool_id, page)), "photo"
        raise TypeError(f"Unsupported collection reference {ref!r}")

    async def list_page(self, ref: CollectionRef, page: int = 1) -> Page:
        """Fetch a single page of collection items."""
        fetch, container = self._page_fetcher(ref)
        rsp = await fetch(page)
        if rsp.get("pages") is None:
            raise UnexpectedResponseShape("API did not return number of pages", rsp)
        if rsp.get(container) is None:
            raise UnexpectedResponseShape(
                f"API did not return container '{container}' for page {page}", rsp
            )
        return Page(number=page, items=list(rsp[container]), total_pages=int(rsp["pages"]))

    async def iterate_collection(
        self, ref: CollectionRef, on_page_finished: Optional[PageCallback] = None
    ) -> AsyncIterator[PhotoDto]:
        """
        Lazily yield every photo of a collection, page by page.

        Owners must already be resolved to NSIDs. Each call starts over from
        page 1.
        """
        fetch, container = self._page_fetcher(ref)
        async for item in iterate_pages(fetch, container, on_page_finished):
            yield PhotoDto(item)

    async def iterate_user_albums(self, owner_nsid: str) -> AsyncIterator[PhotosetDto]:
        async for item in iterate_pages(
            lambda page: self.photoset_list(owner_nsid, page), "photoset"
        ):
            yield PhotosetDto(item)

    async def iterate_user_galleries(self, owner_nsid: str) -> AsyncIterator[GalleryDto]:
        async for item in iterate_tokens(
            lambda token: self.gallery_list(owner_nsid, None, token), "gallery"
        ):
            yield GalleryDto(item)
