"""In-memory stand-ins for the HTTP session and the REST API used by the tests."""

from __future__ import annotations

from typing import Any, Callable, Optional

from flickrsync import store
from flickrsync.errors import ApiCallError

OWNER = "111@N01"
OWNER_ALIAS = "alice"
STATIC = "https://live.staticflickr.com/65535"


def photo_item(
    photo_id: str,
    size: str = "k",
    updated: int = 1700000000,
    secret: str = "abc",
    **extra: Any,
) -> dict[str, Any]:
    """One listing entry with extras, offering a single size variant."""
    item = {
        "id": photo_id,
        "title": f"Photo {photo_id}",
        "dateupload": "1600000000",
        "lastupdate": str(updated),
        "datetaken": "2021-05-03 10:00:00",
        "views": "5",
        f"url_{size}": f"{STATIC}/{photo_id}_{secret}_{size}.jpg",
    }
    item.update(extra)
    return item


class FakeContent:
    def __init__(self, body: bytes) -> None:
        self._body = body
        self._offset = 0

    async def read(self, n: int = -1) -> bytes:
        if n < 0:
            n = len(self._body) - self._offset
        chunk = self._body[self._offset:self._offset + n]
        self._offset += len(chunk)
        return chunk


class FakeResponse:
    """Just enough of aiohttp.ClientResponse for the code under test."""

    def __init__(
        self,
        status: int = 200,
        body: bytes = b"",
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        self.status = status
        self.headers = dict(headers or {})
        self.content = FakeContent(body)
        self._body = body
        self.released = False

    @classmethod
    def image(cls, body: bytes, declared: Optional[int] = None) -> "FakeResponse":
        length = len(body) if declared is None else declared
        return cls(200, body, {"Content-Type": "image/jpeg", "Content-Length": str(length)})

    async def text(self) -> str:
        return self._body.decode("utf-8")

    async def release(self) -> None:
        self.released = True

    async def __aenter__(self) -> "FakeResponse":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.release()


class FakeSession:
    """Records requests and answers them through `respond`."""

    def __init__(self, respond: Callable[[str, str, dict[str, Any]], Any]) -> None:
        self.respond = respond
        self.requests: list[tuple[str, str, dict[str, Any]]] = []

    @classmethod
    def replay(cls, *results: Any) -> "FakeSession":
        queue = list(results)
        return cls(lambda *_: queue.pop(0))

    async def request(self, method: str, url: str, **kwargs: Any) -> Any:
        self.requests.append((method, url, kwargs))
        result = self.respond(method, url, kwargs)
        if isinstance(result, BaseException):
            raise result
        return result


async def no_sleep(_delay: float) -> None:
    return None


def _paged(items: list[dict[str, Any]], params: dict[str, Any], **envelope: Any) -> dict[str, Any]:
    page = int(params.get("page", 1))
    per_page = int(params.get("per_page", 500))
    pages = max(1, -(-len(items) // per_page))
    start = (page - 1) * per_page
    data = {"page": page, "pages": pages, "perpage": per_page, "total": len(items)}
    data.update(envelope)
    data["photo"] = items[start:start + per_page]
    return data


class FakeFlickr:
    """
    Scriptable REST API with one user, one album, one gallery and one group.

    Tests mutate the public attributes between runs to simulate remote changes,
    and put exceptions into `failures` keyed by (method, page) to break calls.
    """

    def __init__(self) -> None:
        self.people: dict[str, dict[str, Any]] = {
            OWNER: {
                "id": OWNER,
                "nsid": OWNER,
                "username": {"_content": "Alice"},
                "path_alias": OWNER_ALIAS,
                "photos": {"count": {"_content": 2}},
            }
        }
        self.aliases = {OWNER_ALIAS: OWNER}
        self.album: dict[str, Any] = {
            "id": "721",
            "owner": OWNER,
            "title": {"_content": "Trip"},
            "description": {"_content": "Summer"},
            "date_create": "1600000000",
            "date_update": "1700000000",
            "count_photos": "2",
            "count_views": "10",
        }
        self.album_photos = [photo_item("1"), photo_item("2")]
        self.gallery: dict[str, Any] = {
            "id": "5-722",
            "gallery_id": "722",
            "owner": OWNER,
            "title": {"_content": "Picks"},
            "date_create": "1600000000",
            "date_update": "1700000000",
            "count_photos": "1",
        }
        self.gallery_photos = [photo_item("9", owner="333@N03", ownername="Carol", pathalias="carol")]
        self.favorites = [photo_item("7", owner="333@N03", ownername="Carol", pathalias="carol")]
        self.stream = [photo_item("1"), photo_item("2")]
        self.group: dict[str, Any] = {
            "id": "444@N20",
            "path_alias": "mygroup",
            "name": {"_content": "My group"},
            "description": {"_content": "Pool of things"},
            "pool_count": {"_content": 1},
        }
        self.pool_photos = [photo_item("8", owner="333@N03", ownername="Carol", pathalias="carol")]
        self.failures: dict[tuple[str, Optional[int]], Exception] = {}
        self.log: list[tuple[str, dict[str, Any]]] = []
        self.switches = 0

    def switch_identity(self, profile: Any = None) -> None:
        self.switches += 1

    def called(self, method: str) -> int:
        return sum(1 for name, _ in self.log if name == method)

    async def call(
        self,
        method: str,
        params: Optional[dict[str, Any]] = None,
        envelope: Optional[str] = None,
    ) -> dict[str, Any]:
        params = dict(params or {})
        self.log.append((method, params))
        page = params.get("page")
        failure = self.failures.get((method, page)) or self.failures.get((method, None))
        if failure is not None:
            raise failure
        handler = getattr(self, "_" + method.replace("flickr.", "").replace(".", "_"), None)
        if handler is None:
            raise ApiCallError(112, f"Method '{method}' not found")
        return handler(params)

    def _urls_lookupUser(self, params: dict[str, Any]) -> dict[str, Any]:
        alias = params["url"].rstrip("/").rsplit("/", 1)[-1]
        nsid = self.aliases.get(alias) or (alias if alias in self.people else None)
        if nsid is None:
            raise ApiCallError(ApiCallError.USER_NOT_FOUND, "User not found")
        return {"id": nsid, "username": self.people[nsid]["username"]}

    def _people_getInfo(self, params: dict[str, Any]) -> dict[str, Any]:
        person = self.people.get(params["user_id"])
        if person is None:
            raise ApiCallError(ApiCallError.USER_NOT_FOUND, "User not found")
        return person

    def _people_findByUsername(self, params: dict[str, Any]) -> dict[str, Any]:
        for nsid, person in self.people.items():
            if person["username"]["_content"] == params["username"]:
                return {"id": nsid, "nsid": nsid, "username": person["username"]}
        raise ApiCallError(ApiCallError.USER_NOT_FOUND, "User not found")

    def _photosets_getInfo(self, params: dict[str, Any]) -> dict[str, Any]:
        return self.album

    def _photosets_getPhotos(self, params: dict[str, Any]) -> dict[str, Any]:
        return _paged(self.album_photos, params, id=self.album["id"], owner=OWNER)

    def _galleries_getInfo(self, params: dict[str, Any]) -> dict[str, Any]:
        return self.gallery

    def _galleries_getPhotos(self, params: dict[str, Any]) -> dict[str, Any]:
        return _paged(self.gallery_photos, params)

    def _favorites_getList(self, params: dict[str, Any]) -> dict[str, Any]:
        return _paged(self.favorites, params)

    def _people_getPhotos(self, params: dict[str, Any]) -> dict[str, Any]:
        return _paged(self.stream, params)

    def _groups_getInfo(self, params: dict[str, Any]) -> dict[str, Any]:
        wanted = params.get("group_id") or params.get("group_path_alias")
        if wanted not in (self.group["id"], self.group["path_alias"]):
            raise ApiCallError(1, "Group not found")
        return self.group

    def _groups_pools_getPhotos(self, params: dict[str, Any]) -> dict[str, Any]:
        return _paged(self.pool_photos, params)


class RecordingSink:
    """Photo sink remembering what it was handed, optionally pretending to download."""

    def __init__(self, db_path: Optional[str] = None, fetch: bool = True, result: bool = True) -> None:
        self.db_path = db_path
        self.fetch = fetch
        self.result = result
        self.photos: list[str] = []

    async def __call__(self, photo: Any) -> bool:
        self.photos.append(photo.id)
        if self.fetch and self.result:
            store.unlock_photo(photo.id, True, f"/mirror/{photo.id}.jpg", self.db_path)
        return self.result
