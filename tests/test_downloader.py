import asyncio
import os
import random
from datetime import datetime, timezone

import pytest
from aiohttp import client_exceptions

from fakes import OWNER, FakeResponse, FakeSession

from flickrsync import store
from flickrsync.downloader import UNKNOWN_SIZE, DownloadJobStatus, FetchPhotoToDisk
from flickrsync.errors import AlreadyLockedError, ConfigurationError
from flickrsync.identity import ClientProfile, IdentityPool
from flickrsync.retry import RetryPolicy
from flickrsync.sizes import PhotoSize
from flickrsync.storage import StorageProvider
from flickrsync.store import PhotoRecord

NO_RETRY = RetryPolicy(max_retries=0)


def _save_photo(db_path, photo_id, **kwargs):
    kwargs.setdefault("date_taken", datetime(2021, 5, 3, 10, tzinfo=timezone.utc))
    photo = PhotoRecord(
        id=photo_id,
        owner_nsid=OWNER,
        size=PhotoSize.ORIGINAL,
        cdn_url=f"https://cdn.test/{photo_id}_o.jpg",
        **kwargs,
    )
    store.save_photo(photo, db_path)
    return photo


def _serve(files):
    """Session answering each CDN URL with a fresh response built from `files`."""

    def respond(_method, url, _kwargs):
        body = files.get(url)
        if isinstance(body, BaseException):
            return body
        if isinstance(body, FakeResponse):
            return body
        if body is None:
            return FakeResponse(404, b"", {"Content-Type": "text/html"})
        return FakeResponse.image(body)

    return FakeSession(respond)


@pytest.fixture
def storage(tmp_path):
    return StorageProvider(str(tmp_path / "mirror"))


def _fetcher(session, storage, db_path, **kwargs):
    kwargs.setdefault("retry", NO_RETRY)
    return FetchPhotoToDisk(
        session,
        IdentityPool(["key-0001-abcd"]),
        storage,
        db_path=db_path,
        **kwargs,
    )


class TestUnitMode:
    def test_downloads_and_records_file(self, db_path, owner, storage):
        photo = _save_photo(db_path, "1")
        session = _serve({photo.cdn_url: b"x" * 200_000})
        progress = []
        fetcher = _fetcher(
            session,
            storage,
            db_path,
            batch_size=1,
            observer=lambda s: progress.append((s.bytes_downloaded, s.bytes_total, s.completed)),
        )

        assert asyncio.run(fetcher(photo))

        saved = store.get_photo("1", db_path)
        assert saved.filesystem_in_sync
        assert not saved.is_locked
        assert saved.local_path == storage.path_for(saved)
        with open(saved.local_path, "rb") as file:
            assert len(file.read()) == 200_000
        assert progress[0] == (0, 200_000, False)
        assert progress[-1] == (200_000, 200_000, True)
        assert fetcher.downloaded == 1
        _, url, kwargs = session.requests[0]
        assert url == photo.cdn_url
        assert kwargs["headers"]["User-Agent"]

    def test_skips_file_already_in_place(self, db_path, owner, storage, tmp_path):
        existing = tmp_path / "1.jpg"
        existing.write_bytes(b"jpeg")
        photo = _save_photo(db_path, "1", local_path=str(existing), filesystem_in_sync=True)
        session = _serve({})
        fetcher = _fetcher(session, storage, db_path, batch_size=1)

        assert asyncio.run(fetcher(photo))
        assert session.requests == []
        assert fetcher.skipped == 1

    def test_redownloads_when_file_vanished(self, db_path, owner, storage, tmp_path):
        photo = _save_photo(db_path, "1", local_path=str(tmp_path / "gone.jpg"), filesystem_in_sync=True)
        fetcher = _fetcher(_serve({photo.cdn_url: b"jpeg"}), storage, db_path, batch_size=1)
        assert asyncio.run(fetcher(photo))
        assert fetcher.downloaded == 1

    def test_http_error_leaves_record_unsynced(self, db_path, owner, storage):
        photo = _save_photo(db_path, "1")
        errors = []
        fetcher = _fetcher(
            _serve({}), storage, db_path, batch_size=1, observer=lambda s: errors.append(s.error)
        )

        assert not asyncio.run(fetcher(photo))

        saved = store.get_photo("1", db_path)
        assert not saved.is_locked
        assert not saved.filesystem_in_sync
        assert saved.local_path is None
        assert "HTTP 404" in errors[-1]
        assert fetcher.failed == 1

    def test_truncated_body_is_discarded(self, db_path, owner, storage):
        photo = _save_photo(db_path, "1")
        session = _serve({photo.cdn_url: FakeResponse.image(b"half", declared=100)})
        fetcher = _fetcher(session, storage, db_path, batch_size=1)

        assert not asyncio.run(fetcher(photo))

        folder = os.path.dirname(storage.path_for(photo))
        assert os.listdir(folder) == []
        assert not store.get_photo("1", db_path).filesystem_in_sync

    def test_html_instead_of_image(self, db_path, owner, storage):
        photo = _save_photo(db_path, "1")
        page = FakeResponse(200, b"<html>", {"Content-Type": "text/html"})
        fetcher = _fetcher(_serve({photo.cdn_url: page}), storage, db_path, batch_size=1)
        assert not asyncio.run(fetcher(photo))

    def test_connection_error(self, db_path, owner, storage):
        photo = _save_photo(db_path, "1")
        session = _serve({photo.cdn_url: client_exceptions.ClientConnectionError("reset")})
        fetcher = _fetcher(session, storage, db_path, batch_size=1)
        assert not asyncio.run(fetcher(photo))
        assert not store.get_photo("1", db_path).is_locked

    def test_unknown_length(self, db_path, owner, storage):
        photo = _save_photo(db_path, "1")
        response = FakeResponse(200, b"jpeg", {"Content-Type": "image/jpeg"})
        totals = []
        fetcher = _fetcher(
            _serve({photo.cdn_url: response}),
            storage,
            db_path,
            batch_size=1,
            observer=lambda s: totals.append(s.bytes_total),
        )
        assert asyncio.run(fetcher(photo))
        assert set(totals) == {UNKNOWN_SIZE}

    def test_locked_photo_raises(self, db_path, owner, storage):
        photo = _save_photo(db_path, "1")
        store.lock_photo_for_write("1", db_path)
        fetcher = _fetcher(_serve({photo.cdn_url: b"jpeg"}), storage, db_path, batch_size=1)
        with pytest.raises(AlreadyLockedError):
            asyncio.run(fetcher(photo))

    def test_photo_missing_from_index(self, db_path, owner, storage):
        fetcher = _fetcher(_serve({}), storage, db_path, batch_size=1)
        assert not asyncio.run(fetcher.fetch("404"))

    def test_photo_without_url(self, db_path, owner, storage):
        store.save_photo(PhotoRecord(id="1", owner_nsid=OWNER), db_path)
        fetcher = _fetcher(_serve({}), storage, db_path, batch_size=1)
        assert not asyncio.run(fetcher.fetch("1"))


class TestBatches:
    def test_batch_size_must_be_positive(self, db_path, storage):
        with pytest.raises(ConfigurationError):
            _fetcher(_serve({}), storage, db_path, batch_size=0)

    def test_queue_until_full(self, db_path, owner, storage):
        photos = [_save_photo(db_path, str(n)) for n in range(1, 4)]
        session = _serve({p.cdn_url: p.id.encode() for p in photos})
        fetcher = _fetcher(session, storage, db_path, batch_size=2)

        async def run():
            first = await fetcher(photos[0])
            queued = len(session.requests)
            second = await fetcher(photos[1])
            third = await fetcher(photos[2])
            return first, queued, second, third

        first, queued, second, third = asyncio.run(run())
        assert (first, second, third) == (True, True, True)
        assert queued == 0
        assert len(session.requests) == 2
        assert not store.get_photo("3", db_path).filesystem_in_sync

        assert asyncio.run(fetcher.flush_all())
        assert store.get_photo("3", db_path).filesystem_in_sync
        assert fetcher.downloaded == 3

    def test_batch_reports_any_failure(self, db_path, owner, storage):
        good = _save_photo(db_path, "1")
        bad = _save_photo(db_path, "2")
        fetcher = _fetcher(_serve({good.cdn_url: b"jpeg"}), storage, db_path, batch_size=2)

        async def run():
            await fetcher(good)
            return await fetcher(bad)

        assert not asyncio.run(run())
        assert store.get_photo("1", db_path).filesystem_in_sync
        assert not store.get_photo("2", db_path).filesystem_in_sync

    def test_locked_photo_in_batch_does_not_stop_others(self, db_path, owner, storage):
        free = _save_photo(db_path, "1")
        locked = _save_photo(db_path, "2")
        store.lock_photo_for_write("2", db_path)
        fetcher = _fetcher(
            _serve({free.cdn_url: b"jpeg", locked.cdn_url: b"jpeg"}), storage, db_path, batch_size=5
        )

        async def run():
            await fetcher(free)
            await fetcher(locked)
            return await fetcher.flush_all()

        assert not asyncio.run(run())
        assert fetcher.downloaded == 1
        assert fetcher.failed == 1

    def test_flush_with_empty_queue(self, db_path, storage):
        assert asyncio.run(_fetcher(_serve({}), storage, db_path).flush_all())


class CountingPool(IdentityPool):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.profiles = []

    def http_config(self, profile):
        self.profiles.append(profile)
        return super().http_config(profile)


@pytest.mark.parametrize("switch", [False, True])
def test_identity_per_file(db_path, owner, storage, switch):
    photos = [_save_photo(db_path, str(n)) for n in range(1, 5)]
    pool = CountingPool(["key-0001-abcd"], ["http://p1:1", "http://p2:2"])
    fetcher = FetchPhotoToDisk(
        _serve({p.cdn_url: b"jpeg" for p in photos}),
        pool,
        storage,
        batch_size=1,
        switch_identities=switch,
        db_path=db_path,
        retry=NO_RETRY,
        rng=random.Random(0),
    )

    async def run():
        for photo in photos:
            assert await fetcher(photo)

    asyncio.run(run())
    if switch:
        # Random(0) draws 0.84, 0.75, 0.42: only the last file switches
        assert pool.profiles == [ClientProfile.RANDOM_BROWSER] * 2
    else:
        assert pool.profiles == [ClientProfile.COMMON_CLI]


def test_job_status_reports_to_observer():
    seen = []
    status = DownloadJobStatus("1", lambda s: seen.append((s.completed, s.error)))
    status.report()
    status.fail("boom")
    assert seen == [(False, None), (True, "boom")]
