import os
from datetime import datetime, timezone

import pytest

from fakes import OWNER

from flickrsync.errors import StorageError
from flickrsync.sizes import PhotoSize
from flickrsync.storage import TEMP_MARKER, StorageProvider
from flickrsync.store import PhotoRecord


def _photo(**kwargs):
    defaults = {
        "id": "42",
        "owner_nsid": OWNER,
        "size": PhotoSize.ORIGINAL,
        "date_taken": datetime(2021, 5, 3, 10, tzinfo=timezone.utc),
    }
    defaults.update(kwargs)
    return PhotoRecord(**defaults)


def test_path_layout(tmp_path):
    storage = StorageProvider(str(tmp_path))
    assert storage.path_for(_photo()) == os.path.join(
        str(tmp_path), "files", "11", "111_N01", "2021", "05", "42.jpg"
    )


def test_path_falls_back_to_upload_date(tmp_path):
    storage = StorageProvider(str(tmp_path))
    photo = _photo(date_taken=None, date_uploaded=datetime(2019, 12, 1, tzinfo=timezone.utc))
    assert os.path.join("2019", "12", "42.jpg") in storage.path_for(photo)


def test_write_then_commit(tmp_path):
    storage = StorageProvider(str(tmp_path))
    photo = _photo()
    handle = storage.open_for_write(photo, photo.size)
    assert TEMP_MARKER in os.path.basename(handle.temp_path)
    assert "original" in os.path.basename(handle.temp_path)
    assert os.path.dirname(handle.temp_path) == os.path.dirname(handle.final_path)

    with open(handle.temp_path, "wb") as file:
        file.write(b"jpeg")
    final_path = storage.commit(handle)

    assert final_path == storage.path_for(photo)
    assert not os.path.exists(handle.temp_path)
    assert storage.exists(_photo(local_path=final_path))


def test_commit_replaces_previous_file(tmp_path):
    storage = StorageProvider(str(tmp_path))
    photo = _photo()
    for body in (b"old", b"new"):
        handle = storage.open_for_write(photo, photo.size)
        with open(handle.temp_path, "wb") as file:
            file.write(body)
        storage.commit(handle)
    with open(storage.path_for(photo), "rb") as file:
        assert file.read() == b"new"


def test_commit_without_temp_file(tmp_path):
    storage = StorageProvider(str(tmp_path))
    handle = storage.open_for_write(_photo(), PhotoSize.ORIGINAL)
    with pytest.raises(StorageError):
        storage.commit(handle)


def test_abort_removes_partial_file(tmp_path):
    storage = StorageProvider(str(tmp_path))
    handle = storage.open_for_write(_photo(), None)
    with open(handle.temp_path, "wb") as file:
        file.write(b"half")
    storage.abort(handle)
    assert not os.path.exists(handle.temp_path)
    # Aborting twice is fine
    storage.abort(handle)


def test_exists_needs_local_path(tmp_path):
    storage = StorageProvider(str(tmp_path))
    assert not storage.exists(_photo())
    assert not storage.exists(_photo(local_path=str(tmp_path / "missing.jpg")))
