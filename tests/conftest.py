"""Shared fixtures."""

import pytest

from fakes import OWNER, OWNER_ALIAS, FakeFlickr

from flickrsync import store
from flickrsync.source import CollectionSource
from flickrsync.store import UserRecord


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "index.db")


@pytest.fixture
def owner(db_path):
    """The album owner, already known to the index."""
    return store.save_user(UserRecord(OWNER, "Alice", OWNER_ALIAS), db_path)


@pytest.fixture
def flickr():
    return FakeFlickr()


@pytest.fixture
def source(flickr):
    return CollectionSource(flickr)
