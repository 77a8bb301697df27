from fakes import OWNER

from flickrsync import store
from flickrsync.refs import CollectionKind
from flickrsync.store import CollectionRecord, LockedRecord, PhotoRecord
from flickrsync.unlock import CONFIRM_PROMPT, format_locks, unlock_index


def _lock_some(db_path):
    store.save_photo(PhotoRecord("1", OWNER, title="Sunset", filesystem_in_sync=True), db_path)
    store.save_collection(CollectionRecord(CollectionKind.ALBUM, "721", OWNER, title="Trip"), db_path)
    store.lock_photo_for_write("1", db_path)
    store.lock_collection_for_write(CollectionKind.ALBUM, "721", db_path)


def test_nothing_locked(db_path, capsys):
    asked = []
    assert unlock_index("all", db_path, ask=asked.append) is None
    assert asked == []
    assert "No locked entities found" in capsys.readouterr().out


def test_operator_declines(db_path, owner, capsys):
    _lock_some(db_path)
    prompts = []

    def decline(prompt):
        prompts.append(prompt)
        return False

    assert unlock_index("all", db_path, ask=decline) is None
    assert prompts == [CONFIRM_PROMPT]
    assert len(store.find_locked("all", db_path)) == 2
    out = capsys.readouterr().out
    assert "Sunset" in out
    assert "Unlock cancelled" in out


def test_operator_confirms(db_path, owner, capsys):
    _lock_some(db_path)
    summary = unlock_index("all", db_path, ask=lambda _prompt: True)
    assert (summary.photos, summary.albums, summary.total) == (1, 1, 2)
    assert store.find_locked("all", db_path) == []
    assert "Unlocked 2 record(s)" in capsys.readouterr().out


def test_assume_yes_and_scope(db_path, owner):
    _lock_some(db_path)

    def never(_prompt):
        raise AssertionError("should not ask")

    summary = unlock_index("photos", db_path, assume_yes=True, ask=never)
    assert summary.total == 1
    assert [r.scope for r in store.find_locked("all", db_path)] == ["album"]


def test_format_locks_aligns_columns():
    rows = format_locks(
        [
            LockedRecord("photo", "1", "2024-01-01T00:00:00+00:00", "Sunset"),
            LockedRecord("album", "72157", "2024-01-02T00:00:00+00:00", ""),
        ]
    )
    assert rows[0].startswith("Type ")
    assert len(rows) == 3
    assert rows[1].index("1") == rows[2].index("72157")
    assert " - " in rows[2]
    assert format_locks([]) == []
