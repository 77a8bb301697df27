import asyncio

import pytest

from fakes import OWNER

from flickrsync import cli, store
from flickrsync.errors import UnrecognizedUrlError
from flickrsync.refs import Album, CollectionKind, Pool, UserPhotostream
from flickrsync.store import CollectionRecord


def _args(*argv):
    return cli._build_parser().parse_args(list(argv))  # pylint: disable=protected-access


class TestParseCollection:
    def test_scheme_is_optional(self):
        ref = cli.parse_collection("www.flickr.com/photos/alice/albums/721")
        assert isinstance(ref, Album)
        assert ref.set_id == "721"

    def test_invalid_url(self):
        with pytest.raises(UnrecognizedUrlError):
            cli.parse_collection("https://exa mple")

    def test_valid_url_of_unknown_shape(self):
        with pytest.raises(UnrecognizedUrlError):
            cli.parse_collection("https://www.flickr.com/help/terms")


class TestArguments:
    def test_defaults(self):
        args = _args("sync", "https://www.flickr.com/photos/alice")
        options = cli._options_from_args(args)  # pylint: disable=protected-access
        assert options.switch_identities
        assert options.trust_photo_records
        assert not options.index_only
        assert not options.ignore_completed

    def test_flags(self):
        args = _args(
            "sync", "x", "--repair-files", "--no-randomize-identity", "--distrust-timestamps", "--ignore-completed"
        )
        options = cli._options_from_args(args)  # pylint: disable=protected-access
        assert not options.trust_photo_records
        assert not options.switch_identities
        assert options.distrust_timestamps
        assert options.ignore_completed

    def test_repair_and_index_only_exclude_each_other(self):
        with pytest.raises(SystemExit):
            _args("sync", "x", "--repair-files", "--index-only")

    def test_unlock_scope_is_checked(self):
        with pytest.raises(SystemExit):
            _args("unlock", "everything")

    def test_bare_id_with_type(self):
        args = _args("sync", "721", "--type", "album", "--user-id", "alice")
        refs = asyncio.run(cli._collection_refs(args, None))  # pylint: disable=protected-access
        assert isinstance(refs[0], Album)
        assert refs[0].set_id == "721"
        assert refs[0].user.identifier == "alice"

    def test_bare_pool_id(self):
        args = _args("sync", "444@N20", "--type", "pool")
        refs = asyncio.run(cli._collection_refs(args, None))  # pylint: disable=protected-access
        assert refs == [Pool("444@N20")]

    def test_url(self):
        args = _args("sync", "https://www.flickr.com/photos/alice/")
        refs = asyncio.run(cli._collection_refs(args, None))  # pylint: disable=protected-access
        assert isinstance(refs[0], UserPhotostream)

    def test_nothing_to_sync(self):
        with pytest.raises(UnrecognizedUrlError):
            asyncio.run(cli._collection_refs(_args("sync"), None))  # pylint: disable=protected-access


class TestMain:
    def test_missing_api_keys(self, monkeypatch, db_path, capsys):
        monkeypatch.setattr(cli, "API_KEYS", [])
        assert cli.main(["--db", db_path, "sync", "https://www.flickr.com/photos/alice"]) == cli.EXIT_RESOLUTION_FAILED
        assert "API key" in capsys.readouterr().out

    def test_unlock(self, db_path, owner):
        store.save_collection(CollectionRecord(CollectionKind.ALBUM, "721", OWNER), db_path)
        store.lock_collection_for_write(CollectionKind.ALBUM, "721", db_path)

        assert cli.main(["--db", db_path, "unlock", "albums", "--yes"]) == cli.EXIT_OK
        assert not store.get_collection(CollectionKind.ALBUM, "721", db_path).is_locked
