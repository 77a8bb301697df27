"""Command line interface: sync collections and recover the index."""

# pylint: disable=line-too-long

from __future__ import annotations

import argparse
import asyncio
from typing import Optional, Sequence

from aiohttp import ClientSession
from validators import url as validate_url

from flickrsync.api import DEFAULT_TIMEOUT, ApiClient
from flickrsync.config import API_KEYS, BATCH_SIZE, PROXIES
from flickrsync.downloader import FetchPhotoToDisk, TqdmProgressObserver
from flickrsync.errors import ConfigurationError, ResolutionError, UnrecognizedUrlError
from flickrsync.identity import ClientProfile, IdentityPool
from flickrsync.refs import Album, CollectionKind, CollectionRef, Gallery, OwnerRef
from flickrsync.source import CollectionSource
from flickrsync.storage import StorageProvider
from flickrsync.store import LOCK_SCOPES
from flickrsync.sync.base import PhotoSink, SyncOptions, index_only_sink
from flickrsync.sync.factory import SyncStrategyFactory
from flickrsync.unlock import unlock_index
from flickrsync.url_parser import resolve, resolve_id, resolve_user

EXIT_OK = 0
EXIT_SYNC_FAILED = 1
EXIT_RESOLUTION_FAILED = 2


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flickrsync",
        description="Incrementally mirror photo collections into a local index and file store.",
    )
    parser.add_argument("--db", default=None, help="SQLite index path (default: FLICKRSYNC_DB_PATH)")
    sub = parser.add_subparsers(dest="command", required=True)

    sync = sub.add_parser("sync", help="Sync a collection")
    sync.add_argument(
        "collection",
        nargs="?",
        help="Collection URL, or a bare id together with --type",
    )
    sync.add_argument(
        "--type",
        choices=[kind.value for kind in CollectionKind],
        help="Collection type when passing a bare id",
    )
    sync.add_argument("--user-id", help="Owner screen name or NSID for bare ids")
    sync.add_argument(
        "--ignore-completed",
        action="store_true",
        help="Skip collections that finished a full sync before",
    )
    sync.add_argument(
        "--distrust-timestamps",
        action="store_true",
        help="Re-list collections even when update dates say nothing changed",
    )
    mode = sync.add_mutually_exclusive_group()
    mode.add_argument(
        "--repair-files",
        action="store_true",
        help="Re-verify every photo file even when its record looks fine",
    )
    mode.add_argument(
        "--index-only",
        "-i",
        action="store_true",
        help="Only update the index, do not download files",
    )
    sync.add_argument(
        "--randomize-identity",
        "-r",
        dest="randomize_identity",
        action="store_true",
        default=True,
        help="Rotate API keys, user agents and proxies (default)",
    )
    sync.add_argument(
        "--no-randomize-identity",
        dest="randomize_identity",
        action="store_false",
        help="Use one identity for the whole run",
    )
    sync.add_argument(
        "--batch-size",
        type=int,
        default=BATCH_SIZE,
        help=f"Files downloaded at once (default: {BATCH_SIZE})",
    )
    sync.add_argument("--storage", default=None, help="Root folder for files (default: FLICKRSYNC_STORAGE)")
    listing = sync.add_mutually_exclusive_group()
    listing.add_argument("--all-albums", action="store_true", help="Sync every album of the user")
    listing.add_argument("--all-galleries", action="store_true", help="Sync every gallery of the user")

    unlock = sub.add_parser("unlock", help="Clear write locks left by crashed runs")
    unlock.add_argument("scope", nargs="?", default="all", choices=LOCK_SCOPES)
    unlock.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation")
    return parser


def parse_collection(raw: str) -> CollectionRef:
    """Validate and resolve a collection URL typed by the user."""
    candidate = raw.strip()
    if "://" not in candidate:
        candidate = f"https://{candidate}"
    if not validate_url(candidate):
        raise UnrecognizedUrlError(f"Invalid URL format: '{raw}'")
    return resolve(candidate)


def _options_from_args(args: argparse.Namespace) -> SyncOptions:
    return SyncOptions(
        ignore_completed=args.ignore_completed,
        distrust_timestamps=args.distrust_timestamps,
        trust_photo_records=not args.repair_files,
        switch_identities=args.randomize_identity,
        index_only=args.index_only,
    )


async def _collection_refs(
    args: argparse.Namespace, factory: SyncStrategyFactory
) -> list[CollectionRef]:
    if args.all_albums or args.all_galleries:
        raw_owner = args.user_id or args.collection
        if not raw_owner:
            raise UnrecognizedUrlError("Listing all albums/galleries needs a user URL or --user-id")
        owner = resolve_user(raw_owner)
        nsid = await factory.owners.ensure_canonical(owner)
        refs: list[CollectionRef] = []
        if args.all_albums:
            async for album in factory.source.iterate_user_albums(nsid):
                refs.append(Album(OwnerRef.canonical(nsid), album.id))
        else:
            async for gallery in factory.source.iterate_user_galleries(nsid):
                refs.append(Gallery(OwnerRef.canonical(nsid), gallery.gallery_id or gallery.id))
        print(f"[*] Found {len(refs)} collection(s) of {owner.identifier}")
        return refs

    if not args.collection:
        raise UnrecognizedUrlError("Nothing to sync: pass a collection URL or id")
    if args.type:
        return [resolve_id(args.collection, CollectionKind(args.type), args.user_id)]
    return [parse_collection(args.collection)]


async def run_sync(args: argparse.Namespace) -> int:
    """
    Sync every requested collection.

    Returns:
        int: EXIT_OK when everything synced, EXIT_SYNC_FAILED when a
        collection failed, EXIT_RESOLUTION_FAILED when input could not be
        resolved.
    """
    options = _options_from_args(args)
    pool = IdentityPool(API_KEYS, PROXIES, pinned=not options.switch_identities)
    profile = ClientProfile.RANDOM_CLI if options.switch_identities else ClientProfile.COMMON_CLI

    async with ClientSession(timeout=DEFAULT_TIMEOUT) as session:
        api = ApiClient(session, pool, profile)
        source = CollectionSource(api)
        factory = SyncStrategyFactory(source, options=options, db_path=args.db)

        fetcher: Optional[FetchPhotoToDisk] = None
        observer: Optional[TqdmProgressObserver] = None
        sink: PhotoSink = index_only_sink
        if not options.index_only:
            observer = TqdmProgressObserver()
            fetcher = FetchPhotoToDisk(
                session,
                pool,
                StorageProvider(args.storage),
                batch_size=args.batch_size,
                switch_identities=options.switch_identities,
                observer=observer,
                db_path=args.db,
            )
            sink = fetcher

        try:
            refs = await _collection_refs(args, factory)
            ok = True
            for ref in refs:
                print(f"[*] Syncing {ref.describe()}")
                result = await factory.sync_collection(ref, sink)
                if not result:
                    print(f"[!] {ref.describe()} sync failed")
                ok = result and ok
        except ResolutionError as e:
            print(f"[!] {e}")
            return EXIT_RESOLUTION_FAILED
        finally:
            if observer is not None:
                observer.close()

        if fetcher is not None:
            print(
                f"[^] Downloaded: {fetcher.downloaded}, Skipped: {fetcher.skipped}, Failed: {fetcher.failed}. API calls: {api.calls}"
            )
    return EXIT_OK if ok else EXIT_SYNC_FAILED


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    if args.command == "unlock":
        unlock_index(args.scope, args.db, assume_yes=args.yes)
        return EXIT_OK

    try:
        return asyncio.run(run_sync(args))
    except ConfigurationError as e:
        print(f"[!] {e}")
        return EXIT_RESOLUTION_FAILED
