"""Resolve owners of collections and photos to canonical users."""

# pylint: disable=line-too-long

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from tqdm import tqdm

from flickrsync import store
from flickrsync.dto import PersonDto, PhotoDto
from flickrsync.errors import ApiCallError, OwnerResolutionError
from flickrsync.refs import OwnerRef
from flickrsync.source import CollectionSource
from flickrsync.store import CollectionRecord, UserRecord
from flickrsync.utils import dbg

PROFILE_URL = "https://www.flickr.com/people/{}"
SHELL_USERNAME = "Dummy NSID={}"


@dataclass(frozen=True)
class UserIdentity:
    """Canonical identity of a user as returned by a lookup."""

    nsid: str
    username: str
    screen_name: Optional[str] = None


class ResolveOwner:
    """
    Owner lookups against the local index first and the API second.

    Users found through the API are saved to the index so later lookups stay
    local.
    """

    def __init__(self, source: CollectionSource, db_path: Optional[str] = None) -> None:
        self.source = source
        self.db_path = db_path

    async def lookup_identity_by_alias(self, screen_name_or_nsid: str) -> Optional[UserIdentity]:
        """
        Identify a user from a screen name or NSID without saving anything.

        Args:
            screen_name_or_nsid (str): Alias as found in a URL.

        Returns:
            Optional[UserIdentity]: Identity, or None when the API does not know it.
        """
        user = store.find_user_by_identifier(screen_name_or_nsid, self.db_path)
        if user is not None:
            dbg(f"Found user {screen_name_or_nsid} in db as NSID={user.nsid}")
            return UserIdentity(user.nsid, user.username, user.screen_name)

        person = await self._lookup_profile(screen_name_or_nsid)
        if person is None:
            return None
        screen_name = screen_name_or_nsid if screen_name_or_nsid != person.nsid else None
        dbg(f"Found user {screen_name_or_nsid} via API as NSID={person.nsid}")
        return UserIdentity(person.nsid, person.username or person.nsid, screen_name)

    async def lookup_user_by_alias(self, screen_name_or_nsid: str) -> Optional[UserRecord]:
        """Same as lookup_identity_by_alias() but ensures the user is saved in the index."""
        user = store.find_user_by_identifier(screen_name_or_nsid, self.db_path)
        if user is not None:
            return user

        identity = await self.lookup_identity_by_alias(screen_name_or_nsid)
        if identity is None:
            return None
        dbg(f"Saving user {screen_name_or_nsid} as NSID={identity.nsid}")
        return store.save_user(
            UserRecord(identity.nsid, identity.username, identity.screen_name),
            self.db_path,
        )

    async def lookup_user_by_nsid(self, nsid: str) -> Optional[UserRecord]:
        user = store.get_user(nsid, self.db_path)
        if user is not None:
            return user

        try:
            person = await self.source.person_info(nsid)
        except ApiCallError as e:
            # Happens for users deleted upstream whose photos are still listed
            tqdm.write(f"[!] Failed to load user NSID={nsid} from API: {e}")
            return None

        dbg(f"Found user NSID={person.nsid} via API - saving to DB")
        return store.save_user(
            UserRecord(person.nsid or nsid, person.username or nsid, person.screen_name),
            self.db_path,
        )

    async def ensure_canonical(self, owner: OwnerRef, local_owner_nsid: Optional[str] = None) -> str:
        """
        Make sure `owner` carries a canonical NSID.

        An alias is never used as an NSID directly: it may be a screen name
        that happens to look like someone else's NSID.

        Raises:
            OwnerResolutionError: Neither the index nor the API knows the alias.
        """
        if owner.has_canonical_id():
            return owner.nsid

        if local_owner_nsid:
            owner.set_canonical_id(local_owner_nsid)
            return local_owner_nsid

        identity = await self.lookup_identity_by_alias(owner.identifier)
        if identity is None:
            raise OwnerResolutionError(f"Unable to determine NSID of owner '{owner.identifier}'")
        owner.set_canonical_id(identity.nsid)
        return identity.nsid

    async def get_owner_user(self, nsid: str) -> UserRecord:
        """Return the user for a known NSID, creating it from the API if needed."""
        user = await self.lookup_user_by_nsid(nsid)
        if user is not None:
            return user
        identity = await self.lookup_identity_by_alias(nsid)
        if identity is not None:
            return store.save_user(
                UserRecord(identity.nsid, identity.username, identity.screen_name),
                self.db_path,
            )
        return self._shell_user(nsid)

    async def resolve_photo_owner(
        self, dto: PhotoDto, found_in: Optional[CollectionRecord]
    ) -> UserRecord:
        """
        Determine who owns a photo listed in a collection.

        Args:
            dto (PhotoDto): Photo as listed by the API.
            found_in (Optional[CollectionRecord]): Collection the photo came from.

        Returns:
            UserRecord: Owner, saved in the index.

        Raises:
            OwnerResolutionError: The DTO carries no owner information at all.
        """
        if found_in is not None and found_in.kind.owner_owns_photos and found_in.owner_nsid:
            dbg(f"Owner id={found_in.owner_nsid} of photo id={dto.id} taken from {found_in.readable_id}")
            user = store.get_user(found_in.owner_nsid, self.db_path)
            if user is not None:
                return user
            return await self.get_owner_user(found_in.owner_nsid)

        nsid = dto.owner_nsid
        screen_name = dto.owner_screen_name
        username = dto.owner_username

        if nsid:
            user = store.get_user(nsid, self.db_path)
            if user is not None:
                return user

        # Rare, but avoids any lookup when the listing carried everything
        if nsid and screen_name and username:
            return store.save_user(UserRecord(nsid, username, screen_name), self.db_path)

        if nsid:
            user = await self.lookup_user_by_nsid(nsid)
            if user is not None:
                return user

        if screen_name:
            user = await self.lookup_user_by_alias(screen_name)
            if user is not None:
                return user

        if nsid:
            tqdm.write(
                f"[!] Exhausted user lookup methods for photo={dto.id} with user nsid={nsid} - creating a shell from NSID"
            )
            return self._shell_user(nsid)

        if username:
            user = await self._lookup_by_username(username)
            if user is not None:
                return user

        raise OwnerResolutionError(
            f"Photo id={dto.id} does not contain owner NSID, nor screen name, nor user name"
        )

    def _shell_user(self, nsid: str) -> UserRecord:
        return store.save_user(UserRecord(nsid, SHELL_USERNAME.format(nsid)), self.db_path)

    async def _lookup_profile(self, screen_name_or_nsid: str) -> Optional[PersonDto]:
        try:
            person = await self.source.lookup_user(PROFILE_URL.format(screen_name_or_nsid))
        except ApiCallError as e:
            dbg(f"Profile lookup for {screen_name_or_nsid} failed: {e}")
            return None
        if not person.nsid:
            return None
        return person

    async def _lookup_by_username(self, username: str) -> Optional[UserRecord]:
        try:
            person = await self.source.find_by_username(username)
        except ApiCallError as e:
            dbg(f"Username lookup for '{username}' failed: {e}")
            return None
        if not person.nsid:
            return None
        return store.save_user(
            UserRecord(person.nsid, person.username or username), self.db_path
        )
