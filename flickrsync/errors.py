"""Exception hierarchy for flickrsync."""

from __future__ import annotations

from typing import Any, Mapping


class FlickrSyncError(Exception):
    """Base class for every error raised by flickrsync."""


class ConfigurationError(FlickrSyncError):
    """Invalid or missing configuration; fatal at startup."""


class ResolutionError(FlickrSyncError):
    """A collection, user or photo could not be identified."""


class UnrecognizedUrlError(ResolutionError):
    """Input matched none of the known URL shapes."""


class AmbiguousCollectionError(ResolutionError):
    """Input points at a list of collections rather than a single one."""


class OwnerResolutionError(ResolutionError):
    """Owner alias could not be turned into a canonical NSID."""


class ApiError(FlickrSyncError):
    """Base class for remote API failures."""


class ApiCallError(ApiError):
    """API answered with stat=fail and a vendor error code."""

    USER_NOT_FOUND = 1
    INVALID_API_KEY = 100
    SERVICE_UNAVAILABLE = 105

    def __init__(self, code: int, message: str | None = None) -> None:
        self.code = code
        self.message = message or "unknown error"
        super().__init__(f"API error {code}: {self.message}")


class TransportError(ApiError):
    """HTTP call failed before a usable response was received."""


class UnexpectedResponseShape(ApiError):
    """Response is missing a field the protocol requires."""

    def __init__(self, message: str, payload: Mapping[str, Any] | None = None) -> None:
        self.payload = dict(payload) if payload is not None else None
        super().__init__(message)


class InvalidParameterCombination(FlickrSyncError):
    """Endpoint called with pagination arguments that cannot be combined."""


class AlreadyLockedError(FlickrSyncError):
    """Attempted to acquire a write lock on a record that is already locked."""


class StorageError(FlickrSyncError):
    """Temp file could not be committed or discarded."""
