"""Exception hierarchy shared by the store, the Drive client and the sync service."""

from __future__ import annotations


class NoteKeeperError(Exception):
    """Base class for every error raised by notekeeper."""


class ValidationError(NoteKeeperError, ValueError):
    """A command or field value was rejected before touching storage."""


class StorageError(NoteKeeperError):
    """Local database or file read/write failed."""


class AuthenticationError(NoteKeeperError):
    """No usable Google credential bundle is available."""


class RemoteError(NoteKeeperError):
    """The Google Drive API call failed."""


class SyncInProgressError(NoteKeeperError):
    """Another sync run already holds the sync lock."""
