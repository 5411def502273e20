from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol

from notekeeper.cloud.backup_client import BackupClient
from notekeeper.errors import AuthenticationError, SyncInProgressError

if TYPE_CHECKING:
    from notekeeper.cloud.client_factory import BackupClientFactory
    from notekeeper.cloud.credentials import CredentialStore

logger = logging.getLogger(__name__)

NOT_AUTHENTICATED = "Not authenticated with Google Drive"


class SyncState(StrEnum):
    IDLE = "idle"
    STARTED = "started"
    UPSERTING = "upserting"
    RECORDED = "recorded"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class SyncEvent:
    state: SyncState
    note_id: int | None = None
    message: str = ""


@dataclass
class SyncReport:
    state: SyncState
    synced_note_ids: list[int] = field(default_factory=list)
    total: int = 0
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.state == SyncState.COMPLETED


class SyncNoteSource(Protocol):
    """Where the sync service reads notes from and records results to.

    ``Repository`` fetches everything in one read; a paginated source only
    has to keep the same two methods.
    """

    def list_notes_for_sync(self) -> list[dict]: ...

    def mark_note_synced(self, note_id: int, drive_file_id: str) -> None: ...


class SyncProgress:
    """Thread-safe snapshot of the latest sync run for status polling."""

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.running = False
        self.state = SyncState.IDLE
        self.current = 0
        self.total = 0
        self.error: str | None = None

    def update(self, event: SyncEvent) -> None:
        with self.lock:
            self.state = event.state
            if event.state == SyncState.STARTED:
                self.running = True
                self.current = 0
                self.total = 0
                self.error = None
            elif event.state == SyncState.RECORDED:
                self.current += 1
            elif event.state in (SyncState.COMPLETED, SyncState.FAILED):
                self.running = False
                if event.state == SyncState.FAILED:
                    self.error = event.message

    def set_total(self, total: int) -> None:
        with self.lock:
            self.total = total

    def snapshot(self) -> dict:
        with self.lock:
            return {
                "running": self.running,
                "state": self.state.value,
                "current": self.current,
                "total": self.total,
                "error": self.error,
            }


class SyncService:
    """One-way push of every local note to the Drive backup folder.

    Runs are strictly sequential: notes are uploaded one at a time, and a run
    that overlaps another fails fast with SyncInProgressError. The first
    failure stops the run; notes recorded before it stay synced.
    """

    def __init__(
        self,
        notes: SyncNoteSource,
        credentials: CredentialStore,
        client_factory: BackupClientFactory,
        lock: threading.Lock | None = None,
        progress: SyncProgress | None = None,
    ) -> None:
        self._notes = notes
        self._credentials = credentials
        self._client_factory = client_factory
        self._lock = lock or threading.Lock()
        self._progress = progress

    def run(self, event_cb: Callable[[SyncEvent], None] | None = None) -> SyncReport:
        if not self._lock.acquire(blocking=False):
            raise SyncInProgressError("A Google Drive sync is already running")
        try:
            return self._run(event_cb)
        finally:
            self._lock.release()

    def prepare_backup_folder(self) -> str:
        """Look up the backup folder on Drive and remember its id.

        Always asks Drive, so an id remembered for a previous account is
        replaced after signing in again.
        """
        if not self._lock.acquire(blocking=False):
            raise SyncInProgressError("A Google Drive sync is already running")
        try:
            tokens = self._credentials.load()
            if not tokens:
                raise AuthenticationError(NOT_AUTHENTICATED)
            client = self._client_factory(tokens)
            folder_id = client.find_or_create_backup_folder()
            self._credentials.remember_backup_folder(folder_id)
            return folder_id
        finally:
            self._lock.release()

    def _run(self, event_cb: Callable[[SyncEvent], None] | None) -> SyncReport:
        tokens = self._credentials.load()
        if not tokens:
            logger.warning("Sync requested without Google credentials")
            raise AuthenticationError(NOT_AUTHENTICATED)

        def emit(event: SyncEvent) -> None:
            if self._progress is not None:
                self._progress.update(event)
            if event_cb is not None:
                event_cb(event)

        emit(SyncEvent(SyncState.STARTED))
        logger.info("Google Drive sync started")
        synced: list[int] = []
        total = 0
        try:
            notes = self._notes.list_notes_for_sync()
            total = len(notes)
            if self._progress is not None:
                self._progress.set_total(total)
            client = self._client_factory(tokens)
            folder_id = self._resolve_backup_folder(client)

            for note in notes:
                note_id = int(note["id"])
                emit(SyncEvent(SyncState.UPSERTING, note_id=note_id))
                file_id = client.upsert_note_file(note, folder_id)
                self._notes.mark_note_synced(note_id, file_id)
                synced.append(note_id)
                emit(SyncEvent(SyncState.RECORDED, note_id=note_id))
                logger.debug("Synced note %d -> %s", note_id, file_id)
        except Exception as exc:
            message = str(exc)
            logger.error(
                "Google Drive sync failed after %d of %d note(s): %s",
                len(synced),
                total,
                message,
                exc_info=True,
            )
            emit(SyncEvent(SyncState.FAILED, message=message))
            return SyncReport(SyncState.FAILED, synced, total, message)

        emit(SyncEvent(SyncState.COMPLETED))
        logger.info("Google Drive sync completed: %d note(s)", len(synced))
        return SyncReport(SyncState.COMPLETED, synced, total)

    def _resolve_backup_folder(self, client: BackupClient) -> str:
        folder_id = self._credentials.recall_backup_folder()
        if folder_id:
            return folder_id
        folder_id = client.find_or_create_backup_folder()
        self._credentials.remember_backup_folder(folder_id)
        return folder_id
