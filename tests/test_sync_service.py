from __future__ import annotations

import threading
from pathlib import Path
from typing import Any

import pytest

from notekeeper.cloud.credentials import CredentialStore
from notekeeper.data.repository import Repository
from notekeeper.errors import AuthenticationError, RemoteError, SyncInProgressError
from notekeeper.sync.service import (
    SyncEvent,
    SyncProgress,
    SyncService,
    SyncState,
)


class FakeBackupClient:
    def __init__(self, fail_on_call: int | None = None) -> None:
        self.fail_on_call = fail_on_call
        self.folder_lookups = 0
        self.created: list[int] = []
        self.updated: list[str] = []
        self.calls = 0

    def find_or_create_backup_folder(self) -> str:
        self.folder_lookups += 1
        return "backup-folder"

    def upsert_note_file(self, note: dict, folder_id: str) -> str:
        assert folder_id == "backup-folder"
        self.calls += 1
        if self.fail_on_call == self.calls:
            raise RemoteError("quota exceeded")
        if note.get("drive_sync_id"):
            self.updated.append(note["drive_sync_id"])
            return str(note["drive_sync_id"])
        self.created.append(int(note["id"]))
        return f"file-{note['id']}"


@pytest.fixture
def repo(tmp_path: Path):
    repository = Repository(str(tmp_path / "notes.db"))
    yield repository
    repository.close()


@pytest.fixture
def credentials(tmp_path: Path) -> CredentialStore:
    store = CredentialStore(tmp_path / "google_tokens.json", tmp_path / "settings.json")
    store.save({"access_token": "at", "refresh_token": "rt"})
    return store


def _service(
    repo: Repository,
    credentials: CredentialStore,
    client: FakeBackupClient,
    **kwargs: Any,
) -> SyncService:
    return SyncService(repo, credentials, lambda _tokens: client, **kwargs)


def test_not_authenticated_rejected_before_start(
    repo: Repository, tmp_path: Path
) -> None:
    store = CredentialStore(tmp_path / "none.json", tmp_path / "settings.json")
    events: list[SyncEvent] = []
    client = FakeBackupClient()

    with pytest.raises(AuthenticationError) as excinfo:
        _service(repo, store, client).run(events.append)

    assert "Not authenticated" in str(excinfo.value)
    assert events == []
    assert client.folder_lookups == 0


def test_zero_notes_completes_and_resolves_folder(
    repo: Repository, credentials: CredentialStore
) -> None:
    client = FakeBackupClient()
    events: list[SyncEvent] = []

    report = _service(repo, credentials, client).run(events.append)

    assert report.state == SyncState.COMPLETED
    assert report.succeeded
    assert report.total == 0
    assert client.folder_lookups == 1
    assert client.calls == 0
    assert credentials.recall_backup_folder() == "backup-folder"
    assert [e.state for e in events] == [SyncState.STARTED, SyncState.COMPLETED]


def test_remembered_folder_is_reused(
    repo: Repository, credentials: CredentialStore
) -> None:
    credentials.remember_backup_folder("backup-folder")
    repo.create_note("One", "1")
    client = FakeBackupClient()

    report = _service(repo, credentials, client).run()

    assert report.succeeded
    assert client.folder_lookups == 0


def test_new_note_gets_remote_id_and_timestamp(
    repo: Repository, credentials: CredentialStore
) -> None:
    note = repo.create_note("Groceries", "milk, eggs")
    client = FakeBackupClient()
    events: list[SyncEvent] = []

    report = _service(repo, credentials, client).run(events.append)

    assert report.synced_note_ids == [note["id"]]
    stored = repo.get_note(note["id"])
    assert stored is not None
    assert stored["drive_sync_id"] == f"file-{note['id']}"
    assert stored["last_synced"] is not None
    assert [e.state for e in events] == [
        SyncState.STARTED,
        SyncState.UPSERTING,
        SyncState.RECORDED,
        SyncState.COMPLETED,
    ]
    assert events[1].note_id == note["id"]


def test_resync_updates_without_duplicates(
    repo: Repository, credentials: CredentialStore
) -> None:
    note = repo.create_note("Groceries", "milk, eggs")
    client = FakeBackupClient()
    service = _service(repo, credentials, client)

    service.run()
    service.run()

    assert client.created == [note["id"]]
    assert client.updated == [f"file-{note['id']}"]
    stored = repo.get_note(note["id"])
    assert stored is not None
    assert stored["drive_sync_id"] == f"file-{note['id']}"


def test_failure_keeps_partial_progress(
    repo: Repository, credentials: CredentialStore
) -> None:
    notes = [repo.create_note(f"Note {i}", str(i)) for i in range(5)]
    client = FakeBackupClient(fail_on_call=3)
    events: list[SyncEvent] = []

    report = _service(repo, credentials, client).run(events.append)

    assert report.state == SyncState.FAILED
    assert report.error == "quota exceeded"
    assert report.total == 5
    assert report.synced_note_ids == [notes[0]["id"], notes[1]["id"]]
    for note in notes[:2]:
        stored = repo.get_note(note["id"])
        assert stored is not None
        assert stored["drive_sync_id"] is not None
        assert stored["last_synced"] is not None
    for note in notes[2:]:
        stored = repo.get_note(note["id"])
        assert stored is not None
        assert stored["drive_sync_id"] is None
        assert stored["last_synced"] is None
    assert client.calls == 3
    assert events[-1].state == SyncState.FAILED
    assert events[-1].message == "quota exceeded"


def test_client_construction_failure_reports_failed(
    repo: Repository, credentials: CredentialStore
) -> None:
    def broken_factory(_tokens: dict) -> FakeBackupClient:
        raise AuthenticationError("Google Drive token refresh failed: invalid_grant")

    service = SyncService(repo, credentials, broken_factory)
    report = service.run()

    assert report.state == SyncState.FAILED
    assert report.error is not None
    assert "invalid_grant" in report.error


def test_overlapping_run_is_rejected(
    repo: Repository, credentials: CredentialStore
) -> None:
    lock = threading.Lock()
    client = FakeBackupClient()
    lock.acquire()
    try:
        with pytest.raises(SyncInProgressError):
            _service(repo, credentials, client, lock=lock).run()
    finally:
        lock.release()
    assert client.folder_lookups == 0
    assert _service(repo, credentials, client, lock=lock).run().succeeded


def test_progress_tracks_run(repo: Repository, credentials: CredentialStore) -> None:
    repo.create_note("A", "a")
    repo.create_note("B", "b")
    progress = SyncProgress()

    _service(repo, credentials, FakeBackupClient(), progress=progress).run()

    assert progress.snapshot() == {
        "running": False,
        "state": "completed",
        "current": 2,
        "total": 2,
        "error": None,
    }


def test_prepare_backup_folder_remembers_id(
    repo: Repository, credentials: CredentialStore
) -> None:
    client = FakeBackupClient()
    service = _service(repo, credentials, client)

    assert service.prepare_backup_folder() == "backup-folder"
    assert credentials.recall_backup_folder() == "backup-folder"
    assert client.folder_lookups == 1


def test_prepare_backup_folder_replaces_previous_account_folder(
    repo: Repository, credentials: CredentialStore
) -> None:
    credentials.remember_backup_folder("folder-of-previous-account")
    client = FakeBackupClient()

    folder_id = _service(repo, credentials, client).prepare_backup_folder()

    assert folder_id == "backup-folder"
    assert client.folder_lookups == 1
    assert credentials.recall_backup_folder() == "backup-folder"
