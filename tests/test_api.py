from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from notekeeper.api.main import create_app
from notekeeper.config import Config
from notekeeper.context import AppContext
from notekeeper.errors import RemoteError


class FailingBackupClient:
    def find_or_create_backup_folder(self) -> str:
        raise RemoteError("Drive unavailable")

    def upsert_note_file(self, note: dict, folder_id: str) -> str:
        raise AssertionError("not reached")


@pytest.fixture
def context(tmp_path: Path) -> AppContext:
    config = Config(config_path=tmp_path / "config.json")
    config.set_data_dir(tmp_path / "data")
    return AppContext(config, client_factory=lambda _tokens: FailingBackupClient())


@pytest.fixture
def tester(context: AppContext) -> TestClient:
    return TestClient(create_app(context))


def test_health(tester: TestClient) -> None:
    response = tester.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_create_and_list_notes(tester: TestClient) -> None:
    response = tester.post(
        "/commands/create-note", json={"title": "Groceries", "content": "milk, eggs"}
    )
    assert response.status_code == 200
    note = response.json()

    response = tester.post("/commands/get-notes")
    assert response.status_code == 200
    assert [n["id"] for n in response.json()] == [note["id"]]


def test_error_status_codes(tester: TestClient, context: AppContext) -> None:
    assert tester.post("/commands/no-such-command").status_code == 400

    response = tester.post(
        "/commands/delete-folder", json={"id": context.default_folder_id}
    )
    assert response.status_code == 400
    assert "default folder" in response.json()["detail"]

    response = tester.post("/commands/create-note", json={"folder_id": 404})
    assert response.status_code == 500


def test_sync_failure_reported_in_status(
    tester: TestClient, context: AppContext
) -> None:
    context.credentials.save({"access_token": "at"})

    response = tester.post("/commands/sync-with-drive")
    assert response.status_code == 200
    assert response.json() == {
        "success": False,
        "error": "Drive unavailable",
        "synced": 0,
        "total": 0,
    }

    status = tester.get("/sync/status").json()
    assert status == {
        "running": False,
        "state": "failed",
        "current": 0,
        "total": 0,
        "error": "Drive unavailable",
    }


def test_sync_in_progress_conflict(tester: TestClient, context: AppContext) -> None:
    context.credentials.save({"access_token": "at"})
    context.sync_lock.acquire()
    try:
        response = tester.post("/commands/sync-with-drive")
    finally:
        context.sync_lock.release()
    assert response.status_code == 409
