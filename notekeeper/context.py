"""Explicit application context shared by the command surface."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from notekeeper.cloud.client_factory import (
    BackupClientFactory,
    create_backup_client_factory,
)
from notekeeper.cloud.credentials import CredentialStore
from notekeeper.config import Config
from notekeeper.data.repository import Repository
from notekeeper.sync.service import SyncProgress, SyncService

if TYPE_CHECKING:
    from types import TracebackType

logger = logging.getLogger(__name__)


class AppContext:
    """Owns paths, credentials and the sync guard for one process.

    SQLite connections are not shared across threads, so repositories are
    opened per caller with ``open_repository()`` and closed by the caller.
    """

    def __init__(
        self,
        config: Config | None = None,
        client_factory: BackupClientFactory | None = None,
    ) -> None:
        self.config = config or Config()
        self.config.data_dir.mkdir(parents=True, exist_ok=True)
        self.credentials = CredentialStore(
            self.config.token_path, self.config.settings_path
        )
        self.client_factory = client_factory or create_backup_client_factory(
            self.config, self.credentials
        )
        self.sync_lock = threading.Lock()
        self.sync_progress = SyncProgress()

        # Seed the schema and default folder once at startup.
        repo = self.open_repository()
        try:
            self.default_folder_id = repo.default_folder_id
        finally:
            repo.close()
        logger.info("Using data directory %s", self.config.data_dir)

    def open_repository(self) -> Repository:
        return Repository(str(self.config.db_path), self.config.default_folder_name)

    def sync_service(self, repo: Repository) -> SyncService:
        return SyncService(
            repo,
            self.credentials,
            self.client_factory,
            lock=self.sync_lock,
            progress=self.sync_progress,
        )

    def close(self) -> None:
        # Block until an in-flight sync has written back its last note.
        with self.sync_lock:
            logger.debug("Application context closed")

    def __enter__(self) -> AppContext:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
