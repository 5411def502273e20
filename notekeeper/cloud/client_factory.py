from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from notekeeper.cloud.backup_client import BackupClient

if TYPE_CHECKING:
    from notekeeper.cloud.credentials import CredentialStore
    from notekeeper.config import Config

BackupClientFactory = Callable[[dict[str, Any]], BackupClient]


def create_backup_client_factory(
    config: Config, credentials: CredentialStore
) -> BackupClientFactory:
    """Return a factory that builds a Drive client from a token bundle.

    Refreshed tokens are written back through *credentials*.
    """

    def factory(tokens: dict[str, Any]) -> BackupClient:
        from notekeeper.cloud.drive_client import DriveBackupClient

        return DriveBackupClient(
            tokens=tokens,
            client_id=config.google_client_id,
            client_secret=config.google_client_secret,
            folder_name=config.drive_folder_name,
            on_refresh=credentials.save,
        )

    return factory
