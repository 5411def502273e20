from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class BackupClient(Protocol):
    def find_or_create_backup_folder(self) -> str: ...

    def upsert_note_file(self, note: dict, folder_id: str) -> str: ...
