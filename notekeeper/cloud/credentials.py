"""On-disk persistence for the Google token bundle and the backup folder id."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from notekeeper.errors import StorageError

logger = logging.getLogger(__name__)

_FOLDER_KEY = "driveFolderId"


class CredentialStore:
    """Stores one token bundle and one remembered Drive folder id.

    Tokens are kept as plain JSON. The bundle file is always rewritten whole;
    the settings file is read-modify-write so unrelated keys survive.
    """

    def __init__(self, token_path: Path, settings_path: Path) -> None:
        self._token_path = Path(token_path)
        self._settings_path = Path(settings_path)

    @property
    def token_path(self) -> Path:
        return self._token_path

    # -- token bundle --

    def load(self) -> dict[str, Any] | None:
        data = self._read_json(self._token_path)
        if data is None:
            return None
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed token bundle at %s", self._token_path)
            return None
        return data

    def save(self, tokens: dict[str, Any]) -> None:
        self._write_json(self._token_path, tokens)
        logger.info("Saved Google credential bundle")

    def clear(self) -> None:
        try:
            self._token_path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(str(exc)) from exc
        logger.info("Cleared Google credential bundle")

    def has_credentials(self) -> bool:
        return self.load() is not None

    # -- settings --

    def remember_backup_folder(self, folder_id: str) -> None:
        settings = self._load_settings()
        settings[_FOLDER_KEY] = folder_id
        self._write_json(self._settings_path, settings)

    def recall_backup_folder(self) -> str | None:
        value = self._load_settings().get(_FOLDER_KEY)
        return str(value) if value else None

    def forget_backup_folder(self) -> None:
        settings = self._load_settings()
        if settings.pop(_FOLDER_KEY, None) is not None:
            self._write_json(self._settings_path, settings)

    def _load_settings(self) -> dict[str, Any]:
        data = self._read_json(self._settings_path)
        return data if isinstance(data, dict) else {}

    # -- helpers --

    @staticmethod
    def _read_json(path: Path) -> Any:
        if not path.exists():
            return None
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError:
            logger.warning("Could not parse %s, treating as empty", path)
            return None
        except OSError as exc:
            raise StorageError(str(exc)) from exc

    @staticmethod
    def _write_json(path: Path, data: dict[str, Any]) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
        except OSError as exc:
            raise StorageError(str(exc)) from exc
