"""Configuration management for NoteKeeper."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_CONFIG_VERSION = 2


def _default_config_path() -> Path:
    """Get default config file path following XDG spec."""
    config_home = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return config_home / "notekeeper" / "config.json"


def _default_data_dir() -> Path:
    data_home = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))
    return data_home / "notekeeper"


class Config:
    """Application configuration with persistence."""

    def __init__(self, config_path: Path | None = None) -> None:
        self._path = config_path or _default_config_path()
        self._data: dict[str, Any] = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, Any]:
        """Load config from disk or return defaults."""
        if not self._path.exists():
            return self._defaults()
        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
                data = self._migrate(data)
                # Validate version
                if data.get("version") != _CONFIG_VERSION:
                    return self._defaults()
                return data
        except (OSError, json.JSONDecodeError):
            logger.warning("Could not read config at %s, using defaults", self._path)
            return self._defaults()

    def _migrate(self, data: dict[str, Any]) -> dict[str, Any]:
        if data.get("version") == 1:
            db_file = data.pop("db_file", "")
            data["data_dir"] = str(Path(db_file).parent) if db_file else ""
            data.setdefault("drive_folder_name", "NoteKeeper Backup")
            data["version"] = 2
        return data

    def _defaults(self) -> dict[str, Any]:
        """Return default configuration."""
        return {
            "version": _CONFIG_VERSION,
            "data_dir": os.getenv("NOTEKEEPER_DATA_DIR", ""),
            "google_client_id": os.getenv("GOOGLE_CLIENT_ID", ""),
            "google_client_secret": os.getenv("GOOGLE_CLIENT_SECRET", ""),
            "drive_folder_name": "NoteKeeper Backup",
            "default_folder_name": "Notes",
            "api_host": "127.0.0.1",
            "api_port": 8765,
        }

    def save(self) -> None:
        """Persist config to disk."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(self._path, "w", encoding="utf-8") as f:
                json.dump(self._data, f, indent=2)
        except OSError:
            logger.warning("Could not write config to %s", self._path)

    # -- Getters with env var fallback --

    @property
    def data_dir(self) -> Path:
        value = str(self._data.get("data_dir", "") or "")
        return Path(value).expanduser() if value else _default_data_dir()

    @property
    def db_path(self) -> Path:
        return self.data_dir / "notes.db"

    @property
    def token_path(self) -> Path:
        return self.data_dir / "google_tokens.json"

    @property
    def settings_path(self) -> Path:
        return self.data_dir / "settings.json"

    @property
    def google_client_id(self) -> str:
        return str(self._data.get("google_client_id") or os.getenv("GOOGLE_CLIENT_ID", ""))

    @property
    def google_client_secret(self) -> str:
        return str(
            self._data.get("google_client_secret")
            or os.getenv("GOOGLE_CLIENT_SECRET", "")
        )

    @property
    def drive_folder_name(self) -> str:
        return str(self._data.get("drive_folder_name") or "NoteKeeper Backup")

    @property
    def default_folder_name(self) -> str:
        return str(self._data.get("default_folder_name") or "Notes")

    @property
    def api_host(self) -> str:
        return os.getenv("NOTEKEEPER_HOST") or str(self._data.get("api_host", "127.0.0.1"))

    @property
    def api_port(self) -> int:
        return int(os.getenv("NOTEKEEPER_PORT") or self._data.get("api_port", 8765))

    # -- Setters --

    def set_data_dir(self, value: str | Path) -> None:
        self._data["data_dir"] = str(value).strip()

    def set_google_client_id(self, value: str) -> None:
        self._data["google_client_id"] = value.strip()

    def set_google_client_secret(self, value: str) -> None:
        self._data["google_client_secret"] = value.strip()

    def set_drive_folder_name(self, value: str) -> None:
        self._data["drive_folder_name"] = value.strip()

    def set_default_folder_name(self, value: str) -> None:
        self._data["default_folder_name"] = value.strip()

    def set_api_host(self, value: str) -> None:
        self._data["api_host"] = value.strip()

    def set_api_port(self, value: int) -> None:
        self._data["api_port"] = int(value)
