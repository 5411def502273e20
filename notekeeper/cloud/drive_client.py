from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from google.auth.exceptions import GoogleAuthError, RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaFileUpload
from httplib2 import HttpLib2Error

from notekeeper.errors import AuthenticationError, RemoteError

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/drive.file"]
BACKUP_FOLDER_NAME = "NoteKeeper Backup"
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
_TOKEN_URI = "https://oauth2.googleapis.com/token"

# Fields written to the remote document; drive_sync_id and last_synced stay local.
NOTE_DOCUMENT_FIELDS = (
    "id",
    "title",
    "content",
    "folder_id",
    "is_pinned",
    "is_favorite",
    "created_at",
    "updated_at",
)


def note_document(note: dict) -> dict[str, Any]:
    """Build the JSON document uploaded for *note*."""
    return {field: note.get(field) for field in NOTE_DOCUMENT_FIELDS}


def _parse_expiry(tokens: dict[str, Any]) -> datetime | None:
    """Read token expiry as naive UTC, the form google-auth compares against.

    Accepts Google's authorized-user ``expiry`` string and the raw OAuth
    ``expiry_date`` in epoch milliseconds.
    """
    raw = tokens.get("expiry")
    if raw:
        return datetime.strptime(str(raw).rstrip("Z").split(".")[0], "%Y-%m-%dT%H:%M:%S")
    millis = tokens.get("expiry_date")
    if millis:
        stamp = datetime.fromtimestamp(int(millis) / 1000, tz=timezone.utc)
        return stamp.replace(tzinfo=None)
    return None


def credentials_from_bundle(
    tokens: dict[str, Any], client_id: str = "", client_secret: str = ""
) -> Credentials:
    return Credentials(
        token=tokens.get("token") or tokens.get("access_token"),
        refresh_token=tokens.get("refresh_token"),
        token_uri=tokens.get("token_uri", _TOKEN_URI),
        client_id=tokens.get("client_id") or client_id or None,
        client_secret=tokens.get("client_secret") or client_secret or None,
        scopes=tokens.get("scopes") or SCOPES,
        expiry=_parse_expiry(tokens),
    )


class DriveBackupClient:
    """Google Drive v3 client that stores one JSON file per note.

    All files live in a single backup folder, found by name or created on
    first use.
    """

    def __init__(
        self,
        tokens: dict[str, Any] | None,
        client_id: str = "",
        client_secret: str = "",
        folder_name: str = BACKUP_FOLDER_NAME,
        on_refresh: Callable[[dict[str, Any]], None] | None = None,
    ) -> None:
        if not tokens:
            raise AuthenticationError("Not authenticated with Google Drive")
        self._folder_name = folder_name
        creds = credentials_from_bundle(tokens, client_id, client_secret)
        if creds.expired and creds.refresh_token:
            try:
                creds.refresh(Request())
            except RefreshError as exc:
                raise AuthenticationError(
                    f"Google Drive token refresh failed: {exc}"
                ) from exc
            except GoogleAuthError as exc:
                raise RemoteError(str(exc)) from exc
            logger.info("Refreshed expired Google access token")
            if on_refresh is not None:
                on_refresh(json.loads(creds.to_json()))
        self._service = build("drive", "v3", credentials=creds, cache_discovery=False)

    def find_or_create_backup_folder(self) -> str:
        escaped = self._folder_name.replace("\\", "\\\\").replace("'", "\\'")
        query = (
            f"name='{escaped}' and mimeType='{FOLDER_MIME_TYPE}' and trashed=false"
        )
        try:
            results = (
                self._service.files()
                .list(q=query, spaces="drive", fields="files(id, name)")
                .execute()
            )
            files = results.get("files", [])
            if files:
                folder_id = str(files[0]["id"])
                logger.info("Using existing Drive folder '%s'", self._folder_name)
                return folder_id

            metadata = {"name": self._folder_name, "mimeType": FOLDER_MIME_TYPE}
            folder = self._service.files().create(body=metadata, fields="id").execute()
        except (HttpError, HttpLib2Error, GoogleAuthError, OSError) as exc:
            raise RemoteError(str(exc)) from exc
        logger.info("Created Drive folder '%s'", self._folder_name)
        return str(folder["id"])

    def upsert_note_file(self, note: dict, folder_id: str) -> str:
        """Upload *note* as JSON and return its Drive file id.

        Updates the file named by ``drive_sync_id`` when the note has one,
        otherwise creates ``note_<id>.json`` under *folder_id*. The staging
        file is removed whatever the outcome.
        """
        file_name = f"note_{note['id']}.json"
        fd, staging = tempfile.mkstemp(prefix=f"note_{note['id']}_", suffix=".json")
        media: MediaFileUpload | None = None
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(note_document(note), f, indent=2)
            media = MediaFileUpload(staging, mimetype="application/json")

            existing_id = note.get("drive_sync_id")
            if existing_id:
                self._service.files().update(
                    fileId=existing_id, media_body=media
                ).execute()
                return str(existing_id)

            metadata = {"name": file_name, "parents": [folder_id]}
            created = (
                self._service.files()
                .create(body=metadata, media_body=media, fields="id")
                .execute()
            )
            return str(created["id"])
        except (HttpError, HttpLib2Error, GoogleAuthError, OSError) as exc:
            raise RemoteError(str(exc)) from exc
        finally:
            if media is not None:
                media.stream().close()
            Path(staging).unlink(missing_ok=True)
