"""Command surface between an application shell and the notekeeper core.

Every user action is a ``Command`` plus a JSON-like payload, routed through
``CommandDispatcher.dispatch``. The shell never touches the repository or
the Drive client directly.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from notekeeper.cloud import auth
from notekeeper.context import AppContext
from notekeeper.data.repository import Repository
from notekeeper.errors import AuthenticationError, ValidationError
from notekeeper.sync.service import SyncEvent

logger = logging.getLogger(__name__)


class Command(StrEnum):
    GET_NOTES = "get-notes"
    GET_NOTE = "get-note"
    CREATE_NOTE = "create-note"
    UPDATE_NOTE = "update-note"
    DELETE_NOTE = "delete-note"
    TOGGLE_PIN = "toggle-pin"
    TOGGLE_FAVORITE = "toggle-favorite"
    GET_FOLDERS = "get-folders"
    CREATE_FOLDER = "create-folder"
    UPDATE_FOLDER = "update-folder"
    DELETE_FOLDER = "delete-folder"
    SEARCH_NOTES = "search-notes"
    SYNC_WITH_DRIVE = "sync-with-drive"
    CHECK_GOOGLE_AUTH = "check-google-auth"
    INITIATE_GOOGLE_AUTH = "initiate-google-auth"
    SIGN_OUT_GOOGLE = "sign-out-google"


class EmptyPayload(BaseModel):
    pass


class IdPayload(BaseModel):
    id: int


class NoteListPayload(BaseModel):
    folder_id: int | None = None


class NoteCreate(BaseModel):
    title: str | None = None
    content: str | None = None
    folder_id: int | None = None


class NoteUpdate(BaseModel):
    id: int
    title: str | None = None
    content: str | None = None
    folder_id: int | None = None
    is_pinned: bool = False
    is_favorite: bool = False


class FolderCreate(BaseModel):
    name: str


class FolderUpdate(BaseModel):
    id: int
    name: str


class SearchPayload(BaseModel):
    term: str = Field(default="")


_PAYLOADS: dict[Command, type[BaseModel]] = {
    Command.GET_NOTES: NoteListPayload,
    Command.GET_NOTE: IdPayload,
    Command.CREATE_NOTE: NoteCreate,
    Command.UPDATE_NOTE: NoteUpdate,
    Command.DELETE_NOTE: IdPayload,
    Command.TOGGLE_PIN: IdPayload,
    Command.TOGGLE_FAVORITE: IdPayload,
    Command.GET_FOLDERS: EmptyPayload,
    Command.CREATE_FOLDER: FolderCreate,
    Command.UPDATE_FOLDER: FolderUpdate,
    Command.DELETE_FOLDER: IdPayload,
    Command.SEARCH_NOTES: SearchPayload,
    Command.SYNC_WITH_DRIVE: EmptyPayload,
    Command.CHECK_GOOGLE_AUTH: EmptyPayload,
    Command.INITIATE_GOOGLE_AUTH: EmptyPayload,
    Command.SIGN_OUT_GOOGLE: EmptyPayload,
}


class CommandDispatcher:
    def __init__(
        self,
        context: AppContext,
        on_sync_event: Callable[[SyncEvent], None] | None = None,
    ) -> None:
        self._context = context
        self._on_sync_event = on_sync_event

    def dispatch(self, command: str | Command, payload: dict | None = None) -> Any:
        try:
            cmd = Command(command)
        except ValueError as exc:
            raise ValidationError(f"Unknown command: {command}") from exc
        try:
            args = _PAYLOADS[cmd].model_validate(payload or {})
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid payload for {cmd.value}: {exc}") from exc

        logger.debug("Dispatching %s", cmd.value)
        repo = self._context.open_repository()
        try:
            return self._handle(cmd, args, repo)
        finally:
            repo.close()

    def _handle(self, cmd: Command, args: Any, repo: Repository) -> Any:
        if cmd == Command.GET_NOTES:
            return repo.list_notes(args.folder_id)
        if cmd == Command.GET_NOTE:
            return repo.get_note(args.id)
        if cmd == Command.CREATE_NOTE:
            return repo.create_note(args.title, args.content, args.folder_id)
        if cmd == Command.UPDATE_NOTE:
            changes = repo.update_note(
                args.id,
                args.title,
                args.content,
                args.folder_id,
                is_pinned=args.is_pinned,
                is_favorite=args.is_favorite,
            )
            return {"changes": changes}
        if cmd == Command.DELETE_NOTE:
            return {"changes": repo.delete_note(args.id)}
        if cmd in (Command.TOGGLE_PIN, Command.TOGGLE_FAVORITE):
            # Returns the refreshed note, or None when it does not exist.
            if cmd == Command.TOGGLE_PIN:
                repo.toggle_pinned(args.id)
            else:
                repo.toggle_favorite(args.id)
            return repo.get_note(args.id)
        if cmd == Command.GET_FOLDERS:
            return repo.list_folders()
        if cmd == Command.CREATE_FOLDER:
            return repo.create_folder(args.name)
        if cmd == Command.UPDATE_FOLDER:
            return {"changes": repo.update_folder(args.id, args.name)}
        if cmd == Command.DELETE_FOLDER:
            return {"changes": repo.delete_folder(args.id)}
        if cmd == Command.SEARCH_NOTES:
            return repo.search_notes(args.term)
        if cmd == Command.SYNC_WITH_DRIVE:
            return self._sync(repo)
        if cmd == Command.CHECK_GOOGLE_AUTH:
            return self._context.credentials.has_credentials()
        if cmd == Command.INITIATE_GOOGLE_AUTH:
            auth.sign_in(self._context.config, self._context.credentials)
            folder_id = self._context.sync_service(repo).prepare_backup_folder()
            return {"success": True, "backup_folder_id": folder_id}
        if cmd == Command.SIGN_OUT_GOOGLE:
            auth.sign_out(self._context.credentials)
            return {"success": True}
        raise ValidationError(f"Unhandled command: {cmd.value}")

    def _sync(self, repo: Repository) -> dict:
        service = self._context.sync_service(repo)
        try:
            report = service.run(self._on_sync_event)
        except AuthenticationError as exc:
            return {"success": False, "error": str(exc), "synced": 0, "total": 0}
        return {
            "success": report.succeeded,
            "error": report.error,
            "synced": len(report.synced_note_ids),
            "total": report.total,
        }
