from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import Body, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from notekeeper.commands import CommandDispatcher
from notekeeper.context import AppContext
from notekeeper.errors import (
    AuthenticationError,
    NoteKeeperError,
    RemoteError,
    StorageError,
    SyncInProgressError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_STATUS_CODES: dict[type[NoteKeeperError], int] = {
    ValidationError: 400,
    AuthenticationError: 401,
    SyncInProgressError: 409,
    RemoteError: 502,
    StorageError: 500,
}


class SyncStatus(BaseModel):
    running: bool
    state: str
    current: int
    total: int
    error: Optional[str]


def create_app(context: AppContext | None = None) -> FastAPI:
    ctx = context or AppContext()
    dispatcher = CommandDispatcher(ctx)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        ctx.close()

    app = FastAPI(title="NoteKeeper API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    @app.post("/commands/{command}")
    def run_command(
        command: str, payload: Optional[dict[str, Any]] = Body(default=None)
    ) -> Any:
        try:
            return dispatcher.dispatch(command, payload)
        except NoteKeeperError as exc:
            status = _status_for(exc)
            if status >= 500:
                logger.error("Command %s failed: %s", command, exc)
            raise HTTPException(status_code=status, detail=str(exc)) from exc

    @app.get("/sync/status", response_model=SyncStatus)
    def sync_status() -> SyncStatus:
        return SyncStatus(**ctx.sync_progress.snapshot())

    return app


def _status_for(exc: NoteKeeperError) -> int:
    for error_type, status in _STATUS_CODES.items():
        if isinstance(exc, error_type):
            return status
    return 500
