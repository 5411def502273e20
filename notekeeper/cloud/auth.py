"""Browser-based Google sign-in and sign-out."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from google_auth_oauthlib.flow import InstalledAppFlow

from notekeeper.cloud.drive_client import SCOPES
from notekeeper.errors import AuthenticationError

if TYPE_CHECKING:
    from notekeeper.cloud.credentials import CredentialStore
    from notekeeper.config import Config

logger = logging.getLogger(__name__)


def _client_config(config: Config) -> dict:
    return {
        "installed": {
            "client_id": config.google_client_id,
            "client_secret": config.google_client_secret,
            "auth_uri": "https://accounts.google.com/o/oauth2/auth",
            "token_uri": "https://oauth2.googleapis.com/token",
            "redirect_uris": ["http://localhost"],
        }
    }


def sign_in(config: Config, credentials: CredentialStore) -> None:
    """Run the loopback authorization-code flow and store the tokens.

    Blocks until the user finishes (or abandons) consent in the browser.
    """
    if not config.google_client_id or not config.google_client_secret:
        raise AuthenticationError(
            "Google OAuth client is not configured; set GOOGLE_CLIENT_ID "
            "and GOOGLE_CLIENT_SECRET"
        )
    flow = InstalledAppFlow.from_client_config(_client_config(config), SCOPES)
    logger.info("Opening browser for Google sign-in")
    try:
        creds = flow.run_local_server(
            port=0, access_type="offline", prompt="consent"
        )
    except Exception as exc:
        raise AuthenticationError(f"Google sign-in failed: {exc}") from exc
    credentials.save(json.loads(creds.to_json()))
    logger.info("Google sign-in completed")


def sign_out(credentials: CredentialStore) -> None:
    """Drop the token bundle and the backup folder id tied to that account."""
    credentials.clear()
    credentials.forget_backup_folder()
    logger.info("Signed out of Google Drive")
