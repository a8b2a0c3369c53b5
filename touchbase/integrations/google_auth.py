"""
Touchbase — Google Sheets Authentication.

The server never opens a browser. It loads the stored token at startup,
refreshes it when expired and refuses to start without one. Obtaining the
token in the first place is a one-time step done from a terminal:

    python -m touchbase.integrations.google_auth
"""

from __future__ import annotations

import logging
from pathlib import Path

from google.auth import exceptions as google_exceptions
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

AUTHORIZE_HINT = "run `python -m touchbase.integrations.google_auth` once to authorize"


class SheetsAuthError(Exception):
    """No usable Google token; the server can't reach the roster."""


def load_credentials(token_path: str) -> Credentials:
    """Load the stored token, refreshing and re-saving it if expired.

    Raises SheetsAuthError instead of falling back to a consent flow.
    """
    token_file = Path(token_path)
    if not token_file.exists():
        raise SheetsAuthError(f"No Google token at {token_file}; {AUTHORIZE_HINT}")

    creds = Credentials.from_authorized_user_file(str(token_file), SCOPES)

    if creds.expired and creds.refresh_token:
        try:
            creds.refresh(Request())
        except google_exceptions.GoogleAuthError as exc:
            raise SheetsAuthError(f"Google token refresh failed ({exc}); {AUTHORIZE_HINT}") from exc
        token_file.write_text(creds.to_json())
        logger.info("Google token refreshed")

    if not creds.valid:
        raise SheetsAuthError(f"Google token at {token_file} is not valid; {AUTHORIZE_HINT}")
    return creds


def build_sheets_service(token_path: str):
    """Return a Sheets v4 service, failing fast when there is no valid token."""
    service = build("sheets", "v4", credentials=load_credentials(token_path), cache_discovery=False)
    logger.info("Google Sheets service built")
    return service


def authorize(credentials_path: str, token_path: str) -> Credentials:
    """Interactive consent flow; opens a browser and writes the token file."""
    creds_file = Path(credentials_path)
    if not creds_file.exists():
        raise FileNotFoundError(
            f"Google credentials file not found at {creds_file}. "
            "Download it from the Google Cloud Console."
        )
    flow = InstalledAppFlow.from_client_secrets_file(str(creds_file), SCOPES)
    creds = flow.run_local_server(port=0)

    token_file = Path(token_path)
    token_file.parent.mkdir(parents=True, exist_ok=True)
    token_file.write_text(creds.to_json())
    logger.info("Token saved to %s", token_file)
    return creds


if __name__ == "__main__":
    from touchbase.config import load_settings

    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    settings = load_settings()
    print("Running Google Sheets authorization flow...")
    authorize(settings.GOOGLE_CREDENTIALS_PATH, settings.GOOGLE_TOKEN_PATH)
    svc = build_sheets_service(settings.GOOGLE_TOKEN_PATH)
    meta = svc.spreadsheets().get(spreadsheetId=settings.SPREADSHEET_ID).execute()
    title = meta.get("properties", {}).get("title", "(untitled)")
    print(f"Auth successful! Spreadsheet: {title}")
