"""Google credentials for the Sheets remote store."""
import os
from pathlib import Path
from typing import Optional

from google.oauth2 import service_account
from google_auth_oauthlib.flow import InstalledAppFlow
from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials

from .exceptions import ConfigError
from .logger import get_logger

logger = get_logger()

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

DEFAULT_TOKEN_PATH = Path.home() / ".paylog" / "token.json"


def get_credentials(
    service_account_path: Optional[str] = None,
    oauth_client_secrets: Optional[str] = None,
    oauth_token_path: Optional[str] = None
):
    """
    Resolve credentials for the spreadsheets scope.

    A readable service account file wins. Otherwise an installed-app OAuth
    flow is used, with the authorized-user token cached at oauth_token_path.

    Raises:
        ConfigError: If neither method is usable
    """
    if service_account_path and os.path.exists(service_account_path):
        logger.info("Using service account authentication")
        return service_account.Credentials.from_service_account_file(service_account_path, scopes=SCOPES)

    if not oauth_client_secrets:
        raise ConfigError(
            "No authentication method configured. "
            "Provide either service_account_path or oauth_client_secrets."
        )

    logger.info("Using OAuth 2.0 authentication")
    token_path = Path(oauth_token_path).expanduser() if oauth_token_path else DEFAULT_TOKEN_PATH

    creds = load_cached_token(token_path)
    if creds and creds.valid:
        return creds

    if creds and creds.expired and creds.refresh_token:
        try:
            creds.refresh(Request())
            logger.info("Refreshed expired OAuth credentials")
        except RefreshError as e:
            logger.warning(f"OAuth refresh failed, re-authorizing: {e}")
            creds = None
    else:
        creds = None

    if creds is None:
        if not os.path.exists(oauth_client_secrets):
            raise ConfigError(f"OAuth client secrets not found: {oauth_client_secrets}")
        logger.info("Starting OAuth authorization flow")
        flow = InstalledAppFlow.from_client_secrets_file(oauth_client_secrets, SCOPES)
        creds = flow.run_local_server(port=0)

    token_path.parent.mkdir(parents=True, exist_ok=True)
    token_path.write_text(creds.to_json(), encoding="utf-8")
    logger.debug(f"Saved OAuth credentials to {token_path}")
    return creds


def load_cached_token(token_path: Path) -> Optional[Credentials]:
    """Authorized-user token from disk; an unreadable file is removed."""
    if not token_path.exists():
        return None

    try:
        return Credentials.from_authorized_user_file(str(token_path), SCOPES)
    except (ValueError, OSError) as e:
        logger.warning(f"Discarding unreadable token {token_path}: {e}")
        token_path.unlink(missing_ok=True)
        return None
