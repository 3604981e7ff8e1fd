"""Two-factor code retrieval from the operator's Gmail inbox.

The portal emails a numeric passcode during login. MailboxSession owns the
OAuth client configuration and the persisted token, and scans the snippets
of the newest messages for the code. Lookup failures are reported as None;
the login flow decides whether that is fatal.
"""
import json
import re
from pathlib import Path
from typing import Optional

import structlog
from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import build

logger = structlog.get_logger()

GMAIL_SCOPES = ["https://www.googleapis.com/auth/gmail.readonly"]

VERIFICATION_CODE_PATTERN = re.compile(r"\b\d{6,10}\b")

RECENT_MESSAGE_COUNT = 5


def extract_verification_code(text: Optional[str]) -> Optional[str]:
    """Return the first word-bounded 6-10 digit number in text."""
    if not text:
        return None
    match = VERIFICATION_CODE_PATTERN.search(text)
    return match.group(0) if match else None


class MailboxSession:
    """OAuth client state and token storage for one Gmail mailbox.

    Constructed once per process and shared by the consent routes and the
    login flow.
    """

    def __init__(
        self,
        client_id: Optional[str],
        client_secret: Optional[str],
        redirect_uri: str,
        token_path: Path,
        scopes: Optional[list[str]] = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.token_path = Path(token_path)
        self.scopes = scopes or list(GMAIL_SCOPES)
        self._credentials: Optional[Credentials] = None
        self._flow: Optional[Flow] = None

    @classmethod
    def from_environment(cls, env: dict) -> "MailboxSession":
        """Build from the values returned by config_loader.load_environment."""
        return cls(
            client_id=env["gmail_client_id"],
            client_secret=env["gmail_client_secret"],
            redirect_uri=env["oauth_redirect_uri"],
            token_path=Path(env["gmail_token_path"]),
        )

    def _client_config(self) -> dict:
        return {
            "web": {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "auth_uri": "https://accounts.google.com/o/oauth2/auth",
                "token_uri": "https://oauth2.googleapis.com/token",
                "redirect_uris": [self.redirect_uri],
            }
        }

    def authorization_url(self) -> str:
        """Build the consent URL, requesting offline access."""
        if not self.client_id or not self.client_secret:
            raise ValueError("Gmail OAuth client id and secret are not configured")

        self._flow = Flow.from_client_config(
            self._client_config(),
            scopes=self.scopes,
            redirect_uri=self.redirect_uri,
        )
        url, _state = self._flow.authorization_url(access_type="offline")
        return url

    def exchange_code(self, code: str) -> None:
        """Exchange an authorization code for tokens and persist them."""
        flow = self._flow or Flow.from_client_config(
            self._client_config(),
            scopes=self.scopes,
            redirect_uri=self.redirect_uri,
        )
        flow.fetch_token(code=code)
        self._credentials = flow.credentials
        self._save_credentials()
        logger.info("mailbox_token_saved", token_path=str(self.token_path))

    def _save_credentials(self) -> None:
        self.token_path.parent.mkdir(parents=True, exist_ok=True)
        self.token_path.write_text(self._credentials.to_json(), encoding="utf-8")

    def load_credentials(self) -> bool:
        """Load the persisted token, refreshing it when expired.

        Returns:
            True if usable credentials are available.
        """
        if not self.token_path.exists():
            return False

        try:
            credentials = Credentials.from_authorized_user_file(
                str(self.token_path), self.scopes
            )
        except (ValueError, json.JSONDecodeError) as e:
            logger.warning("mailbox_token_unreadable", error=str(e))
            return False

        if credentials.expired and credentials.refresh_token:
            try:
                credentials.refresh(Request())
            except (RefreshError, TransportError) as e:
                logger.warning("mailbox_token_refresh_failed", error=str(e))
                return False
            self._credentials = credentials
            self._save_credentials()
        else:
            self._credentials = credentials
        return True

    def _service(self):
        return build("gmail", "v1", credentials=self._credentials, cache_discovery=False)

    def fetch_verification_code(
        self, max_results: int = RECENT_MESSAGE_COUNT
    ) -> Optional[str]:
        """Scan the newest messages' snippets for a verification code.

        Messages are checked in listing order and the first match wins.
        Transport and auth errors are logged and reported as None.
        """
        try:
            if self._credentials is None and not self.load_credentials():
                logger.error("mailbox_not_authorized", token_path=str(self.token_path))
                return None

            messages_api = self._service().users().messages()
            listing = messages_api.list(userId="me", maxResults=max_results).execute()
            messages = listing.get("messages") or []
            if not messages:
                logger.info("no_recent_emails")
                return None

            for message in messages:
                email = messages_api.get(
                    userId="me", id=message["id"], format="minimal"
                ).execute()
                snippet = email.get("snippet", "")
                code = extract_verification_code(snippet)
                logger.debug("email_checked", message_id=message["id"], matched=bool(code))
                if code:
                    logger.info("verification_code_found", message_id=message["id"])
                    return code

            logger.info("verification_code_not_in_recent_emails", checked=len(messages))
            return None

        except Exception as e:
            logger.error("email_fetch_failed", error=str(e))
            return None
