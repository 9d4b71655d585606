"""
Google OAuth web flow.

Flow:
1. authorization_url() -> Google consent screen (offline access, forced consent)
2. Google redirects back with ?code=...
3. exchange_code() swaps the code for a token pair
4. get_user_info() resolves the account email for the user upsert
"""

import logging
import os
import secrets
from typing import Optional

from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import build

from app.config import Settings
from app.errors import OAuthError
from app.services.types import TokenPair

logger = logging.getLogger(__name__)

SCOPES = [
    "openid",
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile"
]

GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/auth"


def generate_state() -> str:
    """Random state parameter for CSRF protection."""
    return secrets.token_urlsafe(24)


def validate_state(received: Optional[str], expected: Optional[str]) -> bool:
    if not received or not expected:
        return False
    return secrets.compare_digest(received, expected)


class OAuthService:
    """Builds OAuth flows from settings and talks to Google's token endpoints."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def _flow(self, state: Optional[str] = None) -> Flow:
        """Create OAuth flow from env client config, or the client secrets file."""
        if self.settings.has_client_config:
            client_config = {
                "web": {
                    "client_id": self.settings.google_client_id,
                    "client_secret": self.settings.google_client_secret,
                    "auth_uri": GOOGLE_AUTH_URI,
                    "token_uri": self.settings.google_token_uri,
                    "redirect_uris": [self.settings.google_redirect_uri]
                }
            }
            return Flow.from_client_config(
                client_config,
                scopes=SCOPES,
                redirect_uri=self.settings.google_redirect_uri,
                state=state,
                autogenerate_code_verifier=False
            )

        creds_file = self.settings.google_credentials_file
        if not os.path.exists(creds_file):
            raise OAuthError(
                message="Google OAuth is not configured",
                details=f"Set GOOGLE_CLIENT_ID/GOOGLE_CLIENT_SECRET or provide {creds_file}",
                code="OAUTH_NOT_CONFIGURED"
            )

        return Flow.from_client_secrets_file(
            creds_file,
            scopes=SCOPES,
            redirect_uri=self.settings.google_redirect_uri,
            state=state,
            autogenerate_code_verifier=False
        )

    def authorization_url(self, state: Optional[str] = None) -> tuple[str, str]:
        """
        Build the Google consent URL.

        Returns:
            (auth_url, state)
        """
        flow = self._flow()
        auth_url, state = flow.authorization_url(
            access_type="offline",  # Get refresh token
            include_granted_scopes="true",
            prompt="consent",  # Force consent to get refresh token
            state=state or generate_state()
        )
        return auth_url, state

    def exchange_code(self, code: str) -> TokenPair:
        """
        Exchange an authorization code for tokens.

        Raises:
            OAuthError: INVALID_GRANT when the code is expired or reused,
                CALLBACK_ERROR otherwise
        """
        flow = self._flow()
        try:
            flow.fetch_token(code=code)
        except Exception as e:
            logger.error("Failed to exchange code for tokens: %s", e)
            if "invalid_grant" in str(e):
                raise OAuthError(
                    message="Authorization code is invalid or expired",
                    details=str(e),
                    code="INVALID_GRANT",
                    status_code=401
                ) from e
            raise OAuthError(
                message="Failed to exchange authorization code for tokens",
                details=str(e),
                code="CALLBACK_ERROR"
            ) from e

        creds = flow.credentials
        if not creds.token:
            raise OAuthError(message="Failed to obtain valid tokens", code="INVALID_TOKENS", status_code=400)

        return TokenPair(
            access_token=creds.token,
            refresh_token=creds.refresh_token,
            expiry=creds.expiry
        )

    def get_user_info(self, tokens: TokenPair) -> dict:
        """Fetch the Google profile for an access token."""
        creds = Credentials(token=tokens.access_token)
        try:
            service = build("oauth2", "v2", credentials=creds, cache_discovery=False)
            data = service.userinfo().get().execute()
        except Exception as e:
            logger.error("Error getting user info: %s", e)
            raise OAuthError(message="Failed to get user info", details=str(e), code="USER_INFO_ERROR") from e

        return {
            "id": data.get("id"),
            "email": data.get("email"),
            "name": data.get("name"),
            "picture": data.get("picture"),
            "verified_email": data.get("verified_email")
        }
