"""
Token lifecycle management for Google OAuth credentials.

Decides whether a stored access token is still usable, refreshes it when it
is not, and classifies refresh failures:
- InvalidGrant: refresh token expired or revoked, user must log in again
- RefreshFailed: anything else (network, provider outage)
- AuthenticationRequired: nothing left to refresh with
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request as GoogleRequest
from google.oauth2.credentials import Credentials

from app.config import Settings
from app.errors import AuthenticationRequired, InvalidGrant, RefreshFailed
from app.services.types import EnsuredToken, TokenPair

logger = logging.getLogger(__name__)

# Treat tokens this close to expiry as already expired
EXPIRY_BUFFER = timedelta(minutes=5)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_expired(expiry: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """
    Check whether a token expiry falls inside the safety buffer.

    Args:
        expiry: Access token expiry; naive values are taken as UTC
        now: Reference instant (defaults to current UTC time)

    Returns:
        True if expiry is unknown or at most 5 minutes away
    """
    if expiry is None:
        return True
    current = _as_utc(now) if now else datetime.now(timezone.utc)
    return (_as_utc(expiry) - current) <= EXPIRY_BUFFER


@dataclass(frozen=True)
class OAuthErrorInfo:
    code: str
    message: str
    status: int


OAUTH_ERROR_MAPPINGS = {
    "access_denied": OAuthErrorInfo("ACCESS_DENIED", "User denied access to Gmail", 403),
    "invalid_request": OAuthErrorInfo("INVALID_REQUEST", "Invalid OAuth request", 400),
    "invalid_grant": OAuthErrorInfo("INVALID_GRANT", "Invalid authorization code or refresh token", 401),
    "invalid_client": OAuthErrorInfo("INVALID_CLIENT", "Invalid client credentials", 401),
}


def handle_oauth_error(error: str, description: Optional[str] = None) -> OAuthErrorInfo:
    """Map an OAuth callback error code to a response code, message and status."""
    mapped = OAUTH_ERROR_MAPPINGS.get(error)
    if mapped:
        return mapped
    return OAuthErrorInfo("OAUTH_ERROR", description or "OAuth authentication failed", 500)


def format_token_response(tokens: TokenPair) -> dict:
    """Consistent token payload for API responses."""
    return {
        "access_token": tokens.access_token,
        "expires_in": tokens.expiry.isoformat() if tokens.expiry else None,
        "token_type": "Bearer"
    }


class TokenManager:
    """
    Validates and refreshes a user's Google token pair.

    Args:
        settings: OAuth client configuration
        mailbox_factory: Builds a mailbox client for a token pair; used for
            the cheap validity check
    """

    def __init__(self, settings: Settings, mailbox_factory: Callable[[TokenPair], object]):
        self.settings = settings
        self.mailbox_factory = mailbox_factory

    def validate(self, access_token: str) -> bool:
        """Check the access token against Gmail. False only on a 401."""
        mailbox = self.mailbox_factory(TokenPair(access_token=access_token))
        return mailbox.is_token_valid()

    def _client_credentials(self, refresh_token: str) -> Credentials:
        return Credentials(
            token=None,
            refresh_token=refresh_token,
            token_uri=self.settings.google_token_uri,
            client_id=self.settings.google_client_id,
            client_secret=self.settings.google_client_secret
        )

    def refresh(self, refresh_token: str) -> TokenPair:
        """
        Exchange a refresh token for a new access token.

        Args:
            refresh_token: Stored refresh token

        Returns:
            TokenPair with the new access token. The refresh token is the
            rotated one if Google issued one, otherwise the original.

        Raises:
            InvalidGrant: Google rejected the refresh token
            RefreshFailed: Any other refresh failure
        """
        creds = self._client_credentials(refresh_token)

        try:
            creds.refresh(GoogleRequest())
        except RefreshError as e:
            if "invalid_grant" in str(e):
                logger.warning("Refresh token rejected by Google: %s", e)
                raise InvalidGrant(details=str(e)) from e
            logger.error("Token refresh failed: %s", e)
            raise RefreshFailed(details=str(e)) from e
        except TransportError as e:
            logger.error("Token refresh transport error: %s", e)
            raise RefreshFailed(details=str(e)) from e

        return TokenPair(
            access_token=creds.token,
            refresh_token=creds.refresh_token or refresh_token,
            expiry=creds.expiry
        )

    def ensure_valid(self, tokens: TokenPair) -> EnsuredToken:
        """
        Return a usable token pair, refreshing it if needed.

        A known expiry inside the 5-minute buffer skips the Gmail check and goes
        straight to refresh.

        Raises:
            AuthenticationRequired: Token unusable and no refresh token
            InvalidGrant: Refresh token rejected
            RefreshFailed: Refresh failed for another reason
        """
        usable = False
        if tokens.access_token:
            if tokens.expiry is not None and is_expired(tokens.expiry):
                logger.info("Stored access token is expired or about to expire")
            else:
                usable = self.validate(tokens.access_token)

        if usable:
            return EnsuredToken(
                access_token=tokens.access_token,
                refresh_token=tokens.refresh_token,
                expiry=tokens.expiry,
                refreshed=False
            )

        if not tokens.refresh_token:
            raise AuthenticationRequired(details="Token invalid and no refresh token available")

        new_tokens = self.refresh(tokens.refresh_token)
        logger.info("Access token refreshed")
        return EnsuredToken(
            access_token=new_tokens.access_token,
            refresh_token=new_tokens.refresh_token,
            expiry=new_tokens.expiry,
            refreshed=True
        )
