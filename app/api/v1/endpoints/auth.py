"""
Google OAuth authentication endpoints for Gmail API access.

Flow:
1. GET /auth/login -> Redirects to Google OAuth consent screen
2. Google redirects back to /auth/callback with code
3. /auth/callback exchanges code for tokens and upserts the user

Errors from the callback are always JSON bodies with an error code; only a
successful browser login redirects to the frontend.
"""

import json
import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel

from app.api.deps import get_oauth_service, get_store, get_sync_service, get_token_manager
from app.config import Settings, get_settings
from app.errors import EmailRequired, NoRefreshToken, OAuthError, UserNotFound
from app.services.db_service import CertificateStore
from app.services.oauth_service import OAuthService, validate_state
from app.services.sync_service import CertificateSyncService
from app.services.token_manager import TokenManager, format_token_response, handle_oauth_error

logger = logging.getLogger(__name__)

STATE_COOKIE = "oauth_state"


# Request/Response Models
class EmailRequest(BaseModel):
    """Body for endpoints keyed by user email."""
    email: Optional[str] = None


class AuthUser(BaseModel):
    id: int
    email: str
    created_at: Optional[str] = None


class AuthStatusResponse(BaseModel):
    """Authentication status check response."""
    success: bool = True
    authenticated: bool
    tokens_valid: bool
    user: AuthUser
    message: Optional[str] = None


class MessageResponse(BaseModel):
    success: bool = True
    message: str


router = APIRouter(prefix="/auth", tags=["Authentication"])


def wants_json(request: Request) -> bool:
    return "application/json" in request.headers.get("accept", "")


@router.get("/login")
def login(request: Request, oauth: OAuthService = Depends(get_oauth_service)):
    """
    Start OAuth flow - redirects to Google consent screen.

    API clients sending `Accept: application/json` get the URL instead.
    """
    auth_url, state = oauth.authorization_url()

    if wants_json(request):
        response = JSONResponse(content={
            "success": True,
            "authUrl": auth_url,
            "message": "Visit the auth URL to authenticate with Google"
        })
    else:
        response = RedirectResponse(url=auth_url)

    response.set_cookie(STATE_COOKIE, state, max_age=600, httponly=True, samesite="lax")
    return response


@router.get("/callback")
def callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    error_description: Optional[str] = None,
    oauth: OAuthService = Depends(get_oauth_service),
    store: CertificateStore = Depends(get_store),
    settings: Settings = Depends(get_settings)
):
    """
    OAuth callback - exchanges authorization code for tokens.

    Google redirects here after user grants/denies permission.
    """
    if error:
        mapped = handle_oauth_error(error, error_description)
        raise OAuthError(message=mapped.message, code=mapped.code, status_code=mapped.status)

    expected_state = request.cookies.get(STATE_COOKIE)
    if expected_state and not validate_state(state, expected_state):
        raise OAuthError(message="OAuth state mismatch", code="INVALID_STATE", status_code=400)

    if not code:
        raise OAuthError(message="Authorization code is required", code="MISSING_CODE", status_code=400)

    tokens = oauth.exchange_code(code)
    user_info = oauth.get_user_info(tokens)

    if not user_info.get("email"):
        raise OAuthError(message="Unable to retrieve user email", code="NO_EMAIL", status_code=400)

    user = store.upsert_user(
        email=user_info["email"],
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        token_expiry=tokens.expiry
    )
    logger.info("User authenticated: %s", user.email)

    user_payload = {
        "id": user.id,
        "email": user.email,
        "name": user_info.get("name"),
        "picture": user_info.get("picture")
    }

    if wants_json(request):
        response = JSONResponse(content={
            "success": True,
            "message": "Authentication successful",
            "user": user_payload,
            "tokens": format_token_response(tokens)
        })
    else:
        user_param = quote(json.dumps(user_payload))
        response = RedirectResponse(url=f"{settings.frontend_url}/callback?user={user_param}")

    response.delete_cookie(STATE_COOKIE)
    return response


@router.get("/status", response_model=AuthStatusResponse)
def auth_status(
    email: Optional[str] = None,
    service: CertificateSyncService = Depends(get_sync_service)
) -> AuthStatusResponse:
    """Check whether the user's stored tokens are usable (refreshing if needed)."""
    status = service.ensure_authenticated(email)
    user = status.user

    return AuthStatusResponse(
        authenticated=status.authenticated,
        tokens_valid=status.tokens_valid,
        user=AuthUser(
            id=user.id,
            email=user.email,
            created_at=user.created_at.isoformat() if user.created_at else None
        ),
        message=status.message
    )


@router.post("/logout", response_model=MessageResponse)
def logout(body: EmailRequest, store: CertificateStore = Depends(get_store)):
    """
    Clear stored tokens (logout).

    The user row and certificates are kept.
    """
    if not body.email:
        raise EmailRequired(message="Email is required for logout")

    user = store.get_user_by_email(body.email)
    if user is None:
        raise UserNotFound(message="User not found")

    store.clear_user_tokens(user)
    return MessageResponse(message="Logout successful")


@router.post("/refresh")
def refresh_token(
    body: EmailRequest,
    store: CertificateStore = Depends(get_store),
    token_manager: TokenManager = Depends(get_token_manager)
):
    """
    Force a token refresh for the user.

    Use this if the access token is expired but a refresh token is stored.
    """
    if not body.email:
        raise EmailRequired(message="Email is required for token refresh")

    user = store.get_user_by_email(body.email)
    if user is None:
        raise UserNotFound(message="User not found")

    if not user.google_refresh_token:
        raise NoRefreshToken()

    tokens = token_manager.refresh(user.google_refresh_token)
    store.update_user_tokens(user, tokens)

    return {
        "success": True,
        "message": "Tokens refreshed successfully",
        "tokens": format_token_response(tokens)
    }
