"""
Error taxonomy for the certificate sync pipeline.

Every terminal failure carries a machine-readable code, an HTTP status and a
human-readable message. Raw exception text from providers only ever travels
in the secondary ``details`` field.
"""

from typing import Any, Dict, Optional


class CertSyncError(Exception):
    """Base class for all errors surfaced by the pipeline."""

    code = "SYNC_ERROR"
    status_code = 500
    default_message = "Certificate sync failed"

    def __init__(self, message: Optional[str] = None, details: Optional[str] = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body = {
            "success": False,
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            body["details"] = self.details
        return body


# ============ REQUEST ERRORS ============

class EmailRequired(CertSyncError):
    code = "EMAIL_REQUIRED"
    status_code = 400
    default_message = "User email is required"


class UserNotFound(CertSyncError):
    code = "USER_NOT_FOUND"
    status_code = 404
    default_message = "User not found - please authenticate first"


# ============ CREDENTIAL ERRORS ============

class AuthenticationRequired(CertSyncError):
    """No usable credential; the user must log in again."""

    code = "AUTHENTICATION_REQUIRED"
    status_code = 401
    default_message = "Please login again to continue"


class RefreshFailed(CertSyncError):
    """Refresh token exchange failed for a transient or unknown reason."""

    code = "REFRESH_ERROR"
    status_code = 502
    default_message = "Failed to refresh tokens"


class InvalidGrant(RefreshFailed):
    """Provider rejected the refresh token (expired or revoked)."""

    code = "INVALID_GRANT"
    status_code = 401
    default_message = "Refresh token is invalid - please login again"


class NoRefreshToken(CertSyncError):
    code = "NO_REFRESH_TOKEN"
    status_code = 401
    default_message = "No refresh token available - please login again"


class OAuthError(CertSyncError):
    code = "OAUTH_ERROR"
    status_code = 500
    default_message = "OAuth authentication failed"

    def __init__(self, message=None, details=None, code=None, status_code=None):
        super().__init__(message, details)
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code


# ============ MAILBOX ERRORS ============

class MailboxError(CertSyncError):
    code = "MAILBOX_ERROR"
    status_code = 502
    default_message = "Gmail API request failed"


class AuthExpired(MailboxError):
    """Provider rejected the token in the middle of a call."""

    code = "AUTH_EXPIRED"
    status_code = 401
    default_message = "Gmail access token was rejected - please login again"


class InsufficientScope(MailboxError):
    code = "INSUFFICIENT_SCOPE"
    status_code = 401
    default_message = "Please re-authenticate with Gmail access"


class QuotaExceeded(MailboxError):
    code = "QUOTA_EXCEEDED"
    status_code = 429
    default_message = "Gmail API quota exceeded, please try again later"


# ============ PIPELINE ERRORS ============

class SyncError(CertSyncError):
    code = "SYNC_ERROR"
    status_code = 500
    default_message = "Failed to sync certificates from Gmail"


class ExtractionFailure(CertSyncError):
    """Per-message failure; tallied by the orchestrator, never raised out of a run."""

    code = "EXTRACTION_FAILURE"
    default_message = "Failed to extract certificate from message"


class PersistenceConflict(CertSyncError):
    """Unique-key rejection on insert; counts as a duplicate."""

    code = "DUPLICATE"
    status_code = 409
    default_message = "Certificate already exists"


class EnrichmentError(CertSyncError):
    """Generative enrichment call failed; always recovered locally."""

    code = "ENRICHMENT_ERROR"
    status_code = 502
    default_message = "Enrichment service unavailable"
