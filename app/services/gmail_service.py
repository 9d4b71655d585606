"""
Gmail mailbox client for the certificate sync pipeline.

Wraps the Gmail v1 API for one user's access token:
- Two-tier certificate search (known senders first, broad subject fallback)
- Full message fetch with recursive MIME body decoding
- Cheap token check via users.getProfile
- Translation of provider HTTP errors into the pipeline's error taxonomy
"""

import base64
import binascii
import json
import logging
from typing import Any, Optional

import httplib2
from google.auth.exceptions import TransportError
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from app.config import Settings, get_settings
from app.errors import AuthExpired, InsufficientScope, MailboxError, QuotaExceeded
from app.services.types import CandidateMessage, TokenPair

logger = logging.getLogger(__name__)

SEARCH_MAX_RESULTS = 50

# Known certificate senders, one group per platform
CERTIFICATE_SENDERS = [
    ["no-reply@coursera.org", "noreply@coursera.org"],
    ["no-reply@infosysspringboard.com", "noreply@infosysspringboard.com"],
    ["certificates@edx.org", "noreply@edx.org"],
    ["support@udacity.com", "no-reply@udacity.com"],
    ["noreply@udemy.com"],
    ["linkedin-learning@linkedin.com"],
]

SUBJECT_FILTER = "subject:(certificate OR completion OR achievement OR credential)"

QUOTA_REASONS = ("ratelimitexceeded", "userratelimitexceeded", "quotaexceeded", "dailylimitexceeded")
SCOPE_REASONS = ("insufficientpermissions", "insufficient authentication scopes", "access_token_scope_insufficient")


def build_targeted_query() -> str:
    """Sender-domain + subject-keyword query for high-confidence certificates."""
    groups = [f"from:({' OR '.join(addresses)})" for addresses in CERTIFICATE_SENDERS]
    return " OR ".join(groups) + " " + SUBJECT_FILTER


def build_broad_query() -> str:
    """Subject-only query that also catches unlisted platforms."""
    return SUBJECT_FILTER


# ============ ERROR TRANSLATION ============

def _error_text(error: HttpError) -> str:
    parts = [str(getattr(error, "reason", "") or "")]
    content = getattr(error, "content", b"") or b""
    if isinstance(content, bytes):
        content = content.decode("utf-8", errors="ignore")
    parts.append(content)
    try:
        payload = json.loads(content)
        for item in payload.get("error", {}).get("errors", []):
            parts.append(item.get("reason", ""))
    except (ValueError, AttributeError):
        pass
    return " ".join(parts).lower()


def translate_http_error(error: HttpError) -> MailboxError:
    """
    Map a Gmail HttpError onto the pipeline's error taxonomy.

    Args:
        error: Error raised by googleapiclient

    Returns:
        MailboxError subclass carrying the provider text as details
    """
    status = int(getattr(error.resp, "status", 0) or 0)
    text = _error_text(error)
    details = str(error)

    if status == 401:
        return AuthExpired(details=details)

    if status == 429 or (status == 403 and any(r in text for r in QUOTA_REASONS)):
        return QuotaExceeded(details=details)

    if status == 403 and any(r in text for r in SCOPE_REASONS):
        return InsufficientScope(details=details)

    return MailboxError(details=details)


# ============ BODY DECODING ============

def _decode_data(data: str) -> str:
    """Decode base64url data, tolerating missing padding."""
    if not data:
        return ""
    padded = data + "=" * (-len(data) % 4)
    try:
        return base64.urlsafe_b64decode(padded).decode("utf-8", errors="ignore")
    except (binascii.Error, ValueError):
        logger.warning("Skipping undecodable message part")
        return ""


def decode_body(payload: Optional[dict]) -> str:
    """
    Extract the text body from a Gmail message payload.

    Walks nested parts recursively and concatenates text/plain and
    text/html leaves in order. Missing parts yield an empty string.
    """
    if not payload:
        return ""

    def get_body_from_parts(parts):
        """Recursively extract body from message parts."""
        body_text = ""
        for part in parts:
            mime_type = part.get("mimeType", "")

            # If part has nested parts, recurse
            if part.get("parts"):
                body_text += get_body_from_parts(part["parts"])
            elif mime_type in ("text/html", "text/plain"):
                body_text += _decode_data(part.get("body", {}).get("data", ""))

        return body_text

    # Handle multipart messages
    if payload.get("parts"):
        return get_body_from_parts(payload["parts"])

    # Handle simple messages
    return _decode_data(payload.get("body", {}).get("data", ""))


def get_header(headers: list, name: str) -> Optional[str]:
    """Case-insensitive header lookup."""
    for h in headers or []:
        if h.get("name", "").lower() == name.lower():
            return h.get("value")
    return None


# ============ CLIENT ============

class GmailMailbox:
    """
    Gmail API client bound to one access token.

    The credentials carry no refresh token on purpose: refreshing is the
    token manager's job, so a rejected token surfaces as AuthExpired
    instead of being silently renewed mid-run.
    """

    def __init__(self, tokens: TokenPair, settings: Optional[Settings] = None, service: Any = None):
        self.tokens = tokens
        self.settings = settings or get_settings()
        self._service = service

    @property
    def service(self):
        if self._service is None:
            creds = Credentials(token=self.tokens.access_token)
            self._service = build("gmail", "v1", credentials=creds, cache_discovery=False)
        return self._service

    def _execute(self, request, operation: str):
        try:
            return request.execute()
        except HttpError as e:
            translated = translate_http_error(e)
            logger.warning("Gmail %s failed: %s (%s)", operation, translated.code, e)
            raise translated from e
        except (TransportError, httplib2.HttpLib2Error, OSError) as e:
            logger.warning("Gmail %s transport error: %s", operation, e)
            raise MailboxError(details=str(e)) from e

    # ============ TOKEN CHECK ============

    def get_profile(self) -> dict:
        return self._execute(
            self.service.users().getProfile(userId="me"),
            "getProfile"
        )

    def is_token_valid(self) -> bool:
        """Cheap authenticated call. False only when Gmail answers 401."""
        try:
            self.get_profile()
            return True
        except AuthExpired:
            return False

    # ============ SEARCH ============

    def search(self, query: str, max_results: Optional[int] = None) -> list[str]:
        """
        List message ids matching a Gmail query.

        Args:
            query: Gmail search query
            max_results: Cap on returned ids (default SEARCH_MAX_RESULTS)

        Returns:
            Message ids in the order Gmail returned them (most recent first)
        """
        limit = max_results or self.settings.search_max_results or SEARCH_MAX_RESULTS
        response = self._execute(
            self.service.users().messages().list(userId="me", q=query, maxResults=limit),
            "messages.list"
        )
        messages = response.get("messages", []) or []
        return [m["id"] for m in messages][:limit]

    def search_certificates(self) -> list[str]:
        """Targeted sender search, falling back once to a subject-only search."""
        query = build_targeted_query()
        logger.info("Gmail search query: %s", query)
        message_ids = self.search(query)

        if not message_ids:
            broad_query = build_broad_query()
            logger.info("No messages for targeted query, trying broad search: %s", broad_query)
            message_ids = self.search(broad_query)

        logger.info("Gmail search found %d candidate messages", len(message_ids))
        return message_ids

    # ============ FETCH ============

    def fetch(self, message_id: str) -> CandidateMessage:
        """
        Fetch a full message and decode its body.

        Args:
            message_id: Gmail message ID

        Returns:
            CandidateMessage with subject, sender, date and decoded body
        """
        msg = self._execute(
            self.service.users().messages().get(userId="me", id=message_id, format="full"),
            "messages.get"
        )

        payload = msg.get("payload", {}) or {}
        headers = payload.get("headers", [])

        return CandidateMessage(
            id=message_id,
            subject=get_header(headers, "Subject") or "No Subject",
            sender=get_header(headers, "From") or "Unknown Sender",
            date=get_header(headers, "Date") or "",
            body=decode_body(payload),
            snippet=msg.get("snippet", "")
        )

    def list_recent(self, limit: int = 5) -> list[dict]:
        """Metadata for the most recent messages (connection test)."""
        response = self._execute(
            self.service.users().messages().list(userId="me", maxResults=limit),
            "messages.list"
        )
        recent = []
        for meta in (response.get("messages", []) or [])[:limit]:
            msg = self._execute(
                self.service.users().messages().get(
                    userId="me",
                    id=meta["id"],
                    format="metadata",
                    metadataHeaders=["Subject", "From", "Date"]
                ),
                "messages.get"
            )
            headers = msg.get("payload", {}).get("headers", [])
            recent.append({
                "id": meta["id"],
                "subject": get_header(headers, "Subject"),
                "from": get_header(headers, "From"),
                "date": get_header(headers, "Date")
            })
        return recent


def gmail_mailbox_factory(settings: Optional[Settings] = None):
    """Return a callable that builds a GmailMailbox for a token pair."""
    def factory(tokens: TokenPair) -> GmailMailbox:
        return GmailMailbox(tokens, settings=settings)
    return factory
