"""
Certificate sync orchestration.

One sync run for one user:
1. Resolve user by email
2. Ensure a valid token (persist it if refreshed)
3. Two-tier Gmail search
4. Per message: dedupe check → fetch → extract → enrich → persist
5. Summarize

Messages are processed sequentially. A failing message is tallied and the
run continues; only user and credential problems end a run early. Re-running
is always safe: the message id is unique in the store.
"""

import logging
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Optional

from app.errors import (
    AuthenticationRequired,
    CertSyncError,
    EmailRequired,
    ExtractionFailure,
    MailboxError,
    PersistenceConflict,
    RefreshFailed,
    SyncError,
    UserNotFound,
)
from app.models.certificate import Certificate
from app.models.user import User
from app.services.certificate_extractor import extract_certificate
from app.services.db_service import CertificateStore
from app.services.skills import resolve_course_name, resolve_skills
from app.services.token_manager import TokenManager
from app.services.types import EnsuredToken, TokenPair

logger = logging.getLogger(__name__)

RECENT_DAYS = 30


# ============ RESULT TYPES ============

@dataclass
class SyncSummary:
    total_emails_found: int = 0
    processed: int = 0
    new_certificates: int = 0
    duplicates: int = 0
    errors: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class MessageOutcome:
    message_id: str
    status: str  # success | duplicate | error
    message: Optional[str] = None
    certificate: Optional[dict] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data = {"messageId": self.message_id, "status": self.status}
        if self.message:
            data["message"] = self.message
        if self.certificate:
            data["certificate"] = self.certificate
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class SyncResult:
    summary: SyncSummary
    results: list[MessageOutcome] = field(default_factory=list)

    @property
    def message(self) -> str:
        if self.summary.total_emails_found == 0:
            return "No certificate emails found"
        return f"Sync completed: {self.summary.new_certificates} new certificates found"

    def to_dict(self) -> dict:
        return {
            "success": True,
            "message": self.message,
            "summary": self.summary.to_dict(),
            "results": [r.to_dict() for r in self.results]
        }


@dataclass
class AuthStatus:
    authenticated: bool
    tokens_valid: bool
    user: Optional[User] = None
    message: Optional[str] = None


@dataclass
class CertificateListing:
    user: User
    certificates: list[Certificate]
    platform_summary: dict[str, int]


# ============ ORCHESTRATOR ============

class CertificateSyncService:
    """
    Drives the sync pipeline; every collaborator is injected.

    Args:
        store: Persistence adapter (owns all rows)
        token_manager: Validates and refreshes tokens
        mailbox_factory: Builds a mailbox client for a valid token pair
        enricher: Optional GeminiEnricher (None disables enrichment)
        max_messages: Per-run processing cap
        results_sample_size: Number of per-message outcomes returned
    """

    def __init__(
        self,
        store: CertificateStore,
        token_manager: TokenManager,
        mailbox_factory: Callable[[TokenPair], Any],
        enricher: Any = None,
        max_messages: int = 50,
        results_sample_size: int = 10
    ):
        self.store = store
        self.token_manager = token_manager
        self.mailbox_factory = mailbox_factory
        self.enricher = enricher
        self.max_messages = max_messages
        self.results_sample_size = results_sample_size

    # ============ USER + TOKENS ============

    def _require_user(self, email: Optional[str]) -> User:
        if not email:
            raise EmailRequired()
        user = self.store.get_user_by_email(email)
        if user is None:
            raise UserNotFound()
        return user

    def _ensure_tokens(self, user: User) -> EnsuredToken:
        """Validated tokens for a user; refreshed pairs are persisted first."""
        try:
            ensured = self.token_manager.ensure_valid(self.store.token_pair_for(user))
        except (AuthenticationRequired, RefreshFailed, MailboxError) as e:
            logger.warning("Token check failed for %s: %s", user.email, e.code)
            raise AuthenticationRequired(details=e.details or e.message) from e
        except CertSyncError:
            raise
        except Exception as e:
            logger.warning("Token check failed for %s: %s", user.email, e)
            raise AuthenticationRequired(details=str(e)) from e

        if ensured.refreshed:
            self.store.update_user_tokens(user, ensured.pair)

        return ensured

    # ============ SYNC ============

    def sync(self, email: Optional[str]) -> SyncResult:
        """
        Run one sync for a user.

        Raises:
            EmailRequired / UserNotFound: Bad request
            AuthenticationRequired: No usable credential
            InsufficientScope / QuotaExceeded / AuthExpired: Search rejected
            SyncError: Anything else that stopped the search
        """
        user = self._require_user(email)
        tokens = self._ensure_tokens(user)
        mailbox = self.mailbox_factory(tokens.pair)

        logger.info("Starting Gmail search for user: %s", user.email)
        try:
            message_ids = mailbox.search_certificates()
        except MailboxError as e:
            if type(e) is MailboxError:
                raise SyncError(details=e.details) from e
            raise
        except CertSyncError:
            raise
        except Exception as e:
            logger.exception("Gmail search failed for %s", user.email)
            raise SyncError(details=str(e)) from e

        summary = SyncSummary(total_emails_found=len(message_ids))
        outcomes = []

        for message_id in message_ids[:self.max_messages]:
            summary.processed += 1
            outcome = self._process_message(user, mailbox, message_id)
            outcomes.append(outcome)

            if outcome.status == "success":
                summary.new_certificates += 1
            elif outcome.status == "duplicate":
                summary.duplicates += 1
            else:
                summary.errors += 1

        logger.info(
            "Sync finished for %s: found=%d processed=%d new=%d duplicates=%d errors=%d",
            user.email, summary.total_emails_found, summary.processed,
            summary.new_certificates, summary.duplicates, summary.errors
        )
        return SyncResult(summary=summary, results=outcomes[:self.results_sample_size])

    def _process_message(self, user: User, mailbox, message_id: str) -> MessageOutcome:
        """Dedupe, fetch, extract, enrich and store one message. Never raises."""
        try:
            if self.store.certificate_exists(message_id):
                return MessageOutcome(message_id, "duplicate", message="Certificate already exists")

            message = mailbox.fetch(message_id)
            draft = extract_certificate(message)
            draft.course_name = resolve_course_name(
                self.enricher, draft.course_name, message.body, message.subject
            )
            skills = resolve_skills(self.enricher, message.body, message.subject)
            draft.skills = skills.value

            certificate = self.store.store_certificate(user, draft, message_id)
        except PersistenceConflict:
            return MessageOutcome(
                message_id, "duplicate",
                message="Certificate already exists (detected during insert)"
            )
        except Exception as e:
            self.store.rollback()
            failure = e if isinstance(e, CertSyncError) else ExtractionFailure(details=str(e))
            logger.error("Error processing message %s: %s", message_id, failure.details or failure.message)
            return MessageOutcome(message_id, "error", error=failure.details or failure.message)

        logger.info("Stored certificate %s (%s, skills from %s)", message_id, certificate.platform, skills.source)
        return MessageOutcome(
            message_id, "success",
            certificate={
                "id": certificate.id,
                "platform": certificate.platform,
                "course_name": certificate.course_name,
                "skills": certificate.skills
            }
        )

    # ============ READ SIDE ============

    def get_certificates(self, email: Optional[str]) -> CertificateListing:
        user = self._require_user(email)
        certificates = self.store.get_user_certificates(user)
        platform_summary = dict(Counter(c.platform for c in certificates))
        return CertificateListing(user, certificates, platform_summary)

    def get_stats(self, email: Optional[str], today: Optional[date] = None) -> dict:
        """Aggregates over a user's certificates for the dashboard cards."""
        user = self._require_user(email)
        certificates = self.store.get_user_certificates(user)
        return compute_stats(certificates, today=today)

    def ensure_authenticated(self, email: Optional[str]) -> AuthStatus:
        """Token health check; refreshes transparently, never raises on token problems."""
        user = self._require_user(email)

        try:
            self._ensure_tokens(user)
        except AuthenticationRequired:
            return AuthStatus(
                authenticated=False,
                tokens_valid=False,
                user=user,
                message="Authentication required - please login again"
            )

        return AuthStatus(authenticated=True, tokens_valid=True, user=user)

    def test_connection(self, email: Optional[str]) -> dict:
        """Check the token, list a few recent messages and report Gemini reachability."""
        user = self._require_user(email)
        tokens = self._ensure_tokens(user)
        mailbox = self.mailbox_factory(tokens.pair)

        recent = []
        try:
            recent = mailbox.list_recent(limit=5)
        except MailboxError as e:
            logger.warning("Recent emails test failed: %s", e.details)

        if self.enricher is None or not self.enricher.available:
            gemini_status = "disabled"
        else:
            gemini_status = "connected" if self.enricher.test_connection() else "unavailable"

        return {
            "success": True,
            "message": "Gmail API connection successful",
            "user_email": user.email,
            "token_status": "valid",
            "gemini_status": gemini_status,
            "recent_emails": recent
        }


def compute_stats(certificates: list[Certificate], today: Optional[date] = None) -> dict:
    """
    Aggregate certificate statistics.

    Returns:
        dict with total_certificates, platforms, recent_certificates
        (issued in the last 30 days), skills_summary and latest_certificate
    """
    today = today or datetime.now(timezone.utc).date()
    cutoff = today - timedelta(days=RECENT_DAYS)

    platforms = Counter()
    skills_summary = Counter()
    recent = 0
    latest = None

    for cert in certificates:
        platforms[cert.platform] += 1

        if cert.issue_date and cert.issue_date >= cutoff:
            recent += 1

        for skill in cert.skill_list:
            skills_summary[skill] += 1

        if cert.issue_date and (latest is None or cert.issue_date > latest.issue_date):
            latest = cert

    return {
        "total_certificates": len(certificates),
        "platforms": dict(platforms),
        "recent_certificates": recent,
        "skills_summary": dict(skills_summary),
        "latest_certificate": {
            "platform": latest.platform,
            "course_name": latest.course_name,
            "issue_date": latest.issue_date.isoformat()
        } if latest else None
    }
