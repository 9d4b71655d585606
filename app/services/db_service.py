"""
Database service layer for the certificate sync pipeline.

CertificateStore wraps a SQLAlchemy session and owns every persisted row:
- Users: upsert by email, token updates, logout
- Certificates: existence check and insert keyed by Gmail message id
- Dashboard queries
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.errors import PersistenceConflict
from app.models.certificate import Certificate, DEFAULT_SKILLS
from app.models.user import User
from app.services.types import CertificateDraft, TokenPair

logger = logging.getLogger(__name__)


def _to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Store expiries as naive UTC, the way google-auth reports them."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class CertificateStore:
    """Persistence adapter for users, tokens and certificates."""

    def __init__(self, db: Session):
        self.db = db

    # ============ USER OPERATIONS ============

    def upsert_user(
        self,
        email: str,
        access_token: Optional[str],
        refresh_token: Optional[str] = None,
        token_expiry: Optional[datetime] = None
    ) -> User:
        """
        Insert or update a user by email.

        Google only returns a refresh token on the first consent, so a
        missing refresh token keeps the one already stored.

        Args:
            email: Google account email (natural key)
            access_token: Fresh access token
            refresh_token: Refresh token, if the provider returned one
            token_expiry: Access token expiry

        Returns:
            User: Existing (updated) or newly created user
        """
        user = self.get_user_by_email(email)

        if user is None:
            user = User(email=email)
            self.db.add(user)

        user.google_access_token = access_token
        if refresh_token:
            user.google_refresh_token = refresh_token
        user.token_expiry = _to_naive_utc(token_expiry)

        try:
            self.db.commit()
        except IntegrityError:
            # Race condition - another request created the same email
            self.db.rollback()
            logger.info("Concurrent user insert for %s, updating existing row", email)
            user = self.get_user_by_email(email)
            user.google_access_token = access_token
            if refresh_token:
                user.google_refresh_token = refresh_token
            user.token_expiry = _to_naive_utc(token_expiry)
            self.db.commit()

        self.db.refresh(user)
        return user

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email).first()

    def update_user_tokens(self, user: User, tokens: TokenPair) -> User:
        """Replace the stored token pair after a refresh."""
        user.google_access_token = tokens.access_token
        user.google_refresh_token = tokens.refresh_token
        user.token_expiry = _to_naive_utc(tokens.expiry)
        self.db.commit()
        self.db.refresh(user)
        logger.info("Updated tokens for user %s", user.email)
        return user

    def clear_user_tokens(self, user: User) -> User:
        """Logout: null the tokens but keep the user and their certificates."""
        return self.update_user_tokens(user, TokenPair(None, None, None))

    @staticmethod
    def token_pair_for(user: User) -> TokenPair:
        return TokenPair(
            access_token=user.google_access_token,
            refresh_token=user.google_refresh_token,
            expiry=user.token_expiry
        )

    # ============ CERTIFICATE OPERATIONS ============

    def certificate_exists(self, message_id: str) -> bool:
        """Check if a certificate was already stored for this Gmail message."""
        return self.db.query(Certificate.id).filter(
            Certificate.message_id == message_id
        ).first() is not None

    def store_certificate(
        self,
        user: User,
        draft: CertificateDraft,
        message_id: str
    ) -> Certificate:
        """
        Insert a certificate row.

        Args:
            user: Owning user
            draft: Extracted certificate fields
            message_id: Gmail message id (unique)

        Returns:
            Certificate: The newly created row

        Raises:
            PersistenceConflict: If the message id is already stored
        """
        certificate = Certificate(
            user_id=user.id,
            platform=draft.platform,
            course_name=draft.course_name,
            issue_date=draft.issue_date,
            download_link=draft.download_link,
            skills=draft.skills or DEFAULT_SKILLS,
            message_id=message_id,
            email_subject=draft.email_subject
        )

        self.db.add(certificate)

        try:
            self.db.commit()
        except IntegrityError:
            # Another run stored the same message between our check and insert
            self.db.rollback()
            logger.info("Certificate already exists: %s", message_id)
            raise PersistenceConflict(details=message_id)

        self.db.refresh(certificate)
        return certificate

    def rollback(self) -> None:
        """Reset the session after a failed unit of work."""
        self.db.rollback()

    # ============ DASHBOARD QUERIES ============

    def get_user_certificates(self, user: User) -> list[Certificate]:
        """All certificates for a user, newest issue date first."""
        return self.db.query(Certificate).filter(
            Certificate.user_id == user.id
        ).order_by(
            Certificate.issue_date.desc(),
            Certificate.id.desc()
        ).all()
