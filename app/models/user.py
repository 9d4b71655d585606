"""
User model - one row per Google account that has signed in.

Identity is the email address. Tokens are replaced on every refresh and
nulled on logout; the row itself is never deleted by the sync pipeline.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class User(Base):
    """Authenticated mailbox owner and their stored OAuth tokens."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)

    # Natural identity (upsert key)
    email = Column(String(320), unique=True, nullable=False, index=True)

    # ============ OAUTH TOKENS ============
    google_access_token = Column(Text)
    google_refresh_token = Column(Text)
    token_expiry = Column(DateTime)  # UTC expiry of the access token

    # Timestamps
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    certificates = relationship(
        "Certificate",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email})>"

    @property
    def has_tokens(self) -> bool:
        return bool(self.google_access_token or self.google_refresh_token)
