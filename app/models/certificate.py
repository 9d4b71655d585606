"""
Certificate model - the dashboard-facing table.

One row per detected course-completion email. The Gmail message id is
unique and acts as the idempotency key for the whole sync pipeline:
re-running a sync can never create a second row for the same message.
"""

from sqlalchemy import (
    Column, Integer, String, Date, Text,
    ForeignKey, DateTime, Index
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base

DEFAULT_SKILLS = "General Knowledge"
MAX_COURSE_NAME_LENGTH = 512


class Certificate(Base):
    """
    Extracted certificate metadata.

    Each row = one certificate card on the dashboard.
    """
    __tablename__ = "certificates"

    id = Column(Integer, primary_key=True)

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # ============ CERTIFICATE INFO (Card) ============
    platform = Column(String(64), nullable=False, index=True)  # e.g. "Coursera" or "Unknown"
    course_name = Column(String(MAX_COURSE_NAME_LENGTH), nullable=False)
    issue_date = Column(Date, index=True)
    download_link = Column(Text)
    skills = Column(Text, nullable=False, default=DEFAULT_SKILLS)  # comma-joined

    # ============ SOURCE (Audit) ============
    message_id = Column(String(64), unique=True, nullable=False)
    email_subject = Column(Text)

    created_at = Column(DateTime, server_default=func.now())

    user = relationship("User", back_populates="certificates")

    __table_args__ = (
        Index("ix_certificates_user_issue_date", "user_id", "issue_date"),
    )

    def __repr__(self):
        return f"<Certificate(id={self.id}, platform={self.platform}, course={self.course_name[:30] if self.course_name else ''})>"

    @property
    def skill_list(self) -> list[str]:
        """Skills split back into individual entries."""
        if not self.skills:
            return []
        return [s.strip() for s in self.skills.split(",") if s.strip()]
