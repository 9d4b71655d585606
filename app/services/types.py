"""
Value objects passed between the sync pipeline stages.

None of these are persisted directly; the store maps CertificateDraft onto
the Certificate model.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional


@dataclass(frozen=True)
class TokenPair:
    """Google access/refresh token pair with the access token's expiry (UTC)."""
    access_token: Optional[str]
    refresh_token: Optional[str] = None
    expiry: Optional[datetime] = None


@dataclass(frozen=True)
class EnsuredToken:
    """Result of ensure_valid: a usable pair, and whether it was refreshed."""
    access_token: str
    refresh_token: Optional[str]
    expiry: Optional[datetime] = None
    refreshed: bool = False

    @property
    def pair(self) -> TokenPair:
        return TokenPair(self.access_token, self.refresh_token, self.expiry)


@dataclass
class CandidateMessage:
    """One Gmail message fetched during a sync run."""
    id: str
    subject: str
    sender: str
    date: str
    body: str
    snippet: str = ""


@dataclass
class CertificateDraft:
    """Certificate fields extracted from a message, before persistence."""
    platform: str
    course_name: str
    issue_date: date
    download_link: Optional[str]
    email_subject: str
    skills: Optional[str] = None
