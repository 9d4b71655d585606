"""
SQLAlchemy models for the certificate sync service.

This package contains:
- User: Google account with stored OAuth tokens
- Certificate: Extracted certificate metadata (dashboard data)
"""

from app.models.user import User
from app.models.certificate import Certificate

__all__ = ["User", "Certificate"]
