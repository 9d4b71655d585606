"""
Pytest configuration and shared fixtures for the certificate sync tests.

Every test runs against a fresh in-memory SQLite database and a fake Gmail
mailbox; nothing talks to Google or Gemini.
"""

import os

# Must be set before app.database builds its engine
os.environ["DATABASE_URL"] = "sqlite://"

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import Settings
from app.database import Base
from app.errors import AuthExpired
from app.models import User, Certificate  # noqa: F401 - register tables
from app.services.db_service import CertificateStore
from app.services.token_manager import TokenManager
from app.services.types import CandidateMessage, TokenPair


class FakeMailbox:
    """In-memory stand-in for GmailMailbox."""

    def __init__(self, messages=None, valid=True, search_error=None, fetch_errors=None, check_error=None):
        self.messages = {m.id: m for m in (messages or [])}
        self.valid = valid
        self.check_error = check_error
        self.search_error = search_error
        self.fetch_errors = fetch_errors or {}
        self.fetched = []

    def is_token_valid(self):
        if self.check_error:
            raise self.check_error
        return self.valid

    def search_certificates(self):
        if self.search_error:
            raise self.search_error
        return list(self.messages)

    def fetch(self, message_id):
        self.fetched.append(message_id)
        if message_id in self.fetch_errors:
            raise self.fetch_errors[message_id]
        return self.messages[message_id]

    def list_recent(self, limit=5):
        if not self.valid:
            raise AuthExpired()
        return [
            {"id": m.id, "subject": m.subject, "from": m.sender, "date": m.date}
            for m in list(self.messages.values())[:limit]
        ]


class FakeMailboxFactory:
    """Hands out one FakeMailbox and records the token pairs it was asked for."""

    def __init__(self, mailbox):
        self.mailbox = mailbox
        self.tokens = []

    def __call__(self, tokens):
        self.tokens.append(tokens)
        return self.mailbox


def make_message(message_id, subject="Certificate: Python for Everybody",
                 sender="Coursera <no-reply@coursera.org>",
                 date="Mon, 13 Jan 2025 10:00:00 +0000",
                 body="Congratulations! You completed Python for Everybody."):
    return CandidateMessage(id=message_id, subject=subject, sender=sender, date=date, body=body)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """
    Database session bound to the in-memory engine.

    Yields:
        Session: Closed after the test
    """
    session = sessionmaker(bind=engine, autoflush=False, autocommit=False)()
    yield session
    session.close()


@pytest.fixture
def store(db_session):
    return CertificateStore(db_session)


@pytest.fixture
def settings():
    return Settings(
        google_client_id="client-id",
        google_client_secret="client-secret",
        frontend_url="http://frontend.test"
    )


@pytest.fixture
def mailbox():
    return FakeMailbox(messages=[
        make_message("msg-1"),
        make_message(
            "msg-2",
            subject="Your edX certificate is ready",
            sender="certificates@edx.org",
            body="You have completed the course: Introduction to Cloud Computing with AWS.\n"
                 "Download: https://courses.edx.org/certificates/abc123"
        ),
    ])


@pytest.fixture
def mailbox_factory(mailbox):
    return FakeMailboxFactory(mailbox)


@pytest.fixture
def token_manager(settings, mailbox_factory):
    return TokenManager(settings, mailbox_factory)


@pytest.fixture
def user(store):
    """User with a valid access token that expires in an hour."""
    return store.upsert_user(
        email="learner@example.com",
        access_token="access-1",
        refresh_token="refresh-1",
        token_expiry=datetime.now(timezone.utc) + timedelta(hours=1)
    )


@pytest.fixture
def refreshed_pair():
    return TokenPair(
        access_token="access-2",
        refresh_token="refresh-2",
        expiry=datetime.now(timezone.utc) + timedelta(hours=1)
    )
