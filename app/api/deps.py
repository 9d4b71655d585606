"""
FastAPI dependency providers.

Long-lived collaborators (token manager, mailbox factory, enricher, OAuth
service) are built once per process; the store and the sync service are
built per request around the request's database session. Tests swap any of
them through app.dependency_overrides.
"""

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.database import get_db
from app.services.db_service import CertificateStore
from app.services.gemini_enricher import build_enricher
from app.services.gmail_service import gmail_mailbox_factory
from app.services.oauth_service import OAuthService
from app.services.sync_service import CertificateSyncService
from app.services.token_manager import TokenManager


@lru_cache
def get_mailbox_factory():
    return gmail_mailbox_factory(get_settings())


@lru_cache
def get_token_manager() -> TokenManager:
    return TokenManager(get_settings(), get_mailbox_factory())


@lru_cache
def get_enricher():
    return build_enricher(get_settings())


@lru_cache
def get_oauth_service() -> OAuthService:
    return OAuthService(get_settings())


def get_store(db: Session = Depends(get_db)) -> CertificateStore:
    return CertificateStore(db)


def get_sync_service(
    store: CertificateStore = Depends(get_store),
    token_manager: TokenManager = Depends(get_token_manager),
    mailbox_factory=Depends(get_mailbox_factory),
    enricher=Depends(get_enricher),
    settings: Settings = Depends(get_settings)
) -> CertificateSyncService:
    return CertificateSyncService(
        store=store,
        token_manager=token_manager,
        mailbox_factory=mailbox_factory,
        enricher=enricher,
        max_messages=settings.sync_max_messages,
        results_sample_size=settings.results_sample_size
    )
