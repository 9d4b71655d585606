"""
Gmail sync and dashboard endpoints for certificates.

Card View: platform, course_name, skills, issue_date, download_link
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from datetime import date, datetime
from typing import Optional

from app.api.deps import get_sync_service
from app.services.sync_service import CertificateSyncService


router = APIRouter(prefix="/gmail", tags=["Certificates"])


# ============ Request / Response Schemas ============

class SyncRequest(BaseModel):
    email: Optional[str] = None


class CertificateCardResponse(BaseModel):
    """Certificate data for a dashboard card."""
    id: int
    platform: str
    course_name: str
    skills: str
    issue_date: Optional[date]
    download_link: Optional[str]
    created_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class CertificateUser(BaseModel):
    id: int
    email: str


class CertificateListResponse(BaseModel):
    success: bool = True
    user: CertificateUser
    certificates: list[CertificateCardResponse]
    total: int
    platforms: dict[str, int]


# ============ Endpoints ============

@router.post("/sync")
def sync_certificates(
    body: SyncRequest,
    service: CertificateSyncService = Depends(get_sync_service)
):
    """
    Scan the user's inbox for certificate emails and store new ones.

    Safe to call repeatedly: already-stored messages are counted as duplicates.
    """
    result = service.sync(body.email)
    return result.to_dict()


@router.get("/certificates", response_model=CertificateListResponse)
def list_certificates(
    email: Optional[str] = None,
    service: CertificateSyncService = Depends(get_sync_service)
):
    """Get all stored certificates for a user, newest first."""
    listing = service.get_certificates(email)

    return CertificateListResponse(
        user=CertificateUser(id=listing.user.id, email=listing.user.email),
        certificates=[CertificateCardResponse.model_validate(c) for c in listing.certificates],
        total=len(listing.certificates),
        platforms=listing.platform_summary
    )


@router.get("/stats")
def certificate_stats(
    email: Optional[str] = None,
    service: CertificateSyncService = Depends(get_sync_service)
):
    """Dashboard statistics: totals, platforms, recent count, skills."""
    stats = service.get_stats(email)
    return {"success": True, "stats": stats}


@router.get("/test")
def test_gmail_connection(
    email: Optional[str] = None,
    service: CertificateSyncService = Depends(get_sync_service)
):
    """Verify the stored token works and list a few recent messages."""
    return service.test_connection(email)
