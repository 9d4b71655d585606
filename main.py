import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1.api import api_router
from app.config import get_settings
from app.database import engine, Base
from app.errors import CertSyncError, SyncError
from app.logging_config import setup_logging
from app.models import User, Certificate  # noqa: F401 - register tables

settings = get_settings()
setup_logging(level=settings.log_level, json_logs=settings.json_logs)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Certificate Aggregator",
    description="Collects e-learning certificates from Gmail into one dashboard",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CertSyncError)
async def handle_cert_sync_error(request: Request, exc: CertSyncError):
    """Every domain error becomes {success: false, error: CODE, message}."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.code, exc.details)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception):
    """Anything unclassified still answers with a SYNC_ERROR body."""
    logger.exception("%s %s crashed", request.method, request.url.path)
    return JSONResponse(status_code=500, content=SyncError(details=str(exc)).to_dict())


@app.on_event("startup")
def on_startup():
    """Create database tables on startup."""
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created/verified")


app.include_router(api_router)


@app.get("/")
def health_check():
    return {"status": "ok"}
