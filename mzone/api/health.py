"""
Health and service index endpoints.

Reports configuration presence only; never returns secrets or DB details.
"""

from datetime import datetime, timezone

from fastapi import APIRouter

from mzone.core.database import check_connection, database_configured
from mzone.core.logging import log_event
from mzone.features.payments.service import payments_enabled

SERVICE_NAME = "MZone API"
SERVICE_VERSION = "1.0.0"

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    """Liveness plus configuration presence."""
    if not database_configured():
        database = "Not configured"
    elif check_connection():
        database = "Connected"
    else:
        database = "Unavailable"

    paystack = "Configured" if payments_enabled() else "Not configured"

    log_event("info", "health.check", extra={"database": database, "paystack": paystack})
    return {
        "success": True,
        "message": "MZone backend running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": database,
        "paystack": paystack,
    }


@router.get("/")
def root():
    return {
        "success": True,
        "message": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "endpoints": {
            "auth": ["POST /auth/register", "POST /auth/login", "GET /auth/me"],
            "payment": ["POST /payment/initialize", "GET /payment/verify/:reference", "POST /payment/webhook"],
            "user": ["GET /user/profile"],
            "other": ["GET /plans", "POST /plans/quote", "GET /health"],
        },
    }
