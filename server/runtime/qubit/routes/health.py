"""
Qubit Message Service - Health Check Routes

Provides health check endpoints for monitoring.
"""

import logging
from datetime import datetime

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from qubit.errors import StoreError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("")
async def health_check():
    """Basic health check endpoint"""
    return {
        "status": "healthy",
        "service": "qubit-message-service",
        "timestamp": datetime.utcnow().isoformat(),
    }


@router.get("/live")
async def liveness():
    """Liveness check - indicates service is running"""
    return {
        "status": "alive",
        "timestamp": datetime.utcnow().isoformat(),
    }


@router.get("/ready")
def readiness(request: Request):
    """Readiness check - service wired up and the message store answering"""
    service = getattr(request.app.state, "message_service", None)
    if service is None:
        return JSONResponse(status_code=503, content={"status": "starting"})

    try:
        pending = service.count_pending()
    except StoreError as e:
        logger.warning(f"Readiness check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "unavailable", "error": str(e)})

    return {
        "status": "ready",
        "pendingMessages": pending,
        "timestamp": datetime.utcnow().isoformat(),
    }
