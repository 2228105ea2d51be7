"""Health & Readiness Probes — liveness and readiness endpoints for container orchestration.

Invariants:
    - GET /health/ always returns 200 if process is up (liveness)
    - GET /health/ready returns 503 if the ledger gateway is disconnected (readiness)
"""

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from trustlend.api.dependencies import get_lending_service
from trustlend.services.lending_service import LendingService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/health", tags=["health"])


@router.get("/", status_code=status.HTTP_200_OK)
async def health_check():
    """Basic liveness probe. Returns 200 if the process is up."""
    return {
        "status": "healthy",
        "service": "trustlend-api",
        "version": "0.1.0",
    }


@router.get("/ready")
async def readiness_check(service: LendingService = Depends(get_lending_service)):
    """Readiness probe — includes ledger connectivity and scheduler backlog."""
    if not service.ledger.is_connected:
        logger.warning("Readiness check failed: ledger disconnected")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "not_ready",
                "reason": "ledger_unavailable",
            },
        )
    return {
        "status": "ready",
        "checks": {"ledger": "connected"},
        "pending_repayments": len(service.scheduler.pending_entries()),
    }
