"""
System health check endpoint.
Returns status of backend + DB + IoT Hub ingestion listener.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from sqlalchemy import text
from iot_presence.database import get_db
from iot_presence.schemas.ingestion import HealthOut
from datetime import datetime

router = APIRouter()

# Listener states that mean ingestion is not running although it should be
DEGRADED_STATES = {"backoff", "failed"}


@router.get("/health", response_model=HealthOut, summary="System health check")
def health_check(request: Request, db: Session = Depends(get_db)):
    """
    Returns:
    - Backend status
    - Database connectivity
    - Ingestion listener state, retry counter and event counters
    """
    result = {
        "status": "ok",
        "timestamp": datetime.utcnow(),
        "backend": "ok",
        "database": "unknown",
        "ingestion": None,
    }

    # Check database
    try:
        db.execute(text("SELECT 1"))
        result["database"] = "ok"
    except Exception as e:
        result["database"] = f"error: {str(e)}"
        result["status"] = "degraded"

    listener = getattr(request.app.state, "listener", None)
    if listener is not None:
        snapshot = listener.snapshot()
        result["ingestion"] = snapshot
        if snapshot["state"] in DEGRADED_STATES:
            result["status"] = "degraded"

    return result
