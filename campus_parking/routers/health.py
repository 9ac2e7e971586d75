# campus_parking/routers/health.py
"""
System health check endpoint.
Returns status of backend + DB + parking core.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from sqlalchemy import text
from campus_parking.database import get_db
from campus_parking.services.parking_core import ParkingCore, get_core
from datetime import datetime

router = APIRouter()


@router.get("/health", summary="System health check")
def health_check(db: Session = Depends(get_db), core: ParkingCore = Depends(get_core)):
    """
    Returns:
    - Backend status
    - Database connectivity
    - Occupancy, queue length and buffered writes
    """
    result = {
        "status": "ok",
        "timestamp": datetime.now().isoformat(),
        "backend": "ok",
        "database": "unknown",
        "core": {},
    }

    # Check database
    try:
        db.execute(text("SELECT 1"))
        result["database"] = "ok"
    except Exception as e:
        result["database"] = f"error: {str(e)}"
        result["status"] = "degraded"

    result["core"] = {
        "occupied": core.ledger.occupied_count(),
        "available": core.ledger.available_count(),
        "pending_exceptions": core.queue.queue_count(),
        "pending_writes": len(core.storage.pending_keys()),
        "last_sync": core.storage.last_sync(),
    }
    return result
