# campus_parking/routers/alerts.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from campus_parking.database import get_db
from campus_parking.schemas.alert import AlertOut
from campus_parking.services.alert_service import list_alerts, resolve_alert
from typing import Optional

router = APIRouter()


@router.get("/alerts", response_model=list[AlertOut], summary="All alerts, filterable by type")
def get_all_alerts(
    alert_type: Optional[str] = None,
    is_resolved: Optional[int] = None,
    limit: int = 50,
    db: Session = Depends(get_db)
):
    """Filter by alert_type (capacity_warning, urgent_exception, ...) or is_resolved."""
    resolved = None if is_resolved is None else bool(is_resolved)
    return list_alerts(db, resolved=resolved, alert_type=alert_type, limit=limit)


@router.post("/alerts/{alert_id}/resolve", response_model=AlertOut, summary="Mark an alert handled")
def mark_alert_resolved(alert_id: int, db: Session = Depends(get_db)):
    return resolve_alert(db, alert_id)
