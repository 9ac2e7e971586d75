# campus_parking/services/alert_service.py
"""
Shared alert creation service.
Used by the session ledger (capacity_warning) and the exception queue
(urgent_exception, escalated_exception, cross_aggregate_inconsistency).
"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from campus_parking.errors import NotFound
from campus_parking.models.alert import Alert
from campus_parking.utils.logger import get_logger

logger = get_logger(__name__)


async def create_alert(db: Session, alert_type: str, gate: Optional[str],
                       reference_id: Optional[str], description: str):
    """Create and persist an alert record. Always commits immediately."""
    db.add(Alert(alert_type=alert_type, gate=gate, reference_id=reference_id,
                 description=description, is_resolved=0, triggered_at=datetime.now()))
    db.commit()
    logger.warning(f"[ALERT][{alert_type.upper()}] {description}")


def list_alerts(db: Session, resolved: Optional[bool] = None, alert_type: Optional[str] = None,
                limit: int = 50) -> list[Alert]:
    query = db.query(Alert)
    if resolved is not None:
        query = query.filter(Alert.is_resolved == int(resolved))
    if alert_type:
        query = query.filter(Alert.alert_type == alert_type)
    return query.order_by(Alert.triggered_at.desc()).limit(limit).all()


def resolve_alert(db: Session, alert_id: int) -> Alert:
    alert = db.query(Alert).filter(Alert.id == alert_id).first()
    if not alert:
        raise NotFound(f"Alert {alert_id} not found")
    if not alert.is_resolved:
        alert.is_resolved = 1
        alert.resolved_at = datetime.now()
        db.commit()
        db.refresh(alert)
    return alert
