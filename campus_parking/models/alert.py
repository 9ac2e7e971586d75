# campus_parking/models/alert.py
"""
Alerts table: operator notices raised by the parking core.
Types: capacity_warning | urgent_exception | escalated_exception | cross_aggregate_inconsistency
"""

from sqlalchemy import Column, Integer, String, DateTime, Text
from campus_parking.database import Base


class Alert(Base):
    __tablename__ = "alerts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    alert_type = Column(String(50), nullable=False, index=True)
    gate = Column(String(5))
    reference_id = Column(String(50), index=True)   # Session or exception id the alert is about
    description = Column(Text)
    is_resolved = Column(Integer, default=0, nullable=False)
    triggered_at = Column(DateTime, nullable=False, index=True)
    resolved_at = Column(DateTime)

    def __repr__(self):
        return f"<Alert {self.id} type={self.alert_type} ref={self.reference_id} resolved={self.is_resolved}>"
