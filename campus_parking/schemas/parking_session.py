# campus_parking/schemas/parking_session.py
from enum import Enum
from pydantic import BaseModel
from datetime import datetime
from typing import Optional

from campus_parking.schemas.vehicle import VehicleType


class LPRConfidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    FAILED = "failed"


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    EXEMPTED = "exempted"


class PaymentMethod(str, Enum):
    CASH = "cash"
    MOMO = "momo"
    BANKING = "banking"
    CARD = "card"
    FREE = "free"


class ParkingSession(BaseModel):
    id: str
    vehicle_id: Optional[str] = None      # None for visitors / unregistered plates
    license_plate: str
    vehicle_type: VehicleType             # snapshot at entry

    entry_time: datetime
    entry_gate: str
    entry_image: Optional[str] = None
    entry_confidence: LPRConfidence
    entry_operator: Optional[str] = None  # set when admitted through exception resolution

    exit_time: Optional[datetime] = None
    exit_gate: Optional[str] = None
    exit_image: Optional[str] = None
    exit_confidence: Optional[LPRConfidence] = None

    parking_duration: Optional[int] = None   # minutes, set on exit
    fee: int = 0
    payment_status: PaymentStatus
    payment_method: Optional[PaymentMethod] = None
    payment_time: Optional[datetime] = None

    is_overnight: bool = False
    is_exception: bool = False
    notes: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.exit_time is None


class EntryRequest(BaseModel):
    license_plate: str
    gate: str
    confidence: LPRConfidence = LPRConfidence.HIGH
    image: Optional[str] = None


class ExitRequest(BaseModel):
    gate: str
    confidence: LPRConfidence = LPRConfidence.HIGH
    image: Optional[str] = None


class PaymentRequest(BaseModel):
    method: PaymentMethod
