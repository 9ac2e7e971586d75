# campus_parking/schemas/lpr_exception.py
from enum import Enum
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional

from campus_parking.schemas.parking_session import ParkingSession
from campus_parking.schemas.vehicle import VehicleType


class Direction(str, Enum):
    ENTRY = "entry"
    EXIT = "exit"


class ErrorType(str, Enum):
    NO_DETECTION = "no_detection"
    LOW_CONFIDENCE = "low_confidence"
    DAMAGED_PLATE = "damaged_plate"
    OBSCURED = "obscured"
    SYSTEM_ERROR = "system_error"


class ExceptionStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    ESCALATED = "escalated"


class ResolutionMethod(str, Enum):
    MANUAL_INPUT = "manual_input"
    IMAGE_ENHANCEMENT = "image_enhancement"
    VIDEO_REVIEW = "video_review"
    DENIED_ENTRY = "denied_entry"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class ResolveAction(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


# Queue order: urgent first
PRIORITY_RANK = {Priority.URGENT: 0, Priority.HIGH: 1, Priority.MEDIUM: 2, Priority.LOW: 3}


class LPRException(BaseModel):
    id: str
    session_id: Optional[str] = None
    timestamp: datetime
    gate: str
    direction: Direction

    raw_image: str = ""
    processed_image: Optional[str] = None
    detected_plate: Optional[str] = None   # raw OCR guess, possibly garbled
    confidence: int = Field(ge=0, le=100)
    error_type: ErrorType

    status: ExceptionStatus = ExceptionStatus.PENDING
    resolved_plate: Optional[str] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolution_method: Optional[ResolutionMethod] = None
    resolution_notes: Optional[str] = None

    priority: Priority
    queue_position: Optional[int] = None   # view-time rank, never persisted


class ExceptionCreate(BaseModel):
    detected_plate: Optional[str] = None
    confidence: int = Field(ge=0, le=100)
    gate: str
    direction: Direction
    error_type: ErrorType
    image: str = ""


class ResolveRequest(BaseModel):
    resolved_plate: str
    method: ResolutionMethod
    action: ResolveAction
    notes: Optional[str] = None
    operator: Optional[str] = None


class EscalateRequest(BaseModel):
    reason: str


class AssignRequest(BaseModel):
    operator: str


class PriorityUpdate(BaseModel):
    priority: Priority


class NotesUpdate(BaseModel):
    notes: str


class SimilarPlate(BaseModel):
    plate: str
    owner_name: str
    vehicle_type: VehicleType
    distance: int
    confidence: int


class ResolutionOutcome(BaseModel):
    exception: LPRException
    session: Optional[ParkingSession] = None
    warning: Optional[str] = None    # soft failure, e.g. exit with no open session
