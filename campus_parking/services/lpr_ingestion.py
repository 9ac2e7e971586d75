# campus_parking/services/lpr_ingestion.py
"""
LPR ingestion adapter: turns gate reader JSON into ledger / queue calls.

Payloads (camelCase or snake_case, optionally wrapped in {"event": {...}}):
  entry / exit:  {type, licensePlate, gate, confidence: 0-100, image?, errorType?}
  exception:     {type: "exception", detectedPlate?, confidence, gate, direction, errorType, image?}

Confidence bands:
  >= 95 high | 80..94 medium | 60..79 low | < 60 failed

Routing:
  failed read, or low read carrying an errorType  → exception queue
  entry                                           → ledger.admit_entry
  exit                                            → close the plate's open session,
                                                    or a low_confidence exit exception if none is open
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from campus_parking.config import settings
from campus_parking.errors import ValidationError
from campus_parking.schemas.lpr_exception import Direction, ErrorType, ExceptionCreate
from campus_parking.schemas.parking_session import LPRConfidence
from campus_parking.services.exception_queue import ExceptionQueue
from campus_parking.services.session_ledger import SessionLedger
from campus_parking.utils.json_parser import get_field, get_nested, safe_parse_json
from campus_parking.utils.logger import get_logger
from campus_parking.utils.validation import normalize_plate

logger = get_logger(__name__)

EVENT_KINDS = ("entry", "exit", "exception")


@dataclass
class ParsedLprEvent:
    kind: str                          # entry | exit | exception
    gate: str
    score: int                         # raw reader confidence 0-100
    confidence: LPRConfidence          # banded score
    direction: Direction
    plate: Optional[str] = None        # normalized; None when nothing was read
    error_type: Optional[ErrorType] = None
    image: str = ""
    received_at: Optional[datetime] = None


def band_confidence(score: int) -> LPRConfidence:
    if score >= settings.LPR_HIGH_THRESHOLD:
        return LPRConfidence.HIGH
    if score >= settings.LPR_MEDIUM_THRESHOLD:
        return LPRConfidence.MEDIUM
    if score >= settings.LPR_LOW_THRESHOLD:
        return LPRConfidence.LOW
    return LPRConfidence.FAILED


def parse_lpr_event(raw_body: bytes) -> ParsedLprEvent:
    """Parse one reader payload. Raises ValidationError on anything malformed."""
    data = safe_parse_json(raw_body)
    if data is None:
        raise ValidationError("LPR payload is not a JSON object")
    data = get_nested(data, "event", default=data)
    if not isinstance(data, dict):
        raise ValidationError("LPR payload 'event' must be an object")

    kind = str(get_field(data, "type", "")).lower()
    if kind not in EVENT_KINDS:
        raise ValidationError(f"Unknown LPR event type '{kind}'", {"type": f"must be one of {', '.join(EVENT_KINDS)}"})

    gate = get_field(data, "gate")
    if not gate:
        raise ValidationError("LPR event has no gate", {"gate": "required"})

    try:
        score = int(round(float(get_field(data, "confidence", 0))))
    except (TypeError, ValueError):
        raise ValidationError("LPR confidence must be a number", {"confidence": "not a number"})
    if not 0 <= score <= 100:
        raise ValidationError("LPR confidence must be between 0 and 100", {"confidence": str(score)})

    raw_direction = get_field(data, "direction") if kind == "exception" else kind
    try:
        direction = Direction(raw_direction)
    except ValueError:
        raise ValidationError(f"Unknown direction '{raw_direction}'", {"direction": "must be entry or exit"})

    raw_error = get_field(data, "errorType")
    try:
        error_type = ErrorType(raw_error) if raw_error else None
    except ValueError:
        raise ValidationError(f"Unknown error type '{raw_error}'", {"error_type": str(raw_error)})
    if kind == "exception" and error_type is None:
        raise ValidationError("Exception events need an errorType", {"error_type": "required"})

    plate_key = "detectedPlate" if kind == "exception" else "licensePlate"
    plate = normalize_plate(get_field(data, plate_key)) or None

    return ParsedLprEvent(
        kind=kind,
        gate=str(gate).upper(),
        score=score,
        confidence=band_confidence(score),
        direction=direction,
        plate=plate,
        error_type=error_type,
        image=get_field(data, "image") or "",
        received_at=datetime.now(),
    )


async def dispatch_lpr_event(event: ParsedLprEvent, ledger: SessionLedger, queue: ExceptionQueue) -> dict:
    """Route a parsed read to the session ledger or the exception queue."""
    if _needs_review(event):
        error_type = event.error_type or (
            ErrorType.NO_DETECTION if not event.plate else ErrorType.LOW_CONFIDENCE
        )
        return await _to_queue(event, queue, error_type)

    if event.direction == Direction.ENTRY:
        session = await ledger.admit_entry(event.plate, event.gate, event.confidence, image=event.image or None)
        logger.info(f"[LPR] Entry {event.plate} at gate {event.gate} ({event.score}%) → {session.id}")
        return {"status": "ok", "routed_to": "session", "session_id": session.id}

    open_session = ledger.open_session_for_plate(event.plate)
    if open_session is None:
        logger.warning(f"[LPR] Exit read {event.plate} at gate {event.gate} has no open session")
        return await _to_queue(event, queue, ErrorType.LOW_CONFIDENCE)

    session = await ledger.complete_exit(open_session.id, event.gate, event.confidence, image=event.image or None)
    logger.info(f"[LPR] Exit {event.plate} at gate {event.gate} ({event.score}%) → {session.id} fee={session.fee}")
    return {"status": "ok", "routed_to": "session", "session_id": session.id}


def _needs_review(event: ParsedLprEvent) -> bool:
    if event.kind == "exception" or not event.plate:
        return True
    if event.confidence == LPRConfidence.FAILED:
        return True
    return event.confidence == LPRConfidence.LOW and event.error_type is not None


async def _to_queue(event: ParsedLprEvent, queue: ExceptionQueue, error_type: ErrorType) -> dict:
    exception = await queue.create(ExceptionCreate(
        detected_plate=event.plate,
        confidence=event.score,
        gate=event.gate,
        direction=event.direction,
        error_type=error_type,
        image=event.image,
    ))
    logger.info(f"[LPR] {event.kind} read at gate {event.gate} ({event.score}%) queued as {exception.id}")
    return {
        "status": "ok",
        "routed_to": "exception",
        "exception_id": exception.id,
        "priority": exception.priority.value,
    }
