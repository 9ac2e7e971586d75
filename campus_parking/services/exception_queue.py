# campus_parking/services/exception_queue.py
"""
Exception queue: LPR reads the ledger could not act on directly.

State per exception:
  PENDING → RESOLVED   (terminal)
  PENDING → ESCALATED  (terminal)
Only notes may change once an exception has left PENDING.

Priority is fixed at creation (first match wins):
  1. confidence < URGENT_CONFIDENCE_BELOW or system_error  → urgent
  2. no_detection or no detected plate                     → high
  3. confidence < MEDIUM_CONFIDENCE_BELOW                  → medium
  4. otherwise                                             → low

Resolution with action=allow drives the session ledger (entry: admit, exit: close the
plate's open session). The exception is marked resolved BEFORE the ledger call and is
not rolled back if that call fails; the failure surfaces as CrossAggregateInconsistency
and an alert.
"""

import asyncio
from datetime import datetime
from typing import Callable, Optional

from campus_parking.config import settings
from campus_parking.errors import (
    AlreadyResolved,
    CrossAggregateInconsistency,
    NotFound,
    NotPending,
    ParkingError,
    ValidationError,
)
from campus_parking.schemas.lpr_exception import (
    PRIORITY_RANK,
    Direction,
    ErrorType,
    ExceptionCreate,
    ExceptionStatus,
    LPRException,
    Priority,
    ResolutionOutcome,
    ResolveAction,
    ResolveRequest,
    SimilarPlate,
)
from campus_parking.schemas.parking_session import LPRConfidence, ParkingSession
from campus_parking.services.alert_service import create_alert
from campus_parking.services.session_ledger import SessionLedger
from campus_parking.services.storage_gateway import KEY_EXCEPTIONS, StorageGateway
from campus_parking.services.vehicle_registry import VehicleRegistry
from campus_parking.utils.generators import generate_exception_id
from campus_parking.utils.logger import get_logger
from campus_parking.utils.validation import levenshtein_distance, normalize_plate, validate_license_plate

logger = get_logger(__name__)

MAX_SUGGESTION_DISTANCE = 3
MIN_SUGGESTION_QUERY = 3


def compute_priority(confidence: int, error_type: ErrorType, detected_plate: Optional[str]) -> Priority:
    if confidence < settings.URGENT_CONFIDENCE_BELOW or error_type == ErrorType.SYSTEM_ERROR:
        return Priority.URGENT
    if error_type == ErrorType.NO_DETECTION or not detected_plate:
        return Priority.HIGH
    if confidence < settings.MEDIUM_CONFIDENCE_BELOW:
        return Priority.MEDIUM
    return Priority.LOW


class ExceptionQueue:
    def __init__(
        self,
        storage: StorageGateway,
        ledger: SessionLedger,
        registry: VehicleRegistry,
        session_factory=None,
        default_operator: str = settings.DEFAULT_OPERATOR,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._storage = storage
        self._ledger = ledger
        self._registry = registry
        self._session_factory = session_factory
        self._default_operator = default_operator
        self._clock = clock
        self._exceptions: list[LPRException] = []
        self._lock = asyncio.Lock()

    # ── Persistence ──────────────────────────────────────────────────────

    def load(self):
        raw = self._storage.load(KEY_EXCEPTIONS, [])
        self._exceptions = [LPRException.model_validate(item) for item in raw]
        logger.info(f"[QUEUE] Loaded {len(self._exceptions)} exceptions ({self.queue_count()} pending)")

    def _persist(self):
        self._storage.debounced_save(
            KEY_EXCEPTIONS,
            [e.model_dump(mode="json", exclude={"queue_position"}) for e in self._exceptions],
        )

    # ── Queries ──────────────────────────────────────────────────────────

    def all_exceptions(self) -> list[LPRException]:
        return list(self._exceptions)

    def get(self, exception_id: str) -> LPRException:
        for exception in self._exceptions:
            if exception.id == exception_id:
                return exception
        raise NotFound(f"Exception {exception_id} not found")

    def list_pending(self, priority: Optional[Priority] = None, gate: Optional[str] = None) -> list[LPRException]:
        """
        Pending exceptions, filtered, then ordered urgent → low and oldest first.
        queue_position is the 1-based rank in this view only.
        """
        pending = [e for e in self._exceptions if e.status == ExceptionStatus.PENDING]
        if priority:
            pending = [e for e in pending if e.priority == priority]
        if gate:
            pending = [e for e in pending if e.gate == gate]

        pending.sort(key=lambda e: (PRIORITY_RANK[e.priority], e.timestamp))
        return [e.model_copy(update={"queue_position": i}) for i, e in enumerate(pending, start=1)]

    def resolved(self) -> list[LPRException]:
        """Resolved exceptions, most recent resolution first."""
        done = [e for e in self._exceptions if e.status == ExceptionStatus.RESOLVED]
        return sorted(done, key=lambda e: e.resolved_at or e.timestamp, reverse=True)

    def escalated(self) -> list[LPRException]:
        up = [e for e in self._exceptions if e.status == ExceptionStatus.ESCALATED]
        return sorted(up, key=lambda e: e.timestamp, reverse=True)

    def queue_count(self) -> int:
        return sum(1 for e in self._exceptions if e.status == ExceptionStatus.PENDING)

    def urgent_count(self) -> int:
        return sum(
            1 for e in self._exceptions
            if e.status == ExceptionStatus.PENDING and e.priority == Priority.URGENT
        )

    def suggest_similar_plates(self, partial_plate: str, max_results: int = 5) -> list[SimilarPlate]:
        """Registered plates within edit distance 3 of the query, closest first."""
        if not partial_plate or len(partial_plate) < MIN_SUGGESTION_QUERY:
            return []

        cleaned = normalize_plate(partial_plate)
        suggestions = []
        for vehicle in self._registry.all_vehicles():
            candidate = normalize_plate(vehicle.license_plate)
            distance = levenshtein_distance(cleaned, candidate)
            if distance > MAX_SUGGESTION_DISTANCE:
                continue
            confidence = max(0, round((1 - distance / max(len(cleaned), len(candidate))) * 100))
            suggestions.append(SimilarPlate(
                plate=vehicle.license_plate,
                owner_name=vehicle.owner_name,
                vehicle_type=vehicle.type,
                distance=distance,
                confidence=confidence,
            ))

        suggestions.sort(key=lambda s: (s.distance, -s.confidence))
        return suggestions[:max_results]

    def plate_history(self, plate: str) -> list[ParkingSession]:
        return self._ledger.sessions_by_plate(plate)

    # ── Mutations ────────────────────────────────────────────────────────

    async def create(self, data: ExceptionCreate) -> LPRException:
        self._ledger.check_gate(data.gate)
        detected = normalize_plate(data.detected_plate) or None
        priority = compute_priority(data.confidence, data.error_type, detected)

        async with self._lock:
            now = self._clock()
            exception = LPRException(
                id=generate_exception_id(now, (e.id for e in self._exceptions)),
                timestamp=now,
                gate=data.gate,
                direction=data.direction,
                raw_image=data.image,
                detected_plate=detected,
                confidence=data.confidence,
                error_type=data.error_type,
                priority=priority,
            )
            self._exceptions.insert(0, exception)
            self._persist()

        logger.info(
            f"[QUEUE] New {priority.value} exception {exception.id} | Gate={data.gate} | "
            f"{data.direction.value} | {data.error_type.value} ({data.confidence}%)"
        )
        if priority == Priority.URGENT:
            await self._alert(
                "urgent_exception", data.gate, exception.id,
                f"Urgent LPR exception at gate {data.gate}: {data.error_type.value} ({data.confidence}%)",
            )
        return exception

    async def resolve(self, exception_id: str, request: ResolveRequest) -> ResolutionOutcome:
        """
        PENDING → RESOLVED, then apply the action to the ledger.
        Raises CrossAggregateInconsistency when the ledger call fails; the exception
        stays resolved in that case.
        """
        async with self._lock:
            exception = self.get(exception_id)
            if exception.status == ExceptionStatus.RESOLVED:
                raise AlreadyResolved(f"Exception {exception_id} has already been resolved")
            if exception.status != ExceptionStatus.PENDING:
                raise NotPending(f"Exception {exception_id} is {exception.status.value}, not pending")

            error = validate_license_plate(request.resolved_plate)
            if error:
                raise ValidationError(error, {"resolved_plate": error})

            operator = exception.resolved_by or request.operator or self._default_operator
            resolved = self._replace(
                exception,
                status=ExceptionStatus.RESOLVED,
                resolved_plate=normalize_plate(request.resolved_plate),
                resolved_by=operator,
                resolved_at=self._clock(),
                resolution_method=request.method,
                resolution_notes=request.notes,
            )

        logger.info(
            f"[QUEUE] Resolved {resolved.id} as {resolved.resolved_plate} "
            f"({request.action.value}, {request.method.value}) by {operator}"
        )

        if request.action == ResolveAction.DENY:
            return ResolutionOutcome(exception=resolved)

        try:
            session = await self._apply_allow(resolved, operator)
        except ParkingError as e:
            logger.error(
                f"[QUEUE] Exception {resolved.id} resolved but session update failed: {e.message}",
                exc_info=True,
            )
            await self._alert(
                "cross_aggregate_inconsistency", resolved.gate, resolved.id,
                f"Exception {resolved.id} resolved but session update failed: {e.message}",
            )
            raise CrossAggregateInconsistency(
                f"Exception {resolved.id} was resolved but the session could not be updated: {e.message}",
                exception_id=resolved.id,
                cause=e,
            ) from e

        if session is None:
            warning = f"No open session for {resolved.resolved_plate}; nothing to close"
            logger.warning(f"[QUEUE] {warning} ({resolved.id})")
            return ResolutionOutcome(exception=resolved, warning=warning)

        async with self._lock:
            resolved = self._replace(self.get(resolved.id), session_id=session.id)
        return ResolutionOutcome(exception=resolved, session=session)

    async def escalate(self, exception_id: str, reason: str) -> LPRException:
        async with self._lock:
            exception = self.get(exception_id)
            if exception.status != ExceptionStatus.PENDING:
                raise NotPending(f"Exception {exception_id} is {exception.status.value}, not pending")
            escalated = self._replace(exception, status=ExceptionStatus.ESCALATED, resolution_notes=reason)

        logger.info(f"[QUEUE] Escalated {escalated.id}: {reason}")
        await self._alert(
            "escalated_exception", escalated.gate, escalated.id,
            f"Exception {escalated.id} escalated: {reason}",
        )
        return escalated

    async def assign(self, exception_id: str, operator: str) -> LPRException:
        async with self._lock:
            exception = self._pending_or_raise(exception_id)
            assigned = self._replace(exception, resolved_by=operator)
        logger.info(f"[QUEUE] Assigned {assigned.id} to {operator}")
        return assigned

    async def update_priority(self, exception_id: str, priority: Priority) -> LPRException:
        """Manual override by an operator."""
        async with self._lock:
            exception = self._pending_or_raise(exception_id)
            updated = self._replace(exception, priority=Priority(priority))
        logger.info(f"[QUEUE] Priority of {updated.id} set to {updated.priority.value}")
        return updated

    async def add_notes(self, exception_id: str, notes: str) -> LPRException:
        """Allowed in every state."""
        async with self._lock:
            exception = self.get(exception_id)
            existing = exception.resolution_notes
            combined = f"{existing}\n{notes}" if existing else notes
            updated = self._replace(exception, resolution_notes=combined)
        logger.info(f"[QUEUE] Notes added to {updated.id}")
        return updated

    # ── Helpers ──────────────────────────────────────────────────────────

    async def _apply_allow(self, exception: LPRException, operator: str) -> Optional[ParkingSession]:
        plate = exception.resolved_plate
        if exception.direction == Direction.ENTRY:
            return await self._ledger.admit_entry(
                plate, exception.gate, LPRConfidence.HIGH,
                image=exception.raw_image or None, operator=operator,
            )

        open_session = self._ledger.open_session_for_plate(plate)
        if open_session is None:
            return None
        return await self._ledger.complete_exit(
            open_session.id, exception.gate, LPRConfidence.HIGH, image=exception.raw_image or None,
        )

    def _pending_or_raise(self, exception_id: str) -> LPRException:
        exception = self.get(exception_id)
        if exception.status != ExceptionStatus.PENDING:
            raise NotPending(f"Exception {exception_id} is {exception.status.value}, not pending")
        return exception

    def _replace(self, exception: LPRException, **changes) -> LPRException:
        updated = exception.model_copy(update=changes)
        self._exceptions[self._exceptions.index(exception)] = updated
        self._persist()
        return updated

    async def _alert(self, alert_type: str, gate: Optional[str], reference_id: Optional[str], description: str):
        if self._session_factory is None:
            logger.warning(f"[ALERT][{alert_type.upper()}] {description}")
            return
        with self._session_factory() as db:
            await create_alert(db, alert_type, gate, reference_id, description)
