# campus_parking/services/session_ledger.py
"""
Session ledger: one ParkingSession per vehicle stay, entry → exit → payment.

State per session:
  OPEN (exit_time is None) → CLOSED (exit_time set), never re-opened.
  Payment is a separate axis: unpaid → paid, or exempted from the start.

Every OPEN session holds one spot; admit_entry refuses once occupied == total_spots.
Non-visitor vehicles (active registration found in the registry) are always exempted
with fee 0. Visitors pay first hour + each started extra hour, or the flat overnight
rate.
"""

import asyncio
import math
from datetime import datetime
from typing import Callable, Optional

from campus_parking.config import settings
from campus_parking.errors import (
    AlreadyClosed,
    AlreadyPaid,
    CapacityExceeded,
    NotFound,
    PaymentExempted,
    ValidationError,
)
from campus_parking.schemas.parking_session import (
    LPRConfidence,
    ParkingSession,
    PaymentMethod,
    PaymentStatus,
)
from campus_parking.schemas.tariff import Tariff
from campus_parking.schemas.vehicle import VehicleType
from campus_parking.services.alert_service import create_alert
from campus_parking.services.storage_gateway import KEY_SESSIONS, StorageGateway
from campus_parking.services.vehicle_registry import VehicleRegistry
from campus_parking.utils.generators import (
    calculate_duration,
    generate_session_id,
    is_overnight_parking,
    start_of_day,
)
from campus_parking.utils.logger import get_logger
from campus_parking.utils.validation import normalize_plate

logger = get_logger(__name__)


def calculate_fee(entry_time: datetime, exit_time: datetime, vehicle_type: VehicleType, tariff: Tariff) -> int:
    """Pure fee rule. Non-visitors pay nothing; overnight is a flat rate; hours round up."""
    if vehicle_type != VehicleType.VISITOR:
        return 0

    if is_overnight_parking(entry_time, exit_time, tariff.overnight_start_hour, tariff.overnight_end_hour):
        return tariff.overnight

    hours = math.ceil(calculate_duration(entry_time, exit_time) / 60)
    return tariff.first_hour + max(0, hours - 1) * tariff.additional_hour


class SessionLedger:
    def __init__(
        self,
        storage: StorageGateway,
        registry: VehicleRegistry,
        tariff: Optional[Tariff] = None,
        session_factory=None,
        gates: Optional[list[str]] = None,
        low_capacity_warning: int = settings.LOW_CAPACITY_WARNING,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._storage = storage
        self._registry = registry
        self.tariff = tariff or Tariff.from_settings(settings)
        self._session_factory = session_factory
        self._gates = gates or list(settings.GATES)
        self._low_capacity_warning = low_capacity_warning
        self._clock = clock
        self._sessions: list[ParkingSession] = []
        self._lock = asyncio.Lock()

    @property
    def gates(self) -> list[str]:
        return list(self._gates)

    @property
    def registry(self) -> VehicleRegistry:
        return self._registry

    # ── Persistence ──────────────────────────────────────────────────────

    def load(self):
        raw = self._storage.load(KEY_SESSIONS, [])
        self._sessions = [ParkingSession.model_validate(item) for item in raw]
        logger.info(f"[LEDGER] Loaded {len(self._sessions)} sessions ({self.occupied_count()} open)")

    def _persist(self):
        self._storage.debounced_save(KEY_SESSIONS, [s.model_dump(mode="json") for s in self._sessions])

    # ── Queries ──────────────────────────────────────────────────────────

    def all_sessions(self) -> list[ParkingSession]:
        return list(self._sessions)

    def get(self, session_id: str) -> ParkingSession:
        for session in self._sessions:
            if session.id == session_id:
                return session
        raise NotFound(f"Parking session {session_id} not found")

    def current_sessions(self) -> list[ParkingSession]:
        """Open sessions, newest entry first."""
        return sorted((s for s in self._sessions if s.is_open), key=lambda s: s.entry_time, reverse=True)

    def history_sessions(self) -> list[ParkingSession]:
        """Closed sessions, newest exit first."""
        return sorted((s for s in self._sessions if not s.is_open), key=lambda s: s.exit_time, reverse=True)

    def occupied_count(self) -> int:
        return sum(1 for s in self._sessions if s.is_open)

    def available_count(self) -> int:
        return self.tariff.total_spots - self.occupied_count()

    def occupancy_rate(self) -> float:
        """Percent of spots in use."""
        return self.occupied_count() / self.tariff.total_spots * 100

    def today_sessions(self) -> list[ParkingSession]:
        midnight = start_of_day(self._clock())
        return [s for s in self._sessions if s.entry_time >= midnight]

    def today_revenue(self) -> int:
        midnight = start_of_day(self._clock())
        return sum(
            s.fee for s in self._sessions
            if s.payment_status == PaymentStatus.PAID and s.payment_time and s.payment_time >= midnight
        )

    def sessions_by_plate(self, plate: str) -> list[ParkingSession]:
        normalized = normalize_plate(plate)
        matches = [s for s in self._sessions if normalize_plate(s.license_plate) == normalized]
        return sorted(matches, key=lambda s: s.entry_time, reverse=True)

    def open_session_for_plate(self, plate: str) -> Optional[ParkingSession]:
        """Most recent OPEN session for the plate, if any."""
        for session in self.sessions_by_plate(plate):
            if session.is_open:
                return session
        return None

    def sessions_by_date_range(self, start: datetime, end: datetime) -> list[ParkingSession]:
        matches = [s for s in self._sessions if start <= s.entry_time <= end]
        return sorted(matches, key=lambda s: s.entry_time, reverse=True)

    def search(self, query: str) -> list[ParkingSession]:
        q = query.strip().lower()
        return [s for s in self._sessions if q in s.license_plate.lower() or q in s.id.lower()]

    # ── Mutations ────────────────────────────────────────────────────────

    async def admit_entry(
        self,
        license_plate: str,
        gate: str,
        confidence: LPRConfidence,
        image: Optional[str] = None,
        operator: Optional[str] = None,
    ) -> ParkingSession:
        """
        Open a session for `license_plate` at `gate`.
        Refuses when the lot is full. Active registrations keep their type (exempted);
        anything else is a visitor (unpaid).
        """
        plate = normalize_plate(license_plate)
        if not plate:
            raise ValidationError("License plate is required", {"license_plate": "required"})
        self.check_gate(gate)
        confidence = LPRConfidence(confidence)

        async with self._lock:
            available = self.available_count()
            if available <= 0:
                logger.warning(f"[LEDGER] Entry refused for {plate} at gate {gate}: lot full")
                raise CapacityExceeded("Parking lot is full, entry not allowed")

            vehicle = self._registry.find_by_plate(plate)
            if vehicle and vehicle.is_active:
                vehicle_type, vehicle_id = vehicle.type, vehicle.id
            else:
                vehicle_type, vehicle_id = VehicleType.VISITOR, None

            now = self._clock()
            session = ParkingSession(
                id=generate_session_id(now, (s.id for s in self._sessions)),
                vehicle_id=vehicle_id,
                license_plate=plate,
                vehicle_type=vehicle_type,
                entry_time=now,
                entry_gate=gate,
                entry_image=image,
                entry_confidence=confidence,
                entry_operator=operator,
                fee=0,
                payment_status=self._initial_payment_status(vehicle_type),
                is_overnight=False,
                is_exception=confidence == LPRConfidence.FAILED,
            )
            self._sessions.insert(0, session)
            self._persist()

        logger.info(f"[LEDGER] ENTRY {session.id} | Plate={plate} | Gate={gate} | Type={vehicle_type.value}")

        if available - 1 <= self._low_capacity_warning:
            await self._alert(
                "capacity_warning", gate, session.id,
                f"Only {available - 1} spot(s) left after entry of {plate}",
            )
        return session

    async def complete_exit(
        self,
        session_id: str,
        gate: str,
        confidence: LPRConfidence,
        image: Optional[str] = None,
    ) -> ParkingSession:
        """Close an OPEN session: duration, overnight flag, fee and payment status."""
        self.check_gate(gate)
        confidence = LPRConfidence(confidence)

        async with self._lock:
            session = self.get(session_id)
            if not session.is_open:
                raise AlreadyClosed(f"Parking session {session_id} has already ended")

            now = max(self._clock(), session.entry_time)
            duration = calculate_duration(session.entry_time, now)
            updated = self._replace(
                session,
                exit_time=now,
                exit_gate=gate,
                exit_image=image,
                exit_confidence=confidence,
                parking_duration=duration,
                is_overnight=is_overnight_parking(
                    session.entry_time, now,
                    self.tariff.overnight_start_hour, self.tariff.overnight_end_hour,
                ),
                fee=calculate_fee(session.entry_time, now, session.vehicle_type, self.tariff),
                payment_status=self._initial_payment_status(session.vehicle_type),
                is_exception=session.is_exception or confidence == LPRConfidence.FAILED,
            )

        logger.info(
            f"[LEDGER] EXIT {updated.id} | Plate={updated.license_plate} | Gate={gate} | "
            f"{duration // 60}h{duration % 60}m | Fee={updated.fee}"
        )
        return updated

    async def process_payment(self, session_id: str, method: PaymentMethod) -> ParkingSession:
        """unpaid → paid. Paid and exempted sessions are refused."""
        method = PaymentMethod(method)
        async with self._lock:
            session = self.get(session_id)
            if session.payment_status == PaymentStatus.PAID:
                raise AlreadyPaid(f"Parking session {session_id} is already paid")
            if session.payment_status == PaymentStatus.EXEMPTED:
                raise PaymentExempted(f"Parking session {session_id} is exempt from payment")

            updated = self._replace(
                session,
                payment_status=PaymentStatus.PAID,
                payment_method=method,
                payment_time=self._clock(),
            )

        logger.info(f"[LEDGER] PAID {updated.id} | {updated.fee} VND via {method.value}")
        return updated

    # ── Helpers ──────────────────────────────────────────────────────────

    def check_gate(self, gate: str):
        if gate not in self._gates:
            raise ValidationError(f"Unknown gate '{gate}'", {"gate": f"must be one of {', '.join(self._gates)}"})

    @staticmethod
    def _initial_payment_status(vehicle_type: VehicleType) -> PaymentStatus:
        return PaymentStatus.UNPAID if vehicle_type == VehicleType.VISITOR else PaymentStatus.EXEMPTED

    def _replace(self, session: ParkingSession, **changes) -> ParkingSession:
        updated = session.model_copy(update=changes)
        self._sessions[self._sessions.index(session)] = updated
        self._persist()
        return updated

    async def _alert(self, alert_type: str, gate: Optional[str], reference_id: Optional[str], description: str):
        if self._session_factory is None:
            logger.warning(f"[ALERT][{alert_type.upper()}] {description}")
            return
        with self._session_factory() as db:
            await create_alert(db, alert_type, gate, reference_id, description)
