# campus_parking/services/seed_data.py
"""
Deterministic demo data.

Everything is produced through the real service operations (register, admit_entry,
complete_exit, process_payment, create / resolve / escalate) on a core whose clock is
a SimulatedClock, so the same seed always yields the same records.
"""

import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from campus_parking.errors import CapacityExceeded, DuplicateResource
from campus_parking.schemas.lpr_exception import (
    Direction,
    ErrorType,
    ExceptionCreate,
    ResolutionMethod,
    ResolveAction,
    ResolveRequest,
)
from campus_parking.schemas.parking_session import LPRConfidence, PaymentMethod, PaymentStatus
from campus_parking.schemas.vehicle import VehicleCreate, VehicleType
from campus_parking.services.parking_core import ParkingCore
from campus_parking.utils.generators import start_of_day
from campus_parking.utils.logger import get_logger

logger = get_logger(__name__)

HANOI_CODES = ["29", "30", "31", "32", "33", "40"]
PHONE_PREFIXES = ["091", "094", "088", "086", "096", "097", "098", "032", "033", "034", "035", "036", "037", "038", "039"]
FAMILY_NAMES = ["Nguyen", "Tran", "Le", "Pham", "Hoang", "Huynh", "Phan", "Vu", "Vo", "Dang", "Bui", "Do"]
MIDDLE_NAMES = ["Van", "Thi", "Duc", "Minh", "Thanh", "Ngoc", "Quang", "Huu"]
GIVEN_NAMES = ["An", "Binh", "Chi", "Dung", "Giang", "Hai", "Hoa", "Khanh", "Linh", "Nam", "Phuong", "Tuan"]
DEPARTMENTS = [
    "Mechanical Engineering", "Electrical Engineering", "Information Technology", "Economics",
    "Foreign Languages", "Training Office", "Administration", "Finance", "Library", "Dormitory",
]
MODELS = ["Honda Wave", "Honda Vision", "Honda Air Blade", "Yamaha Sirius", "Yamaha Exciter",
          "Suzuki Raider", "SYM Attila", "Piaggio Liberty", "VinFast Klara", "Yadea Xmen"]
COLORS = ["Black", "White", "Red", "Blue", "Silver", "Yellow"]
PAID_METHODS = [PaymentMethod.CASH, PaymentMethod.MOMO, PaymentMethod.BANKING, PaymentMethod.CARD]
FAILURES = [ErrorType.NO_DETECTION, ErrorType.LOW_CONFIDENCE, ErrorType.DAMAGED_PLATE,
            ErrorType.OBSCURED, ErrorType.SYSTEM_ERROR]


class SimulatedClock:
    """Callable clock the seeder moves forward event by event."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance_to(self, when: datetime):
        if when > self.now:
            self.now = when


@dataclass
class SeedSummary:
    vehicles: int = 0
    sessions: int = 0
    exceptions: int = 0
    snapshots: int = 0


class SeedGenerator:
    def __init__(self, core: ParkingCore, clock: SimulatedClock, seed: int = 42):
        self.core = core
        self.clock = clock
        self.rng = random.Random(seed)

    # ── Random values ────────────────────────────────────────────────────

    def plate(self) -> str:
        code = self.rng.choice(HANOI_CODES)
        letter = chr(65 + self.rng.randrange(26))
        suffix = "1" if letter == "A" else ""
        return f"{code}{letter}{suffix}-{self.rng.randint(10000, 99999)}"

    def name(self) -> str:
        return f"{self.rng.choice(FAMILY_NAMES)} {self.rng.choice(MIDDLE_NAMES)} {self.rng.choice(GIVEN_NAMES)}"

    def phone(self) -> str:
        return f"{self.rng.choice(PHONE_PREFIXES)}{self.rng.randint(1000000, 9999999)}"

    def score(self) -> int:
        return self.rng.choices([self.rng.randint(95, 100), self.rng.randint(80, 94)], weights=[80, 20])[0]

    # ── Steps ────────────────────────────────────────────────────────────

    async def seed_vehicles(self, count: int) -> list[str]:
        plates = []
        while len(plates) < count:
            is_student = len(plates) < count * 2 // 3
            owner = self.name()
            data = VehicleCreate(
                license_plate=self.plate(),
                type=VehicleType.REGISTERED_MONTHLY if is_student else VehicleType.REGISTERED_STAFF,
                owner_name=owner,
                phone_number=self.phone(),
                email=f"{owner.split()[-1].lower()}{self.rng.randint(100, 999)}@haui.edu.vn",
                student_id=f"{self.rng.randint(2020, 2024)}{self.rng.randint(10000, 99999)}" if is_student else None,
                staff_id=f"{self.rng.choice(['GV', 'NV'])}-{self.rng.randint(1000, 9999)}" if not is_student else None,
                department=None if is_student else self.rng.choice(DEPARTMENTS),
                registration_date=self.clock() - timedelta(days=self.rng.randint(0, 120)),
                vehicle_model=self.rng.choice(MODELS),
                color=self.rng.choice(COLORS),
            )
            try:
                vehicle = await self.core.registry.register(data)
            except DuplicateResource:
                continue
            plates.append(vehicle.license_plate)
        return plates

    def plan_day(self, day: datetime, registered: list[str], visits: int, exceptions: int) -> list[tuple]:
        """Timeline of (when, order, ref, kind, payload) for one day, business hours 07:00-20:00."""
        events = []
        for i in range(visits):
            use_registered = registered and self.rng.random() < 0.6
            plate = self.rng.choice(registered) if use_registered else self.plate()
            entry = day + timedelta(hours=7, minutes=self.rng.randrange(13 * 60))
            stay = min(timedelta(minutes=self.rng.randint(15, 9 * 60)), day + timedelta(hours=23) - entry)
            gate_in, gate_out = self.rng.choice(self.core.ledger.gates), self.rng.choice(self.core.ledger.gates)
            events.append((entry, 0, i, "entry", (plate, gate_in, self.score())))
            events.append((entry + stay, 1, i, "exit", (plate, gate_out, self.score())))
        for i in range(exceptions):
            when = day + timedelta(hours=7, minutes=self.rng.randrange(13 * 60))
            events.append((when, 2, visits + i, "exception", self.rng.choice(FAILURES)))
        return sorted(events)

    async def play(self, events: list[tuple], until: datetime, registered: list[str], summary: SeedSummary):
        open_ids: dict[int, str] = {}
        for when, _, ref, kind, payload in events:
            if when > until:
                break
            self.clock.advance_to(when)
            if kind == "entry":
                plate, gate, score = payload
                if self.core.ledger.open_session_for_plate(plate):
                    continue
                try:
                    session = await self.core.ledger.admit_entry(plate, gate, _band(score))
                except CapacityExceeded:
                    continue
                open_ids[ref] = session.id
                summary.sessions += 1
            elif kind == "exit":
                session_id = open_ids.pop(ref, None)
                if session_id is None:
                    continue
                plate, gate, score = payload
                session = await self.core.ledger.complete_exit(session_id, gate, _band(score))
                if session.payment_status == PaymentStatus.UNPAID and self.rng.random() < 0.9:
                    await self.core.ledger.process_payment(session.id, self.rng.choice(PAID_METHODS))
            else:
                await self.seed_exception(payload, registered)
                summary.exceptions += 1

    async def seed_exception(self, error_type: ErrorType, registered: list[str]):
        truth = self.rng.choice(registered) if registered and self.rng.random() < 0.5 else self.plate()
        garbled: Optional[str] = None
        if error_type != ErrorType.NO_DETECTION and self.rng.random() < 0.7:
            garbled = truth[:2] + "X" + truth[3:]
        confidence = 0 if error_type == ErrorType.NO_DETECTION else self.rng.randint(10, 75)
        exception = await self.core.queue.create(ExceptionCreate(
            detected_plate=garbled,
            confidence=confidence,
            gate=self.rng.choice(self.core.ledger.gates),
            direction=Direction.ENTRY,
            error_type=error_type,
        ))

        roll = self.rng.random()
        if roll < 0.1:
            await self.core.queue.escalate(exception.id, "Plate unreadable on all frames")
        elif roll < 0.75:
            allow = self.rng.random() < 0.7 and not self.core.ledger.open_session_for_plate(truth)
            await self.core.queue.resolve(exception.id, ResolveRequest(
                resolved_plate=truth,
                method=self.rng.choice([ResolutionMethod.MANUAL_INPUT, ResolutionMethod.IMAGE_ENHANCEMENT,
                                        ResolutionMethod.VIDEO_REVIEW]) if allow else ResolutionMethod.DENIED_ENTRY,
                action=ResolveAction.ALLOW if allow else ResolveAction.DENY,
            ))


def _band(score: int) -> LPRConfidence:
    return LPRConfidence.HIGH if score >= 95 else LPRConfidence.MEDIUM


async def seed_core(core: ParkingCore, clock: SimulatedClock, seed: int = 42, vehicles: int = 60,
                    days: int = 7, visits_per_day: int = 40, exceptions_per_day: int = 4,
                    until: Optional[datetime] = None) -> SeedSummary:
    """
    Fill `core` with `days` days of activity ending at `until` (default: the clock's
    start + days). Completed days get a daily snapshot.
    """
    generator = SeedGenerator(core, clock, seed)
    summary = SeedSummary()
    first_day = start_of_day(clock())
    until = until or first_day + timedelta(days=days)

    registered = await generator.seed_vehicles(vehicles)
    summary.vehicles = len(registered)

    for offset in range(days):
        day = first_day + timedelta(days=offset)
        if day > until:
            break
        events = generator.plan_day(day, registered, visits_per_day, exceptions_per_day)
        await generator.play(events, until, registered, summary)
        day_end = day + timedelta(days=1)
        if day_end <= until:
            clock.advance_to(day_end - timedelta(seconds=1))
            core.stats.record_daily_snapshot(day.date())
            summary.snapshots += 1

    clock.advance_to(until)
    core.storage.flush()
    logger.info(
        f"[SEED] seed={seed}: {summary.vehicles} vehicles, {summary.sessions} sessions, "
        f"{summary.exceptions} exceptions, {summary.snapshots} snapshots"
    )
    return summary
