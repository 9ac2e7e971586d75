# campus_parking/services/vehicle_registry.py
"""
Vehicle registry: registered student / staff / visitor vehicles.

Owns every Vehicle record. The session ledger and exception queue only read from it
(find_by_plate, all_vehicles); nothing else mutates vehicles.

Plate uniqueness covers active AND deactivated records: a deactivated vehicle keeps its
plate reserved. "Deleting" a vehicle is a soft flag (is_active=False).
"""

import asyncio
from datetime import datetime
from typing import Callable, Iterable, Optional

from campus_parking.config import settings
from campus_parking.errors import DuplicateResource, NotFound, ValidationError
from campus_parking.schemas.vehicle import Vehicle, VehicleCreate, VehicleType, VehicleUpdate
from campus_parking.services.storage_gateway import KEY_VEHICLES, StorageGateway
from campus_parking.utils.generators import add_months, generate_vehicle_id
from campus_parking.utils.logger import get_logger
from campus_parking.utils.validation import normalize_plate, validate_vehicle_form

logger = get_logger(__name__)

STATUS_FILTERS = ("all", "active", "expired", "inactive")


class VehicleRegistry:
    def __init__(self, storage: StorageGateway, clock: Callable[[], datetime] = datetime.now,
                 default_months: int = settings.DEFAULT_REGISTRATION_MONTHS):
        self._storage = storage
        self._clock = clock
        self._default_months = default_months
        self._vehicles: list[Vehicle] = []
        self._lock = asyncio.Lock()

    # ── Persistence ──────────────────────────────────────────────────────

    def load(self):
        raw = self._storage.load(KEY_VEHICLES, [])
        self._vehicles = [Vehicle.model_validate(item) for item in raw]
        logger.info(f"[REGISTRY] Loaded {len(self._vehicles)} vehicles")

    def _persist(self):
        self._storage.debounced_save(KEY_VEHICLES, [v.model_dump(mode="json") for v in self._vehicles])

    # ── Queries ──────────────────────────────────────────────────────────

    def all_vehicles(self) -> list[Vehicle]:
        return list(self._vehicles)

    def get(self, vehicle_id: str) -> Vehicle:
        for vehicle in self._vehicles:
            if vehicle.id == vehicle_id:
                return vehicle
        raise NotFound(f"Vehicle {vehicle_id} not found")

    def find_by_plate(self, plate: str) -> Optional[Vehicle]:
        """Case- and space-insensitive lookup; returns inactive records too."""
        normalized = normalize_plate(plate)
        if not normalized:
            return None
        for vehicle in self._vehicles:
            if normalize_plate(vehicle.license_plate) == normalized:
                return vehicle
        return None

    def is_duplicate(self, plate: str, exclude_id: Optional[str] = None) -> bool:
        normalized = normalize_plate(plate)
        return any(
            normalize_plate(v.license_plate) == normalized and v.id != exclude_id
            for v in self._vehicles
        )

    def active_count(self) -> int:
        now = self._clock()
        return sum(1 for v in self._vehicles if v.is_active and not v.is_expired(now))

    def expired_count(self) -> int:
        now = self._clock()
        return sum(1 for v in self._vehicles if v.is_expired(now))

    def search(self, query: str = "", vehicle_type: Optional[str] = None,
               status: str = "all", department: Optional[str] = None) -> list[Vehicle]:
        """Filter by free text / type / status / department, most recently updated first."""
        if status not in STATUS_FILTERS:
            raise ValidationError(f"Unknown status filter '{status}'", {"status": status})

        now = self._clock()
        results = list(self._vehicles)

        q = (query or "").strip().lower()
        if q:
            results = [
                v for v in results
                if q in v.license_plate.lower()
                or q in v.owner_name.lower()
                or q in (v.student_id or "").lower()
                or q in (v.staff_id or "").lower()
                or q in (v.email or "").lower()
                or q in v.phone_number
            ]
        if vehicle_type:
            results = [v for v in results if v.type == vehicle_type]
        if status == "active":
            results = [v for v in results if v.is_active and not v.is_expired(now)]
        elif status == "expired":
            results = [v for v in results if v.is_expired(now)]
        elif status == "inactive":
            results = [v for v in results if not v.is_active]
        if department:
            results = [v for v in results if v.department == department]

        results.sort(key=lambda v: v.updated_at, reverse=True)
        return results

    # ── Mutations ────────────────────────────────────────────────────────

    async def register(self, data: VehicleCreate) -> Vehicle:
        """Validate, duplicate-check, assign VH-{REG|STF|VIS}-NNNN and store."""
        async with self._lock:
            now = self._clock()
            form = data.model_dump()
            errors = validate_vehicle_form(form, now)
            if errors:
                first = next(iter(errors.values()))
                logger.warning(f"[REGISTRY] Registration rejected for {data.license_plate}: {errors}")
                raise ValidationError(first, errors)

            if self.is_duplicate(data.license_plate):
                logger.warning(f"[REGISTRY] Duplicate plate {data.license_plate}")
                raise DuplicateResource(f"License plate {normalize_plate(data.license_plate)} is already registered")

            registered = data.registration_date or now
            expiry = data.expiry_date or add_months(registered, self._default_months)
            if expiry <= registered:
                raise ValidationError("Expiry date must be after the registration date",
                                      {"expiry_date": "Expiry date must be after the registration date"})

            vehicle = Vehicle(
                **form | {
                    "license_plate": normalize_plate(data.license_plate),
                    "registration_date": registered,
                    "expiry_date": expiry,
                    "staff_id": data.staff_id.strip().upper() if data.staff_id else None,
                },
                id=generate_vehicle_id(data.type.value, self._ids()),
                created_at=now,
                updated_at=now,
            )
            self._vehicles.append(vehicle)
            self._persist()

        logger.info(f"[REGISTRY] Registered {vehicle.license_plate} as {vehicle.id} ({vehicle.type.value})")
        return vehicle

    async def update(self, vehicle_id: str, changes: VehicleUpdate) -> Vehicle:
        """Edit owner/contact/model fields. A new plate is re-validated and duplicate-checked."""
        async with self._lock:
            vehicle = self.get(vehicle_id)
            patch = changes.model_dump(exclude_unset=True)
            merged = vehicle.model_dump() | patch

            errors = validate_vehicle_form(merged | {"expiry_date": None}, self._clock())
            if errors:
                raise ValidationError(next(iter(errors.values())), errors)

            if "license_plate" in patch:
                if self.is_duplicate(patch["license_plate"], exclude_id=vehicle_id):
                    raise DuplicateResource(
                        f"License plate {normalize_plate(patch['license_plate'])} is already registered"
                    )
                patch["license_plate"] = normalize_plate(patch["license_plate"])

            updated = self._replace(vehicle, **patch)

        logger.info(f"[REGISTRY] Updated {updated.id}: {sorted(patch)}")
        return updated

    async def renew(self, vehicle_id: str, months: int) -> Vehicle:
        """
        Extend the expiry by `months` starting from max(now, current expiry),
        so an already-expired registration restarts from today.
        """
        if months <= 0:
            raise ValidationError("Renewal must be at least one month", {"months": str(months)})
        async with self._lock:
            vehicle = self.get(vehicle_id)
            updated = self._replace(vehicle, expiry_date=self._renewed_expiry(vehicle, months))

        logger.info(f"[REGISTRY] Renewed {updated.license_plate} by {months} month(s) → {updated.expiry_date:%Y-%m-%d}")
        return updated

    async def set_active(self, vehicle_id: str, active: bool) -> Vehicle:
        """Soft toggle. The plate stays reserved either way."""
        async with self._lock:
            vehicle = self.get(vehicle_id)
            updated = self._replace(vehicle, is_active=active)

        logger.info(f"[REGISTRY] {'Activated' if active else 'Deactivated'} {updated.license_plate}")
        return updated

    async def deactivate(self, vehicle_id: str) -> Vehicle:
        return await self.set_active(vehicle_id, False)

    async def bulk_renew(self, vehicle_ids: Iterable[str], months: int) -> int:
        """Renew every id that exists; unknown ids are skipped. Returns the count renewed."""
        if months <= 0:
            raise ValidationError("Renewal must be at least one month", {"months": str(months)})
        renewed = 0
        async with self._lock:
            wanted = set(vehicle_ids)
            for vehicle in list(self._vehicles):
                if vehicle.id in wanted:
                    self._replace(vehicle, expiry_date=self._renewed_expiry(vehicle, months), persist=False)
                    renewed += 1
            self._persist()
        logger.info(f"[REGISTRY] Bulk renewed {renewed} vehicle(s) by {months} month(s)")
        return renewed

    async def bulk_deactivate(self, vehicle_ids: Iterable[str]) -> int:
        deactivated = 0
        async with self._lock:
            wanted = set(vehicle_ids)
            for vehicle in list(self._vehicles):
                if vehicle.id in wanted:
                    self._replace(vehicle, is_active=False, persist=False)
                    deactivated += 1
            self._persist()
        logger.info(f"[REGISTRY] Bulk deactivated {deactivated} vehicle(s)")
        return deactivated

    # ── Helpers ──────────────────────────────────────────────────────────

    def _ids(self) -> list[str]:
        return [v.id for v in self._vehicles]

    def _renewed_expiry(self, vehicle: Vehicle, months: int) -> datetime:
        base = max(self._clock(), vehicle.expiry_date)
        return add_months(base, months)

    def _replace(self, vehicle: Vehicle, persist: bool = True, **changes) -> Vehicle:
        updated = vehicle.model_copy(update=changes | {"updated_at": self._clock()})
        index = self._vehicles.index(vehicle)
        self._vehicles[index] = updated
        if persist:
            self._persist()
        return updated
