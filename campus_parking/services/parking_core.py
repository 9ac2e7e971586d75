# campus_parking/services/parking_core.py
"""
Wires the parking core together: one storage gateway, one owner per aggregate.

Built once at startup (see main.py) and handed to the routers through the get_core
dependency. Tests build their own instance on an in-memory database.
"""

from datetime import datetime
from typing import Callable, Optional

from pydantic import ValidationError as PydanticValidationError

from campus_parking.config import settings
from campus_parking.errors import NotFound, ValidationError
from campus_parking.schemas.backup import BackupData, BackupSummary
from campus_parking.schemas.lpr_exception import LPRException
from campus_parking.schemas.parking_session import ParkingSession
from campus_parking.schemas.tariff import Tariff
from campus_parking.schemas.vehicle import Vehicle
from campus_parking.services.exception_queue import ExceptionQueue
from campus_parking.services.session_ledger import SessionLedger
from campus_parking.services.statistics import StatisticsAggregator
from campus_parking.services.storage_gateway import (
    KEY_EXCEPTIONS,
    KEY_SESSIONS,
    KEY_SETTINGS,
    KEY_VEHICLES,
    StorageGateway,
)
from campus_parking.services.vehicle_registry import VehicleRegistry
from campus_parking.utils.logger import get_logger

logger = get_logger(__name__)


class ParkingCore:
    def __init__(self, session_factory, tariff: Optional[Tariff] = None,
                 clock: Callable[[], datetime] = datetime.now, **storage_options):
        self.tariff = tariff or Tariff.from_settings(settings)
        self.storage = StorageGateway(session_factory, clock=clock, **storage_options)
        self.registry = VehicleRegistry(self.storage, clock=clock)
        self.ledger = SessionLedger(self.storage, self.registry, tariff=self.tariff,
                                    session_factory=session_factory, clock=clock)
        self.queue = ExceptionQueue(self.storage, self.ledger, self.registry,
                                    session_factory=session_factory, clock=clock)
        self.stats = StatisticsAggregator(self.storage, self.ledger, self.queue, clock=clock)

    def load_all(self):
        """Read every aggregate from storage and record the tariff in force."""
        self.registry.load()
        self.ledger.load()
        self.queue.load()
        self.stats.load()
        self.storage.save(KEY_SETTINGS, self.tariff.model_dump())

    def snapshot(self) -> dict:
        return {
            "vehicles": [v.model_dump(mode="json") for v in self.registry.all_vehicles()],
            "sessions": [s.model_dump(mode="json") for s in self.ledger.all_sessions()],
            "exceptions": [
                e.model_dump(mode="json", exclude={"queue_position"}) for e in self.queue.all_exceptions()
            ],
            "settings": self.tariff.model_dump(),
        }

    def create_backup(self) -> BackupSummary:
        self.storage.flush()
        backup = self.storage.create_backup(self.snapshot())
        return summarize(backup)

    def list_backups(self) -> list[BackupSummary]:
        return [summarize(b) for b in self.storage.list_backups()]

    def restore_backup(self, backup: dict):
        """
        Replace all vehicles, sessions and exceptions with the backup's contents.
        Every record is validated before anything is written.
        """
        try:
            parsed = BackupData.model_validate(backup)
            vehicles = [Vehicle.model_validate(v) for v in parsed.data.vehicles]
            sessions = [ParkingSession.model_validate(s) for s in parsed.data.sessions]
            exceptions = [LPRException.model_validate(e) for e in parsed.data.exceptions]
        except PydanticValidationError as e:
            logger.warning(f"[STORAGE] Rejected malformed backup: {e.error_count()} error(s)")
            raise ValidationError("Backup data is malformed", {"backup": str(e.errors()[0]["msg"])})

        self.storage.save(KEY_VEHICLES, [v.model_dump(mode="json") for v in vehicles])
        self.storage.save(KEY_SESSIONS, [s.model_dump(mode="json") for s in sessions])
        self.storage.save(
            KEY_EXCEPTIONS, [e.model_dump(mode="json", exclude={"queue_position"}) for e in exceptions]
        )
        self.registry.load()
        self.ledger.load()
        self.queue.load()
        logger.info(
            f"[STORAGE] Restored backup {parsed.timestamp}: {len(vehicles)} vehicles, "
            f"{len(sessions)} sessions, {len(exceptions)} exceptions"
        )

    def restore_backup_at(self, timestamp: str):
        for backup in self.storage.list_backups():
            if backup.get("timestamp") == timestamp:
                return self.restore_backup(backup)
        raise NotFound(f"Backup {timestamp} not found")

    async def shutdown(self):
        await self.storage.stop_flush_loop()


def summarize(backup: dict) -> BackupSummary:
    data = backup.get("data", {})
    return BackupSummary(
        timestamp=backup["timestamp"],
        version=backup["version"],
        vehicles=len(data.get("vehicles", [])),
        sessions=len(data.get("sessions", [])),
        exceptions=len(data.get("exceptions", [])),
    )


_core: Optional[ParkingCore] = None


def set_core(core: Optional[ParkingCore]):
    global _core
    _core = core


def get_core() -> ParkingCore:
    """FastAPI dependency: the process-wide core built at startup."""
    if _core is None:
        raise RuntimeError("Parking core is not initialised; the app startup hook has not run")
    return _core
