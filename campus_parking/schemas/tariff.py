# campus_parking/schemas/tariff.py
from pydantic import BaseModel

from campus_parking.config import Settings


class Tariff(BaseModel):
    """Capacity and pricing the session ledger bills against. Fixed per process."""

    total_spots: int = 500
    first_hour: int = 5000
    additional_hour: int = 3000
    overnight: int = 20000
    monthly_student: int = 100000
    monthly_staff: int = 0
    overnight_start_hour: int = 23
    overnight_end_hour: int = 5

    @classmethod
    def from_settings(cls, settings: Settings) -> "Tariff":
        return cls(**settings.TARIFF)
