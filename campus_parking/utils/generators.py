# campus_parking/utils/generators.py
"""
Identifier generation and time arithmetic shared by the core services.

Identifier formats:
  Vehicle    VH-{REG|STF|VIS}-NNNN   (per-prefix sequence)
  Session    SS-YYYYMMDD-NNNNN       (per-day sequence)
  Exception  EX-YYYYMM-NNNN          (per-month sequence)
"""

import calendar
import math
from datetime import datetime, timedelta
from typing import Iterable

VEHICLE_TYPE_PREFIX = {
    "registered_monthly": "REG",
    "registered_staff": "STF",
    "visitor": "VIS",
}


def _next_sequence(prefix: str, existing_ids: Iterable[str]) -> int:
    numbers = []
    for existing in existing_ids:
        if existing.startswith(prefix):
            suffix = existing[len(prefix):]
            if suffix.isdigit():
                numbers.append(int(suffix))
    return max(numbers) + 1 if numbers else 1


def generate_vehicle_id(vehicle_type: str, existing_ids: Iterable[str]) -> str:
    prefix = f"VH-{VEHICLE_TYPE_PREFIX[vehicle_type]}-"
    return f"{prefix}{_next_sequence(prefix, existing_ids):04d}"


def generate_session_id(when: datetime, existing_ids: Iterable[str]) -> str:
    prefix = f"SS-{format_date_compact(when)}-"
    return f"{prefix}{_next_sequence(prefix, existing_ids):05d}"


def generate_exception_id(when: datetime, existing_ids: Iterable[str]) -> str:
    prefix = f"EX-{when.year}{when.month:02d}-"
    return f"{prefix}{_next_sequence(prefix, existing_ids):04d}"


def format_date_compact(when: datetime) -> str:
    return when.strftime("%Y%m%d")


def calculate_duration(entry_time: datetime, exit_time: datetime) -> int:
    """Whole minutes parked, rounded down."""
    return math.floor((exit_time - entry_time).total_seconds() / 60)


def is_overnight_parking(entry_time: datetime, exit_time: datetime,
                         start_hour: int = 23, end_hour: int = 5) -> bool:
    """
    Overnight when the stay lasts at least 24h, or when it enters at/after `start_hour`
    and leaves at/after `end_hour` (crossed the late-night window).
    """
    if exit_time - entry_time >= timedelta(days=1):
        return True
    return entry_time.hour >= start_hour and exit_time.hour >= end_hour


def add_months(when: datetime, months: int) -> datetime:
    """Calendar month arithmetic; the day is clamped to the target month's length."""
    month_index = when.month - 1 + months
    year = when.year + month_index // 12
    month = month_index % 12 + 1
    day = min(when.day, calendar.monthrange(year, month)[1])
    return when.replace(year=year, month=month, day=day)


def start_of_day(when: datetime) -> datetime:
    return when.replace(hour=0, minute=0, second=0, microsecond=0)


def hour_label(hour: int) -> str:
    return f"{hour:02d}:00"
