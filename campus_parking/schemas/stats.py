# campus_parking/schemas/stats.py
from pydantic import BaseModel
from typing import Optional


class CurrentStats(BaseModel):
    occupied_spots: int
    available_spots: int
    occupancy_rate: float          # percent, 2 decimals
    today_revenue: int
    pending_exceptions: int
    today_sessions: int
    average_duration: int          # minutes, completed sessions today


class HourCount(BaseModel):
    hour: str                      # "HH:00"
    count: int


class ActivityPoint(BaseModel):
    time: str
    vehicles: int
    entries: int
    exits: int


class RevenuePoint(BaseModel):
    date: str                      # YYYY-MM-DD
    revenue: int
    count: int


class TypeShare(BaseModel):
    type: str
    value: int
    percentage: int


class GateShare(BaseModel):
    gate: str
    count: int
    percentage: int


class TopVehicle(BaseModel):
    rank: int
    license_plate: str
    owner_name: Optional[str] = None
    total_sessions: int
    total_duration: int
    average_duration: int


class RevenueBreakdown(BaseModel):
    total: int = 0
    cash: int = 0
    momo: int = 0
    banking: int = 0
    card: int = 0


class ExceptionCounts(BaseModel):
    total: int = 0
    resolved: int = 0
    pending: int = 0


class DailyStatistics(BaseModel):
    """One append-only rollup per calendar day."""

    date: str                      # YYYY-MM-DD
    total_vehicles: int
    registered_vehicles: int
    visitor_vehicles: int
    staff_vehicles: int
    peak_hour: str
    peak_occupancy: int
    average_occupancy: float
    revenue: RevenueBreakdown
    exceptions: ExceptionCounts
    average_parking_duration: int
    turnover_rate: float
