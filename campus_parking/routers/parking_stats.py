# campus_parking/routers/parking_stats.py
"""Statistics: live occupancy, revenue, distributions and daily rollups"""

from fastapi import APIRouter, Depends
from datetime import date, datetime
from typing import Optional

from campus_parking.schemas.stats import (
    ActivityPoint,
    CurrentStats,
    DailyStatistics,
    GateShare,
    HourCount,
    RevenuePoint,
    TopVehicle,
    TypeShare,
)
from campus_parking.services.parking_core import ParkingCore, get_core

router = APIRouter()


@router.get("/stats/current", response_model=CurrentStats, summary="Live dashboard figures")
def current_stats(core: ParkingCore = Depends(get_core)):
    return core.stats.current_stats()


@router.get("/stats/peak-hour", summary="Busiest entry hour today")
def peak_hour(core: ParkingCore = Depends(get_core)):
    return {"peak_hour": core.stats.peak_hour_today()}


@router.get("/stats/occupancy-by-hour", response_model=list[HourCount], summary="Vehicles parked per hour")
def occupancy_by_hour(target_date: Optional[date] = None, core: ParkingCore = Depends(get_core)):
    day = datetime.combine(target_date, datetime.min.time()) if target_date else None
    return core.stats.occupancy_by_hour(day)


@router.get("/stats/activity", response_model=list[ActivityPoint], summary="Entries / exits per hour")
def activity(hours: int = 24, core: ParkingCore = Depends(get_core)):
    return core.stats.activity(hours)


@router.get("/stats/revenue", summary="Paid revenue for sessions entering in a date range")
def revenue(start: datetime, end: datetime, core: ParkingCore = Depends(get_core)):
    return {"start": start, "end": end, "revenue": core.stats.revenue_by_date_range(start, end)}


@router.get("/stats/revenue-chart", response_model=list[RevenuePoint], summary="Revenue per day")
def revenue_chart(days: int = 30, core: ParkingCore = Depends(get_core)):
    return core.stats.revenue_chart(days)


@router.get("/stats/vehicle-types", response_model=list[TypeShare], summary="Today's sessions by vehicle type")
def vehicle_types(core: ParkingCore = Depends(get_core)):
    return core.stats.vehicle_type_distribution()


@router.get("/stats/gates", response_model=list[GateShare], summary="Today's entries by gate")
def gates(core: ParkingCore = Depends(get_core)):
    return core.stats.gate_distribution()


@router.get("/stats/top-vehicles", response_model=list[TopVehicle], summary="Most frequent / longest parkers")
def top_vehicles(limit: int = 10, sort_by: str = "frequency", core: ParkingCore = Depends(get_core)):
    """sort_by: frequency | duration"""
    return core.stats.top_vehicles(limit, sort_by)


@router.get("/stats/weekly", summary="Entries per weekday, this week vs last")
def weekly(core: ParkingCore = Depends(get_core)):
    return core.stats.weekly_comparison()


@router.get("/stats/daily", response_model=list[DailyStatistics], summary="Recorded daily rollups")
def daily(core: ParkingCore = Depends(get_core)):
    return core.stats.daily_statistics()


@router.post("/stats/daily", response_model=DailyStatistics, summary="Record today's (or a given day's) rollup")
def record_daily(target_date: Optional[date] = None, core: ParkingCore = Depends(get_core)):
    return core.stats.record_daily_snapshot(target_date)


@router.get("/stats/summary", summary="30-day revenue and occupancy trend")
def summary(core: ParkingCore = Depends(get_core)):
    return {
        "last_30_days_revenue": core.stats.last_30_days_revenue(),
        "average_daily_revenue": core.stats.average_daily_revenue(),
        "occupancy_trend": core.stats.occupancy_trend(),
    }
