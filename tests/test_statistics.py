# tests/test_statistics.py
"""Unit tests for the statistics aggregator."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from datetime import date, datetime, timedelta
from campus_parking.errors import ValidationError
from campus_parking.schemas.parking_session import LPRConfidence, PaymentMethod
from campus_parking.schemas.lpr_exception import Direction, ErrorType, ExceptionCreate
from campus_parking.services.statistics import StatisticsAggregator
from campus_parking.services.storage_gateway import StorageGateway
from conftest import START, staff


async def busy_morning(core, clock):
    """
    08:00 visitor 29A-77777 enters at A, leaves 09:30 at B and pays 8000 cash
    08:10 staff 30B-54321 enters at A and stays
    10:00 visitor 51G-88888 enters at C; one low-confidence exception is raised
    """
    visitor = await core.ledger.admit_entry("29A-77777", "A", LPRConfidence.HIGH)
    clock.advance_to(START + timedelta(minutes=10))
    await core.registry.register(staff())
    await core.ledger.admit_entry("30B-54321", "A", LPRConfidence.HIGH)
    clock.advance_to(START + timedelta(minutes=90))
    await core.ledger.complete_exit(visitor.id, "B", LPRConfidence.HIGH)
    await core.ledger.process_payment(visitor.id, PaymentMethod.CASH)
    clock.advance_to(START + timedelta(hours=2))
    await core.ledger.admit_entry("51G-88888", "C", LPRConfidence.MEDIUM)
    await core.queue.create(ExceptionCreate(
        detected_plate="29X-11111", confidence=70, gate="D",
        direction=Direction.ENTRY, error_type=ErrorType.LOW_CONFIDENCE,
    ))


class TestLiveFigures:
    def test_empty_lot(self, core):
        stats = core.stats.current_stats()
        assert stats.occupied_spots == 0
        assert stats.available_spots == 500
        assert stats.average_duration == 0
        assert core.stats.peak_hour_today() == "00:00"

    @pytest.mark.asyncio
    async def test_current_stats(self, core, clock):
        await busy_morning(core, clock)
        stats = core.stats.current_stats()
        assert stats.occupied_spots == 2
        assert stats.available_spots == 498
        assert stats.occupancy_rate == 0.4
        assert stats.today_revenue == 8000
        assert stats.pending_exceptions == 1
        assert stats.today_sessions == 3
        assert stats.average_duration == 90

    @pytest.mark.asyncio
    async def test_peak_hour_and_hourly_occupancy(self, core, clock):
        await busy_morning(core, clock)
        assert core.stats.peak_hour_today() == "08:00"

        hourly = {h.hour: h.count for h in core.stats.occupancy_by_hour()}
        assert len(hourly) == 24
        assert hourly["07:00"] == 0
        assert hourly["08:00"] == 2
        assert hourly["09:00"] == 2
        assert hourly["10:00"] == 2
        assert hourly["11:00"] == 0

    @pytest.mark.asyncio
    async def test_activity_counts_entries_and_exits(self, core, clock):
        await busy_morning(core, clock)
        points = core.stats.activity(hours=3)
        assert [(p.time, p.entries, p.exits) for p in points] == [
            ("08:00", 2, 0), ("09:00", 0, 1), ("10:00", 1, 0),
        ]


class TestRevenueAndDistributions:
    @pytest.mark.asyncio
    async def test_revenue_by_range_and_chart(self, core, clock):
        await busy_morning(core, clock)
        day = datetime(2025, 3, 10)
        assert core.stats.revenue_by_date_range(day, day + timedelta(days=1)) == 8000
        assert core.stats.revenue_by_date_range(day - timedelta(days=2), day) == 0
        with pytest.raises(ValidationError):
            core.stats.revenue_by_date_range(day, day - timedelta(days=1))

        chart = core.stats.revenue_chart(days=2)
        assert [(p.date, p.revenue, p.count) for p in chart] == [("2025-03-09", 0, 0), ("2025-03-10", 8000, 1)]

    @pytest.mark.asyncio
    async def test_type_and_gate_shares(self, core, clock):
        await busy_morning(core, clock)
        types = {t.type: (t.value, t.percentage) for t in core.stats.vehicle_type_distribution()}
        assert types == {"registered_monthly": (0, 0), "registered_staff": (1, 33), "visitor": (2, 67)}

        gates = {g.gate: g.count for g in core.stats.gate_distribution()}
        assert gates == {"A": 2, "B": 0, "C": 1, "D": 0}

    @pytest.mark.asyncio
    async def test_top_vehicles(self, core, clock):
        await busy_morning(core, clock)
        by_duration = core.stats.top_vehicles(limit=2, sort_by="duration")
        assert len(by_duration) == 2
        assert by_duration[0].license_plate == "29A-77777"
        assert by_duration[0].total_duration == 90
        assert by_duration[0].owner_name is None

        by_frequency = core.stats.top_vehicles()
        owners = {v.license_plate: v.owner_name for v in by_frequency}
        assert owners["30B-54321"] == "Tran Thi Binh"

        with pytest.raises(ValidationError):
            core.stats.top_vehicles(sort_by="revenue")

    @pytest.mark.asyncio
    async def test_weekly_comparison_starts_on_sunday(self, core, clock):
        await busy_morning(core, clock)
        week = core.stats.weekly_comparison()
        assert [d["day"] for d in week][:2] == ["Sun", "Mon"]
        assert week[1]["this_week"] == 3
        assert sum(d["last_week"] for d in week) == 0


class TestDailySnapshots:
    @pytest.mark.asyncio
    async def test_snapshot_rollup(self, core, clock):
        await busy_morning(core, clock)
        snapshot = core.stats.record_daily_snapshot(date(2025, 3, 10))

        assert snapshot.date == "2025-03-10"
        assert snapshot.total_vehicles == 3
        assert snapshot.visitor_vehicles == 2
        assert snapshot.staff_vehicles == 1
        assert snapshot.registered_vehicles == 0
        assert snapshot.peak_hour == "08:00"
        assert snapshot.peak_occupancy == 2
        assert snapshot.revenue.total == 8000
        assert snapshot.revenue.cash == 8000
        assert snapshot.exceptions.total == 1
        assert snapshot.exceptions.pending == 1
        assert snapshot.average_parking_duration == 90
        assert snapshot.turnover_rate == 0.01

    @pytest.mark.asyncio
    async def test_snapshot_is_recorded_once_per_day(self, core, clock):
        await busy_morning(core, clock)
        first = core.stats.record_daily_snapshot()
        clock.advance_to(START + timedelta(hours=6))
        await core.ledger.admit_entry("29A-99999", "A", LPRConfidence.HIGH)

        assert core.stats.record_daily_snapshot() == first
        assert len(core.stats.daily_statistics()) == 1
        assert core.stats.average_daily_revenue() == 8000
        assert core.stats.last_30_days_revenue() == 8000
        assert core.stats.occupancy_trend() == "stable"

    @pytest.mark.asyncio
    async def test_snapshots_are_sorted_and_persisted(self, core, session_factory, clock):
        core.stats.record_daily_snapshot(date(2025, 3, 9))
        core.stats.record_daily_snapshot(date(2025, 3, 7))
        core.stats.record_daily_snapshot(date(2025, 3, 8))
        core.storage.flush()

        reloaded = StatisticsAggregator(StorageGateway(session_factory, clock=clock),
                                        core.ledger, core.queue, clock=clock)
        reloaded.load()
        assert [d.date for d in reloaded.daily_statistics()] == ["2025-03-07", "2025-03-08", "2025-03-09"]
