# campus_parking/services/statistics.py
"""
Statistics aggregator: read-only rollups over the session ledger and exception queue.

Everything is computed on demand. The only state it owns is the daily snapshot list
(one DailyStatistics per calendar day, append-only) stored under the `stats` key.
"""

from collections import Counter
from datetime import date, datetime, timedelta
from typing import Callable, Optional

from campus_parking.errors import ValidationError
from campus_parking.schemas.lpr_exception import ExceptionStatus
from campus_parking.schemas.parking_session import PaymentMethod, PaymentStatus
from campus_parking.schemas.stats import (
    ActivityPoint,
    CurrentStats,
    DailyStatistics,
    ExceptionCounts,
    GateShare,
    HourCount,
    RevenueBreakdown,
    RevenuePoint,
    TopVehicle,
    TypeShare,
)
from campus_parking.schemas.vehicle import VehicleType
from campus_parking.services.exception_queue import ExceptionQueue
from campus_parking.services.session_ledger import SessionLedger
from campus_parking.services.storage_gateway import KEY_STATS, StorageGateway
from campus_parking.utils.generators import hour_label, start_of_day
from campus_parking.utils.logger import get_logger

logger = get_logger(__name__)

SORT_BY = ("frequency", "duration")
WEEKDAYS = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")


def _percent(part: int, total: int) -> int:
    return round(part / (total or 1) * 100)


class StatisticsAggregator:
    def __init__(
        self,
        storage: StorageGateway,
        ledger: SessionLedger,
        queue: ExceptionQueue,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._storage = storage
        self._ledger = ledger
        self._queue = queue
        self._clock = clock
        self._daily: list[DailyStatistics] = []

    def load(self):
        raw = self._storage.load(KEY_STATS, [])
        self._daily = [DailyStatistics.model_validate(item) for item in raw]
        logger.info(f"[STATS] Loaded {len(self._daily)} daily snapshot(s)")

    # ── Live figures ─────────────────────────────────────────────────────

    def current_stats(self) -> CurrentStats:
        today = self._ledger.today_sessions()
        completed = [s for s in today if not s.is_open]
        total_duration = sum(s.parking_duration or 0 for s in completed)

        return CurrentStats(
            occupied_spots=self._ledger.occupied_count(),
            available_spots=self._ledger.available_count(),
            occupancy_rate=round(self._ledger.occupancy_rate(), 2),
            today_revenue=self._ledger.today_revenue(),
            pending_exceptions=self._queue.queue_count(),
            today_sessions=len(today),
            average_duration=round(total_duration / len(completed)) if completed else 0,
        )

    def peak_hour_today(self) -> str:
        """Entry hour with the most of today's sessions; the earliest hour wins a tie."""
        counts = Counter(s.entry_time.hour for s in self._ledger.today_sessions())
        peak, best = 0, 0
        for hour in sorted(counts):
            if counts[hour] > best:
                peak, best = hour, counts[hour]
        return hour_label(peak)

    def occupancy_by_hour(self, day: Optional[datetime] = None) -> list[HourCount]:
        """Vehicles parked at any point during each hour of `day`. Open sessions run until now."""
        midnight = start_of_day(day or self._clock())
        now = self._clock()
        sessions = self._ledger.all_sessions()

        result = []
        for h in range(24):
            hour_start = midnight + timedelta(hours=h)
            hour_end = hour_start + timedelta(hours=1)
            count = sum(
                1 for s in sessions
                if s.entry_time < hour_end and (s.exit_time or now) >= hour_start
            )
            result.append(HourCount(hour=hour_label(h), count=count))
        return result

    def activity(self, hours: int = 24) -> list[ActivityPoint]:
        """Entries and exits per hour over the last `hours` hours, oldest first."""
        current_hour = self._clock().replace(minute=0, second=0, microsecond=0)
        sessions = self._ledger.all_sessions()

        points = []
        for i in range(hours - 1, -1, -1):
            hour_start = current_hour - timedelta(hours=i)
            hour_end = hour_start + timedelta(hours=1)
            entries = sum(1 for s in sessions if hour_start <= s.entry_time < hour_end)
            exits = sum(1 for s in sessions if s.exit_time and hour_start <= s.exit_time < hour_end)
            points.append(ActivityPoint(
                time=hour_label(hour_start.hour), vehicles=entries + exits, entries=entries, exits=exits,
            ))
        return points

    # ── Revenue ──────────────────────────────────────────────────────────

    def revenue_by_date_range(self, start: datetime, end: datetime) -> int:
        """Paid fees of sessions that entered within [start, end]."""
        if end < start:
            raise ValidationError("End date must not be before start date", {"end": "before start"})
        sessions = self._ledger.sessions_by_date_range(start, end)
        return sum(s.fee for s in sessions if s.payment_status == PaymentStatus.PAID)

    def revenue_chart(self, days: int = 30) -> list[RevenuePoint]:
        """Revenue per payment day for the last `days` days, oldest first."""
        today = start_of_day(self._clock())
        sessions = self._ledger.all_sessions()

        points = []
        for i in range(days - 1, -1, -1):
            day_start = today - timedelta(days=i)
            day_end = day_start + timedelta(days=1)
            paid = [s for s in sessions if s.payment_time and day_start <= s.payment_time < day_end]
            points.append(RevenuePoint(
                date=day_start.strftime("%Y-%m-%d"), revenue=sum(s.fee for s in paid), count=len(paid),
            ))
        return points

    # ── Distributions ────────────────────────────────────────────────────

    def vehicle_type_distribution(self) -> list[TypeShare]:
        today = self._ledger.today_sessions()
        counts = Counter(s.vehicle_type for s in today)
        return [
            TypeShare(type=t.value, value=counts[t], percentage=_percent(counts[t], len(today)))
            for t in VehicleType
        ]

    def gate_distribution(self) -> list[GateShare]:
        today = self._ledger.today_sessions()
        counts = Counter(s.entry_gate for s in today)
        return [
            GateShare(gate=gate, count=counts[gate], percentage=_percent(counts[gate], len(today)))
            for gate in self._ledger.gates
        ]

    def top_vehicles(self, limit: int = 10, sort_by: str = "frequency") -> list[TopVehicle]:
        if sort_by not in SORT_BY:
            raise ValidationError(f"Unknown sort '{sort_by}'", {"sort_by": f"must be one of {', '.join(SORT_BY)}"})

        per_plate: dict[str, dict] = {}
        for s in self._ledger.all_sessions():
            entry = per_plate.setdefault(s.license_plate, {"sessions": 0, "duration": 0})
            entry["sessions"] += 1
            entry["duration"] += s.parking_duration or 0

        metric = "sessions" if sort_by == "frequency" else "duration"
        ranked = sorted(per_plate.items(), key=lambda item: item[1][metric], reverse=True)[:limit]

        top = []
        for rank, (plate, totals) in enumerate(ranked, start=1):
            vehicle = self._ledger.registry.find_by_plate(plate)
            top.append(TopVehicle(
                rank=rank,
                license_plate=plate,
                owner_name=vehicle.owner_name if vehicle else None,
                total_sessions=totals["sessions"],
                total_duration=totals["duration"],
                average_duration=round(totals["duration"] / totals["sessions"]),
            ))
        return top

    def weekly_comparison(self) -> list[dict]:
        """Entries per weekday, this week against last week (weeks start on Sunday)."""
        today = start_of_day(self._clock())
        week_start = today - timedelta(days=(today.weekday() + 1) % 7)
        sessions = self._ledger.all_sessions()

        def entries_on(day_start: datetime) -> int:
            day_end = day_start + timedelta(days=1)
            return sum(1 for s in sessions if day_start <= s.entry_time < day_end)

        return [
            {
                "day": WEEKDAYS[i],
                "this_week": entries_on(week_start + timedelta(days=i)),
                "last_week": entries_on(week_start + timedelta(days=i - 7)),
            }
            for i in range(7)
        ]

    # ── Daily rollup ─────────────────────────────────────────────────────

    def daily_statistics(self) -> list[DailyStatistics]:
        return list(self._daily)

    def record_daily_snapshot(self, day: Optional[date] = None) -> DailyStatistics:
        """Append the rollup for `day` (default today). A day already recorded is returned unchanged."""
        day = day or self._clock().date()
        key = day.isoformat()
        for existing in self._daily:
            if existing.date == key:
                return existing

        snapshot = self._build_snapshot(datetime.combine(day, datetime.min.time()))
        self._daily.append(snapshot)
        self._daily.sort(key=lambda d: d.date)
        self._storage.debounced_save(KEY_STATS, [d.model_dump(mode="json") for d in self._daily])
        logger.info(f"[STATS] Recorded snapshot for {key}: {snapshot.total_vehicles} vehicles, {snapshot.revenue.total} VND")
        return snapshot

    def last_30_days_revenue(self) -> int:
        return sum(d.revenue.total for d in self._daily[-30:])

    def average_daily_revenue(self) -> int:
        recent = self._daily[-30:]
        if not recent:
            return 0
        return round(sum(d.revenue.total for d in recent) / len(recent))

    def occupancy_trend(self) -> str:
        """increasing / decreasing when the last three days move strictly one way, else stable."""
        if len(self._daily) < 3:
            return "stable"
        a, b, c = (d.average_occupancy for d in self._daily[-3:])
        if c > b > a:
            return "increasing"
        if c < b < a:
            return "decreasing"
        return "stable"

    def _build_snapshot(self, midnight: datetime) -> DailyStatistics:
        next_midnight = midnight + timedelta(days=1)
        sessions = self._ledger.all_sessions()
        entered = [s for s in sessions if midnight <= s.entry_time < next_midnight]
        types = Counter(s.vehicle_type for s in entered)

        hourly = self.occupancy_by_hour(midnight)
        peak = max(hourly, key=lambda h: h.count)
        total_spots = self._ledger.tariff.total_spots

        revenue = RevenueBreakdown()
        for s in sessions:
            if s.payment_status != PaymentStatus.PAID or not s.payment_time:
                continue
            if not midnight <= s.payment_time < next_midnight:
                continue
            revenue.total += s.fee
            if s.payment_method and s.payment_method != PaymentMethod.FREE:
                setattr(revenue, s.payment_method.value, getattr(revenue, s.payment_method.value) + s.fee)

        raised = [e for e in self._queue.all_exceptions() if midnight <= e.timestamp < next_midnight]
        completed = [s for s in entered if not s.is_open]

        return DailyStatistics(
            date=midnight.date().isoformat(),
            total_vehicles=len(entered),
            registered_vehicles=types[VehicleType.REGISTERED_MONTHLY],
            visitor_vehicles=types[VehicleType.VISITOR],
            staff_vehicles=types[VehicleType.REGISTERED_STAFF],
            peak_hour=peak.hour,
            peak_occupancy=peak.count,
            average_occupancy=round(sum(h.count for h in hourly) / 24 / total_spots * 100, 2),
            revenue=revenue,
            exceptions=ExceptionCounts(
                total=len(raised),
                resolved=sum(1 for e in raised if e.status == ExceptionStatus.RESOLVED),
                pending=sum(1 for e in raised if e.status == ExceptionStatus.PENDING),
            ),
            average_parking_duration=(
                round(sum(s.parking_duration or 0 for s in completed) / len(completed)) if completed else 0
            ),
            turnover_rate=round(len(entered) / total_spots, 2),
        )
