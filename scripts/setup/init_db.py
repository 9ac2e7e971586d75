# scripts/setup/init_db.py
"""
Initialize database: creates all tables, optionally filled with demo data.
Run once before first launch, or after adding new models.
Usage: python scripts/setup/init_db.py [--seed 42] [--days 7] [--reset]
"""

import argparse
import asyncio
import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from datetime import datetime, timedelta
from campus_parking.database import SessionLocal, create_tables, engine
from campus_parking.config import settings
from campus_parking.services.parking_core import ParkingCore
from campus_parking.services.seed_data import SimulatedClock, seed_core
from campus_parking.utils.generators import start_of_day
from sqlalchemy import inspect, text


def seed(seed_value, days, vehicles, reset):
    now = datetime.now()
    clock = SimulatedClock(start_of_day(now) - timedelta(days=days - 1))
    core = ParkingCore(SessionLocal, clock=clock)
    if reset:
        core.storage.clear_all()
        print("🧹 Existing parking data cleared")
    core.load_all()
    if core.registry.all_vehicles() or core.ledger.all_sessions():
        print("ℹ️  Data already present, skipping seed (use --reset to start over)")
        return

    summary = asyncio.run(seed_core(core, clock, seed=seed_value, vehicles=vehicles, days=days, until=now))
    print(f"🌱 Seeded (seed={seed_value}): {summary.vehicles} vehicles, {summary.sessions} sessions, "
          f"{summary.exceptions} exceptions, {summary.snapshots} daily snapshots")


def main():
    parser = argparse.ArgumentParser(description="Create tables and optionally seed demo data")
    parser.add_argument("--seed", type=int, default=None, help="Fill with deterministic demo data")
    parser.add_argument("--days", type=int, default=7)
    parser.add_argument("--vehicles", type=int, default=60)
    parser.add_argument("--reset", action="store_true", help="Clear stored parking data first")
    args = parser.parse_args()

    print("🗄️  Campus Parking DB Initialization")
    print("=" * 40)
    print(f"📡 Database: {settings.DATABASE_URL}")

    # Test connection
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        print("✅ Database connection OK")
    except Exception as e:
        print(f"❌ Cannot connect to database: {e}")
        sys.exit(1)

    # Create all tables
    print("\n📋 Creating tables...")
    create_tables()

    tables = inspect(engine).get_table_names()
    print(f"\n📊 Tables in database ({len(tables)} total):")
    for t in tables:
        print(f"   ✓ {t}")

    if args.seed is not None:
        print()
        seed(args.seed, args.days, args.vehicles, args.reset)

    print("\n🎉 Database ready! You can now start the backend:")
    print("   uvicorn campus_parking.main:app --host 0.0.0.0 --port 8080 --reload")


if __name__ == "__main__":
    main()
