# tests/conftest.py
"""Shared fixtures: an isolated in-memory database and a controllable clock per test."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from datetime import datetime
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from campus_parking.database import create_tables
from campus_parking.schemas.tariff import Tariff
from campus_parking.schemas.vehicle import VehicleCreate, VehicleType
from campus_parking.services.parking_core import ParkingCore
from campus_parking.services.seed_data import SimulatedClock

START = datetime(2025, 3, 10, 8, 0)


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_tables(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def clock():
    return SimulatedClock(START)


@pytest.fixture
def core(session_factory, clock):
    return ParkingCore(session_factory, clock=clock)


@pytest.fixture
def small_core(session_factory, clock):
    """Three-spot lot for capacity tests."""
    return ParkingCore(session_factory, tariff=Tariff(total_spots=3), clock=clock)


def student(plate="29A-12345", **overrides):
    data = dict(
        license_plate=plate,
        type=VehicleType.REGISTERED_MONTHLY,
        owner_name="Nguyen Van An",
        phone_number="0912345678",
        student_id="202012345",
    )
    data.update(overrides)
    return VehicleCreate(**data)


def staff(plate="30B-54321", **overrides):
    data = dict(
        license_plate=plate,
        type=VehicleType.REGISTERED_STAFF,
        owner_name="Tran Thi Binh",
        phone_number="0987654321",
        staff_id="GV-1234",
        department="Information Technology",
    )
    data.update(overrides)
    return VehicleCreate(**data)
