# tests/test_vehicle_registry.py
"""Unit tests for the vehicle registry."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from datetime import datetime, timedelta
from campus_parking.errors import DuplicateResource, NotFound, ValidationError
from campus_parking.schemas.vehicle import VehicleType, VehicleUpdate
from campus_parking.services.storage_gateway import StorageGateway
from campus_parking.services.vehicle_registry import VehicleRegistry
from campus_parking.utils.generators import add_months
from conftest import START, staff, student


class TestRegistration:
    @pytest.mark.asyncio
    async def test_register_assigns_prefixed_id_and_default_expiry(self, core):
        vehicle = await core.registry.register(student(plate="29a - 12345"))
        assert vehicle.id == "VH-REG-0001"
        assert vehicle.license_plate == "29A-12345"
        assert vehicle.registration_date == START
        assert vehicle.expiry_date == add_months(START, 12)

        other = await core.registry.register(staff())
        assert other.id == "VH-STF-0001"

    @pytest.mark.asyncio
    async def test_duplicate_plate_rejected_in_any_spelling(self, core):
        await core.registry.register(student(plate="29A-12345"))
        with pytest.raises(DuplicateResource):
            await core.registry.register(staff(plate="29a-12345"))
        with pytest.raises(DuplicateResource):
            await core.registry.register(staff(plate="29A - 12345"))

    @pytest.mark.asyncio
    async def test_deactivated_vehicle_still_reserves_plate(self, core):
        vehicle = await core.registry.register(student())
        await core.registry.deactivate(vehicle.id)
        with pytest.raises(DuplicateResource):
            await core.registry.register(student(plate=vehicle.license_plate.lower()))
        assert len(core.registry.all_vehicles()) == 1

    @pytest.mark.asyncio
    async def test_invalid_form_is_rejected_without_storing(self, core):
        with pytest.raises(ValidationError) as exc:
            await core.registry.register(student(student_id=None, phone_number="123"))
        assert set(exc.value.errors) == {"student_id", "phone_number"}
        assert core.registry.all_vehicles() == []

    @pytest.mark.asyncio
    async def test_registration_survives_reload(self, core, session_factory, clock):
        await core.registry.register(student())
        core.storage.flush()
        reloaded = VehicleRegistry(StorageGateway(session_factory, clock=clock), clock=clock)
        reloaded.load()
        assert reloaded.find_by_plate("29A-12345").owner_name == "Nguyen Van An"


class TestRenewal:
    @pytest.mark.asyncio
    async def test_renewing_expired_vehicle_starts_from_today(self, core, clock):
        # Registered 13 months ago with a 12-month term: expired a month ago
        clock.now = START - timedelta(days=395)
        vehicle = await core.registry.register(student())
        clock.advance_to(START)
        assert vehicle.expiry_date < START - timedelta(days=25)

        renewed = await core.registry.renew(vehicle.id, 6)
        assert renewed.expiry_date == add_months(START, 6)

    @pytest.mark.asyncio
    async def test_renewing_active_vehicle_extends_current_expiry(self, core):
        vehicle = await core.registry.register(student())
        renewed = await core.registry.renew(vehicle.id, 3)
        assert renewed.expiry_date == add_months(vehicle.expiry_date, 3)

    @pytest.mark.asyncio
    async def test_renew_unknown_vehicle(self, core):
        with pytest.raises(NotFound):
            await core.registry.renew("VH-REG-9999", 6)

    @pytest.mark.asyncio
    async def test_bulk_renew_skips_unknown_ids(self, core):
        a = await core.registry.register(student())
        b = await core.registry.register(staff())
        assert await core.registry.bulk_renew([a.id, b.id, "VH-REG-0404"], 1) == 2


class TestQueries:
    @pytest.mark.asyncio
    async def test_update_plate_is_duplicate_checked_against_others_only(self, core):
        a = await core.registry.register(student())
        b = await core.registry.register(staff())

        same = await core.registry.update(a.id, VehicleUpdate(license_plate="29A-12345", color="Red"))
        assert same.color == "Red"
        with pytest.raises(DuplicateResource):
            await core.registry.update(b.id, VehicleUpdate(license_plate="29a-12345"))

    @pytest.mark.asyncio
    async def test_search_and_counts(self, core, clock):
        a = await core.registry.register(student())
        await core.registry.register(staff())
        await core.registry.set_active(a.id, False)

        assert [v.type for v in core.registry.search(status="active")] == [VehicleType.REGISTERED_STAFF]
        assert [v.id for v in core.registry.search(status="inactive")] == [a.id]
        assert len(core.registry.search("tran")) == 1
        assert core.registry.search(department="Information Technology")[0].staff_id == "GV-1234"
        assert core.registry.active_count() == 1

        clock.advance_to(datetime(2026, 6, 1))
        assert core.registry.expired_count() == 2

    def test_unknown_status_filter(self, core):
        with pytest.raises(ValidationError):
            core.registry.search(status="archived")
