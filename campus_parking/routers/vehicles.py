# campus_parking/routers/vehicles.py
"""Vehicle registry: register, edit, renew and (soft) deactivate student / staff vehicles"""

from fastapi import APIRouter, Depends
from typing import Optional

from campus_parking.schemas.vehicle import (
    BulkIdsRequest,
    BulkRenewRequest,
    RenewRequest,
    StatusUpdate,
    Vehicle,
    VehicleCreate,
    VehicleType,
    VehicleUpdate,
)
from campus_parking.services.parking_core import ParkingCore, get_core

router = APIRouter()


@router.get("/vehicles", response_model=list[Vehicle], summary="List / search registered vehicles")
def list_vehicles(
    q: str = "",
    vehicle_type: Optional[VehicleType] = None,
    status: str = "all",
    department: Optional[str] = None,
    core: ParkingCore = Depends(get_core),
):
    """status: all | active | expired | inactive"""
    return core.registry.search(q, vehicle_type, status, department)


@router.get("/vehicles/counts", summary="Active and expired registrations")
def vehicle_counts(core: ParkingCore = Depends(get_core)):
    return {
        "total": len(core.registry.all_vehicles()),
        "active": core.registry.active_count(),
        "expired": core.registry.expired_count(),
    }


@router.get("/vehicles/lookup/{plate}", summary="Look up a plate number")
def lookup_vehicle(plate: str, core: ParkingCore = Depends(get_core)):
    vehicle = core.registry.find_by_plate(plate)
    if not vehicle:
        return {"plate": plate, "status": "unknown", "registered": False}
    return {"plate": vehicle.license_plate, "status": "known", "registered": True,
            "active": vehicle.is_active, "owner": vehicle.owner_name,
            "type": vehicle.type.value, "vehicle_id": vehicle.id}


@router.post("/vehicles/bulk/renew", summary="Renew several registrations")
async def bulk_renew(body: BulkRenewRequest, core: ParkingCore = Depends(get_core)):
    renewed = await core.registry.bulk_renew(body.vehicle_ids, body.months)
    return {"status": "renewed", "count": renewed}


@router.post("/vehicles/bulk/deactivate", summary="Deactivate several vehicles")
async def bulk_deactivate(body: BulkIdsRequest, core: ParkingCore = Depends(get_core)):
    deactivated = await core.registry.bulk_deactivate(body.vehicle_ids)
    return {"status": "deactivated", "count": deactivated}


@router.get("/vehicles/{vehicle_id}", response_model=Vehicle, summary="Get one vehicle")
def get_vehicle(vehicle_id: str, core: ParkingCore = Depends(get_core)):
    return core.registry.get(vehicle_id)


@router.post("/vehicles", response_model=Vehicle, status_code=201, summary="Register a new vehicle")
async def register_vehicle(body: VehicleCreate, core: ParkingCore = Depends(get_core)):
    return await core.registry.register(body)


@router.patch("/vehicles/{vehicle_id}", response_model=Vehicle, summary="Edit owner / contact / plate")
async def update_vehicle(vehicle_id: str, body: VehicleUpdate, core: ParkingCore = Depends(get_core)):
    return await core.registry.update(vehicle_id, body)


@router.post("/vehicles/{vehicle_id}/renew", response_model=Vehicle, summary="Extend a registration")
async def renew_vehicle(vehicle_id: str, body: RenewRequest, core: ParkingCore = Depends(get_core)):
    return await core.registry.renew(vehicle_id, body.months)


@router.put("/vehicles/{vehicle_id}/status", response_model=Vehicle, summary="Activate / deactivate")
async def set_vehicle_status(vehicle_id: str, body: StatusUpdate, core: ParkingCore = Depends(get_core)):
    return await core.registry.set_active(vehicle_id, body.is_active)


@router.delete("/vehicles/{vehicle_id}", response_model=Vehicle, summary="Deactivate a vehicle (plate stays reserved)")
async def remove_vehicle(vehicle_id: str, core: ParkingCore = Depends(get_core)):
    return await core.registry.deactivate(vehicle_id)

