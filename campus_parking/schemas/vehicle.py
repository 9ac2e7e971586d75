# campus_parking/schemas/vehicle.py
from enum import Enum
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional


class VehicleType(str, Enum):
    REGISTERED_MONTHLY = "registered_monthly"   # Student monthly pass
    REGISTERED_STAFF = "registered_staff"       # Staff, free of charge
    VISITOR = "visitor"


class VehicleCreate(BaseModel):
    license_plate: str
    type: VehicleType
    owner_name: str
    phone_number: str
    email: Optional[str] = None
    student_id: Optional[str] = None       # required for registered_monthly
    staff_id: Optional[str] = None         # required for registered_staff
    department: Optional[str] = None
    registration_date: Optional[datetime] = None
    expiry_date: Optional[datetime] = None
    is_active: bool = True
    notes: Optional[str] = None
    vehicle_model: Optional[str] = None
    color: Optional[str] = None


class VehicleUpdate(BaseModel):
    license_plate: Optional[str] = None
    owner_name: Optional[str] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None
    student_id: Optional[str] = None
    staff_id: Optional[str] = None
    department: Optional[str] = None
    notes: Optional[str] = None
    vehicle_model: Optional[str] = None
    color: Optional[str] = None


class Vehicle(BaseModel):
    id: str
    license_plate: str
    type: VehicleType
    owner_name: str
    phone_number: str
    email: Optional[str] = None
    student_id: Optional[str] = None
    staff_id: Optional[str] = None
    department: Optional[str] = None
    registration_date: datetime
    expiry_date: datetime
    is_active: bool = True
    notes: Optional[str] = None
    vehicle_model: Optional[str] = None
    color: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.expiry_date <= now


class RenewRequest(BaseModel):
    months: int = Field(gt=0, le=60)


class StatusUpdate(BaseModel):
    is_active: bool


class BulkRenewRequest(BaseModel):
    vehicle_ids: list[str]
    months: int = Field(gt=0, le=60)


class BulkIdsRequest(BaseModel):
    vehicle_ids: list[str]
