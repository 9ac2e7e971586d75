# campus_parking/utils/validation.py
"""
Field validators for vehicle registrations and exception resolution.
Each validator returns an error message, or None when the value is acceptable.
Plate format: province code (2 digits), series letter, optional letter/digit, hyphen, 5 digits.
Examples: 29A-12345, 29X1-12345, 30LD-98765.
"""

import re
from datetime import datetime
from typing import Optional

PLATE_RE = re.compile(r"^[0-9]{2}[A-Z][A-Z0-9]?-[0-9]{5}$")
PHONE_RE = re.compile(r"^0(3[2-9]|5[2-9]|7[06-9]|8[1-9]|9[0-9])[0-9]{7}$")
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
STUDENT_ID_RE = re.compile(r"^(201[5-9]|202[0-5])[0-9]{5}$")
STAFF_ID_RE = re.compile(r"^(GV|NV)-[0-9]{4}$")

OWNER_NAME_MIN = 3
OWNER_NAME_MAX = 50
VEHICLE_MODEL_MAX = 50


def normalize_plate(plate: Optional[str]) -> str:
    """Canonical plate form used for every equality check: uppercase, no whitespace."""
    if not plate:
        return ""
    return re.sub(r"\s", "", plate.strip().upper())


def validate_license_plate(plate: Optional[str]) -> Optional[str]:
    if not plate or not plate.strip():
        return "License plate is required"
    if not PLATE_RE.match(normalize_plate(plate)):
        return "License plate format is invalid (e.g. 29A-12345 or 29X1-12345)"
    return None


def validate_phone_number(phone: Optional[str]) -> Optional[str]:
    if not phone or not phone.strip():
        return "Phone number is required"
    if not PHONE_RE.match(re.sub(r"[\s-]", "", phone)):
        return "Phone number is invalid (10 digits, starting with 0)"
    return None


def validate_email(email: Optional[str]) -> Optional[str]:
    # Optional field
    if not email or not email.strip():
        return None
    if not EMAIL_RE.match(email.strip()):
        return "Email is invalid"
    return None


def validate_student_id(student_id: Optional[str]) -> Optional[str]:
    if not student_id or not student_id.strip():
        return "Student ID is required"
    if not STUDENT_ID_RE.match(student_id.strip()):
        return "Student ID is invalid (e.g. 202012345)"
    return None


def validate_staff_id(staff_id: Optional[str]) -> Optional[str]:
    if not staff_id or not staff_id.strip():
        return "Staff ID is required"
    if not STAFF_ID_RE.match(staff_id.strip().upper()):
        return "Staff ID is invalid (e.g. GV-0001 or NV-0123)"
    return None


def validate_owner_name(name: Optional[str]) -> Optional[str]:
    if not name or not name.strip():
        return "Owner name is required"
    length = len(name.strip())
    if length < OWNER_NAME_MIN:
        return f"Owner name must be at least {OWNER_NAME_MIN} characters"
    if length > OWNER_NAME_MAX:
        return f"Owner name must be at most {OWNER_NAME_MAX} characters"
    return None


def validate_expiry_date(expiry: Optional[datetime], registered: datetime, now: datetime) -> Optional[str]:
    if expiry is None:
        return "Expiry date is required"
    if expiry <= registered:
        return "Expiry date must be after the registration date"
    if expiry <= now:
        return "Expiry date must be in the future"
    return None


def validate_vehicle_form(data: dict, now: datetime) -> dict:
    """
    Validate a registration payload (snake_case keys, as produced by VehicleCreate).
    Returns {field: message}; an empty dict means the form is valid.
    Student ID is required for registered_monthly, staff ID for registered_staff.
    """
    errors = {}

    checks = {
        "license_plate": validate_license_plate(data.get("license_plate")),
        "owner_name": validate_owner_name(data.get("owner_name")),
        "phone_number": validate_phone_number(data.get("phone_number")),
        "email": validate_email(data.get("email")),
    }

    vehicle_type = data.get("type")
    if vehicle_type == "registered_monthly":
        checks["student_id"] = validate_student_id(data.get("student_id"))
    elif vehicle_type == "registered_staff":
        checks["staff_id"] = validate_staff_id(data.get("staff_id"))

    if vehicle_type != "visitor" and data.get("expiry_date") is not None:
        registered = data.get("registration_date") or now
        checks["expiry_date"] = validate_expiry_date(data["expiry_date"], registered, now)

    model = data.get("vehicle_model")
    if model and len(model) > VEHICLE_MODEL_MAX:
        checks["vehicle_model"] = f"Vehicle model must be at most {VEHICLE_MODEL_MAX} characters"

    for field, message in checks.items():
        if message:
            errors[field] = message
    return errors


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance (insert / delete / substitute, unit cost)."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            if ca == cb:
                current.append(previous[j - 1])
            else:
                current.append(1 + min(previous[j], current[j - 1], previous[j - 1]))
        previous = current
    return previous[-1]
