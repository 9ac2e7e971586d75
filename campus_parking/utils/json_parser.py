# campus_parking/utils/json_parser.py
"""
Helpers for reading LPR ingestion JSON payloads.
Gate readers send camelCase keys; snake_case is accepted as well.
"""

import json
import re
from typing import Any, Optional


def safe_parse_json(raw_body: bytes) -> Optional[dict]:
    """Parse JSON bytes safely. Returns None on error or when the top level is not an object."""
    try:
        data = json.loads(raw_body.decode("utf-8", errors="replace"))
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return data if isinstance(data, dict) else None


def get_nested(data: dict, *keys: str, default: Any = None) -> Any:
    """Safely navigate nested dict keys. Returns default if any key is missing."""
    current = data
    for key in keys:
        if not isinstance(current, dict) or key not in current:
            return default
        current = current[key]
    return current


def snake_case(name: str) -> str:
    """licensePlate → license_plate"""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def get_field(data: dict, name: str, default: Any = None) -> Any:
    """Look up `name` (camelCase) or its snake_case spelling."""
    if name in data:
        return data[name]
    return data.get(snake_case(name), default)


def is_json_body(raw_body: bytes, content_type: str = "") -> bool:
    """Detect if the raw body is JSON (by content-type or by inspecting first byte)."""
    if "json" in content_type.lower():
        return True
    stripped = raw_body.lstrip()
    return stripped.startswith(b"{") or stripped.startswith(b"[")
