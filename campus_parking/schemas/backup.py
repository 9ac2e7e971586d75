# campus_parking/schemas/backup.py
from pydantic import BaseModel
from typing import Any, Optional


class BackupPayload(BaseModel):
    vehicles: list[dict[str, Any]]
    sessions: list[dict[str, Any]]
    exceptions: list[dict[str, Any]]
    settings: Optional[dict[str, Any]] = None


class BackupData(BaseModel):
    timestamp: str      # ISO 8601
    version: str
    data: BackupPayload


class BackupSummary(BaseModel):
    timestamp: str
    version: str
    vehicles: int
    sessions: int
    exceptions: int
