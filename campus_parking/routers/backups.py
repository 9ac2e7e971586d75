# campus_parking/routers/backups.py
"""Backups: snapshot, list, restore and delete stored data"""

from fastapi import APIRouter, Depends

from campus_parking.errors import NotFound
from campus_parking.schemas.backup import BackupData, BackupSummary
from campus_parking.services.parking_core import ParkingCore, get_core

router = APIRouter()


@router.get("/backups", response_model=list[BackupSummary], summary="Stored backups, oldest first")
def list_backups(core: ParkingCore = Depends(get_core)):
    return core.list_backups()


@router.post("/backups", response_model=BackupSummary, status_code=201, summary="Back up everything now")
def create_backup(core: ParkingCore = Depends(get_core)):
    return core.create_backup()


@router.get("/backups/latest", response_model=BackupData, summary="Full contents of the newest backup")
def latest_backup(core: ParkingCore = Depends(get_core)):
    backup = core.storage.latest_backup()
    if backup is None:
        raise NotFound("No backups stored")
    return backup


@router.post("/backups/restore", summary="Restore from an uploaded backup document")
def restore_uploaded(body: dict, core: ParkingCore = Depends(get_core)):
    """The document is validated in full before anything is replaced."""
    core.restore_backup(body)
    return {"status": "restored", "timestamp": body.get("timestamp")}


@router.post("/backups/{timestamp}/restore", summary="Restore a stored backup")
def restore_stored(timestamp: str, core: ParkingCore = Depends(get_core)):
    core.restore_backup_at(timestamp)
    return {"status": "restored", "timestamp": timestamp}


@router.delete("/backups/{timestamp}", summary="Delete a stored backup")
def delete_backup(timestamp: str, core: ParkingCore = Depends(get_core)):
    core.storage.delete_backup(timestamp)
    return {"status": "deleted", "timestamp": timestamp}


@router.get("/storage", summary="Storage usage and last sync")
def storage_info(core: ParkingCore = Depends(get_core)):
    return core.storage.storage_info() | {
        "last_sync": core.storage.last_sync(),
        "pending_writes": core.storage.pending_keys(),
    }
