# campus_parking/routers/sessions.py
"""Session ledger: entries, exits, payments and occupancy"""

from fastapi import APIRouter, Depends
from datetime import datetime
from typing import Optional

from campus_parking.errors import ValidationError
from campus_parking.schemas.parking_session import EntryRequest, ExitRequest, ParkingSession, PaymentRequest
from campus_parking.services.parking_core import ParkingCore, get_core

router = APIRouter()

SESSION_STATES = ("all", "current", "history")


@router.get("/sessions", response_model=list[ParkingSession], summary="List sessions")
def list_sessions(
    state: str = "all",
    q: str = "",
    plate: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = 100,
    core: ParkingCore = Depends(get_core),
):
    """
    state: all | current (still parked) | history (exited).
    `plate`, `q` (plate / id substring) and start/end (entry time) narrow the list.
    """
    if state not in SESSION_STATES:
        raise ValidationError(f"Unknown session state '{state}'", {"state": state})

    if state == "current":
        sessions = core.ledger.current_sessions()
    elif state == "history":
        sessions = core.ledger.history_sessions()
    else:
        sessions = sorted(core.ledger.all_sessions(), key=lambda s: s.entry_time, reverse=True)

    keep = None
    if plate:
        keep = {s.id for s in core.ledger.sessions_by_plate(plate)}
    if start and end:
        in_range = {s.id for s in core.ledger.sessions_by_date_range(start, end)}
        keep = in_range if keep is None else keep & in_range
    if q:
        found = {s.id for s in core.ledger.search(q)}
        keep = found if keep is None else keep & found
    if keep is not None:
        sessions = [s for s in sessions if s.id in keep]
    return sessions[:limit]


@router.get("/sessions/occupancy", summary="Occupied / available spots right now")
def get_occupancy(core: ParkingCore = Depends(get_core)):
    return {
        "total_spots": core.tariff.total_spots,
        "occupied": core.ledger.occupied_count(),
        "available": core.ledger.available_count(),
        "occupancy_rate": round(core.ledger.occupancy_rate(), 2),
    }


@router.get("/sessions/today", summary="Today's session count and revenue")
def get_today(core: ParkingCore = Depends(get_core)):
    return {
        "date": datetime.now().date().isoformat(),
        "sessions": len(core.ledger.today_sessions()),
        "revenue": core.ledger.today_revenue(),
    }


@router.get("/sessions/{session_id}", response_model=ParkingSession, summary="Get one session")
def get_session(session_id: str, core: ParkingCore = Depends(get_core)):
    return core.ledger.get(session_id)


@router.post("/sessions/entry", response_model=ParkingSession, status_code=201, summary="Admit a vehicle")
async def admit_entry(body: EntryRequest, core: ParkingCore = Depends(get_core)):
    """Fails with 409 when the lot is full."""
    return await core.ledger.admit_entry(body.license_plate, body.gate, body.confidence, image=body.image)


@router.post("/sessions/{session_id}/exit", response_model=ParkingSession, summary="Complete an exit")
async def complete_exit(session_id: str, body: ExitRequest, core: ParkingCore = Depends(get_core)):
    return await core.ledger.complete_exit(session_id, body.gate, body.confidence, image=body.image)


@router.post("/sessions/{session_id}/payment", response_model=ParkingSession, summary="Record a payment")
async def process_payment(session_id: str, body: PaymentRequest, core: ParkingCore = Depends(get_core)):
    return await core.ledger.process_payment(session_id, body.method)
