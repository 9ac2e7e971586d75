# campus_parking/routers/exceptions.py
"""Exception queue: LPR reads waiting for an operator"""

from fastapi import APIRouter, Depends
from typing import Optional

from campus_parking.schemas.lpr_exception import (
    AssignRequest,
    EscalateRequest,
    ExceptionCreate,
    LPRException,
    NotesUpdate,
    Priority,
    PriorityUpdate,
    ResolutionOutcome,
    ResolveRequest,
    SimilarPlate,
)
from campus_parking.schemas.parking_session import ParkingSession
from campus_parking.services.parking_core import ParkingCore, get_core

router = APIRouter()


@router.get("/exceptions/pending", response_model=list[LPRException], summary="Pending queue, urgent first")
def list_pending(priority: Optional[Priority] = None, gate: Optional[str] = None,
                 core: ParkingCore = Depends(get_core)):
    return core.queue.list_pending(priority=priority, gate=gate)


@router.get("/exceptions/resolved", response_model=list[LPRException], summary="Resolved exceptions")
def list_resolved(limit: int = 50, core: ParkingCore = Depends(get_core)):
    return core.queue.resolved()[:limit]


@router.get("/exceptions/escalated", response_model=list[LPRException], summary="Escalated exceptions")
def list_escalated(core: ParkingCore = Depends(get_core)):
    return core.queue.escalated()


@router.get("/exceptions/counts", summary="Queue length and urgent count")
def exception_counts(core: ParkingCore = Depends(get_core)):
    return {"pending": core.queue.queue_count(), "urgent": core.queue.urgent_count()}


@router.get("/exceptions/suggestions", response_model=list[SimilarPlate], summary="Registered plates close to a guess")
def suggest_plates(plate: str, max_results: int = 5, core: ParkingCore = Depends(get_core)):
    return core.queue.suggest_similar_plates(plate, max_results)


@router.get("/exceptions/history/{plate}", response_model=list[ParkingSession], summary="Sessions of a plate")
def plate_history(plate: str, core: ParkingCore = Depends(get_core)):
    return core.queue.plate_history(plate)


@router.get("/exceptions/{exception_id}", response_model=LPRException, summary="Get one exception")
def get_exception(exception_id: str, core: ParkingCore = Depends(get_core)):
    return core.queue.get(exception_id)


@router.post("/exceptions", response_model=LPRException, status_code=201, summary="Report a failed read")
async def create_exception(body: ExceptionCreate, core: ParkingCore = Depends(get_core)):
    return await core.queue.create(body)


@router.post("/exceptions/{exception_id}/resolve", response_model=ResolutionOutcome, summary="Resolve: allow or deny")
async def resolve_exception(exception_id: str, body: ResolveRequest, core: ParkingCore = Depends(get_core)):
    """
    allow + entry → a session is opened for the resolved plate.
    allow + exit  → the plate's open session is closed (warning when there is none).
    deny          → no session change.
    """
    return await core.queue.resolve(exception_id, body)


@router.post("/exceptions/{exception_id}/escalate", response_model=LPRException, summary="Escalate to a supervisor")
async def escalate_exception(exception_id: str, body: EscalateRequest, core: ParkingCore = Depends(get_core)):
    return await core.queue.escalate(exception_id, body.reason)


@router.post("/exceptions/{exception_id}/assign", response_model=LPRException, summary="Assign to an operator")
async def assign_exception(exception_id: str, body: AssignRequest, core: ParkingCore = Depends(get_core)):
    return await core.queue.assign(exception_id, body.operator)


@router.put("/exceptions/{exception_id}/priority", response_model=LPRException, summary="Override priority")
async def update_priority(exception_id: str, body: PriorityUpdate, core: ParkingCore = Depends(get_core)):
    return await core.queue.update_priority(exception_id, body.priority)


@router.post("/exceptions/{exception_id}/notes", response_model=LPRException, summary="Append notes")
async def add_notes(exception_id: str, body: NotesUpdate, core: ParkingCore = Depends(get_core)):
    return await core.queue.add_notes(exception_id, body.notes)
