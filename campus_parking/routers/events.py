# campus_parking/routers/events.py
"""
LPR webhook endpoint.
POST /events/lpr: receives plate reads from every gate reader (JSON).
"""

from fastapi import APIRouter, Depends, Request

from campus_parking.errors import ParkingError
from campus_parking.services.lpr_ingestion import dispatch_lpr_event, parse_lpr_event
from campus_parking.services.parking_core import ParkingCore, get_core
from campus_parking.utils.json_parser import is_json_body
from campus_parking.utils.logger import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.post("/events/lpr", summary="Gate reader webhook: entry, exit and failed reads")
async def receive_lpr_event(request: Request, core: ParkingCore = Depends(get_core)):
    """
    Single entry point for all gate reads.
    Always returns HTTP 200.
    Business refusals (lot full, unknown gate...) come back as status=rejected.
    """
    raw_body = await request.body()
    if not raw_body:
        return {"status": "ignored", "reason": "empty body"}

    reader_ip = request.client.host if request.client else "unknown"
    content_type = request.headers.get("content-type", "")
    logger.info(f"[LPR] Event from {reader_ip} | {content_type} | {len(raw_body)} bytes")

    if not is_json_body(raw_body, content_type):
        logger.warning(f"[LPR] Non-JSON body from {reader_ip}, ignored")
        return {"status": "ignored", "reason": "not JSON"}

    try:
        event = parse_lpr_event(raw_body)
        return await dispatch_lpr_event(event, core.ledger, core.queue)
    except ParkingError as e:
        logger.warning(f"[LPR] Rejected event from {reader_ip}: {e.message}")
        return {"status": "rejected", "error": type(e).__name__, "detail": e.message}
    except Exception as e:
        logger.error(f"[LPR] Event processing error: {e}", exc_info=True)
        return {"status": "error", "detail": str(e)}  # Still return 200
