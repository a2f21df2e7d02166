"""
Communication Admin Routes.

Inspect scheduled follow-ups, run the sweep on demand and cancel pending
messages.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from database.records import CommunicationStatus

from ..middleware.auth import api_key_auth
from ..services import Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(api_key_auth)])


@router.get("/communications")
async def list_communications(
    call_id: Optional[str] = Query(None),
    status: Optional[CommunicationStatus] = Query(None),
    services: Services = Depends(get_services),
):
    """List scheduled communications, optionally filtered by call and status."""
    comms = await services.sink.list_communications(call_id, status.value if status else None)
    return {
        "communications": [c.to_dict() for c in comms],
        "total": len(comms),
    }


@router.post("/communications/sweep")
async def run_sweep(services: Services = Depends(get_services)):
    """Deliver every due communication now and retry queued lead exports."""
    report = await services.sweep.run_once()
    result = report.to_dict()
    result["leads_exported"] = await services.lead_router.process_queue() if services.lead_router else 0
    return result


@router.delete("/communications/{comm_id}")
async def cancel_communication(comm_id: str, services: Services = Depends(get_services)):
    """Cancel a pending communication."""
    comm = await services.sink.get_communication(comm_id)
    if comm is None:
        raise HTTPException(status_code=404, detail="Communication not found")
    if comm.status != CommunicationStatus.PENDING:
        raise HTTPException(status_code=409, detail=f"Communication already {comm.status.value}")

    if not await services.scheduler.cancel(comm_id):
        raise HTTPException(status_code=409, detail="Communication is no longer pending")
    logger.info(f"Communication {comm_id} cancelled")
    return {"success": True, "id": comm_id, "status": CommunicationStatus.CANCELLED.value}
