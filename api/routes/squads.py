"""
Squad Routes for the voice platform.

Receives call lifecycle events and serves the agent catalog.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from squad.agents import Agent
from tool_calls.dispatcher import resolve_agent

from ..services import Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter()

SQUAD_NAME = "Car Dealership Squad"


class CallInfo(BaseModel):
    id: Optional[str] = None
    customer: Dict[str, Any] = Field(default_factory=dict)


class SquadEvent(BaseModel):
    """Squad webhook payload; events may also arrive wrapped in ``message``."""
    type: Optional[str] = None
    call: CallInfo = Field(default_factory=CallInfo)
    fromAgent: Optional[str] = None
    toAgent: Optional[str] = None
    reason: Optional[str] = None
    conversationContext: Dict[str, Any] = Field(default_factory=dict)
    duration: Optional[int] = None
    outcome: Optional[str] = None
    summary: Optional[str] = None
    message: Optional[Dict[str, Any]] = None

    class Config:
        extra = "allow"

    def unwrapped(self) -> "SquadEvent":
        if self.type is None and self.message and self.message.get("type"):
            return SquadEvent(**self.message)
        return self


@router.post("/squads/webhook")
async def squad_webhook(payload: SquadEvent, services: Services = Depends(get_services)):
    """Handle call-started, transfer-requested and call-ended events."""
    event = payload.unwrapped()
    call_id = event.call.id
    if not call_id:
        raise HTTPException(status_code=400, detail="call.id is required")

    store = services.store

    if event.type == "call-started":
        session = await store.get_or_create(call_id, event.call.customer.get("number"))
        return {"success": True, "callId": call_id, "agent": session.current_agent.value}

    if event.type == "transfer-requested":
        session = await store.get_or_create(call_id)
        from_agent = resolve_agent(event.fromAgent) or session.current_agent
        context = event.conversationContext
        if context:
            await store.merge_context(call_id, context)
        to_agent = resolve_agent(event.toAgent) or services.router.route(from_agent, context)
        reason = event.reason or "transfer requested"
        await store.record_transfer(call_id, from_agent, to_agent, reason)
        return {
            "success": True,
            "transfer": {
                "toAgent": to_agent.value,
                "reason": reason,
                "context": context,
                "message": services.router.transfer_message(to_agent),
            },
        }

    if event.type == "call-ended":
        session = await services.dispatcher.complete_call(call_id, event.outcome or "ended", event.summary)
        logger.info(f"Call {call_id} ended after {event.duration or 0}s")
        return {"success": True, "callId": call_id, "status": session.status}

    logger.warning(f"Unhandled squad event {event.type!r} for call {call_id}")
    return {"success": False, "error": f"Unknown event type: {event.type}"}


@router.get("/squads/config")
async def squad_config(services: Services = Depends(get_services)):
    """Agent catalog as the voice platform expects it."""
    s = services.settings
    return {
        "squadName": SQUAD_NAME,
        "agents": services.catalog.to_dict(),
        "configuration": {
            "defaultAgent": Agent.LEAD_QUALIFIER.value,
            "dealershipName": s.dealership_name,
            "dealershipPhone": s.dealership_phone,
            "assignmentPolicy": s.assignment_policy,
            "educationSeries": s.education_series,
        },
        "webhookUrl": f"{s.base_url.rstrip('/')}/squads/webhook",
    }
