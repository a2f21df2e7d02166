"""
Shared Inventory Link Routes.

Callers open the link texted after their call and can write back to the
salesperson from it.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..services import Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter()


class ContactRequest(BaseModel):
    message: str = Field(default="", max_length=2000)
    vehicleId: Optional[str] = None
    contactMethod: Optional[str] = None


@router.get("/inventory/{short_code}")
async def view_shared_inventory(short_code: str, services: Services = Depends(get_services)):
    """Vehicles behind a shared link. Each view counts as a click."""
    resolved = await services.links.resolve(short_code)
    if resolved is None:
        raise HTTPException(status_code=404, detail="Link not found or expired")

    link, vehicles = resolved
    return {
        "shortCode": link.short_code,
        "dealership": services.settings.dealership_name,
        "phone": services.settings.dealership_phone,
        "clicks": link.clicks,
        "expiresAt": link.expires_at.isoformat(),
        "vehicles": [v.to_dict() for v in vehicles],
        "total": len(vehicles),
    }


@router.post("/inventory/{short_code}/contact")
async def contact_salesperson(
    short_code: str,
    request: ContactRequest,
    services: Services = Depends(get_services),
):
    """Queue an immediate follow-up to the salesperson assigned to the link's call."""
    link = await services.sink.get_link(short_code)
    if link is None or link.is_expired():
        raise HTTPException(status_code=404, detail="Link not found or expired")

    customer = await services.sink.get_customer(link.customer_id) if link.customer_id else None
    assignment = await services.sink.get_assignment(link.call_id) if link.call_id else None
    recipient = (assignment.salesperson_email if assignment else None) or services.settings.sales_inbox_email
    if not recipient:
        logger.warning(f"Contact request on link {short_code} has no salesperson to notify")
        raise HTTPException(status_code=409, detail="No salesperson assigned to this link")

    vehicle = None
    if request.vehicleId:
        vehicle = await services.matcher.find(request.vehicleId)

    comm = await services.scheduler.schedule_contact_request(
        link,
        recipient,
        request.message,
        customer=customer,
        contact_method=request.contactMethod,
        vehicle=vehicle,
    )
    if comm is None:
        raise HTTPException(status_code=503, detail="Failed to send message")

    return {"success": True, "message": "Your message has been sent!", "communicationId": comm.id}
