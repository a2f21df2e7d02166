"""
Communication Scheduler.

Turns a finished qualification into the outbound plan for a call:
1. Immediate SMS with the shared inventory link
2. Summary email after a short delay, only when the customer has an email
3. One education email per active campaign of the configured series

Every message carries an idempotency key so planning the same call twice
never schedules a second copy. The scheduler only writes records; the
sweep delivers them.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, List, Optional, Sequence, Union

from database.records import (
    CommunicationChannel, CommunicationStatus, CustomerProfile,
    EducationCampaign, InventoryVehicle, ScheduledCommunication,
    SharedLink, new_id, utcnow,
)
from database.sink import RecordSink
from . import templates

logger = logging.getLogger(__name__)


def sms_key(call_id: str) -> str:
    return f"{call_id}:sms"


def email_key(call_id: str) -> str:
    return f"{call_id}:email"


def education_key(call_id: str, campaign_name: str) -> str:
    return f"{call_id}:education:{campaign_name}"


def contact_key(short_code: str, request_id: str) -> str:
    return f"link:{short_code}:contact:{request_id}"


class CommunicationScheduler:
    """
    Plans follow-up messages for a call.

    Rules are independent: a failure while building or storing one
    message is logged and the others still go out.
    """

    def __init__(
        self,
        sink: RecordSink,
        summary_delay_minutes: int = 20,
        education_series: str = "buyer_tips",
        dealership_name: str = "The Dealership",
        clock: Callable[[], datetime] = utcnow,
    ):
        self.sink = sink
        self.summary_delay = timedelta(minutes=summary_delay_minutes)
        self.education_series = education_series
        self.dealership_name = dealership_name
        self.clock = clock

    async def plan(
        self,
        call: Any,
        customer: CustomerProfile,
        assigned_agent: Any,
        matched_items: Optional[Sequence[InventoryVehicle]] = None,
        link: Union[SharedLink, str, None] = None,
        now: Optional[datetime] = None,
    ) -> List[ScheduledCommunication]:
        """
        Schedule the follow-ups for a call.

        Args:
            call: CallSession or call id
            customer: The caller's profile
            assigned_agent: Salesperson (or mapping with name/email/phone)
            matched_items: Inventory matched to the caller's preferences
            link: Shared link to the full match set, if one was created
            now: Planning time; defaults to the scheduler clock

        Returns:
            Scheduled communications for the call ordered by scheduled_at,
            including ones that already existed from an earlier plan.
        """
        call_id = getattr(call, "id", call)
        now = now or self.clock()
        items = list(matched_items or [])
        link_url = link.full_url if isinstance(link, SharedLink) else link

        builders: List[Callable[[], ScheduledCommunication]] = []

        if link_url and customer.phone_number:
            builders.append(lambda: self._build_sms(call_id, customer, assigned_agent, link_url, items, now))
        else:
            logger.debug(f"Call {call_id}: no link or phone, SMS not scheduled")

        if customer.has_email:
            builders.append(lambda: self._build_summary(call_id, customer, assigned_agent, items, link_url, now))
        else:
            logger.info(f"Call {call_id}: no email provided, skipping summary email")

        try:
            campaigns = await self.sink.list_campaigns(self.education_series)
        except Exception as e:
            logger.error(f"Call {call_id}: could not load '{self.education_series}' campaigns: {e}")
            campaigns = []

        for campaign in campaigns:
            builders.append(
                lambda c=campaign: self._build_education(call_id, customer, c, now)
            )

        results = await asyncio.gather(*(self._schedule_one(call_id, b) for b in builders))
        planned = [r for r in results if r is not None]
        planned.sort(key=lambda c: c.scheduled_at)

        logger.info(f"Call {call_id}: {len(planned)} communications planned")
        return planned

    async def _schedule_one(
        self, call_id: str, build: Callable[[], ScheduledCommunication]
    ) -> Optional[ScheduledCommunication]:
        try:
            comm = build()
            existing = await self.sink.find_communication(comm.idempotency_key)
            if existing is not None:
                logger.debug(f"Already scheduled: {comm.idempotency_key} ({existing.status.value})")
                return existing

            result = await self.sink.create_communication(comm)
            if result.duplicate:
                return result.record
            if not result.ok:
                logger.error(f"Call {call_id}: {comm.idempotency_key} dropped: {result.error}")
                return None
            return comm
        except Exception as e:
            logger.error(f"Call {call_id}: failed to schedule communication: {e}")
            return None

    def _build_sms(self, call_id, customer, agent, link_url, items, now) -> ScheduledCommunication:
        return ScheduledCommunication(
            call_id=call_id,
            customer_id=customer.id,
            recipient=customer.phone_number,
            channel=CommunicationChannel.SMS,
            subject=templates.sms_subject(),
            body=templates.sms_body(customer, agent, link_url),
            scheduled_at=now,
            idempotency_key=sms_key(call_id),
            metadata={"inventory_link": link_url, "vehicle_count": len(items)},
        )

    def _build_summary(self, call_id, customer, agent, items, link_url, now) -> ScheduledCommunication:
        top = items[:templates.MAX_EMAIL_VEHICLES]
        return ScheduledCommunication(
            call_id=call_id,
            customer_id=customer.id,
            recipient=customer.email,
            channel=CommunicationChannel.EMAIL,
            subject=templates.summary_subject(customer),
            body=templates.summary_body(customer, agent, items, link_url, self.dealership_name),
            scheduled_at=now + self.summary_delay,
            idempotency_key=email_key(call_id),
            metadata={
                "template": "default",
                "salesperson": templates.contact_field(agent, "name"),
                "matched_vehicles": [
                    {"stock": v.stock_number, "year": v.year, "make": v.make,
                     "model": v.model, "price": v.price}
                    for v in top
                ],
            },
        )

    def _build_education(self, call_id, customer, campaign: EducationCampaign, now) -> ScheduledCommunication:
        return ScheduledCommunication(
            call_id=call_id,
            customer_id=customer.id,
            recipient=customer.email,
            channel=CommunicationChannel.EDUCATION,
            subject=campaign.subject,
            body=campaign.body,
            scheduled_at=now + timedelta(days=campaign.delay_days),
            idempotency_key=education_key(call_id, campaign.name),
            metadata={
                "template": "education",
                "campaign": campaign.name,
                "series": campaign.series,
                "sequence": campaign.sequence_order,
            },
        )

    async def schedule_contact_request(
        self,
        link: SharedLink,
        recipient: str,
        message: str,
        customer: Optional[CustomerProfile] = None,
        contact_method: Optional[str] = None,
        vehicle: Optional[InventoryVehicle] = None,
        now: Optional[datetime] = None,
    ) -> Optional[ScheduledCommunication]:
        """
        Queue an immediate note to the salesperson for a shared-link contact request.

        Every request is its own message; the sweep delivers it on its next pass.
        """
        now = now or self.clock()
        comm = ScheduledCommunication(
            call_id=link.call_id or f"link:{link.short_code}",
            customer_id=customer.id if customer else link.customer_id,
            recipient=recipient,
            channel=CommunicationChannel.EMAIL,
            subject=templates.contact_request_subject(customer),
            body=templates.contact_request_body(customer, message, contact_method, vehicle),
            scheduled_at=now,
            idempotency_key=contact_key(link.short_code, new_id()),
            metadata={
                "template": "default",
                "kind": "contact_request",
                "short_code": link.short_code,
                "vehicle": vehicle.stock_number if vehicle else None,
            },
        )
        result = await self.sink.create_communication(comm)
        if not result.ok:
            logger.error(f"Contact request for link {link.short_code} not scheduled: {result.error}")
            return None
        logger.info(f"Contact request from link {link.short_code} queued for {recipient}")
        return comm

    async def cancel_drip(self, call_id: str) -> int:
        """Cancel pending education entries for a call."""
        cancelled = await self.sink.cancel_communications(call_id, CommunicationChannel.EDUCATION.value)
        if cancelled:
            logger.info(f"Call {call_id}: cancelled {cancelled} pending education messages")
        return cancelled

    async def cancel(self, comm_id: str) -> bool:
        """Cancel a single pending communication."""
        return await self.sink.update_communication(comm_id, CommunicationStatus.CANCELLED)
