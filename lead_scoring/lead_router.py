"""
Lead Router for the dealership squad.

Exports qualified leads as spreadsheet rows through a webhook.
"""

import logging
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Deque, Dict, List, Mapping, Optional

import httpx

from database.records import utcnow
from .scoring_model import LeadQualification

logger = logging.getLogger(__name__)


@dataclass
class Lead:
    """One spreadsheet row."""

    call_id: str
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None

    # Interest details
    intent: str = "browse"
    urgency: Optional[str] = None
    budget: Optional[float] = None
    timeline: Optional[str] = None
    vehicle: Optional[str] = None

    # Qualification
    score: int = 0
    qualified: bool = False
    action_items: List[str] = field(default_factory=list)

    # Routing
    summary: Optional[str] = None
    transferred_to: Optional[str] = None
    inventory_link: Optional[str] = None
    transcript: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    @classmethod
    def from_call(
        cls,
        call_id: str,
        customer_info: Mapping[str, Any],
        qualification: Optional[LeadQualification] = None,
        transferred_to: Optional[str] = None,
        inventory_link: Optional[str] = None,
        transcript: Optional[str] = None,
    ) -> "Lead":
        info = customer_info or {}
        vehicle = " ".join(
            str(info[k]) for k in ("preferredYear", "preferredMake", "preferredModel") if info.get(k)
        )
        summary = (
            f"{info.get('name') or 'Caller'} - {vehicle or 'Any vehicle'} - "
            f"Budget: ${info.get('budget') or 'N/A'} - Timeline: {info.get('timeline') or 'N/A'}"
        )
        return cls(
            call_id=call_id,
            name=info.get("name"),
            phone=info.get("phoneNumber"),
            email=info.get("email"),
            intent=info.get("intent") or "browse",
            urgency=info.get("urgency"),
            budget=info.get("budget"),
            timeline=info.get("timeline"),
            vehicle=vehicle or None,
            score=qualification.score if qualification else 0,
            qualified=qualification.qualified if qualification else False,
            action_items=list(qualification.action_items) if qualification else [],
            summary=summary,
            transferred_to=transferred_to,
            inventory_link=inventory_link,
            transcript=transcript,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data

    def to_sheet_row(self) -> Dict[str, Any]:
        """Payload shape the spreadsheet webhook script expects."""
        return {
            "timestamp": self.created_at.isoformat(),
            "callId": self.call_id,
            "customerInfo": {
                "name": self.name,
                "phoneNumber": self.phone,
                "email": self.email,
                "budget": self.budget,
                "timeline": self.timeline,
                "urgency": self.urgency,
            },
            "intent": self.intent,
            "vehicle": self.vehicle,
            "leadScore": self.score,
            "qualified": self.qualified,
            "actionItems": "; ".join(self.action_items),
            "summary": self.summary,
            "transferredTo": self.transferred_to,
            "inventoryLink": self.inventory_link,
            "transcript": self.transcript or "No transcript available",
        }


@dataclass
class ExportResult:
    success: bool
    error: Optional[str] = None


class LeadRouter:
    """
    Sends leads to the spreadsheet webhook.

    Failed exports are queued so a later ``process_queue`` can retry them.
    """

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        timeout: float = 15.0,
        max_queue: int = 500,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the lead router.

        Args:
            webhook_url: Spreadsheet webhook URL; export is disabled when unset
            timeout: HTTP timeout in seconds
            max_queue: Failed leads kept for retry; the oldest are dropped beyond this
            transport: Optional httpx transport
        """
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.transport = transport
        self._lead_queue: Deque[Lead] = deque(maxlen=max_queue)
        self._exported = 0
        self._dropped = 0

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    async def export_lead(self, lead: Lead) -> ExportResult:
        """
        Post a lead row to the spreadsheet webhook.

        Args:
            lead: Lead to export

        Returns:
            ExportResult; failures are logged and queued, never raised
        """
        if not self.webhook_url:
            logger.debug("No spreadsheet webhook configured, lead not exported")
            return ExportResult(success=False, error="not configured")

        try:
            async with httpx.AsyncClient(follow_redirects=True, transport=self.transport) as client:
                response = await client.post(
                    self.webhook_url,
                    json=lead.to_sheet_row(),
                    timeout=self.timeout,
                )

            if response.status_code in (200, 201, 202):
                self._exported += 1
                logger.info(f"Lead for call {lead.call_id} exported (score={lead.score})")
                return ExportResult(success=True)

            logger.error(
                f"Lead export failed for call {lead.call_id}: "
                f"HTTP {response.status_code} {response.text[:200]}"
            )
            self._enqueue(lead)
            return ExportResult(success=False, error=f"HTTP {response.status_code}")

        except httpx.HTTPError as e:
            logger.error(f"Lead export error for call {lead.call_id}: {e}")
            self._enqueue(lead)
            return ExportResult(success=False, error=str(e))

    def _enqueue(self, lead: Lead) -> None:
        if len(self._lead_queue) == self._lead_queue.maxlen:
            dropped = self._lead_queue[0]
            self._dropped += 1
            logger.warning(f"Lead retry queue full, dropping oldest lead (call {dropped.call_id})")
        self._lead_queue.append(lead)

    async def process_queue(self) -> int:
        """
        Retry queued leads.

        Returns:
            Number of leads exported
        """
        if not self._lead_queue:
            return 0

        pending = list(self._lead_queue)
        self._lead_queue.clear()
        success_count = 0
        for lead in pending:
            result = await self.export_lead(lead)
            if result.success:
                success_count += 1
        return success_count

    def get_queue_size(self) -> int:
        return len(self._lead_queue)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "exported": self._exported,
            "queued": len(self._lead_queue),
            "dropped": self._dropped,
        }
