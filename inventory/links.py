"""
Shareable inventory links.

A link is a short hex code that grants a caller view access to a fixed
set of vehicles until it expires.
"""

import logging
import secrets
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from database.records import InventoryVehicle, SharedLink, utcnow
from database.sink import RecordSink

logger = logging.getLogger(__name__)


class ShareableLinkService:
    """Creates and resolves shared inventory links."""

    CODE_BYTES = 5  # 10 hex chars
    MAX_CODE_ATTEMPTS = 3

    def __init__(self, sink: RecordSink, base_url: str, ttl_days: int = 30):
        self.sink = sink
        self.base_url = base_url.rstrip("/")
        self.ttl_days = ttl_days

    def url_for(self, short_code: str) -> str:
        return f"{self.base_url}/inventory/{short_code}"

    async def create(
        self,
        call_id: Optional[str],
        customer_id: Optional[str],
        inventory_ids: Sequence[str],
        now: Optional[datetime] = None,
    ) -> Optional[SharedLink]:
        """Create a link for ``inventory_ids``; None when there is nothing to share or the write fails."""
        if not inventory_ids:
            return None
        now = now or utcnow()

        for _ in range(self.MAX_CODE_ATTEMPTS):
            code = secrets.token_hex(self.CODE_BYTES)
            link = SharedLink(
                short_code=code,
                full_url=self.url_for(code),
                call_id=call_id,
                customer_id=customer_id,
                inventory_ids=list(inventory_ids),
                expires_at=SharedLink.expiry(self.ttl_days, now),
                created_at=now,
            )
            result = await self.sink.create_link(link)
            if result.ok:
                logger.info(f"Shared link {code} created for call {call_id} ({len(inventory_ids)} vehicles)")
                return link
            if not result.duplicate:
                logger.warning(f"Shared link for call {call_id} not stored: {result.error}")
                return None
        logger.warning(f"Could not find a free short code for call {call_id}")
        return None

    async def resolve(
        self, short_code: str, now: Optional[datetime] = None
    ) -> Optional[Tuple[SharedLink, List[InventoryVehicle]]]:
        """Return the link and its vehicles, counting the click. None if unknown or expired."""
        link = await self.sink.get_link(short_code)
        if link is None or link.is_expired(now):
            return None
        await self.sink.increment_link_clicks(short_code)
        link = await self.sink.get_link(short_code) or link
        vehicles = await self.sink.get_vehicles(link.inventory_ids)
        return link, vehicles
