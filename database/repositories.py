"""
Repository classes for the dealership squad data access layer.

Each repository encapsulates CRUD operations for a specific model.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    Customer, Call, CallTransfer, CallTranscriptRow, CommunicationLog,
    EducationCampaignRow, InventoryRow, SharedLinkRow, SalesAssignmentRow,
)

logger = logging.getLogger(__name__)


class CustomerRepository:
    """Data access for customer profiles."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> Customer:
        customer = Customer(**kwargs)
        self.session.add(customer)
        await self.session.flush()
        return customer

    async def get_by_id(self, customer_id: str) -> Optional[Customer]:
        result = await self.session.execute(
            select(Customer).where(Customer.id == customer_id)
        )
        return result.scalar_one_or_none()

    async def get_by_phone(self, phone_number: str) -> Optional[Customer]:
        result = await self.session.execute(
            select(Customer).where(Customer.phone_number == phone_number)
        )
        return result.scalar_one_or_none()


class CallRepository:
    """Data access for calls and their transfer log."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def upsert(self, call_id: str, **kwargs) -> Call:
        call = await self.session.get(Call, call_id)
        if call is None:
            call = Call(id=call_id, **kwargs)
            self.session.add(call)
        else:
            for k, v in kwargs.items():
                setattr(call, k, v)
        await self.session.flush()
        return call

    async def add_transfer(self, call_id: str, from_agent: str, to_agent: str,
                           reason: Optional[str], created_at: datetime) -> CallTransfer:
        transfer = CallTransfer(
            call_id=call_id,
            from_agent=from_agent,
            to_agent=to_agent,
            reason=reason,
            created_at=created_at,
        )
        self.session.add(transfer)
        await self.session.flush()
        return transfer

    async def add_transcript(self, **kwargs) -> CallTranscriptRow:
        row = CallTranscriptRow(**kwargs)
        self.session.add(row)
        await self.session.flush()
        return row


class CommunicationRepository:
    """Data access for scheduled communications."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> CommunicationLog:
        row = CommunicationLog(**kwargs)
        self.session.add(row)
        await self.session.flush()
        return row

    async def get_by_id(self, comm_id: str) -> Optional[CommunicationLog]:
        return await self.session.get(CommunicationLog, comm_id)

    async def get_by_key(self, idempotency_key: str) -> Optional[CommunicationLog]:
        result = await self.session.execute(
            select(CommunicationLog).where(CommunicationLog.idempotency_key == idempotency_key)
        )
        return result.scalar_one_or_none()

    async def get_pending(self, before: Optional[datetime] = None) -> List[CommunicationLog]:
        q = select(CommunicationLog).where(CommunicationLog.status == "pending")
        if before:
            q = q.where(CommunicationLog.scheduled_at <= before)
        q = q.order_by(CommunicationLog.scheduled_at.asc())
        result = await self.session.execute(q)
        return list(result.scalars().all())

    async def list(self, call_id: Optional[str] = None, status: Optional[str] = None,
                   limit: int = 200) -> List[CommunicationLog]:
        q = select(CommunicationLog).order_by(CommunicationLog.scheduled_at.asc()).limit(limit)
        if call_id:
            q = q.where(CommunicationLog.call_id == call_id)
        if status:
            q = q.where(CommunicationLog.status == status)
        result = await self.session.execute(q)
        return list(result.scalars().all())

    async def set_status(self, comm_id: str, expected: str, **values: Any) -> bool:
        """Conditional update; returns False when the row is no longer in ``expected``."""
        result = await self.session.execute(
            update(CommunicationLog)
            .where(CommunicationLog.id == comm_id, CommunicationLog.status == expected)
            .values(**values)
        )
        await self.session.flush()
        return (result.rowcount or 0) > 0

    async def cancel_pending(self, call_id: str, channel: Optional[str] = None) -> int:
        q = (
            update(CommunicationLog)
            .where(CommunicationLog.call_id == call_id, CommunicationLog.status == "pending")
            .values(status="cancelled")
        )
        if channel:
            q = q.where(CommunicationLog.channel == channel)
        result = await self.session.execute(q)
        await self.session.flush()
        return result.rowcount or 0


class CampaignRepository:
    """Data access for education campaigns."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def upsert(self, **kwargs) -> EducationCampaignRow:
        result = await self.session.execute(
            select(EducationCampaignRow).where(EducationCampaignRow.name == kwargs["name"])
        )
        row = result.scalar_one_or_none()
        if row is None:
            row = EducationCampaignRow(**kwargs)
            self.session.add(row)
        else:
            for k, v in kwargs.items():
                setattr(row, k, v)
        await self.session.flush()
        return row

    async def list_active(self, series: Optional[str] = None) -> List[EducationCampaignRow]:
        q = select(EducationCampaignRow).where(EducationCampaignRow.is_active == True)
        if series:
            q = q.where(EducationCampaignRow.series == series)
        q = q.order_by(EducationCampaignRow.sequence_order.asc())
        result = await self.session.execute(q)
        return list(result.scalars().all())


class InventoryRepository:
    """Data access for vehicle inventory and shared links."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, **kwargs) -> InventoryRow:
        row = InventoryRow(**kwargs)
        self.session.add(row)
        await self.session.flush()
        return row

    async def get_by_stock_number(self, stock_number: str) -> Optional[InventoryRow]:
        result = await self.session.execute(
            select(InventoryRow).where(InventoryRow.stock_number == stock_number)
        )
        return result.scalar_one_or_none()

    async def get_many(self, ids: List[str]) -> List[InventoryRow]:
        if not ids:
            return []
        result = await self.session.execute(
            select(InventoryRow).where(InventoryRow.id.in_(ids)).order_by(InventoryRow.price.asc())
        )
        return list(result.scalars().all())

    async def search(self, criteria: Dict[str, Any]) -> List[InventoryRow]:
        q = select(InventoryRow).where(InventoryRow.is_available == True)
        if criteria.get("year"):
            q = q.where(InventoryRow.year == criteria["year"])
        if criteria.get("make"):
            q = q.where(InventoryRow.make.ilike(f"%{criteria['make']}%"))
        if criteria.get("model"):
            q = q.where(InventoryRow.model.ilike(f"%{criteria['model']}%"))
        if criteria.get("stock_number"):
            q = q.where(InventoryRow.stock_number == criteria["stock_number"])
        if criteria.get("body_type"):
            q = q.where(InventoryRow.body_type.ilike(criteria["body_type"]))
        if criteria.get("min_mileage") is not None:
            q = q.where(InventoryRow.mileage >= criteria["min_mileage"])
        if criteria.get("max_mileage") is not None:
            q = q.where(InventoryRow.mileage <= criteria["max_mileage"])
        if criteria.get("price_min") is not None:
            q = q.where(InventoryRow.price >= criteria["price_min"])
        if criteria.get("price_max") is not None:
            q = q.where(InventoryRow.price <= criteria["price_max"])
        result = await self.session.execute(q.order_by(InventoryRow.price.asc()))
        return list(result.scalars().all())

    async def create_link(self, **kwargs) -> SharedLinkRow:
        row = SharedLinkRow(**kwargs)
        self.session.add(row)
        await self.session.flush()
        return row

    async def get_link(self, short_code: str) -> Optional[SharedLinkRow]:
        return await self.session.get(SharedLinkRow, short_code)

    async def increment_clicks(self, short_code: str) -> None:
        await self.session.execute(
            update(SharedLinkRow)
            .where(SharedLinkRow.short_code == short_code)
            .values(clicks=SharedLinkRow.clicks + 1)
        )
        await self.session.flush()


class AssignmentRepository:
    """Data access for salesperson assignments."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> SalesAssignmentRow:
        row = SalesAssignmentRow(**kwargs)
        self.session.add(row)
        await self.session.flush()
        return row

    async def get_latest_for_call(self, call_id: str) -> Optional[SalesAssignmentRow]:
        result = await self.session.execute(
            select(SalesAssignmentRow)
            .where(SalesAssignmentRow.call_id == call_id)
            .order_by(SalesAssignmentRow.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()
