"""
Record sink for the dealership squad backend.

The sink is the only way the core touches storage. Writes return a
WriteResult instead of raising so each caller decides deliberately
whether a failed write matters for the current turn.

Two implementations:
- InMemoryRecordSink: process-local, used when no DATABASE_URL is set and in tests
- SqlRecordSink: SQLAlchemy async sessions over the repositories
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .records import (
    CallTranscript, CommunicationStatus, CustomerProfile, EducationCampaign,
    InventoryVehicle, SalesAssignment, ScheduledCommunication, SharedLink,
    WriteResult, utcnow,
)
from .repositories import (
    AssignmentRepository, CallRepository, CampaignRepository,
    CommunicationRepository, CustomerRepository, InventoryRepository,
)
from .session import session_scope

logger = logging.getLogger(__name__)


class RecordSink(ABC):
    """Storage operations the core depends on."""

    # Customers

    @abstractmethod
    async def get_or_create_customer(self, profile: CustomerProfile) -> WriteResult:
        """Create the profile if its phone number is unknown, otherwise return the stored one."""

    @abstractmethod
    async def get_customer(self, customer_id: str) -> Optional[CustomerProfile]:
        ...

    # Calls

    @abstractmethod
    async def save_call(self, snapshot: Dict[str, Any]) -> WriteResult:
        ...

    @abstractmethod
    async def add_transfer(self, call_id: str, transfer: Dict[str, Any]) -> WriteResult:
        ...

    @abstractmethod
    async def store_transcript(self, transcript: CallTranscript) -> WriteResult:
        ...

    # Communications

    @abstractmethod
    async def find_communication(self, idempotency_key: str) -> Optional[ScheduledCommunication]:
        ...

    @abstractmethod
    async def create_communication(self, comm: ScheduledCommunication) -> WriteResult:
        """Insert; returns an ``already_exists`` result when the idempotency key is taken."""

    @abstractmethod
    async def get_communication(self, comm_id: str) -> Optional[ScheduledCommunication]:
        ...

    @abstractmethod
    async def pending_communications(self, before: datetime) -> List[ScheduledCommunication]:
        ...

    @abstractmethod
    async def list_communications(
        self, call_id: Optional[str] = None, status: Optional[str] = None
    ) -> List[ScheduledCommunication]:
        ...

    @abstractmethod
    async def update_communication(
        self,
        comm_id: str,
        status: CommunicationStatus,
        sent_at: Optional[datetime] = None,
        attempts: Optional[int] = None,
    ) -> bool:
        """Update a pending communication; False if it was no longer pending."""

    @abstractmethod
    async def cancel_communications(self, call_id: str, channel: Optional[str] = None) -> int:
        ...

    # Campaigns

    @abstractmethod
    async def list_campaigns(self, series: Optional[str] = None) -> List[EducationCampaign]:
        ...

    @abstractmethod
    async def save_campaign(self, campaign: EducationCampaign) -> WriteResult:
        ...

    # Inventory

    @abstractmethod
    async def add_vehicle(self, vehicle: InventoryVehicle) -> WriteResult:
        ...

    @abstractmethod
    async def search_inventory(self, criteria: Dict[str, Any]) -> List[InventoryVehicle]:
        ...

    @abstractmethod
    async def get_vehicles(self, ids: List[str]) -> List[InventoryVehicle]:
        ...

    @abstractmethod
    async def create_link(self, link: SharedLink) -> WriteResult:
        ...

    @abstractmethod
    async def get_link(self, short_code: str) -> Optional[SharedLink]:
        ...

    @abstractmethod
    async def increment_link_clicks(self, short_code: str) -> None:
        ...

    # Assignments

    @abstractmethod
    async def record_assignment(self, assignment: SalesAssignment) -> WriteResult:
        ...

    @abstractmethod
    async def get_assignment(self, call_id: str) -> Optional[SalesAssignment]:
        """Most recent salesperson assignment for a call."""
        ...


def vehicle_matches(vehicle: InventoryVehicle, criteria: Dict[str, Any]) -> bool:
    """Filter used by the in-memory sink; mirrors the SQL search."""
    if not vehicle.is_available:
        return False
    if criteria.get("year") and vehicle.year != int(criteria["year"]):
        return False
    if criteria.get("make") and criteria["make"].lower() not in vehicle.make.lower():
        return False
    if criteria.get("model") and criteria["model"].lower() not in vehicle.model.lower():
        return False
    if criteria.get("stock_number") and vehicle.stock_number != criteria["stock_number"]:
        return False
    if criteria.get("body_type") and (vehicle.body_type or "").lower() != criteria["body_type"].lower():
        return False
    if criteria.get("min_mileage") is not None and vehicle.mileage < criteria["min_mileage"]:
        return False
    if criteria.get("max_mileage") is not None and vehicle.mileage > criteria["max_mileage"]:
        return False
    if criteria.get("price_min") is not None and vehicle.price < criteria["price_min"]:
        return False
    if criteria.get("price_max") is not None and vehicle.price > criteria["price_max"]:
        return False
    return True


class InMemoryRecordSink(RecordSink):
    """
    Process-local sink.

    Every method body runs without awaiting, so each operation is atomic
    with respect to other coroutines on the same event loop.
    """

    def __init__(self):
        self.customers: Dict[str, CustomerProfile] = {}
        self.calls: Dict[str, Dict[str, Any]] = {}
        self.transfers: Dict[str, List[Dict[str, Any]]] = {}
        self.transcripts: List[CallTranscript] = []
        self.communications: Dict[str, ScheduledCommunication] = {}
        self._comm_keys: Dict[str, str] = {}
        self.campaigns: Dict[str, EducationCampaign] = {}
        self.inventory: Dict[str, InventoryVehicle] = {}
        self.links: Dict[str, SharedLink] = {}
        self.assignments: List[SalesAssignment] = []

    async def get_or_create_customer(self, profile: CustomerProfile) -> WriteResult:
        for existing in self.customers.values():
            if existing.phone_number == profile.phone_number:
                return WriteResult.success(existing)
        self.customers[profile.id] = profile
        return WriteResult.success(profile)

    async def get_customer(self, customer_id: str) -> Optional[CustomerProfile]:
        return self.customers.get(customer_id)

    async def save_call(self, snapshot: Dict[str, Any]) -> WriteResult:
        self.calls[snapshot["id"]] = dict(snapshot)
        return WriteResult.success(snapshot)

    async def add_transfer(self, call_id: str, transfer: Dict[str, Any]) -> WriteResult:
        self.transfers.setdefault(call_id, []).append(dict(transfer))
        return WriteResult.success(transfer)

    async def store_transcript(self, transcript: CallTranscript) -> WriteResult:
        self.transcripts.append(transcript)
        return WriteResult.success(transcript)

    async def find_communication(self, idempotency_key: str) -> Optional[ScheduledCommunication]:
        comm_id = self._comm_keys.get(idempotency_key)
        return self.communications.get(comm_id) if comm_id else None

    async def create_communication(self, comm: ScheduledCommunication) -> WriteResult:
        existing_id = self._comm_keys.get(comm.idempotency_key)
        if existing_id:
            return WriteResult.already_exists(self.communications[existing_id])
        self.communications[comm.id] = comm
        self._comm_keys[comm.idempotency_key] = comm.id
        return WriteResult.success(comm)

    async def get_communication(self, comm_id: str) -> Optional[ScheduledCommunication]:
        return self.communications.get(comm_id)

    async def pending_communications(self, before: datetime) -> List[ScheduledCommunication]:
        due = [
            c for c in self.communications.values()
            if c.status == CommunicationStatus.PENDING and c.scheduled_at <= before
        ]
        return sorted(due, key=lambda c: c.scheduled_at)

    async def list_communications(
        self, call_id: Optional[str] = None, status: Optional[str] = None
    ) -> List[ScheduledCommunication]:
        results = list(self.communications.values())
        if call_id:
            results = [c for c in results if c.call_id == call_id]
        if status:
            results = [c for c in results if c.status.value == status]
        return sorted(results, key=lambda c: c.scheduled_at)

    async def update_communication(
        self,
        comm_id: str,
        status: CommunicationStatus,
        sent_at: Optional[datetime] = None,
        attempts: Optional[int] = None,
    ) -> bool:
        comm = self.communications.get(comm_id)
        if comm is None or comm.status != CommunicationStatus.PENDING:
            return False
        comm.status = CommunicationStatus(status)
        if sent_at is not None:
            comm.sent_at = sent_at
        if attempts is not None:
            comm.attempts = attempts
        return True

    async def cancel_communications(self, call_id: str, channel: Optional[str] = None) -> int:
        cancelled = 0
        for comm in self.communications.values():
            if comm.call_id != call_id or comm.status != CommunicationStatus.PENDING:
                continue
            if channel and comm.channel.value != channel:
                continue
            comm.status = CommunicationStatus.CANCELLED
            cancelled += 1
        return cancelled

    async def list_campaigns(self, series: Optional[str] = None) -> List[EducationCampaign]:
        campaigns = [
            c for c in self.campaigns.values()
            if c.is_active and (series is None or c.series == series)
        ]
        return sorted(campaigns, key=lambda c: c.sequence_order)

    async def save_campaign(self, campaign: EducationCampaign) -> WriteResult:
        self.campaigns[campaign.name] = campaign
        return WriteResult.success(campaign)

    async def add_vehicle(self, vehicle: InventoryVehicle) -> WriteResult:
        for existing in self.inventory.values():
            if existing.stock_number == vehicle.stock_number:
                return WriteResult.already_exists(existing)
        self.inventory[vehicle.id] = vehicle
        return WriteResult.success(vehicle)

    async def search_inventory(self, criteria: Dict[str, Any]) -> List[InventoryVehicle]:
        matches = [v for v in self.inventory.values() if vehicle_matches(v, criteria)]
        return sorted(matches, key=lambda v: v.price)

    async def get_vehicles(self, ids: List[str]) -> List[InventoryVehicle]:
        vehicles = [self.inventory[i] for i in ids if i in self.inventory]
        return sorted(vehicles, key=lambda v: v.price)

    async def create_link(self, link: SharedLink) -> WriteResult:
        if link.short_code in self.links:
            return WriteResult.already_exists(self.links[link.short_code])
        self.links[link.short_code] = link
        return WriteResult.success(link)

    async def get_link(self, short_code: str) -> Optional[SharedLink]:
        return self.links.get(short_code)

    async def increment_link_clicks(self, short_code: str) -> None:
        link = self.links.get(short_code)
        if link:
            link.clicks += 1

    async def record_assignment(self, assignment: SalesAssignment) -> WriteResult:
        self.assignments.append(assignment)
        return WriteResult.success(assignment)

    async def get_assignment(self, call_id: str) -> Optional[SalesAssignment]:
        matches = [a for a in self.assignments if a.call_id == call_id]
        return matches[-1] if matches else None


def _comm_from_row(row) -> ScheduledCommunication:
    return ScheduledCommunication.from_mapping(row.to_dict())


class SqlRecordSink(RecordSink):
    """Record sink backed by SQLAlchemy async sessions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def _write(self, operation: str, fn) -> WriteResult:
        try:
            async with session_scope(self.session_factory) as session:
                return await fn(session)
        except IntegrityError as e:
            logger.warning(f"{operation}: integrity error: {e.orig}")
            return WriteResult.failure(f"integrity error: {e.orig}")
        except SQLAlchemyError as e:
            logger.error(f"{operation} failed: {e}")
            return WriteResult.failure(str(e))

    async def _read(self, operation: str, fn, default):
        try:
            async with session_scope(self.session_factory) as session:
                return await fn(session)
        except SQLAlchemyError as e:
            logger.error(f"{operation} failed: {e}")
            return default

    async def get_or_create_customer(self, profile: CustomerProfile) -> WriteResult:
        async def op(session):
            repo = CustomerRepository(session)
            existing = await repo.get_by_phone(profile.phone_number)
            if existing:
                return WriteResult.success(CustomerProfile.from_mapping(existing.to_dict()))
            row = await repo.create(**profile.to_dict() | {"created_at": profile.created_at})
            return WriteResult.success(CustomerProfile.from_mapping(row.to_dict()))
        return await self._write("get_or_create_customer", op)

    async def get_customer(self, customer_id: str) -> Optional[CustomerProfile]:
        async def op(session):
            row = await CustomerRepository(session).get_by_id(customer_id)
            return CustomerProfile.from_mapping(row.to_dict()) if row else None
        return await self._read("get_customer", op, None)

    async def save_call(self, snapshot: Dict[str, Any]) -> WriteResult:
        async def op(session):
            values = {k: v for k, v in snapshot.items() if k not in ("id", "context", "transfer_history", "anomalies")}
            values["context_json"] = snapshot.get("context", {})
            await CallRepository(session).upsert(snapshot["id"], **values)
            return WriteResult.success(snapshot)
        return await self._write("save_call", op)

    async def add_transfer(self, call_id: str, transfer: Dict[str, Any]) -> WriteResult:
        async def op(session):
            repo = CallRepository(session)
            await repo.upsert(call_id, current_agent=transfer["to_agent"])
            row = await repo.add_transfer(
                call_id,
                transfer["from_agent"],
                transfer["to_agent"],
                transfer.get("reason"),
                transfer.get("timestamp") or utcnow(),
            )
            return WriteResult.success(row.to_dict())
        return await self._write("add_transfer", op)

    async def store_transcript(self, transcript: CallTranscript) -> WriteResult:
        async def op(session):
            data = transcript.to_dict()
            data["created_at"] = transcript.created_at
            await CallRepository(session).add_transcript(**data)
            return WriteResult.success(transcript)
        return await self._write("store_transcript", op)

    async def find_communication(self, idempotency_key: str) -> Optional[ScheduledCommunication]:
        async def op(session):
            row = await CommunicationRepository(session).get_by_key(idempotency_key)
            return _comm_from_row(row) if row else None
        return await self._read("find_communication", op, None)

    async def create_communication(self, comm: ScheduledCommunication) -> WriteResult:
        async def op(session):
            repo = CommunicationRepository(session)
            existing = await repo.get_by_key(comm.idempotency_key)
            if existing:
                return WriteResult.already_exists(_comm_from_row(existing))
            await repo.create(
                id=comm.id,
                call_id=comm.call_id,
                customer_id=comm.customer_id,
                recipient=comm.recipient,
                channel=comm.channel.value,
                subject=comm.subject,
                body=comm.body,
                scheduled_at=comm.scheduled_at,
                status=comm.status.value,
                attempts=comm.attempts,
                idempotency_key=comm.idempotency_key,
                metadata_json=comm.metadata,
                created_at=comm.created_at,
            )
            return WriteResult.success(comm)

        result = await self._write("create_communication", op)
        if not result.ok and not result.duplicate and result.error and result.error.startswith("integrity"):
            # lost a race on the idempotency key
            existing = await self.find_communication(comm.idempotency_key)
            if existing:
                return WriteResult.already_exists(existing)
        return result

    async def get_communication(self, comm_id: str) -> Optional[ScheduledCommunication]:
        async def op(session):
            row = await CommunicationRepository(session).get_by_id(comm_id)
            return _comm_from_row(row) if row else None
        return await self._read("get_communication", op, None)

    async def pending_communications(self, before: datetime) -> List[ScheduledCommunication]:
        async def op(session):
            rows = await CommunicationRepository(session).get_pending(before)
            return [_comm_from_row(r) for r in rows]
        return await self._read("pending_communications", op, [])

    async def list_communications(
        self, call_id: Optional[str] = None, status: Optional[str] = None
    ) -> List[ScheduledCommunication]:
        async def op(session):
            rows = await CommunicationRepository(session).list(call_id=call_id, status=status)
            return [_comm_from_row(r) for r in rows]
        return await self._read("list_communications", op, [])

    async def update_communication(
        self,
        comm_id: str,
        status: CommunicationStatus,
        sent_at: Optional[datetime] = None,
        attempts: Optional[int] = None,
    ) -> bool:
        values: Dict[str, Any] = {"status": CommunicationStatus(status).value}
        if sent_at is not None:
            values["sent_at"] = sent_at
        if attempts is not None:
            values["attempts"] = attempts

        async def op(session):
            return await CommunicationRepository(session).set_status(comm_id, "pending", **values)
        return await self._read("update_communication", op, False)

    async def cancel_communications(self, call_id: str, channel: Optional[str] = None) -> int:
        async def op(session):
            return await CommunicationRepository(session).cancel_pending(call_id, channel)
        return await self._read("cancel_communications", op, 0)

    async def list_campaigns(self, series: Optional[str] = None) -> List[EducationCampaign]:
        async def op(session):
            rows = await CampaignRepository(session).list_active(series)
            return [EducationCampaign.from_mapping(r.to_dict()) for r in rows]
        return await self._read("list_campaigns", op, [])

    async def save_campaign(self, campaign: EducationCampaign) -> WriteResult:
        async def op(session):
            await CampaignRepository(session).upsert(**campaign.to_dict())
            return WriteResult.success(campaign)
        return await self._write("save_campaign", op)

    async def add_vehicle(self, vehicle: InventoryVehicle) -> WriteResult:
        async def op(session):
            repo = InventoryRepository(session)
            existing = await repo.get_by_stock_number(vehicle.stock_number)
            if existing:
                return WriteResult.already_exists(InventoryVehicle.from_mapping(existing.to_dict()))
            await repo.add(**vehicle.to_dict())
            return WriteResult.success(vehicle)
        return await self._write("add_vehicle", op)

    async def search_inventory(self, criteria: Dict[str, Any]) -> List[InventoryVehicle]:
        async def op(session):
            rows = await InventoryRepository(session).search(criteria)
            return [InventoryVehicle.from_mapping(r.to_dict()) for r in rows]
        return await self._read("search_inventory", op, [])

    async def get_vehicles(self, ids: List[str]) -> List[InventoryVehicle]:
        async def op(session):
            rows = await InventoryRepository(session).get_many(ids)
            return [InventoryVehicle.from_mapping(r.to_dict()) for r in rows]
        return await self._read("get_vehicles", op, [])

    async def create_link(self, link: SharedLink) -> WriteResult:
        async def op(session):
            await InventoryRepository(session).create_link(
                short_code=link.short_code,
                full_url=link.full_url,
                call_id=link.call_id,
                customer_id=link.customer_id,
                inventory_ids=link.inventory_ids,
                clicks=link.clicks,
                expires_at=link.expires_at,
                created_at=link.created_at,
            )
            return WriteResult.success(link)
        return await self._write("create_link", op)

    async def get_link(self, short_code: str) -> Optional[SharedLink]:
        async def op(session):
            row = await InventoryRepository(session).get_link(short_code)
            return SharedLink.from_mapping(row.to_dict()) if row else None
        return await self._read("get_link", op, None)

    async def increment_link_clicks(self, short_code: str) -> None:
        async def op(session):
            await InventoryRepository(session).increment_clicks(short_code)
        await self._read("increment_link_clicks", op, None)

    async def record_assignment(self, assignment: SalesAssignment) -> WriteResult:
        async def op(session):
            data = assignment.to_dict()
            data["created_at"] = assignment.created_at
            await AssignmentRepository(session).create(**data)
            return WriteResult.success(assignment)
        return await self._write("record_assignment", op)

    async def get_assignment(self, call_id: str) -> Optional[SalesAssignment]:
        async def op(session):
            row = await AssignmentRepository(session).get_latest_for_call(call_id)
            return SalesAssignment.from_mapping(row.to_dict()) if row else None
        return await self._read("get_assignment", op, None)
