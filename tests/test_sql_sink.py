"""Tests for the SQLAlchemy-backed record sink (SQLite file via aiosqlite)."""

from datetime import timedelta

import pytest

from communications.campaigns import seed_campaigns
from communications.scheduler import CommunicationScheduler
from database.records import (
    CallTranscript, CommunicationStatus, CustomerProfile, SalesAssignment, SharedLink,
)
from database.session import close_db, init_db, normalize_url
from database.sink import SqlRecordSink
from inventory.matcher import MOCK_INVENTORY, seed_inventory
from squad.assignment import DEFAULT_ROSTER


@pytest.fixture
async def sql_sink(tmp_path):
    factory = await init_db(f"sqlite:///{tmp_path / 'squad.db'}")
    yield SqlRecordSink(factory)
    await close_db()


@pytest.mark.parametrize("url,expected", [
    ("postgresql://u:p@db/squad", "postgresql+asyncpg://u:p@db/squad"),
    ("postgres://u:p@db/squad", "postgresql+asyncpg://u:p@db/squad"),
    ("sqlite:///squad.db", "sqlite+aiosqlite:///squad.db"),
    ("postgresql+asyncpg://db/squad", "postgresql+asyncpg://db/squad"),
])
def test_normalize_url(url, expected):
    assert normalize_url(url) == expected


@pytest.mark.asyncio
async def test_customer_is_created_once(sql_sink, customer):
    first = await sql_sink.get_or_create_customer(customer)
    again = await sql_sink.get_or_create_customer(CustomerProfile(phone_number=customer.phone_number, name="Other"))

    assert first.ok and again.ok
    assert again.record.id == customer.id
    assert again.record.name == "Jane Doe"
    assert (await sql_sink.get_customer(customer.id)).email == "jane@example.com"


@pytest.mark.asyncio
async def test_plan_and_deliver_state(sql_sink, customer, now):
    await seed_campaigns(sql_sink)
    await sql_sink.get_or_create_customer(customer)
    scheduler = CommunicationScheduler(sql_sink, clock=lambda: now)

    planned = await scheduler.plan("call-1", customer, DEFAULT_ROSTER[0], MOCK_INVENTORY[:1], "https://x/y")
    assert len(planned) == 5
    replanned = await scheduler.plan("call-1", customer, DEFAULT_ROSTER[0], MOCK_INVENTORY[:1], "https://x/y")
    assert [c.id for c in replanned] == [c.id for c in planned]
    assert len(await sql_sink.list_communications(call_id="call-1")) == 5

    due = await sql_sink.pending_communications(now)
    assert len(due) == 1
    sms = due[0]
    assert sms.scheduled_at == now
    assert sms.recipient == customer.phone_number

    assert await sql_sink.update_communication(sms.id, CommunicationStatus.SENT, sent_at=now, attempts=1)
    assert not await sql_sink.update_communication(sms.id, CommunicationStatus.FAILED)
    stored = await sql_sink.get_communication(sms.id)
    assert stored.status == CommunicationStatus.SENT
    assert stored.attempts == 1

    assert await sql_sink.cancel_communications("call-1", "education") == 3
    pending = await sql_sink.list_communications(status="pending")
    assert [c.channel.value for c in pending] == ["email"]


@pytest.mark.asyncio
async def test_inventory_search(sql_sink):
    assert await seed_inventory(sql_sink) == len(MOCK_INVENTORY)
    assert await seed_inventory(sql_sink) == 0

    suvs = await sql_sink.search_inventory({"body_type": "SUV", "price_max": 40000})
    assert [v.stock_number for v in suvs] == ["INV002"]

    toyota = await sql_sink.search_inventory({"make": "toyota"})
    assert toyota[0].model == "4Runner"
    assert toyota[0].features == MOCK_INVENTORY[3].features

    by_id = await sql_sink.get_vehicles([MOCK_INVENTORY[0].id, MOCK_INVENTORY[2].id])
    assert [v.stock_number for v in by_id] == ["INV001", "INV003"]


@pytest.mark.asyncio
async def test_shared_link_clicks(sql_sink, now):
    link = SharedLink(
        short_code="abc123def0",
        full_url="https://dealer.test/inventory/abc123def0",
        call_id="call-1",
        customer_id=None,
        inventory_ids=["v1", "v2"],
        expires_at=now + timedelta(days=30),
    )
    assert (await sql_sink.create_link(link)).ok
    assert not (await sql_sink.create_link(link)).ok

    await sql_sink.increment_link_clicks("abc123def0")
    stored = await sql_sink.get_link("abc123def0")
    assert stored.clicks == 1
    assert stored.inventory_ids == ["v1", "v2"]
    assert stored.expires_at == now + timedelta(days=30)


@pytest.mark.asyncio
async def test_call_rows(sql_sink, now):
    snapshot = {
        "id": "call-1", "current_agent": "leadQualifier", "status": "active", "outcome": None,
        "summary": None, "customer_phone": "+15551234567", "context": {"intent": "buy"},
        "started_at": now, "ended_at": None,
    }
    assert (await sql_sink.save_call(snapshot)).ok
    transfer = {"from_agent": "leadQualifier", "to_agent": "salesAgent", "reason": "lead qualified", "timestamp": now}
    assert (await sql_sink.add_transfer("call-1", transfer)).ok
    assert (await sql_sink.store_transcript(CallTranscript(call_id="call-1", lead_score=87))).ok

    person = DEFAULT_ROSTER[0]
    assignment = SalesAssignment(
        call_id="call-1",
        salesperson_name=person.name,
        salesperson_email=person.email,
        salesperson_phone=person.phone,
    )
    assert (await sql_sink.record_assignment(assignment)).ok
    stored = await sql_sink.get_assignment("call-1")
    assert stored.salesperson_email == person.email
    assert await sql_sink.get_assignment("call-2") is None
