"""Tests for follow-up scheduling and the delivery sweep."""

import asyncio
from datetime import timedelta

import pytest

from api.channels.base import ChannelResponse
from communications.campaigns import DEFAULT_CAMPAIGNS, seed_campaigns
from communications.scheduler import CommunicationScheduler, education_key, email_key, sms_key
from communications.sweep import CommunicationSweep, TransientDeliveryError
from communications.templates import strip_html, summary_body, wrap_html
from database.records import (
    CommunicationChannel, CommunicationStatus, CustomerProfile, ScheduledCommunication, SharedLink,
    WriteResult,
)
from database.sink import InMemoryRecordSink
from inventory.matcher import MOCK_INVENTORY
from squad.assignment import DEFAULT_ROSTER

LINK = "https://dealer.test/inventory/abc123def0"


class FailingEmailSink(InMemoryRecordSink):
    """Rejects summary email writes only."""

    async def create_communication(self, comm):
        if comm.channel == CommunicationChannel.EMAIL:
            return WriteResult.failure("disk full")
        return await super().create_communication(comm)


def channels(comms):
    return [c.channel for c in comms]


@pytest.fixture
def scheduler(seeded_sink, now):
    return CommunicationScheduler(seeded_sink, clock=lambda: now, dealership_name="Test Motors")


# ── Scheduler ─────────────────────────────────────────

class TestCommunicationScheduler:
    @pytest.mark.asyncio
    async def test_full_plan(self, scheduler, customer, now):
        planned = await scheduler.plan("call-1", customer, DEFAULT_ROSTER[0], MOCK_INVENTORY, LINK)

        assert channels(planned).count(CommunicationChannel.SMS) == 1
        assert channels(planned).count(CommunicationChannel.EMAIL) == 1
        assert channels(planned).count(CommunicationChannel.EDUCATION) == 3

        sms = planned[0]
        assert sms.channel == CommunicationChannel.SMS
        assert sms.scheduled_at == now
        assert LINK in sms.body
        assert "John Smith" in sms.body

        email = next(c for c in planned if c.channel == CommunicationChannel.EMAIL)
        assert email.scheduled_at == now + timedelta(minutes=20)
        assert email.subject == "Your Vehicle Search Results - Toyota Options Available"
        assert "Stock #INV004" in email.body
        assert email.metadata["salesperson"] == "John Smith"

        drip = [c for c in planned if c.channel == CommunicationChannel.EDUCATION]
        assert [c.scheduled_at - now for c in drip] == [timedelta(days=d) for d in (1, 3, 5)]
        assert [c.metadata["sequence"] for c in drip] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_ordered_by_scheduled_at(self, scheduler, customer):
        planned = await scheduler.plan("call-1", customer, DEFAULT_ROSTER[0], MOCK_INVENTORY, LINK)
        times = [c.scheduled_at for c in planned]
        assert times == sorted(times)

    @pytest.mark.asyncio
    async def test_no_email_means_no_email_message(self, scheduler, customer):
        customer.email = None
        planned = await scheduler.plan("call-1", customer, DEFAULT_ROSTER[0], MOCK_INVENTORY, LINK)
        assert CommunicationChannel.EMAIL not in channels(planned)
        assert CommunicationChannel.SMS in channels(planned)

    @pytest.mark.asyncio
    async def test_no_link_means_no_sms(self, scheduler, customer):
        planned = await scheduler.plan("call-1", customer, DEFAULT_ROSTER[0], [], None)
        assert CommunicationChannel.SMS not in channels(planned)
        assert CommunicationChannel.EMAIL in channels(planned)

    @pytest.mark.asyncio
    async def test_planning_twice_creates_no_duplicates(self, scheduler, seeded_sink, customer):
        first = await scheduler.plan("call-1", customer, DEFAULT_ROSTER[0], MOCK_INVENTORY, LINK)
        second = await scheduler.plan("call-1", customer, DEFAULT_ROSTER[1], MOCK_INVENTORY, LINK)

        assert len(seeded_sink.communications) == len(first) == 5
        assert {c.id for c in first} == {c.id for c in second}
        keys = {c.idempotency_key for c in seeded_sink.communications.values()}
        assert sms_key("call-1") in keys
        assert email_key("call-1") in keys
        assert education_key("call-1", DEFAULT_CAMPAIGNS[0].name) in keys

    @pytest.mark.asyncio
    async def test_concurrent_plans_create_no_duplicates(self, scheduler, seeded_sink, customer):
        await asyncio.gather(*(
            scheduler.plan("call-1", customer, DEFAULT_ROSTER[0], MOCK_INVENTORY, LINK) for _ in range(5)
        ))
        assert len(seeded_sink.communications) == 5

    @pytest.mark.asyncio
    async def test_sent_entries_are_not_rescheduled(self, scheduler, seeded_sink, customer):
        planned = await scheduler.plan("call-1", customer, DEFAULT_ROSTER[0], MOCK_INVENTORY, LINK)
        for comm in planned:
            await seeded_sink.update_communication(comm.id, CommunicationStatus.SENT)
        again = await scheduler.plan("call-1", customer, DEFAULT_ROSTER[0], MOCK_INVENTORY, LINK)
        assert all(c.status == CommunicationStatus.SENT for c in again)
        assert len(seeded_sink.communications) == 5

    @pytest.mark.asyncio
    async def test_other_series(self, seeded_sink, customer, now):
        scheduler = CommunicationScheduler(seeded_sink, education_series="maintenance", clock=lambda: now)
        planned = await scheduler.plan("call-1", customer, None, [], None)
        drip = [c for c in planned if c.channel == CommunicationChannel.EDUCATION]
        assert [c.scheduled_at - now for c in drip] == [timedelta(days=7), timedelta(days=14)]

    @pytest.mark.asyncio
    async def test_one_failed_write_does_not_block_others(self, customer, now):
        sink = FailingEmailSink()
        await seed_campaigns(sink)
        scheduler = CommunicationScheduler(sink, clock=lambda: now)

        planned = await scheduler.plan("call-1", customer, DEFAULT_ROSTER[0], MOCK_INVENTORY, LINK)
        assert CommunicationChannel.EMAIL not in channels(planned)
        assert channels(planned).count(CommunicationChannel.SMS) == 1
        assert channels(planned).count(CommunicationChannel.EDUCATION) == 3

    @pytest.mark.asyncio
    async def test_broken_template_is_isolated(self, scheduler, customer, monkeypatch):
        def broken(*args, **kwargs):
            raise KeyError("template")

        monkeypatch.setattr("communications.templates.sms_body", broken)
        planned = await scheduler.plan("call-1", customer, DEFAULT_ROSTER[0], MOCK_INVENTORY, LINK)
        assert CommunicationChannel.SMS not in channels(planned)
        assert len(planned) == 4

    @pytest.mark.asyncio
    async def test_cancel_drip(self, scheduler, seeded_sink, customer):
        await scheduler.plan("call-1", customer, DEFAULT_ROSTER[0], MOCK_INVENTORY, LINK)
        assert await scheduler.cancel_drip("call-1") == 3
        statuses = {c.channel: c.status for c in seeded_sink.communications.values()}
        assert statuses[CommunicationChannel.EDUCATION] == CommunicationStatus.CANCELLED
        assert statuses[CommunicationChannel.SMS] == CommunicationStatus.PENDING

    @pytest.mark.asyncio
    async def test_plan_captures_recipients(self, scheduler, customer):
        planned = await scheduler.plan("call-1", customer, DEFAULT_ROSTER[0], MOCK_INVENTORY, LINK)
        recipients = {c.channel: c.recipient for c in planned}
        assert recipients[CommunicationChannel.SMS] == customer.phone_number
        assert recipients[CommunicationChannel.EMAIL] == "jane@example.com"
        assert recipients[CommunicationChannel.EDUCATION] == "jane@example.com"

    @pytest.mark.asyncio
    async def test_contact_request_is_due_now(self, scheduler, seeded_sink, customer, now):
        link = SharedLink(
            short_code="abc123def0",
            full_url=LINK,
            call_id="call-1",
            customer_id=customer.id,
            inventory_ids=[MOCK_INVENTORY[3].id],
            expires_at=now + timedelta(days=30),
        )
        first = await scheduler.schedule_contact_request(
            link, "sales@dealer.test", "Is it still there?", customer=customer, vehicle=MOCK_INVENTORY[3]
        )
        second = await scheduler.schedule_contact_request(link, "sales@dealer.test", "Hello again")

        assert first.id != second.id
        assert first.scheduled_at == now
        assert first.recipient == "sales@dealer.test"
        assert first.metadata["kind"] == "contact_request"
        assert "Contact Method Preferred: Any" in first.body
        assert second.subject == "Urgent: Customer Contact Request - Website Visitor"
        assert [c.id for c in await seeded_sink.pending_communications(now)] == [first.id, second.id]

    @pytest.mark.asyncio
    async def test_contact_request_write_failure(self, customer, now):
        scheduler = CommunicationScheduler(FailingEmailSink(), clock=lambda: now)
        link = SharedLink(
            short_code="abc123def0", full_url=LINK, call_id=None, customer_id=None,
            inventory_ids=[], expires_at=now + timedelta(days=30),
        )
        assert await scheduler.schedule_contact_request(link, "sales@dealer.test", "hi") is None


# ── Sweep ─────────────────────────────────────────────

async def _schedule(sink, customer, channel, when, key):
    comm = ScheduledCommunication(
        call_id="call-1",
        customer_id=customer.id if customer else None,
        channel=channel,
        subject="Subject",
        body="Body",
        scheduled_at=when,
        idempotency_key=key,
    )
    await sink.create_communication(comm)
    return comm


class TestCommunicationSweep:
    @pytest.mark.asyncio
    async def test_due_sent_future_pending_no_recipient_failed(self, sink, sender, customer, now):
        await sink.get_or_create_customer(customer)
        due = await _schedule(sink, customer, CommunicationChannel.SMS, now, "k1")
        future = await _schedule(sink, customer, CommunicationChannel.EDUCATION, now + timedelta(days=1), "k2")
        orphan = await _schedule(sink, None, CommunicationChannel.EMAIL, now - timedelta(minutes=1), "k3")

        report = await CommunicationSweep(sink, sender).run_once(now)

        assert (report.processed, report.sent, report.failed) == (2, 1, 1)
        assert due.status == CommunicationStatus.SENT
        assert due.sent_at == now
        assert future.status == CommunicationStatus.PENDING
        assert orphan.status == CommunicationStatus.FAILED
        assert sender.sent[0]["recipient"] == customer.phone_number

    @pytest.mark.asyncio
    async def test_email_goes_to_email_address(self, sink, sender, customer, now):
        await sink.get_or_create_customer(customer)
        await _schedule(sink, customer, CommunicationChannel.EDUCATION, now, "k1")
        await CommunicationSweep(sink, sender).run_once(now)
        assert sender.sent[0]["recipient"] == "jane@example.com"

    @pytest.mark.asyncio
    async def test_sent_records_are_not_delivered_again(self, sink, sender, customer, now):
        await sink.get_or_create_customer(customer)
        await _schedule(sink, customer, CommunicationChannel.SMS, now, "k1")
        sweep = CommunicationSweep(sink, sender)
        await sweep.run_once(now)
        report = await sweep.run_once(now + timedelta(minutes=5))
        assert report.processed == 0
        assert len(sender.sent) == 1

    @pytest.mark.asyncio
    async def test_transient_failure_stays_pending(self, sink, sender, customer, now):
        await sink.get_or_create_customer(customer)
        comm = await _schedule(sink, customer, CommunicationChannel.SMS, now, "k1")
        sender.responses[customer.phone_number] = ChannelResponse(success=False, error="503", transient=True)

        report = await CommunicationSweep(sink, sender).run_once(now)
        assert report.retrying == 1
        assert comm.status == CommunicationStatus.PENDING
        assert comm.attempts == 1

    @pytest.mark.asyncio
    async def test_transient_exception_gives_up_after_max_attempts(self, sink, sender, customer, now):
        await sink.get_or_create_customer(customer)
        comm = await _schedule(sink, customer, CommunicationChannel.SMS, now, "k1")
        sender.responses[customer.phone_number] = TransientDeliveryError("timeout")

        sweep = CommunicationSweep(sink, sender, max_attempts=3)
        for _ in range(3):
            await sweep.run_once(now)
        assert comm.status == CommunicationStatus.FAILED
        assert comm.attempts == 3
        assert len(sender.sent) == 3

    @pytest.mark.asyncio
    async def test_permanent_failure_marks_failed(self, sink, sender, customer, now):
        await sink.get_or_create_customer(customer)
        comm = await _schedule(sink, customer, CommunicationChannel.SMS, now, "k1")
        sender.responses[customer.phone_number] = ChannelResponse(success=False, error="invalid number")
        report = await CommunicationSweep(sink, sender).run_once(now)
        assert report.failed == 1
        assert comm.status == CommunicationStatus.FAILED

    @pytest.mark.asyncio
    async def test_one_bad_record_does_not_block_others(self, sink, sender, now):
        good = CustomerProfile(phone_number="+1555000", email="good@example.com")
        bad = CustomerProfile(phone_number="+1555999", email="bad@example.com")
        await sink.get_or_create_customer(good)
        await sink.get_or_create_customer(bad)
        sender.responses[bad.phone_number] = RuntimeError("provider exploded")
        ok = await _schedule(sink, good, CommunicationChannel.SMS, now, "k1")
        broken = await _schedule(sink, bad, CommunicationChannel.SMS, now, "k2")

        report = await CommunicationSweep(sink, sender).run_once(now)
        assert ok.status == CommunicationStatus.SENT
        assert broken.status == CommunicationStatus.FAILED
        assert len(report.errors) == 1

    @pytest.mark.asyncio
    async def test_cancelled_records_are_skipped(self, sink, sender, customer, now):
        await sink.get_or_create_customer(customer)
        comm = await _schedule(sink, customer, CommunicationChannel.SMS, now, "k1")
        await sink.update_communication(comm.id, CommunicationStatus.CANCELLED)
        report = await CommunicationSweep(sink, sender).run_once(now)
        assert report.processed == 0
        assert sender.sent == []

    @pytest.mark.asyncio
    async def test_background_loop_start_stop(self, sink, sender, customer, now):
        await sink.get_or_create_customer(customer)
        comm = await _schedule(sink, customer, CommunicationChannel.SMS, now, "k1")
        reports = []
        sweep = CommunicationSweep(sink, sender, on_report=reports.append)
        sweep.start(interval=0.01)
        for _ in range(100):
            if comm.status == CommunicationStatus.SENT:
                break
            await asyncio.sleep(0.01)
        await sweep.stop()
        assert comm.status == CommunicationStatus.SENT
        assert reports


# ── Templates ─────────────────────────────────────────

def test_wrap_html_layouts():
    html = wrap_html("<p>Tip</p>", "education", dealership="Test Motors", phone="+1555")
    assert "Car Buying Tips" in html
    assert "Test Motors" in html
    assert "<p>Tip</p>" in html
    assert "Test Motors | +1555" in wrap_html("Hi", "unknown", dealership="Test Motors", phone="+1555")


def test_strip_html():
    assert strip_html("<h3>Title</h3>\n\n\n<p>Body</p>") == "Title\n\nBody"


def test_plain_bodies_are_escaped():
    body = summary_body(CustomerProfile(phone_number="+1", name="<script>alert(1)</script> & Co"), None, [])
    html = wrap_html(body, dealership="Test & Sons")
    assert "<script>" not in html
    assert "Dear &lt;script&gt;alert(1)&lt;/script&gt; &amp; Co," in html
    assert "Test &amp; Sons" in html
