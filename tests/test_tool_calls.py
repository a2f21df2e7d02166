"""Tests for tool-call normalization and dispatch."""

import json
from datetime import timedelta

import pytest

from calls.session_store import CallSessionStore
from communications.campaigns import seed_campaigns
from communications.scheduler import CommunicationScheduler
from communications.sweep import CommunicationSweep
from database.records import CommunicationChannel, CommunicationStatus, WriteResult
from database.sink import InMemoryRecordSink
from inventory.links import ShareableLinkService
from inventory.matcher import InventoryMatcher, seed_inventory
from lead_scoring.scoring_model import LeadScorer
from squad.agents import Agent, build_default_catalog
from squad.assignment import DEFAULT_ROSTER, ExpertiseMatchPolicy
from squad.router import AgentRouter
from tool_calls import (
    FALLBACKS, UNSUPPORTED_TEXT, DirectiveType, ShapeKind, ToolCallDispatcher,
    monthly_payment, normalize, resolve_agent,
)

DEALER_PHONE = "+15550000000"


def make_dispatcher(sink, now, **overrides):
    options = dict(
        scorer=LeadScorer(),
        router=AgentRouter(build_default_catalog()),
        store=CallSessionStore(sink),
        scheduler=CommunicationScheduler(sink, clock=lambda: now),
        sink=sink,
        matcher=InventoryMatcher(sink),
        links=ShareableLinkService(sink, "https://dealer.test"),
        assignment=ExpertiseMatchPolicy(DEFAULT_ROSTER),
        dealership_phone=DEALER_PHONE,
        clock=lambda: now,
    )
    options.update(overrides)
    return ToolCallDispatcher(**options)


@pytest.fixture
def dispatcher(seeded_sink, now):
    return make_dispatcher(seeded_sink, now)


def envelope(name, arguments, call_id="call-1", tool_call_id="tc-1"):
    return {
        "message": {
            "type": "tool-calls",
            "call": {"id": call_id},
            "toolCalls": [{
                "id": tool_call_id,
                "type": "function",
                "function": {"name": name, "arguments": json.dumps(arguments)},
            }],
        }
    }


# ── Normalizer ────────────────────────────────────────

class TestNormalize:
    def test_three_shapes_yield_same_arguments(self, sample_customer_info):
        arguments = {"callId": "call-1", "customerInfo": sample_customer_info}

        shapes = [
            normalize({"parameters": arguments}, "leadQualification"),
            normalize(envelope("leadQualification", {"customerInfo": sample_customer_info})),
            normalize(dict(arguments), "leadQualification"),
        ]

        assert [s.kind for s in shapes] == [ShapeKind.PARAMETERS, ShapeKind.TOOL_CALL_ENVELOPE, ShapeKind.FLAT]
        canonical = [s.canonical() for s in shapes]
        assert {c.function_name for c in canonical} == {"leadQualification"}
        assert {c.call_id for c in canonical} == {"call-1"}
        assert all(c.customer_info == sample_customer_info for c in canonical)

    def test_parameters_take_precedence_without_merging(self):
        raw = envelope("endCall", {"callId": "from-envelope"})
        raw["parameters"] = {"callId": "from-parameters"}
        shape = normalize(raw, "getCallContext")
        args = shape.canonical()
        assert shape.kind == ShapeKind.PARAMETERS
        assert args.call_id == "from-parameters"
        assert args.function_name == "getCallContext"
        assert args.tool_call_id == "default"

    def test_envelope_arguments_as_object(self):
        raw = envelope("checkInventory", {})
        raw["message"]["toolCalls"][0]["function"]["arguments"] = {"make": "Ford"}
        args = normalize(raw).canonical()
        assert args.get("make") == "Ford"
        assert args.tool_call_id == "tc-1"

    def test_envelope_bad_json_arguments(self):
        raw = envelope("checkInventory", {})
        raw["message"]["toolCalls"][0]["function"]["arguments"] = "{not json"
        args = normalize(raw).canonical()
        assert args.arguments == {}
        assert args.call_id == "call-1"

    def test_tool_call_list_alias(self):
        raw = envelope("endCall", {})
        raw["message"]["toolCallList"] = raw["message"].pop("toolCalls")
        assert normalize(raw).kind == ShapeKind.TOOL_CALL_ENVELOPE

    def test_conversation_context_preferred_over_context(self):
        args = normalize({
            "conversationContext": {"intent": "financing"},
            "context": {"intent": "browse"},
        }).canonical()
        assert args.context == {"intent": "financing"}

    @pytest.mark.parametrize("raw", [None, [], {}, "text", {"message": {"type": "status-update"}}])
    def test_unrecognized(self, raw):
        shape = normalize(raw, "endCall")
        args = shape.canonical()
        assert shape.kind == ShapeKind.UNRECOGNIZED
        assert args.function_name == "endCall"
        assert args.customer_info == {}
        assert args.call_id is None


# ── Dispatcher ────────────────────────────────────────

class TestDispatch:
    @pytest.mark.asyncio
    async def test_unsupported_function(self, dispatcher):
        response = await dispatcher.dispatch({"callId": "call-1"}, "launchRocket")
        assert response.unsupported is True
        assert response.text == UNSUPPORTED_TEXT
        data = response.to_dict()
        assert data["unsupported"] is True
        assert data["results"][0]["error"] == "unsupported"

    @pytest.mark.asyncio
    async def test_missing_function_name(self, dispatcher):
        response = await dispatcher.dispatch({})
        assert response.unsupported is True
        assert response.text.strip()

    @pytest.mark.asyncio
    async def test_handler_exception_becomes_fallback(self, dispatcher, monkeypatch, sample_customer_info):
        def explode(info):
            raise RuntimeError("scoring offline")

        monkeypatch.setattr(dispatcher.scorer, "score", explode)
        response = await dispatcher.dispatch(
            {"callId": "call-1", "customerInfo": sample_customer_info}, "leadQualification"
        )
        assert response.error is True
        assert response.text == FALLBACKS["leadQualification"]
        assert response.function_name == "leadQualification"

    def test_supported_functions(self, dispatcher):
        assert "enhancedLeadQualification" in dispatcher.supported_functions
        assert "transferToAgent" in dispatcher.supported_functions
        assert "getVehicleDetails" in dispatcher.supported_functions

    def test_resolve_agent(self):
        assert resolve_agent("Finance") == Agent.FINANCE_SPECIALIST
        assert resolve_agent("test drive") == Agent.TEST_DRIVE_COORDINATOR
        assert resolve_agent("salesAgent") == Agent.SALES_AGENT
        assert resolve_agent("parts") is None
        assert resolve_agent(None) is None


class TestLeadQualification:
    @pytest.mark.asyncio
    async def test_qualified_buyer_goes_to_sales(self, dispatcher, sample_customer_info):
        response = await dispatcher.dispatch(
            {"parameters": {"callId": "call-1", "customerInfo": sample_customer_info}}, "leadQualification"
        )
        assert response.text.startswith("Thank you Jane Doe! I see you're interested in a Toyota 4Runner.")
        assert "$45,000" in response.text
        assert response.directive.type == DirectiveType.NEXT_AGENT
        assert response.directive.agent == "salesAgent"

        extra = response.results[0].extra
        assert extra["qualified"] is True
        assert extra["leadScore"] == 87

        session = dispatcher.store.get("call-1")
        assert session.current_agent == Agent.SALES_AGENT
        assert session.context["leadScore"] == 87
        assert session.customer_phone == "+15551234567"

    @pytest.mark.asyncio
    async def test_missing_customer_info_prompts(self, dispatcher):
        response = await dispatcher.dispatch({"callId": "call-1"}, "leadQualification")
        assert "Could you please provide your information?" in response.text
        assert response.directive is None
        assert dispatcher.store.get("call-1") is None

    @pytest.mark.asyncio
    async def test_high_urgency_goes_to_manager(self, dispatcher):
        response = await dispatcher.dispatch(
            {"callId": "call-1", "customerInfo": {"name": "Al", "urgency": "high", "intent": "browse"}},
            "leadQualification",
        )
        assert response.directive.agent == "manager"

    @pytest.mark.asyncio
    async def test_late_qualification_keeps_current_agent(self, dispatcher):
        await dispatcher.dispatch({"callId": "call-1", "targetAgent": "finance"}, "transferAgent")
        response = await dispatcher.dispatch(
            {"callId": "call-1", "customerInfo": {"intent": "buy", "budget": 30000}}, "leadQualification"
        )

        assert response.directive.agent == "financeSpecialist"
        session = dispatcher.store.get("call-1")
        assert session.current_agent == Agent.FINANCE_SPECIALIST
        assert len(session.transfer_history) == 1


class TestEnhancedLeadQualification:
    @pytest.mark.asyncio
    async def test_full_pipeline(self, dispatcher, seeded_sink, sample_customer_info):
        response = await dispatcher.dispatch(
            envelope("enhancedLeadQualification", {"customerInfo": sample_customer_info})
        )

        assert "We have 1 Toyota that match your criteria" in response.text
        assert response.text.endswith("John Smith will be assisting you today!")
        extra = response.results[0].extra
        assert extra["matchedVehicles"] == 1
        assert extra["salesperson"] == "John Smith"
        assert extra["inventoryLink"].startswith("https://dealer.test/inventory/")
        assert extra["communicationsScheduled"] == 5
        assert response.to_dict()["results"][0]["toolCallId"] == "tc-1"

        assert len(seeded_sink.customers) == 1
        assert len(seeded_sink.assignments) == 1
        assert seeded_sink.transcripts[0].summary == "Customer interested in 2024 Toyota 4Runner"
        assert dispatcher.store.get("call-1").current_agent == Agent.SALES_AGENT

    @pytest.mark.asyncio
    async def test_without_email_skips_summary(self, dispatcher, seeded_sink, sample_customer_info):
        info = dict(sample_customer_info, email=None)
        response = await dispatcher.dispatch({"callId": "call-1", "customerInfo": info}, "enhancedLeadQualification")
        assert response.results[0].extra["communicationsScheduled"] == 4
        channels = {c.channel for c in seeded_sink.communications.values()}
        assert CommunicationChannel.EMAIL not in channels

    @pytest.mark.asyncio
    async def test_repeat_does_not_duplicate_follow_ups(self, dispatcher, seeded_sink, sample_customer_info):
        body = {"callId": "call-1", "customerInfo": sample_customer_info}
        await dispatcher.dispatch(body, "enhancedLeadQualification")
        await dispatcher.dispatch(body, "enhancedLeadQualification")
        assert len(seeded_sink.communications) == 5
        assert len(seeded_sink.customers) == 1

    @pytest.mark.asyncio
    async def test_failing_matcher_does_not_stop_pipeline(self, dispatcher, seeded_sink, monkeypatch,
                                                          sample_customer_info):
        async def broken(*args, **kwargs):
            raise RuntimeError("inventory down")

        monkeypatch.setattr(dispatcher.matcher, "match", broken)
        response = await dispatcher.dispatch(
            {"callId": "call-1", "customerInfo": sample_customer_info}, "enhancedLeadQualification"
        )
        extra = response.results[0].extra
        assert response.error is False
        assert extra["matchedVehicles"] == 0
        assert extra["inventoryLink"] is None
        assert extra["communicationsScheduled"] == 4
        assert "I'll help you find the perfect 2024 Toyota 4Runner." in response.text

    @pytest.mark.asyncio
    async def test_email_only_caller_still_gets_follow_ups(self, dispatcher, seeded_sink, sender, now,
                                                           sample_customer_info):
        info = dict(sample_customer_info, phoneNumber=None)
        response = await dispatcher.dispatch({"callId": "call-1", "customerInfo": info}, "enhancedLeadQualification")

        assert response.results[0].extra["communicationsScheduled"] == 4
        assert seeded_sink.customers == {}

        result = await CommunicationSweep(seeded_sink, sender).run_once(now + timedelta(minutes=21))
        assert result.sent == 1
        assert sender.sent[0]["recipient"] == "jane@example.com"

    @pytest.mark.asyncio
    async def test_failed_profile_write_still_gets_follow_ups(self, now, sender, sample_customer_info):
        class NoProfileSink(InMemoryRecordSink):
            async def get_or_create_customer(self, profile):
                return WriteResult.failure("customers table unavailable")

        sink = NoProfileSink()
        await seed_inventory(sink)
        await seed_campaigns(sink)
        dispatcher = make_dispatcher(sink, now)

        response = await dispatcher.dispatch(
            {"callId": "call-1", "customerInfo": sample_customer_info}, "enhancedLeadQualification"
        )
        assert response.results[0].extra["communicationsScheduled"] == 5

        result = await CommunicationSweep(sink, sender).run_once(now + timedelta(minutes=21))
        assert result.sent == 2
        assert {d["recipient"] for d in sender.sent} == {"+15551234567", "jane@example.com"}


class TestTransfers:
    @pytest.mark.asyncio
    async def test_transfer_to_human_uses_phone_directive(self, dispatcher):
        response = await dispatcher.dispatch({"callId": "call-1", "targetAgent": "human"}, "transferAgent")
        assert response.directive.type == DirectiveType.TRANSFER_PHONE
        assert response.directive.phone_number == DEALER_PHONE
        assert response.to_dict()["directive"]["phoneNumber"] == DEALER_PHONE
        assert dispatcher.store.get("call-1").current_agent == Agent.HUMAN_TRANSFER

    @pytest.mark.asyncio
    async def test_unknown_department_goes_to_sales(self, dispatcher):
        response = await dispatcher.dispatch({"callId": "call-1", "toAgent": "parts"}, "transferToAgent")
        assert "couldn't find that department" in response.text
        assert response.results[0].extra["toAgent"] == "salesAgent"

    @pytest.mark.asyncio
    async def test_routes_from_context_without_target(self, dispatcher):
        await dispatcher.store.record_transfer("call-1", "leadQualifier", "salesAgent")
        response = await dispatcher.dispatch(
            {"callId": "call-1", "conversationContext": {"intent": "financing"}}, "transferAgent"
        )
        extra = response.results[0].extra
        assert (extra["fromAgent"], extra["toAgent"]) == ("salesAgent", "financeSpecialist")
        assert response.text == "I'll transfer you to our Finance Specialist who can better assist you with that."
        session = dispatcher.store.get("call-1")
        assert len(session.transfer_history) == 2
        assert session.context["intent"] == "financing"

    @pytest.mark.asyncio
    async def test_determine_transfer_has_no_side_effects(self, dispatcher):
        response = await dispatcher.dispatch(
            {"callId": "call-1", "currentAgent": "salesAgent", "intent": "testDrive"}, "determineTransfer"
        )
        assert response.results[0].extra["nextAgent"] == "testDriveCoordinator"
        assert response.directive is None
        assert dispatcher.store.get("call-1") is None


class TestCallContext:
    @pytest.mark.asyncio
    async def test_fresh_and_existing(self, dispatcher):
        fresh = await dispatcher.dispatch({"callId": "call-1"}, "getCallContext")
        assert fresh.text == "Starting fresh conversation"
        assert fresh.results[0].extra["data"] is None

        await dispatcher.store.merge_context("call-1", {"intent": "buy"})
        existing = await dispatcher.dispatch({"callId": "call-1"}, "getCallContext")
        assert existing.text == "Context retrieved successfully"
        assert existing.results[0].extra["data"]["context"] == {"intent": "buy"}


class TestInventoryTools:
    @pytest.mark.asyncio
    async def test_check_inventory(self, dispatcher):
        response = await dispatcher.dispatch({"callId": "call-1", "vehicleType": "suv"}, "checkInventory")
        assert response.text.startswith("I found 2 vehicles matching your criteria:")
        assert "2024 Hyundai Santa Fe" in response.text
        extra = response.results[0].extra
        assert [v["stock_number"] for v in extra["vehicles"]] == ["INV002", "INV004"]
        assert extra["inventoryLink"]

    @pytest.mark.asyncio
    async def test_check_inventory_no_match(self, dispatcher):
        response = await dispatcher.dispatch({"make": "Ferrari"}, "checkInventory")
        assert "broaden the search" in response.text
        assert response.results[0].extra["vehicles"] == []

    @pytest.mark.asyncio
    async def test_check_inventory_without_matcher(self, seeded_sink, now):
        dispatcher = make_dispatcher(seeded_sink, now, matcher=None)
        response = await dispatcher.dispatch({"make": "Ford"}, "checkInventory")
        assert response.error is True
        assert response.text == FALLBACKS["checkInventory"]

    @pytest.mark.asyncio
    async def test_schedule_test_drive(self, dispatcher, now):
        response = await dispatcher.dispatch({
            "callId": "call-1",
            "vehicleId": "INV001",
            "customerName": "Jane",
            "preferredDate": "Saturday",
            "preferredTime": "10am",
        }, "scheduleTestDrive")

        confirmation = f"TD{int(now.timestamp() * 1000)}"
        assert response.text.startswith("Perfect, Jane! I've scheduled your test drive of the 2024 Honda Accord")
        assert "Saturday at 10am" in response.text
        assert confirmation in response.text
        assert "driver's license and proof of insurance" in response.text
        assert response.results[0].extra["appointment"]["confirmationId"] == confirmation
        assert dispatcher.store.get("call-1").context["intent"] == "testDrive"

    @pytest.mark.asyncio
    async def test_schedule_test_drive_unknown_vehicle(self, dispatcher):
        response = await dispatcher.dispatch({"vehicleId": "INV999"}, "scheduleTestDrive")
        assert "couldn't find that vehicle" in response.text

    @pytest.mark.asyncio
    async def test_vehicle_details(self, dispatcher):
        response = await dispatcher.dispatch({"vehicleId": "INV004"}, "getVehicleDetails")

        assert response.text.startswith("Here are the details for the 2024 Toyota 4Runner.")
        assert "Color: Army Green" in response.text
        assert "The list price is $42,800" in response.text
        assert "Would you like to schedule one?" in response.text
        extra = response.results[0].extra
        assert extra["vehicle"]["stock_number"] == "INV004"
        assert extra["estimatedPayment"] == {
            "monthlyPayment": pytest.approx(monthly_payment(38520, 0.0449, 60), abs=0.01),
            "downPayment": 4280.0,
            "interestRate": 4.49,
            "loanTerm": 60,
        }

    @pytest.mark.asyncio
    async def test_vehicle_details_by_vin(self, dispatcher):
        response = await dispatcher.dispatch({"vin": "JTEBU5JR8K5123456"}, "getVehicleDetails")
        assert response.results[0].extra["vehicle"]["stock_number"] == "INV004"

    @pytest.mark.asyncio
    async def test_vehicle_details_unknown(self, dispatcher):
        response = await dispatcher.dispatch({"vehicleId": "INV999"}, "getVehicleDetails")
        assert response.text.startswith("I couldn't find that specific vehicle.")
        assert response.error is False

    @pytest.mark.asyncio
    async def test_vehicle_details_without_matcher(self, seeded_sink, now):
        dispatcher = make_dispatcher(seeded_sink, now, matcher=None)
        response = await dispatcher.dispatch({"vehicleId": "INV004"}, "getVehicleDetails")
        assert response.error is True
        assert response.text == FALLBACKS["getVehicleDetails"]


class TestPayments:
    def test_monthly_payment(self):
        assert monthly_payment(12000, 0, 12) == 1000
        assert monthly_payment(0, 0.05, 60) == 0.0
        assert monthly_payment(25000, 0.0299, 60) == pytest.approx(449.1, abs=1)
        with pytest.raises(ValueError):
            monthly_payment(1000, 0.05, 0)

    @pytest.mark.asyncio
    async def test_calculate_payment(self, dispatcher):
        response = await dispatcher.dispatch({
            "vehiclePrice": "$30,000",
            "downPayment": 3000,
            "tradeInValue": 2000,
            "creditScore": "Excellent",
        }, "calculatePayment")
        payment = response.results[0].extra["payment"]
        assert payment["loanAmount"] == 25000
        assert payment["interestRate"] == 2.99
        assert payment["loanTerm"] == 60
        assert payment["monthlyPayment"] == round(monthly_payment(25000, 0.0299, 60), 2)
        assert "with $3,000 down and a $2,000 trade-in" in response.text

    @pytest.mark.asyncio
    async def test_unknown_credit_uses_good_rate(self, dispatcher):
        response = await dispatcher.dispatch({"vehiclePrice": 20000, "creditScore": "unknown"}, "calculatePayment")
        assert response.results[0].extra["payment"]["interestRate"] == 4.49

    @pytest.mark.asyncio
    async def test_invalid_price_falls_back(self, dispatcher):
        response = await dispatcher.dispatch({"vehiclePrice": "call me"}, "calculatePayment")
        assert response.error is True
        assert response.text == FALLBACKS["calculatePayment"]


class TestEndOfCall:
    @pytest.mark.asyncio
    async def test_end_call_completes_session(self, dispatcher):
        response = await dispatcher.dispatch({"callId": "call-1", "outcome": "appointment"}, "endCall")
        assert response.directive.type == DirectiveType.END_CALL
        assert response.results[0].extra["callEnded"] is True
        session = dispatcher.store.get("call-1")
        assert session.is_completed
        assert session.outcome == "appointment"

    @pytest.mark.asyncio
    async def test_end_call_keeps_drip_by_default(self, dispatcher, seeded_sink, sample_customer_info):
        await dispatcher.dispatch({"callId": "call-1", "customerInfo": sample_customer_info},
                                  "enhancedLeadQualification")
        await dispatcher.dispatch({"callId": "call-1"}, "endCall")
        statuses = {c.status for c in seeded_sink.communications.values()}
        assert statuses == {CommunicationStatus.PENDING}

    @pytest.mark.asyncio
    async def test_end_call_cancels_drip_when_enabled(self, seeded_sink, now, sample_customer_info):
        dispatcher = make_dispatcher(seeded_sink, now, cancel_drip_on_complete=True)
        await dispatcher.dispatch({"callId": "call-1", "customerInfo": sample_customer_info},
                                  "enhancedLeadQualification")
        await dispatcher.dispatch({"callId": "call-1"}, "endCall")

        by_channel = {}
        for comm in seeded_sink.communications.values():
            by_channel.setdefault(comm.channel, set()).add(comm.status)
        assert by_channel[CommunicationChannel.EDUCATION] == {CommunicationStatus.CANCELLED}
        assert by_channel[CommunicationChannel.SMS] == {CommunicationStatus.PENDING}
        assert by_channel[CommunicationChannel.EMAIL] == {CommunicationStatus.PENDING}

    @pytest.mark.asyncio
    async def test_update_transcript(self, dispatcher, seeded_sink):
        ok = await dispatcher.dispatch(
            {"callId": "call-1", "transcript": "Customer asked about trucks", "duration": "95"}, "updateTranscript"
        )
        assert ok.text == "Transcript updated successfully"
        assert seeded_sink.transcripts[0].transcript == {"text": "Customer asked about trucks"}
        assert seeded_sink.transcripts[0].duration_seconds == 95

        missing = await dispatcher.dispatch({"transcript": "x"}, "updateTranscript")
        assert missing.text == "Failed to update transcript"
