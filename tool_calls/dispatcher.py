"""
Tool Call Dispatcher for the dealership squad.

Single entry point for voice-platform tool calls:
1. Normalize the request shape into canonical arguments
2. Look the handler up by function name
3. Run it, converting any failure into a spoken fallback

The caller always gets a non-empty utterance back.
"""

import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from calls.session_store import CallSession, CallSessionStore
from communications.scheduler import CommunicationScheduler
from database.records import (
    CallTranscript, CustomerProfile, InventoryVehicle, SalesAssignment, utcnow,
)
from database.sink import RecordSink
from inventory.links import ShareableLinkService
from inventory.matcher import InventoryMatcher, criteria_from_tool_args
from lead_scoring.lead_router import Lead, LeadRouter
from lead_scoring.scoring_model import LeadQualification, LeadScorer, parse_amount
from squad.agents import Agent
from squad.assignment import AssignmentPolicy
from squad.router import AgentRouter

from .normalizer import CanonicalArgs, normalize
from .responses import Directive, DirectiveType, ToolCallResponse

logger = logging.getLogger(__name__)

Handler = Callable[[CanonicalArgs], Awaitable[ToolCallResponse]]

UNSUPPORTED_TEXT = (
    "I'm sorry, I can't help with that request right now. "
    "Let me connect you with someone on our team who can."
)
GENERIC_FALLBACK = "I apologize, I'm having a little trouble right now. Let me get someone to help you."

FALLBACKS = {
    "leadQualification": "I'd be happy to help you find the perfect vehicle!",
    "enhancedLeadQualification": "I'd be happy to help you find the perfect vehicle!",
    "transferAgent": "I apologize for the inconvenience. Let me try connecting you again.",
    "transferToAgent": "I apologize for the inconvenience. Let me try connecting you again.",
    "determineTransfer": "I'll connect you with the right person to help you.",
    "getCallContext": "Starting fresh conversation",
    "checkInventory": "I'm having trouble accessing our inventory right now. Let me get someone to help you.",
    "getVehicleDetails": "I'm having trouble retrieving those details. Let me connect you with someone who can help.",
    "scheduleTestDrive": (
        "I'm having trouble scheduling that right now. "
        "Let me transfer you to someone who can help set up your test drive."
    ),
    "calculatePayment": (
        "I'm having trouble calculating that payment. "
        "Let me connect you with our finance team for accurate numbers."
    ),
    "endCall": "Thank you for calling! Have a great day!",
    "updateTranscript": "Failed to update transcript",
}

# Department names callers and prompts use for transfer targets
DEPARTMENTS = {
    "sales": Agent.SALES_AGENT,
    "finance": Agent.FINANCE_SPECIALIST,
    "financing": Agent.FINANCE_SPECIALIST,
    "testdrive": Agent.TEST_DRIVE_COORDINATOR,
    "test_drive": Agent.TEST_DRIVE_COORDINATOR,
    "manager": Agent.MANAGER,
    "followup": Agent.FOLLOW_UP_AGENT,
    "follow_up": Agent.FOLLOW_UP_AGENT,
    "qualifier": Agent.LEAD_QUALIFIER,
    "human": Agent.HUMAN_TRANSFER,
    "end": Agent.END_CALL,
}

CREDIT_RATES = {
    "excellent": 0.0299,
    "good": 0.0449,
    "fair": 0.0649,
    "poor": 0.0899,
}

MAX_SPOKEN_VEHICLES = 3
DETAILS_DOWN_PAYMENT = 0.10
DETAILS_TERM_MONTHS = 60


def resolve_agent(value: Any) -> Optional[Agent]:
    """Map an agent or department name to an Agent, None when unknown."""
    agent = Agent.parse(value)
    if agent is not None:
        return agent
    if isinstance(value, str):
        return DEPARTMENTS.get(value.strip().lower().replace(" ", "_")) or \
            DEPARTMENTS.get(value.strip().lower().replace(" ", ""))
    return None


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


def profile_from_info(info: Mapping[str, Any], fallback_phone: Optional[str] = None) -> CustomerProfile:
    """Build a customer profile; price range defaults to 80-120% of budget."""
    budget = parse_amount(info.get("budget")) or None
    price_min = parse_amount(info.get("priceRangeMin")) or (budget * 0.8 if budget else None)
    price_max = parse_amount(info.get("priceRangeMax")) or (budget * 1.2 if budget else None)
    return CustomerProfile(
        phone_number=str(info.get("phoneNumber") or fallback_phone or ""),
        name=info.get("name"),
        email=info.get("email") or None,
        budget=budget,
        preferred_make=info.get("preferredMake"),
        preferred_model=info.get("preferredModel"),
        preferred_year=_to_int(info.get("preferredYear")),
        vehicle_type=info.get("vehicleType"),
        min_mileage=_to_int(info.get("minMileage")),
        max_mileage=_to_int(info.get("maxMileage")),
        price_range_min=price_min,
        price_range_max=price_max,
        purchase_timeline=info.get("timeline"),
    )


def monthly_payment(principal: float, annual_rate: float, months: int) -> float:
    """Standard amortized payment."""
    if months <= 0:
        raise ValueError("loan term must be positive")
    if principal <= 0:
        return 0.0
    rate = annual_rate / 12
    if rate == 0:
        return principal / months
    factor = (1 + rate) ** months
    return principal * rate * factor / (factor - 1)


class ToolCallDispatcher:
    """
    Routes tool calls to the scorer, router, session store and scheduler.

    Collaborators other than scorer, router and store are optional; a
    handler whose collaborator is missing degrades to its fallback reply.
    """

    def __init__(
        self,
        scorer: LeadScorer,
        router: AgentRouter,
        store: CallSessionStore,
        scheduler: Optional[CommunicationScheduler] = None,
        sink: Optional[RecordSink] = None,
        matcher: Optional[InventoryMatcher] = None,
        links: Optional[ShareableLinkService] = None,
        assignment: Optional[AssignmentPolicy] = None,
        lead_router: Optional[LeadRouter] = None,
        dealership_phone: str = "",
        cancel_drip_on_complete: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.scorer = scorer
        self.router = router
        self.store = store
        self.scheduler = scheduler
        self.sink = sink
        self.matcher = matcher
        self.links = links
        self.assignment = assignment
        self.lead_router = lead_router
        self.dealership_phone = dealership_phone
        self.cancel_drip_on_complete = cancel_drip_on_complete
        self.clock = clock

        self._handlers: Dict[str, Handler] = {
            "leadQualification": self._lead_qualification,
            "enhancedLeadQualification": self._enhanced_lead_qualification,
            "transferAgent": self._transfer_agent,
            "transferToAgent": self._transfer_agent,
            "determineTransfer": self._determine_transfer,
            "getCallContext": self._get_call_context,
            "checkInventory": self._check_inventory,
            "getVehicleDetails": self._get_vehicle_details,
            "scheduleTestDrive": self._schedule_test_drive,
            "calculatePayment": self._calculate_payment,
            "endCall": self._end_call,
            "updateTranscript": self._update_transcript,
        }

    @property
    def supported_functions(self) -> List[str]:
        return sorted(self._handlers)

    async def dispatch(self, raw: Any, function_name: Optional[str] = None) -> ToolCallResponse:
        """
        Handle one inbound tool call.

        Args:
            raw: Decoded request body in any supported shape
            function_name: Function named by the endpoint path, if any

        Returns:
            ToolCallResponse with at least one non-empty spoken result
        """
        shape = normalize(raw, function_name)
        args = shape.canonical()
        name = args.function_name
        logger.debug(f"Tool call {name!r} ({shape.kind.value}) for call {args.call_id}")

        handler = self._handlers.get(name) if name else None
        if handler is None:
            logger.warning(f"Unsupported tool call function {name!r}")
            response = ToolCallResponse.single(args.tool_call_id, UNSUPPORTED_TEXT, error="unsupported")
            response.unsupported = True
            response.function_name = name
            return response

        try:
            response = await handler(args)
        except Exception as e:
            logger.error(f"Tool call {name} failed for call {args.call_id}: {e}", exc_info=True)
            response = ToolCallResponse.single(args.tool_call_id, FALLBACKS.get(name, GENERIC_FALLBACK))
            response.error = True

        if not response.text.strip():
            response = ToolCallResponse.single(args.tool_call_id, FALLBACKS.get(name, GENERIC_FALLBACK))
        response.function_name = name
        return response

    async def _best_effort(self, step: str, call_id: Optional[str], awaitable, default=None):
        try:
            return await awaitable
        except Exception as e:
            logger.error(f"Call {call_id}: {step} failed: {e}")
            return default

    async def _advance(self, session: CallSession, context: Mapping[str, Any], reason: str) -> Agent:
        """
        Route a qualification result and apply the transfer when the agent changes.

        Only a call still with the lead qualifier is routed. A qualification
        arriving after the call moved on leaves it with its current agent.
        """
        current = session.current_agent
        if current != Agent.LEAD_QUALIFIER:
            logger.info(f"Call {session.id}: qualification arrived while with {current.value}, not re-routing")
            return current
        next_agent = self.router.route(current, context)
        if next_agent != current:
            await self.store.record_transfer(session.id, current, next_agent, reason)
        return next_agent

    def _directive_for(self, agent: Agent, reason: Optional[str] = None) -> Directive:
        if agent == Agent.END_CALL:
            return Directive(DirectiveType.END_CALL, agent=agent.value, reason=reason)
        if agent == Agent.HUMAN_TRANSFER:
            return Directive(
                DirectiveType.TRANSFER_PHONE,
                agent=agent.value,
                phone_number=self.dealership_phone,
                reason=reason,
            )
        return Directive(DirectiveType.NEXT_AGENT, agent=agent.value, reason=reason)

    @staticmethod
    def _routing_context(info: Mapping[str, Any], qualification: LeadQualification) -> Dict[str, Any]:
        return {
            "intent": info.get("intent"),
            "urgency": info.get("urgency"),
            "customerType": "qualified" if qualification.qualified else None,
        }

    async def _export_lead(self, args: CanonicalArgs, qualification: LeadQualification,
                           transferred_to: Optional[Agent] = None, link_url: Optional[str] = None) -> None:
        if self.lead_router is None or not self.lead_router.enabled:
            return
        lead = Lead.from_call(
            args.call_id,
            args.customer_info,
            qualification,
            transferred_to=transferred_to.value if transferred_to else None,
            inventory_link=link_url,
            transcript=args.get("transcript"),
        )
        await self._best_effort("lead export", args.call_id, self.lead_router.export_lead(lead))

    # Handlers

    async def _lead_qualification(self, args: CanonicalArgs) -> ToolCallResponse:
        info = args.customer_info
        if not info or not args.call_id:
            return ToolCallResponse.single(
                args.tool_call_id,
                "I'd be happy to help you find the perfect vehicle! Could you please provide your information?",
            )

        qualification = self.scorer.score(info)
        session = await self.store.get_or_create(args.call_id, info.get("phoneNumber"))
        routing = self._routing_context(info, qualification)
        await self.store.merge_context(args.call_id, {
            "customerInfo": info,
            "leadScore": qualification.score,
            "qualified": qualification.qualified,
            **routing,
        })
        next_agent = await self._advance(session, routing, "lead qualified")
        await self._export_lead(args, qualification, transferred_to=next_agent)

        message = f"Thank you {info.get('name') or 'for calling'}! "
        if info.get("preferredMake"):
            message += f"I see you're interested in a {info['preferredMake']} {info.get('preferredModel') or ''}".rstrip() + ". "
        budget = parse_amount(info.get("budget"))
        if budget:
            message += f"With your budget of ${budget:,.0f}, we have some great options. "
        message += "Let me connect you with the right specialist who can help you find the perfect vehicle!"

        return ToolCallResponse.single(
            args.tool_call_id,
            message,
            directive=self._directive_for(next_agent, "lead qualified"),
            leadScore=qualification.score,
            qualified=qualification.qualified,
            actionItems=list(qualification.action_items),
        )

    async def _enhanced_lead_qualification(self, args: CanonicalArgs) -> ToolCallResponse:
        """
        Full pipeline: score, profile, inventory match, salesperson, link, follow-ups.

        Each step after scoring is best-effort; a failing step leaves its
        output empty and the rest of the pipeline still runs.
        """
        info = args.customer_info
        if not info or not args.call_id:
            return ToolCallResponse.single(
                args.tool_call_id,
                "I'd be happy to help you find the perfect vehicle! "
                "Could you please tell me what specific year, make, and model you're looking for?",
            )
        call_id = args.call_id
        now = self.clock()

        qualification = self.scorer.score(info)
        session = await self.store.get_or_create(call_id, info.get("phoneNumber"))
        routing = self._routing_context(info, qualification)
        await self.store.merge_context(call_id, {
            "customerInfo": info,
            "leadScore": qualification.score,
            "qualified": qualification.qualified,
            **routing,
        })

        customer = profile_from_info(info, session.customer_phone)
        if customer.phone_number and self.sink is not None:
            result = await self._best_effort("customer upsert", call_id, self.sink.get_or_create_customer(customer))
            if result is not None and result.ok:
                customer = result.record
            elif result is not None:
                logger.warning(f"Call {call_id}: customer profile not stored: {result.error}")

        matched: List[InventoryVehicle] = []
        if self.matcher is not None:
            matched = await self._best_effort(
                "inventory match", call_id, self.matcher.match(customer, info.get("stockNumber")), []
            )

        salesperson = None
        if self.assignment is not None:
            try:
                salesperson = self.assignment.assign(info)
            except Exception as e:
                logger.error(f"Call {call_id}: salesperson assignment failed: {e}")
        if salesperson is not None and self.sink is not None:
            await self._best_effort("assignment record", call_id, self.sink.record_assignment(SalesAssignment(
                call_id=call_id,
                customer_id=customer.id,
                salesperson_name=salesperson.name,
                salesperson_email=salesperson.email,
                salesperson_phone=salesperson.phone,
            )))

        link = None
        if matched and self.links is not None:
            link = await self._best_effort(
                "shared link", call_id, self.links.create(call_id, customer.id, [v.id for v in matched], now)
            )
        link_url = link.full_url if link else None

        planned = []
        if self.scheduler is not None:
            planned = await self._best_effort(
                "communication plan", call_id,
                self.scheduler.plan(session, customer, salesperson, matched, link, now=now), [],
            )

        vehicle = " ".join(str(p) for p in (
            info.get("preferredYear"), info.get("preferredMake"), info.get("preferredModel")
        ) if p)
        if self.sink is not None:
            await self._best_effort("transcript", call_id, self.sink.store_transcript(CallTranscript(
                call_id=call_id,
                customer_id=customer.id,
                transcript={"customerInfo": info, "context": args.context},
                summary=f"Customer interested in {vehicle or 'a vehicle'}",
                intent_analysis={
                    "intent": info.get("intent"),
                    "urgency": info.get("urgency"),
                    "budget": customer.budget,
                    "timeline": info.get("timeline"),
                },
                lead_score=qualification.score,
                action_items=list(qualification.action_items),
            )))

        next_agent = await self._advance(session, routing, "lead qualified")
        await self._export_lead(args, qualification, transferred_to=next_agent, link_url=link_url)

        make = info.get("preferredMake")
        message = f"Thank you {info.get('name') or 'for calling'}! "
        if matched:
            message += (
                f"Great news! We have {len(matched)} {make or 'vehicles'} that match your criteria. "
                "I'll send you a link to view them shortly. "
            )
        else:
            message += (
                f"I'll help you find the perfect {info.get('preferredYear') or ''} "
                f"{make or 'vehicle'} {info.get('preferredModel') or ''}".replace("  ", " ").strip() + ". "
            )
        message += f"{salesperson.name if salesperson else 'Our sales specialist'} will be assisting you today!"

        return ToolCallResponse.single(
            args.tool_call_id,
            message,
            directive=self._directive_for(next_agent, "lead qualified"),
            leadScore=qualification.score,
            qualified=qualification.qualified,
            actionItems=list(qualification.action_items),
            matchedVehicles=len(matched),
            inventoryLink=link_url,
            salesperson=salesperson.name if salesperson else None,
            communicationsScheduled=len(planned),
        )

    async def _transfer_agent(self, args: CanonicalArgs) -> ToolCallResponse:
        requested = args.get("targetAgent") or args.get("toAgent")
        reason = args.get("reason") or "requested transfer"
        call_id = args.call_id
        session = await self.store.get_or_create(call_id) if call_id else None
        current = session.current_agent if session else Agent.parse(args.get("fromAgent")) or Agent.LEAD_QUALIFIER

        if requested:
            target = resolve_agent(requested)
            if target is None:
                logger.warning(f"Call {call_id}: unknown transfer target {requested!r}, using sales")
                target = Agent.SALES_AGENT
                message = "I'm sorry, I couldn't find that department. Let me connect you with our main sales team."
            else:
                message = self.router.transfer_message(target)
        else:
            target = self.router.route(current, args.context)
            message = self.router.transfer_message(target)

        if args.context and call_id:
            await self.store.merge_context(call_id, args.context)
        if call_id:
            await self.store.record_transfer(call_id, current, target, reason)

        return ToolCallResponse.single(
            args.tool_call_id,
            message,
            directive=self._directive_for(target, reason),
            fromAgent=current.value,
            toAgent=target.value,
        )

    async def _determine_transfer(self, args: CanonicalArgs) -> ToolCallResponse:
        session = self.store.get(args.call_id) if args.call_id else None
        current = args.get("currentAgent") or (session.current_agent if session else None)
        context = args.context or {k: args.get(k) for k in ("intent", "urgency", "customerType", "stage")}
        next_agent = self.router.route(current, context)
        return ToolCallResponse.single(
            args.tool_call_id,
            self.router.transfer_message(next_agent),
            nextAgent=next_agent.value,
        )

    async def _get_call_context(self, args: CanonicalArgs) -> ToolCallResponse:
        session = self.store.get(args.call_id) if args.call_id else None
        if session is None:
            return ToolCallResponse.single(args.tool_call_id, "Starting fresh conversation", data=None)
        return ToolCallResponse.single(args.tool_call_id, "Context retrieved successfully", data=session.to_dict())

    async def _check_inventory(self, args: CanonicalArgs) -> ToolCallResponse:
        if self.matcher is None:
            raise RuntimeError("inventory matcher not configured")
        vehicles = await self.matcher.search(criteria_from_tool_args(args.arguments))
        if not vehicles:
            return ToolCallResponse.single(
                args.tool_call_id,
                "I couldn't find any vehicles matching those exact criteria. "
                "Would you like me to broaden the search or show you similar options?",
                vehicles=[],
            )

        lines = [f"I found {len(vehicles)} vehicle{'s' if len(vehicles) != 1 else ''} matching your criteria:"]
        for i, v in enumerate(vehicles[:MAX_SPOKEN_VEHICLES], 1):
            lines.append(
                f"\n{i}. {v.year} {v.make} {v.model} - {v.color or 'color on request'}\n"
                f"   Price: ${v.price:,.0f} | Mileage: {v.mileage:,} miles\n"
                f"   Key features: {', '.join(v.features[:3]) or 'ask for details'}"
            )

        link_url = None
        if args.call_id and self.links is not None:
            link = await self._best_effort(
                "shared link", args.call_id, self.links.create(args.call_id, None, [v.id for v in vehicles])
            )
            link_url = link.full_url if link else None

        return ToolCallResponse.single(
            args.tool_call_id,
            "\n".join(lines),
            vehicles=[v.to_dict() for v in vehicles],
            inventoryLink=link_url,
        )

    async def _get_vehicle_details(self, args: CanonicalArgs) -> ToolCallResponse:
        if self.matcher is None:
            raise RuntimeError("inventory matcher not configured")
        vehicle = await self.matcher.find(args.get("vehicleId") or args.get("stockNumber") or args.get("vin"))
        if vehicle is None:
            return ToolCallResponse.single(
                args.tool_call_id,
                "I couldn't find that specific vehicle. Could you provide the correct ID "
                "or would you like me to search for similar vehicles?",
            )

        rate = CREDIT_RATES["good"]
        payment = monthly_payment(vehicle.price * (1 - DETAILS_DOWN_PAYMENT), rate, DETAILS_TERM_MONTHS)
        specs = [
            f"Color: {vehicle.color or 'available on request'}",
            f"Mileage: {vehicle.mileage:,} miles",
            f"Condition: {vehicle.condition}",
        ]
        if vehicle.body_type:
            specs.append(f"Type: {vehicle.body_type.upper() if len(vehicle.body_type) <= 3 else vehicle.body_type.title()}")
        if vehicle.vin:
            specs.append(f"VIN: {vehicle.vin}")

        message = (
            f"Here are the details for the {vehicle.title}. {'. '.join(specs)}. "
            f"The list price is ${vehicle.price:,.0f}, about ${payment:,.0f} a month over "
            f"{DETAILS_TERM_MONTHS} months with {DETAILS_DOWN_PAYMENT:.0%} down. "
        )
        if vehicle.features:
            message += f"Features include {', '.join(vehicle.features)}. "
        message += (
            "It's available and ready for a test drive. Would you like to schedule one?"
            if vehicle.is_available else
            "It's currently on hold, but I can find you something similar."
        )
        return ToolCallResponse.single(
            args.tool_call_id,
            message,
            vehicle=vehicle.to_dict(),
            estimatedPayment={
                "monthlyPayment": round(payment, 2),
                "downPayment": round(vehicle.price * DETAILS_DOWN_PAYMENT, 2),
                "interestRate": round(rate * 100, 2),
                "loanTerm": DETAILS_TERM_MONTHS,
            },
        )

    async def _schedule_test_drive(self, args: CanonicalArgs) -> ToolCallResponse:
        if self.matcher is None:
            raise RuntimeError("inventory matcher not configured")
        vehicle = await self.matcher.find(args.get("vehicleId"))
        if vehicle is None:
            return ToolCallResponse.single(
                args.tool_call_id,
                "I couldn't find that vehicle for the test drive. Let me help you find the right one.",
            )

        now = self.clock()
        confirmation = f"TD{int(now.timestamp() * 1000)}"
        date = args.get("preferredDate") or "your preferred date"
        time = args.get("preferredTime")
        when = f"{date} at {time}" if time else f"{date}. We'll call to confirm the best time"
        appointment = {
            "confirmationId": confirmation,
            "vehicleId": vehicle.stock_number,
            "vehicle": vehicle.title,
            "customerName": args.get("customerName"),
            "customerPhone": args.get("customerPhone"),
            "preferredDate": args.get("preferredDate"),
            "preferredTime": time,
        }
        if args.call_id:
            await self.store.merge_context(args.call_id, {"testDrive": appointment, "intent": "testDrive"})

        name = args.get("customerName")
        message = (
            f"{'Perfect, ' + name + '! ' if name else 'Perfect! '}"
            f"I've scheduled your test drive of the {vehicle.title} for {when}. "
            f"Your confirmation number is {confirmation}. "
            "Please bring your driver's license and proof of insurance."
        )
        return ToolCallResponse.single(args.tool_call_id, message, appointment=appointment)

    async def _calculate_payment(self, args: CanonicalArgs) -> ToolCallResponse:
        price = parse_amount(args.get("vehiclePrice"))
        if price <= 0:
            raise ValueError(f"invalid vehicle price {args.get('vehiclePrice')!r}")
        down = parse_amount(args.get("downPayment"))
        trade_in = parse_amount(args.get("tradeInValue"))
        term = _to_int(args.get("loanTerm")) or 60
        credit = str(args.get("creditScore") or "good").lower()
        rate = CREDIT_RATES.get(credit, CREDIT_RATES["good"])

        loan = max(price - down - trade_in, 0.0)
        payment = monthly_payment(loan, rate, term)
        total_interest = payment * term - loan

        message = (
            f"Based on a vehicle price of ${price:,.0f}"
            f"{f' with ${down:,.0f} down' if down else ''}"
            f"{f' and a ${trade_in:,.0f} trade-in' if trade_in else ''}, "
            f"your estimated monthly payment is ${payment:,.2f} for {term} months "
            f"at {rate * 100:.2f}% APR. "
            f"That's a loan amount of ${loan:,.0f} with about ${total_interest:,.2f} in total interest. "
            "Our finance team can confirm exact numbers."
        )
        return ToolCallResponse.single(
            args.tool_call_id,
            message,
            payment={
                "monthlyPayment": round(payment, 2),
                "loanAmount": round(loan, 2),
                "interestRate": round(rate * 100, 2),
                "totalInterest": round(total_interest, 2),
                "loanTerm": term,
            },
        )

    async def _end_call(self, args: CanonicalArgs) -> ToolCallResponse:
        if args.call_id:
            await self.complete_call(args.call_id, args.get("outcome") or "completed", args.get("summary"))
        return ToolCallResponse.single(
            args.tool_call_id,
            "Thank you for calling! We appreciate your business and look forward to serving you. Have a great day!",
            directive=self._directive_for(Agent.END_CALL, args.get("reason")),
            callEnded=True,
        )

    async def _update_transcript(self, args: CanonicalArgs) -> ToolCallResponse:
        if not args.call_id or self.sink is None:
            return ToolCallResponse.single(args.tool_call_id, "Failed to update transcript")
        transcript = args.get("transcript")
        result = await self.sink.store_transcript(CallTranscript(
            call_id=args.call_id,
            transcript=transcript if isinstance(transcript, dict) else {"text": transcript or ""},
            summary=args.get("summary"),
            duration_seconds=_to_int(args.get("duration")) or 0,
        ))
        if not result.ok:
            logger.warning(f"Call {args.call_id}: transcript not stored: {result.error}")
            return ToolCallResponse.single(args.tool_call_id, "Failed to update transcript")
        return ToolCallResponse.single(args.tool_call_id, "Transcript updated successfully")

    async def complete_call(self, call_id: str, outcome: Optional[str] = None,
                            summary: Optional[str] = None) -> CallSession:
        """Complete a call; optionally retract its pending education drip."""
        session = await self.store.complete(call_id, outcome, summary)
        if self.cancel_drip_on_complete and self.scheduler is not None:
            await self._best_effort("drip cancellation", call_id, self.scheduler.cancel_drip(call_id))
        return session
