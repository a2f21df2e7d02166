"""
Call session store.

One CallSession per platform call id. Transfers and completion are
applied under a per-call asyncio.Lock so concurrent events for the same
call never lose an update. Persistence to the record sink is best-effort:
the in-process session keeps driving the turn when the sink is down.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from squad.agents import Agent
from database.records import utcnow
from database.sink import RecordSink

logger = logging.getLogger(__name__)


class SessionStatus:
    ACTIVE = "active"
    COMPLETED = "completed"


@dataclass(frozen=True)
class TransferRecord:
    """One entry of a call's transfer history."""
    from_agent: Agent
    to_agent: Agent
    reason: Optional[str]
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from_agent": self.from_agent.value,
            "to_agent": self.to_agent.value,
            "reason": self.reason,
            "timestamp": self.timestamp,
        }


@dataclass
class CallSession:
    """State of one in-progress (or finished) call."""
    id: str
    current_agent: Agent = Agent.LEAD_QUALIFIER
    context: Dict[str, Any] = field(default_factory=dict)
    transfer_history: List[TransferRecord] = field(default_factory=list)
    status: str = SessionStatus.ACTIVE
    outcome: Optional[str] = None
    summary: Optional[str] = None
    customer_phone: Optional[str] = None
    started_at: datetime = field(default_factory=utcnow)
    ended_at: Optional[datetime] = None
    anomalies: int = 0

    @property
    def is_completed(self) -> bool:
        return self.status == SessionStatus.COMPLETED

    def snapshot(self) -> Dict[str, Any]:
        """Row-shaped view used for persistence."""
        return {
            "id": self.id,
            "current_agent": self.current_agent.value,
            "status": self.status,
            "outcome": self.outcome,
            "summary": self.summary,
            "customer_phone": self.customer_phone,
            "context": dict(self.context),
            "started_at": self.started_at,
            "ended_at": self.ended_at,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.snapshot()
        data["started_at"] = self.started_at.isoformat()
        data["ended_at"] = self.ended_at.isoformat() if self.ended_at else None
        data["transfer_history"] = [
            {**t.to_dict(), "timestamp": t.timestamp.isoformat()}
            for t in self.transfer_history
        ]
        data["anomalies"] = self.anomalies
        return data


class CallSessionStore:
    """
    In-process registry of call sessions.

    get_or_create does not await between the lookup and the insert, so two
    coroutines asking for the same id always share one session.
    """

    def __init__(
        self,
        sink: Optional[RecordSink] = None,
        on_transfer: Optional[Callable[[TransferRecord], None]] = None,
    ):
        self.sink = sink
        self.on_transfer = on_transfer
        self._sessions: Dict[str, CallSession] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, call_id: str) -> asyncio.Lock:
        lock = self._locks.get(call_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[call_id] = lock
        return lock

    def _ensure(self, call_id: str, customer_phone: Optional[str] = None) -> Tuple[CallSession, bool]:
        session = self._sessions.get(call_id)
        if session is not None:
            if customer_phone and not session.customer_phone:
                session.customer_phone = customer_phone
            return session, False
        session = CallSession(id=call_id, customer_phone=customer_phone)
        self._sessions[call_id] = session
        logger.info(f"Call session created: {call_id}")
        return session, True

    async def _persist(self, session: CallSession) -> None:
        if self.sink is None:
            return
        result = await self.sink.save_call(session.snapshot())
        if not result.ok:
            logger.warning(f"Call {session.id} not persisted: {result.error}")

    async def get_or_create(self, call_id: str, customer_phone: Optional[str] = None) -> CallSession:
        """Return the session for ``call_id``, creating it on first sight."""
        session, created = self._ensure(call_id, customer_phone)
        if created:
            await self._persist(session)
        return session

    def get(self, call_id: str) -> Optional[CallSession]:
        return self._sessions.get(call_id)

    def list_active(self) -> List[CallSession]:
        return [s for s in self._sessions.values() if not s.is_completed]

    async def merge_context(self, call_id: str, updates: Optional[Mapping[str, Any]]) -> CallSession:
        """Merge ``updates`` into the context. Keys are added or overwritten, never removed."""
        async with self._lock_for(call_id):
            session, _ = self._ensure(call_id)
            if isinstance(updates, Mapping):
                for key, value in updates.items():
                    if value is not None:
                        session.context[key] = value
        return session

    async def record_transfer(
        self,
        call_id: str,
        from_agent: Any,
        to_agent: Any,
        reason: Optional[str] = None,
    ) -> TransferRecord:
        """
        Append a transfer and move the call to ``to_agent``.

        Unknown calls are created first. A transfer on a completed call is
        still applied but counted as an anomaly.
        """
        source = Agent.parse(from_agent) or Agent.LEAD_QUALIFIER
        target = Agent.parse(to_agent) or Agent.LEAD_QUALIFIER

        async with self._lock_for(call_id):
            session, _ = self._ensure(call_id)
            if session.is_completed:
                session.anomalies += 1
                logger.warning(
                    f"Transfer {source.value} -> {target.value} on completed call {call_id} "
                    f"(anomaly #{session.anomalies})"
                )
            record = TransferRecord(
                from_agent=source,
                to_agent=target,
                reason=reason,
                timestamp=utcnow(),
            )
            session.transfer_history.append(record)
            session.current_agent = target

        logger.info(f"Call {call_id}: {source.value} -> {target.value} ({reason})")
        if self.on_transfer is not None:
            self.on_transfer(record)
        if self.sink is not None:
            result = await self.sink.add_transfer(call_id, record.to_dict())
            if not result.ok:
                logger.warning(f"Transfer for call {call_id} not persisted: {result.error}")
        return record

    async def complete(
        self,
        call_id: str,
        outcome: Optional[str] = None,
        summary: Optional[str] = None,
    ) -> CallSession:
        """Mark the call completed. Completing twice keeps the first end time."""
        async with self._lock_for(call_id):
            session, _ = self._ensure(call_id)
            if session.is_completed:
                logger.warning(f"Call {call_id} completed twice")
            else:
                session.status = SessionStatus.COMPLETED
                session.ended_at = utcnow()
            if outcome is not None:
                session.outcome = outcome
            if summary is not None:
                session.summary = summary

        logger.info(f"Call {call_id} completed (outcome={session.outcome})")
        await self._persist(session)
        return session
