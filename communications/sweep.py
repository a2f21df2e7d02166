"""
Pending-communication sweep.

Drains due communications to the message sender. Each record is handled
on its own: one failing delivery never blocks the rest of the batch, and
no lock is held across the pending set.

Delivery is at-least-once. A transient sender error leaves the record
pending with its attempt count bumped so the next pass retries it; once
max_attempts is reached the record is marked failed.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from database.records import (
    CommunicationChannel, CommunicationStatus, ScheduledCommunication, utcnow,
)
from database.sink import RecordSink

logger = logging.getLogger(__name__)


class TransientDeliveryError(Exception):
    """Raised by a sender when a delivery may succeed if retried later."""


@dataclass
class SweepReport:
    """Outcome counts for one sweep pass."""
    processed: int = 0
    sent: int = 0
    failed: int = 0
    retrying: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "sent": self.sent,
            "failed": self.failed,
            "retrying": self.retrying,
            "skipped": self.skipped,
            "errors": self.errors,
        }


class CommunicationSweep:
    """
    Delivers due communications.

    ``sender`` must expose ``async deliver(channel, recipient, subject, body,
    template=None)`` returning an object with ``success`` and optionally
    ``transient`` and ``error`` attributes.
    """

    def __init__(
        self,
        sink: RecordSink,
        sender: Any,
        max_attempts: int = 5,
        concurrency: int = 10,
        clock: Callable[[], datetime] = utcnow,
        on_report: Optional[Callable[[SweepReport], None]] = None,
    ):
        self.sink = sink
        self.sender = sender
        self.on_report = on_report
        self.max_attempts = max_attempts
        self.concurrency = concurrency
        self.clock = clock
        self._task: Optional[asyncio.Task] = None
        self._stopping: Optional[asyncio.Event] = None

    async def run_once(self, now: Optional[datetime] = None) -> SweepReport:
        """Process every pending communication scheduled at or before ``now``."""
        now = now or self.clock()
        report = SweepReport()
        due = await self.sink.pending_communications(now)
        if not due:
            return report

        semaphore = asyncio.Semaphore(self.concurrency)

        async def handle(comm: ScheduledCommunication) -> None:
            async with semaphore:
                await self._process(comm, now, report)

        await asyncio.gather(*(handle(c) for c in due))
        logger.info(
            f"Sweep: {report.processed} due, {report.sent} sent, {report.failed} failed, "
            f"{report.retrying} retrying"
        )
        if self.on_report is not None:
            self.on_report(report)
        return report

    async def _process(self, comm: ScheduledCommunication, now: datetime, report: SweepReport) -> None:
        report.processed += 1
        try:
            recipient = await self._recipient(comm)
            if not recipient:
                logger.warning(f"No recipient for {comm.channel.value} {comm.id} (customer {comm.customer_id})")
                await self._mark(comm, CommunicationStatus.FAILED, report, attempts=comm.attempts)
                return

            attempts = comm.attempts + 1
            try:
                response = await self.sender.deliver(
                    comm.channel.value,
                    recipient,
                    comm.subject,
                    comm.body,
                    template=comm.metadata.get("template"),
                )
            except TransientDeliveryError as e:
                await self._retry_or_fail(comm, attempts, str(e), report)
                return

            if getattr(response, "success", False):
                await self._mark(comm, CommunicationStatus.SENT, report, attempts=attempts, sent_at=now)
            elif getattr(response, "transient", False):
                await self._retry_or_fail(comm, attempts, getattr(response, "error", None), report)
            else:
                logger.error(f"Delivery of {comm.id} failed: {getattr(response, 'error', None)}")
                await self._mark(comm, CommunicationStatus.FAILED, report, attempts=attempts)
        except Exception as e:
            logger.error(f"Sweep error on communication {comm.id}: {e}")
            report.errors.append(f"{comm.id}: {e}")
            await self._mark(comm, CommunicationStatus.FAILED, report, attempts=comm.attempts + 1)

    async def _recipient(self, comm: ScheduledCommunication) -> Optional[str]:
        """Address captured at planning time, else the stored profile."""
        if comm.recipient:
            return comm.recipient
        if not comm.customer_id:
            return None
        customer = await self.sink.get_customer(comm.customer_id)
        if customer is None:
            return None
        if comm.channel == CommunicationChannel.SMS:
            return customer.phone_number
        return customer.email

    async def _retry_or_fail(self, comm, attempts: int, error: Optional[str], report: SweepReport) -> None:
        if attempts >= self.max_attempts:
            logger.error(f"Giving up on {comm.id} after {attempts} attempts: {error}")
            await self._mark(comm, CommunicationStatus.FAILED, report, attempts=attempts)
            return
        logger.warning(f"Transient failure for {comm.id} (attempt {attempts}): {error}")
        await self.sink.update_communication(comm.id, CommunicationStatus.PENDING, attempts=attempts)
        report.retrying += 1

    async def _mark(self, comm, status: CommunicationStatus, report: SweepReport,
                    attempts: Optional[int] = None, sent_at: Optional[datetime] = None) -> None:
        applied = await self.sink.update_communication(comm.id, status, sent_at=sent_at, attempts=attempts)
        if not applied:
            # cancelled or handled by another pass meanwhile
            report.skipped += 1
            return
        if status == CommunicationStatus.SENT:
            report.sent += 1
        else:
            report.failed += 1

    async def _loop(self, interval: float) -> None:
        logger.info(f"Communication sweep started (every {interval}s)")
        while not self._stopping.is_set():
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Sweep pass failed: {e}")
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Communication sweep stopped")

    def start(self, interval: float = 60) -> asyncio.Task:
        """Run the sweep in the background every ``interval`` seconds."""
        if self._task and not self._task.done():
            return self._task
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._loop(interval))
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stopping.set()
        await self._task
        self._task = None
