"""
Service initialization and dependency injection for the dealership squad API.

Creates and manages all service instances used by the API.
"""

import logging
from typing import Optional

from calls.session_store import CallSessionStore
from communications.campaigns import seed_campaigns
from communications.scheduler import CommunicationScheduler
from communications.sweep import CommunicationSweep
from config.settings import Settings, get_settings
from database.sink import InMemoryRecordSink, RecordSink, SqlRecordSink
from inventory.links import ShareableLinkService
from inventory.matcher import InventoryMatcher, seed_inventory
from lead_scoring.lead_router import LeadRouter
from lead_scoring.scoring_model import LeadScorer
from squad.agents import AgentCatalog, build_default_catalog
from squad.assignment import AssignmentPolicy, build_roster, create_policy
from squad.router import AgentRouter
from tool_calls.dispatcher import ToolCallDispatcher

from .channels.sender import MessageSender, build_sender
from .middleware import metrics

logger = logging.getLogger(__name__)


class Services:
    """Container for all application services."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings: Optional[Settings] = settings
        self.sink: Optional[RecordSink] = None
        self.catalog: Optional[AgentCatalog] = None
        self.router: Optional[AgentRouter] = None
        self.scorer: Optional[LeadScorer] = None
        self.assignment: Optional[AssignmentPolicy] = None
        self.store: Optional[CallSessionStore] = None
        self.scheduler: Optional[CommunicationScheduler] = None
        self.sender: Optional[MessageSender] = None
        self.sweep: Optional[CommunicationSweep] = None
        self.matcher: Optional[InventoryMatcher] = None
        self.links: Optional[ShareableLinkService] = None
        self.lead_router: Optional[LeadRouter] = None
        self.dispatcher: Optional[ToolCallDispatcher] = None
        self.persistent = False
        self._initialized = False

    async def initialize(self, sink: Optional[RecordSink] = None, sender: Optional[MessageSender] = None):
        """
        Initialize all services.

        Args:
            sink: Record sink to use instead of the configured one
            sender: Message sender to use instead of the configured providers
        """
        if self._initialized:
            return

        self.settings = self.settings or get_settings()
        self.sink = sink or await self._init_sink()
        await self._seed()
        self._init_squad()
        self._init_communications(sender)
        self._init_dispatcher()
        self._initialized = True
        logger.info("All services initialized successfully")

    async def _init_sink(self) -> RecordSink:
        """SQL sink when DATABASE_URL is set, otherwise in-memory."""
        s = self.settings
        if s.database_url:
            try:
                from database.session import init_db
                factory = await init_db(s.database_url)
                self.persistent = True
                logger.info("Database record sink ready")
                return SqlRecordSink(factory)
            except Exception as e:
                logger.warning(f"Database init failed (running in memory): {e}")
        else:
            logger.warning("DATABASE_URL not set, records are kept in memory")
        return InMemoryRecordSink()

    async def _seed(self):
        """Stock the starter inventory and campaign catalog when missing."""
        try:
            await seed_inventory(self.sink)
            await seed_campaigns(self.sink)
        except Exception as e:
            logger.error(f"Seeding failed: {e}")

    def _init_squad(self):
        s = self.settings
        self.catalog = build_default_catalog()
        self.router = AgentRouter(self.catalog)
        self.scorer = LeadScorer(budget_threshold=s.qualification_budget_threshold)
        self.assignment = create_policy(s.assignment_policy, build_roster(s.roster_list))
        self.store = CallSessionStore(
            self.sink,
            on_transfer=lambda record: metrics.record_transfer(record.to_agent.value),
        )
        logger.info(f"Squad ready ({len(self.catalog)} agents, {s.assignment_policy} assignment)")

    def _init_communications(self, sender: Optional[MessageSender]):
        s = self.settings
        self.scheduler = CommunicationScheduler(
            self.sink,
            summary_delay_minutes=s.summary_email_delay_minutes,
            education_series=s.education_series,
            dealership_name=s.dealership_name,
        )
        self.sender = sender or build_sender(s)
        self.sweep = CommunicationSweep(
            self.sink,
            self.sender,
            max_attempts=s.sweep_max_attempts,
            on_report=lambda r: metrics.record_sweep(r.sent, r.failed, r.retrying),
        )
        self.matcher = InventoryMatcher(self.sink)
        self.links = ShareableLinkService(self.sink, s.base_url, ttl_days=s.shared_link_ttl_days)
        self.lead_router = LeadRouter(webhook_url=s.google_sheets_webhook)

    def _init_dispatcher(self):
        self.dispatcher = ToolCallDispatcher(
            scorer=self.scorer,
            router=self.router,
            store=self.store,
            scheduler=self.scheduler,
            sink=self.sink,
            matcher=self.matcher,
            links=self.links,
            assignment=self.assignment,
            lead_router=self.lead_router,
            dealership_phone=self.settings.dealership_phone,
            cancel_drip_on_complete=self.settings.cancel_drip_on_complete,
        )

    def start_background(self):
        if self.settings.sweep_enabled and self.sweep is not None:
            self.sweep.start(self.settings.sweep_interval_seconds)

    async def shutdown(self):
        if self.sweep is not None:
            await self.sweep.stop()
        if self.persistent:
            from database.session import close_db
            await close_db()
        self._initialized = False

    @property
    def is_ready(self) -> bool:
        return self._initialized and self.dispatcher is not None

    def health(self) -> dict:
        """Return health status of all services."""
        return {
            "initialized": self._initialized,
            "database": self.persistent,
            "dispatcher": self.dispatcher is not None,
            "active_calls": len(self.store.list_active()) if self.store else 0,
            "email": bool(self.sender and self.sender.email),
            "sms": bool(self.sender and self.sender.sms),
            "lead_export": self.lead_router.get_stats() if self.lead_router else None,
        }


# Singleton
_services = Services()


def get_services() -> Services:
    """Get the global services instance."""
    return _services


async def initialize_services(settings: Optional[Settings] = None):
    """Initialize all services (called at startup) with the app's settings."""
    if settings is not None and not _services.is_ready:
        _services.settings = settings
    await _services.initialize()
