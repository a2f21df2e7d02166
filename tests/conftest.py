"""Shared fixtures for dealership squad tests."""

import os
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

# Keep tests off any real database or provider configured in the shell
os.environ["DATABASE_URL"] = ""
os.environ["API_KEY"] = ""
os.environ["GOOGLE_SHEETS_WEBHOOK"] = ""
os.environ["SWEEP_ENABLED"] = "false"

from api.channels.base import ChannelResponse  # noqa: E402
from communications.campaigns import seed_campaigns  # noqa: E402
from config.settings import Settings  # noqa: E402
from database.records import CustomerProfile  # noqa: E402
from database.sink import InMemoryRecordSink  # noqa: E402
from inventory.matcher import seed_inventory  # noqa: E402

NOW = datetime(2025, 3, 1, 15, 0, tzinfo=timezone.utc)


class FakeSender:
    """Records deliveries; responses can be scripted per recipient."""

    email = None
    sms = None

    def __init__(self):
        self.sent = []
        self.responses = {}

    async def deliver(self, channel, recipient, subject, body, template=None):
        self.sent.append({
            "channel": channel,
            "recipient": recipient,
            "subject": subject,
            "body": body,
            "template": template,
        })
        response = self.responses.get(recipient)
        if isinstance(response, Exception):
            raise response
        return response or ChannelResponse(success=True, message_id=f"msg-{len(self.sent)}")


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def sink():
    return InMemoryRecordSink()


@pytest.fixture
async def seeded_sink():
    sink = InMemoryRecordSink()
    await seed_inventory(sink)
    await seed_campaigns(sink)
    return sink


@pytest.fixture
def sender():
    return FakeSender()


@pytest.fixture
def customer():
    return CustomerProfile(
        phone_number="+15551234567",
        name="Jane Doe",
        email="jane@example.com",
        budget=45000,
        preferred_make="Toyota",
        preferred_model="4Runner",
        preferred_year=2024,
    )


def make_settings(**overrides):
    options = dict(
        database_url=None,
        api_key=None,
        sweep_enabled=False,
        google_sheets_webhook=None,
        base_url="https://dealer.test",
        rate_limit_per_minute=1000,
    )
    options.update(overrides)
    return Settings(**options)


async def build_services(settings, sender):
    from api.services import Services

    services = Services(settings)
    await services.initialize(sink=InMemoryRecordSink(), sender=sender)
    return services


def build_client(settings, services):
    from api.main import create_app
    from api.services import get_services

    app = create_app(settings)
    app.dependency_overrides[get_services] = lambda: services
    return TestClient(app)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
async def services(settings, sender):
    return await build_services(settings, sender)


@pytest.fixture
def client(settings, services):
    """FastAPI test client wired to in-memory services."""
    return build_client(settings, services)


@pytest.fixture
async def secured_client(sender):
    settings = make_settings(api_key="secret-key")
    return build_client(settings, await build_services(settings, sender))


@pytest.fixture
async def throttled_client(sender):
    settings = make_settings(rate_limit_per_minute=2)
    return build_client(settings, await build_services(settings, sender))


@pytest.fixture
def sample_customer_info():
    return {
        "name": "Jane Doe",
        "phoneNumber": "+15551234567",
        "email": "jane@example.com",
        "budget": 45000,
        "intent": "buy",
        "urgency": "medium",
        "timeline": "this week",
        "preferredMake": "Toyota",
        "preferredModel": "4Runner",
        "preferredYear": 2024,
    }


@pytest.fixture
async def inbox_client(sender):
    settings = make_settings(sales_inbox_email="sales@dealer.test")
    return build_client(settings, await build_services(settings, sender))
