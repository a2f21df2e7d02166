"""Tests for outbound channel wiring."""

import pytest

from api.channels.base import ChannelProvider, ChannelResponse
from api.channels.email import EmailRouter, SendGridEmail, SESEmail
from api.channels.sender import MessageSender, build_sender
from api.channels.sms import TwilioSMS
from config.settings import Settings


class FakeProvider(ChannelProvider):
    def __init__(self, response=None):
        self.messages = []
        self.response = response or ChannelResponse(success=True, message_id="m-1")

    async def send_message(self, message):
        self.messages.append(message)
        return self.response

    async def health_check(self):
        return True


def make_settings(**overrides):
    options = dict(
        email_service="disabled",
        sendgrid_api_key=None,
        email_fallback_ses=False,
        twilio_account_sid=None,
        twilio_auth_token=None,
        twilio_from_number=None,
        dealership_name="Test Motors",
        dealership_phone="+15550000000",
    )
    options.update(overrides)
    return Settings(**options)


class TestMessageSender:
    @pytest.mark.asyncio
    async def test_sms_sends_plain_body(self):
        sms = FakeProvider()
        sender = MessageSender(sms=sms)
        response = await sender.deliver("sms", "+1555", "ignored", "Hi there")
        assert response.success
        assert sms.messages[0].content == "Hi there"
        assert sms.messages[0].subject is None

    @pytest.mark.asyncio
    async def test_education_email_uses_education_layout(self):
        email = FakeProvider()
        sender = MessageSender(email=EmailRouter(email), dealership_name="Test Motors", dealership_phone="+1555")
        await sender.deliver("education", "a@b.com", "Tip", "<p>Research</p>")
        message = email.messages[0]
        assert message.subject == "Tip"
        assert "Car Buying Tips" in message.content
        assert "<p>Research</p>" in message.content

    @pytest.mark.asyncio
    async def test_unconfigured_channel_fails_permanently(self):
        sender = MessageSender()
        for channel in ("sms", "email"):
            response = await sender.deliver(channel, "x", "s", "b")
            assert response.success is False
            assert response.transient is False

    @pytest.mark.asyncio
    async def test_email_fallback(self):
        primary = FakeProvider(ChannelResponse(success=False, error="HTTP 503", transient=True))
        fallback = FakeProvider()
        router = EmailRouter(primary, fallback)
        response = await MessageSender(email=router).deliver("email", "a@b.com", "Hi", "Body")
        assert response.success
        assert len(primary.messages) == len(fallback.messages) == 1


class TestChannelResponse:
    @pytest.mark.parametrize("status,success,transient", [
        (202, True, False), (429, False, True), (503, False, True), (400, False, False),
    ])
    def test_from_status(self, status, success, transient):
        response = ChannelResponse.from_status(status, "id-1", "body", (200, 202))
        assert response.success is success
        assert response.transient is transient


class TestBuildSender:
    def test_nothing_configured(self):
        sender = build_sender(make_settings())
        assert sender.email is None
        assert sender.sms is None

    def test_sendgrid_with_ses_fallback(self):
        sender = build_sender(make_settings(
            email_service="sendgrid", sendgrid_api_key="SG.key", email_fallback_ses=True,
        ))
        assert isinstance(sender.email.primary, SendGridEmail)
        assert isinstance(sender.email.fallback, SESEmail)

    def test_sendgrid_without_key_is_disabled(self):
        assert build_sender(make_settings(email_service="sendgrid")).email is None

    def test_twilio(self):
        sender = build_sender(make_settings(
            twilio_account_sid="AC123", twilio_auth_token="token", twilio_from_number="+15550001111",
        ))
        assert isinstance(sender.sms, TwilioSMS)
        assert sender.sms.messages_url.endswith("/Accounts/AC123/Messages.json")
