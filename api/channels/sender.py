"""
Message sender used by the communication sweep.

Picks the channel provider for a scheduled message and applies the HTML
layout to email bodies at delivery time.
"""

import logging
from typing import Optional

from communications.templates import wrap_html

from .base import ChannelMessage, ChannelProvider, ChannelResponse
from .email import EmailRouter, SendGridEmail, SESEmail
from .sms import TwilioSMS

logger = logging.getLogger(__name__)


class MessageSender:
    """Delivers one message over SMS or email."""

    def __init__(
        self,
        email: Optional[EmailRouter] = None,
        sms: Optional[ChannelProvider] = None,
        dealership_name: str = "Your Dealership",
        dealership_phone: str = "",
    ):
        self.email = email
        self.sms = sms
        self.dealership_name = dealership_name
        self.dealership_phone = dealership_phone

    async def deliver(
        self,
        channel: str,
        recipient: str,
        subject: str,
        body: str,
        template: Optional[str] = None,
    ) -> ChannelResponse:
        """
        Send a message.

        Args:
            channel: "sms", "email" or "education"
            recipient: Phone number for SMS, email address otherwise
            subject: Subject line (ignored for SMS)
            body: Stored message body
            template: HTML layout name for email channels

        Returns:
            ChannelResponse; unconfigured channels fail without retry
        """
        if channel == "sms":
            if self.sms is None:
                return ChannelResponse(success=False, error="SMS channel not configured")
            response = await self.sms.send_message(ChannelMessage(to=recipient, content=body))
        else:
            if self.email is None:
                return ChannelResponse(success=False, error="email channel not configured")
            html = wrap_html(
                body,
                template or ("education" if channel == "education" else "default"),
                dealership=self.dealership_name,
                phone=self.dealership_phone,
            )
            response = await self.email.send(ChannelMessage(to=recipient, content=html, subject=subject))

        if response.success:
            logger.info(f"{channel} delivered to {recipient} ({response.message_id})")
        return response


def build_sender(settings) -> MessageSender:
    """Wire providers from settings; missing credentials leave a channel unset."""
    primary = None
    fallback = None
    if settings.email_service == "ses":
        primary = SESEmail(region=settings.aws_region, from_email=settings.email_from)
    elif settings.email_service == "sendgrid" and settings.sendgrid_api_key:
        primary = SendGridEmail(settings.sendgrid_api_key, settings.email_from, settings.dealership_name)
        if settings.email_fallback_ses:
            fallback = SESEmail(region=settings.aws_region, from_email=settings.email_from)

    email = EmailRouter(primary, fallback) if primary is not None else None
    if email is None:
        logger.warning("No email provider configured, email follow-ups will fail")

    sms = None
    if settings.sms_enabled:
        sms = TwilioSMS(settings.twilio_account_sid, settings.twilio_auth_token, settings.twilio_from_number)
    else:
        logger.warning("Twilio not configured, SMS follow-ups will fail")

    return MessageSender(
        email=email,
        sms=sms,
        dealership_name=settings.dealership_name,
        dealership_phone=settings.dealership_phone,
    )
