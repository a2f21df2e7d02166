"""
Email Channel Providers for dealership follow-ups.

Supports SendGrid (primary) and AWS SES (fallback).
"""

import asyncio
import logging
from typing import Optional

import httpx

from .base import ChannelMessage, ChannelProvider, ChannelResponse

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT = "Your Vehicle Update"


class SendGridEmail(ChannelProvider):
    """Email via SendGrid API."""

    BASE_URL = "https://api.sendgrid.com/v3/mail/send"

    def __init__(self, api_key: str, from_email: str, from_name: str = "Dealership"):
        self.api_key = api_key
        self.from_email = from_email
        self.from_name = from_name

    async def send_message(self, message: ChannelMessage) -> ChannelResponse:
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        payload = {
            "personalizations": [{"to": [{"email": message.to}]}],
            "from": {"email": self.from_email, "name": self.from_name},
            "subject": message.subject or DEFAULT_SUBJECT,
            "content": [{"type": "text/html", "value": message.content}],
        }
        try:
            async with httpx.AsyncClient() as client:
                resp = await client.post(self.BASE_URL, json=payload, headers=headers, timeout=10)
            return ChannelResponse.from_status(
                resp.status_code, resp.headers.get("X-Message-Id"), resp.text, (200, 202)
            )
        except httpx.TransportError as e:
            logger.error(f"SendGrid send failed: {e}")
            return ChannelResponse(success=False, error=str(e), transient=True)
        except httpx.HTTPError as e:
            logger.error(f"SendGrid send failed: {e}")
            return ChannelResponse(success=False, error=str(e))

    async def health_check(self) -> bool:
        return bool(self.api_key)  # SendGrid doesn't have a simple health endpoint


class SESEmail(ChannelProvider):
    """Email via AWS SES."""

    def __init__(self, region: str = "us-east-1", from_email: str = ""):
        self.region = region
        self.from_email = from_email
        self._client = None

    def _get_client(self):
        if not self._client:
            import boto3
            self._client = boto3.client("ses", region_name=self.region)
        return self._client

    async def send_message(self, message: ChannelMessage) -> ChannelResponse:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            client = self._get_client()
            resp = await asyncio.to_thread(
                client.send_email,
                Source=self.from_email,
                Destination={"ToAddresses": [message.to]},
                Message={
                    "Subject": {"Data": message.subject or DEFAULT_SUBJECT},
                    "Body": {"Html": {"Data": message.content}},
                },
            )
            return ChannelResponse(success=True, message_id=resp.get("MessageId"))
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            logger.error(f"SES send failed: {e}")
            return ChannelResponse(success=False, error=str(e), transient=code in ("Throttling", "ServiceUnavailable"))
        except BotoCoreError as e:
            logger.error(f"SES send failed: {e}")
            return ChannelResponse(success=False, error=str(e), transient=True)

    async def health_check(self) -> bool:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            client = self._get_client()
            await asyncio.to_thread(client.get_send_quota)
            return True
        except (BotoCoreError, ClientError):
            return False


class EmailRouter:
    """Routes emails through primary or fallback provider."""

    def __init__(self, primary: ChannelProvider, fallback: Optional[ChannelProvider] = None):
        self.primary = primary
        self.fallback = fallback

    async def send(self, message: ChannelMessage) -> ChannelResponse:
        result = await self.primary.send_message(message)
        if not result.success and self.fallback:
            logger.warning("Primary email failed, trying fallback")
            result = await self.fallback.send_message(message)
        return result
