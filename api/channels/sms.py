"""
SMS Channel Provider (Twilio).

Talks to the Twilio REST API directly over httpx.
"""

import logging

import httpx

from .base import ChannelMessage, ChannelProvider, ChannelResponse

logger = logging.getLogger(__name__)


class TwilioSMS(ChannelProvider):
    """SMS via Twilio Messages API."""

    BASE_URL = "https://api.twilio.com/2010-04-01"

    def __init__(self, account_sid: str, auth_token: str, from_number: str):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number

    @property
    def messages_url(self) -> str:
        return f"{self.BASE_URL}/Accounts/{self.account_sid}/Messages.json"

    async def send_message(self, message: ChannelMessage) -> ChannelResponse:
        data = {"To": message.to, "From": self.from_number, "Body": message.content}
        try:
            async with httpx.AsyncClient() as client:
                resp = await client.post(
                    self.messages_url,
                    data=data,
                    auth=(self.account_sid, self.auth_token),
                    timeout=10,
                )
            sid = None
            if resp.status_code in (200, 201):
                sid = resp.json().get("sid")
            return ChannelResponse.from_status(resp.status_code, sid, resp.text, (200, 201))
        except httpx.TransportError as e:
            logger.error(f"Twilio send failed: {e}")
            return ChannelResponse(success=False, error=str(e), transient=True)
        except httpx.HTTPError as e:
            logger.error(f"Twilio send failed: {e}")
            return ChannelResponse(success=False, error=str(e))

    async def health_check(self) -> bool:
        try:
            async with httpx.AsyncClient() as client:
                resp = await client.get(
                    f"{self.BASE_URL}/Accounts/{self.account_sid}.json",
                    auth=(self.account_sid, self.auth_token),
                    timeout=5,
                )
            return resp.status_code == 200
        except httpx.HTTPError:
            return False
