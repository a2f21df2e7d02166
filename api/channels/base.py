"""
Abstract Channel Provider for dealership follow-ups.

Base class for all outbound messaging channel integrations.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

# Provider status codes worth retrying on the next sweep
TRANSIENT_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}


@dataclass
class ChannelMessage:
    """Message to send via a channel."""
    to: str  # Phone number or email
    content: str
    subject: Optional[str] = None
    template_id: Optional[str] = None


@dataclass
class ChannelResponse:
    """Response from channel send operation."""
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    transient: bool = False

    @classmethod
    def from_status(cls, status_code: int, message_id: Optional[str], body: str, ok_codes) -> "ChannelResponse":
        if status_code in ok_codes:
            return cls(success=True, message_id=message_id)
        return cls(
            success=False,
            error=f"HTTP {status_code}: {body[:200]}",
            transient=status_code in TRANSIENT_STATUS_CODES,
        )


class ChannelProvider(ABC):
    """Abstract base class for messaging channels."""

    @abstractmethod
    async def send_message(self, message: ChannelMessage) -> ChannelResponse:
        """Send a message."""
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if channel is operational."""
        ...
