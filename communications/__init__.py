"""
Communications module: follow-up planning, message templates and delivery sweep.
"""

from .campaigns import DEFAULT_CAMPAIGNS, seed_campaigns
from .scheduler import CommunicationScheduler, sms_key, email_key, education_key
from .sweep import CommunicationSweep, SweepReport, TransientDeliveryError

__all__ = [
    "DEFAULT_CAMPAIGNS",
    "seed_campaigns",
    "CommunicationScheduler",
    "sms_key",
    "email_key",
    "education_key",
    "CommunicationSweep",
    "SweepReport",
    "TransientDeliveryError",
]
