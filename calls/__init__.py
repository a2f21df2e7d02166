"""
Calls module: per-call session state and transfer history.
"""

from .session_store import CallSession, CallSessionStore, SessionStatus, TransferRecord

__all__ = [
    "CallSession",
    "CallSessionStore",
    "SessionStatus",
    "TransferRecord",
]
