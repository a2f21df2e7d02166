"""
Plain records exchanged with the record sink.

These are storage-agnostic: the SQL sink maps them to ORM rows and the
in-memory sink keeps them as-is.
"""

import uuid
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes coming back from the database."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def new_id() -> str:
    return str(uuid.uuid4())


class CommunicationChannel(str, Enum):
    SMS = "sms"
    EMAIL = "email"
    EDUCATION = "education"


class CommunicationStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"


class _Record:
    """Helpers shared by the record dataclasses."""

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]):
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in names})

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, datetime):
                data[key] = value.isoformat()
            elif isinstance(value, Enum):
                data[key] = value.value
        return data


@dataclass
class CustomerProfile(_Record):
    phone_number: str
    id: str = field(default_factory=new_id)
    name: Optional[str] = None
    email: Optional[str] = None
    budget: Optional[float] = None
    preferred_make: Optional[str] = None
    preferred_model: Optional[str] = None
    preferred_year: Optional[int] = None
    vehicle_type: Optional[str] = None
    min_mileage: Optional[int] = None
    max_mileage: Optional[int] = None
    price_range_min: Optional[float] = None
    price_range_max: Optional[float] = None
    purchase_timeline: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def has_email(self) -> bool:
        return bool(self.email)


@dataclass
class ScheduledCommunication(_Record):
    call_id: str
    channel: CommunicationChannel
    subject: str
    body: str
    scheduled_at: datetime
    idempotency_key: str
    customer_id: Optional[str] = None
    recipient: Optional[str] = None
    id: str = field(default_factory=new_id)
    status: CommunicationStatus = CommunicationStatus.PENDING
    attempts: int = 0
    sent_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        self.channel = CommunicationChannel(self.channel)
        self.status = CommunicationStatus(self.status)
        self.scheduled_at = as_utc(self.scheduled_at)
        self.sent_at = as_utc(self.sent_at)
        self.created_at = as_utc(self.created_at)


@dataclass
class EducationCampaign(_Record):
    name: str
    series: str
    sequence_order: int
    subject: str
    body: str
    delay_days: int
    is_active: bool = True


@dataclass
class InventoryVehicle(_Record):
    stock_number: str
    year: int
    make: str
    model: str
    price: float
    mileage: int
    id: str = field(default_factory=new_id)
    vin: Optional[str] = None
    trim_level: Optional[str] = None
    color: Optional[str] = None
    condition: str = "used"
    body_type: Optional[str] = None
    features: List[str] = field(default_factory=list)
    is_available: bool = True

    @property
    def title(self) -> str:
        return " ".join(str(p) for p in (self.year, self.make, self.model, self.trim_level or "") if p).strip()


@dataclass
class SharedLink(_Record):
    short_code: str
    full_url: str
    call_id: Optional[str]
    customer_id: Optional[str]
    inventory_ids: List[str]
    expires_at: datetime
    clicks: int = 0
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        self.expires_at = as_utc(self.expires_at)
        self.created_at = as_utc(self.created_at)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) >= self.expires_at

    @staticmethod
    def expiry(days: int, now: Optional[datetime] = None) -> datetime:
        return (now or utcnow()) + timedelta(days=days)


@dataclass
class SalesAssignment(_Record):
    call_id: str
    salesperson_name: str
    salesperson_email: str
    salesperson_phone: str
    customer_id: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class CallTranscript(_Record):
    call_id: str
    customer_id: Optional[str] = None
    transcript: Dict[str, Any] = field(default_factory=dict)
    summary: Optional[str] = None
    intent_analysis: Dict[str, Any] = field(default_factory=dict)
    lead_score: Optional[int] = None
    action_items: List[str] = field(default_factory=list)
    duration_seconds: int = 0
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class WriteResult:
    """Outcome of a sink write. Callers decide whether a failure matters."""
    ok: bool
    record: Any = None
    error: Optional[str] = None
    duplicate: bool = False

    @classmethod
    def success(cls, record: Any = None) -> "WriteResult":
        return cls(ok=True, record=record)

    @classmethod
    def failure(cls, error: str) -> "WriteResult":
        return cls(ok=False, error=error)

    @classmethod
    def already_exists(cls, record: Any) -> "WriteResult":
        return cls(ok=False, record=record, duplicate=True, error="duplicate")
