"""
SQLAlchemy ORM models for the dealership squad backend.

All persistent entities: customers, calls, transfers, scheduled
communications, education campaigns, inventory and shared links.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import (
    Column, String, Integer, Float, Boolean, DateTime, Text, ForeignKey,
    JSON, Index,
)
from sqlalchemy.orm import DeclarativeBase


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):

    def to_dict(self) -> Dict[str, Any]:
        return {c.name: getattr(self, c.name) for c in self.__table__.columns}


class Customer(Base):
    __tablename__ = "customers"

    id = Column(String(36), primary_key=True, default=_uuid)
    phone_number = Column(String(32), unique=True, nullable=False)
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    budget = Column(Float, nullable=True)
    preferred_make = Column(String(64), nullable=True)
    preferred_model = Column(String(64), nullable=True)
    preferred_year = Column(Integer, nullable=True)
    vehicle_type = Column(String(32), nullable=True)
    min_mileage = Column(Integer, nullable=True)
    max_mileage = Column(Integer, nullable=True)
    price_range_min = Column(Float, nullable=True)
    price_range_max = Column(Float, nullable=True)
    purchase_timeline = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_now)


class Call(Base):
    __tablename__ = "calls"

    id = Column(String(128), primary_key=True)  # provided by the voice platform
    current_agent = Column(String(32), nullable=False, default="leadQualifier")
    status = Column(String(15), default="active")  # active, completed
    outcome = Column(String(32), nullable=True)
    summary = Column(Text, nullable=True)
    customer_phone = Column(String(32), nullable=True)
    context_json = Column(JSON, default=dict)
    started_at = Column(DateTime(timezone=True), default=_now)
    ended_at = Column(DateTime(timezone=True), nullable=True)


class CallTransfer(Base):
    __tablename__ = "call_transfers"

    id = Column(String(36), primary_key=True, default=_uuid)
    call_id = Column(String(128), ForeignKey("calls.id", ondelete="CASCADE"), nullable=False, index=True)
    from_agent = Column(String(32), nullable=False)
    to_agent = Column(String(32), nullable=False)
    reason = Column(String(128), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_now)


class CallTranscriptRow(Base):
    __tablename__ = "call_transcripts"

    id = Column(String(36), primary_key=True, default=_uuid)
    call_id = Column(String(128), nullable=False, index=True)
    customer_id = Column(String(36), ForeignKey("customers.id"), nullable=True)
    transcript = Column(JSON, default=dict)
    summary = Column(Text, nullable=True)
    intent_analysis = Column(JSON, default=dict)
    lead_score = Column(Integer, nullable=True)
    action_items = Column(JSON, default=list)
    duration_seconds = Column(Integer, default=0)
    created_at = Column(DateTime(timezone=True), default=_now)


class CommunicationLog(Base):
    __tablename__ = "communication_logs"

    id = Column(String(36), primary_key=True, default=_uuid)
    call_id = Column(String(128), nullable=False, index=True)
    customer_id = Column(String(36), ForeignKey("customers.id"), nullable=True)
    recipient = Column(String(255), nullable=True)  # phone or email at planning time
    channel = Column(String(15), nullable=False)  # sms, email, education
    subject = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    scheduled_at = Column(DateTime(timezone=True), nullable=False)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    status = Column(String(15), default="pending")  # pending, sent, failed, cancelled
    attempts = Column(Integer, default=0)
    idempotency_key = Column(String(255), unique=True, nullable=False)
    metadata_json = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), default=_now)

    __table_args__ = (
        Index("ix_comm_status_time", "status", "scheduled_at"),
    )

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["metadata"] = data.pop("metadata_json", None) or {}
        return data


class EducationCampaignRow(Base):
    __tablename__ = "education_campaigns"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), unique=True, nullable=False)
    series = Column(String(32), nullable=False, index=True)
    sequence_order = Column(Integer, default=1)
    subject = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    delay_days = Column(Integer, default=1)
    is_active = Column(Boolean, default=True)


class InventoryRow(Base):
    __tablename__ = "inventory"

    id = Column(String(36), primary_key=True, default=_uuid)
    stock_number = Column(String(32), unique=True, nullable=False)
    vin = Column(String(32), nullable=True)
    year = Column(Integer, nullable=False)
    make = Column(String(64), nullable=False)
    model = Column(String(64), nullable=False)
    trim_level = Column(String(64), nullable=True)
    mileage = Column(Integer, default=0)
    price = Column(Float, nullable=False)
    color = Column(String(32), nullable=True)
    condition = Column(String(16), default="used")
    body_type = Column(String(32), nullable=True)
    features = Column(JSON, default=list)
    is_available = Column(Boolean, default=True)

    __table_args__ = (
        Index("ix_inventory_make_model", "make", "model"),
    )


class SharedLinkRow(Base):
    __tablename__ = "shared_links"

    short_code = Column(String(16), primary_key=True)
    full_url = Column(String(512), nullable=False)
    call_id = Column(String(128), nullable=True)
    customer_id = Column(String(36), nullable=True)
    inventory_ids = Column(JSON, default=list)
    clicks = Column(Integer, default=0)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_now)


class SalesAssignmentRow(Base):
    __tablename__ = "sales_assignments"

    id = Column(String(36), primary_key=True, default=_uuid)
    call_id = Column(String(128), nullable=False, index=True)
    customer_id = Column(String(36), nullable=True)
    salesperson_name = Column(String(255), nullable=False)
    salesperson_email = Column(String(255), nullable=True)
    salesperson_phone = Column(String(32), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_now)
