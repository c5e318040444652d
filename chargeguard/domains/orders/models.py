"""Pydantic models for the order intake queue."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from chargeguard.domains.fraud.models import BehavioralSignals, OrderSnapshot


class OrderStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    SCANNED = "scanned"
    FAILED = "failed"


class OrderIntakeRequest(OrderSnapshot):
    behavioral_signals: BehavioralSignals | None = None


class QueuedOrder(OrderIntakeRequest):
    """A claimed order, detached from its session."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    attempts: int = 0
    received_at: datetime | None = None


class IntakeResult(BaseModel):
    merchant_id: str
    platform: str
    order_id: str
    status: OrderStatus
    duplicate: bool = False


class BatchResult(BaseModel):
    released_stale: int = 0
    claimed: int = 0
    scanned: int = 0
    failed: int = 0
    approved: int = 0
    held: int = 0
    blocked: int = 0


class OrderView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    merchant_id: str
    platform: str
    order_id: str
    amount: float
    customer_email: str | None = None
    status: OrderStatus
    attempts: int = 0
    failure_reason: str | None = None
    assessment: dict | None = None
    received_at: datetime | None = None
    processed_at: datetime | None = None


class OrderReceivedEvent(BaseModel):
    """Kafka envelope carrying an intake payload."""

    event_id: str
    event_type: str
    timestamp: datetime | None = None
    payload: dict = Field(default_factory=dict)
