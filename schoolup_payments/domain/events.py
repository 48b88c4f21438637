"""
Domain events emitted by settlement.

Settlement does not deliver notifications itself. It records a
PaymentSettled event in the outbox inside the same unit of work as the
ledger writes; the NotificationRelay consumes it afterwards. Delivery can
fail or be retried without ever touching the settled Payment.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from schoolup_payments.domain.models import Message, PaymentMethod


class EventMetadata(BaseModel):
    """Metadata attached to every event."""

    model_config = ConfigDict(frozen=True)

    event_id: str = Field(default_factory=lambda: f"evt-{uuid.uuid4().hex}")
    event_type: str
    aggregate_id: str  # transaction id, or payment id for manual entries
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    correlation_id: str | None = None


class DomainEvent(BaseModel):
    """Base class for all domain events. Events describe past facts."""

    model_config = ConfigDict(frozen=True)

    metadata: EventMetadata

    @property
    def event_type(self) -> str:
        return self.metadata.event_type


class PaymentSettled(DomainEvent):
    """
    A payment was booked into the ledger.

    Carries the fully composed receipt message so the relay has nothing
    left to decide at delivery time.
    """

    payment_id: str
    transaction_id: str | None
    student_id: str
    payer_id: str
    amount: Decimal
    method: PaymentMethod
    receipt_number: str
    message: Message


class OutboxEvent(BaseModel):
    """An event waiting in the transactional outbox."""

    model_config = ConfigDict(frozen=True)

    event: PaymentSettled
    created_at: datetime
    published: bool = False
    published_at: datetime | None = None

    @property
    def id(self) -> str:
        return self.event.metadata.event_id

    @property
    def event_type(self) -> str:
        return self.event.event_type

    def mark_published(self, at: datetime) -> OutboxEvent:
        return self.model_copy(update={"published": True, "published_at": at})


def create_event_metadata(
    event_type: str, aggregate_id: str, correlation_id: str | None = None
) -> EventMetadata:
    return EventMetadata(
        event_type=event_type, aggregate_id=aggregate_id, correlation_id=correlation_id
    )
