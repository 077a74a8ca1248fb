"""Pydantic models for the ticketing read-model service.

Three envelope kinds travel over Kafka:

- PurchaseRequested      (we produce it, external processors consume it)
- InventoryUpdated       (external inventory processor produces it, we consume it)
- PaymentStatusUpdated   (external payment processor produces it, we consume it)

Why validate with Pydantic?
- Kafka is a log: it can hold messages written by older producers.
- Validation turns a malformed payload into one clear error instead of a
  KeyError deep inside the consumer loop.

Event times:
    `updatedAt` decides which event wins for a key, so every timestamp must be
    comparable. Naive timestamps are read as UTC.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator

# Identifiers and keys: surrounding whitespace is stripped, blank is rejected.
NonBlankStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


def _new_event_id() -> str:
    return str(uuid4())


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class PurchaseRequest(BaseModel):
    """Validated purchase intent handed to the command emitter.

    `purchaseId` must be unique per logical purchase; the caller owns that.
    """

    purchaseId: NonBlankStr
    ticketType: NonBlankStr
    quantity: int = Field(ge=1, strict=True)
    customerRef: Optional[str] = None


class PurchaseRequested(BaseModel):
    """Kafka event produced for every submitted purchase.

    Fields:
        eventId: Globally unique identifier for this event (UUID string).
        eventType: Constant discriminator for the event kind.
        eventVersion: Schema version.
        requestedAt: When the purchase was submitted (UTC).

        purchaseId: Message key on the outbound topic.
        ticketType: Which kind of ticket.
        quantity: How many tickets, >= 1.
        customerRef: Opaque customer reference, optional.
    """

    model_config = ConfigDict(frozen=True)

    eventId: str = Field(default_factory=_new_event_id)
    eventType: Literal["PurchaseRequested"] = "PurchaseRequested"
    eventVersion: int = 1
    requestedAt: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    purchaseId: NonBlankStr
    ticketType: NonBlankStr
    quantity: int = Field(ge=1, strict=True)
    customerRef: Optional[str] = None

    @classmethod
    def from_request(cls, request: PurchaseRequest) -> "PurchaseRequested":
        return cls(
            purchaseId=request.purchaseId,
            ticketType=request.ticketType,
            quantity=request.quantity,
            customerRef=request.customerRef,
        )

    @field_validator("requestedAt")
    @classmethod
    def requested_at_as_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)


class InventoryUpdated(BaseModel):
    """Kafka event: current availability for one ticket type."""

    model_config = ConfigDict(frozen=True)

    eventId: str = Field(default_factory=_new_event_id)
    eventType: Literal["InventoryUpdated"] = "InventoryUpdated"
    eventVersion: int = 1

    ticketType: NonBlankStr
    availableCount: int = Field(ge=0)
    updatedAt: datetime

    @field_validator("updatedAt")
    @classmethod
    def updated_at_as_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)


class PaymentStatusUpdated(BaseModel):
    """Kafka event: payment status of one purchase."""

    model_config = ConfigDict(frozen=True)

    eventId: str = Field(default_factory=_new_event_id)
    eventType: Literal["PaymentStatusUpdated"] = "PaymentStatusUpdated"
    eventVersion: int = 1

    purchaseId: NonBlankStr
    status: PaymentStatus
    updatedAt: datetime

    @field_validator("updatedAt")
    @classmethod
    def updated_at_as_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)


class SubmitAck(BaseModel):
    """Response for an accepted purchase.

    "accepted" means the event was handed to Kafka, not that payment or
    inventory processing has happened. Poll the status lookup for that.
    """

    status: Literal["accepted"] = "accepted"
    purchaseId: str
    eventId: str
    topic: str


class InventoryView(BaseModel):
    ticketType: str
    availableCount: int
    updatedAt: datetime


class StatusView(BaseModel):
    purchaseId: str
    status: PaymentStatus
    updatedAt: datetime
