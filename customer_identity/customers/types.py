"""
Customer Identity Type Definitions

Types for matching a partial identifier against partner customer records and
bookings, and for the unified customer profile built from the best match.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class MatchConfidence(str, Enum):
    """Heuristic strength of an identity match."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class MatchSource(str, Enum):
    """Which collection produced a candidate."""

    PARTNER = "partner"  # partner-scoped customer record
    BOOKING = "booking"  # contact fields denormalized onto a booking


class MatchField(str, Enum):
    """Identifier fields that can agree with a stored row."""

    EMAIL = "email"
    PHONE = "phone"
    NAME = "name"


def _mask(value: str | None) -> str | None:
    if not value:
        return value
    if len(value) <= 4:
        return "*" * len(value)
    return value[:2] + "*" * (len(value) - 4) + value[-2:]


class CustomerIdentifier(BaseModel):
    """Partial identifier supplied by a caller. Every field is optional."""

    email: str | None = None
    phone: str | None = None
    name: str | None = None

    @field_validator("email", "phone", "name", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def is_empty(self) -> bool:
        return not (self.email or self.phone or self.name)

    def log_context(self) -> dict[str, str | None]:
        """Identifier fields with contact details masked for log output."""
        return {
            "email": _mask(self.email),
            "phone": _mask(self.phone),
            "name": self.name,
        }


class _Record(BaseModel):
    @field_validator("id", "customer_id", "partner_id", "mitra_id", mode="before", check_fields=False)
    @classmethod
    def _stringify_ids(cls, value: Any) -> Any:
        # UUID columns come back as uuid.UUID from asyncpg
        if value is None or isinstance(value, str):
            return value
        return str(value)


class PartnerCustomerRecord(_Record):
    """Row of `partner_customers`, owned by one partner tenant."""

    id: str
    partner_id: str | None = None
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    created_at: datetime | None = None

    # Cached stats maintained by the partner customer detail endpoint
    booking_count: int | None = None
    total_spent: float | None = None
    last_trip_date: date | None = None


class BookingRecord(_Record):
    """Row of `bookings` with its denormalized customer contact columns."""

    id: str
    customer_id: str | None = None
    customer_name: str | None = None
    customer_email: str | None = None
    customer_phone: str | None = None
    total_amount: float | None = None
    trip_date: date | None = None
    created_at: datetime | None = None
    status: str | None = None
    booking_code: str | None = None
    mitra_id: str | None = None


class CustomerMatch(BaseModel):
    """A candidate identity produced by the matcher. Never persisted."""

    customer_id: str
    source: MatchSource
    email: str | None = None
    phone: str | None = None
    name: str = "Unknown"
    confidence: MatchConfidence
    match_reason: str
    matched_fields: list[MatchField] = Field(default_factory=list)


class CoreIdentity(BaseModel):
    name: str | None = None
    email: str | None = None
    phone: str | None = None


class CustomerStats(BaseModel):
    total_bookings: int = 0
    total_spent: float = 0.0
    last_trip_date: date | None = None
    average_booking_value: float = 0.0


class UnifiedCustomer(BaseModel):
    """Profile assembled on demand from the top match and its history."""

    id: str
    core: CoreIdentity
    partner_customers: list[PartnerCustomerRecord] = Field(default_factory=list)
    bookings: list[BookingRecord] = Field(default_factory=list)
    stats: CustomerStats = Field(default_factory=CustomerStats)


class PartnerCustomerDetail(BaseModel):
    """Partner customer with refreshed booking stats and its bookings."""

    customer: PartnerCustomerRecord
    bookings: list[BookingRecord] = Field(default_factory=list)
