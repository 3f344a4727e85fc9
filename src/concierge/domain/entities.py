"""Hosted-database entities the concierge reads and writes through tools.

These mirror the rows of the venues, bookings, users, points_transactions and
concierge_requests tables. The concierge never owns them: the gateway loads
them and the tools hand them to the model.
"""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field

from .domain_type import (
    BookingStatus,
    EscalationCategory,
    MemberTier,
    PointsTransactionType,
    VenueStatus,
    VenueType,
)


def format_time(value: time) -> str:
    """Render a slot time the way members read it: 8:00 PM."""
    hour = value.hour % 12 or 12
    suffix = "AM" if value.hour < 12 else "PM"
    return f"{hour}:{value.minute:02d} {suffix}"


class Venue(BaseModel):
    id: UUID
    name: str
    city: str
    type: VenueType
    vibe_tags: tuple[str, ...] = ()
    description: str | None = None
    location: str | None = None
    # Weekday name -> "HH:MM-HH:MM" or "closed"
    operating_hours: dict[str, str] | None = None
    requires_deposit: bool = False
    minimum_spend: Decimal | None = None
    family_friendly: bool = False
    status: VenueStatus = VenueStatus.ACTIVE

    model_config = ConfigDict(frozen=True, extra="ignore")

    def summary(self) -> dict[str, object]:
        """Compact view for the model: no photos, contacts or long descriptions."""
        return {
            "venue_id": str(self.id),
            "name": self.name,
            "type": self.type.value,
            "city": self.city,
            "location": self.location,
            "vibe": list(self.vibe_tags),
            "requires_deposit": self.requires_deposit,
            "minimum_spend": float(self.minimum_spend) if self.minimum_spend is not None else None,
        }


class BookingDraft(BaseModel):
    """Everything needed to insert a booking row, before the database assigns an id."""

    venue_id: UUID
    booking_date: date
    booking_time: time
    party_size: int = Field(ge=1)
    table_preference: str | None = None
    special_requests: str | None = None
    deposit_required: bool = False
    minimum_spend: Decimal | None = None
    is_urgent: bool = False

    model_config = ConfigDict(frozen=True)


class Booking(BaseModel):
    id: UUID
    user_id: str
    venue_id: UUID
    status: BookingStatus
    booking_date: date
    booking_time: time
    party_size: int
    table_preference: str | None = None
    special_requests: str | None = None
    deposit_required: bool = False
    minimum_spend: Decimal | None = None
    is_urgent: bool = False
    idempotency_key: str | None = None
    venue_name: str | None = None
    created_at: datetime | None = None

    model_config = ConfigDict(frozen=True, extra="ignore")

    @computed_field
    @property
    def reference(self) -> str:
        """Short booking reference members can quote to staff."""
        return self.id.hex[:8].upper()

    def summary(self) -> dict[str, object]:
        return {
            "booking_id": str(self.id),
            "reference": self.reference,
            "venue": self.venue_name,
            "status": self.status.value,
            "date": self.booking_date.isoformat(),
            "time": format_time(self.booking_time),
            "party_size": self.party_size,
            "deposit_required": self.deposit_required,
        }


class Member(BaseModel):
    id: str
    full_name: str | None = None
    tier: MemberTier = MemberTier.BLUE
    points_balance: int = 0

    model_config = ConfigDict(frozen=True, extra="ignore")


class PointsTransaction(BaseModel):
    id: UUID
    user_id: str
    amount: int
    type: PointsTransactionType
    description: str | None = None
    booking_id: UUID | None = None
    created_at: datetime

    model_config = ConfigDict(frozen=True, extra="ignore")


class EscalationRequest(BaseModel):
    category: EscalationCategory
    summary: str
    party_size: int | None = None
    requested_date: date | None = None

    model_config = ConfigDict(frozen=True)


class EscalationTicket(BaseModel):
    id: UUID
    user_id: str
    conversation_id: str | None = None
    category: EscalationCategory
    summary: str
    status: str = "pending"

    model_config = ConfigDict(frozen=True, extra="ignore")

    @computed_field
    @property
    def reference(self) -> str:
        return self.id.hex[:8].upper()


class Availability(BaseModel):
    """Answer to "can this venue seat this party at this time"."""

    venue_id: UUID
    venue_name: str
    booking_date: date
    booking_time: time
    party_size: int
    available: bool
    reason: str | None = None
    requires_concierge: bool = False
    opening_hours: str | None = None

    model_config = ConfigDict(frozen=True)

    def summary(self) -> dict[str, object]:
        return {
            "venue_id": str(self.venue_id),
            "venue": self.venue_name,
            "date": self.booking_date.isoformat(),
            "time": format_time(self.booking_time),
            "party_size": self.party_size,
            "available": self.available,
            "reason": self.reason,
            "requires_concierge": self.requires_concierge,
            "opening_hours": self.opening_hours,
        }


__all__ = [
    "Availability",
    "Booking",
    "BookingDraft",
    "EscalationRequest",
    "EscalationTicket",
    "Member",
    "PointsTransaction",
    "Venue",
    "format_time",
]
