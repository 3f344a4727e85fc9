"""Supabase implementation of the DomainGateway.

Reads and writes the hosted venues, bookings, users, points_transactions and
concierge_requests tables with the service-role client, and mirrors concierge
replies into the conversations/messages tables the mobile app reads. Every query is scoped
by the caller's user id where the row belongs to a member.

Failures surface as ToolExecutionError so the registry hands them back to the
model instead of failing the turn:
    venue_not_found / booking_not_found   the row does not exist (or is not the member's)
    booking_conflict                      the booking can no longer be cancelled
    datastore_error                       network or PostgREST failure, retryable
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import date
from typing import TYPE_CHECKING, Any
from uuid import UUID

import httpx
from supabase import PostgrestAPIError

from ..domain.domain_type import BookingStatus, VenueStatus, VenueType
from ..domain.entities import (
    Booking,
    BookingDraft,
    EscalationRequest,
    EscalationTicket,
    Member,
    PointsTransaction,
    Venue,
)
from ..domain.exceptions import ToolExecutionError
from ..log import get_logger

if TYPE_CHECKING:
    from supabase import AsyncClient

    from .storage import StorageService

log = get_logger(__name__)

BOOKING_COLUMNS = "*, venues(name)"


def _booking_from_row(row: dict[str, Any]) -> Booking:
    venue = row.get("venues") or {}
    return Booking.model_validate({**row, "venue_name": venue.get("name")})


class SupabaseGateway:
    """DomainGateway over the async Supabase client."""

    def __init__(self, storage: StorageService):
        self.storage = storage

    async def _client(self) -> AsyncClient:
        return await self.storage.get_database_client()

    @asynccontextmanager
    async def _query(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except PostgrestAPIError as exc:
            log.error("datastore_error", operation=operation, code=exc.code, error=exc.message)
            raise ToolExecutionError(f"{operation} failed: {exc.message}", kind="datastore_error", retryable=True) from exc
        except httpx.HTTPError as exc:
            log.error("datastore_unreachable", operation=operation, error=str(exc))
            raise ToolExecutionError(f"{operation} failed: datastore unreachable", kind="datastore_error", retryable=True) from exc

    # =========================================================================
    # VENUES
    # =========================================================================

    async def search_venues(
        self,
        *,
        query: str | None,
        venue_type: VenueType | None,
        vibe: str | None,
        city: str | None,
        limit: int,
    ) -> list[Venue]:
        client = await self._client()
        request = client.table("venues").select("*").eq("status", VenueStatus.ACTIVE.value)
        if query:
            request = request.ilike("name", f"%{query}%")
        if venue_type is not None:
            request = request.eq("type", venue_type.value)
        if vibe:
            request = request.contains("vibe_tags", [vibe.lower()])
        if city:
            request = request.ilike("city", city)

        async with self._query("search_venues"):
            response = await request.order("name").limit(limit).execute()
        return [Venue.model_validate(row) for row in response.data]

    async def get_venue(self, venue_id: UUID) -> Venue:
        client = await self._client()
        async with self._query("get_venue"):
            response = await client.table("venues").select("*").eq("id", str(venue_id)).limit(1).execute()
        if not response.data:
            raise ToolExecutionError(f"no venue with id {venue_id}", kind="venue_not_found")
        return Venue.model_validate(response.data[0])

    # =========================================================================
    # BOOKINGS
    # =========================================================================

    async def _booking_by_key(self, client: AsyncClient, idempotency_key: str) -> Booking | None:
        response = await (
            client.table("bookings").select(BOOKING_COLUMNS).eq("idempotency_key", idempotency_key).limit(1).execute()
        )
        return _booking_from_row(response.data[0]) if response.data else None

    async def create_booking(self, user_id: str, draft: BookingDraft, idempotency_key: str) -> Booking:
        """Insert once per idempotency key; a repeated call returns the row already stored."""
        client = await self._client()
        row = {
            "user_id": user_id,
            "venue_id": str(draft.venue_id),
            "booking_date": draft.booking_date.isoformat(),
            "booking_time": draft.booking_time.isoformat(),
            "party_size": draft.party_size,
            "table_preference": draft.table_preference,
            "special_requests": draft.special_requests,
            "deposit_required": draft.deposit_required,
            "minimum_spend": float(draft.minimum_spend) if draft.minimum_spend is not None else None,
            "is_urgent": draft.is_urgent,
            "status": BookingStatus.PENDING.value,
            "idempotency_key": idempotency_key,
        }
        async with self._query("create_booking"):
            await (
                client.table("bookings")
                .upsert(row, on_conflict="idempotency_key", ignore_duplicates=True)
                .execute()
            )
            booking = await self._booking_by_key(client, idempotency_key)

        if booking is None:
            raise ToolExecutionError("booking was not stored", kind="datastore_error", retryable=True)
        log.info("booking_created", booking_id=str(booking.id), venue_id=str(draft.venue_id), urgent=draft.is_urgent)
        return booking

    async def list_bookings(self, user_id: str, *, upcoming_from: date | None, limit: int) -> list[Booking]:
        client = await self._client()
        request = client.table("bookings").select(BOOKING_COLUMNS).eq("user_id", user_id)
        if upcoming_from is not None:
            request = request.gte("booking_date", upcoming_from.isoformat()).order("booking_date").order("booking_time")
        else:
            request = request.order("booking_date", desc=True)

        async with self._query("list_bookings"):
            response = await request.limit(limit).execute()
        return [_booking_from_row(row) for row in response.data]

    async def cancel_booking(self, user_id: str, booking_id: UUID, reason: str | None) -> Booking:
        client = await self._client()
        async with self._query("cancel_booking"):
            response = await (
                client.table("bookings")
                .select(BOOKING_COLUMNS)
                .eq("id", str(booking_id))
                .eq("user_id", user_id)
                .limit(1)
                .execute()
            )
        if not response.data:
            raise ToolExecutionError(f"no booking {booking_id} for this member", kind="booking_not_found")

        booking = _booking_from_row(response.data[0])
        if booking.status is BookingStatus.CANCELLED:
            return booking
        if booking.status.is_final:
            raise ToolExecutionError(f"booking is already {booking.status.value}", kind="booking_conflict")

        async with self._query("cancel_booking"):
            await (
                client.table("bookings")
                .update({"status": BookingStatus.CANCELLED.value, "cancellation_reason": reason})
                .eq("id", str(booking_id))
                .eq("user_id", user_id)
                .execute()
            )
        log.info("booking_cancelled", booking_id=str(booking_id))
        return booking.model_copy(update={"status": BookingStatus.CANCELLED})

    # =========================================================================
    # MEMBERS
    # =========================================================================

    async def get_member(self, user_id: str) -> Member:
        client = await self._client()
        async with self._query("get_member"):
            response = await (
                client.table("users").select("id, full_name, tier, points_balance").eq("id", user_id).limit(1).execute()
            )
        if not response.data:
            raise ToolExecutionError("member profile not found", kind="member_not_found")
        return Member.model_validate(response.data[0])

    async def list_points_transactions(self, user_id: str, *, limit: int) -> list[PointsTransaction]:
        client = await self._client()
        async with self._query("list_points_transactions"):
            response = await (
                client.table("points_transactions")
                .select("*")
                .eq("user_id", user_id)
                .order("created_at", desc=True)
                .limit(limit)
                .execute()
            )
        return [PointsTransaction.model_validate(row) for row in response.data]

    # =========================================================================
    # ESCALATIONS
    # =========================================================================

    async def create_escalation(
        self,
        user_id: str,
        conversation_id: str,
        request: EscalationRequest,
        idempotency_key: str,
    ) -> EscalationTicket:
        client = await self._client()
        row = {
            "user_id": user_id,
            "conversation_id": conversation_id,
            "category": request.category.value,
            "summary": request.summary,
            "party_size": request.party_size,
            "requested_date": request.requested_date.isoformat() if request.requested_date else None,
            "status": "pending",
            "idempotency_key": idempotency_key,
        }
        async with self._query("create_escalation"):
            await (
                client.table("concierge_requests")
                .upsert(row, on_conflict="idempotency_key", ignore_duplicates=True)
                .execute()
            )
            response = await (
                client.table("concierge_requests").select("*").eq("idempotency_key", idempotency_key).limit(1).execute()
            )

        if not response.data:
            raise ToolExecutionError("escalation was not stored", kind="datastore_error", retryable=True)
        ticket = EscalationTicket.model_validate(response.data[0])
        log.info("escalation_created", ticket_id=str(ticket.id), category=request.category.value)
        return ticket

    # =========================================================================
    # CHAT MIRROR (what the mobile app subscribes to)
    # =========================================================================

    async def ensure_conversation(self, user_id: str, conversation_id: str) -> None:
        """Create the conversations row unless the app already created it."""
        client = await self._client()
        row = {"id": conversation_id, "member_id": user_id, "status": "active", "metadata": {}}
        async with self._query("ensure_conversation"):
            await client.table("conversations").upsert(row, on_conflict="id", ignore_duplicates=True).execute()

    async def record_concierge_message(self, user_id: str, conversation_id: str, text: str) -> None:
        """Insert the concierge reply into messages; the app writes the member side itself."""
        client = await self._client()
        row = {"conversation_id": conversation_id, "user_id": user_id, "sender": "concierge", "text": text}
        async with self._query("record_concierge_message"):
            await client.table("messages").insert(row).execute()


__all__ = ["SupabaseGateway"]
