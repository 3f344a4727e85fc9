"""Domain Tools - LLM-Callable Functions for the Concierge.

Each tool is a ToolSpec: a name, a description the model reads, a pydantic
argument model (source of both the JSON schema and the validation), and an
async handler that adapts the call to the DomainGateway. Tools contain no
prompting logic.

The ToolRegistry never raises for tool problems. Unknown tools and schema
violations come back as InvalidArguments so the model can retry with fixed
arguments; gateway failures and timeouts come back as ToolExecutionError so
the model can adapt or escalate.

Tool Registration:
    >>> registry = ToolRegistry(gateway)
    >>> registry.list_tools()          # fed verbatim to the model
    >>> await registry.invoke("search_venues", {"query": "Nobu"}, ctx, call_id="c1")
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from datetime import date, datetime, time
from time import perf_counter
from typing import Annotated, Any, Protocol
from uuid import NAMESPACE_URL, UUID, uuid5

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic_ai.tools import ToolDefinition

from ..log import get_logger
from .availability import check_slot, is_urgent, parse_slot_time
from .domain_type import EscalationCategory, VenueType
from .domain_value import ConversationId, ToolErrorInfo, ToolResult
from .entities import (
    Booking,
    BookingDraft,
    EscalationRequest,
    EscalationTicket,
    Member,
    PointsTransaction,
    Venue,
)
from .exceptions import InvalidArguments, ToolError, ToolExecutionError

log = get_logger(__name__)

IDEMPOTENCY_NAMESPACE = uuid5(NAMESPACE_URL, "https://sevenkeys.app/concierge")

SlotTime = Annotated[time, BeforeValidator(parse_slot_time)]


class DomainGateway(Protocol):
    """Typed access to the hosted database. Implemented by service.gateway.SupabaseGateway."""

    async def search_venues(
        self,
        *,
        query: str | None,
        venue_type: VenueType | None,
        vibe: str | None,
        city: str | None,
        limit: int,
    ) -> list[Venue]: ...

    async def get_venue(self, venue_id: UUID) -> Venue: ...

    async def create_booking(self, user_id: str, draft: BookingDraft, idempotency_key: str) -> Booking: ...

    async def list_bookings(self, user_id: str, *, upcoming_from: date | None, limit: int) -> list[Booking]: ...

    async def cancel_booking(self, user_id: str, booking_id: UUID, reason: str | None) -> Booking: ...

    async def get_member(self, user_id: str) -> Member: ...

    async def list_points_transactions(self, user_id: str, *, limit: int) -> list[PointsTransaction]: ...

    async def create_escalation(
        self,
        user_id: str,
        conversation_id: str,
        request: EscalationRequest,
        idempotency_key: str,
    ) -> EscalationTicket: ...


class ToolContext(BaseModel):
    """Who is asking, inside which conversation and request, and when.

    ``request_id`` is the client's idempotency token, None when the client sent
    none (the shipped mobile app never does).
    """

    user_id: str
    conversation_id: ConversationId
    request_id: str | None = None
    now: datetime

    model_config = ConfigDict(frozen=True)

    def idempotency_key(self, *parts: object) -> str:
        """Stable key for a mutating call.

        With a client token: same request + same arguments -> same key.
        Without one the key falls back to the conversation, so a retried
        message that repeats the same booking collapses onto one row.
        """
        scope = f"request:{self.request_id}" if self.request_id else f"conversation:{self.conversation_id}"
        seed = "|".join([scope, self.user_id, *(str(part) for part in parts)])
        return str(uuid5(IDEMPOTENCY_NAMESPACE, seed))


ToolHandler = Callable[[DomainGateway, ToolContext, Any], Awaitable[dict[str, Any]]]


class ToolSpec(BaseModel):
    name: str = Field(pattern=r"^[a-z][a-z0-9_]*$")
    description: str
    arguments: type[BaseModel]
    handler: ToolHandler
    mutating: bool = False
    escalates: bool = False

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters_json_schema=self.arguments.model_json_schema(),
        )


class ToolInvocation(BaseModel):
    """One executed tool call. Lives only for the turn that produced it."""

    call_id: str
    name: str
    arguments: dict[str, Any] | str
    result: dict[str, Any] | None = None
    error: ToolErrorInfo | None = None
    duration_ms: float = 0.0
    escalated: bool = False

    model_config = ConfigDict(frozen=True)

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def to_result(self) -> ToolResult:
        return ToolResult(call_id=self.call_id, name=self.name, content=self.result, error=self.error)


# ---------------------------------------------------------------------------
# Argument models (the model sees their JSON schema)
# ---------------------------------------------------------------------------


class SearchVenuesArgs(BaseModel):
    query: str | None = Field(default=None, max_length=100, description="Venue name or part of it, e.g. 'Nobu'")
    venue_type: VenueType | None = Field(default=None, description="Kind of venue")
    vibe: str | None = Field(default=None, max_length=50, description="Vibe tag such as 'romantic' or 'lively'")
    city: str | None = Field(default=None, max_length=50, description="City, e.g. 'Dubai'")
    limit: int = Field(default=5, ge=1, le=10)

    model_config = ConfigDict(extra="forbid")


class CheckAvailabilityArgs(BaseModel):
    venue_id: UUID = Field(description="venue_id from search_venues")
    booking_date: date = Field(alias="date", description="ISO date, e.g. 2025-03-14")
    booking_time: SlotTime = Field(alias="time", description="24h HH:MM, or '8pm'")
    party_size: int = Field(ge=1, le=50)

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class CreateBookingArgs(CheckAvailabilityArgs):
    table_preference: str | None = Field(default=None, max_length=100, description="e.g. 'terrace', 'booth'")
    special_requests: str | None = Field(default=None, max_length=500)


class GetUserBookingsArgs(BaseModel):
    upcoming_only: bool = True
    limit: int = Field(default=10, ge=1, le=25)

    model_config = ConfigDict(extra="forbid")


class CancelBookingArgs(BaseModel):
    booking_id: UUID = Field(description="booking_id from get_user_bookings")
    reason: str | None = Field(default=None, max_length=300)

    model_config = ConfigDict(extra="forbid")


class NoArgs(BaseModel):
    model_config = ConfigDict(extra="forbid")


class EscalateArgs(BaseModel):
    category: EscalationCategory
    summary: str = Field(min_length=1, max_length=1000, description="What the member wants, in one or two sentences")
    party_size: int | None = Field(default=None, ge=1)
    requested_date: date | None = Field(default=None, alias="date")

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def search_venues(gateway: DomainGateway, ctx: ToolContext, args: SearchVenuesArgs) -> dict[str, Any]:
    venues = await gateway.search_venues(
        query=args.query,
        venue_type=args.venue_type,
        vibe=args.vibe,
        city=args.city,
        limit=args.limit,
    )
    result: dict[str, Any] = {"count": len(venues), "venues": [venue.summary() for venue in venues]}
    if not venues:
        result["hint"] = "No venue matched. Ask the member to clarify, broaden the search, or escalate."
    return result


async def check_availability(gateway: DomainGateway, ctx: ToolContext, args: CheckAvailabilityArgs) -> dict[str, Any]:
    venue = await gateway.get_venue(args.venue_id)
    availability = check_slot(venue, args.booking_date, args.booking_time, args.party_size, ctx.now)
    return availability.summary()


async def create_booking(gateway: DomainGateway, ctx: ToolContext, args: CreateBookingArgs) -> dict[str, Any]:
    venue = await gateway.get_venue(args.venue_id)
    availability = check_slot(venue, args.booking_date, args.booking_time, args.party_size, ctx.now)
    if not availability.available:
        kind = "requires_concierge" if availability.requires_concierge else "slot_unavailable"
        raise ToolExecutionError(availability.reason or "slot unavailable", kind=kind)

    draft = BookingDraft(
        venue_id=venue.id,
        booking_date=args.booking_date,
        booking_time=args.booking_time,
        party_size=args.party_size,
        table_preference=args.table_preference,
        special_requests=args.special_requests,
        deposit_required=venue.requires_deposit,
        minimum_spend=venue.minimum_spend,
        is_urgent=is_urgent(args.booking_date, args.booking_time, ctx.now),
    )
    key = ctx.idempotency_key("booking", venue.id, args.booking_date.isoformat(), args.booking_time.isoformat(), args.party_size)
    booking = await gateway.create_booking(ctx.user_id, draft, key)
    if booking.venue_name is None:
        booking = booking.model_copy(update={"venue_name": venue.name})

    return {
        "booking": booking.summary(),
        "note": "Request sent to the venue. Deposit required." if booking.deposit_required else "Request sent to the venue.",
    }


async def get_user_bookings(gateway: DomainGateway, ctx: ToolContext, args: GetUserBookingsArgs) -> dict[str, Any]:
    upcoming_from = ctx.now.date() if args.upcoming_only else None
    bookings = await gateway.list_bookings(ctx.user_id, upcoming_from=upcoming_from, limit=args.limit)
    return {"count": len(bookings), "bookings": [booking.summary() for booking in bookings]}


async def cancel_booking(gateway: DomainGateway, ctx: ToolContext, args: CancelBookingArgs) -> dict[str, Any]:
    booking = await gateway.cancel_booking(ctx.user_id, args.booking_id, args.reason)
    return {"booking": booking.summary()}


async def get_points_balance(gateway: DomainGateway, ctx: ToolContext, args: NoArgs) -> dict[str, Any]:
    member, transactions = await asyncio.gather(
        gateway.get_member(ctx.user_id),
        gateway.list_points_transactions(ctx.user_id, limit=5),
    )
    return {
        "tier": member.tier.value,
        "points_balance": member.points_balance,
        "recent": [
            {
                "amount": tx.amount,
                "type": tx.type.value,
                "description": tx.description,
                "date": tx.created_at.date().isoformat(),
            }
            for tx in transactions
        ],
    }


async def escalate_to_concierge(gateway: DomainGateway, ctx: ToolContext, args: EscalateArgs) -> dict[str, Any]:
    request = EscalationRequest(
        category=args.category,
        summary=args.summary,
        party_size=args.party_size,
        requested_date=args.requested_date,
    )
    key = ctx.idempotency_key("escalation", args.category.value, args.summary)
    ticket = await gateway.create_escalation(ctx.user_id, str(ctx.conversation_id), request, key)
    return {
        "escalated": True,
        "reference": ticket.reference,
        "note": "A member of the concierge team will follow up with the member directly.",
    }


CONCIERGE_TOOLS: tuple[ToolSpec, ...] = (
    ToolSpec(
        name="search_venues",
        description="Find venues in the catalog by name, type, vibe or city. Use it to resolve a venue the member mentions.",
        arguments=SearchVenuesArgs,
        handler=search_venues,
    ),
    ToolSpec(
        name="check_availability",
        description="Check whether a venue can seat a party on a date and time.",
        arguments=CheckAvailabilityArgs,
        handler=check_availability,
    ),
    ToolSpec(
        name="create_booking",
        description="Submit a booking request for the member. Only call once venue, date, time and party size are known.",
        arguments=CreateBookingArgs,
        handler=create_booking,
        mutating=True,
    ),
    ToolSpec(
        name="get_user_bookings",
        description="List the member's bookings, upcoming first.",
        arguments=GetUserBookingsArgs,
        handler=get_user_bookings,
    ),
    ToolSpec(
        name="cancel_booking",
        description="Cancel one of the member's bookings.",
        arguments=CancelBookingArgs,
        handler=cancel_booking,
        mutating=True,
    ),
    ToolSpec(
        name="get_points_balance",
        description="The member's loyalty tier, points balance and latest points activity.",
        arguments=NoArgs,
        handler=get_points_balance,
    ),
    ToolSpec(
        name="escalate_to_concierge",
        description=(
            "Hand the request to a human concierge: yachts, private jets, villas, chauffeurs, nightclub tables, "
            "event tickets, groups of 10+, corporate events, complaints, or anything not in the catalog."
        ),
        arguments=EscalateArgs,
        handler=escalate_to_concierge,
        mutating=True,
        escalates=True,
    ),
)


def _describe_validation_error(exc: PydanticValidationError) -> str:
    problems = []
    for error in exc.errors(include_url=False):
        where = ".".join(str(part) for part in error["loc"]) or "arguments"
        problems.append(f"{where}: {error['msg']}")
    return "; ".join(problems)


class ToolRegistry:
    """Name -> ToolSpec lookup bound to one DomainGateway."""

    def __init__(
        self,
        gateway: DomainGateway,
        specs: Iterable[ToolSpec] = CONCIERGE_TOOLS,
        timeout_seconds: float = 5.0,
    ):
        self.gateway = gateway
        self.timeout_seconds = timeout_seconds
        self._specs: dict[str, ToolSpec] = {}
        for spec in specs:
            if spec.name in self._specs:
                raise ValueError(f"duplicate tool name {spec.name!r}")
            self._specs[spec.name] = spec

    def is_mutating(self, name: str) -> bool:
        spec = self._specs.get(name)
        return spec is not None and spec.mutating

    def list_tools(self) -> list[ToolDefinition]:
        return [spec.definition() for spec in self._specs.values()]

    def _parse(self, spec: ToolSpec, arguments: dict[str, Any] | str) -> BaseModel:
        try:
            if isinstance(arguments, str):
                return spec.arguments.model_validate_json(arguments or "{}")
            return spec.arguments.model_validate(arguments)
        except PydanticValidationError as exc:
            raise InvalidArguments(_describe_validation_error(exc), tool_name=spec.name) from exc

    async def invoke(
        self,
        name: str,
        arguments: dict[str, Any] | str,
        ctx: ToolContext,
        *,
        call_id: str,
    ) -> ToolInvocation:
        """Validate and run one tool call, capturing every tool-level failure."""
        started = perf_counter()
        spec = self._specs.get(name)
        result: dict[str, Any] | None = None
        error: ToolError | None = None

        try:
            if spec is None:
                raise InvalidArguments(
                    f"unknown tool {name!r}, available: {', '.join(self._specs)}",
                    tool_name=name,
                )
            parsed = self._parse(spec, arguments)
            async with asyncio.timeout(self.timeout_seconds):
                result = await spec.handler(self.gateway, ctx, parsed)
        except ToolError as exc:
            error = exc
        except TimeoutError:
            error = ToolExecutionError(
                f"{name} did not finish within {self.timeout_seconds:g}s",
                tool_name=name,
                kind="tool_timeout",
                retryable=True,
            )
        except Exception as exc:
            log.exception("tool_crashed", tool=name, call_id=call_id)
            error = ToolExecutionError(f"{name} failed unexpectedly: {type(exc).__name__}", tool_name=name, kind="tool_failed")

        duration_ms = (perf_counter() - started) * 1000
        if error is not None:
            log.warning("tool_failed", tool=name, call_id=call_id, kind=error.kind, error=error.message)
            return ToolInvocation(
                call_id=call_id,
                name=name,
                arguments=arguments,
                error=ToolErrorInfo(kind=error.kind, message=error.message, retryable=error.retryable),
                duration_ms=duration_ms,
            )

        log.info("tool_invoked", tool=name, call_id=call_id, duration_ms=round(duration_ms, 1))
        return ToolInvocation(
            call_id=call_id,
            name=name,
            arguments=arguments,
            result=result,
            duration_ms=duration_ms,
            escalated=spec is not None and spec.escalates,
        )


__all__ = [
    "CONCIERGE_TOOLS",
    "DomainGateway",
    "ToolContext",
    "ToolInvocation",
    "ToolRegistry",
    "ToolSpec",
]
