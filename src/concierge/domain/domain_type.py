"""Domain Type System - Core Enumerations.

Defines type-safe constants using Python's StrEnum for domain concepts.
Using StrEnum instead of plain Enum provides automatic string coercion
and better JSON serialization without custom encoders.
"""

from enum import StrEnum


class MessageRole(StrEnum):
    """Author of a conversation message.

    TOOL messages carry the result of exactly one tool call and always follow
    the ASSISTANT message that requested it.
    """

    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ConversationStatus(StrEnum):
    """Conversation Lifecycle States.

    States:
        ACTIVE: Normal conversation in progress
        ESCALATED: Handed to a human concierge, the AI keeps answering
        ARCHIVED: Completed but retained for history
    """

    ACTIVE = "active"
    ESCALATED = "escalated"
    ARCHIVED = "archived"


class TurnState(StrEnum):
    """States of one orchestration turn.

    AWAITING_MODEL -> MODEL_REPLIED -> HAS_TOOL_CALLS -> EXECUTING_TOOLS -> AWAITING_MODEL
                                    -> FINAL_ANSWER -> DONE
    """

    AWAITING_MODEL = "awaiting_model"
    MODEL_REPLIED = "model_replied"
    HAS_TOOL_CALLS = "has_tool_calls"
    EXECUTING_TOOLS = "executing_tools"
    FINAL_ANSWER = "final_answer"
    DONE = "done"


class VenueType(StrEnum):
    RESTAURANT = "restaurant"
    BEACH_CLUB = "beach_club"
    NIGHTCLUB = "nightclub"
    EVENT = "event"


class VenueStatus(StrEnum):
    ACTIVE = "active"
    PAUSED = "paused"


class BookingStatus(StrEnum):
    """Booking lifecycle as stored by the hosted database."""

    DRAFT = "draft"
    PENDING = "pending"
    COUNTER_OFFER = "counter_offer"
    AWAITING_INFO = "awaiting_info"
    CONFIRMED = "confirmed"
    DEPOSIT_PENDING = "deposit_pending"
    DEPOSIT_CONFIRMED = "deposit_confirmed"
    MODIFIED = "modified"
    COMPLETED = "completed"
    NO_SHOW = "no_show"
    CANCELLED = "cancelled"
    REJECTED = "rejected"
    ESCALATED = "escalated"

    @property
    def is_final(self) -> bool:
        return self in (
            BookingStatus.COMPLETED,
            BookingStatus.NO_SHOW,
            BookingStatus.CANCELLED,
            BookingStatus.REJECTED,
        )


class MemberTier(StrEnum):
    BLUE = "blue"
    SILVER = "silver"
    GOLD = "gold"
    BLACK = "black"


class PointsTransactionType(StrEnum):
    EARNED = "earned"
    REDEEMED = "redeemed"
    EXPIRED = "expired"
    ADJUSTMENT = "adjustment"


class EscalationCategory(StrEnum):
    """Requests the automated concierge hands to a human."""

    YACHT = "yacht"
    PRIVATE_JET = "private_jet"
    VILLA = "villa"
    CHAUFFEUR = "chauffeur"
    NIGHTCLUB_TABLE = "nightclub_table"
    EVENT_TICKETS = "event_tickets"
    GROUP_BOOKING = "group_booking"
    CORPORATE = "corporate"
    COMPLAINT = "complaint"
    OTHER = "other"


__all__ = [
    "BookingStatus",
    "ConversationStatus",
    "EscalationCategory",
    "MemberTier",
    "MessageRole",
    "PointsTransactionType",
    "TurnState",
    "VenueStatus",
    "VenueType",
]
