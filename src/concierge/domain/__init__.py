"""Domain Layer - Concierge Business Logic and Rich Models.

Key Components:
    - ConversationHistory / StoredMessage: append-only conversation log
    - ToolRegistry: typed, validated tools bound to the DomainGateway
    - ConciergeOrchestrator: bounded tool-calling loop as an explicit state machine
    - Availability rules: opening hours, large groups, urgency

Design Principles:
    - Immutable by Default: domain models use frozen=True, updates return new values
    - Explicit Dependencies: the model, the gateway and "now" are always injected
    - Type-Safe Throughout: pydantic validation at every boundary
"""

from .domain_type import (
    BookingStatus,
    ConversationStatus,
    EscalationCategory,
    MemberTier,
    MessageRole,
    PointsTransactionType,
    TurnState,
    VenueStatus,
    VenueType,
)
from .domain_value import (
    ConversationHistory,
    ConversationId,
    MessageId,
    StoredMessage,
    ToolCall,
    ToolErrorInfo,
    ToolResult,
)
from .entities import (
    Availability,
    Booking,
    BookingDraft,
    EscalationRequest,
    EscalationTicket,
    Member,
    PointsTransaction,
    Venue,
)
from .orchestrator import ConciergeOrchestrator, OrchestratorLimits, TurnOutcome, TurnProgress
from .tools import CONCIERGE_TOOLS, DomainGateway, ToolContext, ToolInvocation, ToolRegistry, ToolSpec

__all__ = [
    "CONCIERGE_TOOLS",
    "Availability",
    "Booking",
    "BookingDraft",
    "BookingStatus",
    "ConciergeOrchestrator",
    "ConversationHistory",
    "ConversationId",
    "ConversationStatus",
    "DomainGateway",
    "EscalationCategory",
    "EscalationRequest",
    "EscalationTicket",
    "Member",
    "MemberTier",
    "MessageId",
    "MessageRole",
    "OrchestratorLimits",
    "PointsTransaction",
    "PointsTransactionType",
    "StoredMessage",
    "ToolCall",
    "ToolContext",
    "ToolErrorInfo",
    "ToolInvocation",
    "ToolRegistry",
    "ToolResult",
    "ToolSpec",
    "TurnOutcome",
    "TurnProgress",
    "TurnState",
    "Venue",
    "VenueStatus",
    "VenueType",
]
