"""Process-message API contracts - use domain types directly."""

from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from ...domain.domain_value import ConversationId


class ProcessMessageRequest(BaseModel):
    """One member message. ``message`` is accepted for ``user_message`` (mobile client)."""

    user_message: str = Field(
        min_length=1,
        validation_alias=AliasChoices("user_message", "message"),
        description="Member message, stripped of surrounding whitespace",
        examples=["Book me a table for 4 at Nobu tomorrow at 8pm"],
    )
    user_id: str = Field(
        min_length=1,
        description="Member id; must match the authenticated session",
    )
    conversation_id: ConversationId | None = Field(
        default=None,
        description="Existing conversation ID to continue, or None to start new",
        examples=["3fa85f64-5717-4562-b3fc-2c963f66afa6"],
    )
    request_id: str | None = Field(
        default=None,
        min_length=1,
        max_length=128,
        description="Client idempotency token; a retried request returns the original reply",
    )

    model_config = ConfigDict(str_strip_whitespace=True)


class ProcessMessageResponse(BaseModel):
    conversation_id: ConversationId = Field(
        description="Conversation ID for subsequent requests",
    )
    reply: str = Field(description="Concierge reply")
    response: str = Field(description="Same as reply, for older mobile builds")
