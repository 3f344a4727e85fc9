"""Conversation read contract."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from ...domain.domain_type import ConversationStatus
from ...domain.domain_value import ConversationId


class ConversationResponse(BaseModel):
    conversation_id: ConversationId
    status: ConversationStatus
    message_count: int = Field(ge=0)
    created_at: datetime
    updated_at: datetime
