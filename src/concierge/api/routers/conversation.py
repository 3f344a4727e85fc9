"""Conversation router - owner-only conversation metadata."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends

from ...domain.domain_value import ConversationId
from ...service import AuthenticatedUser, ConciergeService
from ..contracts import ConversationResponse
from ..deps import get_concierge_service, get_current_user

router = APIRouter(prefix="/conversations", tags=["conversation"])


@router.get("/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(
    conversation_id: UUID,
    user: Annotated[AuthenticatedUser, Depends(get_current_user)],
    service: Annotated[ConciergeService, Depends(get_concierge_service)],
) -> ConversationResponse:
    """Get conversation metadata by ID."""
    history = await service.get_conversation(ConversationId(root=conversation_id), user.id)

    return ConversationResponse(
        conversation_id=history.id,
        status=history.status,
        message_count=len(history.messages),
        created_at=history.created_at,
        updated_at=history.updated_at,
    )
