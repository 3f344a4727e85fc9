"""Process-message router - thin HTTP layer over the concierge service."""

from typing import Annotated

from fastapi import APIRouter, Depends

from ...config import settings
from ...domain.exceptions import InvalidRequest
from ...log import get_logger
from ...service import AuthenticatedUser, ConciergeService
from ..contracts import ProcessMessageRequest, ProcessMessageResponse
from ..deps import get_concierge_service, get_current_user

router = APIRouter(tags=["concierge"])

log = get_logger(__name__)


@router.post("/process-message", response_model=ProcessMessageResponse)
async def process_message(
    request: ProcessMessageRequest,
    user: Annotated[AuthenticatedUser, Depends(get_current_user)],
    service: Annotated[ConciergeService, Depends(get_concierge_service)],
) -> ProcessMessageResponse:
    """
    Run one concierge turn for the member's message.

    Thin orchestration layer:
    1. Reject payloads the contract cannot express (length, identity mismatch)
    2. Delegate the turn to ConciergeService (lock, history, model, tools)
    3. Map to API contract
    """
    if len(request.user_message) > settings.max_message_length:
        raise InvalidRequest(f"user_message: must be at most {settings.max_message_length} characters")
    if request.user_id != user.id:
        raise InvalidRequest("user_id: does not match the signed-in member")

    log.info("request_received", user_id=user.id, conversation_id=str(request.conversation_id or "new"))
    result = await service.process_message(
        user_id=user.id,
        text=request.user_message,
        conversation_id=request.conversation_id,
        request_id=request.request_id,
    )

    return ProcessMessageResponse(
        conversation_id=result.conversation_id,
        reply=result.reply,
        response=result.reply,
    )
