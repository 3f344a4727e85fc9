"""Concierge service - runs one member message as one locked, time-boxed turn."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING, Protocol
from uuid import uuid4
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict

from ..domain.domain_type import ConversationStatus
from ..domain.domain_value import ConversationHistory, ConversationId, StoredMessage
from ..domain.exceptions import ConversationNotFound, DeadlineExceeded, ToolExecutionError
from ..domain.orchestrator import ConciergeOrchestrator, OrchestratorLimits
from ..domain.tools import ToolContext, ToolRegistry
from ..log import bind_request_context, get_logger
from .conversation_store import RedisConversationStore
from .gateway import SupabaseGateway

if TYPE_CHECKING:
    from pydantic_ai.models import Model

    from ..config import Settings
    from .storage import StorageService

log = get_logger(__name__)

# Lock outlives the request deadline so a slow turn never loses it mid-append
LOCK_MARGIN_SECONDS = 10.0


class ChatMirror(Protocol):
    """Where the mobile app reads the chat from (the hosted messages table)."""

    async def ensure_conversation(self, user_id: str, conversation_id: str) -> None: ...

    async def record_concierge_message(self, user_id: str, conversation_id: str, text: str) -> None: ...


class ConciergeReply(BaseModel):
    conversation_id: ConversationId
    reply: str
    escalated: bool = False
    replayed: bool = False

    model_config = ConfigDict(frozen=True)


class ConciergeService:
    """
    Thin orchestration service - delegates the turn to the domain orchestrator.

    Service responsibilities:
    1. Serialize requests per conversation (store lock)
    2. Load or create the conversation, enforcing ownership
    3. Replay or resume requests already seen (request_id)
    4. Persist the member message, then every message the turn produced
    5. Mirror the final reply to the chat the app subscribes to
    6. Enforce the whole-request deadline
    """

    def __init__(
        self,
        store: RedisConversationStore,
        orchestrator: ConciergeOrchestrator,
        *,
        request_timeout_seconds: float = 20.0,
        timezone: ZoneInfo | None = None,
        clock: Callable[[ZoneInfo], datetime] | None = None,
        mirror: ChatMirror | None = None,
    ):
        self.store = store
        self.orchestrator = orchestrator
        self.request_timeout_seconds = request_timeout_seconds
        self.timezone = timezone or ZoneInfo("Asia/Dubai")
        self.clock = clock or datetime.now
        self.mirror = mirror

    async def _load_or_create(self, conv_id: ConversationId, user_id: str, *, new: bool) -> ConversationHistory:
        if new:
            return await self.store.create_conversation(user_id, conv_id)
        try:
            history = await self.store.load_conversation(conv_id)
        except ConversationNotFound:
            # Client-chosen id (idempotent create)
            history = await self.store.create_conversation(user_id, conv_id)
        if not history.owned_by(user_id):
            raise ConversationNotFound(f"{conv_id} belongs to another member")
        return history

    async def process_message(
        self,
        *,
        user_id: str,
        text: str,
        conversation_id: ConversationId | None = None,
        request_id: str | None = None,
    ) -> ConciergeReply:
        """
        Run one turn for a member message.

        Args:
            user_id: Authenticated member
            text: Validated member message
            conversation_id: Existing conversation, or None to start one
            request_id: Client idempotency token; a repeat returns the stored reply

        Raises:
            ConversationNotFound: the conversation belongs to another member
            ConversationBusy: another request holds the conversation
            DeadlineExceeded: the turn did not finish within the request deadline
            ModelCallError: the model failed after one retry
            StorageError: the session store is unavailable
        """
        client_request_id = request_id
        request_id = request_id or uuid4().hex
        conv_id = conversation_id or ConversationId()
        bind_request_context(request_id=request_id, conversation_id=str(conv_id), user_id=user_id)

        try:
            async with asyncio.timeout(self.request_timeout_seconds):
                async with self.store.lock(conv_id):
                    history = await self._load_or_create(conv_id, user_id, new=conversation_id is None)
                    started_empty = not history.messages

                    resume = False
                    if client_request_id is not None:
                        index = history.find_request(client_request_id)
                        if index is not None:
                            reply = history.reply_to(index)
                            if reply is not None:
                                log.info("request_replayed")
                                return ConciergeReply(conversation_id=conv_id, reply=reply, replayed=True)
                            # Member message stored, turn never finished
                            resume = index == len(history.messages) - 1

                    if not resume:
                        history = await self.store.append_message(history, StoredMessage.user(text, request_id))

                    ctx = ToolContext(
                        user_id=user_id,
                        conversation_id=conv_id,
                        request_id=client_request_id,
                        now=self.clock(self.timezone),
                    )
                    outcome = await self.orchestrator.run_turn(history, ctx)
                    history = await self.store.append_messages(history, outcome.messages)
                    if outcome.escalated and history.status is ConversationStatus.ACTIVE:
                        history = await self.store.update_status(history, ConversationStatus.ESCALATED)
                    await self._mirror_reply(user_id, conv_id, outcome.reply, new=started_empty)
        except TimeoutError as exc:
            log.warning("request_deadline_exceeded", timeout_seconds=self.request_timeout_seconds)
            raise DeadlineExceeded(f"turn exceeded {self.request_timeout_seconds}s") from exc

        return ConciergeReply(conversation_id=conv_id, reply=outcome.reply, escalated=outcome.escalated)

    async def _mirror_reply(self, user_id: str, conv_id: ConversationId, reply: str, *, new: bool) -> None:
        """Write the reply where the app's realtime channel sees it. Redis stays the source of truth."""
        if self.mirror is None:
            return
        try:
            if new:
                await self.mirror.ensure_conversation(user_id, str(conv_id))
            await self.mirror.record_concierge_message(user_id, str(conv_id), reply)
        except ToolExecutionError as exc:
            log.error("reply_mirror_failed", kind=exc.kind, error=exc.message)

    async def get_conversation(self, conversation_id: ConversationId, user_id: str) -> ConversationHistory:
        """Owner-only read; a foreign conversation is reported as not found."""
        history = await self.store.load_conversation(conversation_id)
        if not history.owned_by(user_id):
            raise ConversationNotFound(f"{conversation_id} belongs to another member")
        return history


def create_anthropic_model(settings: Settings) -> Model:
    from pydantic_ai.models.anthropic import AnthropicModel
    from pydantic_ai.providers.anthropic import AnthropicProvider

    return AnthropicModel(settings.llm_model, provider=AnthropicProvider(api_key=settings.anthropic_api_key))


def create_concierge_service(
    settings: Settings,
    storage: StorageService,
    model: Model | None = None,
) -> ConciergeService:
    """
    Factory function for creating ConciergeService.

    Service owns its own construction logic - deps.py just calls this.
    """
    store = RedisConversationStore(
        storage.get_memory_client(),
        lock_timeout_seconds=settings.request_timeout_seconds + LOCK_MARGIN_SECONDS,
        lock_wait_seconds=settings.lock_wait_seconds,
    )
    gateway = SupabaseGateway(storage)
    registry = ToolRegistry(gateway, timeout_seconds=settings.tool_timeout_seconds)
    limits = OrchestratorLimits(
        max_model_calls=settings.max_model_calls,
        history_limit=settings.history_limit,
        model_timeout_seconds=settings.model_timeout_seconds,
        model_retry_backoff_seconds=settings.model_retry_backoff_seconds,
        max_tokens=settings.llm_max_tokens,
    )
    orchestrator = ConciergeOrchestrator(model or create_anthropic_model(settings), registry, limits)
    return ConciergeService(
        store,
        orchestrator,
        request_timeout_seconds=settings.request_timeout_seconds,
        timezone=ZoneInfo(settings.venue_timezone),
        mirror=gateway,
    )


__all__ = ["ChatMirror", "ConciergeReply", "ConciergeService", "create_anthropic_model", "create_concierge_service"]
