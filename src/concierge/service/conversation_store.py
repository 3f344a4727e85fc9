"""Redis-backed conversation store.

Layout per conversation:
    conversation:{id}            hash  user_id, status, created_at, updated_at
    conversation:{id}:messages   list  one JSON StoredMessage per entry, append-only
    conversation:{id}:lock       per-conversation lock held for a whole turn

Appends are serialized two ways: callers hold ``lock()`` for the duration of a
turn, and every append re-checks the stored length under WATCH so a writer
that bypassed the lock cannot interleave messages.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from redis.exceptions import LockError, RedisError, WatchError

from ..domain.domain_type import ConversationStatus
from ..domain.domain_value import ConversationHistory, ConversationId, StoredMessage, utc_now
from ..domain.exceptions import ConcurrentAppendError, ConversationBusy, ConversationNotFound, StorageError
from ..log import get_logger

if TYPE_CHECKING:
    from redis.asyncio import Redis

log = get_logger(__name__)


class RedisConversationStore:
    def __init__(
        self,
        redis: Redis,
        *,
        lock_timeout_seconds: float = 30.0,
        lock_wait_seconds: float = 5.0,
        key_prefix: str = "conversation",
    ):
        self.redis = redis
        self.lock_timeout_seconds = lock_timeout_seconds
        self.lock_wait_seconds = lock_wait_seconds
        self.key_prefix = key_prefix

    def _meta_key(self, conv_id: ConversationId) -> str:
        return f"{self.key_prefix}:{conv_id.root}"

    def _messages_key(self, conv_id: ConversationId) -> str:
        return f"{self.key_prefix}:{conv_id.root}:messages"

    def _lock_key(self, conv_id: ConversationId) -> str:
        return f"{self.key_prefix}:{conv_id.root}:lock"

    @asynccontextmanager
    async def _redis_errors(self, operation: str, conv_id: ConversationId) -> AsyncIterator[None]:
        try:
            yield
        except RedisError as exc:
            log.error("session_store_unavailable", operation=operation, conversation_id=str(conv_id), error=str(exc))
            raise StorageError(f"{operation} failed for {conv_id}: {exc}") from exc

    async def create_conversation(
        self,
        user_id: str,
        conversation_id: ConversationId | None = None,
    ) -> ConversationHistory:
        """Create an empty conversation; an existing id is loaded instead (idempotent create)."""
        history = ConversationHistory(id=conversation_id or ConversationId(), user_id=user_id)
        key = self._meta_key(history.id)

        async with self._redis_errors("create", history.id):
            created = await self.redis.hsetnx(key, "user_id", user_id)
            if not created:
                return await self.load_conversation(history.id)
            await self.redis.hset(
                key,
                mapping={
                    "status": history.status.value,
                    "created_at": history.created_at.isoformat(),
                    "updated_at": history.updated_at.isoformat(),
                },
            )

        log.info("conversation_created", conversation_id=str(history.id))
        return history

    async def load_conversation(self, conversation_id: ConversationId) -> ConversationHistory:
        """
        Raises:
            ConversationNotFound: no such conversation
            StorageError: Redis unavailable
        """
        async with self._redis_errors("load", conversation_id):
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.hgetall(self._meta_key(conversation_id))
                pipe.lrange(self._messages_key(conversation_id), 0, -1)
                meta, raw_messages = await pipe.execute()

        if not meta or "user_id" not in meta:
            raise ConversationNotFound(f"conversation {conversation_id} does not exist")

        created_at = meta.get("created_at") or utc_now().isoformat()
        return ConversationHistory(
            id=conversation_id,
            user_id=meta["user_id"],
            status=meta.get("status", ConversationStatus.ACTIVE.value),
            created_at=created_at,
            updated_at=meta.get("updated_at") or created_at,
            messages=tuple(StoredMessage.model_validate_json(raw) for raw in raw_messages),
        )

    async def append_message(self, history: ConversationHistory, message: StoredMessage) -> ConversationHistory:
        return await self.append_messages(history, [message])

    async def append_messages(
        self,
        history: ConversationHistory,
        messages: Sequence[StoredMessage],
    ) -> ConversationHistory:
        """Append in order and return the updated conversation.

        Raises:
            MessageOrderError: the messages break the conversation's ordering rules
            ConcurrentAppendError: someone else appended since ``history`` was loaded
            StorageError: Redis unavailable
        """
        if not messages:
            return history
        updated = history.extend(messages)
        messages_key = self._messages_key(history.id)

        async with self._redis_errors("append", history.id):
            try:
                async with self.redis.pipeline(transaction=True) as pipe:
                    await pipe.watch(messages_key)
                    stored = await pipe.llen(messages_key)
                    if stored != len(history.messages):
                        raise ConcurrentAppendError(
                            f"{history.id} has {stored} stored messages, expected {len(history.messages)}"
                        )
                    pipe.multi()
                    pipe.rpush(messages_key, *(msg.model_dump_json() for msg in messages))
                    pipe.hset(self._meta_key(history.id), "updated_at", updated.updated_at.isoformat())
                    await pipe.execute()
            except WatchError as exc:
                raise ConcurrentAppendError(f"{history.id} changed during append") from exc

        return updated

    async def update_status(self, history: ConversationHistory, status: ConversationStatus) -> ConversationHistory:
        async with self._redis_errors("update_status", history.id):
            await self.redis.hset(self._meta_key(history.id), "status", status.value)
        log.info("conversation_status_changed", conversation_id=str(history.id), status=status.value)
        return history.with_status(status)

    @asynccontextmanager
    async def lock(self, conversation_id: ConversationId) -> AsyncIterator[None]:
        """Hold the conversation for one turn.

        Raises:
            ConversationBusy: another request kept the lock past ``lock_wait_seconds``
        """
        lock = self.redis.lock(
            self._lock_key(conversation_id),
            timeout=self.lock_timeout_seconds,
            blocking_timeout=self.lock_wait_seconds,
        )
        async with self._redis_errors("lock", conversation_id):
            acquired = await lock.acquire()
        if not acquired:
            raise ConversationBusy(f"{conversation_id} is locked by another request")

        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                log.warning("conversation_lock_expired", conversation_id=str(conversation_id))
            except RedisError as exc:
                log.warning("conversation_unlock_failed", conversation_id=str(conversation_id), error=str(exc))


__all__ = ["RedisConversationStore"]
