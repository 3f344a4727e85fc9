"""Tests for the Redis conversation store (fakeredis, no server needed).

Demonstrates:
- Round-tripping conversations through Redis preserves order and identity
- Optimistic append checks catch writers that skipped the lock
- The per-conversation lock turns contention into ConversationBusy
"""

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from concierge.domain.domain_type import ConversationStatus
from concierge.domain.domain_value import ConversationId, StoredMessage, ToolCall, ToolResult
from concierge.domain.exceptions import ConcurrentAppendError, ConversationBusy, ConversationNotFound, StorageError
from concierge.service.conversation_store import RedisConversationStore


async def test_create_then_load_round_trips(store: RedisConversationStore):
    created = await store.create_conversation("member-1")
    history = await store.append_messages(
        created,
        [
            StoredMessage.user("Find Nobu", request_id="req-1"),
            StoredMessage.assistant(tool_calls=(ToolCall(id="c1", name="search_venues", arguments={"query": "Nobu"}),)),
            StoredMessage.tool(ToolResult(call_id="c1", name="search_venues", content={"count": 1})),
            StoredMessage.assistant("Found it."),
        ],
    )

    loaded = await store.load_conversation(created.id)

    assert loaded.id == created.id
    assert loaded.user_id == "member-1"
    assert loaded.messages == history.messages
    assert loaded.messages[1].tool_calls[0].arguments == {"query": "Nobu"}


async def test_missing_conversation_is_not_found(store: RedisConversationStore):
    with pytest.raises(ConversationNotFound):
        await store.load_conversation(ConversationId())


async def test_create_with_existing_id_loads_it(store: RedisConversationStore):
    """Demonstrates: idempotent create for client-chosen ids."""
    first = await store.create_conversation("member-1")
    await store.append_message(first, StoredMessage.user("Hi"))

    again = await store.create_conversation("member-1", first.id)

    assert len(again.messages) == 1


async def test_stale_history_cannot_append(store: RedisConversationStore):
    history = await store.create_conversation("member-1")
    await store.append_message(history, StoredMessage.user("first writer"))

    with pytest.raises(ConcurrentAppendError):
        await store.append_message(history, StoredMessage.user("second writer"))

    loaded = await store.load_conversation(history.id)
    assert [msg.content for msg in loaded.messages] == ["first writer"]


async def test_update_status_persists(store: RedisConversationStore):
    history = await store.create_conversation("member-1")

    updated = await store.update_status(history, ConversationStatus.ESCALATED)

    assert updated.status is ConversationStatus.ESCALATED
    assert (await store.load_conversation(history.id)).status is ConversationStatus.ESCALATED


async def test_lock_contention_is_busy(store: RedisConversationStore, conversation_id: ConversationId):
    async with store.lock(conversation_id):
        with pytest.raises(ConversationBusy):
            async with store.lock(conversation_id):
                pass

    # Released on exit
    async with store.lock(conversation_id):
        pass


async def test_redis_failure_is_storage_error(store: RedisConversationStore, monkeypatch: pytest.MonkeyPatch):
    async def down(*args, **kwargs):
        raise RedisConnectionError("connection refused")

    monkeypatch.setattr(store.redis, "hsetnx", down)

    with pytest.raises(StorageError) as exc_info:
        await store.create_conversation("member-1")

    assert exc_info.value.retryable
    assert not isinstance(exc_info.value, ConcurrentAppendError)
