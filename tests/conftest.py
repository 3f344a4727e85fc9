"""
Shared test fixtures and configuration.

Environment strategy:
- All tests use .env.test (isolated, no real infrastructure needed)
- Redis is fakeredis, the datastore is an in-memory FakeGateway,
  the model is a scripted pydantic-ai FunctionModel
"""

from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest
from dotenv import load_dotenv

ENV_FILE = Path(__file__).parent.parent / ".env.test"
load_dotenv(ENV_FILE, override=True)

import fakeredis  # noqa: E402

from concierge.domain.domain_value import ConversationHistory, ConversationId  # noqa: E402
from concierge.domain.tools import ToolContext, ToolRegistry  # noqa: E402
from concierge.service.conversation_store import RedisConversationStore  # noqa: E402
from tests.fakes import FakeGateway  # noqa: E402

DUBAI = ZoneInfo("Asia/Dubai")


@pytest.fixture
def now() -> datetime:
    """Thursday afternoon in the venues' timezone; 'tomorrow' is Friday 2025-03-14."""
    return datetime(2025, 3, 13, 15, 0, tzinfo=DUBAI)


@pytest.fixture
def conversation_id() -> ConversationId:
    return ConversationId()


@pytest.fixture
def empty_history(conversation_id: ConversationId) -> ConversationHistory:
    return ConversationHistory(id=conversation_id, user_id="member-1")


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def registry(gateway: FakeGateway) -> ToolRegistry:
    return ToolRegistry(gateway, timeout_seconds=1.0)


@pytest.fixture
def tool_context(conversation_id: ConversationId, now: datetime) -> ToolContext:
    return ToolContext(user_id="member-1", conversation_id=conversation_id, request_id="req-1", now=now)


@pytest.fixture
def redis_server() -> fakeredis.FakeServer:
    return fakeredis.FakeServer()


@pytest.fixture
def redis(redis_server: fakeredis.FakeServer):
    return fakeredis.FakeAsyncRedis(server=redis_server, decode_responses=True)


@pytest.fixture
def store(redis) -> RedisConversationStore:
    return RedisConversationStore(redis, lock_timeout_seconds=5.0, lock_wait_seconds=0.2)
