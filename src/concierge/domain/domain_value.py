"""Identity and Message Layer - Persistence-Ready Conversation Values.

Conversations are append-only logs of StoredMessage values. Each message has
our own UUID identity, a role, and either text, tool-call requests (assistant)
or a single tool-call result (tool). Tool results are correlated to the
assistant's request by the call id the model assigned.

All models are frozen: appending returns a new ConversationHistory and the
original instance is left untouched.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, RootModel, model_validator

from .domain_type import ConversationStatus, MessageRole
from .exceptions import InvalidArguments, MessageOrderError


def utc_now() -> datetime:
    return datetime.now(UTC)


class MessageId(RootModel[UUID]):
    """Unique Identifier for Individual Messages."""

    root: UUID = Field(default_factory=uuid4)
    model_config = ConfigDict(frozen=True)


class ConversationId(RootModel[UUID]):
    """Unique Identifier for Conversations.

    Primary key for conversation persistence in Redis.

    Usage:
        >>> conv_id = ConversationId()
        >>> redis_key = f"conversation:{conv_id.root}"
    """

    root: UUID = Field(default_factory=uuid4)
    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return str(self.root)


class ToolCall(BaseModel):
    """A tool the model asked to run, with its correlation id."""

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    arguments: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)


class ToolErrorInfo(BaseModel):
    """Structured tool failure as the model sees it."""

    kind: str
    message: str
    retryable: bool = False

    model_config = ConfigDict(frozen=True)


class ToolResult(BaseModel):
    """Outcome of one tool call: a JSON-able payload or an error."""

    call_id: str = Field(min_length=1)
    name: str
    content: Any = None
    error: ToolErrorInfo | None = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @property
    def needs_retry(self) -> bool:
        """The model sent arguments the tool could not accept; it may try again."""
        return self.error is not None and self.error.kind == InvalidArguments.kind


class StoredMessage(BaseModel):
    """Message with Persistence Identity.

    Attributes:
        id: Our unique identifier for this message
        role: user, assistant or tool
        content: Text shown to / typed by the member
        tool_calls: Requests made by an assistant message
        tool_result: Result carried by a tool message
        request_id: Client idempotency token of the request that sent a user message
        timestamp: When the message was appended
    """

    id: MessageId = Field(default_factory=MessageId)
    role: MessageRole
    content: str | None = None
    tool_calls: tuple[ToolCall, ...] = ()
    tool_result: ToolResult | None = None
    request_id: str | None = None
    timestamp: datetime = Field(default_factory=utc_now)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def payload_matches_role(self) -> StoredMessage:
        if self.role is MessageRole.USER:
            if not self.content or self.tool_calls or self.tool_result is not None:
                raise ValueError("user messages carry text only")
        elif self.role is MessageRole.ASSISTANT:
            if self.tool_result is not None:
                raise ValueError("assistant messages cannot carry a tool result")
            if not self.content and not self.tool_calls:
                raise ValueError("assistant messages need text or tool calls")
        elif self.tool_result is None or self.tool_calls:
            raise ValueError("tool messages carry exactly one tool result")
        return self

    @classmethod
    def user(cls, text: str, request_id: str | None = None) -> StoredMessage:
        return cls(role=MessageRole.USER, content=text, request_id=request_id)

    @classmethod
    def assistant(cls, text: str | None = None, tool_calls: tuple[ToolCall, ...] = ()) -> StoredMessage:
        return cls(role=MessageRole.ASSISTANT, content=text or None, tool_calls=tool_calls)

    @classmethod
    def tool(cls, result: ToolResult) -> StoredMessage:
        return cls(role=MessageRole.TOOL, tool_result=result)


class ConversationHistory(BaseModel):
    """Complete Conversation State for Persistence.

    Attributes:
        id: Unique conversation identifier
        user_id: Member who owns the conversation
        messages: Ordered tuple of messages (append-only)
        status: Lifecycle state
        created_at / updated_at: UTC timestamps

    Example:
        >>> history = ConversationHistory(id=ConversationId(), user_id="u1")
        >>> history = history.append_message(StoredMessage.user("Hi"))
    """

    id: ConversationId
    user_id: str = Field(min_length=1)
    messages: tuple[StoredMessage, ...] = ()
    status: ConversationStatus = ConversationStatus.ACTIVE
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    model_config = ConfigDict(frozen=True)

    @property
    def pending_tool_call_ids(self) -> frozenset[str]:
        """Call ids of the latest assistant tool request that have no result yet."""
        answered: set[str] = set()
        for msg in reversed(self.messages):
            if msg.role is MessageRole.TOOL:
                assert msg.tool_result is not None
                answered.add(msg.tool_result.call_id)
                continue
            if msg.role is MessageRole.ASSISTANT:
                return frozenset(call.id for call in msg.tool_calls) - answered
            break
        return frozenset()

    def owned_by(self, user_id: str) -> bool:
        return self.user_id == user_id

    def find_request(self, request_id: str) -> int | None:
        """Position of the user message sent by ``request_id``, if it was already stored."""
        for index, msg in enumerate(self.messages):
            if msg.role is MessageRole.USER and msg.request_id == request_id:
                return index
        return None

    def reply_to(self, index: int) -> str | None:
        """Final assistant text answering the user message at ``index``, if the turn completed."""
        reply: str | None = None
        for msg in self.messages[index + 1 :]:
            if msg.role is MessageRole.USER:
                break
            if msg.role is MessageRole.ASSISTANT and not msg.tool_calls and msg.content:
                reply = msg.content
        return reply

    def append_message(self, msg: StoredMessage) -> ConversationHistory:
        """Append Message Immutably.

        Raises:
            MessageOrderError: a tool result does not answer an open tool call,
                or a non-tool message arrives while tool calls are unanswered.
        """
        pending = self.pending_tool_call_ids
        if msg.role is MessageRole.TOOL:
            assert msg.tool_result is not None
            if msg.tool_result.call_id not in pending:
                raise MessageOrderError(
                    f"tool result {msg.tool_result.call_id!r} does not answer an open tool call in {self.id}"
                )
        elif pending:
            raise MessageOrderError(f"{len(pending)} tool call(s) still unanswered in {self.id}")

        return self.model_copy(update={"messages": (*self.messages, msg), "updated_at": msg.timestamp})

    def extend(self, messages: tuple[StoredMessage, ...] | list[StoredMessage]) -> ConversationHistory:
        history = self
        for msg in messages:
            history = history.append_message(msg)
        return history

    def with_status(self, status: ConversationStatus) -> ConversationHistory:
        return self.model_copy(update={"status": status})


__all__ = [
    "ConversationHistory",
    "ConversationId",
    "MessageId",
    "StoredMessage",
    "ToolCall",
    "ToolErrorInfo",
    "ToolResult",
    "utc_now",
]
