"""Concierge Orchestrator - Bounded Tool-Calling Loop as an Explicit State Machine.

One member message is one turn. A turn walks these states:

    AWAITING_MODEL -> MODEL_REPLIED -> HAS_TOOL_CALLS -> EXECUTING_TOOLS -> AWAITING_MODEL ...
                                    -> FINAL_ANSWER -> DONE

TurnProgress is an immutable value; every transition is a method that checks
the current state and returns the next value, so each step is testable on its
own. ConciergeOrchestrator drives the transitions, performing the two kinds of
I/O a turn needs: model calls (through pydantic-ai's direct model API, so any
pydantic-ai Model works, including FunctionModel in tests) and tool calls
(through the ToolRegistry).

Guarantees:
    - At most ``max_model_calls`` model invocations per turn. A model that still
      asks for tools on the last allowed call gets the escalation fallback reply.
    - Tool calls from one model response run concurrently and all finish before
      the next model call.
    - Tool failures never end the turn; they go back to the model.
    - Transient model failures are retried once, then surface as ModelCallError.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from datetime import datetime
from time import perf_counter

import httpx
from pydantic import BaseModel, ConfigDict, Field
from pydantic_ai.direct import model_request
from pydantic_ai.exceptions import AgentRunError, ModelHTTPError
from pydantic_ai.messages import (
    ModelMessage,
    ModelRequest,
    ModelRequestPart,
    ModelResponse,
    ModelResponsePart,
    RetryPromptPart,
    SystemPromptPart,
    TextPart,
    ToolCallPart,
    ToolReturnPart,
    UserPromptPart,
)
from pydantic_ai.models import Model, ModelRequestParameters
from pydantic_ai.settings import ModelSettings

from ..log import get_logger
from .domain_type import MessageRole, TurnState
from .domain_value import ConversationHistory, StoredMessage, ToolCall
from .exceptions import (
    LoopBoundExceeded,
    ModelCallError,
    ModelRateLimited,
    ModelTimeout,
)
from .prompts import EMPTY_REPLY_FALLBACK, ESCALATION_FALLBACK_REPLY, build_system_prompt
from .tools import ToolContext, ToolInvocation, ToolRegistry

log = get_logger(__name__)

# Provider statuses worth one more try
TRANSIENT_STATUS_CODES = frozenset({408, 409, 425, 429})
MODEL_RETRIES = 1


class OrchestratorLimits(BaseModel):
    max_model_calls: int = Field(default=5, ge=1)
    history_limit: int = Field(default=20, ge=1)
    model_timeout_seconds: float = Field(default=8.0, gt=0)
    model_retry_backoff_seconds: float = Field(default=0.5, ge=0)
    max_tokens: int = Field(default=1024, gt=0)

    model_config = ConfigDict(frozen=True)


class TurnProgress(BaseModel):
    """Where one turn stands. Transitions return a new instance."""

    state: TurnState = TurnState.AWAITING_MODEL
    model_calls: int = 0
    new_messages: tuple[StoredMessage, ...] = ()
    invocations: tuple[ToolInvocation, ...] = ()
    last_text: str | None = None
    pending_calls: tuple[ToolCall, ...] = ()
    reply: str | None = None
    escalated: bool = False
    bound_exceeded: bool = False

    model_config = ConfigDict(frozen=True)

    def _require(self, *states: TurnState) -> None:
        if self.state not in states:
            expected = " or ".join(state.value for state in states)
            raise RuntimeError(f"illegal transition from {self.state.value}, expected {expected}")

    def model_replied(self, text: str | None, tool_calls: Sequence[ToolCall]) -> TurnProgress:
        self._require(TurnState.AWAITING_MODEL)
        return self.model_copy(
            update={
                "state": TurnState.MODEL_REPLIED,
                "model_calls": self.model_calls + 1,
                "last_text": text,
                "pending_calls": tuple(tool_calls),
            }
        )

    def route(self, max_model_calls: int) -> TurnProgress:
        """Decide between running tools and answering.

        Raises:
            LoopBoundExceeded: the model wants tools but no model call is left
                to read their results.
        """
        self._require(TurnState.MODEL_REPLIED)
        if not self.pending_calls:
            return self.model_copy(
                update={"state": TurnState.FINAL_ANSWER, "reply": self.last_text or EMPTY_REPLY_FALLBACK}
            )
        if self.model_calls >= max_model_calls:
            raise LoopBoundExceeded(max_model_calls)
        request = StoredMessage.assistant(self.last_text, self.pending_calls)
        return self.model_copy(
            update={"state": TurnState.HAS_TOOL_CALLS, "new_messages": (*self.new_messages, request)}
        )

    def escalation_fallback(self) -> TurnProgress:
        """Drop the unanswerable tool calls and answer with the escalation reply."""
        self._require(TurnState.MODEL_REPLIED)
        return self.model_copy(
            update={
                "state": TurnState.FINAL_ANSWER,
                "pending_calls": (),
                "reply": ESCALATION_FALLBACK_REPLY,
                "bound_exceeded": True,
            }
        )

    def begin_tools(self) -> TurnProgress:
        self._require(TurnState.HAS_TOOL_CALLS)
        return self.model_copy(update={"state": TurnState.EXECUTING_TOOLS})

    def tools_finished(self, invocations: Sequence[ToolInvocation]) -> TurnProgress:
        self._require(TurnState.EXECUTING_TOOLS)
        results = tuple(StoredMessage.tool(invocation.to_result()) for invocation in invocations)
        return self.model_copy(
            update={
                "state": TurnState.AWAITING_MODEL,
                "new_messages": (*self.new_messages, *results),
                "invocations": (*self.invocations, *invocations),
                "pending_calls": (),
                "escalated": self.escalated or any(inv.escalated and inv.succeeded for inv in invocations),
            }
        )

    def finish(self) -> TurnProgress:
        self._require(TurnState.FINAL_ANSWER)
        answer = StoredMessage.assistant(self.reply or EMPTY_REPLY_FALLBACK)
        return self.model_copy(update={"state": TurnState.DONE, "new_messages": (*self.new_messages, answer)})


class TurnOutcome(BaseModel):
    """What a finished turn hands back to the caller for persistence."""

    reply: str
    messages: tuple[StoredMessage, ...]
    model_calls: int
    invocations: tuple[ToolInvocation, ...] = ()
    escalated: bool = False
    bound_exceeded: bool = False

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_progress(cls, progress: TurnProgress) -> TurnOutcome:
        if progress.state is not TurnState.DONE:
            raise RuntimeError(f"turn not finished, state is {progress.state.value}")
        return cls(
            reply=progress.reply or EMPTY_REPLY_FALLBACK,
            messages=progress.new_messages,
            model_calls=progress.model_calls,
            invocations=progress.invocations,
            escalated=progress.escalated,
            bound_exceeded=progress.bound_exceeded,
        )


# ---------------------------------------------------------------------------
# Conversation <-> pydantic-ai message mapping
# ---------------------------------------------------------------------------


def recent_window(messages: Sequence[StoredMessage], limit: int) -> list[StoredMessage]:
    """Last ``limit`` messages, starting on a member message so no tool pair is split.

    The current turn is always kept whole, even when it alone exceeds the limit.
    """
    start = max(0, len(messages) - limit)
    while start < len(messages) and messages[start].role is not MessageRole.USER:
        start += 1
    if start == len(messages):
        user_positions = [i for i, msg in enumerate(messages) if msg.role is MessageRole.USER]
        start = user_positions[-1] if user_positions else 0
    return list(messages[start:])


def to_model_messages(system_prompt: str, messages: Sequence[StoredMessage]) -> list[ModelMessage]:
    """Map stored messages onto pydantic-ai requests/responses.

    Consecutive user and tool messages are folded into one ModelRequest;
    every assistant message becomes one ModelResponse.
    """
    result: list[ModelMessage] = []
    request_parts: list[ModelRequestPart] = [SystemPromptPart(content=system_prompt)]

    for msg in messages:
        if msg.role is MessageRole.USER:
            request_parts.append(UserPromptPart(content=msg.content or "", timestamp=msg.timestamp))
        elif msg.role is MessageRole.TOOL:
            outcome = msg.tool_result
            assert outcome is not None
            if outcome.needs_retry:
                request_parts.append(
                    RetryPromptPart(content=outcome.error.message, tool_name=outcome.name, tool_call_id=outcome.call_id)
                )
            else:
                content = {"error": outcome.error.model_dump()} if outcome.is_error else outcome.content
                request_parts.append(
                    ToolReturnPart(tool_name=outcome.name, content=content, tool_call_id=outcome.call_id)
                )
        else:
            if request_parts:
                result.append(ModelRequest(parts=request_parts))
                request_parts = []
            response_parts: list[ModelResponsePart] = []
            if msg.content:
                response_parts.append(TextPart(content=msg.content))
            response_parts.extend(
                ToolCallPart(tool_name=call.name, args=call.arguments, tool_call_id=call.id) for call in msg.tool_calls
            )
            result.append(ModelResponse(parts=response_parts, timestamp=msg.timestamp))

    if request_parts:
        result.append(ModelRequest(parts=request_parts))
    return result


def read_response(response: ModelResponse) -> tuple[str | None, list[ToolCall]]:
    """Split a model response into its text and its tool-call requests."""
    texts: list[str] = []
    calls: list[ToolCall] = []
    for part in response.parts:
        if isinstance(part, TextPart):
            texts.append(part.content)
        elif isinstance(part, ToolCallPart):
            try:
                arguments = part.args_as_dict()
            except (ValueError, AssertionError):
                # Malformed JSON goes to the registry as-is and comes back as a retry prompt
                arguments = {"_raw": part.args if isinstance(part.args, str) else repr(part.args)}
            calls.append(ToolCall(id=part.tool_call_id, name=part.tool_name, arguments=arguments))
    text = "".join(texts).strip()
    return text or None, calls


class ConciergeOrchestrator:
    """Runs one turn against an injected model and tool registry."""

    def __init__(
        self,
        model: Model,
        registry: ToolRegistry,
        limits: OrchestratorLimits | None = None,
        prompt_builder: Callable[[datetime], str] = build_system_prompt,
    ):
        self.model = model
        self.registry = registry
        self.limits = limits or OrchestratorLimits()
        self.prompt_builder = prompt_builder

    async def run_turn(self, history: ConversationHistory, ctx: ToolContext) -> TurnOutcome:
        """Drive the state machine from AWAITING_MODEL to DONE.

        Args:
            history: Conversation including the member's new message
            ctx: Request identity handed to every tool call

        Returns:
            TurnOutcome with the reply and every message to append, in order

        Raises:
            ModelCallError: the model could not be reached after one retry
        """
        system_prompt = self.prompt_builder(ctx.now)
        progress = TurnProgress()

        while progress.state is not TurnState.DONE:
            if progress.state is TurnState.AWAITING_MODEL:
                window = recent_window((*history.messages, *progress.new_messages), self.limits.history_limit)
                response = await self.call_model(to_model_messages(system_prompt, window), iteration=progress.model_calls + 1)
                progress = progress.model_replied(*read_response(response))

            elif progress.state is TurnState.MODEL_REPLIED:
                try:
                    progress = progress.route(self.limits.max_model_calls)
                except LoopBoundExceeded as exc:
                    log.warning(
                        "loop_bound_exceeded",
                        max_model_calls=exc.max_model_calls,
                        dropped_tools=[call.name for call in progress.pending_calls],
                        dropped_mutations=[
                            call.name for call in progress.pending_calls if self.registry.is_mutating(call.name)
                        ],
                    )
                    progress = progress.escalation_fallback()

            elif progress.state is TurnState.HAS_TOOL_CALLS:
                progress = progress.begin_tools()

            elif progress.state is TurnState.EXECUTING_TOOLS:
                invocations = await self.execute_tools(progress.pending_calls, ctx)
                progress = progress.tools_finished(invocations)

            elif progress.state is TurnState.FINAL_ANSWER:
                progress = progress.finish()

        outcome = TurnOutcome.from_progress(progress)
        log.info(
            "turn_completed",
            model_calls=outcome.model_calls,
            tool_calls=len(outcome.invocations),
            escalated=outcome.escalated,
            bound_exceeded=outcome.bound_exceeded,
        )
        return outcome

    async def execute_tools(self, calls: Sequence[ToolCall], ctx: ToolContext) -> list[ToolInvocation]:
        """Run every requested tool concurrently; return once all have finished."""
        async with asyncio.TaskGroup() as group:
            tasks = [
                group.create_task(self.registry.invoke(call.name, call.arguments, ctx, call_id=call.id))
                for call in calls
            ]
        return [task.result() for task in tasks]

    async def call_model(self, messages: list[ModelMessage], *, iteration: int = 1) -> ModelResponse:
        """One model request with a timeout and a single retry for transient failures."""
        parameters = ModelRequestParameters(function_tools=self.registry.list_tools(), allow_text_output=True)
        settings = ModelSettings(max_tokens=self.limits.max_tokens)

        attempt = 0
        while True:
            attempt += 1
            started = perf_counter()
            try:
                async with asyncio.timeout(self.limits.model_timeout_seconds):
                    response = await model_request(
                        self.model,
                        messages,
                        model_settings=settings,
                        model_request_parameters=parameters,
                    )
            except (TimeoutError, AgentRunError, httpx.TransportError) as exc:
                failure, transient = self._classify_failure(exc)
                if not transient or attempt > MODEL_RETRIES:
                    log.error("model_call_failed", iteration=iteration, attempt=attempt, kind=failure.kind, error=str(exc))
                    raise failure from exc
                backoff = self.limits.model_retry_backoff_seconds * attempt
                log.warning("model_call_retry", iteration=iteration, attempt=attempt, backoff_s=backoff, error=str(exc))
                await asyncio.sleep(backoff)
                continue

            log.info(
                "model_replied",
                iteration=iteration,
                duration_ms=round((perf_counter() - started) * 1000, 1),
                tool_calls=sum(isinstance(part, ToolCallPart) for part in response.parts),
            )
            return response

    def _classify_failure(self, exc: BaseException) -> tuple[ModelCallError, bool]:
        if isinstance(exc, TimeoutError):
            return ModelTimeout(f"model call exceeded {self.limits.model_timeout_seconds:g}s"), True
        if isinstance(exc, ModelHTTPError):
            status = exc.status_code
            transient = status in TRANSIENT_STATUS_CODES or status >= 500
            if status == 429:
                return ModelRateLimited(f"provider rate limited the request ({status})"), transient
            return ModelCallError(f"provider returned HTTP {status}"), transient
        return ModelCallError(f"{type(exc).__name__}: {exc}"), True


__all__ = [
    "ConciergeOrchestrator",
    "OrchestratorLimits",
    "TurnOutcome",
    "TurnProgress",
    "read_response",
    "recent_window",
    "to_model_messages",
]
