"""Unit tests for the concierge orchestrator.

The model is a scripted pydantic-ai FunctionModel, the datastore a FakeGateway.
Tests cover:
- TurnProgress transitions in isolation
- The model-call bound and its escalation fallback
- End-to-end turns (booking, escalation) through real tools
- Retry and failure classification of model errors
"""

from datetime import datetime

import pytest
from pydantic_ai.exceptions import ModelHTTPError
from pydantic_ai.messages import ModelRequest, ModelResponse, RetryPromptPart, ToolReturnPart

from concierge.domain.domain_type import MessageRole, TurnState
from concierge.domain.domain_value import ConversationHistory, StoredMessage, ToolCall, ToolErrorInfo, ToolResult
from concierge.domain.exceptions import LoopBoundExceeded, ModelCallError, ModelRateLimited
from concierge.domain.orchestrator import (
    ConciergeOrchestrator,
    OrchestratorLimits,
    TurnProgress,
    recent_window,
    to_model_messages,
)
from concierge.domain.prompts import ESCALATION_FALLBACK_REPLY
from concierge.domain.tools import ToolContext, ToolRegistry
from tests.fakes import NOBU_ID, ScriptedModel, SlowGateway, text, tool_call, tool_returns

LIMITS = OrchestratorLimits(model_retry_backoff_seconds=0, model_timeout_seconds=2)


def _ask(history: ConversationHistory, message: str) -> ConversationHistory:
    return history.append_message(StoredMessage.user(message, request_id="req-1"))


def _orchestrator(model: ScriptedModel, registry: ToolRegistry, **limits) -> ConciergeOrchestrator:
    return ConciergeOrchestrator(model.model, registry, LIMITS.model_copy(update=limits))


# =============================================================================
# TurnProgress transitions
# =============================================================================


class TestTurnProgress:
    def test_text_reply_goes_straight_to_final_answer(self):
        progress = TurnProgress().model_replied("Hello!", []).route(max_model_calls=5)

        assert progress.state is TurnState.FINAL_ANSWER
        assert progress.finish().new_messages[-1].content == "Hello!"

    def test_tool_calls_are_recorded_before_execution(self):
        calls = [ToolCall(id="c1", name="search_venues", arguments={"query": "Nobu"})]

        progress = TurnProgress().model_replied(None, calls).route(max_model_calls=5)

        assert progress.state is TurnState.HAS_TOOL_CALLS
        assert progress.new_messages[0].tool_calls == tuple(calls)
        assert progress.begin_tools().state is TurnState.EXECUTING_TOOLS

    def test_tool_calls_on_the_last_allowed_call_exceed_the_bound(self):
        calls = [ToolCall(id="c1", name="search_venues")]
        progress = TurnProgress(model_calls=4).model_replied(None, calls)

        with pytest.raises(LoopBoundExceeded):
            progress.route(max_model_calls=5)

        fallback = progress.escalation_fallback().finish()
        assert fallback.reply == ESCALATION_FALLBACK_REPLY
        assert fallback.bound_exceeded
        assert fallback.new_messages[-1].tool_calls == ()

    def test_illegal_transition_is_rejected(self):
        with pytest.raises(RuntimeError):
            TurnProgress().begin_tools()

    def test_empty_reply_gets_a_fallback(self):
        progress = TurnProgress().model_replied(None, []).route(max_model_calls=5)

        assert progress.reply


# =============================================================================
# Message mapping
# =============================================================================


def test_recent_window_starts_on_a_member_message(empty_history: ConversationHistory):
    history = empty_history.extend(
        [
            StoredMessage.user("one"),
            StoredMessage.assistant(tool_calls=(ToolCall(id="c1", name="search_venues"),)),
            StoredMessage.tool(_result("c1")),
            StoredMessage.assistant("done"),
            StoredMessage.user("two"),
            StoredMessage.assistant("ok"),
        ]
    )

    window = recent_window(history.messages, limit=4)

    assert window[0].content == "two"
    assert recent_window(history.messages, limit=1)[0].content == "two"


def test_invalid_arguments_become_retry_prompts(empty_history: ConversationHistory):
    history = empty_history.extend(
        [
            StoredMessage.user("Book Nobu"),
            StoredMessage.assistant(tool_calls=(ToolCall(id="c1", name="create_booking"),)),
            StoredMessage.tool(
                ToolResult(
                    call_id="c1",
                    name="create_booking",
                    error=ToolErrorInfo(kind="invalid_arguments", message="party_size: Field required"),
                )
            ),
        ]
    )

    messages = to_model_messages("system", history.messages)

    assert len(messages) == 3
    assert isinstance(messages[1], ModelResponse)
    assert isinstance(messages[2].parts[0], RetryPromptPart)


def _result(call_id: str):
    return ToolResult(call_id=call_id, name="search_venues", content={"count": 0})


# =============================================================================
# Turns
# =============================================================================


async def test_plain_question_takes_one_model_call(
    empty_history: ConversationHistory, registry: ToolRegistry, tool_context: ToolContext
):
    model = ScriptedModel(text("We open at noon."))

    outcome = await _orchestrator(model, registry).run_turn(_ask(empty_history, "When do you open?"), tool_context)

    assert outcome.reply == "We open at noon."
    assert model.calls == 1
    assert [msg.role for msg in outcome.messages] == [MessageRole.ASSISTANT]


async def test_nobu_booking_scenario(
    empty_history: ConversationHistory, registry: ToolRegistry, tool_context: ToolContext, now: datetime
):
    """
    Demonstrates: the full booking flow through real tools.

    "book me a table for 4 at Nobu tomorrow at 8pm" ->
    search_venues -> check_availability -> create_booking -> reply with the reference.
    """

    def confirm(messages):
        booking = tool_returns(messages)["create_booking"]["booking"]
        return text(f"Done! Nobu Dubai, {booking['time']}, reference {booking['reference']}.")

    model = ScriptedModel(
        ModelResponse(parts=[tool_call("search_venues", {"query": "Nobu"}, "c1")]),
        ModelResponse(
            parts=[
                tool_call(
                    "check_availability",
                    {"venue_id": str(NOBU_ID), "date": "2025-03-14", "time": "8pm", "party_size": 4},
                    "c2",
                )
            ]
        ),
        ModelResponse(
            parts=[
                tool_call(
                    "create_booking",
                    {"venue_id": str(NOBU_ID), "date": "2025-03-14", "time": "20:00", "party_size": 4},
                    "c3",
                )
            ]
        ),
        confirm,
    )
    history = _ask(empty_history, "book me a table for 4 at Nobu tomorrow at 8pm")

    outcome = await _orchestrator(model, registry).run_turn(history, tool_context)

    assert [inv.name for inv in outcome.invocations] == ["search_venues", "check_availability", "create_booking"]
    assert all(inv.succeeded for inv in outcome.invocations)
    booking = registry.gateway.bookings[next(iter(registry.gateway.bookings))]
    assert booking.party_size == 4
    assert booking.booking_date == now.date().replace(day=14)
    assert booking.booking_time.hour == 20
    assert booking.reference in outcome.reply
    assert "8:00 PM" in outcome.reply
    assert model.calls == 4
    # Everything the turn produced appends cleanly after the member message
    assert history.extend(outcome.messages).messages[-1].content == outcome.reply


async def test_yacht_request_escalates(
    empty_history: ConversationHistory, registry: ToolRegistry, tool_context: ToolContext
):
    model = ScriptedModel(
        ModelResponse(
            parts=[
                tool_call("escalate_to_concierge", {"category": "yacht", "summary": "Yacht charter for 8, Saturday"}, "c1")
            ]
        ),
        text("Lovely - a member of our concierge team will follow up with you shortly about the yacht."),
    )

    outcome = await _orchestrator(model, registry).run_turn(_ask(empty_history, "charter a yacht"), tool_context)

    assert outcome.escalated
    assert "follow up" in outcome.reply
    assert len(registry.gateway.escalations) == 1


async def test_model_that_always_calls_tools_is_bounded(
    empty_history: ConversationHistory, registry: ToolRegistry, tool_context: ToolContext
):
    """Demonstrates: at most max_model_calls calls, then the escalation fallback."""
    model = ScriptedModel(
        lambda messages: ModelResponse(parts=[tool_call("search_venues", {"query": "x"}, f"c{len(messages)}")])
    )

    outcome = await _orchestrator(model, registry).run_turn(_ask(empty_history, "anything"), tool_context)

    assert model.calls == 5
    assert outcome.bound_exceeded
    assert outcome.reply == ESCALATION_FALLBACK_REPLY
    assert len(outcome.invocations) == 4
    stored = empty_history.append_message(StoredMessage.user("anything")).extend(outcome.messages)
    assert stored.messages[-1].content == ESCALATION_FALLBACK_REPLY


async def test_tool_failure_goes_back_to_the_model(
    empty_history: ConversationHistory, registry: ToolRegistry, tool_context: ToolContext
):
    def explain(messages):
        error = tool_returns(messages)["check_availability"]["error"]
        return text(f"Sorry, I couldn't find that venue ({error['kind']}).")

    model = ScriptedModel(
        ModelResponse(
            parts=[
                tool_call(
                    "check_availability",
                    {"venue_id": "0b0b0b0b-0000-4000-8000-00000000ffff", "date": "2025-03-14", "time": "8pm", "party_size": 2},
                    "c1",
                )
            ]
        ),
        explain,
    )

    outcome = await _orchestrator(model, registry).run_turn(_ask(empty_history, "Table somewhere"), tool_context)

    assert "venue_not_found" in outcome.reply
    assert not outcome.invocations[0].succeeded


async def test_invalid_arguments_let_the_model_retry(
    empty_history: ConversationHistory, registry: ToolRegistry, tool_context: ToolContext
):
    def retried(messages):
        last_request = messages[-1]
        assert isinstance(last_request, ModelRequest)
        assert isinstance(last_request.parts[0], RetryPromptPart)
        return ModelResponse(parts=[tool_call("search_venues", {"query": "Nobu"}, "c2")])

    model = ScriptedModel(
        ModelResponse(parts=[tool_call("search_venues", {"limit": 99}, "c1")]),
        retried,
        text("Found Nobu Dubai."),
    )

    outcome = await _orchestrator(model, registry).run_turn(_ask(empty_history, "Nobu?"), tool_context)

    assert outcome.reply == "Found Nobu Dubai."
    assert [inv.succeeded for inv in outcome.invocations] == [False, True]


async def test_tool_calls_from_one_response_run_concurrently(
    empty_history: ConversationHistory, tool_context: ToolContext
):
    """Demonstrates: both searches are in flight at once, or neither could finish."""
    registry = ToolRegistry(SlowGateway(expected=2), timeout_seconds=1.0)

    def both_answered(messages):
        returns = [p for p in messages[-1].parts if isinstance(p, ToolReturnPart)]
        assert [p.tool_call_id for p in returns] == ["c1", "c2"]
        return text("Two options.")

    model = ScriptedModel(
        ModelResponse(
            parts=[
                tool_call("search_venues", {"query": "Nobu"}, "c1"),
                tool_call("search_venues", {"query": "White"}, "c2"),
            ]
        ),
        both_answered,
    )

    outcome = await _orchestrator(model, registry).run_turn(_ask(empty_history, "Options?"), tool_context)

    assert all(inv.succeeded for inv in outcome.invocations)
    assert outcome.reply == "Two options."


# =============================================================================
# Model failures
# =============================================================================


async def test_transient_model_error_is_retried_once(
    empty_history: ConversationHistory, registry: ToolRegistry, tool_context: ToolContext
):
    model = ScriptedModel(ModelHTTPError(status_code=503, model_name="test"), text("Back again."))

    outcome = await _orchestrator(model, registry).run_turn(_ask(empty_history, "Hi"), tool_context)

    assert outcome.reply == "Back again."
    assert model.calls == 2


async def test_persistent_model_error_surfaces(
    empty_history: ConversationHistory, registry: ToolRegistry, tool_context: ToolContext
):
    model = ScriptedModel(ModelHTTPError(status_code=503, model_name="test"))

    with pytest.raises(ModelCallError) as exc_info:
        await _orchestrator(model, registry).run_turn(_ask(empty_history, "Hi"), tool_context)

    assert exc_info.value.status_code == 502
    assert model.calls == 2


async def test_rate_limit_maps_to_429(
    empty_history: ConversationHistory, registry: ToolRegistry, tool_context: ToolContext
):
    model = ScriptedModel(ModelHTTPError(status_code=429, model_name="test"))

    with pytest.raises(ModelRateLimited):
        await _orchestrator(model, registry).run_turn(_ask(empty_history, "Hi"), tool_context)


async def test_client_errors_are_not_retried(
    empty_history: ConversationHistory, registry: ToolRegistry, tool_context: ToolContext
):
    model = ScriptedModel(ModelHTTPError(status_code=400, model_name="test"))

    with pytest.raises(ModelCallError):
        await _orchestrator(model, registry).run_turn(_ask(empty_history, "Hi"), tool_context)

    assert model.calls == 1
