"""Tests for the conversation engine."""

import json

import pytest

from convo_hub.conversation import Conversation, ConversationState
from convo_hub.exceptions import (
    InvalidRequestError,
    OverloadedError,
    ProtocolStateError,
    ResponseDecodeError,
    StreamingError,
    ToolError,
)
from convo_hub.tools import ToolExecutor
from convo_hub.types import Role, StopReason, Tool, ToolResultContent, ToolUseContent
from factories import dumps, message_payload, text_events, tool_use_payload

CALC = Tool(
    name="calc",
    description="Evaluate an arithmetic expression",
    input_schema={"type": "object", "properties": {"expression": {"type": "string"}}, "required": ["expression"]},
)


def body_of(request):
    return json.loads(request.body)


class TestTurns:
    """Tests for the basic turn cycle."""

    def test_user_message_builds_request(self, config):
        """Test that submitting text builds a request from the whole conversation."""
        conversation = Conversation(config, system="Be brief.", tools=[CALC])
        request = conversation.user_message("Hi")

        assert conversation.state is ConversationState.AWAITING_RESPONSE
        assert request.path == "/v1/messages"
        assert request.method == "POST"
        body = body_of(request)
        assert body["system"] == "Be brief."
        assert body["messages"] == [{"role": "user", "content": [{"type": "text", "text": "Hi"}]}]
        assert body["tools"][0]["name"] == "calc"
        assert "stream" not in body
        assert conversation.last_request is request

    def test_handle_response_appends_assistant(self, config):
        """Test that a successful response is appended verbatim."""
        conversation = Conversation(config)
        conversation.user_message("Hi")
        result = conversation.handle_response(dumps(message_payload()))

        assert conversation.state is ConversationState.IDLE
        assert result.text == "Hello!"
        assert result.stop_reason is StopReason.END_TURN
        assert not result.requires_tool_results
        assert [m.role for m in conversation.history] == [Role.USER, Role.ASSISTANT]
        assert conversation.history[-1] == result.message

    def test_request_replays_full_history(self, config):
        """Test that the second request carries the first exchange."""
        conversation = Conversation(config)
        conversation.user_message("First")
        conversation.handle_response(dumps(message_payload()))
        request = conversation.user_message("Second")

        messages = body_of(request)["messages"]
        assert [m["role"] for m in messages] == ["user", "assistant", "user"]
        assert messages[2]["content"][0]["text"] == "Second"

    def test_model_and_max_tokens_overrides(self, config):
        """Test that per-conversation overrides reach body and headers."""
        conversation = Conversation(config, model="claude-3-5-haiku-latest", max_tokens=256)
        request = conversation.user_message("Hi")
        body = body_of(request)
        assert body["model"] == "claude-3-5-haiku-latest"
        assert body["max_tokens"] == 256
        assert request.header("anthropic-model") == "claude-3-5-haiku-latest"
        assert request.header("max-tokens") == "256"

    def test_usage_accumulates(self, config):
        """Test cumulative usage across turns."""
        conversation = Conversation(config)
        for _ in range(2):
            conversation.user_message("Hi")
            conversation.handle_response(dumps(message_payload(input_tokens=10, output_tokens=5)))
        assert conversation.usage.input_tokens == 20
        assert conversation.usage.output_tokens == 10
        assert conversation.usage.get("claude-sonnet-4-20250514").turns == 2

    def test_set_system_and_clear(self, config):
        """Test replacing the system prompt and clearing history."""
        conversation = Conversation(config, system="Old.", tools=[CALC])
        conversation.user_message("Hi")
        conversation.handle_response(dumps(message_payload()))

        conversation.set_system("New.")
        conversation.clear()
        assert conversation.message_count == 0
        assert conversation.last_request is None

        body = body_of(conversation.user_message("Again"))
        assert body["system"] == "New."
        assert len(body["messages"]) == 1
        assert [tool.name for tool in conversation.tools] == ["calc"]


class TestToolRoundTrip:
    """Tests for tool use turns."""

    def test_four_message_history(self, config):
        """Test user, tool use, tool result, final answer."""
        conversation = Conversation(config, tools=[CALC])
        conversation.user_message("What's 2+2?")
        result = conversation.handle_response(dumps(tool_use_payload()))

        assert result.requires_tool_results
        assert result.tool_uses == [ToolUseContent(id="toolu_01", name="calc", input={"expression": "2+2"})]

        request = conversation.tool_results([ToolResultContent.success("toolu_01", "4")])
        last = body_of(request)["messages"][-1]
        assert last == {
            "role": "user",
            "content": [{"type": "tool_result", "tool_use_id": "toolu_01", "content": "4", "is_error": False}],
        }

        final = conversation.handle_response(dumps(message_payload([{"type": "text", "text": "2+2 is 4."}])))
        assert final.text == "2+2 is 4."
        assert conversation.message_count == 4
        assert [m.role for m in conversation.history] == [Role.USER, Role.ASSISTANT, Role.USER, Role.ASSISTANT]

    def test_results_batched_in_one_message(self, config):
        """Test that several results form a single user message in order."""
        conversation = Conversation(config)
        conversation.user_message("Go")
        conversation.handle_response(dumps(tool_use_payload()))
        results = [ToolResultContent.success("a", "1"), ToolResultContent.error("b", "failed")]
        conversation.tool_results(results)
        assert conversation.history[-1].content == tuple(results)

    def test_unknown_tool_with_executor(self, config):
        """Test that an unknown tool name yields an error result, not a crash."""
        executor = ToolExecutor()
        conversation = Conversation(config, tools=executor.tools)
        conversation.user_message("Teleport me")
        result = conversation.handle_response(dumps(tool_use_payload(name="teleport", tool_id="toolu_7")))

        results = executor.execute_all(result.tool_uses)
        assert results == [ToolResultContent.unknown_tool("toolu_7", "teleport")]
        conversation.tool_results(results)
        assert conversation.state is ConversationState.AWAITING_RESPONSE

    def test_empty_results_rejected(self, config):
        """Test that submitting no results is an error."""
        conversation = Conversation(config)
        with pytest.raises(ValueError):
            conversation.tool_results([])
        assert conversation.message_count == 0

    def test_duplicate_tool_rejected(self, config):
        """Test that tool names must be unique."""
        conversation = Conversation(config, tools=[CALC])
        with pytest.raises(ToolError):
            conversation.add_tool(CALC)


class TestProtocolState:
    """Tests for state machine violations."""

    def test_handle_response_while_idle(self, config):
        """Test resolving a response with nothing in flight."""
        with pytest.raises(ProtocolStateError):
            Conversation(config).handle_response(dumps(message_payload()))

    def test_feed_event_while_idle(self, config):
        """Test feeding an event with nothing in flight."""
        with pytest.raises(ProtocolStateError):
            Conversation(config).feed_event({"type": "ping"})

    def test_user_message_while_awaiting(self, config):
        """Test that only one request can be outstanding."""
        conversation = Conversation(config)
        conversation.user_message("One")
        with pytest.raises(ProtocolStateError):
            conversation.user_message("Two")
        with pytest.raises(ProtocolStateError):
            conversation.tool_results([ToolResultContent.success("t", "x")])
        assert conversation.message_count == 1

    def test_clear_while_awaiting(self, config):
        """Test that the history cannot be cleared mid-turn."""
        conversation = Conversation(config)
        conversation.user_message("One")
        with pytest.raises(ProtocolStateError):
            conversation.clear()


class TestFailedTurns:
    """Tests for error handling during a turn."""

    def test_decode_error_leaves_history_unchanged(self, config):
        """Test that a malformed body does not change the history."""
        conversation = Conversation(config)
        conversation.user_message("Hi")
        before = conversation.history
        with pytest.raises(ResponseDecodeError):
            conversation.handle_response("{not json")
        assert conversation.history == before
        assert len(conversation.history) == 1
        assert conversation.state is ConversationState.IDLE
        assert conversation.has_failed_turn

    def test_provider_error_is_typed(self, config):
        """Test that an error envelope surfaces as its typed error."""
        conversation = Conversation(config)
        conversation.user_message("Hi")
        body = json.dumps({"type": "error", "error": {"type": "invalid_request_error", "message": "bad"}})
        with pytest.raises(InvalidRequestError):
            conversation.handle_response(body)
        assert conversation.message_count == 1

    def test_new_turn_blocked_after_failure(self, config):
        """Test that a failed turn must be retried or discarded."""
        conversation = Conversation(config)
        conversation.user_message("Hi")
        with pytest.raises(ResponseDecodeError):
            conversation.handle_response("")
        with pytest.raises(ProtocolStateError):
            conversation.user_message("Hi again")

    def test_retry_request_resends_identical_request(self, config):
        """Test that the retried request is the one built for the failed turn."""
        conversation = Conversation(config)
        original = conversation.user_message("Hi")
        with pytest.raises(ResponseDecodeError):
            conversation.handle_response("")

        retried = conversation.retry_request()
        assert retried is original
        assert conversation.state is ConversationState.AWAITING_RESPONSE
        conversation.handle_response(dumps(message_payload()))
        assert conversation.message_count == 2

    def test_retry_request_keeps_streaming_mode(self, config):
        """Test that retrying a streamed turn expects a stream again."""
        conversation = Conversation(config)
        conversation.user_message("Hi", stream=True)
        conversation.cancel()
        retried = conversation.retry_request()
        assert body_of(retried)["stream"] is True
        assert conversation.handle_stream(text_events(["ok"])).text == "ok"

    def test_retry_without_failed_turn(self, config):
        """Test that there is nothing to retry on a fresh conversation."""
        with pytest.raises(ProtocolStateError):
            Conversation(config).retry_request()

    def test_discard_failed_turn(self, config):
        """Test dropping the unanswered message."""
        conversation = Conversation(config)
        conversation.user_message("Hi")
        with pytest.raises(ResponseDecodeError):
            conversation.handle_response("")

        dropped = conversation.discard_failed_turn()
        assert dropped.text == "Hi"
        assert conversation.message_count == 0
        assert conversation.last_request is None
        conversation.user_message("Hello")
        assert conversation.state is ConversationState.AWAITING_RESPONSE


class TestStreamingTurns:
    """Tests for streamed turns."""

    def test_handle_stream(self, config):
        """Test that a streamed reply lands in history like a normal one."""
        conversation = Conversation(config, stream=True)
        request = conversation.user_message("Hi")
        assert body_of(request)["stream"] is True

        result = conversation.handle_stream(text_events(["Hel", "lo!"]))
        assert result.text == "Hello!"
        assert result.usage.output_tokens == 15
        assert conversation.state is ConversationState.IDLE
        assert conversation.history[-1].text == "Hello!"

    def test_feed_event_one_at_a_time(self, config):
        """Test incremental feeding."""
        conversation = Conversation(config)
        conversation.user_message("Hi", stream=True)
        events = text_events(["a", "b"])
        results = [conversation.feed_event(event) for event in events]
        assert results[:-1] == [None] * (len(events) - 1)
        assert results[-1].text == "ab"

    def test_error_event_leaves_history_unchanged(self, config):
        """Test that a mid-stream error aborts the turn."""
        conversation = Conversation(config, stream=True)
        conversation.user_message("Hi")
        events = text_events(["partial"])[:4]
        events.append({"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}})
        with pytest.raises(OverloadedError):
            conversation.handle_stream(events)
        assert conversation.message_count == 1
        assert conversation.state is ConversationState.IDLE

    def test_truncated_stream(self, config):
        """Test a stream that ends without message_stop."""
        conversation = Conversation(config, stream=True)
        conversation.user_message("Hi")
        with pytest.raises(StreamingError):
            conversation.handle_stream(text_events(["x"])[:-1])
        assert conversation.state is ConversationState.IDLE
        assert conversation.message_count == 1

    def test_untyped_source_error_ends_turn(self, config):
        """Test that any exception from the event source returns to idle."""
        def broken_source():
            yield from text_events(["x"])[:3]
            raise OSError("socket reset")

        conversation = Conversation(config, stream=True)
        original = conversation.user_message("Hi")
        with pytest.raises(OSError):
            conversation.handle_stream(broken_source())
        assert conversation.state is ConversationState.IDLE
        assert conversation.has_failed_turn
        assert conversation.retry_request() is original

    def test_callback_error_ends_turn(self, config):
        """Test that a failing unknown-event callback does not strand the turn."""
        def on_unknown(event):
            raise ValueError(f"unexpected {event.event_type}")

        conversation = Conversation(config, stream=True, on_unknown=on_unknown)
        conversation.user_message("Hi")
        events = text_events(["x"])
        events.insert(2, {"type": "future_event"})
        with pytest.raises(ValueError):
            conversation.handle_stream(events)
        assert conversation.state is ConversationState.IDLE
        assert conversation.discard_failed_turn().text == "Hi"

    def test_source_closed_after_message_stop(self, config):
        """Test that the event source is closed once the turn completes."""
        closed = []

        def source():
            try:
                yield from text_events(["done"])
                yield {"type": "ping"}
            finally:
                closed.append(True)

        conversation = Conversation(config, stream=True)
        conversation.user_message("Hi")
        assert conversation.handle_stream(source()).text == "done"
        assert closed == [True]

    def test_cancel_discards_partial_message(self, config):
        """Test cancelling mid-stream."""
        conversation = Conversation(config, stream=True)
        conversation.user_message("Hi")
        for event in text_events(["part"])[:4]:
            conversation.feed_event(event)

        assert conversation.cancel() is True
        assert conversation.state is ConversationState.IDLE
        assert conversation.message_count == 1
        with pytest.raises(ProtocolStateError):
            conversation.feed_event({"type": "message_stop"})

    def test_cancel_when_idle(self, config):
        """Test that cancelling with nothing in flight is a no-op."""
        assert Conversation(config).cancel() is False


class TestBranchingAndSnapshots:
    """Tests for branching and persistence."""

    def test_branch_shares_history(self, config):
        """Test that a branch starts from the same history object."""
        conversation = Conversation(config)
        conversation.user_message("Hi")
        conversation.handle_response(dumps(message_payload()))

        branch = conversation.branch()
        assert branch.history is conversation.history

        branch.user_message("Branch question")
        branch.handle_response(dumps(message_payload(message_id="msg_b")))
        assert branch.message_count == 4
        assert conversation.message_count == 2
        assert conversation.state is ConversationState.IDLE
        assert conversation.usage.turns == 1
        assert branch.usage.turns == 2

    def test_branch_while_awaiting(self, config):
        """Test that a conversation with a turn in flight cannot be branched."""
        conversation = Conversation(config)
        conversation.user_message("Hi")
        with pytest.raises(ProtocolStateError):
            conversation.branch()

    def test_snapshot_round_trip(self, config):
        """Test that decode then encode reproduces the snapshot exactly."""
        conversation = Conversation(config, system="Be brief.", tools=[CALC])
        conversation.user_message("What's 2+2?")
        conversation.handle_response(dumps(tool_use_payload()))
        conversation.tool_results([ToolResultContent.success("toolu_01", "4")])
        conversation.handle_response(dumps(message_payload()))

        encoded = conversation.to_json()
        restored = Conversation.from_json(config, encoded)
        assert restored.to_json() == encoded
        assert restored.history == conversation.history
        assert restored.tools == conversation.tools
        assert restored.system == "Be brief."

    def test_restored_failed_turn_can_be_retried(self, config):
        """Test that a snapshot ending in an unanswered message resumes with a retry."""
        conversation = Conversation(config)
        conversation.user_message("Hi")
        restored = Conversation.from_json(config, conversation.to_json())

        assert restored.has_failed_turn
        request = restored.retry_request()
        assert request.body == conversation.last_request.body

    def test_clear(self, config):
        """Test that clear keeps system prompt and tools."""
        conversation = Conversation(config, system="Be brief.", tools=[CALC])
        conversation.user_message("Hi")
        conversation.handle_response(dumps(message_payload()))
        conversation.clear()
        assert conversation.history == ()
        assert conversation.system == "Be brief."
        assert conversation.tools == (CALC,)
