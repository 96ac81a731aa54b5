"""
Turn-taking conversation engine

A Conversation owns the history, system prompt and tools of one dialogue and
produces the request for every turn. It never talks to the network itself:
the caller sends the request with a transport and hands the response (or the
stream of events) back.

    conversation = Conversation(config, system="You are terse.")
    request = conversation.user_message("What's 2+2?")
    result = conversation.handle_response(transport.send(request))
    print(result.text)
"""

import copy
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, Field

from .builder import MessagesRequestBuilder
from .config import ApiConfig
from .events import UnknownEvent
from .exceptions import ConvoHubError, ProtocolStateError, StreamingError, ToolError
from .http_request import HttpRequest
from .reducer import StreamReducer
from .responses import deserialize_response
from .types import (
    ContentPiece,
    Message,
    MessagesResponse,
    Role,
    StopReason,
    Tool,
    ToolResultContent,
    ToolUseContent,
    Usage,
)
from .usage import UsageTotals

logger = logging.getLogger(__name__)


class ConversationState(str, Enum):
    IDLE = "idle"
    AWAITING_RESPONSE = "awaiting_response"


@dataclass(frozen=True)
class TurnResult:
    """The assistant message that completed a turn, with the response it came from"""

    message: Message
    response: MessagesResponse

    @property
    def contents(self) -> Tuple[ContentPiece, ...]:
        return self.message.content

    @property
    def tool_uses(self) -> List[ToolUseContent]:
        return self.message.tool_uses

    @property
    def text(self) -> str:
        return self.message.text

    @property
    def stop_reason(self) -> Optional[StopReason]:
        return self.response.stop_reason

    @property
    def usage(self) -> Usage:
        return self.response.usage

    @property
    def requires_tool_results(self) -> bool:
        return bool(self.tool_uses)


class ConversationSnapshot(BaseModel):
    """Persisted form of a conversation"""

    system: Optional[str] = None
    messages: List[Message] = Field(default_factory=list)
    tools: List[Tool] = Field(default_factory=list)


class Conversation:
    """
    State machine for one conversation

    States are IDLE and AWAITING_RESPONSE. ``user_message`` and
    ``tool_results`` are only valid while idle and move the conversation to
    AWAITING_RESPONSE; ``handle_response``, ``feed_event`` and
    ``handle_stream`` are only valid while awaiting and move it back.

    The history is an immutable tuple of frozen messages. It changes only
    when a message is submitted and when a valid assistant message arrives.
    If a turn fails, the submitted message stays unanswered at the end of the
    history; the caller must then either resend the same request with
    ``retry_request`` or drop the message with ``discard_failed_turn``.
    """

    def __init__(
        self,
        config: ApiConfig,
        system: Optional[str] = None,
        tools: Optional[Iterable[Tool]] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        stream: bool = False,
        on_unknown: Optional[Callable[[UnknownEvent], None]] = None,
    ):
        """
        Initialize a conversation

        Args:
            config: API configuration used to build every request
            system: Optional system prompt
            tools: Tools offered to the model, in order
            model: Model override (defaults to config.default_model)
            max_tokens: Max tokens override (defaults to config.default_max_tokens)
            stream: Whether requests ask for a streamed response by default
            on_unknown: Callback for stream events this client does not recognize
        """
        self.config = config
        self.model = model
        self.max_tokens = max_tokens
        self.stream = stream
        self.on_unknown = on_unknown
        self.usage = UsageTotals()

        self._system = system
        self._tools: Tuple[Tool, ...] = ()
        self._history: Tuple[Message, ...] = ()
        self._state = ConversationState.IDLE
        self._reducer: Optional[StreamReducer] = None
        self._last_request: Optional[HttpRequest] = None
        self._last_request_streams = False

        for tool in tools or ():
            self.add_tool(tool)

    # -- configuration -----------------------------------------------------

    @property
    def state(self) -> ConversationState:
        return self._state

    @property
    def system(self) -> Optional[str]:
        return self._system

    def set_system(self, system: Optional[str]) -> None:
        """Replace the system prompt used by subsequent requests"""
        self._system = system

    @property
    def tools(self) -> Tuple[Tool, ...]:
        return self._tools

    def add_tool(self, tool: Tool) -> None:
        if any(existing.name == tool.name for existing in self._tools):
            raise ToolError(f"Tool '{tool.name}' is already registered")
        self._tools = self._tools + (tool,)

    # -- history -----------------------------------------------------------

    @property
    def history(self) -> Tuple[Message, ...]:
        return self._history

    @property
    def message_count(self) -> int:
        return len(self._history)

    @property
    def last_request(self) -> Optional[HttpRequest]:
        """The most recently built request"""
        return self._last_request

    @property
    def has_failed_turn(self) -> bool:
        """True when idle with a submitted message that was never answered"""
        return (
            self._state is ConversationState.IDLE
            and bool(self._history)
            and self._history[-1].role is Role.USER
        )

    def clear(self) -> None:
        """Drop the whole history, keeping system prompt and tools"""
        self._require_state(ConversationState.IDLE, "clear")
        self._history = ()
        self._last_request = None

    def branch(self) -> "Conversation":
        """
        Return an independent copy of this conversation

        The copy shares the immutable history, so branching costs the same
        regardless of the conversation length. Each branch can then be driven
        on its own.
        """
        self._require_state(ConversationState.IDLE, "branch")
        clone = copy.copy(self)
        clone.usage = self.usage.copy()
        clone._reducer = None
        return clone

    # -- turns -------------------------------------------------------------

    def user_message(self, text: str, stream: Optional[bool] = None) -> HttpRequest:
        """
        Submit user text and build the request for the turn

        Args:
            text: The user's message
            stream: Override the conversation's streaming default for this turn

        Returns:
            The request to send

        Raises:
            ProtocolStateError: If a turn is in flight or the last turn failed
        """
        self._require_new_turn("user_message")
        return self._submit(Message.from_text(Role.USER, text), stream)

    def tool_results(self, results: Sequence[ToolResultContent], stream: Optional[bool] = None) -> HttpRequest:
        """
        Submit the results of every tool call from the previous assistant message

        All results go into a single user message, in the given order.

        Raises:
            ValueError: If no results are given
            ProtocolStateError: If a turn is in flight or the last turn failed
        """
        self._require_new_turn("tool_results")
        results = list(results)
        if not results:
            raise ValueError("At least one tool result is required")
        return self._submit(Message(role=Role.USER, content=tuple(results)), stream)

    def handle_response(self, raw: Union[str, bytes]) -> TurnResult:
        """
        Complete the turn with a non-streaming response body

        Raises:
            ProtocolStateError: If no turn is in flight
            ProviderError: If the body is an error envelope
            DecodeError: If the body cannot be decoded
        """
        self._require_state(ConversationState.AWAITING_RESPONSE, "handle_response")
        try:
            response = deserialize_response(raw)
        except ConvoHubError as e:
            self._abort_turn(e)
            raise
        return self._complete(response)

    def feed_event(self, event: Any) -> Optional[TurnResult]:
        """
        Apply one stream event to the turn in flight

        Args:
            event: A stream event, or its JSON payload as dict, str or bytes

        Returns:
            The turn result on message_stop, otherwise None
        """
        self._require_state(ConversationState.AWAITING_RESPONSE, "feed_event")
        if self._reducer is None:
            self._reducer = StreamReducer(on_unknown=self.on_unknown)
        try:
            finished = self._reducer.feed(event)
        except BaseException as e:
            self._abort_turn(e)
            raise
        if finished is None:
            return None
        return self._complete(finished)

    def handle_stream(self, events: Iterable[Any]) -> TurnResult:
        """
        Complete the turn by consuming a whole event stream

        The event source is closed once the turn ends, successfully or not,
        if it has a ``close`` method (generators, transport streams).

        Raises:
            StreamingError: If the stream ends before message_stop
        """
        self._require_state(ConversationState.AWAITING_RESPONSE, "handle_stream")
        try:
            for event in events:
                result = self.feed_event(event)
                if result is not None:
                    return result
        except BaseException as e:
            # errors raised by the event source itself, e.g. a dropped connection
            if self._state is ConversationState.AWAITING_RESPONSE:
                self._abort_turn(e)
            raise
        finally:
            close = getattr(events, "close", None)
            if close is not None:
                close()

        error = StreamingError("Stream ended before message_stop")
        self._abort_turn(error)
        raise error

    def cancel(self) -> bool:
        """
        Abandon the turn in flight

        Any partially streamed message is discarded. Returns False if no turn
        was in flight.
        """
        if self._state is not ConversationState.AWAITING_RESPONSE:
            return False
        logger.debug("Turn cancelled")
        self._reset_turn()
        return True

    def retry_request(self) -> HttpRequest:
        """
        Resend the request of a failed turn

        Returns the identical request that was built for the unanswered
        message and moves back to AWAITING_RESPONSE.

        Raises:
            ProtocolStateError: If there is no failed turn
        """
        self._require_failed_turn("retry_request")
        if self._last_request is None:
            # restored from a snapshot, nothing was built yet
            return self._dispatch(self.stream)
        self._enter_awaiting(self._last_request_streams)
        logger.debug("Retrying failed turn with the previous request")
        return self._last_request

    def discard_failed_turn(self) -> Message:
        """
        Drop the unanswered message of a failed turn

        Returns:
            The removed message
        """
        self._require_failed_turn("discard_failed_turn")
        dropped = self._history[-1]
        self._history = self._history[:-1]
        self._last_request = None
        logger.debug("Discarded unanswered message of failed turn")
        return dropped

    # -- snapshots ---------------------------------------------------------

    def to_snapshot(self) -> ConversationSnapshot:
        return ConversationSnapshot(system=self._system, messages=list(self._history), tools=list(self._tools))

    def to_json(self) -> str:
        return self.to_snapshot().model_dump_json()

    @classmethod
    def from_snapshot(cls, config: ApiConfig, snapshot: ConversationSnapshot, **kwargs) -> "Conversation":
        conversation = cls(config, system=snapshot.system, tools=snapshot.tools, **kwargs)
        conversation._history = tuple(snapshot.messages)
        return conversation

    @classmethod
    def from_json(cls, config: ApiConfig, data: Union[str, bytes], **kwargs) -> "Conversation":
        return cls.from_snapshot(config, ConversationSnapshot.model_validate_json(data), **kwargs)

    # -- internals ---------------------------------------------------------

    def _submit(self, message: Message, stream: Optional[bool]) -> HttpRequest:
        self._history = self._history + (message,)
        return self._dispatch(self.stream if stream is None else stream)

    def _dispatch(self, stream: bool) -> HttpRequest:
        builder = (
            MessagesRequestBuilder()
            .system(self._system)
            .set_messages(self._history)
            .set_tools(self._tools)
            .stream(stream)
        )
        if self.model:
            builder.model(self.model)
        if self.max_tokens:
            builder.max_tokens(self.max_tokens)

        request = builder.build(self.config)
        self._last_request = request
        self._last_request_streams = stream
        self._enter_awaiting(stream)
        return request

    def _enter_awaiting(self, stream: bool) -> None:
        self._reducer = StreamReducer(on_unknown=self.on_unknown) if stream else None
        self._state = ConversationState.AWAITING_RESPONSE
        logger.debug(f"Awaiting response ({len(self._history)} messages, stream={stream})")

    def _complete(self, response: MessagesResponse) -> TurnResult:
        message = response.message
        self._history = self._history + (message,)
        self._reset_turn()
        self.usage.add(response.model, response.usage)
        logger.debug(f"Turn complete: stop_reason={response.stop_reason}, {len(message.content)} content pieces")
        return TurnResult(message=message, response=response)

    def _abort_turn(self, error: BaseException) -> None:
        logger.debug(f"Turn failed with {type(error).__name__}, history unchanged")
        self._reset_turn()

    def _reset_turn(self) -> None:
        self._reducer = None
        self._state = ConversationState.IDLE

    def _require_state(self, expected: ConversationState, operation: str) -> None:
        if self._state is not expected:
            raise ProtocolStateError(
                f"{operation} requires state '{expected.value}', conversation is '{self._state.value}'"
            )

    def _require_new_turn(self, operation: str) -> None:
        self._require_state(ConversationState.IDLE, operation)
        if self.has_failed_turn:
            raise ProtocolStateError(
                f"{operation} is not allowed after a failed turn; use retry_request() or discard_failed_turn()"
            )

    def _require_failed_turn(self, operation: str) -> None:
        self._require_state(ConversationState.IDLE, operation)
        if not self.has_failed_turn:
            raise ProtocolStateError(f"{operation} requires a failed turn")
