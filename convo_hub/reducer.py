"""
Folding of stream events into a finished message
"""

import json
import logging
from typing import Callable, Dict, Iterable, List, Optional, Set

from .events import (
    ContentBlockDeltaEvent,
    ContentBlockStartEvent,
    ContentBlockStopEvent,
    ErrorEvent,
    InputJsonDelta,
    MessageDeltaEvent,
    MessageStartEvent,
    MessageStopEvent,
    PingEvent,
    SignatureDelta,
    StreamEvent,
    TextDelta,
    ThinkingDelta,
    UnknownEvent,
    parse_stream_event,
)
from .exceptions import StreamingError, provider_error_from_payload
from .types import (
    ContentPiece,
    MessagesResponse,
    StreamingMessage,
    TextContent,
    ThinkingContent,
    ToolUseContent,
)

logger = logging.getLogger(__name__)


class _BlockBuffer:
    """In-progress content block with one buffer per delta kind."""

    def __init__(self, index: int, initial: ContentPiece):
        self.index = index
        self.initial = initial
        self.text: List[str] = []
        self.partial_json: List[str] = []
        self.thinking: List[str] = []
        self.signature: List[str] = []

    def apply(self, delta) -> None:
        block = self.initial
        if isinstance(delta, TextDelta) and isinstance(block, TextContent):
            self.text.append(delta.text)
        elif isinstance(delta, InputJsonDelta) and isinstance(block, ToolUseContent):
            self.partial_json.append(delta.partial_json)
        elif isinstance(delta, ThinkingDelta) and isinstance(block, ThinkingContent):
            self.thinking.append(delta.thinking)
        elif isinstance(delta, SignatureDelta) and isinstance(block, ThinkingContent):
            self.signature.append(delta.signature)
        else:
            raise StreamingError(
                f"'{delta.type}' cannot be applied to a '{block.type}' block",
                details={"index": self.index},
            )

    def finish(self) -> ContentPiece:
        block = self.initial
        if isinstance(block, TextContent):
            return TextContent(text=block.text + "".join(self.text))

        if isinstance(block, ToolUseContent):
            raw = "".join(self.partial_json)
            if not raw.strip():
                return block
            try:
                arguments = json.loads(raw)
            except json.JSONDecodeError as e:
                raise StreamingError(
                    f"Tool input for '{block.name}' is not valid JSON: {e}",
                    details={"index": self.index},
                ) from e
            if not isinstance(arguments, dict):
                raise StreamingError(
                    f"Tool input for '{block.name}' must be a JSON object",
                    details={"index": self.index},
                )
            return ToolUseContent(id=block.id, name=block.name, input=arguments)

        if isinstance(block, ThinkingContent):
            return ThinkingContent(
                thinking=block.thinking + "".join(self.thinking),
                signature=block.signature + "".join(self.signature),
            )

        return block


class StreamReducer:
    """
    Reduces the events of one streamed turn into a MessagesResponse

    Events must be fed in the order they were received. ``feed`` returns
    ``None`` until ``message_stop`` arrives, then returns the finished
    message and resets itself for reuse.
    """

    def __init__(self, on_unknown: Optional[Callable[[UnknownEvent], None]] = None):
        self.on_unknown = on_unknown
        self._message: Optional[StreamingMessage] = None
        self._open: Dict[int, _BlockBuffer] = {}
        self._skipped: Set[int] = set()

    @property
    def in_progress(self) -> bool:
        return self._message is not None

    @property
    def message(self) -> Optional[StreamingMessage]:
        """The partially received message, if a stream has started"""
        return self._message

    def reset(self) -> None:
        self._message = None
        self._open.clear()
        self._skipped.clear()

    def feed(self, event) -> Optional[MessagesResponse]:
        """
        Apply one event

        Args:
            event: A StreamEvent, or anything parse_stream_event accepts

        Returns:
            The finished message on message_stop, otherwise None

        Raises:
            ProviderError: If the stream carries an error event
            StreamingError: If the events violate the stream protocol
        """
        event = parse_stream_event(event)

        if isinstance(event, PingEvent):
            return None

        if isinstance(event, UnknownEvent):
            self._handle_unknown(event)
            return None

        if isinstance(event, ErrorEvent):
            self.reset()
            raise provider_error_from_payload(event.error.type, event.error.message)

        if isinstance(event, MessageStartEvent):
            if self._message is not None:
                raise StreamingError("Received message_start while a message is already in progress")
            start = event.message
            self._message = StreamingMessage(
                id=start.id,
                model=start.model,
                role=start.role,
                content=list(start.content),
                usage=start.usage,
            )
            return None

        message = self._require_message(event)

        if isinstance(event, ContentBlockStartEvent):
            if event.index in self._open:
                raise StreamingError("Content block opened twice", details={"index": event.index})
            self._open[event.index] = _BlockBuffer(event.index, event.content_block)

        elif isinstance(event, ContentBlockDeltaEvent):
            if event.index in self._skipped:
                return None
            self._block(event.index).apply(event.delta)

        elif isinstance(event, ContentBlockStopEvent):
            if event.index in self._skipped:
                self._skipped.discard(event.index)
                return None
            block = self._block(event.index)
            del self._open[event.index]
            message.content.append(block.finish())

        elif isinstance(event, MessageDeltaEvent):
            if event.delta.stop_reason is not None:
                message.stop_reason = event.delta.stop_reason
            if event.delta.stop_sequence is not None:
                message.stop_sequence = event.delta.stop_sequence
            if event.usage is not None:
                message.merge_usage(event.usage)

        elif isinstance(event, MessageStopEvent):
            if self._open:
                raise StreamingError(
                    "Message stopped with unterminated content blocks",
                    details={"indices": sorted(self._open)},
                )
            finished = message.finish()
            self.reset()
            return finished

        return None

    def _require_message(self, event: StreamEvent) -> StreamingMessage:
        if self._message is None:
            raise StreamingError(f"Received '{event.type}' before message_start")
        return self._message

    def _block(self, index: int) -> _BlockBuffer:
        try:
            return self._open[index]
        except KeyError:
            raise StreamingError("No open content block at index", details={"index": index}) from None

    def _handle_unknown(self, event: UnknownEvent) -> None:
        logger.debug(f"Ignoring unknown stream event '{event.event_type}'")
        if event.event_type == "content_block_start" and event.index is not None:
            self._skipped.add(event.index)
        if self.on_unknown is not None:
            self.on_unknown(event)


def reduce_stream(
    events: Iterable,
    on_unknown: Optional[Callable[[UnknownEvent], None]] = None,
) -> MessagesResponse:
    """
    Reduce a complete event stream to its message

    Args:
        events: Events in receipt order
        on_unknown: Optional callback for unrecognized events

    Returns:
        The finished message

    Raises:
        StreamingError: If the stream ends before message_stop
    """
    reducer = StreamReducer(on_unknown=on_unknown)
    for event in events:
        finished = reducer.feed(event)
        if finished is not None:
            return finished
    raise StreamingError("Stream ended before message_stop")
