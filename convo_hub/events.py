"""
Server-sent stream events for the messages endpoint
"""

import json
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import DecodeError
from .types import ApiErrorPayload, ContentPiece, MessagesResponse, StopReason, UsageDelta


class BaseEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")


class TextDelta(BaseModel):
    type: Literal["text_delta"] = "text_delta"
    text: str


class InputJsonDelta(BaseModel):
    type: Literal["input_json_delta"] = "input_json_delta"
    partial_json: str


class ThinkingDelta(BaseModel):
    type: Literal["thinking_delta"] = "thinking_delta"
    thinking: str


class SignatureDelta(BaseModel):
    type: Literal["signature_delta"] = "signature_delta"
    signature: str


Delta = Annotated[
    Union[TextDelta, InputJsonDelta, ThinkingDelta, SignatureDelta],
    Field(discriminator="type"),
]

DELTA_TYPES = frozenset({"text_delta", "input_json_delta", "thinking_delta", "signature_delta"})
BLOCK_TYPES = frozenset({"text", "image", "tool_use", "tool_result", "thinking"})


class MessageStartEvent(BaseEvent):
    type: Literal["message_start"] = "message_start"
    message: MessagesResponse


class ContentBlockStartEvent(BaseEvent):
    type: Literal["content_block_start"] = "content_block_start"
    index: int
    content_block: ContentPiece


class ContentBlockDeltaEvent(BaseEvent):
    type: Literal["content_block_delta"] = "content_block_delta"
    index: int
    delta: Delta


class ContentBlockStopEvent(BaseEvent):
    type: Literal["content_block_stop"] = "content_block_stop"
    index: int


class MessageDeltaPayload(BaseModel):
    stop_reason: Optional[StopReason] = None
    stop_sequence: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class MessageDeltaEvent(BaseEvent):
    type: Literal["message_delta"] = "message_delta"
    delta: MessageDeltaPayload = Field(default_factory=MessageDeltaPayload)
    usage: Optional[UsageDelta] = None


class MessageStopEvent(BaseEvent):
    type: Literal["message_stop"] = "message_stop"


class PingEvent(BaseEvent):
    type: Literal["ping"] = "ping"


class ErrorEvent(BaseEvent):
    type: Literal["error"] = "error"
    error: ApiErrorPayload


class UnknownEvent(BaseEvent):
    """An event this library does not understand, kept for diagnostics."""

    event_type: str
    payload: Dict[str, Any] = Field(default_factory=dict)

    @property
    def index(self) -> Optional[int]:
        index = self.payload.get("index")
        return index if isinstance(index, int) else None


StreamEvent = Union[
    MessageStartEvent,
    ContentBlockStartEvent,
    ContentBlockDeltaEvent,
    ContentBlockStopEvent,
    MessageDeltaEvent,
    MessageStopEvent,
    PingEvent,
    ErrorEvent,
    UnknownEvent,
]

EVENT_TYPES = {
    "message_start": MessageStartEvent,
    "content_block_start": ContentBlockStartEvent,
    "content_block_delta": ContentBlockDeltaEvent,
    "content_block_stop": ContentBlockStopEvent,
    "message_delta": MessageDeltaEvent,
    "message_stop": MessageStopEvent,
    "ping": PingEvent,
    "error": ErrorEvent,
}

_KNOWN_EVENTS = tuple(EVENT_TYPES.values()) + (UnknownEvent,)


def _is_forward_compatible(event_type: str, payload: Dict[str, Any]) -> bool:
    # New block and delta kinds must not fail the whole stream
    if event_type == "content_block_start":
        block = payload.get("content_block")
        return isinstance(block, dict) and block.get("type") not in BLOCK_TYPES
    if event_type == "content_block_delta":
        delta = payload.get("delta")
        return isinstance(delta, dict) and delta.get("type") not in DELTA_TYPES
    return False


def parse_stream_event(data: Union[str, bytes, Dict[str, Any], StreamEvent]) -> StreamEvent:
    """
    Decode one stream event

    Args:
        data: An already decoded event, a JSON object, or its text/bytes

    Returns:
        The typed event; unrecognized tags become an UnknownEvent

    Raises:
        DecodeError: If the data is not JSON or a known event is malformed
    """
    if isinstance(data, _KNOWN_EVENTS):
        return data

    if isinstance(data, (str, bytes, bytearray)):
        try:
            payload = json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DecodeError(f"Stream event is not valid JSON: {e}") from e
    else:
        payload = data

    if not isinstance(payload, dict):
        raise DecodeError(f"Stream event must be a JSON object, got {type(payload).__name__}")

    event_type = payload.get("type")
    if not isinstance(event_type, str):
        raise DecodeError("Stream event has no type tag", details={"payload": payload})

    event_cls = EVENT_TYPES.get(event_type)
    if event_cls is None or _is_forward_compatible(event_type, payload):
        return UnknownEvent(event_type=event_type, payload=payload)

    try:
        return event_cls.model_validate(payload)
    except ValidationError as e:
        raise DecodeError(f"Malformed '{event_type}' event: {e}") from e
