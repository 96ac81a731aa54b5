from .config import ApiConfig, TransportConfig
from .types import (
    Role,
    StopReason,
    TextContent,
    ImageContent,
    ToolUseContent,
    ToolResultContent,
    ThinkingContent,
    Message,
    Tool,
    Usage,
    MessagesResponse,
)
from .exceptions import (
    ConvoHubError,
    ConfigurationError,
    TransportError,
    HttpStatusError,
    RetryExhaustedError,
    ProviderError,
    RateLimitError,
    OverloadedError,
    DecodeError,
    ResponseDecodeError,
    UnexpectedResponseTypeError,
    StreamingError,
    ScanError,
    ProtocolStateError,
    ToolError,
)
from .json_scan import JsonScanner, JsonStreamDecoder, ScanResult, ScanStatus
from .events import parse_stream_event
from .reducer import StreamReducer, reduce_stream
from .responses import deserialize_response
from .http_request import HttpRequest
from .builder import MessagesRequestBuilder
from .conversation import Conversation, ConversationSnapshot, ConversationState, TurnResult
from .tools import ToolExecutor, function_to_tool, tool_from_model
from .transport import Transport, RequestsTransport
from .middleware.retry import RetryPolicy
from .usage import UsageTotals

__all__ = [
    "ApiConfig",
    "TransportConfig",
    "Role",
    "StopReason",
    "TextContent",
    "ImageContent",
    "ToolUseContent",
    "ToolResultContent",
    "ThinkingContent",
    "Message",
    "Tool",
    "Usage",
    "MessagesResponse",
    "ConvoHubError",
    "ConfigurationError",
    "TransportError",
    "HttpStatusError",
    "RetryExhaustedError",
    "ProviderError",
    "RateLimitError",
    "OverloadedError",
    "DecodeError",
    "ResponseDecodeError",
    "UnexpectedResponseTypeError",
    "StreamingError",
    "ScanError",
    "ProtocolStateError",
    "ToolError",
    "JsonScanner",
    "JsonStreamDecoder",
    "ScanResult",
    "ScanStatus",
    "parse_stream_event",
    "StreamReducer",
    "reduce_stream",
    "deserialize_response",
    "HttpRequest",
    "MessagesRequestBuilder",
    "Conversation",
    "ConversationSnapshot",
    "ConversationState",
    "TurnResult",
    "ToolExecutor",
    "function_to_tool",
    "tool_from_model",
    "Transport",
    "RequestsTransport",
    "RetryPolicy",
    "UsageTotals",
]
