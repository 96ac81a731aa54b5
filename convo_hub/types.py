"""
Core type definitions for Convo Hub using Pydantic
"""

import json
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class StopReason(str, Enum):
    END_TURN = "end_turn"
    MAX_TOKENS = "max_tokens"
    STOP_SEQUENCE = "stop_sequence"
    TOOL_USE = "tool_use"
    PAUSE_TURN = "pause_turn"
    REFUSAL = "refusal"


class BaseContent(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class TextContent(BaseContent):
    type: Literal["text"] = "text"
    text: str

    def __str__(self) -> str:
        return self.text


class ImageContent(BaseContent):
    """Image content. Images are carried through untouched but not otherwise supported."""

    type: Literal["image"] = "image"
    source: Dict[str, Any] = Field(default_factory=dict)

    def __str__(self) -> str:
        return "<image>"


class ToolUseContent(BaseContent):
    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: Dict[str, Any] = Field(default_factory=dict)

    def __str__(self) -> str:
        return f"<tool_use {self.name} {json.dumps(self.input)}>"


ToolResultPiece = Annotated[Union[TextContent, ImageContent], Field(discriminator="type")]


class ToolResultContent(BaseContent):
    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: Union[str, List[ToolResultPiece]] = ""
    is_error: bool = False

    @classmethod
    def success(cls, tool_use_id: str, content: Union[str, List[ToolResultPiece]]) -> "ToolResultContent":
        return cls(tool_use_id=tool_use_id, content=content)

    @classmethod
    def error(cls, tool_use_id: str, message: str) -> "ToolResultContent":
        return cls(tool_use_id=tool_use_id, content=message, is_error=True)

    @classmethod
    def unknown_tool(cls, tool_use_id: str, name: str) -> "ToolResultContent":
        return cls.error(tool_use_id, f"Unknown tool: {name}")

    def __str__(self) -> str:
        if isinstance(self.content, str):
            body = self.content
        else:
            body = "".join(str(piece) for piece in self.content)
        marker = "tool_error" if self.is_error else "tool_result"
        return f"<{marker} {self.tool_use_id}> {body}"


class ThinkingContent(BaseContent):
    type: Literal["thinking"] = "thinking"
    thinking: str = ""
    signature: str = ""

    def __str__(self) -> str:
        return f"<thinking> {self.thinking}"


ContentPiece = Annotated[
    Union[TextContent, ImageContent, ToolUseContent, ToolResultContent, ThinkingContent],
    Field(discriminator="type"),
]


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Role
    content: Tuple[ContentPiece, ...]

    @field_validator("content", mode="before")
    @classmethod
    def _text_shorthand(cls, value: Any) -> Any:
        # The API accepts a bare string as a single text block
        if isinstance(value, str):
            return ({"type": "text", "text": value},)
        return value

    @classmethod
    def from_text(cls, role: Role, text: str) -> "Message":
        return cls(role=role, content=(TextContent(text=text),))

    @property
    def text(self) -> str:
        """Text pieces joined with newlines"""
        return "\n".join(piece.text for piece in self.content if isinstance(piece, TextContent))

    @property
    def tool_uses(self) -> List[ToolUseContent]:
        return [piece for piece in self.content if isinstance(piece, ToolUseContent)]


class Tool(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    input_schema: Dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})


class Usage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_input_tokens: Optional[int] = None
    cache_read_input_tokens: Optional[int] = None

    model_config = ConfigDict(extra="ignore")


class UsageDelta(BaseModel):
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    cache_creation_input_tokens: Optional[int] = None
    cache_read_input_tokens: Optional[int] = None

    model_config = ConfigDict(extra="ignore")


class MessagesResponse(BaseModel):
    type: Literal["message"] = "message"
    id: str
    model: str
    role: Role = Role.ASSISTANT
    content: List[ContentPiece] = Field(default_factory=list)
    stop_reason: Optional[StopReason] = None
    stop_sequence: Optional[str] = None
    usage: Usage = Field(default_factory=Usage)

    model_config = ConfigDict(extra="ignore")

    @property
    def message(self) -> Message:
        return Message(role=self.role, content=tuple(self.content))


class StreamingMessage(BaseModel):
    """Accumulator for a message that is still arriving over a stream."""

    id: str
    model: str
    role: Role = Role.ASSISTANT
    content: List[ContentPiece] = Field(default_factory=list)
    stop_reason: Optional[StopReason] = None
    stop_sequence: Optional[str] = None
    usage: Usage = Field(default_factory=Usage)

    def merge_usage(self, delta: UsageDelta) -> None:
        updates = delta.model_dump(exclude_none=True)
        if updates:
            self.usage = self.usage.model_copy(update=updates)

    def finish(self) -> MessagesResponse:
        return MessagesResponse(
            id=self.id,
            model=self.model,
            role=self.role,
            content=list(self.content),
            stop_reason=self.stop_reason,
            stop_sequence=self.stop_sequence,
            usage=self.usage,
        )


class ApiErrorPayload(BaseModel):
    type: str
    message: str = ""

    model_config = ConfigDict(extra="ignore")


class ErrorResponse(BaseModel):
    type: Literal["error"] = "error"
    error: ApiErrorPayload
